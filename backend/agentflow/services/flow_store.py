"""Flow store — where deployed agents' flow data is looked up by deploy id.

Persistence is owned by the surrounding product; the engine only needs
read access, expressed by the :class:`FlowStore` protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass
class StoredAgent:
    deploy_id: str
    name: str
    flow_data: dict[str, Any] | str
    is_active: bool = True


class FlowStore(Protocol):
    async def get(self, deploy_id: str) -> StoredAgent | None: ...


class InMemoryFlowStore:
    def __init__(self, agents: list[StoredAgent] | None = None):
        self._agents: dict[str, StoredAgent] = {a.deploy_id: a for a in agents or []}

    async def get(self, deploy_id: str) -> StoredAgent | None:
        return self._agents.get(deploy_id)

    def put(self, agent: StoredAgent) -> None:
        self._agents[agent.deploy_id] = agent

    def remove(self, deploy_id: str) -> None:
        self._agents.pop(deploy_id, None)


# Process-wide store used by the HTTP API.
default_store = InMemoryFlowStore()
