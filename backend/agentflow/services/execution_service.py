"""Execution service — the invocation interface over the run coordinator.

``execute_flow(deploy_id_or_graph, user_input)`` resolves the flow, compiles
it and runs it, always answering ``{success, output?, error?, errorKind?}``.
"""

from __future__ import annotations

import logging
from typing import Any

from agentflow.compiler.parser import parse_flow
from agentflow.runtime.coordinator import RunCoordinator, RunResult
from agentflow.runtime.errors import FlowError
from agentflow.services.flow_store import FlowStore, StoredAgent, default_store
from agentflow.utils.logger import ctx_deploy_id

logger = logging.getLogger("agentflow.execution")


class AgentNotFoundError(Exception):
    def __init__(self, deploy_id: str):
        super().__init__(f"Agent '{deploy_id}' not found")
        self.deploy_id = deploy_id


class AgentInactiveError(Exception):
    def __init__(self, deploy_id: str):
        super().__init__(f"Agent '{deploy_id}' is not active")
        self.deploy_id = deploy_id


_coordinator: RunCoordinator | None = None


def get_coordinator() -> RunCoordinator:
    """Lazily-built process-wide coordinator wired to the real providers."""
    global _coordinator
    if _coordinator is None:
        _coordinator = RunCoordinator()
    return _coordinator


def set_coordinator(coordinator: RunCoordinator | None) -> None:
    global _coordinator
    _coordinator = coordinator


async def resolve_agent(deploy_id: str, store: FlowStore | None = None) -> StoredAgent:
    """Look up a deployed agent; raise if it is missing or inactive."""
    agent = await (store or default_store).get(deploy_id)
    if agent is None:
        raise AgentNotFoundError(deploy_id)
    if not agent.is_active:
        raise AgentInactiveError(deploy_id)
    return agent


async def run_flow(
    graph: dict[str, Any] | str,
    user_input: Any,
    *,
    coordinator: RunCoordinator | None = None,
    inputs: dict[str, Any] | None = None,
    run_id: str | None = None,
    timeout: float | None = None,
    flow_id: str | None = None,
) -> RunResult:
    coordinator = coordinator or get_coordinator()
    try:
        flow = parse_flow(graph, flow_id=flow_id)
    except FlowError as exc:
        logger.warning("Flow %s rejected at load time: %s", flow_id or "<inline>", exc)
        return RunResult(run_id=run_id or "", success=False, error=exc.kind, message=str(exc), node_id=exc.node_id)
    return await coordinator.run(flow, user_input, inputs=inputs, run_id=run_id, timeout=timeout)


async def execute_flow(
    deploy_id_or_graph: str | dict[str, Any],
    user_input: Any,
    *,
    store: FlowStore | None = None,
    coordinator: RunCoordinator | None = None,
) -> dict[str, Any]:
    """Run a deployed agent (by deploy id) or an inline graph; answer in response shape.

    Raises AgentNotFoundError / AgentInactiveError for unknown or inactive
    deploy ids; every flow-level failure is reported in the response.
    """
    if isinstance(deploy_id_or_graph, str):
        agent = await resolve_agent(deploy_id_or_graph, store)
        token = ctx_deploy_id.set(agent.deploy_id)
        try:
            result = await run_flow(agent.flow_data, user_input, coordinator=coordinator, flow_id=agent.deploy_id)
        finally:
            ctx_deploy_id.reset(token)
    else:
        result = await run_flow(deploy_id_or_graph, user_input, coordinator=coordinator)
    return result.to_response()
