"""Internal Representation (IR) dataclasses — output of flow compilation."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any


# ── Node kinds ──────────────────────────────────────────────────

INPUT = "input"
TEXT_GENERATION = "text-generation"
LOGIC = "logic"
API_CALL = "api-call"
OUTPUT = "output"

NODE_KINDS = (INPUT, TEXT_GENERATION, LOGIC, API_CALL, OUTPUT)

# Branch handles a logic node may label its outgoing edges with.
BRANCH_TRUE = "true"
BRANCH_FALSE = "false"
DEFAULT_HANDLE = "input"


# ── Type-specific payloads ──────────────────────────────────────


@dataclass
class IRInputPayload:
    required: bool = False
    default_value: Any = None
    label: str | None = None
    placeholder: str | None = None
    description: str | None = None
    source_type: str = "text"  # text | file | image | webhook


@dataclass
class IRTextGenerationPayload:
    provider: str = "openai"  # openai | ollama | huggingface
    model: str = "gpt-4o"
    system_prompt: str = "You are a helpful assistant."
    temperature: float = 0.7
    max_tokens: int = 1000
    endpoint: str | None = None  # ollama only


@dataclass
class IRLogicPayload:
    condition: str = "input.length > 0"


@dataclass
class IRApiCallPayload:
    endpoint: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None  # template string/dict; None → {"query": "{{input}}"}


@dataclass
class IROutputPayload:
    format: str = "markdown"  # plaintext | markdown | html
    channel: str = "text"  # text | image | email | notification


# ── Node / edge ─────────────────────────────────────────────────


@dataclass
class IRNode:
    node_id: str
    type: str  # one of NODE_KINDS
    ui_type: str | None = None  # builder type name, e.g. "gptNode"
    label: str | None = None
    payload: Any = None  # one of the IR*Payload types above


@dataclass
class IREdge:
    edge_id: str
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None

    @property
    def handle(self) -> str:
        return self.target_handle or DEFAULT_HANDLE


# ── Flow (top-level IR) ─────────────────────────────────────────


@dataclass
class IRFlow:
    nodes: dict[str, IRNode] = field(default_factory=dict)
    edges: list[IREdge] = field(default_factory=list)
    flow_id: str | None = None
    name: str | None = None

    _outgoing: dict[str, list[IREdge]] = field(default_factory=dict, init=False, repr=False)
    _incoming: dict[str, list[IREdge]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._index()

    def _index(self) -> None:
        self._outgoing = {nid: [] for nid in self.nodes}
        self._incoming = {nid: [] for nid in self.nodes}
        for edge in self.edges:
            # Dangling edges are reported by the validator, not indexed.
            if edge.source not in self.nodes or edge.target not in self.nodes:
                continue
            self._outgoing[edge.source].append(edge)
            self._incoming[edge.target].append(edge)
        for out in self._outgoing.values():
            out.sort(key=lambda e: (e.target, e.edge_id))
        for inc in self._incoming.values():
            inc.sort(key=lambda e: (e.source, e.edge_id))

    def neighbors(self, node_id: str) -> list[tuple[IREdge, IRNode]]:
        """Outgoing edges of *node_id* with their target nodes, ordered by target id."""
        return [(e, self.nodes[e.target]) for e in self._outgoing.get(node_id, [])]

    def outgoing_edges(self, node_id: str) -> list[IREdge]:
        return list(self._outgoing.get(node_id, []))

    def incoming_edges(self, node_id: str) -> list[IREdge]:
        return list(self._incoming.get(node_id, []))

    def input_nodes(self) -> list[str]:
        return sorted(nid for nid, n in self.nodes.items() if n.type == INPUT)

    def output_nodes(self) -> list[str]:
        return sorted(nid for nid, n in self.nodes.items() if n.type == OUTPUT)

    def reachable_from_inputs(self) -> set[str]:
        seen: set[str] = set()
        queue = deque(self.input_nodes())
        while queue:
            nid = queue.popleft()
            if nid in seen:
                continue
            seen.add(nid)
            for edge in self._outgoing.get(nid, []):
                queue.append(edge.target)
        return seen

    def unreachable_nodes(self) -> list[str]:
        reachable = self.reachable_from_inputs()
        return sorted(nid for nid in self.nodes if nid not in reachable)
