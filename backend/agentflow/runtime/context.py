"""Per-run execution context — append-only map of node id → produced value."""

from __future__ import annotations

from typing import Any, Iterator, Mapping


class ExecutionContext(Mapping[str, Any]):
    """Values produced by the nodes of one run.

    Created fresh for each invocation.  A node's value is written exactly
    once; a second write is a scheduling bug and raises ``RuntimeError``.
    """

    def __init__(self, run_id: str, initial_input: Any = None):
        self.run_id = run_id
        self.initial_input = initial_input
        self._values: dict[str, Any] = {}
        self._branches: dict[str, str] = {}
        self.execution_order: list[str] = []

    def mark_dispatched(self, node_id: str) -> None:
        self.execution_order.append(node_id)

    def store(self, node_id: str, value: Any, branch: str | None = None) -> None:
        if node_id in self._values:
            raise RuntimeError(f"Node '{node_id}' already produced a value in run {self.run_id}")
        self._values[node_id] = value
        if branch is not None:
            self._branches[node_id] = branch

    def branch_of(self, node_id: str) -> str | None:
        return self._branches.get(node_id)

    def __getitem__(self, node_id: str) -> Any:
        return self._values[node_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)
