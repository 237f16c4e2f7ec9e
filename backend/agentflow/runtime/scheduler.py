"""Work-list scheduler with dead-path elimination.

Every edge starts *pending*.  When its source completes the edge either
*fires* (unconditional edges, or the logic branch that was chosen) or is
*pruned* (the other branch, or any edge leaving a dead / terminal node).

A node is **ready** once none of its incoming edges are pending and at least
one has fired; it is **dead** once all of them are pruned, in which case its
own outgoing edges are pruned in turn.  Ready nodes are handed out in
ascending id order, one wave at a time.
"""

from __future__ import annotations

import heapq
import logging

from agentflow.compiler.ir import LOGIC, OUTPUT, IRFlow
from agentflow.runtime.errors import CyclicGraphError

logger = logging.getLogger("agentflow.scheduler")

PENDING = 0
FIRED = 1
PRUNED = 2


class WorkListScheduler:
    def __init__(self, flow: IRFlow):
        self.flow = flow
        # Arena of node ids; counters are indexed by position.
        self._ids: list[str] = sorted(flow.nodes)
        self._index: dict[str, int] = {nid: i for i, nid in enumerate(self._ids)}
        self._pending = [len(flow.incoming_edges(nid)) for nid in self._ids]
        self._fired = [0] * len(self._ids)
        self._edge_state: dict[str, int] = {}
        self._ready: list[str] = []
        self._queued: set[str] = set()
        self._completed: set[str] = set()
        self._dead: set[str] = set()
        self._in_flight: set[str] = set()

        for edge in flow.edges:
            if edge.source in flow.nodes and edge.target in flow.nodes:
                self._edge_state[edge.edge_id] = PENDING
        for nid in flow.input_nodes():
            self._push(nid)

    # ── Queries ────────────────────────────────────────────────

    @property
    def completed(self) -> set[str]:
        return set(self._completed)

    @property
    def dead(self) -> set[str]:
        return set(self._dead)

    def has_ready(self) -> bool:
        return bool(self._ready)

    def is_finished(self) -> bool:
        return not self._ready and not self._in_flight

    def fired_incoming(self, node_id: str) -> list:
        """Incoming edges of *node_id* that fired, in (source id, edge id) order."""
        return [e for e in self.flow.incoming_edges(node_id) if self._edge_state.get(e.edge_id) == FIRED]

    # ── Work-list operations ───────────────────────────────────

    def pop_ready(self) -> list[str]:
        """Take the whole current frontier, in ascending id order."""
        wave: list[str] = []
        while self._ready:
            nid = heapq.heappop(self._ready)
            self._queued.discard(nid)
            wave.append(nid)
        self._in_flight.update(wave)
        return wave

    def complete(self, node_id: str, branch: str | None = None, all_branches: bool = False) -> None:
        """Record *node_id* as done and resolve its outgoing edges.

        For logic nodes only edges whose ``source_handle`` equals *branch* fire,
        unless *all_branches* is set (used for dry-run planning).
        Output nodes are terminal: their outgoing edges are pruned.
        """
        if node_id in self._completed:
            raise RuntimeError(f"Node '{node_id}' completed twice")
        self._in_flight.discard(node_id)
        self._completed.add(node_id)

        node = self.flow.nodes[node_id]
        for edge in self.flow.outgoing_edges(node_id):
            if node.type == OUTPUT:
                self._resolve(edge, PRUNED)
            elif node.type == LOGIC and not all_branches:
                self._resolve(edge, FIRED if edge.source_handle == branch else PRUNED)
            else:
                self._resolve(edge, FIRED)

        if not self._ready and not self._in_flight:
            self._settle()

    def check_drained(self) -> None:
        """Raise CyclicGraphError if an activated node can never run.

        Call once the work-list is empty.
        """
        stuck = [
            nid for i, nid in enumerate(self._ids)
            if nid not in self._completed and self._fired[i] > 0
        ]
        if stuck:
            raise CyclicGraphError(
                f"Nodes {', '.join(repr(n) for n in stuck)} wait on a cycle and can never run.",
                cycle_nodes=stuck,
            )

    # ── Internal helpers ───────────────────────────────────────

    def _resolve(self, edge, state: int) -> None:
        if self._edge_state.get(edge.edge_id) != PENDING:
            return
        self._edge_state[edge.edge_id] = state
        idx = self._index[edge.target]
        self._pending[idx] -= 1
        if state == FIRED:
            self._fired[idx] += 1
        if self._pending[idx] > 0:
            return
        if self._fired[idx] > 0:
            self._push(edge.target)
        else:
            self._kill(edge.target)

    def _kill(self, node_id: str) -> None:
        if node_id in self._dead:
            return
        self._dead.add(node_id)
        logger.debug("Pruned node %s (all incoming edges pruned)", node_id)
        for edge in self.flow.outgoing_edges(node_id):
            self._resolve(edge, PRUNED)

    def _settle(self) -> None:
        """Kill nodes that can no longer be activated once the work-list is empty.

        A node stays *live* while an activated node that has not run can still
        reach it over pending edges.  Everything else that has neither run nor
        died (sources with no incoming edges, cycles behind a pruned branch)
        is killed, which may unblock merge nodes downstream.  Repeats until
        something becomes ready or nothing is left to kill.
        """
        while not self._ready:
            live = {
                nid for i, nid in enumerate(self._ids)
                if nid not in self._completed and self._fired[i] > 0
            }
            frontier = list(live)
            while frontier:
                for edge in self.flow.outgoing_edges(frontier.pop()):
                    if self._edge_state.get(edge.edge_id) == PENDING and edge.target not in live:
                        live.add(edge.target)
                        frontier.append(edge.target)

            idle = [
                nid for nid in self._ids
                if nid not in self._completed and nid not in self._dead and nid not in live
            ]
            if not idle:
                return
            for nid in idle:
                self._kill(nid)

    def _push(self, node_id: str) -> None:
        if node_id in self._dead:
            return
        if node_id in self._queued or node_id in self._completed or node_id in self._in_flight:
            return
        self._queued.add(node_id)
        heapq.heappush(self._ready, node_id)
