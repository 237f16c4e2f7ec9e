"""Flow static validator — checks IR integrity before execution."""

from __future__ import annotations

import logging
from collections import deque

from agentflow.compiler.ir import BRANCH_FALSE, BRANCH_TRUE, INPUT, LOGIC, IRFlow
from agentflow.runtime.errors import CyclicGraphError, MalformedGraphError

logger = logging.getLogger("agentflow.validator")


def validate_flow(flow: IRFlow) -> list[str]:
    """Return a list of structural error strings. Empty list means valid."""
    errors: list[str] = []
    all_node_ids = set(flow.nodes.keys())

    if not flow.input_nodes():
        errors.append("Flow has no input node.")

    seen_edges: set[str] = set()
    for edge in flow.edges:
        if edge.edge_id in seen_edges:
            errors.append(f"Duplicate edge id '{edge.edge_id}'.")
        seen_edges.add(edge.edge_id)

        if edge.source not in all_node_ids:
            errors.append(f"Edge '{edge.edge_id}': source '{edge.source}' not found.")
        if edge.target not in all_node_ids:
            errors.append(f"Edge '{edge.edge_id}': target '{edge.target}' not found.")
            continue

        if flow.nodes[edge.target].type == INPUT:
            errors.append(f"Edge '{edge.edge_id}': input node '{edge.target}' cannot have incoming edges.")

        source = flow.nodes.get(edge.source)
        if source is not None and source.type == LOGIC and edge.source_handle not in (BRANCH_TRUE, BRANCH_FALSE):
            errors.append(
                f"Edge '{edge.edge_id}': logic node '{edge.source}' edges need sourceHandle "
                f"'{BRANCH_TRUE}' or '{BRANCH_FALSE}', got '{edge.source_handle}'."
            )

    return errors


def find_cycle_nodes(flow: IRFlow) -> set[str]:
    """Return nodes that sit on (or between) cycles.

    Forward Kahn leaves every node on or downstream of a cycle; a second pass
    over the reversed leftover drops the purely-downstream ones.
    """
    indegree = {nid: 0 for nid in flow.nodes}
    for nid in flow.nodes:
        for edge in flow.outgoing_edges(nid):
            indegree[edge.target] += 1
    queue = deque(nid for nid, deg in indegree.items() if deg == 0)
    while queue:
        nid = queue.popleft()
        for edge in flow.outgoing_edges(nid):
            indegree[edge.target] -= 1
            if indegree[edge.target] == 0:
                queue.append(edge.target)
    leftover = {nid for nid, deg in indegree.items() if deg > 0}

    outdegree = {nid: 0 for nid in leftover}
    for nid in leftover:
        outdegree[nid] = sum(1 for e in flow.outgoing_edges(nid) if e.target in leftover)
    queue = deque(nid for nid, deg in outdegree.items() if deg == 0)
    while queue:
        nid = queue.popleft()
        leftover.discard(nid)
        for edge in flow.incoming_edges(nid):
            if edge.source in outdegree and edge.source in leftover:
                outdegree[edge.source] -= 1
                if outdegree[edge.source] == 0:
                    queue.append(edge.source)
    return leftover


def unconditionally_reachable(flow: IRFlow) -> set[str]:
    """Nodes every run activates: reachable from inputs without taking a logic branch."""
    seen: set[str] = set()
    queue = deque(flow.input_nodes())
    while queue:
        nid = queue.popleft()
        if nid in seen:
            continue
        seen.add(nid)
        if flow.nodes[nid].type == LOGIC:
            continue
        for edge in flow.outgoing_edges(nid):
            queue.append(edge.target)
    return seen


def ensure_valid(flow: IRFlow) -> None:
    """Raise MalformedGraphError / CyclicGraphError if *flow* cannot run.

    Cycles that are only entered through a logic branch are left to the
    scheduler, since pruning the other branch may break them.
    """
    errors = validate_flow(flow)
    if errors:
        raise MalformedGraphError("; ".join(errors), errors=errors)

    blocking = sorted(find_cycle_nodes(flow) & unconditionally_reachable(flow))
    if blocking:
        raise CyclicGraphError(
            f"Flow contains a cycle through {', '.join(repr(n) for n in blocking)}.",
            cycle_nodes=blocking,
        )

    unreachable = flow.unreachable_nodes()
    if unreachable:
        logger.warning("Flow has nodes unreachable from any input (never executed): %s", unreachable)
