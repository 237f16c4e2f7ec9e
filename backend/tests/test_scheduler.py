"""Tests for the work-list scheduler — readiness, pruning and tie-breaks."""

from __future__ import annotations

import pytest

from agentflow.compiler.parser import parse_flow
from agentflow.runtime.errors import CyclicGraphError
from agentflow.runtime.scheduler import WorkListScheduler
from conftest import edge, node


def _drain(scheduler: WorkListScheduler, branches: dict[str, str] | None = None) -> list[list[str]]:
    branches = branches or {}
    waves = []
    while scheduler.has_ready():
        wave = scheduler.pop_ready()
        waves.append(wave)
        for nid in wave:
            scheduler.complete(nid, branches.get(nid))
    return waves


class TestReadiness:
    def test_linear_chain(self, test_agent_flow):
        scheduler = WorkListScheduler(parse_flow(test_agent_flow))
        assert _drain(scheduler) == [["input-1"], ["gpt-1"], ["output-1"]]
        scheduler.check_drained()

    def test_siblings_share_a_wave(self, fan_out_flow):
        scheduler = WorkListScheduler(parse_flow(fan_out_flow))
        assert _drain(scheduler) == [["input-1"], ["gpt-a", "gpt-b"], ["output-1"]]

    def test_ascending_id_tie_break(self):
        flow = parse_flow({
            "nodes": [node("in", "inputNode"), node("zeta", "gptNode"), node("alpha", "gptNode"), node("mid", "gptNode")],
            "edges": [edge("in", "zeta"), edge("in", "alpha"), edge("in", "mid")],
        })
        scheduler = WorkListScheduler(flow)
        scheduler.complete(scheduler.pop_ready()[0])
        assert scheduler.pop_ready() == ["alpha", "mid", "zeta"]

    def test_multiple_inputs_seeded(self):
        flow = parse_flow({
            "nodes": [node("in-b", "inputNode"), node("in-a", "inputNode"), node("out", "outputNode")],
            "edges": [edge("in-a", "out"), edge("in-b", "out")],
        })
        assert _drain(WorkListScheduler(flow)) == [["in-a", "in-b"], ["out"]]

    def test_merge_waits_for_all_active_predecessors(self):
        flow = parse_flow({
            "nodes": [node("in", "inputNode"), node("slow", "gptNode"), node("out", "outputNode")],
            "edges": [edge("in", "slow"), edge("in", "out"), edge("slow", "out")],
        })
        assert _drain(WorkListScheduler(flow)) == [["in"], ["slow"], ["out"]]

    def test_fired_incoming(self, fan_out_flow):
        scheduler = WorkListScheduler(parse_flow(fan_out_flow))
        _drain(scheduler)
        assert [e.source for e in scheduler.fired_incoming("output-1")] == ["gpt-a", "gpt-b"]

    def test_double_completion_rejected(self, direct_flow):
        scheduler = WorkListScheduler(parse_flow(direct_flow))
        scheduler.pop_ready()
        scheduler.complete("input-1")
        with pytest.raises(RuntimeError):
            scheduler.complete("input-1")


class TestBranchPruning:
    def test_true_branch(self, branching_flow):
        scheduler = WorkListScheduler(parse_flow(branching_flow))
        waves = _drain(scheduler, {"logic-1": "true"})
        assert waves == [["input-1"], ["logic-1"], ["gpt-1"], ["out-a"]]
        assert scheduler.dead == {"out-b"}

    def test_false_branch_prunes_subtree(self, branching_flow):
        scheduler = WorkListScheduler(parse_flow(branching_flow))
        waves = _drain(scheduler, {"logic-1": "false"})
        assert waves == [["input-1"], ["logic-1"], ["out-b"]]
        assert scheduler.dead == {"gpt-1", "out-a"}

    def test_merge_after_branch_runs_once(self):
        flow = parse_flow({
            "nodes": [
                node("in", "inputNode"), node("l", "logicNode"),
                node("yes", "gptNode"), node("no", "gptNode"), node("out", "outputNode"),
            ],
            "edges": [
                edge("in", "l"), edge("l", "yes", "true"), edge("l", "no", "false"),
                edge("yes", "out"), edge("no", "out"),
            ],
        })
        scheduler = WorkListScheduler(flow)
        waves = _drain(scheduler, {"l": "false"})
        assert waves == [["in"], ["l"], ["no"], ["out"]]
        assert [e.source for e in scheduler.fired_incoming("out")] == ["no"]

    def test_all_branches_dry_run(self, branching_flow):
        scheduler = WorkListScheduler(parse_flow(branching_flow))
        order = []
        while scheduler.has_ready():
            for nid in scheduler.pop_ready():
                order.append(nid)
                scheduler.complete(nid, all_branches=True)
        assert order == ["input-1", "logic-1", "gpt-1", "out-b", "out-a"]

    def test_output_is_terminal(self):
        flow = parse_flow({
            "nodes": [node("in", "inputNode"), node("out", "outputNode"), node("after", "gptNode")],
            "edges": [edge("in", "out"), edge("out", "after")],
        })
        scheduler = WorkListScheduler(flow)
        assert _drain(scheduler) == [["in"], ["out"]]
        assert "after" in scheduler.dead


class TestRuntimeCycles:
    def test_activated_cycle_detected(self):
        flow = parse_flow({
            "nodes": [
                node("in", "inputNode"), node("l", "logicNode"),
                node("x", "gptNode"), node("y", "gptNode"), node("out", "outputNode"),
            ],
            "edges": [
                edge("in", "l"), edge("l", "x", "true"), edge("x", "y"), edge("y", "x"),
                edge("l", "out", "false"),
            ],
        })
        scheduler = WorkListScheduler(flow)
        _drain(scheduler, {"l": "true"})
        with pytest.raises(CyclicGraphError) as exc_info:
            scheduler.check_drained()
        assert exc_info.value.cycle_nodes == ["x"]

    def test_cycle_broken_by_pruning(self):
        flow = parse_flow({
            "nodes": [
                node("in", "inputNode"), node("l", "logicNode"),
                node("x", "gptNode"), node("y", "gptNode"), node("out", "outputNode"),
            ],
            "edges": [
                edge("in", "l"), edge("l", "x", "true"), edge("x", "y"), edge("y", "x"),
                edge("l", "out", "false"),
            ],
        })
        scheduler = WorkListScheduler(flow)
        assert _drain(scheduler, {"l": "false"}) == [["in"], ["l"], ["out"]]
        scheduler.check_drained()

    def test_cycle_behind_pruned_branch_is_killed(self):
        flow = parse_flow({
            "nodes": [
                node("in", "inputNode"), node("l", "logicNode"),
                node("x", "gptNode"), node("y", "gptNode"), node("m", "gptNode"), node("out", "outputNode"),
            ],
            "edges": [
                edge("in", "l"), edge("l", "x", "true"), edge("x", "y"), edge("y", "x"),
                edge("y", "m"), edge("l", "m", "false"), edge("m", "out"),
            ],
        })
        scheduler = WorkListScheduler(flow)
        assert _drain(scheduler, {"l": "false"}) == [["in"], ["l"], ["m"], ["out"]]
        assert scheduler.dead == {"x", "y"}
        scheduler.check_drained()

    def test_live_cycle_is_not_killed(self):
        flow = parse_flow({
            "nodes": [
                node("in", "inputNode"), node("l", "logicNode"),
                node("x", "gptNode"), node("y", "gptNode"), node("m", "gptNode"), node("out", "outputNode"),
            ],
            "edges": [
                edge("in", "l"), edge("l", "x", "true"), edge("x", "y"), edge("y", "x"),
                edge("y", "m"), edge("l", "m", "false"), edge("m", "out"),
            ],
        })
        scheduler = WorkListScheduler(flow)
        assert _drain(scheduler, {"l": "true"}) == [["in"], ["l"]]
        assert scheduler.dead == set()
        with pytest.raises(CyclicGraphError) as exc_info:
            scheduler.check_drained()
        assert exc_info.value.cycle_nodes == ["x"]

    def test_orphan_source_is_killed(self):
        flow = parse_flow({
            "nodes": [node("in", "inputNode"), node("z", "gptNode"), node("m", "gptNode"), node("out", "outputNode")],
            "edges": [edge("in", "m"), edge("z", "m"), edge("m", "out")],
        })
        scheduler = WorkListScheduler(flow)
        assert _drain(scheduler) == [["in"], ["m"], ["out"]]
        assert "z" in scheduler.dead
        assert [e.source for e in scheduler.fired_incoming("m")] == ["in"]
        scheduler.check_drained()
