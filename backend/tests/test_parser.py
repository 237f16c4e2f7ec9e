"""Tests for the flow parser — builder JSON → IR."""

from __future__ import annotations

import json

import pytest

from agentflow.compiler.ir import (
    API_CALL,
    INPUT,
    LOGIC,
    OUTPUT,
    TEXT_GENERATION,
    IRApiCallPayload,
    IRInputPayload,
    IRLogicPayload,
    IROutputPayload,
    IRTextGenerationPayload,
)
from agentflow.compiler.parser import parse_flow
from agentflow.runtime.errors import ErrorKind, MalformedGraphError
from conftest import edge, node


class TestParseNodeTypes:
    """Builder type names resolve to canonical kinds and typed payloads."""

    def test_test_agent_flow(self, test_agent_flow):
        flow = parse_flow(test_agent_flow)
        assert set(flow.nodes) == {"input-1", "gpt-1", "output-1"}
        assert flow.nodes["input-1"].type == INPUT
        assert flow.nodes["gpt-1"].type == TEXT_GENERATION
        assert flow.nodes["output-1"].type == OUTPUT
        assert flow.nodes["gpt-1"].ui_type == "gptNode"

    def test_input_payload(self, test_agent_flow):
        payload = parse_flow(test_agent_flow).nodes["input-1"].payload
        assert isinstance(payload, IRInputPayload)
        assert payload.required is True
        assert payload.placeholder == "Ask me anything"
        assert payload.source_type == "text"

    def test_input_aliases(self):
        doc = {
            "nodes": [
                node("f", "fileInputNode"),
                node("i", "imageInputNode"),
                node("w", "webhookInputNode"),
            ],
            "edges": [],
        }
        flow = parse_flow(doc)
        assert {n.type for n in flow.nodes.values()} == {INPUT}
        assert flow.nodes["w"].payload.source_type == "webhook"

    def test_gpt_payload_defaults(self):
        flow = parse_flow({"nodes": [node("g", "gptNode")], "edges": []})
        payload = flow.nodes["g"].payload
        assert isinstance(payload, IRTextGenerationPayload)
        assert payload.provider == "openai"
        assert payload.model == "gpt-4o"
        assert payload.system_prompt == "You are a helpful assistant."
        assert payload.temperature == 0.7
        assert payload.max_tokens == 1000

    def test_ollama_and_huggingface_defaults(self):
        flow = parse_flow({
            "nodes": [
                node("o", "ollamaNode", endpoint="http://gpu-box:11434"),
                node("h", "huggingFaceNode"),
            ],
            "edges": [],
        })
        assert flow.nodes["o"].payload.provider == "ollama"
        assert flow.nodes["o"].payload.model == "llama2"
        assert flow.nodes["o"].payload.endpoint == "http://gpu-box:11434"
        assert flow.nodes["h"].payload.provider == "huggingface"
        assert flow.nodes["h"].payload.model == "microsoft/DialoGPT-medium"

    def test_canonical_kind_names_accepted(self):
        flow = parse_flow({
            "nodes": [
                node("in", "input"),
                node("gen", "text-generation", provider="ollama"),
                node("out", "output"),
            ],
            "edges": [],
        })
        assert flow.nodes["gen"].payload.provider == "ollama"
        assert flow.nodes["gen"].ui_type is None

    def test_logic_default_condition(self):
        payload = parse_flow({"nodes": [node("l", "logicNode")], "edges": []}).nodes["l"].payload
        assert isinstance(payload, IRLogicPayload)
        assert payload.condition == "input.length > 0"
        assert parse_flow({"nodes": [node("l", "logicNode")], "edges": []}).nodes["l"].type == LOGIC

    def test_api_headers_json_string(self):
        flow = parse_flow({
            "nodes": [node("a", "apiNode", endpoint="https://api.example.com/x", method="post",
                           headers='{"X-Key": "abc"}')],
            "edges": [],
        })
        payload = flow.nodes["a"].payload
        assert isinstance(payload, IRApiCallPayload)
        assert flow.nodes["a"].type == API_CALL
        assert payload.method == "POST"
        assert payload.headers == {"X-Key": "abc"}

    def test_output_aliases(self):
        flow = parse_flow({
            "nodes": [node("e", "emailNode"), node("n", "notificationNode"), node("img", "imageOutputNode")],
            "edges": [],
        })
        assert all(n.type == OUTPUT for n in flow.nodes.values())
        assert flow.nodes["e"].payload.channel == "email"
        assert isinstance(flow.nodes["n"].payload, IROutputPayload)
        assert flow.nodes["n"].payload.format == "markdown"

    def test_accepts_json_string(self, direct_flow):
        flow = parse_flow(json.dumps(direct_flow))
        assert flow.input_nodes() == ["input-1"]
        assert flow.output_nodes() == ["output-1"]


class TestParseEdges:
    def test_handles_preserved(self, branching_flow):
        flow = parse_flow(branching_flow)
        handles = {e.edge_id: e.source_handle for e in flow.edges}
        assert handles["e-logic-1-gpt-1"] == "true"
        assert handles["e-logic-1-out-b"] == "false"

    def test_default_target_handle(self, direct_flow):
        flow = parse_flow(direct_flow)
        assert flow.edges[0].handle == "input"

    def test_neighbors_ordered_by_target(self):
        flow = parse_flow({
            "nodes": [node("in", "inputNode"), node("z", "outputNode"), node("b", "outputNode"), node("m", "outputNode")],
            "edges": [edge("in", "z"), edge("in", "b"), edge("in", "m")],
        })
        assert [n.node_id for _, n in flow.neighbors("in")] == ["b", "m", "z"]

    def test_missing_edge_id_generated(self):
        flow = parse_flow({
            "nodes": [node("in", "inputNode"), node("out", "outputNode")],
            "edges": [{"source": "in", "target": "out"}],
        })
        assert flow.edges[0].edge_id


class TestParseInvalid:
    """Config problems are reported at load time as MalformedGraph."""

    def test_unknown_type(self):
        with pytest.raises(MalformedGraphError) as exc_info:
            parse_flow({"nodes": [node("x", "teleportNode")], "edges": []})
        assert exc_info.value.kind == ErrorKind.MALFORMED_GRAPH
        assert "teleportNode" in str(exc_info.value)

    def test_duplicate_node_ids(self):
        with pytest.raises(MalformedGraphError, match="Duplicate node id 'a'"):
            parse_flow({"nodes": [node("a", "inputNode"), node("a", "outputNode")], "edges": []})

    def test_temperature_out_of_range(self):
        with pytest.raises(MalformedGraphError, match="temperature"):
            parse_flow({"nodes": [node("g", "gptNode", temperature=1.5)], "edges": []})

    def test_max_tokens_not_positive(self):
        with pytest.raises(MalformedGraphError, match="maxTokens"):
            parse_flow({"nodes": [node("g", "gptNode", maxTokens=0)], "edges": []})

    def test_api_missing_endpoint(self):
        with pytest.raises(MalformedGraphError, match="endpoint"):
            parse_flow({"nodes": [node("a", "apiNode")], "edges": []})

    def test_api_bad_headers(self):
        with pytest.raises(MalformedGraphError, match="headers"):
            parse_flow({"nodes": [node("a", "apiNode", endpoint="http://x", headers="{not json")], "edges": []})

    def test_bad_output_format(self):
        with pytest.raises(MalformedGraphError, match="format"):
            parse_flow({"nodes": [node("o", "outputNode", format="pdf")], "edges": []})

    def test_empty_condition(self):
        with pytest.raises(MalformedGraphError, match="condition"):
            parse_flow({"nodes": [node("l", "logicNode", condition="  ")], "edges": []})

    def test_not_json(self):
        with pytest.raises(MalformedGraphError, match="not valid JSON"):
            parse_flow("{nodes: ")

    def test_nodes_not_list(self):
        with pytest.raises(MalformedGraphError):
            parse_flow({"nodes": {"a": {}}, "edges": []})

    def test_collects_all_errors(self):
        with pytest.raises(MalformedGraphError) as exc_info:
            parse_flow({"nodes": [node("x", "weird"), node("g", "gptNode", temperature=9)], "edges": []})
        assert len(exc_info.value.errors) == 2
