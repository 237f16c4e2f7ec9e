"""Shared fixtures for backend tests."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from agentflow.connectors.api_client import ApiClient
from agentflow.connectors.llm_client import LLMCallError, reset_llm_circuit_breaker
from agentflow.connectors.providers import GenerationRequest, ProviderRegistry
from agentflow.runtime.coordinator import RunCoordinator
from agentflow.utils.metrics import metrics


# ── Stub collaborators ──────────────────────────────────────────


class StubProvider:
    """Text-generation provider that answers from a fixed reply or a callable."""

    def __init__(self, reply: Any = "stub reply", delay: float = 0.0, error: Exception | None = None):
        self.reply = reply
        self.delay = delay
        self.error = error
        self.requests: list[GenerationRequest] = []
        self.active = 0
        self.max_active = 0

    async def generate(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if callable(self.reply):
                return self.reply(request)
            return self.reply
        finally:
            self.active -= 1


def failing_provider(message: str = "HTTP 500") -> StubProvider:
    return StubProvider(error=LLMCallError(message))


def mock_api_client(handler) -> ApiClient:
    return ApiClient(timeout=5.0, transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def _reset_process_state():
    metrics.reset()
    reset_llm_circuit_breaker()
    yield
    metrics.reset()
    reset_llm_circuit_breaker()


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider(reply="Why did the chicken cross the road? To get to the other side!")


@pytest.fixture
def registry(stub_provider) -> ProviderRegistry:
    return ProviderRegistry({"openai": stub_provider, "ollama": stub_provider, "huggingface": stub_provider})


@pytest.fixture
def api_calls() -> list[httpx.Request]:
    return []


@pytest.fixture
def api_client(api_calls) -> ApiClient:
    def handler(request: httpx.Request) -> httpx.Response:
        api_calls.append(request)
        return httpx.Response(200, json={"echo": request.content.decode() or None, "path": request.url.path})

    return mock_api_client(handler)


@pytest.fixture
def coordinator(registry, api_client) -> RunCoordinator:
    return RunCoordinator(providers=registry, api_client=api_client, max_concurrency=8, timeout=5.0)


# ── Flow fixtures ───────────────────────────────────────────────


def node(nid: str, ntype: str, **data) -> dict:
    return {"id": nid, "type": ntype, "position": {"x": 0, "y": 0}, "data": data}


def edge(source: str, target: str, source_handle: str | None = None, eid: str | None = None, **extra) -> dict:
    e = {"id": eid or f"e-{source}-{target}", "source": source, "target": target}
    if source_handle is not None:
        e["sourceHandle"] = source_handle
    e.update(extra)
    return e


@pytest.fixture
def direct_flow() -> dict:
    """input → output."""
    return {
        "nodes": [
            node("input-1", "inputNode", label="Question"),
            node("output-1", "outputNode", format="plaintext"),
        ],
        "edges": [edge("input-1", "output-1")],
        "viewport": {"x": 0, "y": 0, "zoom": 1},
    }


@pytest.fixture
def test_agent_flow() -> dict:
    """The builder's default test agent: input → GPT → output."""
    return {
        "nodes": [
            node("input-1", "inputNode", label="User Input", placeholder="Ask me anything", required=True),
            node(
                "gpt-1",
                "gptNode",
                label="GPT-4o",
                model="gpt-4o",
                systemPrompt="You are a joke-telling assistant.",
                temperature=0.7,
                maxTokens=500,
            ),
            node("output-1", "outputNode", label="Response", format="markdown"),
        ],
        "edges": [edge("input-1", "gpt-1"), edge("gpt-1", "output-1")],
    }


@pytest.fixture
def branching_flow() -> dict:
    """input → logic(input.length > 0) → true: gpt → out-a ; false: out-b."""
    return {
        "nodes": [
            node("input-1", "inputNode"),
            node("logic-1", "logicNode", condition="input.length > 0"),
            node("gpt-1", "gptNode"),
            node("out-a", "outputNode", format="plaintext"),
            node("out-b", "outputNode", format="plaintext"),
        ],
        "edges": [
            edge("input-1", "logic-1"),
            edge("logic-1", "gpt-1", "true"),
            edge("gpt-1", "out-a"),
            edge("logic-1", "out-b", "false"),
        ],
    }


@pytest.fixture
def cyclic_flow() -> dict:
    """input → a → b → a (unbroken cycle) with an output after b."""
    return {
        "nodes": [
            node("input-1", "inputNode"),
            node("a", "gptNode"),
            node("b", "gptNode"),
            node("output-1", "outputNode"),
        ],
        "edges": [
            edge("input-1", "a"),
            edge("a", "b"),
            edge("b", "a"),
            edge("b", "output-1"),
        ],
    }


@pytest.fixture
def fan_out_flow() -> dict:
    """input → (gpt-a, gpt-b) → output: two independent siblings merge."""
    return {
        "nodes": [
            node("input-1", "inputNode"),
            node("gpt-a", "gptNode"),
            node("gpt-b", "ollamaNode"),
            node("output-1", "outputNode", format="plaintext"),
        ],
        "edges": [
            edge("input-1", "gpt-a"),
            edge("input-1", "gpt-b"),
            edge("gpt-a", "output-1"),
            edge("gpt-b", "output-1"),
        ],
    }
