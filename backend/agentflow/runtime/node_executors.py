"""Node executor functions — one per node kind.

Every executor has the signature ``async (node, inputs, services) -> NodeResult``
and raises a :class:`~agentflow.runtime.errors.FlowError` subclass on failure.
Connector errors are translated here, at the executor boundary.
"""

from __future__ import annotations

import html
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from agentflow.compiler.ir import (
    API_CALL,
    BRANCH_FALSE,
    BRANCH_TRUE,
    INPUT,
    LOGIC,
    OUTPUT,
    TEXT_GENERATION,
    IRApiCallPayload,
    IRInputPayload,
    IRLogicPayload,
    IRNode,
    IROutputPayload,
    IRTextGenerationPayload,
)
from agentflow.connectors.api_client import ApiCallError, ApiClient
from agentflow.connectors.llm_client import LLMCallError
from agentflow.connectors.providers import GenerationRequest, ProviderRegistry
from agentflow.runtime.errors import (
    ConditionEvalError,
    ExternalCallError,
    MissingRequiredInputError,
    ProviderError,
)
from agentflow.templating.engine import render_template_str, render_template_value, stringify
from agentflow.templating.expressions import ExpressionError, evaluate_condition

logger = logging.getLogger("agentflow.runtime")

_BODYLESS_METHODS = {"GET", "HEAD"}
_DEFAULT_API_BODY = {"query": "{{input}}"}


@dataclass
class NodeInputs:
    """Upstream values delivered to a node along fired edges.

    ``by_handle`` keeps values grouped by target handle, in
    (source id, edge id) order; ``by_node`` maps source node id → value.
    """

    by_handle: dict[str, list[Any]] = field(default_factory=dict)
    by_node: dict[str, Any] = field(default_factory=dict)

    def add(self, handle: str, source_id: str, value: Any) -> None:
        self.by_handle.setdefault(handle, []).append(value)
        self.by_node[source_id] = value

    def values(self) -> list[Any]:
        return [v for handle in self.by_handle for v in self.by_handle[handle]]

    def text(self) -> str:
        """Combined input: upstream values as text, joined by newlines."""
        return "\n".join(stringify(v) for v in self.values())

    def value(self) -> Any:
        """The single upstream value unchanged, or the combined text for fan-in."""
        values = self.values()
        if len(values) == 1:
            return values[0]
        return self.text()

    def template_context(self) -> dict[str, Any]:
        return {
            "input": self.text(),
            "inputs": {h: "\n".join(stringify(v) for v in vs) for h, vs in self.by_handle.items()},
            "nodes": dict(self.by_node),
        }


@dataclass
class NodeResult:
    value: Any
    branch: str | None = None


@dataclass
class ExecutorServices:
    """Collaborators and run-level inputs available to every executor."""

    providers: ProviderRegistry
    api_client: ApiClient
    run_id: str = ""
    initial_input: Any = None
    node_inputs: dict[str, Any] = field(default_factory=dict)


# ── Executors ───────────────────────────────────────────────────


async def execute_input(node: IRNode, inputs: NodeInputs, services: ExecutorServices) -> NodeResult:
    payload: IRInputPayload = node.payload
    if node.node_id in services.node_inputs:
        value = services.node_inputs[node.node_id]
    else:
        value = services.initial_input
    if value is None:
        value = payload.default_value
    if value is None:
        if payload.required:
            label = payload.label or node.node_id
            raise MissingRequiredInputError(f"Required input '{label}' was not provided.", node.node_id)
        value = ""
    return NodeResult(value=value)


async def execute_text_generation(node: IRNode, inputs: NodeInputs, services: ExecutorServices) -> NodeResult:
    payload: IRTextGenerationPayload = node.payload
    provider = services.providers.get(payload.provider)
    if provider is None:
        raise ProviderError(f"No provider registered for '{payload.provider}'.", node.node_id)

    request = GenerationRequest(
        model=payload.model,
        prompt=inputs.text(),
        system_prompt=payload.system_prompt,
        temperature=payload.temperature,
        max_tokens=payload.max_tokens,
        endpoint=payload.endpoint,
    )
    logger.info("Text generation: node=%s provider=%s model=%s", node.node_id, payload.provider, payload.model)
    try:
        text = await provider.generate(request)
    except LLMCallError as exc:
        raise ProviderError(f"{payload.provider} call failed: {exc}", node.node_id) from exc
    except httpx.HTTPError as exc:
        raise ProviderError(f"{payload.provider} call failed: {exc}", node.node_id) from exc
    except Exception as exc:
        logger.exception("Provider %s raised unexpectedly on node %s", payload.provider, node.node_id)
        raise ProviderError(f"{payload.provider} call failed: {exc}", node.node_id) from exc
    return NodeResult(value=text if text is not None else "")


async def execute_logic(node: IRNode, inputs: NodeInputs, services: ExecutorServices) -> NodeResult:
    payload: IRLogicPayload = node.payload
    try:
        outcome = evaluate_condition(payload.condition, inputs.template_context())
    except ExpressionError as exc:
        raise ConditionEvalError(f"Cannot evaluate '{payload.condition}': {exc}", node.node_id) from exc
    branch = BRANCH_TRUE if outcome else BRANCH_FALSE
    logger.info("Logic node %s: '%s' → %s", node.node_id, payload.condition, branch)
    return NodeResult(value=inputs.value(), branch=branch)


async def execute_api_call(node: IRNode, inputs: NodeInputs, services: ExecutorServices) -> NodeResult:
    payload: IRApiCallPayload = node.payload
    ctx = inputs.template_context()

    url = render_template_str(payload.endpoint, ctx)
    headers = {k: render_template_str(v, ctx) for k, v in payload.headers.items()}
    body = None
    if payload.method not in _BODYLESS_METHODS:
        body = _render_body(_DEFAULT_API_BODY if payload.body is None else payload.body, ctx)

    correlation = {"X-Run-ID": services.run_id, "X-Node-ID": node.node_id} if services.run_id else None
    try:
        result = await services.api_client.request(payload.method, url, headers=headers, body=body, correlation=correlation)
    except ApiCallError as exc:
        raise ExternalCallError(str(exc), node.node_id, status_code=exc.status_code) from exc
    except Exception as exc:
        logger.exception("API call on node %s raised unexpectedly", node.node_id)
        raise ExternalCallError(f"{payload.method} {url} failed: {exc}", node.node_id) from exc
    return NodeResult(value=result)


async def execute_output(node: IRNode, inputs: NodeInputs, services: ExecutorServices) -> NodeResult:
    payload: IROutputPayload = node.payload
    return NodeResult(value=format_output(inputs.text(), payload.format))


_NODE_EXECUTORS: dict[str, Callable[[IRNode, NodeInputs, ExecutorServices], Awaitable[NodeResult]]] = {
    INPUT: execute_input,
    TEXT_GENERATION: execute_text_generation,
    LOGIC: execute_logic,
    API_CALL: execute_api_call,
    OUTPUT: execute_output,
}


async def execute_node(node: IRNode, inputs: NodeInputs, services: ExecutorServices) -> NodeResult:
    executor = _NODE_EXECUTORS.get(node.type)
    if executor is None:
        raise RuntimeError(f"No executor for node type '{node.type}'")
    return await executor(node, inputs, services)


# ── Helpers ─────────────────────────────────────────────────────


def _render_body(template: Any, ctx: dict[str, Any]) -> Any:
    # A JSON document in a string is rendered structurally so substituted
    # values cannot break its quoting.
    if isinstance(template, str):
        try:
            parsed = json.loads(template)
        except ValueError:
            return render_template_str(template, ctx)
        if isinstance(parsed, (dict, list)):
            return render_template_value(parsed, ctx)
        return render_template_str(template, ctx)
    return render_template_value(template, ctx)


_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")


def format_output(text: str, fmt: str) -> str:
    if fmt == "plaintext":
        return text.strip()
    if fmt == "html":
        paragraphs = [p for p in _PARAGRAPH_SPLIT_RE.split(text.strip()) if p.strip()]
        return "".join(
            "<p>" + "<br>".join(html.escape(line) for line in p.strip().split("\n")) + "</p>"
            for p in paragraphs
        )
    return text
