"""Flow JSON parser — converts builder flow data into IR structures."""

from __future__ import annotations

import json
from typing import Any

from agentflow.compiler.ir import (
    API_CALL,
    INPUT,
    LOGIC,
    NODE_KINDS,
    OUTPUT,
    TEXT_GENERATION,
    IRApiCallPayload,
    IREdge,
    IRFlow,
    IRInputPayload,
    IRLogicPayload,
    IRNode,
    IROutputPayload,
    IRTextGenerationPayload,
)
from agentflow.runtime.errors import MalformedGraphError

# Builder node type → (kind, variant).  For text-generation the variant is the
# provider; for input/output it is the source/delivery channel.
TYPE_ALIASES: dict[str, tuple[str, str | None]] = {
    "inputNode": (INPUT, "text"),
    "fileInputNode": (INPUT, "file"),
    "imageInputNode": (INPUT, "image"),
    "webhookInputNode": (INPUT, "webhook"),
    "gptNode": (TEXT_GENERATION, "openai"),
    "ollamaNode": (TEXT_GENERATION, "ollama"),
    "huggingFaceNode": (TEXT_GENERATION, "huggingface"),
    "logicNode": (LOGIC, None),
    "apiNode": (API_CALL, None),
    "outputNode": (OUTPUT, "text"),
    "imageOutputNode": (OUTPUT, "image"),
    "emailNode": (OUTPUT, "email"),
    "notificationNode": (OUTPUT, "notification"),
}

PROVIDER_DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "ollama": "llama2",
    "huggingface": "microsoft/DialoGPT-medium",
}

HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"}
OUTPUT_FORMATS = {"plaintext", "markdown", "html"}


def parse_flow(document: dict[str, Any] | str, flow_id: str | None = None, name: str | None = None) -> IRFlow:
    """Parse builder flow data (``{nodes, edges, viewport?}``) into an IRFlow.

    Accepts the stored JSON string form as well as an already-decoded dict.
    Raises :class:`MalformedGraphError` listing every problem found.
    """
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as exc:
            raise MalformedGraphError(f"Flow data is not valid JSON: {exc}") from exc

    if not isinstance(document, dict):
        raise MalformedGraphError("Flow data must be an object with 'nodes' and 'edges'.")

    nodes_raw = document.get("nodes", [])
    edges_raw = document.get("edges", [])
    if not isinstance(nodes_raw, list) or not isinstance(edges_raw, list):
        raise MalformedGraphError("'nodes' and 'edges' must both be lists.")

    errors: list[str] = []
    nodes: dict[str, IRNode] = {}
    for index, ndata in enumerate(nodes_raw):
        node = _parse_node(index, ndata, errors)
        if node is None:
            continue
        if node.node_id in nodes:
            errors.append(f"Duplicate node id '{node.node_id}'.")
            continue
        nodes[node.node_id] = node

    edges: list[IREdge] = []
    for index, edata in enumerate(edges_raw):
        edge = _parse_edge(index, edata, errors)
        if edge is not None:
            edges.append(edge)

    if errors:
        raise MalformedGraphError("; ".join(errors), errors=errors)

    return IRFlow(nodes=nodes, edges=edges, flow_id=flow_id, name=name)


# ── Internal helpers ────────────────────────────────────────────


def _parse_node(index: int, d: Any, errors: list[str]) -> IRNode | None:
    if not isinstance(d, dict):
        errors.append(f"Node #{index} is not an object.")
        return None
    nid = d.get("id")
    if not isinstance(nid, str) or not nid:
        errors.append(f"Node #{index} has no id.")
        return None

    ui_type = d.get("type")
    if ui_type in TYPE_ALIASES:
        kind, variant = TYPE_ALIASES[ui_type]
    elif ui_type in NODE_KINDS:
        kind, variant = ui_type, None
    else:
        errors.append(f"Node '{nid}': unknown node type '{ui_type}'.")
        return None

    data = d.get("data") or {}
    if not isinstance(data, dict):
        errors.append(f"Node '{nid}': data must be an object.")
        return None

    parsers = {
        INPUT: _parse_input,
        TEXT_GENERATION: _parse_text_generation,
        LOGIC: _parse_logic,
        API_CALL: _parse_api_call,
        OUTPUT: _parse_output,
    }
    node_errors: list[str] = []
    payload = parsers[kind](data, variant, node_errors)
    if node_errors:
        errors.extend(f"Node '{nid}': {e}" for e in node_errors)
        return None

    return IRNode(
        node_id=nid,
        type=kind,
        ui_type=ui_type if ui_type in TYPE_ALIASES else None,
        label=data.get("label"),
        payload=payload,
    )


def _parse_edge(index: int, d: Any, errors: list[str]) -> IREdge | None:
    if not isinstance(d, dict):
        errors.append(f"Edge #{index} is not an object.")
        return None
    source, target = d.get("source"), d.get("target")
    if not isinstance(source, str) or not isinstance(target, str):
        errors.append(f"Edge #{index} must have string 'source' and 'target'.")
        return None
    return IREdge(
        edge_id=str(d.get("id") or f"e-{source}-{target}-{index}"),
        source=source,
        target=target,
        source_handle=d.get("sourceHandle"),
        target_handle=d.get("targetHandle"),
    )


def _parse_input(d: dict, variant: str | None, errors: list[str]) -> IRInputPayload:
    return IRInputPayload(
        required=bool(d.get("required", False)),
        default_value=d.get("defaultValue"),
        label=d.get("label"),
        placeholder=d.get("placeholder"),
        description=d.get("description"),
        source_type=variant or d.get("sourceType", "text"),
    )


def _parse_text_generation(d: dict, variant: str | None, errors: list[str]) -> IRTextGenerationPayload | None:
    provider = variant or d.get("provider", "openai")
    if provider not in PROVIDER_DEFAULT_MODELS:
        errors.append(f"unknown provider '{provider}'.")
        return None

    temperature = _as_number(d.get("temperature", 0.7), "temperature", float, errors)
    if temperature is not None and not 0.0 <= temperature <= 1.0:
        errors.append(f"temperature must be between 0.0 and 1.0, got {temperature}.")
    max_tokens = _as_number(d.get("maxTokens", 1000), "maxTokens", int, errors)
    if max_tokens is not None and max_tokens <= 0:
        errors.append(f"maxTokens must be positive, got {max_tokens}.")
    if errors:
        return None

    return IRTextGenerationPayload(
        provider=provider,
        model=d.get("model") or PROVIDER_DEFAULT_MODELS[provider],
        system_prompt=d.get("systemPrompt") or "You are a helpful assistant.",
        temperature=temperature,
        max_tokens=max_tokens,
        endpoint=d.get("endpoint"),
    )


def _parse_logic(d: dict, variant: str | None, errors: list[str]) -> IRLogicPayload | None:
    condition = d.get("condition", "input.length > 0")
    if not isinstance(condition, str) or not condition.strip():
        errors.append("logic condition must be a non-empty string.")
        return None
    return IRLogicPayload(condition=condition.strip())


def _parse_api_call(d: dict, variant: str | None, errors: list[str]) -> IRApiCallPayload | None:
    endpoint = d.get("endpoint")
    if not isinstance(endpoint, str) or not endpoint.strip():
        errors.append("api-call endpoint is required.")
    method = str(d.get("method") or "GET").upper()
    if method not in HTTP_METHODS:
        errors.append(f"unsupported HTTP method '{method}'.")

    headers_raw = d.get("headers") or {}
    headers: dict[str, str] = {}
    if isinstance(headers_raw, str):
        try:
            headers_raw = json.loads(headers_raw) if headers_raw.strip() else {}
        except json.JSONDecodeError:
            errors.append("headers is not valid JSON.")
            headers_raw = {}
    if isinstance(headers_raw, dict):
        headers = {str(k): str(v) for k, v in headers_raw.items()}
    else:
        errors.append("headers must be a JSON object.")

    if errors:
        return None
    return IRApiCallPayload(endpoint=endpoint.strip(), method=method, headers=headers, body=d.get("body"))


def _parse_output(d: dict, variant: str | None, errors: list[str]) -> IROutputPayload | None:
    fmt = d.get("format") or "markdown"
    if fmt not in OUTPUT_FORMATS:
        errors.append(f"unsupported output format '{fmt}'.")
        return None
    return IROutputPayload(format=fmt, channel=variant or "text")


def _as_number(value: Any, name: str, cast: type, errors: list[str]) -> Any:
    if isinstance(value, bool):
        errors.append(f"{name} must be a number.")
        return None
    try:
        number = cast(value)
    except (TypeError, ValueError):
        errors.append(f"{name} must be a number, got {value!r}.")
        return None
    if cast is int and isinstance(value, float) and value != number:
        errors.append(f"{name} must be an integer, got {value!r}.")
        return None
    return number
