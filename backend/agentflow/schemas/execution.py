"""Pydantic models for flow execution requests and responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ExecuteRequest(BaseModel):
    input: Any | None = None


class FlowExecuteRequest(BaseModel):
    graph: dict[str, Any]
    input: Any | None = None
    inputs: dict[str, Any] | None = None  # per-input-node overrides keyed by node id
    run_id: str | None = None
    timeout: float | None = Field(default=None, ge=0)


class ExecuteResponse(BaseModel):
    success: bool
    output: Any | None = None
    error: str | None = None
    errorKind: str | None = None


class FlowValidationOut(BaseModel):
    valid: bool
    errors: list[str] = []
    unreachable_nodes: list[str] = []
    execution_plan: list[str] = []


class CancelOut(BaseModel):
    run_id: str
    cancelled: bool
