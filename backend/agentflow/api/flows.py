"""Inline flow API router — execute or validate a graph sent in the request."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body

from agentflow.compiler.parser import parse_flow
from agentflow.compiler.validator import ensure_valid
from agentflow.runtime.errors import FlowError
from agentflow.runtime.scheduler import WorkListScheduler
from agentflow.schemas.execution import CancelOut, ExecuteResponse, FlowExecuteRequest, FlowValidationOut
from agentflow.services import execution_service
from agentflow.utils import run_cancel

logger = logging.getLogger("agentflow.api.flows")

router = APIRouter()


@router.post("/execute", response_model=ExecuteResponse, response_model_exclude_none=True)
async def execute_inline_flow(body: FlowExecuteRequest):
    result = await execution_service.run_flow(
        body.graph,
        body.input,
        inputs=body.inputs,
        run_id=body.run_id,
        timeout=body.timeout,
    )
    return result.to_response()


@router.post("/validate", response_model=FlowValidationOut)
async def validate_inline_flow(graph: dict = Body(...)):
    """Static checks only; nothing is executed.

    ``execution_plan`` lists the nodes in the order they would run if every
    logic node took both branches.
    """
    try:
        flow = parse_flow(graph)
        ensure_valid(flow)
    except FlowError as exc:
        errors = getattr(exc, "errors", None) or [str(exc)]
        return FlowValidationOut(valid=False, errors=errors)

    plan: list[str] = []
    scheduler = WorkListScheduler(flow)
    while scheduler.has_ready():
        for nid in scheduler.pop_ready():
            plan.append(nid)
            scheduler.complete(nid, all_branches=True)
    return FlowValidationOut(valid=True, unreachable_nodes=flow.unreachable_nodes(), execution_plan=plan)


@router.post("/runs/{run_id}/cancel", response_model=CancelOut)
async def cancel_run(run_id: str):
    return CancelOut(run_id=run_id, cancelled=run_cancel.mark_cancelled(run_id))
