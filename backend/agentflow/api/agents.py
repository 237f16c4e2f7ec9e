"""Deployed agents API router."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from agentflow.schemas.execution import ExecuteRequest, ExecuteResponse
from agentflow.services import execution_service
from agentflow.services.execution_service import AgentInactiveError, AgentNotFoundError

logger = logging.getLogger("agentflow.api.agents")

router = APIRouter()


@router.post("/{deploy_id}/execute", response_model=ExecuteResponse, response_model_exclude_none=True)
async def execute_agent(deploy_id: str, body: ExecuteRequest):
    if body.input is None or body.input == "":
        raise HTTPException(status_code=400, detail="Input is required")
    try:
        return await execution_service.execute_flow(deploy_id, body.input)
    except AgentNotFoundError:
        raise HTTPException(status_code=404, detail="Agent not found")
    except AgentInactiveError:
        raise HTTPException(status_code=403, detail="Agent is not active")
