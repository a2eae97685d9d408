"""
Workflow API Routes
===================

Runs the specify, plan and execute stages against a session's work item,
and invokes registry tools directly.

Endpoints:
- POST /api/v1/sessions/{session_id}/specify
- POST /api/v1/sessions/{session_id}/plan
- POST /api/v1/sessions/{session_id}/execute
- GET /api/v1/tools - Tool definitions
- POST /api/v1/tools/{tool_name} - Invoke a tool
"""

from typing import Any

from fastapi import APIRouter, Depends

from boardpilot.api.routes.dependencies import get_workflow
from boardpilot.api.schemas.session_schemas import (
    ExecuteRequest,
    PlanRequest,
    SpecifyRequest,
    ToolInvocationRequest,
)
from boardpilot.application.factory import Workflow
from boardpilot.core.domain.errors import SessionNotFoundError
from boardpilot.core.domain.models import Session

router = APIRouter()


async def _require_session(workflow: Workflow, session_id: str) -> Session:
    session = await workflow.sessions.get(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


@router.post("/sessions/{session_id}/specify", summary="Specify work item")
async def specify(
    session_id: str,
    request: SpecifyRequest,
    workflow: Workflow = Depends(get_workflow),
) -> dict[str, Any]:
    session = await _require_session(workflow, session_id)
    result = await workflow.specify.specify(
        session_id, session.work_item_id, session.project_id, request.answers
    )
    return result.to_dict()


@router.post("/sessions/{session_id}/plan", summary="Create execution plan")
async def plan(
    session_id: str,
    request: PlanRequest,
    workflow: Workflow = Depends(get_workflow),
) -> dict[str, Any]:
    session = await _require_session(workflow, session_id)
    execution_plan = await workflow.planner.plan(
        session_id, session.work_item_id, session.project_id, request.approach
    )
    return execution_plan.to_dict()


@router.post("/sessions/{session_id}/execute", summary="Execute stored plan")
async def execute(
    session_id: str,
    request: ExecuteRequest,
    workflow: Workflow = Depends(get_workflow),
) -> dict[str, Any]:
    session = await _require_session(workflow, session_id)
    result = await workflow.executor.execute(
        session_id, session.project_id, dry_run=request.dry_run, batch_size=request.batch_size
    )
    return result.to_dict()


@router.get("/tools", summary="List tool definitions")
async def list_tools(workflow: Workflow = Depends(get_workflow)) -> list[dict[str, Any]]:
    return workflow.tools.get_tool_definitions()


@router.post("/tools/{tool_name}", summary="Invoke tool")
async def invoke_tool(
    tool_name: str,
    request: ToolInvocationRequest,
    workflow: Workflow = Depends(get_workflow),
) -> dict[str, Any]:
    return await workflow.tools.execute(tool_name, request.input)
