"""
Session API Routes
==================

Endpoints:
- POST /api/v1/sessions - Open (or resume) the session for a work item
- GET /api/v1/sessions - List live sessions
- GET /api/v1/sessions/{session_id} - Get session by ID
- GET /api/v1/sessions/by-work-item/{work_item_id} - Get session by work item
- DELETE /api/v1/sessions/{session_id} - Delete session
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response

from boardpilot.api.routes.dependencies import get_workflow
from boardpilot.api.schemas.session_schemas import (
    CreateSessionRequest,
    SessionListResponse,
    SessionResponse,
)
from boardpilot.application.factory import Workflow
from boardpilot.core.domain.errors import SessionNotFoundError
from boardpilot.core.domain.models import SessionKey

router = APIRouter()


@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open session",
    description="Return the live session for the work item or create one, loading its context",
)
async def create_session(
    request: CreateSessionRequest, workflow: Workflow = Depends(get_workflow)
) -> SessionResponse:
    key = SessionKey(workflow.organization_url, request.work_item_id)
    session = await workflow.sessions.create(key, request.project_id)
    return SessionResponse(**session.to_dict())


@router.get("/sessions", response_model=SessionListResponse, summary="List sessions")
async def list_sessions(workflow: Workflow = Depends(get_workflow)) -> SessionListResponse:
    sessions = await workflow.sessions.list_sessions()
    return SessionListResponse(sessions=[SessionResponse(**s.to_dict()) for s in sessions])


@router.get(
    "/sessions/by-work-item/{work_item_id}",
    response_model=SessionResponse,
    summary="Get session by work item",
)
async def get_session_by_work_item(
    work_item_id: int, workflow: Workflow = Depends(get_workflow)
) -> SessionResponse:
    session = await workflow.sessions.get_by_key(
        SessionKey(workflow.organization_url, work_item_id)
    )
    if session is None:
        raise SessionNotFoundError(f"for work item {work_item_id}")
    return SessionResponse(**session.to_dict())


@router.get("/sessions/{session_id}", response_model=SessionResponse, summary="Get session")
async def get_session(session_id: str, workflow: Workflow = Depends(get_workflow)) -> SessionResponse:
    session = await workflow.sessions.get(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return SessionResponse(**session.to_dict())


@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete session",
)
async def delete_session(session_id: str, workflow: Workflow = Depends(get_workflow)) -> Response:
    if await workflow.sessions.get(session_id) is None:
        raise SessionNotFoundError(session_id)
    await workflow.sessions.delete(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
