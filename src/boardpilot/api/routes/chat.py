"""
Chat API Route
==============

POST /api/v1/sessions/{session_id}/chat streams one conversation turn as
Server-Sent Events. Each event carries one StreamChunk as JSON.
"""

import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from boardpilot.api.routes.dependencies import get_workflow
from boardpilot.api.schemas.session_schemas import ChatRequest
from boardpilot.application.factory import Workflow
from boardpilot.core.domain.errors import SessionNotFoundError

router = APIRouter()


@router.post("/sessions/{session_id}/chat", summary="Chat (SSE)")
async def chat(
    session_id: str,
    request: ChatRequest,
    workflow: Workflow = Depends(get_workflow),
) -> StreamingResponse:
    if await workflow.sessions.get(session_id) is None:
        raise SessionNotFoundError(session_id)

    async def event_generator():
        async for chunk in workflow.agent.chat(session_id, request.message):
            yield f"data: {json.dumps(chunk.to_dict(), default=str)}\n\n"

    return StreamingResponse(event_generator(), media_type="text/event-stream")
