"""
Pydantic models for the session, workflow and chat HTTP routes.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    """Request to open (or resume) the session for a work item."""

    project_id: str = Field(..., min_length=1, description="Azure DevOps project ID")
    work_item_id: int = Field(..., gt=0, description="Work item the conversation is about")


class TranscriptMessageResponse(BaseModel):
    id: str
    role: str
    content: str
    created_at: str


class SessionResponse(BaseModel):
    id: str
    organization_url: str
    work_item_id: int
    project_id: str
    stage: str
    transcript: list[TranscriptMessageResponse] = Field(default_factory=list)
    working_data: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str
    version: int


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]


class SpecifyRequest(BaseModel):
    answers: Optional[dict[str, str]] = Field(
        default=None, description="Answers to clarifying questions keyed by topic"
    )


class PlanRequest(BaseModel):
    approach: Optional[str] = Field(default=None, description="Implementation approach (tdd, spike)")


class ExecuteRequest(BaseModel):
    dry_run: bool = False
    batch_size: Optional[int] = Field(default=None, gt=0, le=200)


class ToolInvocationRequest(BaseModel):
    input: dict[str, Any] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
