"""
Core Domain Models

This module defines the data models the workflow stages exchange: work
items as returned by the Boards API, the per-conversation Session, the
execution plan produced by planning and the result produced by execution.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# Work item field reference names
TITLE_FIELD = "System.Title"
DESCRIPTION_FIELD = "System.Description"
WORK_ITEM_TYPE_FIELD = "System.WorkItemType"
STATE_FIELD = "System.State"
ASSIGNED_TO_FIELD = "System.AssignedTo"
TAGS_FIELD = "System.Tags"
PRIORITY_FIELD = "Microsoft.VSTS.Common.Priority"
EFFORT_FIELD = "Microsoft.VSTS.Scheduling.Effort"
ACCEPTANCE_CRITERIA_FIELD = "Microsoft.VSTS.Common.AcceptanceCriteria"

# Session working-data keys
WORK_ITEM_KEY = "work_item"
RELATED_ITEMS_KEY = "related_items"
CHILD_ITEMS_KEY = "child_items"
SPECIFY_CONTEXT_KEY = "specify_context"
SPECIFY_STATE_KEY = "specify_state"
SPECIFICATION_KEY = "specification"
CLARIFYING_QUESTIONS_KEY = "clarifying_questions"
EXECUTION_PLAN_KEY = "execution_plan"
LAST_EXECUTION_RESULT_KEY = "last_execution_result"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WorkItem:
    """A work item as returned by the Boards API."""

    id: int
    fields: dict[str, Any] = field(default_factory=dict)
    relations: list[dict[str, Any]] = field(default_factory=list)
    url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkItem":
        return cls(
            id=int(data.get("id") or 0),
            fields=dict(data.get("fields") or {}),
            relations=list(data.get("relations") or []),
            url=data.get("url"),
        )

    @property
    def title(self) -> str:
        return self.fields.get(TITLE_FIELD) or ""

    @property
    def description(self) -> str:
        return self.fields.get(DESCRIPTION_FIELD) or ""

    @property
    def work_item_type(self) -> str:
        return self.fields.get(WORK_ITEM_TYPE_FIELD) or ""

    @property
    def state(self) -> str:
        return self.fields.get(STATE_FIELD) or ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "fields": dict(self.fields)}
        if self.relations:
            data["relations"] = list(self.relations)
        if self.url:
            data["url"] = self.url
        return data


class RelationKind(str, Enum):
    """Relation traversal directions supported by the client."""

    RELATED = "related"
    CHILDREN = "children"
    PARENT = "parent"


RELATION_TYPES: dict[RelationKind, str] = {
    RelationKind.RELATED: "System.LinkTypes.Related",
    RelationKind.CHILDREN: "System.LinkTypes.Hierarchy-Forward",
    RelationKind.PARENT: "System.LinkTypes.Hierarchy-Reverse",
}


class LinkType(str, Enum):
    """Link types accepted by the link operation."""

    PARENT_CHILD = "parent-child"
    CHILD_PARENT = "child-parent"
    RELATED = "related"
    PREDECESSOR = "predecessor"
    SUCCESSOR = "successor"


LINK_RELATION_TYPES: dict[LinkType, str] = {
    LinkType.PARENT_CHILD: "System.LinkTypes.Hierarchy-Forward",
    LinkType.CHILD_PARENT: "System.LinkTypes.Hierarchy-Reverse",
    LinkType.RELATED: "System.LinkTypes.Related",
    LinkType.PREDECESSOR: "System.LinkTypes.Dependency-Predecessor",
    LinkType.SUCCESSOR: "System.LinkTypes.Dependency-Successor",
}


def relation_type_for_link(link_type: str) -> str:
    """Map a link type name to its Boards relation type."""
    try:
        return LINK_RELATION_TYPES[LinkType(link_type)]
    except ValueError:
        raise ValueError(f"Unknown link type: {link_type}") from None


class SessionStage(str, Enum):
    """Where a conversation currently is in the specify/plan/execute flow."""

    IDLE = "idle"
    SPECIFYING = "specifying"
    PLANNING = "planning"
    EXECUTING = "executing"


@dataclass(frozen=True)
class SessionKey:
    """Composite identity of a session: one per organization and work item."""

    organization_url: str
    work_item_id: int


@dataclass
class TranscriptMessage:
    role: str
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Session:
    """
    Per-conversation workflow state.

    Attributes:
        id: Unique session identifier
        organization_url: Organization half of the session key
        work_item_id: Work item half of the session key
        project_id: Project the work item lives in
        stage: Current workflow stage
        transcript: Append-only conversation history
        working_data: Flow-scoped data (work item context, specification,
            execution plan, last execution result)
        version: Revision counter bumped on every update, used for
            optimistic concurrency checks
    """

    id: str
    organization_url: str
    work_item_id: int
    project_id: str
    stage: SessionStage = SessionStage.IDLE
    transcript: list[TranscriptMessage] = field(default_factory=list)
    working_data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @property
    def key(self) -> SessionKey:
        return SessionKey(self.organization_url, self.work_item_id)

    @property
    def work_item(self) -> WorkItem | None:
        return self.working_data.get(WORK_ITEM_KEY)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organization_url": self.organization_url,
            "work_item_id": self.work_item_id,
            "project_id": self.project_id,
            "stage": self.stage.value,
            "transcript": [
                {
                    "id": message.id,
                    "role": message.role,
                    "content": message.content,
                    "created_at": message.created_at.isoformat(),
                }
                for message in self.transcript
            ],
            "working_data": {
                key: _serialize(value) for key, value in self.working_data.items()
            },
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "version": self.version,
        }


@dataclass
class SubtaskDescriptor:
    """
    A planned-but-not-yet-created work item.

    ``key`` identifies the descriptor within its plan; ``depends_on`` holds
    keys of other descriptors in the same plan. Positional indices are
    resolved by ExecutionPlan when needed.
    """

    key: str
    title: str
    description: str
    work_item_type: str = "Task"
    estimated_effort: int | None = None
    depends_on: list[str] = field(default_factory=list)
    priority: int | None = None


@dataclass
class ExecutionPlan:
    parent_work_item_id: int
    parent_title: str
    subtasks: list[SubtaskDescriptor] = field(default_factory=list)
    total_estimated_effort: int = 0
    notes: str | None = None

    def dependency_indices(self) -> list[list[int]]:
        """Resolve each descriptor's dependency keys to indices in this plan.

        Keys that no longer appear in the plan (filtered duplicates) are dropped.
        """
        positions = {task.key: index for index, task in enumerate(self.subtasks)}
        return [
            [positions[key] for key in task.depends_on if key in positions]
            for task in self.subtasks
        ]

    def to_dict(self) -> dict[str, Any]:
        dependencies = self.dependency_indices()
        return {
            "parent_work_item_id": self.parent_work_item_id,
            "parent_title": self.parent_title,
            "subtasks": [
                {
                    "key": task.key,
                    "title": task.title,
                    "description": task.description,
                    "work_item_type": task.work_item_type,
                    "estimated_effort": task.estimated_effort,
                    "dependencies": dependencies[index],
                    "priority": task.priority,
                }
                for index, task in enumerate(self.subtasks)
            ],
            "total_estimated_effort": self.total_estimated_effort,
            "notes": self.notes,
        }


@dataclass
class CreatedTask:
    index: int
    title: str
    work_item_id: int
    url: str
    link_error: str | None = None


@dataclass
class FailedTask:
    index: int
    title: str
    error: str


@dataclass
class ExecutionResult:
    """
    Outcome of running an execution plan.

    After a non-dry-run execution every plan index appears exactly once in
    either ``created_tasks`` or ``failed_tasks``.
    """

    success: bool
    dry_run: bool
    total_tasks: int
    created_tasks: list[CreatedTask] = field(default_factory=list)
    failed_tasks: list[FailedTask] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SpecifyState(str, Enum):
    GATHERING = "gathering"
    COMPLETE = "complete"


@dataclass
class SpecificationResult:
    state: SpecifyState
    specification: str
    needs_more_info: bool
    clarifying_questions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "specification": self.specification,
            "needs_more_info": self.needs_more_info,
            "clarifying_questions": list(self.clarifying_questions),
        }


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, Enum):
        return value.value
    return value
