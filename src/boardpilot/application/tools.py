"""
Tool Registry

Exposes Boards operations and the workflow stages as tools for the
conversation agent. Each tool is a pydantic input model plus an async
handler returning a JSON-serializable dict; definitions are emitted in
OpenAI function-calling format.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel

from boardpilot.application.executor import ExecutionStage
from boardpilot.application.planner import PlanningStage
from boardpilot.application.specify import SpecifyStage
from boardpilot.application.tool_schemas import (
    CreateWorkItemInput,
    ExecuteInput,
    LinkWorkItemsInput,
    PlanInput,
    ReadWorkItemInput,
    SearchWorkItemsInput,
    SpecifyInput,
    UpdateWorkItemInput,
)
from boardpilot.core.domain.errors import NoFieldsToUpdateError, ToolError, UnknownToolError
from boardpilot.core.domain.models import (
    ASSIGNED_TO_FIELD,
    DESCRIPTION_FIELD,
    PRIORITY_FIELD,
    STATE_FIELD,
    TAGS_FIELD,
    TITLE_FIELD,
    LinkType,
    RelationKind,
)
from boardpilot.core.interfaces.boards import BoardsClientProtocol

logger = structlog.get_logger()

WIQL_SELECT = (
    "SELECT [System.Id], [System.Title], [System.State], "
    "[System.WorkItemType], [System.AssignedTo] FROM WorkItems"
)
WIQL_ORDER = "ORDER BY [System.ChangedDate] DESC"


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_wiql(params: SearchWorkItemsInput) -> str:
    """Build a WIQL query from search filters. String values are quoted and escaped."""
    conditions = []
    if params.work_item_type:
        conditions.append(f"[System.WorkItemType] = {_quote(params.work_item_type)}")
    if params.state:
        conditions.append(f"[System.State] = {_quote(params.state)}")
    if params.assigned_to:
        conditions.append(f"[System.AssignedTo] CONTAINS {_quote(params.assigned_to)}")
    if params.query:
        query = _quote(params.query)
        conditions.append(f"([System.Title] CONTAINS {query} OR [System.Description] CONTAINS {query})")
    if params.tags:
        tag_conditions = " AND ".join(f"[System.Tags] CONTAINS {_quote(tag)}" for tag in params.tags)
        conditions.append(f"({tag_conditions})")

    parts = [WIQL_SELECT]
    if conditions:
        parts.append("WHERE " + " AND ".join(conditions))
    parts.append(WIQL_ORDER)
    return " ".join(parts)


def _work_item_fields(params: CreateWorkItemInput | UpdateWorkItemInput) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if params.title:
        fields[TITLE_FIELD] = params.title
    if params.description:
        fields[DESCRIPTION_FIELD] = params.description
    if params.assigned_to:
        fields[ASSIGNED_TO_FIELD] = params.assigned_to
    if params.state:
        fields[STATE_FIELD] = params.state
    if params.priority:
        fields[PRIORITY_FIELD] = params.priority
    if params.tags:
        fields[TAGS_FIELD] = "; ".join(params.tags)
    if params.additional_fields:
        fields.update(params.additional_fields)
    return fields


@dataclass
class Tool:
    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[Any], Awaitable[dict[str, Any]]]


class ToolRegistry:
    """Named tools backed by the Boards client and the workflow stages."""

    def __init__(
        self,
        boards: BoardsClientProtocol,
        specify_stage: SpecifyStage,
        planning_stage: PlanningStage,
        execution_stage: ExecutionStage,
    ):
        self.boards = boards
        self.specify_stage = specify_stage
        self.planning_stage = planning_stage
        self.execution_stage = execution_stage
        self.logger = logger.bind(component="tool_registry")

        self._tools: dict[str, Tool] = {
            tool.name: tool
            for tool in [
                Tool(
                    "read_work_item",
                    "Read a work item from Azure DevOps with all its details, "
                    "optionally including children, parent, and related items",
                    ReadWorkItemInput,
                    self._read_work_item,
                ),
                Tool(
                    "search_work_items",
                    "Search work items in Azure DevOps using WIQL. "
                    "Filter by title, state, type, assignee, or tags",
                    SearchWorkItemsInput,
                    self._search_work_items,
                ),
                Tool(
                    "create_work_item",
                    "Create a new work item in Azure DevOps. Can set a parent and custom fields",
                    CreateWorkItemInput,
                    self._create_work_item,
                ),
                Tool(
                    "update_work_item",
                    "Update fields of an existing work item in Azure DevOps",
                    UpdateWorkItemInput,
                    self._update_work_item,
                ),
                Tool(
                    "link_work_items",
                    "Create a link between two work items "
                    "(parent-child, child-parent, related, predecessor, successor)",
                    LinkWorkItemsInput,
                    self._link_work_items,
                ),
                Tool(
                    "specify",
                    "Analyze the current work item and either ask clarifying questions "
                    "or produce a structured specification",
                    SpecifyInput,
                    self._specify,
                ),
                Tool(
                    "plan",
                    "Break the current work item down into an execution plan of subtasks",
                    PlanInput,
                    self._plan,
                ),
                Tool(
                    "execute",
                    "Create the subtasks of the stored execution plan in Azure DevOps",
                    ExecuteInput,
                    self._execute,
                ),
            ]
        }

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get_tool_definitions(self) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.input_model.model_json_schema(),
                },
            }
            for tool in self._tools.values()
        ]

    async def execute(self, name: str, tool_input: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Validate input and run a tool.

        Raises:
            UnknownToolError: If no tool has this name
            pydantic.ValidationError: If the input does not match the tool schema
            ToolError: If a Boards tool fails
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)

        params = tool.input_model.model_validate(tool_input or {})
        self.logger.info("tool.execute", tool=name)
        result = await tool.handler(params)
        self.logger.debug("tool.completed", tool=name)
        return result

    # ------------------------------------------------------------------
    # Boards tools
    # ------------------------------------------------------------------

    async def _read_work_item(self, params: ReadWorkItemInput) -> dict[str, Any]:
        try:
            work_item = await self.boards.get_item(params.project_id, params.work_item_id)
            result: dict[str, Any] = {"work_item": work_item.to_dict()}

            if params.include_children:
                children = await self.boards.get_related(
                    params.project_id, params.work_item_id, RelationKind.CHILDREN
                )
                result["children"] = [child.to_dict() for child in children]
            if params.include_parent:
                parent = await self.boards.get_parent(params.project_id, params.work_item_id)
                result["parent"] = parent.to_dict() if parent else None
            if params.include_related:
                related = await self.boards.get_related(
                    params.project_id, params.work_item_id, RelationKind.RELATED
                )
                result["related"] = [item.to_dict() for item in related]
        except Exception as e:
            self.logger.error("tool.failed", tool="read_work_item", error=str(e))
            raise ToolError(
                "read_work_item", f"Failed to read work item {params.work_item_id}: {e}", e
            ) from e
        return result

    async def _search_work_items(self, params: SearchWorkItemsInput) -> dict[str, Any]:
        wiql = build_wiql(params)
        self.logger.debug("tool.search.wiql", wiql=wiql)
        try:
            work_items = await self.boards.run_query(params.project_id, wiql)
        except Exception as e:
            self.logger.error("tool.failed", tool="search_work_items", error=str(e))
            raise ToolError("search_work_items", f"Failed to search work items: {e}", e) from e

        limited = work_items[: params.limit]
        self.logger.info("tool.search.completed", total_found=len(work_items), returned=len(limited))
        return {"count": len(limited), "work_items": [item.to_dict() for item in limited]}

    async def _create_work_item(self, params: CreateWorkItemInput) -> dict[str, Any]:
        try:
            work_item = await self.boards.create_item(
                params.project_id, params.work_item_type, _work_item_fields(params)
            )
        except Exception as e:
            self.logger.error("tool.failed", tool="create_work_item", error=str(e))
            raise ToolError("create_work_item", f"Failed to create work item: {e}", e) from e

        result: dict[str, Any] = {"work_item": work_item.to_dict()}
        if params.parent_id and work_item.id:
            try:
                await self.boards.link_items(
                    params.project_id,
                    work_item.id,
                    params.parent_id,
                    LinkType.CHILD_PARENT.value,
                    existing_relations=work_item.relations,
                )
            except Exception as e:
                # item exists; the caller sees the missing link
                self.logger.warning(
                    "tool.create.link_failed",
                    work_item_id=work_item.id,
                    parent_id=params.parent_id,
                    error=str(e),
                )
                result["link_error"] = str(e)
        return result

    async def _update_work_item(self, params: UpdateWorkItemInput) -> dict[str, Any]:
        fields = _work_item_fields(params)
        if not fields:
            raise NoFieldsToUpdateError(params.work_item_id)
        try:
            work_item = await self.boards.update_item(params.project_id, params.work_item_id, fields)
        except Exception as e:
            self.logger.error("tool.failed", tool="update_work_item", error=str(e))
            raise ToolError(
                "update_work_item", f"Failed to update work item {params.work_item_id}: {e}", e
            ) from e
        return {"work_item": work_item.to_dict()}

    async def _link_work_items(self, params: LinkWorkItemsInput) -> dict[str, Any]:
        try:
            created = await self.boards.link_items(
                params.project_id,
                params.source_work_item_id,
                params.target_work_item_id,
                params.link_type,
            )
        except Exception as e:
            self.logger.error("tool.failed", tool="link_work_items", error=str(e))
            raise ToolError(
                "link_work_items",
                f"Failed to link work items {params.source_work_item_id} and "
                f"{params.target_work_item_id}: {e}",
                e,
            ) from e
        return {
            "source_work_item_id": params.source_work_item_id,
            "target_work_item_id": params.target_work_item_id,
            "link_type": params.link_type,
            "created": created,
        }

    # ------------------------------------------------------------------
    # Workflow tools
    # ------------------------------------------------------------------

    async def _specify(self, params: SpecifyInput) -> dict[str, Any]:
        result = await self.specify_stage.specify(
            params.session_id, params.work_item_id, params.project_id, params.answers
        )
        return result.to_dict()

    async def _plan(self, params: PlanInput) -> dict[str, Any]:
        plan = await self.planning_stage.plan(
            params.session_id, params.work_item_id, params.project_id, params.approach
        )
        return plan.to_dict()

    async def _execute(self, params: ExecuteInput) -> dict[str, Any]:
        result = await self.execution_stage.execute(
            params.session_id, params.project_id, params.dry_run, params.batch_size
        )
        return result.to_dict()
