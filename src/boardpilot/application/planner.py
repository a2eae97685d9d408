"""
Plan Stage

Turns a work item (and its stored specification) into an ExecutionPlan:
the strategy registered for the item type produces the base descriptors,
approach keywords append extra ones, and descriptors whose title matches
an existing child are filtered out.
"""

import asyncio
from typing import Optional

import structlog

from boardpilot.core.domain.errors import PlanningError, SessionNotFoundError
from boardpilot.core.domain.models import (
    EXECUTION_PLAN_KEY,
    SPECIFICATION_KEY,
    ExecutionPlan,
    RelationKind,
    SessionStage,
    WorkItem,
)
from boardpilot.core.domain.strategies import approach_tasks, get_strategy
from boardpilot.core.interfaces.boards import BoardsClientProtocol
from boardpilot.core.interfaces.sessions import SessionStoreProtocol

logger = structlog.get_logger()

NO_SPECIFICATION = "No specification available"


def generate_plan(
    work_item: WorkItem,
    specification: str,
    existing_children: list[WorkItem],
    approach: Optional[str] = None,
) -> ExecutionPlan:
    strategy = get_strategy(work_item.work_item_type)
    subtasks = strategy(work_item.title, work_item.description, specification)
    subtasks.extend(approach_tasks(approach))

    existing_titles = {child.title for child in existing_children}
    filtered = [task for task in subtasks if task.title not in existing_titles]

    notes = None
    if existing_children:
        notes = f"Filtered out {len(subtasks) - len(filtered)} potentially duplicate tasks"

    return ExecutionPlan(
        parent_work_item_id=work_item.id,
        parent_title=work_item.title,
        subtasks=filtered,
        total_estimated_effort=sum(task.estimated_effort or 0 for task in filtered),
        notes=notes,
    )


class PlanningStage:
    def __init__(self, boards: BoardsClientProtocol, sessions: SessionStoreProtocol):
        self.boards = boards
        self.sessions = sessions
        self.logger = logger.bind(component="planning_stage")

    async def plan(
        self,
        session_id: str,
        work_item_id: int,
        project_id: str,
        approach: Optional[str] = None,
    ) -> ExecutionPlan:
        """
        Build and store an execution plan for a work item.

        Raises:
            SessionNotFoundError: If the session does not exist
            PlanningError: If reading the work item or its children fails
        """
        self.logger.info("plan.started", session_id=session_id, work_item_id=work_item_id)

        async with self.sessions.lock(session_id):
            session = await self.sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            specification = session.working_data.get(SPECIFICATION_KEY) or NO_SPECIFICATION

            try:
                work_item, existing_children = await asyncio.gather(
                    self.boards.get_item(project_id, work_item_id),
                    self.boards.get_related(project_id, work_item_id, RelationKind.CHILDREN),
                )
            except Exception as e:
                self.logger.error(
                    "plan.failed",
                    session_id=session_id,
                    work_item_id=work_item_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise PlanningError.wrap(e) from e

            self.logger.debug(
                "plan.analyzing",
                work_item_id=work_item_id,
                work_item_type=work_item.work_item_type,
                existing_children=len(existing_children),
            )

            execution_plan = generate_plan(work_item, specification, existing_children, approach)

            await self.sessions.update(
                session_id,
                {
                    "working_data": {**session.working_data, EXECUTION_PLAN_KEY: execution_plan},
                    "stage": SessionStage.PLANNING,
                },
                expected_version=session.version,
            )

        self.logger.info(
            "plan.completed",
            session_id=session_id,
            subtask_count=len(execution_plan.subtasks),
            total_effort=execution_plan.total_estimated_effort,
        )
        return execution_plan
