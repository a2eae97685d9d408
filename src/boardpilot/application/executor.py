"""
Execute Stage

Creates the work items of the stored ExecutionPlan.

Descriptors are processed in consecutive batches: batches run one after
another with a fixed pause in between, and the members of a batch are
created concurrently. A failing creation never aborts its siblings; it is
reported in ``failed_tasks`` under its global plan index. Every created
item is then linked to the plan's parent; a failed link is recorded on the
CreatedTask and does not count as a failure.

Dry runs report every descriptor as created without any I/O.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from boardpilot.core.domain.errors import (
    ApiError,
    ExecutionError,
    PlanNotFoundError,
    SessionNotFoundError,
)
from boardpilot.core.domain.models import (
    DESCRIPTION_FIELD,
    EFFORT_FIELD,
    EXECUTION_PLAN_KEY,
    LAST_EXECUTION_RESULT_KEY,
    PRIORITY_FIELD,
    TITLE_FIELD,
    CreatedTask,
    ExecutionPlan,
    ExecutionResult,
    FailedTask,
    LinkType,
    SessionStage,
    SubtaskDescriptor,
)
from boardpilot.core.interfaces.boards import BoardsClientProtocol
from boardpilot.core.interfaces.sessions import SessionStoreProtocol
from boardpilot.infrastructure.boards.client import BATCH_CAP, chunk_list

logger = structlog.get_logger()

DRY_RUN_WORK_ITEM_ID = -1
DEFAULT_BATCH_SIZE = 50
DEFAULT_BATCH_DELAY = 1.0


def subtask_fields(subtask: SubtaskDescriptor) -> dict[str, Any]:
    """Map a descriptor onto Boards field reference names."""
    fields: dict[str, Any] = {
        TITLE_FIELD: subtask.title,
        DESCRIPTION_FIELD: subtask.description,
    }
    if subtask.priority:
        fields[PRIORITY_FIELD] = subtask.priority
    if subtask.estimated_effort:
        fields[EFFORT_FIELD] = subtask.estimated_effort
    return fields


class ExecutionStage:
    def __init__(
        self,
        boards: BoardsClientProtocol,
        sessions: SessionStoreProtocol,
        default_batch_size: int = DEFAULT_BATCH_SIZE,
        max_batch_size: int = BATCH_CAP,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        link_to_parent: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            boards: Boards client used for creation and linking
            sessions: Session store holding the plan
            default_batch_size: Batch size when the caller passes none
            max_batch_size: Upper bound accepted for a batch size
            batch_delay: Seconds to pause between batches
            link_to_parent: Link each created item to the plan's parent
            sleep: Awaitable sleep, injectable for tests
        """
        self.boards = boards
        self.sessions = sessions
        self.default_batch_size = default_batch_size
        self.max_batch_size = max_batch_size
        self.batch_delay = batch_delay
        self.link_to_parent = link_to_parent
        self._sleep = sleep
        self.logger = logger.bind(component="execution_stage")

    async def execute(
        self,
        session_id: str,
        project_id: str,
        dry_run: bool = False,
        batch_size: Optional[int] = None,
    ) -> ExecutionResult:
        """
        Execute the session's stored plan.

        Partial failure is a normal result (``success`` False); the session
        then stays in the ``executing`` stage so the caller can decide how
        to retry. On full success the plan is retired, the result stored as
        the last execution, and the stage reset to ``idle``.

        Raises:
            SessionNotFoundError: If the session does not exist
            PlanNotFoundError: If no plan is stored in the session
            ExecutionError: If the batch size is out of range or the run
                cannot be carried out
        """
        if batch_size is None:
            batch_size = self.default_batch_size
        if not 1 <= batch_size <= self.max_batch_size:
            raise ExecutionError(f"batch size must be between 1 and {self.max_batch_size}")

        self.logger.info("execute.started", session_id=session_id, dry_run=dry_run)

        async with self.sessions.lock(session_id):
            session = await self.sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            plan: Optional[ExecutionPlan] = session.working_data.get(EXECUTION_PLAN_KEY)
            if plan is None:
                raise PlanNotFoundError()

            self.logger.info(
                "execute.plan_loaded",
                session_id=session_id,
                parent_work_item_id=plan.parent_work_item_id,
                total_subtasks=len(plan.subtasks),
            )

            if dry_run:
                self.logger.info("execute.dry_run", session_id=session_id)
                return self._dry_run(plan)

            session = await self.sessions.update(
                session_id, {"stage": SessionStage.EXECUTING}, expected_version=session.version
            )

            try:
                result = await self._execute_in_batches(project_id, plan, batch_size)
            except Exception as e:
                self.logger.error("execute.failed", session_id=session_id, error=str(e))
                raise ExecutionError.wrap(e) from e

            if result.success:
                working_data = {
                    key: value
                    for key, value in session.working_data.items()
                    if key != EXECUTION_PLAN_KEY
                }
                working_data[LAST_EXECUTION_RESULT_KEY] = result
                await self.sessions.update(
                    session_id,
                    {"stage": SessionStage.IDLE, "working_data": working_data},
                    expected_version=session.version,
                )

        self.logger.info(
            "execute.completed",
            session_id=session_id,
            created=len(result.created_tasks),
            failed=len(result.failed_tasks),
        )
        return result

    def _dry_run(self, plan: ExecutionPlan) -> ExecutionResult:
        return ExecutionResult(
            success=True,
            dry_run=True,
            total_tasks=len(plan.subtasks),
            created_tasks=[
                CreatedTask(
                    index=index,
                    title=task.title,
                    work_item_id=DRY_RUN_WORK_ITEM_ID,
                    url=f"[DRY RUN] Would create: {task.title}",
                )
                for index, task in enumerate(plan.subtasks)
            ],
            message=f"Dry run: Would create {len(plan.subtasks)} work items",
        )

    async def _execute_in_batches(
        self, project_id: str, plan: ExecutionPlan, batch_size: int
    ) -> ExecutionResult:
        created: list[CreatedTask] = []
        failed: list[FailedTask] = []
        batches = chunk_list(plan.subtasks, batch_size)

        self.logger.info("execute.batches", batch_count=len(batches), batch_size=batch_size)

        for batch_number, batch in enumerate(batches):
            start = batch_number * batch_size
            self.logger.debug("execute.batch.started", batch=batch_number + 1, size=len(batch))

            outcomes = await asyncio.gather(
                *(
                    self._create_from_subtask(project_id, plan.parent_work_item_id, task, start + offset)
                    for offset, task in enumerate(batch)
                ),
                return_exceptions=True,
            )

            for offset, (task, outcome) in enumerate(zip(batch, outcomes)):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    failed.append(
                        FailedTask(
                            index=start + offset,
                            title=task.title,
                            error=str(outcome) or type(outcome).__name__,
                        )
                    )
                    self.logger.warning(
                        "execute.item_failed", title=task.title, error=str(outcome)
                    )
                else:
                    created.append(outcome)

            if batch_number < len(batches) - 1:
                self.logger.debug("execute.batch.pause", delay=self.batch_delay)
                await self._sleep(self.batch_delay)

        success = not failed
        if success:
            message = f"Successfully created {len(created)} work items"
        else:
            message = f"Created {len(created)} work items, {len(failed)} failed"

        return ExecutionResult(
            success=success,
            dry_run=False,
            total_tasks=len(plan.subtasks),
            created_tasks=created,
            failed_tasks=failed,
            message=message,
        )

    async def _create_from_subtask(
        self, project_id: str, parent_id: int, subtask: SubtaskDescriptor, index: int
    ) -> CreatedTask:
        work_item = await self.boards.create_item(
            project_id, subtask.work_item_type, subtask_fields(subtask)
        )
        if not work_item.id:
            raise ApiError("Work item created but no ID returned")

        link_error = None
        if self.link_to_parent:
            try:
                await self.boards.link_items(
                    project_id,
                    work_item.id,
                    parent_id,
                    LinkType.CHILD_PARENT.value,
                    existing_relations=work_item.relations,
                )
            except Exception as e:
                link_error = str(e) or type(e).__name__
                self.logger.warning(
                    "execute.link_failed",
                    work_item_id=work_item.id,
                    parent_id=parent_id,
                    error=link_error,
                )

        self.logger.debug("execute.item_created", work_item_id=work_item.id, title=subtask.title)
        return CreatedTask(
            index=index,
            title=subtask.title,
            work_item_id=work_item.id,
            url=work_item.url or f"Work item {work_item.id} created",
            link_error=link_error,
        )
