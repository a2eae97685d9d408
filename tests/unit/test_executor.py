"""
Unit tests for ExecutionStage.

Tests verify:
- Dry runs perform no Boards calls and leave the session untouched
- Sequential batches with a pause between (not after) them
- Partial failure reporting with global indices
- Parent linking and link failures recorded per task
- Plan retirement on success
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from boardpilot.application.executor import ExecutionStage, subtask_fields
from boardpilot.core.domain.errors import (
    ExecutionError,
    PlanNotFoundError,
    SessionNotFoundError,
)
from boardpilot.core.domain.models import (
    EFFORT_FIELD,
    EXECUTION_PLAN_KEY,
    LAST_EXECUTION_RESULT_KEY,
    PRIORITY_FIELD,
    TITLE_FIELD,
    ExecutionPlan,
    SessionStage,
    SubtaskDescriptor,
    WorkItem,
)

from conftest import PROJECT


def make_plan(count: int) -> ExecutionPlan:
    return ExecutionPlan(
        parent_work_item_id=42,
        parent_title="Export report",
        subtasks=[
            SubtaskDescriptor(key=f"t{i}", title=f"Task {i}", description="", estimated_effort=1)
            for i in range(count)
        ],
        total_estimated_effort=count,
    )


class CreateRecorder:
    """create_item side effect assigning ids from 1000 and failing chosen titles."""

    def __init__(self, fail_titles=()):
        self.fail_titles = set(fail_titles)
        self.calls = []

    async def create(self, project_id, work_item_type, fields):
        title = fields[TITLE_FIELD]
        self.calls.append(title)
        if title in self.fail_titles:
            raise RuntimeError(f"cannot create {title}")
        new_id = 1000 + len(self.calls)
        return WorkItem(id=new_id, fields=dict(fields), url=f"https://example/{new_id}")


async def store_plan(session_store, session, plan):
    return await session_store.update(
        session.id,
        {"working_data": {**session.working_data, EXECUTION_PLAN_KEY: plan}, "stage": SessionStage.PLANNING},
    )


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def stage(mock_boards, session_store, sleep):
    return ExecutionStage(mock_boards, session_store, sleep=sleep)


class TestDryRun:
    """Tests for dry runs."""

    @pytest.mark.asyncio
    async def test_dry_run_makes_no_calls(self, stage, session_store, session, mock_boards):
        stored = await store_plan(session_store, session, make_plan(3))

        result = await stage.execute(session.id, PROJECT, dry_run=True)

        assert result.success and result.dry_run
        assert result.message == "Dry run: Would create 3 work items"
        assert [t.work_item_id for t in result.created_tasks] == [-1, -1, -1]
        assert result.created_tasks[0].url == "[DRY RUN] Would create: Task 0"
        mock_boards.create_item.assert_not_awaited()
        mock_boards.link_items.assert_not_awaited()

        after = await session_store.get(session.id)
        assert after.version == stored.version
        assert after.stage is SessionStage.PLANNING


class TestBatching:
    """Tests for batch execution."""

    @pytest.mark.asyncio
    async def test_three_batches_two_pauses(self, stage, session_store, session, mock_boards, sleep):
        """120 descriptors with batch size 50 run as 50, 50, 20."""
        recorder = CreateRecorder().create
        mock_boards.create_item.side_effect = recorder
        await store_plan(session_store, session, make_plan(120))

        result = await stage.execute(session.id, PROJECT, batch_size=50)

        assert result.success
        assert result.total_tasks == 120
        assert len(result.created_tasks) == 120
        assert sorted(t.index for t in result.created_tasks) == list(range(120))
        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.0)
        assert result.message == "Successfully created 120 work items"

    @pytest.mark.asyncio
    async def test_single_batch_no_pause(self, stage, session_store, session, mock_boards, sleep):
        mock_boards.create_item.side_effect = CreateRecorder().create
        await store_plan(session_store, session, make_plan(4))

        await stage.execute(session.id, PROJECT)

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_batch_size_out_of_range(self, stage, session):
        with pytest.raises(ExecutionError):
            await stage.execute(session.id, PROJECT, batch_size=500)

    @pytest.mark.asyncio
    async def test_zero_batch_size_rejected(self, stage, session_store, session, mock_boards):
        await store_plan(session_store, session, make_plan(2))

        with pytest.raises(ExecutionError):
            await stage.execute(session.id, PROJECT, batch_size=0)

        mock_boards.create_item.assert_not_awaited()


class TestPartialFailure:
    """Tests for partial failure reporting."""

    @pytest.mark.asyncio
    async def test_failures_keep_global_index(self, stage, session_store, session, mock_boards):
        mock_boards.create_item.side_effect = CreateRecorder(fail_titles={"Task 3", "Task 7"}).create
        await store_plan(session_store, session, make_plan(10))

        result = await stage.execute(session.id, PROJECT, batch_size=4)

        assert not result.success
        assert result.message == "Created 8 work items, 2 failed"
        assert [(f.index, f.title) for f in result.failed_tasks] == [(3, "Task 3"), (7, "Task 7")]
        assert result.failed_tasks[0].error == "cannot create Task 3"
        indices = {t.index for t in result.created_tasks} | {f.index for f in result.failed_tasks}
        assert indices == set(range(10))

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_executing_stage(
        self, stage, session_store, session, mock_boards
    ):
        mock_boards.create_item.side_effect = CreateRecorder(fail_titles={"Task 0"}).create
        await store_plan(session_store, session, make_plan(2))

        await stage.execute(session.id, PROJECT)

        after = await session_store.get(session.id)
        assert after.stage is SessionStage.EXECUTING
        assert EXECUTION_PLAN_KEY in after.working_data

    @pytest.mark.asyncio
    async def test_missing_id_is_a_failure(self, stage, session_store, session, mock_boards):
        mock_boards.create_item.return_value = WorkItem(id=0)
        await store_plan(session_store, session, make_plan(1))

        result = await stage.execute(session.id, PROJECT)

        assert result.failed_tasks[0].error == "Work item created but no ID returned"
        mock_boards.link_items.assert_not_awaited()


class TestParentLinking:
    """Tests for parent linkage of created items."""

    @pytest.mark.asyncio
    async def test_each_item_linked_to_parent(self, stage, session_store, session, mock_boards):
        mock_boards.create_item.side_effect = CreateRecorder().create
        await store_plan(session_store, session, make_plan(2))

        await stage.execute(session.id, PROJECT)

        assert mock_boards.link_items.await_count == 2
        args = mock_boards.link_items.await_args_list[0]
        assert args.args[2] == 42
        assert args.args[3] == "child-parent"

    @pytest.mark.asyncio
    async def test_link_failure_recorded_not_failed(
        self, stage, session_store, session, mock_boards
    ):
        mock_boards.create_item.side_effect = CreateRecorder().create
        mock_boards.link_items.side_effect = RuntimeError("link rejected")
        await store_plan(session_store, session, make_plan(2))

        result = await stage.execute(session.id, PROJECT)

        assert result.success
        assert result.failed_tasks == []
        assert all(t.link_error == "link rejected" for t in result.created_tasks)

    @pytest.mark.asyncio
    async def test_linking_disabled(self, mock_boards, session_store, session, sleep):
        mock_boards.create_item.side_effect = CreateRecorder().create
        await store_plan(session_store, session, make_plan(2))
        stage = ExecutionStage(mock_boards, session_store, link_to_parent=False, sleep=sleep)

        await stage.execute(session.id, PROJECT)

        mock_boards.link_items.assert_not_awaited()


class TestSessionEffects:
    """Tests for stage transitions and plan retirement."""

    @pytest.mark.asyncio
    async def test_success_retires_plan(self, stage, session_store, session, mock_boards):
        mock_boards.create_item.side_effect = CreateRecorder().create
        await store_plan(session_store, session, make_plan(2))

        result = await stage.execute(session.id, PROJECT)

        after = await session_store.get(session.id)
        assert after.stage is SessionStage.IDLE
        assert EXECUTION_PLAN_KEY not in after.working_data
        assert after.working_data[LAST_EXECUTION_RESULT_KEY] is result

    @pytest.mark.asyncio
    async def test_chat_append_during_execution_keeps_result(
        self, stage, session_store, session, mock_boards
    ):
        """A transcript append arriving mid-run waits and does not discard the outcome."""
        recorder = CreateRecorder()
        appends = []

        async def create_and_chat(project_id, work_item_type, fields):
            if not appends:
                chat = session_store.append_message(session.id, "user", "still there?")
                appends.append(asyncio.create_task(chat))
                await asyncio.sleep(0)
            return await recorder.create(project_id, work_item_type, fields)

        mock_boards.create_item.side_effect = create_and_chat
        await store_plan(session_store, session, make_plan(2))

        result = await stage.execute(session.id, PROJECT)
        await appends[0]

        assert result.success
        after = await session_store.get(session.id)
        assert after.stage is SessionStage.IDLE
        assert EXECUTION_PLAN_KEY not in after.working_data
        assert after.working_data[LAST_EXECUTION_RESULT_KEY] is result
        assert after.transcript[-1].content == "still there?"

    @pytest.mark.asyncio
    async def test_no_plan(self, stage, session):
        with pytest.raises(PlanNotFoundError, match="Run 'plan' first"):
            await stage.execute(session.id, PROJECT)

    @pytest.mark.asyncio
    async def test_unknown_session(self, stage):
        with pytest.raises(SessionNotFoundError):
            await stage.execute("missing", PROJECT)


class TestSubtaskFields:
    def test_optional_fields_only_when_set(self):
        fields = subtask_fields(SubtaskDescriptor("k", "Title", "Desc"))
        assert PRIORITY_FIELD not in fields and EFFORT_FIELD not in fields

        fields = subtask_fields(SubtaskDescriptor("k", "Title", "Desc", estimated_effort=5, priority=2))
        assert fields[EFFORT_FIELD] == 5
        assert fields[PRIORITY_FIELD] == 2
