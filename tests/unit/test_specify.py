"""
Unit tests for the specify stage and specification rendering.
"""

import pytest

from boardpilot.application.specify import SpecifyStage
from boardpilot.core.domain.errors import SessionNotFoundError, SpecificationError
from boardpilot.core.domain.models import (
    CLARIFYING_QUESTIONS_KEY,
    SPECIFICATION_KEY,
    SPECIFY_STATE_KEY,
    SessionStage,
    SpecifyState,
)
from boardpilot.core.domain.specification import analyze_work_item, clarifying_questions

from conftest import PROJECT, make_work_item, related_side_effect


class TestAnalyzeWorkItem:
    """Tests for the pure completeness decision."""

    def test_short_description_without_answers_gathers(self):
        item = make_work_item(1, "Login", "User Story", description="Too short")

        result = analyze_work_item(item, [], [], {})

        assert result.state is SpecifyState.GATHERING
        assert result.needs_more_info
        assert result.specification == "Analyzing work item: Login"
        assert "What are the key user scenarios or use cases?" in result.clarifying_questions

    def test_long_description_completes(self):
        item = make_work_item(1, "Login", "Feature", description="Users sign in with corporate SSO")

        result = analyze_work_item(item, [make_work_item(2)], [], {})

        assert result.state is SpecifyState.COMPLETE
        assert result.specification.startswith("# Login\n**Type:** Feature\n")
        assert "## Description\nUsers sign in with corporate SSO" in result.specification
        assert "- Has 1 existing subtasks" in result.specification

    def test_answers_complete_without_description(self):
        item = make_work_item(1, "Crash on save", "Bug")

        result = analyze_work_item(item, [], [], {"reproduction": "Click save twice"})

        assert result.state is SpecifyState.COMPLETE
        assert "## Reproduction Steps\nClick save twice" in result.specification
        assert "## Description" not in result.specification

    def test_bug_questions(self):
        questions = clarifying_questions("Bug", {})

        assert len(questions) == 5
        assert questions[-2] == "What are the steps to reproduce the issue?"

    def test_task_questions_are_generic(self):
        assert len(clarifying_questions("Task", {})) == 3


class TestSpecifyStage:
    """Tests for SpecifyStage session effects."""

    @pytest.mark.asyncio
    async def test_gathering_keeps_stage(self, session_store, session, mock_boards):
        stage = SpecifyStage(mock_boards, session_store)

        result = await stage.specify(session.id, 42, PROJECT)

        stored = await session_store.get(session.id)
        assert result.state is SpecifyState.GATHERING
        assert stored.stage is SessionStage.IDLE
        assert stored.working_data[SPECIFY_STATE_KEY] == "gathering"
        assert stored.working_data[CLARIFYING_QUESTIONS_KEY] == result.clarifying_questions
        assert SPECIFICATION_KEY not in stored.working_data

    @pytest.mark.asyncio
    async def test_complete_stores_specification(self, session_store, session, mock_boards):
        mock_boards.get_item.return_value = make_work_item(
            42, description="Export the monthly report as CSV and PDF"
        )
        mock_boards.get_related.side_effect = related_side_effect(related=[make_work_item(50)])
        stage = SpecifyStage(mock_boards, session_store)

        result = await stage.specify(session.id, 42, PROJECT)

        stored = await session_store.get(session.id)
        assert stored.stage is SessionStage.SPECIFYING
        assert stored.working_data[SPECIFICATION_KEY] == result.specification
        assert "- Related to 1 other work items" in result.specification

    @pytest.mark.asyncio
    async def test_unknown_session(self, session_store, mock_boards):
        stage = SpecifyStage(mock_boards, session_store)

        with pytest.raises(SessionNotFoundError):
            await stage.specify("missing", 42, PROJECT)

    @pytest.mark.asyncio
    async def test_read_failure_is_wrapped(self, session_store, session, mock_boards):
        mock_boards.get_item.side_effect = RuntimeError("Azure down")
        stage = SpecifyStage(mock_boards, session_store)

        with pytest.raises(SpecificationError) as exc_info:
            await stage.specify(session.id, 42, PROJECT)

        assert str(exc_info.value) == "Failed to specify work item: Azure down"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert (await session_store.get(session.id)).version == session.version
