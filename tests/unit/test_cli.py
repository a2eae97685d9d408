"""
Tests for the Typer CLI.
"""

from unittest.mock import MagicMock, patch

import pytest
import typer
from typer.testing import CliRunner

from boardpilot.api.cli.commands.workflow import parse_answers
from boardpilot.api.cli.main import app
from boardpilot.application.executor import ExecutionStage
from boardpilot.application.factory import Workflow
from boardpilot.application.planner import PlanningStage
from boardpilot.application.specify import SpecifyStage
from boardpilot.application.tools import ToolRegistry

from conftest import ORG_URL


async def _no_sleep(seconds):
    return None


@pytest.fixture
def workflow(mock_boards, session_store):
    mock_boards.organization_url = ORG_URL
    specify = SpecifyStage(mock_boards, session_store)
    planner = PlanningStage(mock_boards, session_store)
    executor = ExecutionStage(mock_boards, session_store, sleep=_no_sleep)
    return Workflow(
        profile="test",
        config={},
        boards=mock_boards,
        sessions=session_store,
        specify=specify,
        planner=planner,
        executor=executor,
        tools=ToolRegistry(mock_boards, specify, planner, executor),
        agent=MagicMock(),
    )


@pytest.fixture
def patched_factory(workflow):
    with patch("boardpilot.api.cli.commands.workflow.WorkflowFactory") as factory_cls:
        factory_cls.return_value.create_workflow.return_value = workflow
        yield factory_cls


class TestMainCLI:
    """Test the main CLI application."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_version(self):
        result = self.runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "BoardPilot" in result.stdout

    def test_command_groups_registered(self):
        result = self.runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "item" in result.stdout
        assert "workflow" in result.stdout

    def test_missing_profile_exits_with_error(self, tmp_path):
        result = self.runner.invoke(
            app, ["--config-dir", str(tmp_path), "item", "show", "Contoso", "42"]
        )

        assert result.exit_code == 1
        assert "Profile not found" in result.stdout


class TestWorkflowCommand:
    """Tests for ``workflow run``."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_questions_printed_when_information_missing(self, patched_factory):
        result = self.runner.invoke(app, ["workflow", "run", "Contoso", "42"])

        assert result.exit_code == 1
        assert "More information needed" in result.stdout
        assert "What are the key user scenarios or use cases?" in result.stdout

    def test_dry_run_with_answers(self, patched_factory, mock_boards):
        result = self.runner.invoke(
            app,
            ["workflow", "run", "Contoso", "42", "-a", "scenarios=Admin exports", "--dry-run"],
        )

        assert result.exit_code == 0
        assert "Dry run: Would create" in result.stdout
        mock_boards.create_item.assert_not_awaited()

    def test_bad_answer_format(self, patched_factory):
        result = self.runner.invoke(app, ["workflow", "run", "Contoso", "42", "-a", "no-equals"])

        assert result.exit_code != 0


class TestParseAnswers:
    def test_topic_answer_pairs(self):
        assert parse_answers(["scenarios = Export", "acceptance=CSV=ok"]) == {
            "scenarios": "Export",
            "acceptance": "CSV=ok",
        }

    def test_missing_separator(self):
        with pytest.raises(typer.BadParameter):
            parse_answers(["scenarios"])
