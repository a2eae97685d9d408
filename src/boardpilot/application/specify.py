"""
Specify Stage

Gathers requirements for a work item. Either returns clarifying questions
(state ``gathering``, session stage untouched) or renders a structured
specification into the session and moves it to ``specifying``.
"""

import asyncio
from typing import Mapping, Optional

import structlog

from boardpilot.core.domain.errors import SessionNotFoundError, SpecificationError
from boardpilot.core.domain.models import (
    CLARIFYING_QUESTIONS_KEY,
    SPECIFICATION_KEY,
    SPECIFY_CONTEXT_KEY,
    SPECIFY_STATE_KEY,
    RelationKind,
    SessionStage,
    SpecificationResult,
    SpecifyState,
)
from boardpilot.core.domain.specification import analyze_work_item
from boardpilot.core.interfaces.boards import BoardsClientProtocol
from boardpilot.core.interfaces.sessions import SessionStoreProtocol

logger = structlog.get_logger()


class SpecifyStage:
    def __init__(self, boards: BoardsClientProtocol, sessions: SessionStoreProtocol):
        self.boards = boards
        self.sessions = sessions
        self.logger = logger.bind(component="specify_stage")

    async def specify(
        self,
        session_id: str,
        work_item_id: int,
        project_id: str,
        answers: Optional[Mapping[str, str]] = None,
    ) -> SpecificationResult:
        """
        Analyze a work item and either ask questions or write a specification.

        Args:
            session_id: Live session for the conversation
            work_item_id: Work item to specify
            project_id: Project the work item belongs to
            answers: User answers keyed by topic (scenarios, stakeholders,
                reproduction, acceptance, constraints)

        Raises:
            SessionNotFoundError: If the session does not exist
            SpecificationError: If loading the work item context fails; the
                session is left unmodified
        """
        answers = dict(answers or {})
        self.logger.info("specify.started", session_id=session_id, work_item_id=work_item_id)

        async with self.sessions.lock(session_id):
            session = await self.sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            try:
                work_item = await self.boards.get_item(project_id, work_item_id)
                children, related = await asyncio.gather(
                    self.boards.get_related(project_id, work_item_id, RelationKind.CHILDREN),
                    self.boards.get_related(project_id, work_item_id, RelationKind.RELATED),
                )
            except Exception as e:
                self.logger.error(
                    "specify.failed",
                    session_id=session_id,
                    work_item_id=work_item_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise SpecificationError.wrap(e) from e

            result = analyze_work_item(work_item, children, related, answers)

            working_data = {
                **session.working_data,
                SPECIFY_CONTEXT_KEY: {
                    "work_item": work_item,
                    "children": children,
                    "related": related,
                    "answers": answers,
                },
                SPECIFY_STATE_KEY: result.state.value,
            }
            changes: dict = {"working_data": working_data}

            if result.state is SpecifyState.COMPLETE:
                working_data[SPECIFICATION_KEY] = result.specification
                working_data.pop(CLARIFYING_QUESTIONS_KEY, None)
                changes["stage"] = SessionStage.SPECIFYING
                self.logger.info("specify.completed", session_id=session_id)
            else:
                working_data[CLARIFYING_QUESTIONS_KEY] = list(result.clarifying_questions)
                self.logger.info(
                    "specify.needs_more_info",
                    session_id=session_id,
                    question_count=len(result.clarifying_questions),
                )

            await self.sessions.update(session_id, changes, expected_version=session.version)

        return result
