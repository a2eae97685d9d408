"""
In-Memory Session Store

Volatile session storage keyed by id with a secondary (organization,
work item) index. Both maps are always changed together. Creation is
get-or-create per key and serialized by a per-key lock so two concurrent
first interactions with the same work item share one session and one
context load.

Updates bump ``version`` and ``updated_at``; callers that pass
``expected_version`` get a SessionConflictError instead of silently
overwriting a newer revision.
"""

import asyncio
import dataclasses
import uuid
from typing import Any, Optional

import structlog

from boardpilot.core.domain.errors import (
    ConfigurationError,
    SessionConflictError,
    SessionNotFoundError,
)
from boardpilot.core.domain.models import (
    CHILD_ITEMS_KEY,
    RELATED_ITEMS_KEY,
    WORK_ITEM_KEY,
    RelationKind,
    Session,
    SessionKey,
    TranscriptMessage,
    utcnow,
)
from boardpilot.core.interfaces.boards import BoardsClientProtocol

logger = structlog.get_logger()

_UPDATABLE_FIELDS = {"stage", "transcript", "working_data", "project_id"}


class InMemorySessionStore:
    """Session store backed by two dicts."""

    def __init__(self, boards: Optional[BoardsClientProtocol] = None):
        """
        Args:
            boards: Client used to load work item context when a session is
                created. Without one, creation of new sessions fails.
        """
        self.boards = boards
        self._sessions: dict[str, Session] = {}
        self._key_index: dict[SessionKey, str] = {}
        self._session_locks: dict[str, asyncio.Lock] = {}
        self._key_locks: dict[SessionKey, asyncio.Lock] = {}
        self.logger = logger.bind(component="session_store")

    def lock(self, session_id: str) -> asyncio.Lock:
        """
        Mutex for read-modify-write sequences on one session.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        if session_id not in self._sessions:
            raise SessionNotFoundError(session_id)
        if session_id not in self._session_locks:
            self._session_locks[session_id] = asyncio.Lock()
        return self._session_locks[session_id]

    def _key_lock(self, key: SessionKey) -> asyncio.Lock:
        if key not in self._key_locks:
            self._key_locks[key] = asyncio.Lock()
        return self._key_locks[key]

    async def create(self, key: SessionKey, project_id: str) -> Session:
        async with self._key_lock(key):
            existing = self._lookup_key(key)
            if existing is not None:
                self.logger.debug("session.reused", session_id=existing.id)
                return existing

            if self.boards is None:
                raise ConfigurationError("Boards client not configured in session store")

            # loaded before anything is stored so a failed load leaves no session
            work_item, related, children = await asyncio.gather(
                self.boards.get_item(project_id, key.work_item_id),
                self.boards.get_related(project_id, key.work_item_id, RelationKind.RELATED),
                self.boards.get_related(project_id, key.work_item_id, RelationKind.CHILDREN),
            )

            session = Session(
                id=str(uuid.uuid4()),
                organization_url=key.organization_url,
                work_item_id=key.work_item_id,
                project_id=project_id,
                working_data={
                    WORK_ITEM_KEY: work_item,
                    RELATED_ITEMS_KEY: related,
                    CHILD_ITEMS_KEY: children,
                },
            )
            self._sessions[session.id] = session
            self._key_index[key] = session.id

            self.logger.info(
                "session.created",
                session_id=session.id,
                work_item_id=key.work_item_id,
                related_count=len(related),
                child_count=len(children),
            )
            return session

    def _lookup_key(self, key: SessionKey) -> Optional[Session]:
        session_id = self._key_index.get(key)
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    async def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def get_by_key(self, key: SessionKey) -> Optional[Session]:
        return self._lookup_key(key)

    async def list_sessions(self) -> list[Session]:
        return list(self._sessions.values())

    async def update(
        self,
        session_id: str,
        changes: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is None:
            return None

        if expected_version is not None and expected_version != session.version:
            raise SessionConflictError(session_id, expected_version, session.version)

        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")

        updated = dataclasses.replace(
            session,
            **changes,
            updated_at=utcnow(),
            version=session.version + 1,
        )
        self._sessions[session_id] = updated
        return updated

    async def append_message(self, session_id: str, role: str, content: str) -> Optional[Session]:
        """Append to the transcript, waiting for any stage holding the session lock."""
        if session_id not in self._sessions:
            return None

        async with self.lock(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                return None
            message = TranscriptMessage(role=role, content=content)
            return await self.update(session_id, {"transcript": [*session.transcript, message]})

    async def delete(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        self._key_index.pop(session.key, None)
        self._session_locks.pop(session_id, None)
        key_lock = self._key_locks.get(session.key)
        if key_lock is not None and not key_lock.locked():
            del self._key_locks[session.key]
        self.logger.info("session.deleted", session_id=session_id)
