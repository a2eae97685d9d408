"""
Protocol for session stores.

A store owns two pieces of state that must change together: sessions by
id and the (organization, work item) key index. Any backing store can be
substituted as long as it honours get-or-create by key.
"""

import asyncio
from typing import Any, Optional, Protocol

from boardpilot.core.domain.models import Session, SessionKey


class SessionStoreProtocol(Protocol):
    async def create(self, key: SessionKey, project_id: str) -> Session:
        """Return the live session for ``key`` or create one."""
        ...

    async def get(self, session_id: str) -> Optional[Session]:
        ...

    async def get_by_key(self, key: SessionKey) -> Optional[Session]:
        ...

    async def list_sessions(self) -> list[Session]:
        ...

    async def update(
        self,
        session_id: str,
        changes: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[Session]:
        """Merge ``changes`` into the session; None if the id is unknown."""
        ...

    async def append_message(self, session_id: str, role: str, content: str) -> Optional[Session]:
        ...

    async def delete(self, session_id: str) -> None:
        ...

    def lock(self, session_id: str) -> asyncio.Lock:
        """Mutex guarding read-modify-write sequences on one session.

        Raises SessionNotFoundError for unknown ids.
        """
        ...
