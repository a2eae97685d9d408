"""Shared fixtures and builders for unit tests."""

from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest

from boardpilot.core.domain.models import (
    DESCRIPTION_FIELD,
    STATE_FIELD,
    TITLE_FIELD,
    WORK_ITEM_TYPE_FIELD,
    RelationKind,
    SessionKey,
    WorkItem,
)
from boardpilot.infrastructure.persistence.memory_session_store import InMemorySessionStore

ORG_URL = "https://dev.azure.com/contoso"
PROJECT = "Contoso"


def make_work_item(
    work_item_id: int,
    title: str = "Export report",
    work_item_type: str = "Feature",
    description: str = "",
    state: str = "New",
    relations: Optional[list[dict[str, Any]]] = None,
    url: Optional[str] = None,
) -> WorkItem:
    fields = {
        TITLE_FIELD: title,
        WORK_ITEM_TYPE_FIELD: work_item_type,
        STATE_FIELD: state,
    }
    if description:
        fields[DESCRIPTION_FIELD] = description
    return WorkItem(id=work_item_id, fields=fields, relations=relations or [], url=url)


@pytest.fixture
def mock_boards():
    """Mock BoardsClientProtocol returning an empty Feature #42 context."""
    boards = AsyncMock()
    boards.get_item.return_value = make_work_item(42)
    boards.get_related.return_value = []
    boards.get_parent.return_value = None
    boards.link_items.return_value = True
    return boards


@pytest.fixture
def session_store(mock_boards):
    return InMemorySessionStore(boards=mock_boards)


@pytest.fixture
async def session(session_store):
    return await session_store.create(SessionKey(ORG_URL, 42), PROJECT)


def related_side_effect(children=None, related=None, parents=None):
    """side_effect for get_related keyed by RelationKind."""

    async def _get_related(project_id, work_item_id, kind):
        return {
            RelationKind.CHILDREN: children or [],
            RelationKind.RELATED: related or [],
            RelationKind.PARENT: parents or [],
        }[RelationKind(kind)]

    return _get_related
