"""
Protocol for the Boards work item client consumed by the workflow stages.
"""

from typing import Any, Optional, Protocol

from boardpilot.core.domain.models import RelationKind, WorkItem


class BoardsClientProtocol(Protocol):
    async def get_item(self, project_id: str, work_item_id: int) -> WorkItem:
        ...

    async def get_items_batch(self, project_id: str, work_item_ids: list[int]) -> list[WorkItem]:
        ...

    async def create_item(
        self, project_id: str, work_item_type: str, fields: dict[str, Any]
    ) -> WorkItem:
        ...

    async def update_item(
        self, project_id: str, work_item_id: int, fields: dict[str, Any]
    ) -> WorkItem:
        ...

    async def run_query(self, project_id: str, wiql: str) -> list[WorkItem]:
        ...

    async def get_related(
        self, project_id: str, work_item_id: int, kind: RelationKind
    ) -> list[WorkItem]:
        ...

    async def get_parent(self, project_id: str, work_item_id: int) -> Optional[WorkItem]:
        ...

    async def link_items(
        self,
        project_id: str,
        source_id: int,
        target_id: int,
        link_type: str,
        existing_relations: Optional[list[dict[str, Any]]] = None,
    ) -> bool:
        ...
