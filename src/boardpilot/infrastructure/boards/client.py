"""
Boards REST Client

Azure DevOps Work Item Tracking client (REST API 7.1) with:
- Exponential backoff for 5xx responses and transport failures
- Server-dictated waits for 429 responses (Retry-After)
- Credential invalidation and a short fixed wait on 401 responses
- Chunked, concurrent batch fetches for id lists over the 200-id cap
- Relation traversal (related, children, parent) and idempotent linking

All outbound calls share one retry loop; the 429 and 5xx/network policies
share only the attempt counter and the ``max_retries`` ceiling.
"""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

from boardpilot.core.domain.errors import ApiError, AuthenticationError, RateLimitError
from boardpilot.core.domain.models import (
    RELATION_TYPES,
    RelationKind,
    WorkItem,
    relation_type_for_link,
)
from boardpilot.core.interfaces.credentials import CredentialProviderProtocol

logger = structlog.get_logger()

API_VERSION = "7.1"
BATCH_CAP = 200
DEFAULT_RETRY_AFTER = 60.0

_WORK_ITEM_URL_ID = re.compile(r"/workitems/(\d+)$", re.IGNORECASE)
_LEADING_INT = re.compile(r"\s*(\d+)")


@dataclass
class RetryConfig:
    """Retry tuning; delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def backoff_delay(self, attempt: int) -> float:
        delay = self.initial_delay * (self.backoff_multiplier**attempt)
        return min(delay, self.max_delay)


def parse_retry_after(value: Optional[str]) -> float:
    """Whole seconds from a Retry-After header's leading integer, 60 when absent or unparseable."""
    match = _LEADING_INT.match(value or "")
    if match:
        return float(match.group(1))
    return DEFAULT_RETRY_AFTER


def chunk_list(items: list[Any], size: int) -> list[list[Any]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def extract_work_item_id(url: str) -> Optional[int]:
    match = _WORK_ITEM_URL_ID.search(url or "")
    return int(match.group(1)) if match else None


class BoardsClient:
    """
    Resilient client for the Boards work item API.

    Example:
        >>> async with BoardsClient(org_url, credentials) as client:
        ...     item = await client.get_item("MyProject", 42)
    """

    def __init__(
        self,
        organization_url: str,
        credentials: CredentialProviderProtocol,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        api_version: str = API_VERSION,
        batch_cap: int = BATCH_CAP,
        timeout: float = 30.0,
    ):
        self.organization_url = organization_url.rstrip("/")
        self.credentials = credentials
        self.retry_config = retry_config or RetryConfig()
        self.api_version = api_version
        self.batch_cap = batch_cap
        self._sleep = sleep
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self.logger = logger.bind(component="boards_client")

    async def __aenter__(self) -> "BoardsClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Work item operations
    # ------------------------------------------------------------------

    async def get_item(self, project_id: str, work_item_id: int) -> WorkItem:
        self.logger.debug("boards.get_item", project_id=project_id, work_item_id=work_item_id)
        response = await self._request("GET", self._work_item_url(project_id, work_item_id))
        return WorkItem.from_dict(response.json())

    async def get_items_batch(self, project_id: str, work_item_ids: list[int]) -> list[WorkItem]:
        """
        Fetch many work items by id.

        Lists longer than the batch cap are split into chunks that are
        fetched concurrently; results keep chunk order.
        """
        if not work_item_ids:
            return []

        if len(work_item_ids) > self.batch_cap:
            self.logger.warning(
                "boards.batch_chunked", count=len(work_item_ids), batch_cap=self.batch_cap
            )
            chunks = chunk_list(work_item_ids, self.batch_cap)
            results = await asyncio.gather(
                *(self.get_items_batch(project_id, chunk) for chunk in chunks)
            )
            return [item for chunk_items in results for item in chunk_items]

        self.logger.debug("boards.get_items_batch", project_id=project_id, count=len(work_item_ids))
        response = await self._request(
            "GET",
            f"{self.organization_url}/{project_id}/_apis/wit/workitems",
            params={"ids": ",".join(str(i) for i in work_item_ids)},
        )
        return [WorkItem.from_dict(raw) for raw in response.json().get("value") or []]

    async def create_item(
        self, project_id: str, work_item_type: str, fields: dict[str, Any]
    ) -> WorkItem:
        self.logger.debug(
            "boards.create_item",
            project_id=project_id,
            work_item_type=work_item_type,
            field_count=len(fields),
        )
        response = await self._request(
            "POST",
            f"{self.organization_url}/{project_id}/_apis/wit/workitems/${work_item_type}",
            patch=_fields_patch(fields),
        )
        return WorkItem.from_dict(response.json())

    async def update_item(
        self, project_id: str, work_item_id: int, fields: dict[str, Any]
    ) -> WorkItem:
        self.logger.debug(
            "boards.update_item",
            project_id=project_id,
            work_item_id=work_item_id,
            field_count=len(fields),
        )
        response = await self._request(
            "PATCH",
            self._work_item_url(project_id, work_item_id),
            patch=_fields_patch(fields),
        )
        return WorkItem.from_dict(response.json())

    async def run_query(self, project_id: str, wiql: str) -> list[WorkItem]:
        """Run a WIQL query and resolve the matching ids via batch fetch."""
        self.logger.debug("boards.run_query", project_id=project_id, wiql=wiql)
        response = await self._request(
            "POST",
            f"{self.organization_url}/{project_id}/_apis/wit/wiql",
            json_body={"query": wiql},
        )
        ids = [entry["id"] for entry in response.json().get("workItems") or []]
        if not ids:
            return []
        return await self.get_items_batch(project_id, ids)

    async def get_related(
        self, project_id: str, work_item_id: int, kind: RelationKind
    ) -> list[WorkItem]:
        """Resolve the work items linked to ``work_item_id`` by ``kind``."""
        relation_type = RELATION_TYPES[RelationKind(kind)]
        source = await self._get_with_relations(project_id, work_item_id)

        ids = []
        for relation in source.relations:
            if relation.get("rel") != relation_type:
                continue
            target_id = extract_work_item_id(relation.get("url", ""))
            if target_id is not None:
                ids.append(target_id)

        if not ids:
            return []
        return await self.get_items_batch(project_id, ids)

    async def get_children(self, project_id: str, work_item_id: int) -> list[WorkItem]:
        return await self.get_related(project_id, work_item_id, RelationKind.CHILDREN)

    async def get_parent(self, project_id: str, work_item_id: int) -> Optional[WorkItem]:
        """First parent relation, or None when the item has no parent."""
        parents = await self.get_related(project_id, work_item_id, RelationKind.PARENT)
        return parents[0] if parents else None

    async def link_items(
        self,
        project_id: str,
        source_id: int,
        target_id: int,
        link_type: str,
        existing_relations: Optional[list[dict[str, Any]]] = None,
    ) -> bool:
        """
        Add a relation from ``source_id`` to ``target_id``.

        Idempotent: when the source already carries the relation nothing is
        sent. ``existing_relations`` skips the lookup when the caller knows
        the source's relations (e.g. a freshly created item).

        Returns:
            True if a relation was added, False if it already existed.

        Raises:
            ValueError: If ``link_type`` is unknown.
        """
        relation_type = relation_type_for_link(link_type)

        if existing_relations is None:
            existing_relations = (await self._get_with_relations(project_id, source_id)).relations

        for relation in existing_relations:
            if (
                relation.get("rel") == relation_type
                and extract_work_item_id(relation.get("url", "")) == target_id
            ):
                self.logger.debug(
                    "boards.link_exists",
                    source_id=source_id,
                    target_id=target_id,
                    relation_type=relation_type,
                )
                return False

        patch = [
            {
                "op": "add",
                "path": "/relations/-",
                "value": {
                    "rel": relation_type,
                    "url": f"{self.organization_url}/_apis/wit/workitems/{target_id}",
                },
            }
        ]
        await self._request("PATCH", self._work_item_url(project_id, source_id), patch=patch)
        self.logger.info(
            "boards.link_created",
            source_id=source_id,
            target_id=target_id,
            relation_type=relation_type,
        )
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _work_item_url(self, project_id: str, work_item_id: int) -> str:
        return f"{self.organization_url}/{project_id}/_apis/wit/workitems/{work_item_id}"

    async def _get_with_relations(self, project_id: str, work_item_id: int) -> WorkItem:
        response = await self._request(
            "GET",
            self._work_item_url(project_id, work_item_id),
            params={"$expand": "relations"},
        )
        return WorkItem.from_dict(response.json())

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
        patch: Optional[list[dict[str, Any]]] = None,
    ) -> httpx.Response:
        """
        Send a request through the shared retry policy.

        - 2xx: returned immediately
        - 429: wait Retry-After seconds, retry; RateLimitError when exhausted
        - 401: invalidate credentials, wait initial_delay, retry; falls
          through to ApiError when exhausted
        - 5xx / transport failure: exponential backoff, retry; ApiError
          when exhausted
        - token endpoint unreachable: exponential backoff, retry; the
          AuthenticationError when exhausted
        - any other status: ApiError without retry
        """
        query = dict(params or {})
        query["api-version"] = self.api_version

        headers = {"Content-Type": "application/json"}
        content: Optional[str] = None
        if patch is not None:
            headers["Content-Type"] = "application/json-patch+json"
            content = json.dumps(patch)
        elif json_body is not None:
            content = json.dumps(json_body)

        retry = self.retry_config
        attempt = 0

        while True:
            try:
                headers["Authorization"] = await self.credentials.get_auth_header()
                response = await self._http.request(
                    method, url, params=query, headers=headers, content=content
                )
            except AuthenticationError as e:
                # a rejected token request is final; an unreachable token endpoint is not
                if e.status_code is not None or attempt >= retry.max_retries:
                    raise
                delay = retry.backoff_delay(attempt)
                self.logger.warning(
                    "boards.request.retry",
                    reason="token_unavailable",
                    attempt=attempt,
                    delay=delay,
                    error=str(e),
                    url=url,
                )
                await self._sleep(delay)
                attempt += 1
                continue
            except httpx.TransportError as e:
                if attempt < retry.max_retries:
                    delay = retry.backoff_delay(attempt)
                    self.logger.warning(
                        "boards.request.retry",
                        reason="transport_error",
                        attempt=attempt,
                        delay=delay,
                        error=str(e),
                        url=url,
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue

                self.logger.error("boards.request.unreachable", error=str(e), url=url)
                raise ApiError("Failed to connect to Azure DevOps", body=str(e)) from e

            status = response.status_code

            if response.is_success:
                return response

            if status == 429:
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                self.logger.warning(
                    "boards.request.rate_limited",
                    attempt=attempt,
                    retry_after=retry_after,
                    url=url,
                )
                if attempt < retry.max_retries:
                    await self._sleep(retry_after)
                    attempt += 1
                    continue
                raise RateLimitError(
                    f"Rate limit exceeded after {attempt} retries", retry_after=retry_after
                )

            if status == 401:
                self.logger.warning("boards.request.unauthorized", attempt=attempt, url=url)
                self.credentials.invalidate()
                if attempt < retry.max_retries:
                    await self._sleep(retry.initial_delay)
                    attempt += 1
                    continue

            if status >= 500 and attempt < retry.max_retries:
                delay = retry.backoff_delay(attempt)
                self.logger.warning(
                    "boards.request.retry",
                    reason="server_error",
                    attempt=attempt,
                    delay=delay,
                    status_code=status,
                    url=url,
                )
                await self._sleep(delay)
                attempt += 1
                continue

            self.logger.error("boards.request.failed", status_code=status, body=response.text, url=url)
            raise ApiError(
                f"Azure DevOps API error: {status} {response.reason_phrase}",
                status_code=status,
                body=response.text,
            )


def _fields_patch(fields: dict[str, Any]) -> list[dict[str, Any]]:
    return [{"op": "add", "path": f"/fields/{name}", "value": value} for name, value in fields.items()]
