"""
REST client for one server collection.

RemoteCollectionStore wraps a shared httpx.AsyncClient and exposes the
uniform contract the views rely on:
- fetch_page: one page, tolerant of envelope or bare-list responses
- fetch_one / create / update / remove
- fetch_related: the dependency summary consulted before a delete

UnitStore adds the special operations on marines (aggregates, name
search, removal from a chapter).

Invariants:
    - The store never mutates caller-owned records
    - create/update bodies carry only the kind's own fields, coerced
    - Non-2xx reasons are surfaced verbatim as ServerRejection
    - Network failures are never retried here
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .entities import EntityKind
from .errors import FormatError, ServerRejection, TransportError
from .models import DeleteOutcome, Page, Record, RelatedSummary, SortDescriptor

logger = logging.getLogger(__name__)


def parse_page(data: Any, index: int, size: int) -> Page:
    """Normalize a paged response into a Page.

    Accepts an envelope {"content": [...], "totalPages": N} (totalPages may
    also sit under a nested "page" object) or a bare list of records.

    Raises:
        FormatError: If no ordered sequence of records can be found
    """
    total: Any = None
    if isinstance(data, dict) and "content" in data:
        records = data["content"]
        total = data.get("totalPages")
        if total is None and isinstance(data.get("page"), dict):
            total = data["page"].get("totalPages")
    elif isinstance(data, list):
        records = data
    else:
        raise FormatError("Paged response is neither an envelope nor a list")

    if not isinstance(records, list):
        raise FormatError("Paged response content is not a list")
    for item in records:
        if not isinstance(item, dict):
            raise FormatError(f"Expected record object, got {type(item).__name__}")

    if total is None:
        total = 1 if records else 0
    try:
        total_pages = max(int(total), 0)
    except (TypeError, ValueError):
        raise FormatError(f"Invalid totalPages value: {total!r}") from None

    return Page(records=records, index=index, size=size, total_pages=total_pages)


class RemoteCollectionStore:
    """Authoritative REST resource for one entity kind.

    Attributes:
        kind: Entity kind this store serves

    Example:
        >>> async with httpx.AsyncClient(base_url="http://localhost:8080") as http:
        ...     store = RemoteCollectionStore(UNITS, http)
        ...     page = await store.fetch_page(0, 10)
    """

    def __init__(self, kind: EntityKind, client: httpx.AsyncClient) -> None:
        self.kind = kind
        self._client = client

    def _item_path(self, record_id: Any) -> str:
        return f"{self.kind.path}/{record_id}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning(
                "Request failed",
                extra={"method": method, "path": path, "error": str(e)},
            )
            raise TransportError(f"{method} {path} failed: {e}", url=path) from e

        if response.is_error:
            raise _rejection(response)
        return response

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise FormatError(f"{method} {path} returned invalid JSON", url=path) from e

    async def _record(self, method: str, path: str, **kwargs: Any) -> Record:
        data = await self._json(method, path, **kwargs)
        if not isinstance(data, dict):
            raise FormatError(f"{method} {path} did not return a record", url=path)
        return data

    async def fetch_page(
        self,
        index: int,
        size: int,
        sort: Optional[SortDescriptor] = None,
        filters: Optional[Mapping[str, str]] = None,
    ) -> Page:
        """Fetch one page of the collection.

        Args:
            index: Zero-based page index
            size: Page size
            sort: Sort forwarded as sortBy/sortOrder
            filters: Extra query parameters (e.g. nameFilter)

        Raises:
            TransportError, ServerRejection, FormatError
        """
        params: Dict[str, str] = {"page": str(index), "size": str(size)}
        if sort is not None:
            params["sortBy"] = sort.field
            params["sortOrder"] = sort.direction.value
        for key, value in (filters or {}).items():
            if value:
                params[key] = value

        data = await self._json("GET", self.kind.path, params=params)
        try:
            page = parse_page(data, index, size)
        except FormatError as e:
            e.url = self.kind.path
            e.details["url"] = self.kind.path
            raise
        logger.debug(
            "Fetched page",
            extra={
                "kind": self.kind.name,
                "index": index,
                "rows": len(page.records),
                "total_pages": page.total_pages,
            },
        )
        return page

    async def fetch_all(self, limit: int) -> List[Record]:
        """Fetch up to `limit` records in one page (reference option lists)."""
        page = await self.fetch_page(0, limit)
        return page.records

    async def fetch_one(self, record_id: Any) -> Record:
        return await self._record("GET", self._item_path(record_id))

    async def create(self, payload: Mapping[str, Any]) -> Record:
        body = self.kind.serialize(payload)
        record = await self._record("POST", self.kind.path, json=body)
        logger.info("Created record", extra={"kind": self.kind.name, "id": record.get("id")})
        return record

    async def update(self, record_id: Any, payload: Mapping[str, Any]) -> Record:
        body = self.kind.serialize(payload)
        response = await self._request("PUT", self._item_path(record_id), json=body)
        logger.info("Updated record", extra={"kind": self.kind.name, "id": record_id})
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            return data
        return {"id": record_id, **body}

    async def remove(
        self,
        record_id: Any,
        cascade: Optional[Mapping[str, bool]] = None,
    ) -> DeleteOutcome:
        """Delete a record, forwarding cascade decisions as query flags.

        Args:
            record_id: Target record id
            cascade: Query flag name -> decision; omitted entirely when None
        """
        params = {flag: "true" if chosen else "false" for flag, chosen in (cascade or {}).items()}
        response = await self._request("DELETE", self._item_path(record_id), params=params)
        logger.info(
            "Deleted record",
            extra={"kind": self.kind.name, "id": record_id, "cascade": params},
        )
        if _is_json(response):
            try:
                data = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict):
                return DeleteOutcome.from_dict(data)
        text = response.text.strip()
        return DeleteOutcome(message=text or "Deleted")

    async def fetch_related(self, record_id: Any) -> RelatedSummary:
        data = await self._record("GET", f"{self._item_path(record_id)}/related")
        return self.kind.parse_related(data)


def _is_json(response: httpx.Response) -> bool:
    return "json" in response.headers.get("content-type", "").lower()


def _rejection(response: httpx.Response) -> ServerRejection:
    """Build a ServerRejection carrying the server's own reason text."""
    status = response.status_code
    fallback = f"HTTP {status}"
    if _is_json(response):
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            reason = body.get("error") or body.get("message") or fallback
            return ServerRejection(str(reason), status, body)
    text = response.text.strip()
    return ServerRejection(text or response.reason_phrase or fallback, status, text or None)


SPECIAL_OPERATIONS_PATH = "/api/special-operations"


@dataclass(frozen=True)
class NameMatch:
    """One hit of the name search: the marine's name and id."""

    name: str
    id: Any


class UnitStore(RemoteCollectionStore):
    """Unit collection plus the server's special operations on marines.

    The aggregate queries live under /api/special-operations rather than
    the collection path. remove_from_chapter is a plain write; the server
    announces it on the push channel like any other update.
    """

    async def average_heart_count(self) -> Optional[float]:
        """Average heartCount over all marines, or None if the server has none."""
        data = await self._json("GET", f"{SPECIAL_OPERATIONS_PATH}/average-heart-count")
        if not isinstance(data, dict) or "average" not in data:
            raise FormatError("Average response has no 'average' value", url=SPECIAL_OPERATIONS_PATH)
        if data["average"] is None:
            return None
        return _number(data["average"], "average")

    async def count_by_health(self, health: int) -> int:
        """Number of marines whose health is below `health`."""
        data = await self._json(
            "GET",
            f"{SPECIAL_OPERATIONS_PATH}/count-by-health",
            params={"health": str(health)},
        )
        if not isinstance(data, dict) or "count" not in data:
            raise FormatError("Count response has no 'count' value", url=SPECIAL_OPERATIONS_PATH)
        return int(_number(data["count"], "count"))

    async def search_by_name(self, name: str) -> List[NameMatch]:
        """Marines whose name contains `name`, as (name, id) pairs."""
        data = await self._json(
            "GET",
            f"{SPECIAL_OPERATIONS_PATH}/search-by-name",
            params={"name": name},
        )
        marines = data.get("marines") if isinstance(data, dict) else None
        if marines is None:
            marines = []
        if not isinstance(marines, list):
            raise FormatError("Search response 'marines' is not a list", url=SPECIAL_OPERATIONS_PATH)

        matches = []
        for item in marines:
            if isinstance(item, (list, tuple)) and len(item) >= 2:
                matches.append(NameMatch(name=str(item[0]), id=item[1]))
            elif isinstance(item, dict):
                matches.append(NameMatch(name=str(item.get("name", "")), id=item.get("id")))
            else:
                raise FormatError(f"Unexpected search hit: {item!r}", url=SPECIAL_OPERATIONS_PATH)
        return matches

    async def remove_from_chapter(self, record_id: Any) -> None:
        await self._request("PUT", f"{self._item_path(record_id)}/remove-from-chapter")
        logger.info("Removed from chapter", extra={"kind": self.kind.name, "id": record_id})


STORE_TYPES: Dict[str, type] = {"units": UnitStore}


def make_store(kind: EntityKind, client: httpx.AsyncClient) -> RemoteCollectionStore:
    """Build the store class registered for a kind."""
    return STORE_TYPES.get(kind.name, RemoteCollectionStore)(kind, client)


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FormatError(f"'{name}' is not a number: {value!r}", url=SPECIAL_OPERATIONS_PATH)
    return float(value)
