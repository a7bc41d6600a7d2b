"""
Shared fixtures for the marine console test suite.

FakeBackend is an in-memory stand-in for the REST API, served to the
console through httpx.MockTransport. It keeps flat records, embeds
referenced objects into unit responses the way the real server does and
records every request it receives.
"""

import asyncio
import json
import math
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from marine_console.config import Settings
from marine_console.context import ConsoleContext
from marine_console.entities import all_kinds
from marine_console.surface import RecordingSurface
from marine_console.view import ReplicatedView

PATHS = {
    "/api/spacemarines": "units",
    "/api/chapters": "chapters",
    "/api/coordinates": "coordinates",
}


class FakeBackend:
    """In-memory REST backend.

    Attributes:
        collections: Kind name -> id -> flat record
        requests: Every request received, in order
        rejections: (method, path) -> (status, json body) answered instead
        related_overrides: (kind, id) -> related summary answered instead
        total_pages_override: If set, reported as totalPages for every list
    """

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[int, Dict[str, Any]]] = {
            "units": {},
            "chapters": {},
            "coordinates": {},
        }
        self.requests: List[httpx.Request] = []
        self.rejections: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.related_overrides: Dict[Tuple[str, int], Dict[str, Any]] = {}
        self.total_pages_override: Optional[int] = None
        self.bare_list = False

    @classmethod
    def seeded(cls) -> "FakeBackend":
        backend = cls()
        backend.add("coordinates", {"id": 1, "x": 10.0, "y": 20.0})
        backend.add("coordinates", {"id": 2, "x": 5.5, "y": None})
        backend.add("coordinates", {"id": 3, "x": 0.0, "y": 1.0})
        backend.add("chapters", {"id": 1, "name": "Ultramarines", "marinesCount": 500})
        backend.add("chapters", {"id": 2, "name": "Blood Angels", "marinesCount": 300})
        backend.add("chapters", {"id": 3, "name": "Iron Hands", "marinesCount": 100})
        backend.add("units", unit(1, "Cato", 100, coordinates_id=1, chapter_id=1))
        backend.add("units", unit(2, "Alaric", 80, coordinates_id=2, chapter_id=2, category="TERMINATOR"))
        backend.add("units", unit(3, "brutus", 120, coordinates_id=1, chapter_id=None, category="CHAPLAIN"))
        return backend

    def add(self, kind: str, record: Dict[str, Any]) -> None:
        self.collections[kind][record["id"]] = dict(record)

    def reject(self, method: str, path: str, status: int, body: Any) -> None:
        self.rejections[(method, path)] = (status, body)

    def calls(self, method: str, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and (path is None or r.url.path == path)
        ]

    def body(self, request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)

    # -- rendering of server responses ----------------------------------

    def present(self, kind: str, record: Dict[str, Any]) -> Dict[str, Any]:
        if kind != "units":
            return dict(record)
        data = {k: v for k, v in record.items() if k not in ("coordinatesId", "chapterId")}
        coordinates = self.collections["coordinates"].get(record.get("coordinatesId"))
        chapter = self.collections["chapters"].get(record.get("chapterId"))
        data["coordinates"] = dict(coordinates) if coordinates else None
        data["chapter"] = dict(chapter) if chapter else None
        return data

    def related(self, kind: str, record_id: int) -> Dict[str, Any]:
        override = self.related_overrides.get((kind, record_id))
        if override is not None:
            return override
        if kind == "units":
            record = self.collections["units"][record_id]
            coordinates = self.collections["coordinates"].get(record.get("coordinatesId"))
            chapter = self.collections["chapters"].get(record.get("chapterId"))
            return {
                "hasCoordinates": coordinates is not None,
                "coordinates": coordinates,
                "hasChapter": chapter is not None,
                "chapter": chapter,
            }
        key = "chapterId" if kind == "chapters" else "coordinatesId"
        marines = [
            self.present("units", u)
            for u in self.collections["units"].values()
            if u.get(key) == record_id
        ]
        return {"relatedSpaceMarines": marines}

    def special(self, operation: str, request: httpx.Request) -> httpx.Response:
        marines = list(self.collections["units"].values())
        params = request.url.params
        if operation == "average-heart-count":
            if not marines:
                return httpx.Response(500, json={"error": "No marines"})
            average = sum(m["heartCount"] for m in marines) / len(marines)
            return httpx.Response(200, json={"average": average})
        if operation == "count-by-health":
            health = int(params["health"])
            return httpx.Response(200, json={"count": sum(1 for m in marines if m["health"] < health)})
        if operation == "search-by-name":
            name = params["name"].lower()
            hits = [[m["name"], m["id"]] for m in marines if name in m["name"].lower()]
            return httpx.Response(200, json={"marines": hits})
        return httpx.Response(404, json={"error": f"No special operation {operation}"})

    # -- transport -------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        rejection = self.rejections.get((request.method, path))
        if rejection is not None:
            status, body = rejection
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)

        _, _, rest = path.partition("/api/")
        parts = rest.split("/")
        if parts[0] == "special-operations" and len(parts) == 2:
            return self.special(parts[1], request)
        collection_path = "/api/" + parts[0]
        kind = PATHS.get(collection_path)
        if kind is None:
            return httpx.Response(404, json={"error": f"No route for {path}"})
        records = self.collections[kind]

        if len(parts) == 1:
            if request.method == "GET":
                return self._list(kind, request)
            if request.method == "POST":
                data = self.body(request)
                data["id"] = max(records, default=0) + 1
                records[data["id"]] = data
                return httpx.Response(201, json=self.present(kind, data))

        record_id = int(parts[1])
        if record_id not in records:
            return httpx.Response(404, json={"error": f"{kind} {record_id} not found"})

        if len(parts) == 3 and parts[2] == "related":
            return httpx.Response(200, json=self.related(kind, record_id))
        if len(parts) == 3 and parts[2] == "remove-from-chapter" and request.method == "PUT":
            records[record_id]["chapterId"] = None
            return httpx.Response(200)
        if request.method == "GET":
            return httpx.Response(200, json=self.present(kind, records[record_id]))
        if request.method == "PUT":
            data = self.body(request)
            data["id"] = record_id
            records[record_id] = data
            return httpx.Response(200, json=self.present(kind, data))
        if request.method == "DELETE":
            del records[record_id]
            params = request.url.params
            return httpx.Response(
                200,
                json={
                    "message": f"Deleted {kind} {record_id}",
                    "coordinatesDeleted": params.get("deleteCoordinates") == "true",
                    "chapterDeleted": params.get("deleteChapter") == "true",
                },
            )
        return httpx.Response(405, json={"error": "Method not allowed"})

    def _list(self, kind: str, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        page = int(params.get("page", "0"))
        size = int(params.get("size", "10"))
        rows = [self.present(kind, r) for r in self.collections[kind].values()]

        name_filter = params.get("nameFilter")
        if name_filter:
            rows = [r for r in rows if name_filter.lower() in str(r.get("name", "")).lower()]

        sort_by = params.get("sortBy")
        if sort_by:
            rows.sort(
                key=lambda r: (r.get(sort_by) is None, r.get(sort_by)),
                reverse=params.get("sortOrder") == "desc",
            )

        content = rows[page * size:(page + 1) * size]
        if self.bare_list:
            return httpx.Response(200, json=content)
        total = self.total_pages_override
        if total is None:
            total = math.ceil(len(rows) / size)
        return httpx.Response(200, json={"content": content, "totalPages": total})


class FakePush:
    """Push connector fed from a queue. None in the queue drops the connection."""

    def __init__(self) -> None:
        self.frames: asyncio.Queue = asyncio.Queue()
        self.urls: List[str] = []
        self.connections = 0

    def send(self, raw: str) -> None:
        self.frames.put_nowait(raw)

    def drop(self) -> None:
        self.frames.put_nowait(None)

    @asynccontextmanager
    async def connect(self, url: str) -> AsyncIterator[AsyncIterator[str]]:
        self.urls.append(url)
        self.connections += 1
        yield self._frames()

    async def _frames(self) -> AsyncIterator[str]:
        while True:
            raw = await self.frames.get()
            if raw is None:
                return
            yield raw


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() holds or fail after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def unit(
    record_id: int,
    name: str,
    health: int,
    coordinates_id: int = 1,
    chapter_id: Optional[int] = 1,
    category: str = "ASSAULT",
    weapon: str = "BOLT_PISTOL",
    heart_count: int = 2,
) -> Dict[str, Any]:
    """Flat unit record as the fake backend stores it."""
    return {
        "id": record_id,
        "name": name,
        "health": health,
        "heartCount": heart_count,
        "category": category,
        "weaponType": weapon,
        "coordinatesId": coordinates_id,
        "chapterId": chapter_id,
    }


@pytest.fixture
def backend():
    """Seeded fake backend."""
    return FakeBackend.seeded()


@pytest.fixture
def surface():
    """Recording surface answering yes by default."""
    return RecordingSurface()


@pytest.fixture
def settings():
    """Settings pointing at the fake backend."""
    return Settings(
        base_url="http://testserver",
        commit_grace_delay=0.01,
        reconnect_delay=0.01,
        default_page_size=10,
    )


@pytest.fixture
def http(backend, settings):
    """httpx client routed to the fake backend."""
    return httpx.AsyncClient(
        base_url=settings.base_url,
        transport=httpx.MockTransport(backend.handler),
    )


@pytest.fixture
def context(settings, surface, http):
    """Console context with one view per entity kind."""
    ctx = ConsoleContext(settings, surface, http)
    for kind in all_kinds():
        ctx.add_view(ReplicatedView(kind, ctx))
    return ctx


@pytest.fixture
def push():
    """Queue-fed push connector."""
    return FakePush()
