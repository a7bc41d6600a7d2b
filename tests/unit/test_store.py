"""
Unit tests for RemoteCollectionStore.

Tests cover:
- Paged response parsing
- Query parameters for paging, sorting and filtering
- Error mapping (transport, format, server rejection)
- Delete flags and outcomes
- UnitStore special operations
"""

import httpx
import pytest

from marine_console.entities import CHAPTERS, COORDINATES, UNITS
from marine_console.errors import FormatError, ServerRejection, TransportError
from marine_console.models import SortDescriptor, SortDirection
from marine_console.store import NameMatch, RemoteCollectionStore, UnitStore, make_store, parse_page


def client_for(handler):
    return httpx.AsyncClient(base_url="http://testserver", transport=httpx.MockTransport(handler))


class TestParsePage:
    """Tests for parse_page."""

    def test_envelope(self):
        page = parse_page({"content": [{"id": 1}], "totalPages": 3}, 0, 10)

        assert page.records == [{"id": 1}]
        assert page.total_pages == 3
        assert page.index == 0
        assert page.size == 10

    def test_nested_total(self):
        page = parse_page({"content": [], "page": {"totalPages": 4}}, 1, 5)
        assert page.total_pages == 4

    def test_bare_list(self):
        """A bare list is one page, or none when empty."""
        assert parse_page([{"id": 1}, {"id": 2}], 0, 10).total_pages == 1
        assert parse_page([], 0, 10).total_pages == 0

    def test_neither_shape(self):
        with pytest.raises(FormatError):
            parse_page({"items": []}, 0, 10)

    def test_content_not_list(self):
        with pytest.raises(FormatError):
            parse_page({"content": {"id": 1}}, 0, 10)

    def test_record_not_object(self):
        with pytest.raises(FormatError, match="Expected record object"):
            parse_page([1, 2], 0, 10)

    def test_invalid_total(self):
        with pytest.raises(FormatError, match="totalPages"):
            parse_page({"content": [], "totalPages": "many"}, 0, 10)


class TestFetchPage:
    """Tests for fetch_page."""

    @pytest.mark.asyncio
    async def test_paging_sort_and_filter_params(self, backend, http):
        store = RemoteCollectionStore(UNITS, http)

        await store.fetch_page(
            1,
            2,
            SortDescriptor("name", SortDirection.DESCENDING),
            {"nameFilter": "a"},
        )

        params = backend.calls("GET", "/api/spacemarines")[-1].url.params
        assert params["page"] == "1"
        assert params["size"] == "2"
        assert params["sortBy"] == "name"
        assert params["sortOrder"] == "desc"
        assert params["nameFilter"] == "a"

    @pytest.mark.asyncio
    async def test_no_sort_params_without_sort(self, backend, http):
        store = RemoteCollectionStore(CHAPTERS, http)

        page = await store.fetch_page(0, 10)

        params = backend.calls("GET", "/api/chapters")[-1].url.params
        assert "sortBy" not in params
        assert [r["name"] for r in page.records] == ["Ultramarines", "Blood Angels", "Iron Hands"]

    @pytest.mark.asyncio
    async def test_fetch_all_uses_one_large_page(self, backend, http):
        store = RemoteCollectionStore(CHAPTERS, http)

        records = await store.fetch_all(1000)

        assert len(records) == 3
        assert backend.calls("GET", "/api/chapters")[-1].url.params["size"] == "1000"

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        store = RemoteCollectionStore(UNITS, client_for(lambda r: httpx.Response(200, text="<html>")))

        with pytest.raises(FormatError):
            await store.fetch_page(0, 10)

    @pytest.mark.asyncio
    async def test_wrong_shape_carries_url(self):
        store = RemoteCollectionStore(UNITS, client_for(lambda r: httpx.Response(200, json={"x": 1})))

        with pytest.raises(FormatError) as exc_info:
            await store.fetch_page(0, 10)

        assert exc_info.value.url == "/api/spacemarines"


class TestErrors:
    """Tests for error mapping."""

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = RemoteCollectionStore(UNITS, client_for(handler))

        with pytest.raises(TransportError) as exc_info:
            await store.fetch_page(0, 10)

        assert exc_info.value.code == "TRANSPORT_ERROR"
        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_json_rejection_reason_verbatim(self, backend, http):
        backend.reject(
            "PUT",
            "/api/spacemarines/1",
            400,
            {"error": "Health must be positive", "type": "ValidationException", "path": "/api/spacemarines/1"},
        )
        store = RemoteCollectionStore(UNITS, http)

        with pytest.raises(ServerRejection) as exc_info:
            await store.update(1, {"name": "Cato", "health": 5})

        assert exc_info.value.reason == "Health must be positive"
        assert exc_info.value.status == 400

    @pytest.mark.asyncio
    async def test_message_field_used_when_no_error(self, backend, http):
        backend.reject("GET", "/api/chapters/1", 404, {"message": "Chapter not found"})
        store = RemoteCollectionStore(CHAPTERS, http)

        with pytest.raises(ServerRejection, match="Chapter not found"):
            await store.fetch_one(1)

    @pytest.mark.asyncio
    async def test_text_rejection(self, backend, http):
        backend.reject("DELETE", "/api/chapters/1", 409, "Chapter is still referenced")
        store = RemoteCollectionStore(CHAPTERS, http)

        with pytest.raises(ServerRejection) as exc_info:
            await store.remove(1)

        assert exc_info.value.reason == "Chapter is still referenced"
        assert exc_info.value.status == 409


class TestWrites:
    """Tests for create, update and remove."""

    @pytest.mark.asyncio
    async def test_create_serializes_payload(self, backend, http):
        store = RemoteCollectionStore(CHAPTERS, http)

        record = await store.create({"name": " Salamanders ", "marinesCount": "250", "extra": 1})

        body = backend.body(backend.calls("POST", "/api/chapters")[-1])
        assert body == {"name": "Salamanders", "marinesCount": 250}
        assert record["id"] == 4

    @pytest.mark.asyncio
    async def test_update_nullable_y(self, backend, http):
        """Clearing y sends null, not 0."""
        store = RemoteCollectionStore(COORDINATES, http)

        await store.update(1, {"x": "1.5", "y": ""})

        body = backend.body(backend.calls("PUT", "/api/coordinates/1")[-1])
        assert body == {"x": 1.5, "y": None}

    @pytest.mark.asyncio
    async def test_update_without_body(self):
        store = RemoteCollectionStore(CHAPTERS, client_for(lambda r: httpx.Response(204)))

        record = await store.update(5, {"name": "Iron Hands", "marinesCount": 10})

        assert record == {"id": 5, "name": "Iron Hands", "marinesCount": 10}

    @pytest.mark.asyncio
    async def test_remove_without_cascade_has_no_flags(self, backend, http):
        store = RemoteCollectionStore(UNITS, http)

        outcome = await store.remove(2)

        request = backend.calls("DELETE")[-1]
        assert request.url.path == "/api/spacemarines/2"
        assert len(request.url.params) == 0
        assert outcome.message == "Deleted units 2"

    @pytest.mark.asyncio
    async def test_remove_forwards_explicit_flags(self, backend, http):
        store = RemoteCollectionStore(UNITS, http)

        outcome = await store.remove(1, {"deleteCoordinates": False, "deleteChapter": True})

        params = backend.calls("DELETE")[-1].url.params
        assert params["deleteCoordinates"] == "false"
        assert params["deleteChapter"] == "true"
        assert outcome.chapter_deleted
        assert not outcome.coordinates_deleted

    @pytest.mark.asyncio
    async def test_remove_text_response(self):
        store = RemoteCollectionStore(UNITS, client_for(lambda r: httpx.Response(200, text="Removed")))

        outcome = await store.remove(1)

        assert outcome.message == "Removed"

    @pytest.mark.asyncio
    async def test_fetch_related(self, http):
        store = RemoteCollectionStore(CHAPTERS, http)

        summary = await store.fetch_related(1)

        assert [u["name"] for u in summary.dependents["units"]] == ["Cato"]


class TestUnitStore:
    """Tests for the special operations on marines."""

    def test_units_get_unit_store(self, http):
        assert isinstance(make_store(UNITS, http), UnitStore)
        assert type(make_store(CHAPTERS, http)) is RemoteCollectionStore

    @pytest.mark.asyncio
    async def test_average_heart_count(self, backend, http):
        backend.collections["units"][2]["heartCount"] = 3

        average = await UnitStore(UNITS, http).average_heart_count()

        assert average == pytest.approx(7 / 3)
        assert backend.requests[-1].url.path == "/api/special-operations/average-heart-count"

    @pytest.mark.asyncio
    async def test_average_missing_value(self):
        store = UnitStore(UNITS, client_for(lambda r: httpx.Response(200, json={"mean": 2})))

        with pytest.raises(FormatError, match="average"):
            await store.average_heart_count()

    @pytest.mark.asyncio
    async def test_count_by_health(self, backend, http):
        count = await UnitStore(UNITS, http).count_by_health(101)

        assert count == 2
        assert backend.requests[-1].url.params["health"] == "101"

    @pytest.mark.asyncio
    async def test_search_by_name_pairs(self, backend, http):
        matches = await UnitStore(UNITS, http).search_by_name("A")

        assert matches == [NameMatch("Cato", 1), NameMatch("Alaric", 2)]
        assert backend.requests[-1].url.params["name"] == "A"

    @pytest.mark.asyncio
    async def test_search_bad_hit(self):
        store = UnitStore(UNITS, client_for(lambda r: httpx.Response(200, json={"marines": ["Cato"]})))

        with pytest.raises(FormatError, match="Unexpected search hit"):
            await store.search_by_name("Cato")

    @pytest.mark.asyncio
    async def test_remove_from_chapter(self, backend, http):
        await UnitStore(UNITS, http).remove_from_chapter(1)

        request = backend.calls("PUT", "/api/spacemarines/1/remove-from-chapter")[-1]
        assert request.content == b""
        assert backend.collections["units"][1]["chapterId"] is None

    @pytest.mark.asyncio
    async def test_remove_from_chapter_rejected(self, backend, http):
        backend.reject("PUT", "/api/spacemarines/1/remove-from-chapter", 400, "")

        with pytest.raises(ServerRejection) as exc_info:
            await UnitStore(UNITS, http).remove_from_chapter(1)

        assert exc_info.value.status == 400
