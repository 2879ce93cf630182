"""
Unit tests for the backend client.

Tests cover:
- Bulk read filters and parsing
- Single-row mutations
- Unacknowledged counts via Content-Range
- Retry logic on 5xx errors and transport failures
- No retry on 4xx errors
- Async context manager
- Malformed bodies and rows surfacing as BackendError
"""
import pytest
import httpx
import respx
from unittest.mock import AsyncMock

from freshtrack.config import Settings, settings
from freshtrack.domain.errors import BackendError, TransientFetchError
from freshtrack.domain.models import Batch, BatchStatus
from freshtrack.infrastructure.api_constants import AlertSourceIds, APIConstants, BackendEndpoints
from freshtrack.infrastructure.backend_client import (
    BackendClient,
    parse_content_range_total,
)
from freshtrack.infrastructure.change_feed import LocalChangeFeed
from freshtrack.services.application.live_inventory_cache import CacheState, LiveInventoryCache


BASE_URL = "https://backend.test"
BATCHES_URL = f"{BASE_URL}{BackendEndpoints.BATCHES}"


def batch_row(record_id: str, **overrides) -> dict:
    row = {
        "id": record_id,
        "batch_id": f"B-{record_id}",
        "warehouse_id": "wh-a",
        "zone": "Z1",
        "crop": "Tomato",
        "quantity": 100,
        "unit": "kg",
        "entry_date": "2026-10-17T12:00:00+00:00",
        "shelf_life": 7,
        "risk_score": 20,
        "status": "active",
    }
    row.update(overrides)
    return row


@pytest.fixture
async def client():
    backend = BackendClient(base_url=BASE_URL, api_key="secret")
    yield backend
    await backend.close()


# ============================================================
# Client Initialization Tests
# ============================================================

class TestClientInitialization:
    """Tests for client initialization."""

    @pytest.mark.asyncio
    async def test_auth_headers(self, client):
        """API key is sent as apikey and bearer token."""
        assert client.client.headers["apikey"] == "secret"
        assert client.client.headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_timeout_comes_from_settings(self, client):
        """Settings are the only source of the default timeout."""
        assert client.client.timeout.read == settings.backend_timeout
        assert not hasattr(APIConstants, "DEFAULT_TIMEOUT")
        assert "debug" not in Settings.model_fields

    @pytest.mark.asyncio
    async def test_context_manager_exit_closes_client(self):
        """__aexit__ should close the HTTP client."""
        backend = BackendClient(base_url=BASE_URL)
        backend.close = AsyncMock()

        async with backend as ctx_client:
            assert ctx_client is backend

        backend.close.assert_called_once()


# ============================================================
# Bulk Read And Mutation Tests
# ============================================================

class TestBatchOperations:
    """Tests for batch reads and writes."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_active_batches_filters(self, client):
        """The listing excludes expired batches and orders newest first."""
        route = respx.get(BATCHES_URL).mock(
            return_value=httpx.Response(200, json=[batch_row("a1"), batch_row("a2")])
        )

        result = await client.fetch_active_batches("wh-a")

        assert [b.id for b in result] == ["a1", "a2"]
        assert all(isinstance(b, Batch) for b in result)
        params = route.calls.last.request.url.params
        assert params["status"] == "neq.expired"
        assert params["order"] == "entry_date.desc"
        assert params["warehouse_id"] == "eq.wh-a"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_without_scope_has_no_warehouse_filter(self, client):
        route = respx.get(BATCHES_URL).mock(return_value=httpx.Response(200, json=[]))

        assert await client.fetch_active_batches() == []
        assert "warehouse_id" not in route.calls.last.request.url.params

    @pytest.mark.asyncio
    @respx.mock
    async def test_insert_batch_returns_persisted_row(self, client):
        route = respx.post(BATCHES_URL).mock(
            return_value=httpx.Response(201, json=[batch_row("new", risk_score=8)])
        )

        result = await client.insert_batch({"batch_id": "B-new", "risk_score": 8})

        assert result.id == "new"
        assert result.risk_score == 8
        assert route.calls.last.request.headers["Prefer"] == "return=representation"

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_batch_filters_by_id(self, client):
        route = respx.patch(BATCHES_URL).mock(
            return_value=httpx.Response(200, json=[batch_row("a1", status="dispatched")])
        )

        result = await client.update_batch("a1", {"status": "dispatched"})

        assert result.status == BatchStatus.DISPATCHED
        assert route.calls.last.request.url.params["id"] == "eq.a1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_missing_batch_is_404(self, client):
        respx.get(BATCHES_URL).mock(return_value=httpx.Response(200, json=[]))

        with pytest.raises(BackendError) as exc_info:
            await client.get_batch("missing")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    @respx.mock
    async def test_delete_batch(self, client):
        route = respx.delete(BATCHES_URL).mock(return_value=httpx.Response(204))

        await client.delete_batch("a1")

        assert route.calls.last.request.url.params["id"] == "eq.a1"


# ============================================================
# Alert Count Tests
# ============================================================

class TestCountUnacknowledged:
    """Tests for counting unacknowledged alerts."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_sensor_count_from_content_range(self, client):
        route = respx.head(f"{BASE_URL}{BackendEndpoints.SENSOR_ALERTS}").mock(
            return_value=httpx.Response(200, headers={"Content-Range": "0-2/3"})
        )

        count = await client.count_unacknowledged(AlertSourceIds.SENSOR, "wh-a")

        assert count == 3
        request = route.calls.last.request
        assert request.headers["Prefer"] == "count=exact"
        assert request.url.params["acknowledged"] == "eq.false"
        assert request.url.params["warehouse_id"] == "eq.wh-a"

    @pytest.mark.asyncio
    @respx.mock
    async def test_order_count_filters_type(self, client):
        route = respx.head(f"{BASE_URL}{BackendEndpoints.ALERTS}").mock(
            return_value=httpx.Response(200, headers={"Content-Range": "*/0"})
        )

        assert await client.count_unacknowledged(AlertSourceIds.ORDER, "wh-a") == 0
        params = route.calls.last.request.url.params
        assert params["type"] == "eq.order"
        assert params["is_acknowledged"] == "eq.false"

    @pytest.mark.parametrize("header,expected", [
        ("0-24/57", 57),
        ("*/0", 0),
        ("0-0/1", 1),
    ])
    def test_parse_content_range_total(self, header, expected):
        assert parse_content_range_total(header) == expected

    @pytest.mark.parametrize("header", [None, "", "0-24", "0-24/*"])
    def test_parse_content_range_rejects_inexact(self, header):
        with pytest.raises(BackendError):
            parse_content_range_total(header)


# ============================================================
# Error Handling Tests
# ============================================================

class TestErrorHandling:
    """Tests for error handling and retries."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_4xx_error_no_retry(self, client):
        """4xx errors should not trigger retry."""
        route = respx.get(BATCHES_URL).mock(
            return_value=httpx.Response(401, text="Unauthorized")
        )

        with pytest.raises(BackendError, match="401") as exc_info:
            await client.fetch_active_batches()

        assert not isinstance(exc_info.value, TransientFetchError)
        assert exc_info.value.status_code == 401
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_5xx_error_triggers_retry(self, client):
        """First call fails with 503, second succeeds."""
        route = respx.get(BATCHES_URL)
        route.side_effect = [
            httpx.Response(503, text="Service Unavailable"),
            httpx.Response(200, json=[batch_row("a1")]),
        ]

        result = await client.fetch_active_batches()

        assert [b.id for b in result] == ["a1"]
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_persistent_5xx_is_transient_error(self, client):
        route = respx.get(BATCHES_URL).mock(
            return_value=httpx.Response(500, text="Internal Server Error")
        )

        with pytest.raises(TransientFetchError):
            await client.fetch_active_batches()

        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_is_retried(self, client):
        route = respx.get(BATCHES_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(TransientFetchError, match="refused"):
            await client.fetch_active_batches()

        assert route.call_count == 3


# ============================================================
# Malformed Response Tests
# ============================================================

class TestMalformedResponses:
    """Tests that bad bodies and rows surface as BackendError."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_out_of_range_score_is_backend_error(self, client):
        respx.get(BATCHES_URL).mock(
            return_value=httpx.Response(200, json=[batch_row("a1"), batch_row("a2", risk_score=150)])
        )

        with pytest.raises(BackendError, match="'a2'"):
            await client.fetch_active_batches("wh-a")

    @pytest.mark.asyncio
    @respx.mock
    async def test_html_body_is_backend_error(self, client):
        respx.get(BATCHES_URL).mock(
            return_value=httpx.Response(
                200, text="<html>gateway</html>", headers={"content-type": "text/html"}
            )
        )

        with pytest.raises(BackendError, match="not valid JSON"):
            await client.fetch_active_batches("wh-a")

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_list_body_is_backend_error(self, client):
        respx.get(BATCHES_URL).mock(return_value=httpx.Response(200, json={"rows": []}))

        with pytest.raises(BackendError, match="expected a list"):
            await client.fetch_active_batches()

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_single_row_is_backend_error(self, client):
        respx.get(BATCHES_URL).mock(
            return_value=httpx.Response(200, json=[batch_row("a1", quantity=-5)])
        )

        with pytest.raises(BackendError, match="invalid row 'a1'"):
            await client.get_batch("a1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_cache_start_records_invalid_row(self, client):
        respx.get(BATCHES_URL).mock(
            return_value=httpx.Response(200, json=[batch_row("a1", risk_score=150)])
        )
        cache = LiveInventoryCache(client, LocalChangeFeed(), warehouse_id="wh-a")

        started = await cache.start()

        assert started is False
        assert cache.state == CacheState.ERROR
        assert isinstance(cache.error, BackendError)
        assert cache.subscribed
        cache.teardown()

    @pytest.mark.asyncio
    @respx.mock
    async def test_cache_start_records_html_body(self, client):
        respx.get(BATCHES_URL).mock(
            return_value=httpx.Response(200, text="<html>gateway</html>")
        )
        cache = LiveInventoryCache(client, LocalChangeFeed(), warehouse_id="wh-a")

        started = await cache.start()

        assert started is False
        assert cache.state == CacheState.ERROR
        assert cache.records == []
        cache.teardown()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
