"""
Tests for the metadata cache.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from edm_forms.clients.odata_client import ODataHttpClient
from edm_forms.exceptions import EntityNotFoundError, TransportError
from edm_forms.services.metadata_cache import MetadataCache

from conftest import ENDPOINT, SHOP_METADATA


class FakeClock:
    """Manually advanced clock."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class GatedService:
    """Metadata endpoint whose first answer waits for a gate."""

    def __init__(self):
        self.calls = 0
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            await self.gate.wait()
        return httpx.Response(200, text=SHOP_METADATA)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(http_client, clock):
    return MetadataCache(
        http=http_client, ttl_seconds=300, coalesce_window_seconds=0.3, clock=clock
    )


class TestMetadataCache:
    """Tests for MetadataCache."""

    @pytest.mark.asyncio
    async def test_get_returns_descriptor(self, cache, service):
        """Test fetching a descriptor on a cold cache."""
        descriptor = await cache.get(ENDPOINT, "Order")

        assert descriptor.name == "Order"
        assert service.metadata_calls() == 1

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self, cache, service, clock):
        """Test that a valid record is served without fetching."""
        first = await cache.get(ENDPOINT, "Order")
        clock.advance(299)
        second = await cache.get(ENDPOINT, "Order")

        assert second is first
        assert service.metadata_calls() == 1
        assert cache.is_fresh(ENDPOINT, "Order")

    @pytest.mark.asyncio
    async def test_expired_record_refetched(self, cache, service, clock):
        """Test that records expire after the TTL."""
        await cache.get(ENDPOINT, "Order")
        clock.advance(301)

        assert cache.peek(ENDPOINT, "Order") is None
        await cache.get(ENDPOINT, "Order")
        assert service.metadata_calls() == 2

    @pytest.mark.asyncio
    async def test_record_validity_window(self, cache, clock):
        """Test fetched_at and expires_at of a stored record."""
        started = clock.now
        await cache.get(ENDPOINT, "Order")

        record = cache.peek(ENDPOINT, "Order")
        assert record.fetched_at == started
        assert record.expires_at == started + timedelta(seconds=300)

    @pytest.mark.asyncio
    async def test_concurrent_gets_coalesce(self, cache, service):
        """Test that concurrent callers share one download."""
        results = await asyncio.gather(
            cache.get(ENDPOINT, "Order"),
            cache.get(ENDPOINT, "Order"),
            cache.get(ENDPOINT, "Customer"),
        )

        assert service.metadata_calls() == 1
        assert results[0] == results[1]
        assert results[2].name == "Customer"

    @pytest.mark.asyncio
    async def test_force_refresh_refetches(self, cache, service):
        """Test that force_refresh skips a valid record."""
        await cache.get(ENDPOINT, "Order")
        await cache.get(ENDPOINT, "Order", force_refresh=True)

        assert service.metadata_calls() == 2

    @pytest.mark.asyncio
    async def test_trailing_slash_is_same_endpoint(self, cache, service):
        await cache.get(ENDPOINT, "Order")
        await cache.get(ENDPOINT + "/", "Order")

        assert service.metadata_calls() == 1

    @pytest.mark.asyncio
    async def test_unknown_entity(self, cache):
        """Test that a missing entity raises and caches nothing for it."""
        with pytest.raises(EntityNotFoundError):
            await cache.get(ENDPOINT, "Invoice")

        assert cache.peek(ENDPOINT, "Invoice") is None
        assert cache.peek(ENDPOINT, "Order") is None

    @pytest.mark.asyncio
    async def test_failed_fetch_not_cached(self, cache, service):
        """Test that a failure propagates and the next call retries."""
        service.respond("GET", "/odata/$metadata", 500)

        with pytest.raises(TransportError) as exc_info:
            await cache.get(ENDPOINT, "Order")
        assert exc_info.value.message == "HTTP error! status: 500"
        assert exc_info.value.upstream_status == 500

        service.routes.clear()
        descriptor = await cache.get(ENDPOINT, "Order")
        assert descriptor.name == "Order"
        assert service.metadata_calls() == 2

    def test_invalidate(self, cache):
        """Test invalidating an entity that is not cached."""
        assert cache.invalidate(ENDPOINT, "Order") is False
        assert cache.invalidate_all() == 0

    @pytest.mark.asyncio
    async def test_invalidate_cached(self, cache, service):
        await asyncio.gather(
            cache.get(ENDPOINT, "Order"),
            cache.get(ENDPOINT, "Customer"),
        )

        assert cache.invalidate(ENDPOINT, "Order") is True
        assert cache.peek(ENDPOINT, "Order") is None
        assert cache.cached_entities() == [(ENDPOINT, "Customer")]
        assert cache.invalidate_all() == 1

        await cache.get(ENDPOINT, "Order")
        assert service.metadata_calls() == 2


class TestSubscriptions:
    """Tests for cache change notifications."""

    @pytest.mark.asyncio
    async def test_listener_notified(self, cache):
        received = []
        cache.subscribe(lambda endpoint, entity, descriptor: received.append((endpoint, entity)))

        await cache.get(ENDPOINT, "Order")
        await cache.get(ENDPOINT, "Order")

        assert received == [(ENDPOINT, "Order")]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, cache):
        received = []
        unsubscribe = cache.subscribe(lambda *args: received.append(args))
        unsubscribe()

        await cache.get(ENDPOINT, "Order")
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_get(self, cache):
        def broken(*args):
            raise RuntimeError("listener bug")

        cache.subscribe(broken)
        descriptor = await cache.get(ENDPOINT, "Order")
        assert descriptor.name == "Order"


class TestInflightFetches:
    """Tests for overlapping fetches."""

    @pytest.mark.asyncio
    async def test_stale_result_discarded(self, clock):
        """Test that an older fetch never overwrites a newer record."""
        upstream = GatedService()
        cache = MetadataCache(
            http=ODataHttpClient(transport=httpx.MockTransport(upstream)),
            ttl_seconds=300,
            coalesce_window_seconds=0.3,
            clock=clock,
        )
        notifications = []
        cache.subscribe(lambda *args: notifications.append(args))

        slow = asyncio.create_task(cache.get(ENDPOINT, "Order"))
        await upstream.started.wait()

        clock.advance(1)
        fresh = await cache.get(ENDPOINT, "Order", force_refresh=True)
        newer_fetch = clock.now

        upstream.gate.set()
        stale = await slow

        assert upstream.calls == 2
        assert cache.peek(ENDPOINT, "Order").fetched_at == newer_fetch
        assert stale is fresh
        assert len(notifications) == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_fetch(self, clock):
        upstream = GatedService()
        cache = MetadataCache(
            http=ODataHttpClient(transport=httpx.MockTransport(upstream)),
            clock=clock,
            coalesce_window_seconds=0.3,
        )

        first = asyncio.create_task(cache.get(ENDPOINT, "Order"))
        await upstream.started.wait()
        second = asyncio.create_task(cache.get(ENDPOINT, "Order"))
        await asyncio.sleep(0)

        first.cancel()
        upstream.gate.set()
        descriptor = await second

        assert descriptor.name == "Order"
        assert upstream.calls == 1
        with pytest.raises(asyncio.CancelledError):
            await first
