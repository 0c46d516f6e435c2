"""
Unit tests for the image cache.

Tests for ImageCache hit/miss behavior, failure handling and ordering.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from eventsync.ingestion.errors import FetchError, StorageError
from eventsync.ingestion.http import HttpClient, RetryPolicy
from eventsync.ingestion.images import ImageCache
from eventsync.schemas.event import ImageCacheEntry

ASSETS = "https://assets.blissbase.app"
SLUG = "meditation-workshop-2025-07-04-1800"

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def http(make_image_bytes):
    """Fake HttpClient serving a JPEG for source URLs and OK for asset URLs."""
    image = make_image_bytes()
    client = MagicMock()

    async def get_bytes(url):
        if url.startswith(ASSETS):
            return b"warm"
        return image

    client.get_bytes = AsyncMock(side_effect=get_bytes)
    return client


@pytest.fixture
def storage():
    storage = MagicMock()
    storage.upload_event_image.side_effect = (
        lambda buffer, slug, phash: f"{ASSETS}/events/{slug}/{phash}.webp"
    )
    return storage


@pytest.fixture
def make_cache(image_store, storage, http):
    def _make(store=None):
        return ImageCache(store or image_store, storage, http, concurrency=2, progress_every=1)

    return _make


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestMaterialize:
    """Tests for ImageCache.materialize."""

    def test_hit_makes_no_network_calls(self, image_store_factory, make_cache, http, storage):
        """Should return the cached URL without fetching or uploading."""
        store = image_store_factory(
            [ImageCacheEntry(original_url="https://src/a.jpg", event_slug=SLUG, url=f"{ASSETS}/x.webp")]
        )
        cache = make_cache(store)

        async def run():
            await cache.load()
            return await cache.materialize("https://src/a.jpg", SLUG)

        assert asyncio.run(run()) == f"{ASSETS}/x.webp"
        http.get_bytes.assert_not_awaited()
        storage.upload_event_image.assert_not_called()
        assert cache.stats.hits == 1

    def test_same_url_other_event_is_a_miss(self, image_store_factory, make_cache, storage):
        """Should key the cache by event slug as well as source URL."""
        store = image_store_factory(
            [ImageCacheEntry(original_url="https://src/a.jpg", event_slug="other", url=f"{ASSETS}/x.webp")]
        )
        cache = make_cache(store)

        async def run():
            await cache.load()
            return await cache.materialize("https://src/a.jpg", SLUG)

        url = asyncio.run(run())
        assert url.startswith(f"{ASSETS}/events/{SLUG}/")
        storage.upload_event_image.assert_called_once()

    def test_miss_uploads_and_records(self, make_cache, image_store, http):
        """Should render, upload, warm and write the new mapping."""
        cache = make_cache()
        url = asyncio.run(cache.materialize("https://src/a.jpg", SLUG))

        assert url.startswith(f"{ASSETS}/events/{SLUG}/") and url.endswith(".webp")
        assert image_store.entries[("https://src/a.jpg", SLUG)].url == url
        assert [c.args[0] for c in http.get_bytes.await_args_list] == ["https://src/a.jpg", url]
        assert cache.stats.misses == 1

    def test_warm_failure_falls_back_to_source(self, make_cache, image_store, http, make_image_bytes):
        """Should use the source URL for this run but keep the mapping."""
        image = make_image_bytes()

        async def get_bytes(url):
            if url.startswith(ASSETS):
                raise FetchError(url, "503 Service Unavailable", status_code=503)
            return image

        http.get_bytes.side_effect = get_bytes
        cache = make_cache()

        assert asyncio.run(cache.materialize("https://src/a.jpg", SLUG)) == "https://src/a.jpg"
        assert ("https://src/a.jpg", SLUG) in image_store.entries
        assert cache.stats.warm_failures == 1

    def test_download_failure_drops_image(self, make_cache, image_store, http, storage):
        """Should return None and record nothing when the source is gone."""
        http.get_bytes.side_effect = FetchError("https://src/a.jpg", "404 Not Found", status_code=404)
        cache = make_cache()

        assert asyncio.run(cache.materialize("https://src/a.jpg", SLUG)) is None
        assert image_store.entries == {}
        storage.upload_event_image.assert_not_called()
        assert cache.stats.failures == 1

    def test_undecodable_image_is_dropped(self, make_cache, http):
        """Should drop images that cannot be rendered."""
        http.get_bytes.side_effect = None
        http.get_bytes.return_value = b"<html>not an image</html>"
        assert asyncio.run(make_cache().materialize("https://src/a.jpg", SLUG)) is None

    def test_upload_failure_is_dropped(self, make_cache, storage, image_store):
        """Should drop the image when the upload fails."""
        storage.upload_event_image.side_effect = StorageError("denied")
        assert asyncio.run(make_cache().materialize("https://src/a.jpg", SLUG)) is None
        assert image_store.entries == {}


class TestEnrich:
    """Tests for ImageCache.enrich_event and enrich_all."""

    def test_enrich_event_replaces_urls(self, make_cache, create_stored_event, http, make_image_bytes):
        """Should swap source URLs for asset URLs and drop failed images."""
        image = make_image_bytes(size=(10, 10), fmt="PNG")

        async def get_bytes(url):
            if url == "https://src/broken.jpg":
                raise FetchError(url, "404 Not Found", status_code=404)
            if url.startswith(ASSETS):
                return b"warm"
            return image

        http.get_bytes.side_effect = get_bytes

        event = create_stored_event(image_urls=["https://src/a.jpg", "https://src/broken.jpg"])
        enriched = asyncio.run(make_cache().enrich_event(event))

        assert len(enriched.image_urls) == 1
        assert enriched.image_urls[0].startswith(f"{ASSETS}/events/{event.slug}/")
        assert event.image_urls == ["https://src/a.jpg", "https://src/broken.jpg"]

    def test_enrich_event_without_images(self, make_cache, create_stored_event, http):
        """Should return events without images untouched."""
        event = create_stored_event()
        assert asyncio.run(make_cache().enrich_event(event)) is event
        http.get_bytes.assert_not_awaited()

    def test_enrich_all_keeps_order(self, make_cache, create_stored_event):
        """Should return events in input order."""
        events = [
            create_stored_event(slug=f"event-{i}", image_urls=[f"https://src/{i}.jpg"])
            for i in range(5)
        ]
        enriched = asyncio.run(make_cache().enrich_all(events))
        assert [e.slug for e in enriched] == [f"event-{i}" for i in range(5)]
        assert all(e.image_urls[0].startswith(f"{ASSETS}/events/event-{i}/") for i, e in enumerate(enriched))

    def test_cache_write_failure_is_not_fatal(self, make_cache, create_stored_event):
        """Should keep the enriched URLs when recording the mapping fails."""
        store = MagicMock()
        store.insert_many.side_effect = RuntimeError("db gone")
        event = create_stored_event(image_urls=["https://src/a.jpg"])

        enriched = asyncio.run(make_cache(store).enrich_event(event))
        assert enriched.image_urls[0].startswith(ASSETS)


class TestWithHttpClient:
    """Tests for ImageCache over a real HttpClient and a mocked transport."""

    @staticmethod
    def _cache(image_store, storage, handler):
        http = HttpClient(
            transport=httpx.MockTransport(handler),
            retry=RetryPolicy(max_retries=0),
            sleep=AsyncMock(),
        )
        return ImageCache(image_store, storage, http, concurrency=2, progress_every=1)

    def test_redirect_loop_drops_only_that_image(self, image_store, storage, create_stored_event, make_image_bytes):
        """Should drop an image whose source redirects forever and keep the other events."""
        image = make_image_bytes(size=(10, 10), fmt="PNG")

        def handler(request):
            if request.url.path == "/loop.jpg":
                return httpx.Response(302, headers={"Location": str(request.url)})
            if str(request.url).startswith(ASSETS):
                return httpx.Response(200, content=b"warm")
            return httpx.Response(200, content=image)

        cache = self._cache(image_store, storage, handler)
        events = [
            create_stored_event(slug="event-loop", image_urls=["https://src.example/loop.jpg"]),
            create_stored_event(slug="event-ok", image_urls=["https://src.example/ok.jpg"]),
        ]

        enriched = asyncio.run(cache.enrich_all(events))

        assert [e.slug for e in enriched] == ["event-loop", "event-ok"]
        assert enriched[0].image_urls == []
        assert enriched[1].image_urls[0].startswith(f"{ASSETS}/events/event-ok/")
        assert cache.stats.failures == 1

    def test_warm_redirect_loop_falls_back_to_source(self, image_store, storage, make_image_bytes):
        """Should keep the source URL when warming the asset fails at the transport level."""
        image = make_image_bytes(size=(10, 10), fmt="PNG")

        def handler(request):
            if str(request.url).startswith(ASSETS):
                return httpx.Response(302, headers={"Location": str(request.url)})
            return httpx.Response(200, content=image)

        cache = self._cache(image_store, storage, handler)
        source = "https://src.example/a.jpg"

        assert asyncio.run(cache.materialize(source, SLUG)) == source
        assert (source, SLUG) in image_store.entries
        assert cache.stats.warm_failures == 1

    def test_unsupported_scheme_drops_image(self, image_store, storage):
        """Should drop an image whose source URL cannot be fetched at all."""

        def handler(request):
            raise httpx.UnsupportedProtocol("no handler", request=request)

        cache = self._cache(image_store, storage, handler)
        assert asyncio.run(cache.materialize("ftp://src.example/a.jpg", SLUG)) is None
        storage.upload_event_image.assert_not_called()
