"""
Shared pytest fixtures for the eventsync test suite.

Provides factories for event records and in-memory stand-ins for the three
Postgres-backed stores.
"""

import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest
from PIL import Image

from eventsync.ingestion.errors import PersistenceError
from eventsync.ingestion.reconciliation import StoredEventKey
from eventsync.schemas.event import (
    GeocodeCacheEntry,
    ImageCacheEntry,
    NormalizedEvent,
    StoredEvent,
)

BERLIN_SUMMER = timezone(timedelta(hours=2))


# =============================================================================
# IN-MEMORY STORES
# =============================================================================


class InMemoryEventStore:
    """Dict-backed replacement for EventDataWriter."""

    def __init__(self, rows: Optional[Sequence[StoredEvent]] = None, fail_on_batch: Optional[int] = None):
        self.rows: Dict[str, StoredEvent] = {e.slug: e for e in rows or []}
        self.fail_on_batch = fail_on_batch
        self.batches: List[List[str]] = []
        self.schema_applied = False

    def ensure_schema(self) -> None:
        self.schema_applied = True

    def upsert_batch(self, events: Sequence[StoredEvent]) -> int:
        if self.fail_on_batch is not None and len(self.batches) == self.fail_on_batch:
            raise PersistenceError("batch failed")
        self.batches.append([e.slug for e in events])
        for event in events:
            self.rows[event.slug] = event
        return len(events)

    def persist_in_batches(self, events: Sequence[StoredEvent], batch_size: int = 15) -> int:
        persisted = 0
        for start in range(0, len(events), batch_size):
            persisted += self.upsert_batch(events[start : start + batch_size])
        return persisted

    def delete_by_sources(self, sources: Sequence[str]) -> int:
        doomed = [slug for slug, e in self.rows.items() if e.source in sources]
        for slug in doomed:
            del self.rows[slug]
        return len(doomed)

    def list_keys_for_sources(self, sources: Sequence[str]) -> List[StoredEventKey]:
        return [
            StoredEventKey(e.slug, e.source, e.source_url, e.start_at)
            for e in self.rows.values()
            if e.source in sources
        ]

    def delete_by_slugs(self, slugs: Sequence[str]) -> List[Tuple[str, str]]:
        deleted = []
        for slug in slugs:
            event = self.rows.pop(slug, None)
            if event is not None:
                deleted.append((event.slug, event.source_url))
        return deleted


class InMemoryGeocodeStore:
    def __init__(self):
        self.entries: Dict[str, GeocodeCacheEntry] = {}
        self.gets = 0

    def get(self, address: str) -> Optional[GeocodeCacheEntry]:
        self.gets += 1
        return self.entries.get(address)

    def put(self, entry: GeocodeCacheEntry) -> None:
        self.entries.setdefault(entry.address, entry)


class InMemoryImageStore:
    def __init__(self, entries: Optional[Sequence[ImageCacheEntry]] = None):
        self.entries: Dict[Tuple[str, str], ImageCacheEntry] = {e.key: e for e in entries or []}
        self.load_calls = 0

    def load_all(self) -> List[ImageCacheEntry]:
        self.load_calls += 1
        return list(self.entries.values())

    def insert_many(self, entries: Sequence[ImageCacheEntry]) -> int:
        for entry in entries:
            self.entries.setdefault(entry.key, entry)
        return len(entries)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def create_normalized_event():
    """
    Return a function that creates NormalizedEvent objects with sensible defaults.

    Example:
        event = create_normalized_event(name="Ecstatic Dance", source="awara")
    """

    def _create(
        name: str = "Meditation Workshop",
        start_at: Optional[datetime] = None,
        **kwargs,
    ) -> NormalizedEvent:
        if start_at is None:
            start_at = datetime(2025, 7, 4, 18, 0, tzinfo=BERLIN_SUMMER)

        defaults = {
            "name": name,
            "start_at": start_at,
            "address": ["Yogaloft", "Kastanienallee 1", "10435 Berlin"],
            "source": "awara",
            "source_url": "https://www.awara.events/event/meditation-workshop",
        }
        defaults.update(kwargs)
        return NormalizedEvent(**defaults)

    return _create


@pytest.fixture
def create_stored_event():
    """Return a function that creates StoredEvent objects with sensible defaults."""

    def _create(
        slug: str = "meditation-workshop-2025-07-04-1800",
        name: str = "Meditation Workshop",
        start_at: Optional[datetime] = None,
        **kwargs,
    ) -> StoredEvent:
        if start_at is None:
            start_at = datetime(2025, 7, 4, 18, 0, tzinfo=BERLIN_SUMMER)

        defaults = {
            "slug": slug,
            "name": name,
            "start_at": start_at,
            "source": "awara",
            "source_url": f"https://www.awara.events/event/{slug}",
        }
        defaults.update(kwargs)
        return StoredEvent(**defaults)

    return _create


@pytest.fixture
def event_store():
    return InMemoryEventStore()


@pytest.fixture
def geocode_store():
    return InMemoryGeocodeStore()


@pytest.fixture
def image_store():
    return InMemoryImageStore()


@pytest.fixture
def make_image_bytes():
    """Return a function rendering a solid-color image in the given format."""

    def _make(size=(1200, 800), color=(200, 40, 40), fmt="JPEG", mode="RGB") -> bytes:
        image = Image.new(mode, size, color)
        buffer = io.BytesIO()
        image.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def event_store_factory():
    """Return InMemoryEventStore for tests that need pre-seeded rows or failures."""
    return InMemoryEventStore


@pytest.fixture
def image_store_factory():
    return InMemoryImageStore


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging() so caplog keeps seeing package records."""
    yield
    package_logger = logging.getLogger("eventsync")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
    if hasattr(package_logger, "_eventsync_run_id"):
        del package_logger._eventsync_run_id
