"""Unit tests for stale event reconciliation."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from eventsync.ingestion.reconciliation import Reconciler, StoredEventKey, find_stale

NOW = datetime(2025, 7, 1, 12, 0, tzinfo=timezone.utc)


def _key(slug, source="awara", days=1):
    return StoredEventKey(slug, source, f"https://{source}.example/{slug}", NOW + timedelta(days=days))


class TestFindStale:
    """Tests for find_stale."""

    def test_missing_future_event_is_stale(self):
        """Should select future events of refreshed sources missing from the result."""
        stored = [_key("kept"), _key("gone")]
        assert find_stale(stored, ["awara"], {"kept"}, NOW) == [_key("gone")]

    def test_other_sources_are_untouched(self):
        """Should ignore sources that were not refreshed."""
        stored = [_key("gone", source="tribehaus")]
        assert find_stale(stored, ["awara"], set(), NOW) == []

    def test_past_events_are_kept(self):
        """Should keep events that already started."""
        stored = [_key("yesterday", days=-1)]
        assert find_stale(stored, ["awara"], set(), NOW) == []

    def test_event_starting_now_is_stale(self):
        stored = [_key("now", days=0)]
        assert find_stale(stored, ["awara"], set(), NOW) == stored


class TestReconciler:
    """Tests for Reconciler."""

    @pytest.fixture
    def seeded_store(self, event_store_factory, create_stored_event):
        future = NOW + timedelta(days=3)
        past = NOW - timedelta(days=3)
        return event_store_factory(
            [
                create_stored_event(slug="awara-kept", start_at=future),
                create_stored_event(slug="awara-gone", start_at=future),
                create_stored_event(slug="awara-past", start_at=past),
                create_stored_event(slug="tribe-gone", start_at=future, source="tribehaus"),
            ]
        )

    def test_deletes_only_stale_rows(self, seeded_store, create_stored_event):
        """Should delete stale rows of refreshed sources and report them."""
        current = [create_stored_event(slug="awara-kept")]
        deleted = asyncio.run(Reconciler(seeded_store).reconcile(["awara"], current, NOW))

        assert deleted == [("awara-gone", "https://www.awara.events/event/awara-gone")]
        assert set(seeded_store.rows) == {"awara-kept", "awara-past", "tribe-gone"}

    def test_no_refreshed_sources(self, seeded_store):
        """Should do nothing when no source succeeded."""
        assert asyncio.run(Reconciler(seeded_store).reconcile([], [], NOW)) == []
        assert len(seeded_store.rows) == 4
