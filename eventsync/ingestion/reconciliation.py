"""
Reconciliation of stored events against a fresh scrape.

When an event disappears from a source's listing the organizer most likely
cancelled or removed it, so it is deleted from the store. Only sources that
were refreshed in this run are considered, and events that already started
are kept as history.
"""

import asyncio
import logging
from datetime import datetime
from typing import Collection, Iterable, List, NamedTuple, Protocol, Sequence, Tuple

from eventsync.schemas.event import StoredEvent

logger = logging.getLogger(__name__)


class StoredEventKey(NamedTuple):
    """The columns reconciliation needs from a stored row."""

    slug: str
    source: str
    source_url: str
    start_at: datetime


class ReconcilableStore(Protocol):
    def list_keys_for_sources(self, sources: Sequence[str]) -> List[StoredEventKey]: ...

    def delete_by_slugs(self, slugs: Sequence[str]) -> List[Tuple[str, str]]: ...


def find_stale(
    stored: Iterable[StoredEventKey],
    refreshed_sources: Collection[str],
    current_slugs: Collection[str],
    now: datetime,
) -> List[StoredEventKey]:
    """
    Select stored events that must be deleted.

    A stored event is stale when its source was refreshed, its slug is not
    part of the current result and it has not started before ``now``.
    """
    refreshed = set(refreshed_sources)
    current = set(current_slugs)
    return [
        key
        for key in stored
        if key.source in refreshed and key.slug not in current and key.start_at >= now
    ]


class Reconciler:
    """Deletes stale events of the refreshed sources."""

    def __init__(self, store: ReconcilableStore):
        self.store = store

    async def reconcile(
        self,
        refreshed_sources: Sequence[str],
        events: Sequence[StoredEvent],
        now: datetime,
    ) -> List[Tuple[str, str]]:
        """
        Delete stored events no longer listed by their source.

        Returns:
            The deleted (slug, source_url) pairs

        Raises:
            PersistenceError: if listing or deleting fails
        """
        if not refreshed_sources:
            return []

        stored = await asyncio.to_thread(self.store.list_keys_for_sources, list(refreshed_sources))
        stale = find_stale(stored, refreshed_sources, {e.slug for e in events}, now)
        if not stale:
            logger.info("No stale events to delete")
            return []

        deleted = await asyncio.to_thread(self.store.delete_by_slugs, [k.slug for k in stale])
        logger.info(
            f"Deleted {len(deleted)} events no longer listed by their source: {deleted}"
        )
        return deleted
