"""
Persistence Layer for Event Ingestion.

Writes prepared StoredEvent objects to PostgreSQL and backs the geocode and
image caches. All classes take an active psycopg2 connection and are
synchronous; async callers go through ``asyncio.to_thread``.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import psycopg2
from psycopg2.extras import execute_values

from eventsync.ingestion.errors import PersistenceError
from eventsync.ingestion.reconciliation import StoredEventKey
from eventsync.schemas.event import GeocodeCacheEntry, ImageCacheEntry, StoredEvent

logger = logging.getLogger(__name__)

EVENT_COLUMNS: Tuple[str, ...] = (
    "slug",
    "name",
    "start_at",
    "end_at",
    "address",
    "price",
    "price_is_html",
    "description",
    "image_urls",
    "host",
    "host_link",
    "contact",
    "latitude",
    "longitude",
    "tags",
    "source",
    "source_url",
    "sold_out",
    "listed",
)

# id, slug and created_at are never overwritten
UPDATED_COLUMNS: Tuple[str, ...] = tuple(c for c in EVENT_COLUMNS if c != "slug")

UPSERT_EVENTS_SQL = f"""
    INSERT INTO events ({", ".join(EVENT_COLUMNS)})
    VALUES %s
    ON CONFLICT (slug) DO UPDATE SET
        {", ".join(f"{c} = EXCLUDED.{c}" for c in UPDATED_COLUMNS)},
        scraped_at = NOW()
"""


def event_to_row(event: StoredEvent) -> tuple:
    return tuple(getattr(event, column) for column in EVENT_COLUMNS)


class EventDataWriter:
    """
    Handles persisting StoredEvent objects to the ``events`` table.

    Upserts are keyed by slug, so re-running a source never duplicates rows.
    """

    def __init__(self, db_connection) -> None:
        """Initialize with an active psycopg2 connection."""
        self.conn = db_connection

    def upsert_batch(self, events: Sequence[StoredEvent]) -> int:
        """
        Upsert one batch in a single statement and transaction.

        Returns:
            int: Number of events written.

        Raises:
            PersistenceError: if the statement fails; the batch is rolled back.
        """
        if not events:
            return 0
        rows = [event_to_row(e) for e in events]
        try:
            with self.conn.cursor() as cur:
                execute_values(cur, UPSERT_EVENTS_SQL, rows, page_size=len(rows))
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Failed to upsert batch of {len(rows)} events: {e}") from e
        return len(rows)

    def persist_in_batches(self, events: Sequence[StoredEvent], batch_size: int = 15) -> int:
        """
        Upsert events in fixed-size batches, stopping at the first failure.

        Batches committed before a failure stay committed. Re-running is safe
        because upserts are idempotent by slug.

        Returns:
            int: Number of persisted events.

        Raises:
            PersistenceError: on the first failed batch.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        total = len(events)
        persisted = 0
        for start in range(0, total, batch_size):
            batch = events[start : start + batch_size]
            try:
                persisted += self.upsert_batch(batch)
            except PersistenceError:
                logger.error(
                    f"Error inserting batch starting at index {start}, "
                    f"{persisted}/{total} events were persisted before it",
                    exc_info=True,
                )
                raise
            logger.info(f" -> Progress: {persisted}/{total} events processed")

        return persisted

    def delete_by_sources(self, sources: Sequence[str]) -> int:
        """Delete every stored event of ``sources``. Returns the row count."""
        try:
            with self.conn.cursor() as cur:
                cur.execute("DELETE FROM events WHERE source = ANY(%s)", (list(sources),))
                deleted = cur.rowcount
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Error clearing events of {list(sources)}: {e}") from e
        return deleted

    def list_keys_for_sources(self, sources: Sequence[str]) -> List[StoredEventKey]:
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    "SELECT slug, source, source_url, start_at FROM events WHERE source = ANY(%s)",
                    (list(sources),),
                )
                rows = cur.fetchall()
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Error listing events of {list(sources)}: {e}") from e
        return [StoredEventKey(*row) for row in rows]

    def delete_by_slugs(self, slugs: Sequence[str]) -> List[Tuple[str, str]]:
        """
        Delete events by slug.

        Returns:
            The deleted (slug, source_url) pairs.
        """
        if not slugs:
            return []
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM events WHERE slug = ANY(%s) RETURNING slug, source_url",
                    (list(slugs),),
                )
                rows = cur.fetchall()
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Error deleting {len(slugs)} events: {e}") from e
        return [(slug, source_url) for slug, source_url in rows]


class GeocodeCacheStore:
    """``geocode_cache`` table. Entries are append-only."""

    def __init__(self, db_connection) -> None:
        self.conn = db_connection

    def get(self, address: str) -> Optional[GeocodeCacheEntry]:
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    "SELECT address, latitude, longitude, cached_at FROM geocode_cache "
                    "WHERE address = %s LIMIT 1",
                    (address,),
                )
                row = cur.fetchone()
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Geocode cache lookup failed: {e}") from e

        if row is None:
            return None
        address, latitude, longitude, cached_at = row
        return GeocodeCacheEntry(
            address=address, latitude=latitude, longitude=longitude, cached_at=cached_at
        )

    def put(self, entry: GeocodeCacheEntry) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO geocode_cache (address, latitude, longitude, cached_at)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (address) DO NOTHING
                    """,
                    (entry.address, entry.latitude, entry.longitude, entry.cached_at),
                )
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Geocode cache insert failed: {e}") from e


class ImageCacheStore:
    """``image_cache_map`` table, keyed by (original_url, event_slug)."""

    def __init__(self, db_connection) -> None:
        self.conn = db_connection

    def load_all(self) -> List[ImageCacheEntry]:
        try:
            with self.conn.cursor() as cur:
                cur.execute("SELECT original_url, event_slug, url FROM image_cache_map")
                rows = cur.fetchall()
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Failed to load image cache map: {e}") from e
        return [
            ImageCacheEntry(original_url=original_url, event_slug=event_slug, url=url)
            for original_url, event_slug, url in rows
        ]

    def insert_many(self, entries: Sequence[ImageCacheEntry]) -> int:
        if not entries:
            return 0
        rows = [(e.original_url, e.event_slug, e.url) for e in entries]
        try:
            with self.conn.cursor() as cur:
                execute_values(
                    cur,
                    """
                    INSERT INTO image_cache_map (original_url, event_slug, url)
                    VALUES %s
                    ON CONFLICT (original_url, event_slug) DO NOTHING
                    """,
                    rows,
                )
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Image cache insert failed: {e}") from e
        return len(rows)
