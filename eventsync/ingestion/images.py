"""
Image cache / asset pipeline.

Source images are downloaded once per (source URL, event slug), turned into
a WebP cover rendition, uploaded to object storage and remembered in the
``image_cache_map`` table. The whole table is loaded once per run so that a
cache hit costs no query and no network traffic.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from eventsync.ingestion.errors import FetchError, ImageProcessingError, StorageError
from eventsync.ingestion.http import HttpClient
from eventsync.ingestion.image_processing import process_cover_image
from eventsync.ingestion.storage import ObjectStorage
from eventsync.schemas.event import ImageCacheEntry, StoredEvent

logger = logging.getLogger(__name__)


class ImageStore(Protocol):
    """Durable image cache map (see ``persist.ImageCacheStore``)."""

    def load_all(self) -> List[ImageCacheEntry]: ...

    def insert_many(self, entries: Sequence[ImageCacheEntry]) -> int: ...


@dataclass
class ImageCacheStats:
    hits: int = 0
    misses: int = 0
    failures: int = 0
    warm_failures: int = 0

    @property
    def processed(self) -> int:
        return self.hits + self.misses


class ImageCache:
    """
    Materializes event images as cached assets.

    Args:
        store: image cache map store
        storage: object storage the renditions are uploaded to
        http: client used to download source images and warm assets
        concurrency: number of events enriched at the same time
        progress_every: log progress every N images
    """

    def __init__(
        self,
        store: ImageStore,
        storage: ObjectStorage,
        http: HttpClient,
        concurrency: int = 4,
        progress_every: int = 50,
    ):
        self.store = store
        self.storage = storage
        self.http = http
        self.concurrency = concurrency
        self.progress_every = progress_every
        self.stats = ImageCacheStats()
        self._entries: Dict[Tuple[str, str], str] = {}
        self._total = 0
        self._started_at = time.monotonic()

    async def load(self) -> int:
        """Prefetch the whole cache map. Returns the number of entries."""
        entries = await asyncio.to_thread(self.store.load_all)
        self._entries = {entry.key: entry.url for entry in entries}
        logger.info(f"Loaded {len(self._entries)} image cache entries")
        return len(self._entries)

    async def materialize(
        self,
        source_url: str,
        event_slug: str,
        pending: Optional[List[ImageCacheEntry]] = None,
    ) -> Optional[str]:
        """
        Return the URL to use for one event image.

        - cache hit: the cached asset URL, no network traffic
        - miss: download, render, upload, warm, record the mapping and
          return the asset URL
        - warm-up of the new asset fails: the original source URL
        - download, render or upload fails: None, the image is dropped

        New mappings are appended to ``pending`` when given, otherwise
        written to the store right away.
        """
        key = (source_url, event_slug)
        cached = self._entries.get(key)
        if cached is not None:
            self.stats.hits += 1
            self._report_progress()
            return cached

        self.stats.misses += 1
        logger.debug(f"Image {source_url} not found in image cache map")
        try:
            data = await self.http.get_bytes(source_url)
            buffer, phash = await asyncio.to_thread(process_cover_image, data)
            asset_url = await asyncio.to_thread(
                self.storage.upload_event_image, buffer, event_slug, phash
            )
        except (FetchError, ImageProcessingError, StorageError) as e:
            self.stats.failures += 1
            logger.error(f"Error processing image. Skipping this one {source_url}: {e}")
            self._report_progress()
            return None

        entry = ImageCacheEntry(original_url=source_url, event_slug=event_slug, url=asset_url)
        self._entries[key] = asset_url
        if pending is not None:
            pending.append(entry)
        else:
            await self._write([entry])

        self._report_progress()

        try:
            await self.http.get_bytes(asset_url)
        except FetchError as e:
            self.stats.warm_failures += 1
            logger.warning(f"Could not warm {asset_url}, using original image URL: {e}")
            return source_url

        return asset_url

    async def enrich_event(self, event: StoredEvent) -> StoredEvent:
        """Return a copy of ``event`` whose image URLs point at cached assets."""
        if not event.image_urls:
            return event

        pending: List[ImageCacheEntry] = []
        urls: List[str] = []
        for source_url in event.image_urls:
            url = await self.materialize(source_url, event.slug, pending)
            if url is not None:
                urls.append(url)

        if pending:
            await self._write(pending)

        return event.model_copy(update={"image_urls": urls})

    async def enrich_all(self, events: Sequence[StoredEvent]) -> List[StoredEvent]:
        """Enrich all events, at most ``concurrency`` at a time. Order is kept."""
        self._total = sum(len(e.image_urls) for e in events)
        self._started_at = time.monotonic()
        logger.info(f"Starting image caching, {self._total} images to process")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(event: StoredEvent) -> StoredEvent:
            async with semaphore:
                return await self.enrich_event(event)

        enriched = await asyncio.gather(*(_bounded(e) for e in events))

        elapsed = time.monotonic() - self._started_at
        logger.info(
            f"Image caching completed: {self.stats.processed} images processed in {elapsed:.1f}s "
            f"(hits={self.stats.hits}, misses={self.stats.misses}, failures={self.stats.failures})"
        )
        return list(enriched)

    async def _write(self, entries: List[ImageCacheEntry]) -> None:
        try:
            await asyncio.to_thread(self.store.insert_many, entries)
        except Exception as e:
            logger.error(f"Error writing {len(entries)} image cache entries: {e}")

    def _report_progress(self) -> None:
        processed = self.stats.processed
        if self.progress_every and processed % self.progress_every == 0:
            elapsed = time.monotonic() - self._started_at
            logger.info(
                f" -> Progress: {processed}/{self._total} images processed ({elapsed:.1f}s elapsed)"
            )
