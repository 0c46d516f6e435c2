"""
Ingestion Orchestrator.

Runs the selected source adapters concurrently and feeds their output
through the pipeline:

    scrape → prepare → span filter → dedupe → (clean) → image cache
    → reconcile → persist in batches

A failing source is logged and left out; only sources that produced events
are cleaned, reconciled and persisted. A failed database write stops the run.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Sequence

from eventsync.configs.settings import Settings
from eventsync.ingestion.adapters import AdapterContext
from eventsync.ingestion.database import ensure_schema, get_connection
from eventsync.ingestion.deduplication import EventDeduplicator, SlugDeduplicator
from eventsync.ingestion.errors import SourceAdapterError
from eventsync.ingestion.filters import filter_by_span
from eventsync.ingestion.geocoding import GeocodeCache, GoogleGeocoder
from eventsync.ingestion.http import HttpClient, RetryPolicy
from eventsync.ingestion.images import ImageCache
from eventsync.ingestion.persist import EventDataWriter, GeocodeCacheStore, ImageCacheStore
from eventsync.ingestion.pipeline import (
    IngestionRunResult,
    PipelineConfig,
    PipelineStatus,
    SourceRunResult,
    coerce_records,
    prepare_events,
)
from eventsync.ingestion.reconciliation import Reconciler
from eventsync.ingestion.registry import SourceRegistry, SourceSpec, load_source_registry
from eventsync.ingestion.storage import ObjectStorage
from eventsync.monitoring import with_context

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PipelineStores:
    """The three durable stores plus the schema bootstrap."""

    events: EventDataWriter
    geocode: GeocodeCacheStore
    images: ImageCacheStore
    ensure_schema: Callable[[], None]

    @classmethod
    def postgres(cls, conn) -> "PipelineStores":
        return cls(
            events=EventDataWriter(conn),
            geocode=GeocodeCacheStore(conn),
            images=ImageCacheStore(conn),
            ensure_schema=functools.partial(ensure_schema, conn),
        )


class IngestionOrchestrator:
    """
    Coordinates one ingestion run over the configured sources.

    Responsibilities:
    - Fan out to the selected adapters and isolate their failures
    - Prepare, filter and deduplicate the collected records
    - Materialize images, reconcile and persist
    """

    def __init__(
        self,
        registry: SourceRegistry,
        config: PipelineConfig,
        stores: PipelineStores,
        context: AdapterContext,
        image_cache: Optional[ImageCache] = None,
        deduplicator: Optional[EventDeduplicator] = None,
    ):
        """Initialize the orchestrator."""
        self.registry = registry
        self.config = config
        self.stores = stores
        self.context = context
        self.image_cache = image_cache
        self.deduplicator = deduplicator or SlugDeduplicator()
        self.reconciler = Reconciler(stores.events)

    # ========================================================================
    # SOURCE FAN-OUT
    # ========================================================================

    async def _run_source(self, spec: SourceSpec, run_id: str) -> SourceRunResult:
        log = with_context(logger, run_id=run_id, source_id=spec.name, stage="scrape")
        started_at = _utc_now()
        log.info(f"Starting scrape for {spec.name}")

        try:
            adapter = spec.create(self.context)
            try:
                raw = await adapter.run()
            finally:
                await adapter.close()

            events, invalid = coerce_records(raw, spec.name)
            if not events:
                raise SourceAdapterError(spec.name, "no valid events found")
        except Exception as e:
            log.error(f"Source {spec.name} failed: {e}", exc_info=True)
            return SourceRunResult(
                source_name=spec.name,
                status=PipelineStatus.FAILED,
                started_at=started_at,
                ended_at=_utc_now(),
                error=str(e),
            )

        log.info(f"Finished scrape for {spec.name}: {len(events)} events, {invalid} invalid")
        return SourceRunResult(
            source_name=spec.name,
            status=PipelineStatus.SUCCESS,
            started_at=started_at,
            ended_at=_utc_now(),
            events=events,
            invalid_records=invalid,
        )

    async def run_sources(
        self, specs: Sequence[SourceSpec], run_id: str
    ) -> Dict[str, SourceRunResult]:
        """Run all adapters concurrently. Never raises for a source failure."""
        results = await asyncio.gather(*(self._run_source(spec, run_id) for spec in specs))
        return {r.source_name: r for r in results}

    # ========================================================================
    # END-TO-END EXECUTION & PERSISTENCE
    # ========================================================================

    async def run(
        self,
        source: Optional[str] = None,
        clean: bool = False,
        run_id: Optional[str] = None,
    ) -> IngestionRunResult:
        """
        Execute one ingestion run.

        Args:
            source: Single source to refresh; None (or an unknown name) runs all
            clean: Delete all stored events of the refreshed sources first
            run_id: Identifier used in log records

        Returns:
            IngestionRunResult with the counts of every stage

        Raises:
            PersistenceError: if the schema, a cache load, a delete or a batch
                upsert fails
        """
        result = IngestionRunResult()
        if run_id:
            result.run_id = run_id
        result.status = PipelineStatus.RUNNING
        log = with_context(logger, run_id=result.run_id)

        specs = self.registry.select(source)
        log.info(f"Starting ingestion run for sources: {', '.join(s.name for s in specs)}")

        await asyncio.to_thread(self.stores.ensure_schema)

        # 1. Scrape
        result.sources = await self.run_sources(specs, result.run_id)
        refreshed = result.succeeded_sources
        if result.failed_sources:
            log.warning(f"Failed sources: {', '.join(result.failed_sources)}")

        scraped = [e for name in refreshed for e in result.sources[name].events]
        result.scraped = len(scraped)
        result.invalid = sum(r.invalid_records for r in result.sources.values())
        log.info(f"--- Total events scraped this run: {result.scraped} ---")

        if not scraped:
            log.info("No events to process")
            result.status = PipelineStatus.FAILED if result.failed_sources else PipelineStatus.SUCCESS
            result.ended_at = _utc_now()
            return result

        # 2. Prepare, filter, deduplicate
        prep_log = with_context(log, stage="prepare")
        prepared, dropped = prepare_events(scraped, self.config)
        result.invalid += dropped
        kept, spanned = filter_by_span(prepared, self.config.max_span_days, self.config.timezone)
        result.span_filtered = len(spanned)
        unique = self.deduplicator.deduplicate(kept)
        result.duplicates = len(kept) - len(unique)
        prep_log.info(
            f"Prepared {len(prepared)} events: {dropped} dropped, {len(spanned)} too long, "
            f"{result.duplicates} duplicates, {len(unique)} unique"
        )

        # 3. Clean
        if clean:
            result.cleaned = await asyncio.to_thread(self.stores.events.delete_by_sources, refreshed)
            with_context(log, stage="clean").info(
                f"Cleared {result.cleaned} existing events from {len(refreshed)} source(s)"
            )

        # 4. Images
        if self.image_cache is not None:
            await self.image_cache.load()
            unique = await self.image_cache.enrich_all(unique)
            stats = self.image_cache.stats
            result.image_hits = stats.hits
            result.image_misses = stats.misses
            result.image_failures = stats.failures
        else:
            log.warning("Image caching disabled, keeping original image URLs")

        # 5. Reconcile
        deleted = await self.reconciler.reconcile(refreshed, unique, result.started_at)
        result.deleted = len(deleted)

        # 6. Persist
        persist_log = with_context(log, stage="persist")
        persist_log.info(f"Inserting/Updating {len(unique)} events into the database...")
        result.persisted = await asyncio.to_thread(
            self.stores.events.persist_in_batches, unique, self.config.batch_size
        )
        persist_log.info(f"Successfully inserted/updated {result.persisted} out of {len(unique)} events")

        result.status = (
            PipelineStatus.PARTIAL_SUCCESS if result.failed_sources else PipelineStatus.SUCCESS
        )
        result.ended_at = _utc_now()
        log.info(
            f"Ingestion run finished in {result.duration_seconds:.1f}s: "
            f"scraped={result.scraped} invalid={result.invalid} span_filtered={result.span_filtered} "
            f"duplicates={result.duplicates} deleted={result.deleted} persisted={result.persisted}"
        )
        return result


async def run_ingestion(
    settings: Settings,
    *,
    source: Optional[str] = None,
    clean: bool = False,
    run_id: Optional[str] = None,
    registry: Optional[SourceRegistry] = None,
) -> IngestionRunResult:
    """
    Wire the production collaborators from settings and execute one run.

    Raises:
        PersistenceError: if the database is unreachable or a write fails
    """
    registry = registry or load_source_registry(settings.SOURCES_CONFIG_PATH)
    config = PipelineConfig.from_settings(settings)
    retry = RetryPolicy(max_retries=settings.HTTP_MAX_RETRIES)

    conn = await asyncio.to_thread(get_connection, settings)
    try:
        stores = PipelineStores.postgres(conn)
        async with HttpClient(
            timeout_s=settings.REQUEST_TIMEOUT_S, delay_s=settings.REQUEST_DELAY_S, retry=retry
        ) as http, HttpClient(timeout_s=settings.REQUEST_TIMEOUT_S, retry=retry) as image_http:
            api_key = settings.geocoding_api_key
            geocoder = GoogleGeocoder(http, api_key) if api_key else None
            context = AdapterContext(
                http=http,
                settings=settings,
                geocode_cache=GeocodeCache(stores.geocode, geocoder),
            )

            storage = ObjectStorage.from_settings(settings)
            image_cache = None
            if storage is not None:
                image_cache = ImageCache(
                    stores.images,
                    storage,
                    image_http,
                    concurrency=config.image_concurrency,
                    progress_every=config.image_progress_every,
                )

            orchestrator = IngestionOrchestrator(registry, config, stores, context, image_cache)
            return await orchestrator.run(source=source, clean=clean, run_id=run_id)
    finally:
        conn.close()
