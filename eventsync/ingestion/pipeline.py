"""
Pipeline configuration, run results and record preparation.

Preparation turns adapter output into the persisted shape:

    raw record → NormalizedEvent (validated) → trimmed → sold-out name
    cleanup → slug → sanitized description → StoredEvent
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from eventsync.configs.settings import Settings
from eventsync.ingestion.errors import RecordValidationError
from eventsync.ingestion.normalization import (
    DEFAULT_SOLD_OUT_TERMS,
    DEFAULT_UNLISTED_NAME_TERMS,
    NameNormalizer,
    clean_prose_html,
    generate_slug,
)
from eventsync.schemas.event import NormalizedEvent, StoredEvent

logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    """Status of a source run or of a whole ingestion run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Immutable pipeline-level configuration.

    Built once at start-up and handed to the orchestrator; nothing in the
    pipeline reads settings or term lists from module globals.
    """

    sold_out_terms: Tuple[str, ...] = DEFAULT_SOLD_OUT_TERMS
    unlisted_name_terms: Tuple[str, ...] = DEFAULT_UNLISTED_NAME_TERMS
    timezone: str = "Europe/Berlin"
    max_span_days: int = 60
    batch_size: int = 15
    image_concurrency: int = 4
    image_progress_every: int = 50

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            timezone=settings.TIMEZONE,
            max_span_days=settings.MAX_EVENT_SPAN_DAYS,
            batch_size=settings.BATCH_SIZE,
            image_concurrency=settings.IMAGE_CONCURRENCY,
            image_progress_every=settings.IMAGE_PROGRESS_EVERY,
        )

    def name_normalizer(self) -> NameNormalizer:
        return NameNormalizer(
            sold_out_terms=self.sold_out_terms,
            unlisted_name_terms=self.unlisted_name_terms,
        )


@dataclass
class SourceRunResult:
    """Outcome of running one source adapter."""

    source_name: str
    status: PipelineStatus
    started_at: datetime
    ended_at: datetime
    events: List[NormalizedEvent] = field(default_factory=list)
    invalid_records: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PipelineStatus.SUCCESS

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()


@dataclass
class IngestionRunResult:
    """Counts collected over a whole ingestion run."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: Optional[datetime] = None
    status: PipelineStatus = PipelineStatus.PENDING
    sources: Dict[str, SourceRunResult] = field(default_factory=dict)

    scraped: int = 0
    invalid: int = 0
    span_filtered: int = 0
    duplicates: int = 0
    cleaned: int = 0
    deleted: int = 0
    persisted: int = 0
    image_hits: int = 0
    image_misses: int = 0
    image_failures: int = 0

    @property
    def succeeded_sources(self) -> List[str]:
        return [name for name, r in self.sources.items() if r.succeeded]

    @property
    def failed_sources(self) -> List[str]:
        return [name for name, r in self.sources.items() if not r.succeeded]

    @property
    def duration_seconds(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "timestamp": self.started_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "succeeded_sources": self.succeeded_sources,
            "failed_sources": self.failed_sources,
            "scraped": self.scraped,
            "invalid": self.invalid,
            "span_filtered": self.span_filtered,
            "duplicates": self.duplicates,
            "cleaned": self.cleaned,
            "deleted": self.deleted,
            "persisted": self.persisted,
            "image_hits": self.image_hits,
            "image_misses": self.image_misses,
            "image_failures": self.image_failures,
        }


# ============================================================================
# RECORD PREPARATION
# ============================================================================


def coerce_records(
    records: Iterable[Any], source_name: str
) -> Tuple[List[NormalizedEvent], int]:
    """
    Validate raw adapter output.

    Records may be ``NormalizedEvent`` instances or plain dicts. Records
    missing a required field are dropped with a warning.

    Returns:
        Tuple of (valid events, number of dropped records)
    """
    valid: List[NormalizedEvent] = []
    invalid = 0
    for record in records:
        if isinstance(record, NormalizedEvent):
            valid.append(record)
            continue
        try:
            valid.append(NormalizedEvent.model_validate(record))
        except ValidationError as e:
            invalid += 1
            url = record.get("source_url") if isinstance(record, dict) else None
            logger.warning(
                f"Dropping invalid record from {source_name} ({url or 'no url'}): "
                f"{e.error_count()} validation error(s)"
            )
    return valid, invalid


def _trim(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _trim_all(values: Iterable[Optional[str]]) -> List[str]:
    return [v.strip() for v in values if v and v.strip()]


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def prepare_event(
    event: NormalizedEvent,
    config: PipelineConfig,
    normalizer: Optional[NameNormalizer] = None,
) -> StoredEvent:
    """
    Derive the persisted shape of one record.

    The input is left untouched; a new ``StoredEvent`` is returned.

    Raises:
        RecordValidationError: if the record is unusable after trimming
    """
    normalizer = normalizer or config.name_normalizer()
    name, sold_out = normalizer.normalize(event.name)
    if not name:
        raise RecordValidationError(f"empty name for {event.source_url}")

    data = event.model_dump()
    data.update(
        name=name,
        sold_out=sold_out,
        slug=generate_slug(name, event.start_at, config.timezone),
        listed=normalizer.is_listed(name),
        address=_trim_all(event.address),
        price=_trim(event.price),
        description=clean_prose_html(_trim(event.description)),
        image_urls=_trim_all(event.image_urls),
        host=_trim(event.host),
        host_link=_trim(event.host_link),
        contact=_trim_all(event.contact),
        tags=_unique(_trim_all(event.tags)),
        source=event.source.strip(),
        source_url=event.source_url.strip(),
    )
    try:
        return StoredEvent(**data)
    except ValidationError as e:
        raise RecordValidationError(f"{event.source_url}: {e}") from e


def prepare_events(
    events: Iterable[NormalizedEvent], config: PipelineConfig
) -> Tuple[List[StoredEvent], int]:
    """
    Prepare a batch of records, dropping the unusable ones.

    Returns:
        Tuple of (prepared events, number of dropped records)
    """
    normalizer = config.name_normalizer()
    prepared: List[StoredEvent] = []
    dropped = 0
    for event in events:
        try:
            prepared.append(prepare_event(event, config, normalizer))
        except RecordValidationError as e:
            dropped += 1
            logger.warning(f"Dropping record: {e}")
    return prepared, dropped
