"""Span filter: drops "events" that run for months."""

import logging
from typing import List, Optional, Sequence, Tuple, TypeVar
from zoneinfo import ZoneInfo

from eventsync.schemas.event import NormalizedEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_SPAN_DAYS = 60

E = TypeVar("E", bound=NormalizedEvent)


def span_in_days(event: NormalizedEvent, timezone: str = "Europe/Berlin") -> Optional[int]:
    """
    Calendar days between start and end in the viewer's timezone.

    An event from 23:00 to 01:00 the next night spans one day. Returns
    None for open-ended events.
    """
    if event.end_at is None:
        return None
    tz = ZoneInfo(timezone)
    start = event.start_at.astimezone(tz).date()
    end = event.end_at.astimezone(tz).date()
    return (end - start).days


def exceeds_span(
    event: NormalizedEvent,
    max_days: int = DEFAULT_MAX_SPAN_DAYS,
    timezone: str = "Europe/Berlin",
) -> bool:
    days = span_in_days(event, timezone)
    return days is not None and days > max_days


def filter_by_span(
    events: Sequence[E],
    max_days: int = DEFAULT_MAX_SPAN_DAYS,
    timezone: str = "Europe/Berlin",
) -> Tuple[List[E], List[E]]:
    """
    Split events into (kept, dropped).

    Multi-month listings are nearly always recurring courses scraped as a
    single event, so they are not persisted.
    """
    kept: List[E] = []
    dropped: List[E] = []
    for event in events:
        if exceeds_span(event, max_days, timezone):
            dropped.append(event)
            logger.debug(
                f"Dropping {event.source_url}: spans {span_in_days(event, timezone)} days"
            )
        else:
            kept.append(event)

    if dropped:
        logger.info(f"Span filter dropped {len(dropped)} events longer than {max_days} days")
    return kept, dropped
