"""
Module for event deduplication strategies.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List

from eventsync.schemas.event import StoredEvent

logger = logging.getLogger(__name__)


class EventDeduplicator(ABC):
    """
    Abstract base for deduplication strategies
    """

    @abstractmethod
    def deduplicate(self, events: List[StoredEvent]) -> List[StoredEvent]:
        """
        Deduplicate events and return unique set
        """
        pass


class SlugDeduplicator(EventDeduplicator):
    """
    Match by slug, last record wins.

    The slug is derived from name + start minute, so two records sharing it
    are either the same listing seen twice or a naming collision. Both are
    logged so an operator can tell which.
    """

    def deduplicate(self, events: List[StoredEvent]) -> List[StoredEvent]:
        """
        Keep exactly one event per slug.

        Returns:
            List of unique events. Each slug sits at the position where it
            was first seen and carries the last record seen for it.
        """
        groups: Dict[str, List[StoredEvent]] = {}
        for event in events:
            groups.setdefault(event.slug, []).append(event)

        unique_events = []
        for slug, group in groups.items():
            if len(group) > 1:
                logger.warning(
                    f"Found {len(group)} events with slug '{slug}', keeping the last one. "
                    f"Source URLs: {[e.source_url for e in group]}"
                )
            unique_events.append(group[-1])

        return unique_events
