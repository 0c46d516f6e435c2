"""
Base Source Adapter.

Abstract base class defining the interface for all source adapters. An
adapter crawls one website and hands back ``NormalizedEvent`` records; it
owns pagination, field extraction, date parsing for its locale and the
geocoding of addresses, but never slugs or deduplicates.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from eventsync.configs.settings import Settings
from eventsync.ingestion.errors import SourceAdapterError
from eventsync.ingestion.geocoding import GeocodeCache
from eventsync.ingestion.http import HttpClient
from eventsync.schemas.event import NormalizedEvent


@dataclass(frozen=True)
class AdapterContext:
    """Shared collaborators handed to every adapter of a run."""

    http: HttpClient
    settings: Settings
    geocode_cache: Optional[GeocodeCache] = None


class SourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    Subclasses must implement:
        - scrape_website(): crawl the live site
        - scrape_html_files(): parse saved pages (offline/debugging)
    """

    def __init__(
        self,
        source_name: str,
        context: AdapterContext,
        options: Optional[Mapping[str, Any]] = None,
    ):
        """
        Initialize the adapter.

        Args:
            source_name: Stable source identifier stored on every event
            context: Shared HTTP client, settings and geocode cache
            options: Adapter-specific options from the source registry
        """
        self.source_name = source_name
        self.context = context
        self.options: Dict[str, Any] = dict(options or {})
        self.logger = logging.getLogger(f"eventsync.adapter.{source_name}")
        self._validate_options()

    @abstractmethod
    async def scrape_website(self) -> List[NormalizedEvent]:
        """Crawl the source and return all events currently listed."""
        pass

    @abstractmethod
    async def scrape_html_files(self, paths: Sequence[Path]) -> List[NormalizedEvent]:
        """Extract events from previously saved pages."""
        pass

    def _validate_options(self) -> None:
        """
        Validate adapter-specific options.

        Raises:
            ValueError: If options are invalid
        """

    async def run(self) -> List[NormalizedEvent]:
        """
        Scrape the website and enforce the "at least one event" contract.

        Raises:
            SourceAdapterError: if scraping fails or yields nothing
        """
        try:
            events = await self.scrape_website()
        except SourceAdapterError:
            raise
        except Exception as e:
            raise SourceAdapterError(self.source_name, f"scrape failed: {e}") from e

        if not events:
            raise SourceAdapterError(self.source_name, "no events found")

        self.logger.info(f"Scraped {len(events)} events from {self.source_name}")
        return events

    async def close(self) -> None:
        """Release adapter resources. The shared HTTP client is closed by the caller."""
