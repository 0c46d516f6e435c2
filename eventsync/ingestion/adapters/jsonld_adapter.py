"""
Generic adapter for sites publishing schema.org ``Event`` JSON-LD.

Listing pages are fetched and their JSON-LD blocks parsed. Events found
directly on a listing page are used as-is; ``ItemList`` entries and events
without a start date are followed to their detail pages.
"""

from __future__ import annotations

import asyncio
import html
import json
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urljoin
from zoneinfo import ZoneInfo

from bs4 import BeautifulSoup
from pydantic import ValidationError

from eventsync.ingestion.adapters.base_adapter import SourceAdapter
from eventsync.ingestion.errors import FetchError
from eventsync.schemas.event import NormalizedEvent

EVENT_TYPES = {"Event", "DanceEvent", "EducationEvent", "SocialEvent", "Festival", "MusicEvent"}
CANCELLED_STATUSES = {"EventCancelled", "https://schema.org/EventCancelled", "http://schema.org/EventCancelled"}


def extract_jsonld_blocks(page_html: str) -> List[Any]:
    """Return the decoded JSON-LD blocks of a page. Unparseable blocks are skipped."""
    soup = BeautifulSoup(page_html, "html.parser")
    blocks: List[Any] = []
    for tag in soup.find_all("script", type="application/ld+json"):
        content = tag.string or tag.get_text() or ""
        if not content.strip():
            continue
        try:
            blocks.append(json.loads(content))
        except json.JSONDecodeError:
            continue
    return blocks


def _types(obj: Dict[str, Any]) -> set:
    value = obj.get("@type")
    if isinstance(value, list):
        return {str(v) for v in value}
    return {str(value)} if value else set()


def _walk(data: Any) -> Iterable[Dict[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _walk(item)
    elif isinstance(data, dict):
        yield data
        if isinstance(data.get("@graph"), list):
            yield from _walk(data["@graph"])


def extract_event_objects(data: Any) -> List[Dict[str, Any]]:
    """Return event dicts from a JSON-LD blob."""
    return [obj for obj in _walk(data) if _types(obj) & EVENT_TYPES]


def extract_item_list_urls(data: Any, base_url: str) -> List[str]:
    """Return the URLs listed in ``ItemList`` objects."""
    urls: List[str] = []
    for obj in _walk(data):
        if "ItemList" not in _types(obj):
            continue
        elements = obj.get("itemListElement") or []
        if isinstance(elements, dict):
            elements = [elements]
        for element in elements:
            if isinstance(element, str):
                urls.append(urljoin(base_url, element))
            elif isinstance(element, dict):
                url = element.get("url")
                item = element.get("item")
                if not url and isinstance(item, dict):
                    url = item.get("url") or item.get("@id")
                elif not url and isinstance(item, str):
                    url = item
                if isinstance(url, str) and url:
                    urls.append(urljoin(base_url, url))
    return urls


def parse_jsonld_datetime(value: Any, tz: ZoneInfo, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a schema.org date or datetime.

    Naive values are interpreted in ``tz``. Date-only values become midnight,
    or 23:59 when ``end_of_day`` is set.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    value = value.strip()
    try:
        if "T" not in value and len(value) == 10:
            day = date.fromisoformat(value)
            clock = time(23, 59) if end_of_day else time(0, 0)
            return datetime.combine(day, clock, tzinfo=tz)
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        value = html.unescape(value).strip()
        return value or None
    return None


def _name_of(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        return _text(value.get("name"))
    return _text(value)


def parse_address(location: Any) -> List[str]:
    """Turn a schema.org location into ordered address lines, venue first."""
    if isinstance(location, list):
        location = location[0] if location else None
    if isinstance(location, str):
        return [location.strip()] if location.strip() else []
    if not isinstance(location, dict):
        return []

    lines: List[str] = []
    venue = _text(location.get("name"))
    if venue:
        lines.append(venue)

    address = location.get("address")
    if isinstance(address, str):
        if address.strip() and address.strip() != venue:
            lines.append(html.unescape(address.strip()))
    elif isinstance(address, dict):
        street = _text(address.get("streetAddress"))
        locality = " ".join(
            part for part in (_text(address.get("postalCode")), _text(address.get("addressLocality"))) if part
        )
        lines.extend(part for part in (street, locality) if part)
    return lines


def parse_geo(location: Any) -> Dict[str, float]:
    if isinstance(location, list):
        location = location[0] if location else None
    if not isinstance(location, dict) or not isinstance(location.get("geo"), dict):
        return {}
    geo = location["geo"]
    try:
        return {"latitude": float(geo["latitude"]), "longitude": float(geo["longitude"])}
    except (KeyError, TypeError, ValueError):
        return {}


def parse_price(offers: Any) -> Optional[str]:
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if not isinstance(offers, dict):
        return None
    price = offers.get("price")
    if price in (None, ""):
        price = offers.get("lowPrice")
    if price in (None, ""):
        return None
    currency = offers.get("priceCurrency") or ""
    return f"{price} {currency}".strip()


def parse_images(image: Any, base_url: str) -> List[str]:
    items = image if isinstance(image, list) else [image]
    urls: List[str] = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("url") or item.get("contentUrl")
        if isinstance(item, str) and item.strip():
            urls.append(urljoin(base_url, item.strip()))
    return urls


def parse_keywords(keywords: Any) -> List[str]:
    if isinstance(keywords, str):
        return [k.strip() for k in keywords.split(",") if k.strip()]
    if isinstance(keywords, list):
        return [k.strip() for k in keywords if isinstance(k, str) and k.strip()]
    return []


class JsonLdAdapter(SourceAdapter):
    """
    Adapter for any site exposing schema.org events as JSON-LD.

    Options:
        listing_urls: pages listing the events (required)
        follow_links: follow ``ItemList`` entries to detail pages (default True)
        max_detail_pages: upper bound on detail pages per run (default 500)
    """

    def _validate_options(self) -> None:
        urls = self.options.get("listing_urls")
        if not urls or not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
            raise ValueError(f"{self.source_name}: 'listing_urls' must be a non-empty list of URLs")

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.options.get("timezone") or self.context.settings.TIMEZONE)

    async def scrape_website(self) -> List[NormalizedEvent]:
        follow_links = self.options.get("follow_links", True)
        max_detail_pages = int(self.options.get("max_detail_pages", 500))

        events: List[NormalizedEvent] = []
        detail_urls: List[str] = []
        for listing_url in self.options["listing_urls"]:
            self.logger.info(f"Fetching listing page {listing_url}")
            page_html = await self.context.http.get_text(listing_url)
            blocks = extract_jsonld_blocks(page_html)

            for item in extract_event_objects(blocks):
                if item.get("startDate"):
                    event = await self.map_event(item, listing_url)
                    if event is not None:
                        events.append(event)
                elif follow_links and isinstance(item.get("url"), str):
                    detail_urls.append(urljoin(listing_url, item["url"]))

            if follow_links:
                detail_urls.extend(extract_item_list_urls(blocks, listing_url))

        seen = {e.source_url for e in events}
        pending = [u for u in dict.fromkeys(detail_urls) if u not in seen][:max_detail_pages]
        for url in pending:
            events.extend(await self._scrape_detail_page(url))

        return events

    async def scrape_html_files(self, paths: Sequence[Path]) -> List[NormalizedEvent]:
        events: List[NormalizedEvent] = []
        for path in paths:
            page_html = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
            base_url = Path(path).resolve().as_uri()
            for item in extract_event_objects(extract_jsonld_blocks(page_html)):
                event = await self.map_event(item, base_url)
                if event is not None:
                    events.append(event)
        return events

    async def _scrape_detail_page(self, url: str) -> List[NormalizedEvent]:
        try:
            page_html = await self.context.http.get_text(url)
        except FetchError as e:
            self.logger.warning(f"Skipping detail page: {e}")
            return []

        events = []
        for item in extract_event_objects(extract_jsonld_blocks(page_html)):
            event = await self.map_event(item, url)
            if event is not None:
                events.append(event)
        return events

    async def map_event(self, item: Dict[str, Any], page_url: str) -> Optional[NormalizedEvent]:
        """
        Map one JSON-LD event to a ``NormalizedEvent``.

        Returns None for cancelled events and for events lacking a name or
        start date.
        """
        if item.get("eventStatus") in CANCELLED_STATUSES:
            self.logger.debug(f"Skipping cancelled event {item.get('name')}")
            return None

        tz = self.timezone
        location = item.get("location")
        address = parse_address(location)
        organizer = item.get("organizer")
        if isinstance(organizer, list):
            organizer = organizer[0] if organizer else None

        url = item.get("url") or item.get("@id")
        source_url = urljoin(page_url, url) if isinstance(url, str) and url else page_url

        record: Dict[str, Any] = {
            "name": _text(item.get("name")),
            "start_at": parse_jsonld_datetime(item.get("startDate"), tz),
            "end_at": parse_jsonld_datetime(item.get("endDate"), tz, end_of_day=True),
            "address": address,
            "price": parse_price(item.get("offers")),
            "description": _text(item.get("description")),
            "image_urls": parse_images(item.get("image"), page_url),
            "host": _name_of(organizer),
            "host_link": organizer.get("url") if isinstance(organizer, dict) else None,
            "tags": parse_keywords(item.get("keywords")),
            "source": self.source_name,
            "source_url": source_url,
            **parse_geo(location),
        }

        if "latitude" not in record and address and self.context.geocode_cache is not None:
            coordinates = await self.context.geocode_cache.resolve(address)
            if coordinates is not None:
                record["latitude"] = coordinates.latitude
                record["longitude"] = coordinates.longitude

        try:
            return NormalizedEvent.model_validate(record)
        except ValidationError as e:
            self.logger.warning(
                f"Skipping event on {source_url}: {e.error_count()} validation error(s)"
            )
            return None
