"""
Geocoding with a durable cache.

Addresses are joined into one string which serves as the cache key. The
cache is consulted before the (paid) Google Geocoding API is called, and
every API answer is written back, including "not found". Addresses do not
move, so entries never expire.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Protocol

from eventsync.ingestion.errors import FetchError, GeocodingError
from eventsync.ingestion.http import HttpClient
from eventsync.schemas.event import Coordinates, GeocodeCacheEntry

logger = logging.getLogger(__name__)

GEOCODE_API_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class GeocodeStore(Protocol):
    """Durable address → coordinates cache (see ``persist.GeocodeCacheStore``)."""

    def get(self, address: str) -> Optional[GeocodeCacheEntry]: ...

    def put(self, entry: GeocodeCacheEntry) -> None: ...


def normalize_address(address_lines: Iterable[Optional[str]]) -> str:
    """Join non-empty, trimmed address lines with ", "."""
    return ", ".join(line.strip() for line in address_lines if line and line.strip())


class GoogleGeocoder:
    """Client for the Google Geocoding API."""

    def __init__(
        self,
        http: HttpClient,
        api_key: str,
        language: str = "de",
        region: str = "DE",
    ):
        self.http = http
        self.api_key = api_key
        self.language = language
        self.region = region

    async def geocode(self, address: str) -> Optional[Coordinates]:
        """
        Resolve an address.

        Returns:
            Coordinates, or None when the API has no result for the address

        Raises:
            GeocodingError: if the API could not be queried or its answer
                cannot be read
        """
        params = {
            "address": address,
            "key": self.api_key,
            "language": self.language,
            "region": self.region,
        }
        logger.debug(f"Calling geocoding API for '{address}'")
        try:
            data = await self.http.get_json(GEOCODE_API_URL, params=params)
        except FetchError as e:
            # the URL carries the API key
            raise GeocodingError(f"request failed with status {e.status_code}") from e

        return self._parse(data, address)

    @staticmethod
    def _parse(data: Any, address: str) -> Optional[Coordinates]:
        if not isinstance(data, dict):
            raise GeocodingError("unexpected response body")

        status = data.get("status")
        if status == "ZERO_RESULTS":
            logger.info(f"No geocoding result for '{address}'")
            return None
        if status != "OK":
            raise GeocodingError(f"API status {status}: {data.get('error_message', '')}".strip())

        try:
            location = data["results"][0]["geometry"]["location"]
            return Coordinates(latitude=location["lat"], longitude=location["lng"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise GeocodingError(f"malformed result: {e}") from e


class GeocodeCache:
    """
    Cached address resolution.

    No locking: two concurrent lookups of the same new address may both
    miss and both call the API. The second insert is ignored by the store.
    """

    def __init__(self, store: GeocodeStore, geocoder: Optional[GoogleGeocoder]):
        self.store = store
        self.geocoder = geocoder
        self._memo: Dict[str, Optional[Coordinates]] = {}
        self.api_calls = 0

    async def resolve(self, address_lines: Iterable[Optional[str]]) -> Optional[Coordinates]:
        """
        Resolve address lines to coordinates.

        Never raises: lookup failures are logged and resolve to None.
        """
        address = normalize_address(address_lines)
        if not address:
            return None

        if address in self._memo:
            return self._memo[address]

        try:
            cached = await asyncio.to_thread(self.store.get, address)
        except Exception as e:
            logger.error(f"Geocode cache lookup failed for '{address}': {e}")
            cached = None

        if cached is not None:
            logger.debug(f"Found cached geocoding result for '{address}'")
            self._memo[address] = cached.coordinates
            return cached.coordinates

        if self.geocoder is None:
            logger.warning(f"Google Maps API key is not set, skipping geocoding of '{address}'")
            return None

        self.api_calls += 1
        try:
            coordinates = await self.geocoder.geocode(address)
        except GeocodingError as e:
            logger.error(f"Error geocoding address '{address}': {e}")
            coordinates = None

        entry = GeocodeCacheEntry(
            address=address,
            latitude=coordinates.latitude if coordinates else None,
            longitude=coordinates.longitude if coordinates else None,
        )
        try:
            await asyncio.to_thread(self.store.put, entry)
            logger.debug(f"Cached geocoding result for '{address}'")
        except Exception as e:
            logger.error(f"Error caching geocoding result for '{address}': {e}")

        self._memo[address] = coordinates
        return coordinates
