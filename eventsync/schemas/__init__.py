from eventsync.schemas.event import (
    Coordinates,
    GeocodeCacheEntry,
    ImageCacheEntry,
    NormalizedEvent,
    StoredEvent,
)

__all__ = [
    "Coordinates",
    "GeocodeCacheEntry",
    "ImageCacheEntry",
    "NormalizedEvent",
    "StoredEvent",
]
