# eventsync/schemas/event.py
"""
Canonical Event Schema for the ingestion pipeline.

Source adapters emit ``NormalizedEvent`` records. The pipeline derives the
identity slug, the sold-out and listed flags and the cached image URLs and
turns each record into a ``StoredEvent``, which is what lands in the
``events`` table.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# ============================================================================
# LOCATION & GEOGRAPHIC DATA
# ============================================================================


class Coordinates(BaseModel):
    """
    Geographic coordinates.
    """

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float

    @field_validator("latitude")
    def validate_latitude(cls, v):
        if not -90 <= v <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("longitude")
    def validate_longitude(cls, v):
        if not -180 <= v <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return v


# ============================================================================
# EVENTS
# ============================================================================


class NormalizedEvent(BaseModel):
    """
    One event as produced by a source adapter.

    ``source`` + ``source_url`` identify where the record came from but are
    not the storage identity; see ``StoredEvent.slug``.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "name": "Meditation Workshop",
                "start_at": "2025-07-04T18:00:00+02:00",
                "end_at": "2025-07-04T20:00:00+02:00",
                "address": ["Yogaloft", "Kastanienallee 1", "10435 Berlin"],
                "price": "25 €",
                "description": "<p>Guided meditation for beginners.</p>",
                "image_urls": ["https://example.org/img/meditation.jpg"],
                "host": "Yogaloft",
                "tags": ["Meditation"],
                "source": "awara",
                "source_url": "https://www.awara.events/event/meditation-workshop",
            }
        },
    )

    name: str = Field(..., min_length=1)
    start_at: AwareDatetime
    end_at: Optional[AwareDatetime] = None

    address: List[str] = Field(default_factory=list)
    price: Optional[str] = None
    price_is_html: bool = False
    description: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)

    host: Optional[str] = None
    host_link: Optional[str] = None
    contact: List[str] = Field(default_factory=list)

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    tags: List[str] = Field(default_factory=list)

    source: str = Field(..., min_length=1)
    source_url: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, v):
        if v is not None and not -90 <= v <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, v):
        if v is not None and not -180 <= v <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return v

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


class StoredEvent(NormalizedEvent):
    """
    Event in its persisted shape.

    All derived fields are owned by the pipeline: ``slug`` is the unique
    identity key, ``image_urls`` point at cached assets and ``description``
    is sanitized HTML.
    """

    slug: str = Field(..., min_length=1)
    sold_out: bool = False
    listed: bool = True

    @model_validator(mode="after")
    def validate_slug_format(self):
        if self.slug != self.slug.strip().lower():
            raise ValueError("slug must be lowercase without surrounding whitespace")
        return self


# ============================================================================
# CACHES
# ============================================================================


class GeocodeCacheEntry(BaseModel):
    """
    Cached geocoding result for one normalized address string.

    Null coordinates mean the address was looked up and could not be resolved.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    cached_at: datetime = Field(default_factory=_utc_now)

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


class ImageCacheEntry(BaseModel):
    """Mapping from (original image URL, owning event slug) to the cached asset."""

    model_config = ConfigDict(frozen=True)

    original_url: str
    event_slug: str
    url: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.original_url, self.event_slug)
