"""
Exception taxonomy for the ingestion pipeline.

- SourceAdapterError: a whole source failed to produce records
- FetchError / GeocodingError / ImageProcessingError / StorageError:
  enrichment failures for a single record or image, never fatal
- PersistenceError: a write against the store failed, fatal for the run
- RecordValidationError: a record is unusable and gets dropped
"""


class IngestionError(Exception):
    """Base class for all ingestion errors."""


class SourceAdapterError(IngestionError):
    """A source adapter failed or returned no events."""

    def __init__(self, source_name: str, message: str):
        super().__init__(f"{source_name}: {message}")
        self.source_name = source_name


class FetchError(IngestionError):
    """An HTTP request failed (status, network error or timeout)."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(f"Error fetching {url}: {message}")
        self.url = url
        self.status_code = status_code


class GeocodingError(IngestionError):
    """The geocoding API could not be queried or answered with garbage."""


class ImageProcessingError(IngestionError):
    """An image could not be decoded, resized or hashed."""


class StorageError(IngestionError):
    """Uploading to object storage failed."""


class PersistenceError(IngestionError):
    """A database write failed; the run must stop."""


class RecordValidationError(IngestionError):
    """A record lacks a required field."""
