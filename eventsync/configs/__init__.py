"""Runtime configuration for the ingestion service."""

from eventsync.configs.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
