"""Logging setup shared by the CLI and the ingestion pipeline."""

from eventsync.monitoring.logging import (
    ContextAdapter,
    LoggingOptions,
    setup_logging,
    with_context,
)

__all__ = ["ContextAdapter", "LoggingOptions", "setup_logging", "with_context"]
