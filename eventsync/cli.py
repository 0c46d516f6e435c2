"""
Command line entry point.

    eventsync                 refresh all sources
    eventsync awara           refresh a single source
    eventsync awara --clean   drop the source's stored events first

Exit status: 0 on success (including "no events to process"), 1 when a
database write failed, 2 for any other error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid

from eventsync.configs.settings import Settings, get_settings
from eventsync.ingestion.errors import PersistenceError
from eventsync.ingestion.orchestrator import run_ingestion
from eventsync.ingestion.registry import load_source_registry
from eventsync.monitoring import LoggingOptions, setup_logging

logger = logging.getLogger("eventsync.cli")

EXIT_OK = 0
EXIT_PERSISTENCE_ERROR = 1
EXIT_ERROR = 2


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="eventsync", description="Scrape event sources into Postgres")
    p.add_argument(
        "source",
        nargs="?",
        default=None,
        help="Single source to scrape (default: all configured sources)",
    )
    p.add_argument(
        "--clean",
        action="store_true",
        help="Delete all stored events of the targeted source(s) before inserting",
    )
    p.add_argument("--version", action="store_true", help="Print version and exit")
    return p.parse_args(argv)


def main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """Run the CLI with the given arguments."""
    args = _parse_args(argv)

    if args.version:
        from eventsync import __version__

        print(f"eventsync version {__version__}")
        return EXIT_OK

    settings = settings or get_settings()
    run_id = uuid.uuid4().hex[:12]
    setup_logging(
        run_id=run_id,
        options=LoggingOptions(level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS),
    )

    try:
        registry = load_source_registry(settings.SOURCES_CONFIG_PATH)
        source = args.source.lower() if args.source else None
        result = asyncio.run(
            run_ingestion(
                settings,
                source=source,
                clean=args.clean,
                run_id=run_id,
                registry=registry,
            )
        )
    except PersistenceError as e:
        logger.error(f"Database error, aborting run: {e}", exc_info=True)
        return EXIT_PERSISTENCE_ERROR
    except Exception as e:
        logger.error(f"Ingestion run failed: {e}", exc_info=True)
        return EXIT_ERROR

    logger.info(f"Run summary: {result.to_dict()}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
