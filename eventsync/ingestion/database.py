"""
Database connection and schema bootstrap.
"""

import logging
from pathlib import Path

import psycopg2
import psycopg2.extensions

from eventsync.configs.settings import Settings, get_settings
from eventsync.ingestion.errors import PersistenceError

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


def get_connection(settings: Settings | None = None) -> psycopg2.extensions.connection:
    """
    Create PostgreSQL connection using DATABASE_URL.

    Returns
    -------
    psycopg2.extensions.connection
        Active database connection.

    Raises
    ------
    PersistenceError
        If DATABASE_URL is missing or the server cannot be reached.
    """
    settings = settings or get_settings()
    try:
        conn_params = settings.get_psycopg2_params()
    except ValueError as e:
        raise PersistenceError(str(e)) from e

    try:
        return psycopg2.connect(**conn_params)
    except psycopg2.Error as e:
        raise PersistenceError(f"Could not connect to database: {e}") from e


def ensure_schema(conn, schema_path: Path = SCHEMA_PATH) -> None:
    """
    Create the pipeline tables if they do not exist yet.

    Raises
    ------
    PersistenceError
        If the schema cannot be applied; nothing may be written then.
    """
    sql = schema_path.read_text(encoding="utf-8")
    try:
        with conn.cursor() as cur:
            cur.execute(sql)
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        raise PersistenceError(f"Failed to ensure database schema: {e}") from e
    logger.info("Database schema is in place")
