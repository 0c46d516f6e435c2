"""Unit tests for connection handling and schema bootstrap."""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from eventsync.configs.settings import Settings
from eventsync.ingestion.database import SCHEMA_PATH, ensure_schema, get_connection
from eventsync.ingestion.errors import PersistenceError


class TestGetConnection:
    """Tests for get_connection."""

    def test_connects_with_parsed_url(self):
        settings = Settings(DATABASE_URL="postgresql://bliss:pw@db.local:6543/events")
        with patch("eventsync.ingestion.database.psycopg2.connect") as connect:
            get_connection(settings)
        connect.assert_called_once_with(
            host="db.local", port=6543, dbname="events", user="bliss", password="pw"
        )

    def test_missing_url(self):
        with pytest.raises(PersistenceError, match="DATABASE_URL"):
            get_connection(Settings(DATABASE_URL=""))

    def test_unreachable_server(self):
        settings = Settings(DATABASE_URL="postgresql://u:p@nowhere:5432/db")
        with patch(
            "eventsync.ingestion.database.psycopg2.connect",
            side_effect=psycopg2.OperationalError("could not connect"),
        ):
            with pytest.raises(PersistenceError):
                get_connection(settings)


class TestEnsureSchema:
    """Tests for ensure_schema."""

    def test_schema_file_declares_tables(self):
        sql = SCHEMA_PATH.read_text(encoding="utf-8")
        for table in ("events", "geocode_cache", "image_cache_map"):
            assert f"CREATE TABLE IF NOT EXISTS {table}" in sql

    def test_executes_and_commits(self):
        conn = MagicMock()
        ensure_schema(conn)
        cursor = conn.cursor.return_value.__enter__.return_value
        assert "CREATE TABLE IF NOT EXISTS events" in cursor.execute.call_args.args[0]
        conn.commit.assert_called_once()

    def test_failure_rolls_back(self):
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value.execute.side_effect = psycopg2.ProgrammingError("syntax")
        with pytest.raises(PersistenceError):
            ensure_schema(conn)
        conn.rollback.assert_called_once()
