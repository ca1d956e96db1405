"""
Pytest configuration for the constituency journal.

Provides fixtures for:
- Database connection management
- Schema bootstrap and table cleanup
- A JournalStore bound to the test database
"""

from __future__ import annotations

import os
from typing import Generator

import psycopg
import pytest

from constituency_journal.config import Settings
from constituency_journal.infrastructure.schema import JOURNAL_TABLE, ensure_schema
from constituency_journal.store import JournalStore


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "petitions"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the journal table and its unique index exist.
    """
    ensure_schema(db_connection)
    return True


@pytest.fixture(scope="function")
def clean_journals_table(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty the journal table before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute(f"TRUNCATE TABLE public.{JOURNAL_TABLE} RESTART IDENTITY;")
    db_connection.commit()
    yield
    with db_connection.cursor() as cur:
        cur.execute(f"TRUNCATE TABLE public.{JOURNAL_TABLE} RESTART IDENTITY;")
    db_connection.commit()


@pytest.fixture(scope="function")
def journal_store(test_dsn: str, clean_journals_table) -> Generator[JournalStore, None, None]:
    """
    Store with a private pool against the test database.
    """
    store = JournalStore(dsn_override=test_dsn, connect_retries=1, pool_max_size=20)
    try:
        yield store
    finally:
        store.close()
