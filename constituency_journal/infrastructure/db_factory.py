"""
Database connection factory utilities for the constituency journal.

Provides centralized management of PostgreSQL connections and the shared
connection pool with proper lifecycle management. The PoolManager singleton
ensures the pool is closed on application exit.

Retries for transient connection failures live with the callers that can
safely repeat their work (see JournalStore.for_petition).
"""

from __future__ import annotations

import atexit
import threading
from typing import Any, Optional

import psycopg
from psycopg_pool import ConnectionPool

from constituency_journal.config import Settings, get_settings
from constituency_journal.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def open_pool(
    dsn: str,
    min_size: int = 1,
    max_size: int = 10,
    timeout: float = 30.0,
) -> ConnectionPool:
    """
    Open a dedicated connection pool.

    Used directly by worker processes and tests that must not share the
    process-wide pool held by PoolManager.
    """
    return ConnectionPool(
        conninfo=dsn,
        min_size=min_size,
        max_size=max_size,
        timeout=timeout,
        open=True,
    )


class PoolManager:
    """
    Thread-safe singleton for managing the process-wide connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool: Optional[ConnectionPool] = None
                # Register cleanup on exit
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(
        self, min_size: Optional[int] = None, max_size: Optional[int] = None
    ) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        min_size : int | None
            Minimum number of idle connections to keep. Defaults to settings.
        max_size : int | None
            Maximum total connections in the pool. Defaults to settings.

        Returns
        -------
        ConnectionPool
            The managed sync pool instance.
        """
        with self._lock:
            if self._sync_pool is None:
                settings = get_settings()
                self._sync_pool = open_pool(
                    build_dsn(settings),
                    min_size=settings.db_pool_min_size if min_size is None else min_size,
                    max_size=settings.db_pool_max_size if max_size is None else max_size,
                    timeout=settings.db_pool_timeout_seconds,
                )
                log.debug(
                    "Connection pool opened",
                    extra={"host": settings.db_host, "db": settings.db_name},
                )
            return self._sync_pool

    def close_all(self) -> None:
        """
        Close the managed pool and release resources.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._sync_pool is not None:
                try:
                    self._sync_pool.close()
                except psycopg.Error:
                    log.warning("Failed to close connection pool cleanly", exc_info=True)
                finally:
                    self._sync_pool = None


def get_sync_pool(
    min_size: Optional[int] = None, max_size: Optional[int] = None
) -> ConnectionPool:
    """
    Get or create the process-wide synchronous connection pool via PoolManager.
    """
    manager = PoolManager()
    return manager.get_sync_pool(min_size=min_size, max_size=max_size)


def apply_statement_timeout(cur: Any, timeout_ms: int) -> None:
    """
    Bound every statement in the current transaction to `timeout_ms`.

    A zero or negative timeout leaves the server default in place.
    """
    if timeout_ms <= 0:
        return
    cur.execute(
        "SELECT set_config('statement_timeout', %s, true);",
        (str(int(timeout_ms)),),
    )


__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
    "get_sync_pool",
    "open_pool",
]
