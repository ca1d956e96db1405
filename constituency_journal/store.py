"""
Journal store: durable, race-safe running totals per (petition, constituency).

Two write paths, both pushed down to PostgreSQL so any number of threads,
processes or service instances can call them at once:

- `for_petition` is get-or-create. It reads by key and, when missing, issues
  `INSERT ... ON CONFLICT DO NOTHING`. An empty RETURNING means another
  caller created the row first, so the key is read again. The unique index
  on (petition_id, constituency_id) guarantees a single winner.
- `record_new_signature` is a single relative `signature_count + 1` UPDATE.
  It never writes back a value computed in Python.
"""

from __future__ import annotations

import threading
from typing import Any, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from constituency_journal.config import get_settings
from constituency_journal.domain.gate import SignatureGate
from constituency_journal.domain.models import (
    CONSTITUENCY_ID_MAX_LENGTH,
    JournalRecord,
    SignatureEvent,
    is_blank,
    petition_id_of,
)
from constituency_journal.errors import PersistenceError, ValidationError
from constituency_journal.infrastructure.db_factory import (
    apply_statement_timeout,
    get_sync_pool,
    open_pool,
)
from constituency_journal.infrastructure.schema import JOURNAL_TABLE, ensure_schema
from constituency_journal.utils.logging import get_logger

log = get_logger(__name__)

_COLUMNS = "id, petition_id, constituency_id, signature_count, created_at, updated_at"

SELECT_BY_KEY_SQL = (
    f"SELECT {_COLUMNS} FROM public.{JOURNAL_TABLE} "
    "WHERE petition_id = %s AND constituency_id = %s;"
)
SELECT_BY_ID_SQL = f"SELECT {_COLUMNS} FROM public.{JOURNAL_TABLE} WHERE id = %s;"
INSERT_SQL = (
    f"INSERT INTO public.{JOURNAL_TABLE} (petition_id, constituency_id, signature_count) "
    "VALUES (%s, %s, 0) "
    "ON CONFLICT (petition_id, constituency_id) DO NOTHING "
    f"RETURNING {_COLUMNS};"
)
INCREMENT_SQL = (
    f"UPDATE public.{JOURNAL_TABLE} "
    "SET signature_count = signature_count + 1, updated_at = now() "
    f"WHERE id = %s RETURNING {_COLUMNS};"
)
COUNT_SQL = f"SELECT count(*) AS n FROM public.{JOURNAL_TABLE};"
COUNT_FOR_PETITION_SQL = (
    f"SELECT count(*) AS n FROM public.{JOURNAL_TABLE} WHERE petition_id = %s;"
)
COUNT_FOR_KEY_SQL = (
    f"SELECT count(*) AS n FROM public.{JOURNAL_TABLE} "
    "WHERE petition_id = %s AND constituency_id = %s;"
)
LIST_FOR_PETITION_SQL = (
    f"SELECT {_COLUMNS} FROM public.{JOURNAL_TABLE} WHERE petition_id = %s "
    "ORDER BY signature_count DESC, constituency_id;"
)

# Rounds of select / insert before giving up on a key whose row keeps
# disappearing between our conflict and our re-read.
MAX_CREATE_ROUNDS = 3

_TRANSIENT_ERRORS = (psycopg.OperationalError, PoolTimeout)


class JournalStore:
    """
    PostgreSQL-backed store of constituency petition journals.

    Parameters
    ----------
    pool : ConnectionPool | None
        Pool to borrow connections from. Not closed by `close()`.
    dsn_override : str | None
        Open a private pool against this DSN instead of the process-wide one.
        The private pool is closed by `close()`.
    statement_timeout_ms : int | None
        Per-transaction statement timeout; defaults to settings.
    connect_retries : int | None
        Attempts for idempotent operations on transient connection errors;
        defaults to settings.
    """

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        dsn_override: Optional[str] = None,
        statement_timeout_ms: Optional[int] = None,
        connect_retries: Optional[int] = None,
        pool_min_size: int = 1,
        pool_max_size: int = 10,
    ) -> None:
        settings = get_settings()
        self.statement_timeout_ms = (
            settings.db_statement_timeout_ms
            if statement_timeout_ms is None
            else statement_timeout_ms
        )
        self.connect_retries = (
            settings.db_connect_retries if connect_retries is None else connect_retries
        )
        self.pool_min_size = pool_min_size
        self.pool_max_size = pool_max_size
        self._pool_timeout = settings.db_pool_timeout_seconds
        self._dsn_override = dsn_override
        self._pool_instance: Optional[ConnectionPool] = pool
        self._owns_pool = False
        self._pool_lock = threading.Lock()

    def _get_pool(self) -> ConnectionPool:
        pool = self._pool_instance
        if pool is not None:
            return pool
        with self._pool_lock:
            # Another thread may have opened it while we waited.
            if self._pool_instance is not None:
                return self._pool_instance
            if self._dsn_override:
                self._pool_instance = open_pool(
                    self._dsn_override,
                    min_size=self.pool_min_size,
                    max_size=self.pool_max_size,
                    timeout=self._pool_timeout,
                )
                self._owns_pool = True
            else:
                self._pool_instance = get_sync_pool()
            return self._pool_instance

    def close(self) -> None:
        """Close the private pool, if this store opened one."""
        with self._pool_lock:
            if self._owns_pool and self._pool_instance is not None:
                self._pool_instance.close()
            self._pool_instance = None
            self._owns_pool = False

    def __enter__(self) -> "JournalStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.connect_retries),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            reraise=True,
        )

    @staticmethod
    def _validate_key(petition: Any, constituency_id: Any) -> tuple[int, str]:
        petition_id = petition_id_of(petition)
        if petition_id is None:
            raise ValidationError("petition is required")
        if constituency_id is not None and not isinstance(constituency_id, str):
            raise ValidationError("constituency_id must be a string")
        if is_blank(constituency_id):
            raise ValidationError("constituency_id is required")
        if len(constituency_id) > CONSTITUENCY_ID_MAX_LENGTH:
            raise ValidationError(
                f"constituency_id is too long (maximum is {CONSTITUENCY_ID_MAX_LENGTH} characters)"
            )
        return petition_id, constituency_id

    # -- write paths -------------------------------------------------------

    def for_petition(self, petition: Any, constituency_id: Optional[str]) -> JournalRecord:
        """
        Return the journal for (petition, constituency_id), creating it at zero if missing.

        Concurrent callers for the same missing key converge on one row.
        Never changes the count of an existing journal.

        Raises
        ------
        ValidationError
            Missing petition, blank constituency id, or one longer than 255 characters.
        PersistenceError
            The database could not be reached or rejected the statement.
        """
        petition_id, constituency_id = self._validate_key(petition, constituency_id)
        try:
            for attempt in self._retrying():
                with attempt:
                    return self._get_or_create(petition_id, constituency_id)
        except psycopg.Error as exc:
            log.error(
                "Journal lookup failed",
                extra={
                    "petition_id": petition_id,
                    "constituency_id": constituency_id,
                    "error": str(exc),
                },
            )
            raise PersistenceError(
                f"could not load journal for petition {petition_id} / {constituency_id}"
            ) from exc
        raise AssertionError("unreachable")  # pragma: no cover

    def _get_or_create(self, petition_id: int, constituency_id: str) -> JournalRecord:
        with self._get_pool().connection() as conn:
            # The re-read after a lost INSERT must see the winner's commit.
            conn.isolation_level = psycopg.IsolationLevel.READ_COMMITTED
            with conn.cursor(row_factory=dict_row) as cur:
                apply_statement_timeout(cur, self.statement_timeout_ms)
                for _ in range(MAX_CREATE_ROUNDS):
                    cur.execute(SELECT_BY_KEY_SQL, (petition_id, constituency_id))
                    row = cur.fetchone()
                    if row is not None:
                        return JournalRecord.model_validate(row)

                    cur.execute(INSERT_SQL, (petition_id, constituency_id))
                    row = cur.fetchone()
                    if row is not None:
                        log.info(
                            "Journal created",
                            extra={
                                "petition_id": petition_id,
                                "constituency_id": constituency_id,
                                "journal_id": row["id"],
                            },
                        )
                        return JournalRecord.model_validate(row)

                    log.debug(
                        "Journal creation lost to a concurrent writer, re-reading",
                        extra={"petition_id": petition_id, "constituency_id": constituency_id},
                    )

        raise PersistenceError(
            f"journal for petition {petition_id} / {constituency_id} "
            f"disappeared during creation {MAX_CREATE_ROUNDS} times"
        )

    def record_new_signature(self, record: JournalRecord) -> JournalRecord:
        """
        Add exactly one signature to the stored count of `record`.

        The increment is applied relative to the stored value, so the count
        carried by `record` is irrelevant. Not retried: a failure after the
        server applied the update cannot be told apart from one before it.

        Returns
        -------
        JournalRecord
            Fresh snapshot carrying the incremented count.
        """
        if not isinstance(record, JournalRecord):
            raise ValidationError("an existing journal record is required")

        try:
            with self._get_pool().connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    apply_statement_timeout(cur, self.statement_timeout_ms)
                    cur.execute(INCREMENT_SQL, (record.id,))
                    row = cur.fetchone()
        except psycopg.Error as exc:
            log.exception(
                "Journal increment failed",
                extra={"journal_id": record.id, "petition_id": record.petition_id},
            )
            raise PersistenceError(f"could not increment journal {record.id}") from exc

        if row is None:
            raise PersistenceError(f"journal {record.id} no longer exists")
        return JournalRecord.model_validate(row)

    # -- read paths --------------------------------------------------------

    def get(self, petition: Any, constituency_id: Optional[str]) -> Optional[JournalRecord]:
        """Look up a journal without creating it."""
        petition_id, constituency_id = self._validate_key(petition, constituency_id)
        row = self._fetch_one(SELECT_BY_KEY_SQL, (petition_id, constituency_id))
        return JournalRecord.model_validate(row) if row is not None else None

    def reload(self, record: JournalRecord) -> JournalRecord:
        """Re-read `record` from the database."""
        row = self._fetch_one(SELECT_BY_ID_SQL, (record.id,))
        if row is None:
            raise PersistenceError(f"journal {record.id} no longer exists")
        return JournalRecord.model_validate(row)

    def count(self, petition: Any = None, constituency_id: Optional[str] = None) -> int:
        """
        Number of journals, optionally restricted to one petition or one key.

        A constituency id on its own is not a key and is rejected.
        """
        if petition is None:
            if constituency_id is not None:
                raise ValidationError("counting by constituency_id requires a petition")
            row = self._fetch_one(COUNT_SQL, ())
        elif constituency_id is not None:
            row = self._fetch_one(COUNT_FOR_KEY_SQL, self._validate_key(petition, constituency_id))
        else:
            petition_id = petition_id_of(petition)
            if petition_id is None:
                raise ValidationError("petition is required")
            row = self._fetch_one(COUNT_FOR_PETITION_SQL, (petition_id,))
        return int(row["n"]) if row is not None else 0

    def list_for_petition(self, petition: Any) -> List[JournalRecord]:
        """All journals of a petition, largest count first."""
        petition_id = petition_id_of(petition)
        if petition_id is None:
            raise ValidationError("petition is required")
        try:
            with self._get_pool().connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    apply_statement_timeout(cur, self.statement_timeout_ms)
                    cur.execute(LIST_FOR_PETITION_SQL, (petition_id,))
                    rows = cur.fetchall()
        except psycopg.Error as exc:
            raise PersistenceError(f"could not list journals for petition {petition_id}") from exc
        return [JournalRecord.model_validate(row) for row in rows]

    def _fetch_one(self, sql: str, params: tuple) -> Optional[dict]:
        try:
            with self._get_pool().connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    apply_statement_timeout(cur, self.statement_timeout_ms)
                    cur.execute(sql, params)
                    return cur.fetchone()
        except psycopg.Error as exc:
            raise PersistenceError("journal query failed") from exc

    def ensure_schema(self) -> None:
        """Create the journal table and its unique key index if missing."""
        try:
            with self._get_pool().connection() as conn:
                ensure_schema(conn)
        except psycopg.Error as exc:
            raise PersistenceError("could not create journal schema") from exc


def record_new_signature_for(
    event: Optional[SignatureEvent], store: Optional[JournalStore] = None
) -> Optional[JournalRecord]:
    """
    Count a signature event through a gate over `store` (or a default store).
    """
    return SignatureGate(store or JournalStore()).record_new_signature_for(event)


__all__ = ["JournalStore", "MAX_CREATE_ROUNDS", "record_new_signature_for"]
