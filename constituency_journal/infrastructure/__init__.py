"""
Infrastructure package for the constituency journal.

Centralizes database connectivity concerns (connection factory, pooling,
schema bootstrap). Keep this layer focused on I/O and resource management,
decoupled from the gate and store semantics.
"""

from constituency_journal.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    build_dsn,
    get_sync_pool,
    open_pool,
)
from constituency_journal.infrastructure.schema import (
    JOURNAL_TABLE,
    ensure_schema,
)

__all__ = [
    "JOURNAL_TABLE",
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
    "ensure_schema",
    "get_sync_pool",
    "open_pool",
]
