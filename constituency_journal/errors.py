"""
Error taxonomy for the constituency journal.

Callers only ever see two failure kinds: malformed journal keys
(`ValidationError`) and store failures (`PersistenceError`). Losing the
creation race for a journal row is not an error and never surfaces.
"""

from __future__ import annotations


class JournalError(Exception):
    """Base class for all journal errors."""


class ValidationError(JournalError, ValueError):
    """Missing or malformed petition / constituency key."""


class PersistenceError(JournalError):
    """The backing store was unreachable or rejected a write."""


__all__ = ["JournalError", "ValidationError", "PersistenceError"]
