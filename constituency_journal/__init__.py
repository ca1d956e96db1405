"""
Constituency Journal - race-safe per-constituency signature totals for petitions.

This package keeps one running total per (petition, constituency) pair in
PostgreSQL and updates it from validated signature events:

- Get-or-create of a journal row under concurrent writers
- Atomic relative increments (no lost updates)
- A stateless gate that decides which signature events count
- A concurrent load check to verify the guarantees against a live database
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from constituency_journal.config import Settings, get_settings
from constituency_journal.domain.gate import (
    Applicability,
    SignatureGate,
    SkipReason,
    check_applicability,
)
from constituency_journal.domain.models import (
    JournalRecord,
    PetitionRef,
    SignatureEvent,
    SignatureState,
)
from constituency_journal.errors import JournalError, PersistenceError, ValidationError
from constituency_journal.store import JournalStore, record_new_signature_for
from constituency_journal.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "JournalRecord",
    "PetitionRef",
    "SignatureEvent",
    "SignatureState",
    # Gate
    "Applicability",
    "SignatureGate",
    "SkipReason",
    "check_applicability",
    # Store
    "JournalStore",
    "record_new_signature_for",
    # Errors
    "JournalError",
    "PersistenceError",
    "ValidationError",
    # Logging
    "configure_logging",
    "get_logger",
]
