"""
Domain package for the constituency journal.

Exports the journal and signature models plus the gate that decides which
signature events are counted. Keep this package free of database access.
"""

from constituency_journal.domain.gate import (
    Applicability,
    JournalWriter,
    SignatureGate,
    SkipReason,
    check_applicability,
)
from constituency_journal.domain.models import (
    CONSTITUENCY_ID_MAX_LENGTH,
    JournalRecord,
    PetitionRef,
    SignatureEvent,
    SignatureState,
    petition_id_of,
)

__all__ = [
    "Applicability",
    "CONSTITUENCY_ID_MAX_LENGTH",
    "JournalRecord",
    "JournalWriter",
    "PetitionRef",
    "SignatureEvent",
    "SignatureGate",
    "SignatureState",
    "SkipReason",
    "check_applicability",
    "petition_id_of",
]
