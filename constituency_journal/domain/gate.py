"""
Signature gate: decides whether a signature event should touch a journal.

The applicability check is a pure function so it can be exercised without a
database. `SignatureGate` holds no state besides the store it delegates to;
all concurrency guarantees come from that store.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, cast, runtime_checkable

from constituency_journal.domain.models import (
    JournalRecord,
    SignatureEvent,
    is_blank,
)
from constituency_journal.utils.logging import get_logger

log = get_logger(__name__)


class SkipReason(str, Enum):
    """Why an event did not contribute to a journal."""

    NO_EVENT = "no_event"
    NO_PETITION = "no_petition"
    NO_CONSTITUENCY = "no_constituency"
    NOT_VALIDATED = "not_validated"


@dataclass(frozen=True)
class Applicability:
    applicable: bool
    reason: Optional[SkipReason] = None

    def __bool__(self) -> bool:
        return self.applicable


APPLICABLE = Applicability(applicable=True)


def check_applicability(event: Optional[SignatureEvent]) -> Applicability:
    """
    Evaluate the event against the counting rules, first failure wins.

    Order matters: absent event, absent petition, blank constituency id,
    then a state other than exactly VALIDATED.
    """
    if event is None:
        return Applicability(False, SkipReason.NO_EVENT)
    if event.petition is None:
        return Applicability(False, SkipReason.NO_PETITION)
    if is_blank(event.constituency_id):
        return Applicability(False, SkipReason.NO_CONSTITUENCY)
    if not event.validated:
        return Applicability(False, SkipReason.NOT_VALIDATED)
    return APPLICABLE


@runtime_checkable
class JournalWriter(Protocol):
    """
    The slice of the journal store the gate relies on.
    """

    def for_petition(self, petition: Any, constituency_id: Optional[str]) -> JournalRecord:
        ...

    def record_new_signature(self, record: JournalRecord) -> JournalRecord:
        ...


class SignatureGate:
    """
    Route validated signature events into the journal store.
    """

    def __init__(self, store: JournalWriter) -> None:
        self._store = store

    def record_new_signature_for(
        self, event: Optional[SignatureEvent]
    ) -> Optional[JournalRecord]:
        """
        Count one validated signature against its (petition, constituency) journal.

        Returns the updated journal, or None when the event is not countable.
        Non-countable events never raise and never reach the store.
        """
        verdict = check_applicability(event)
        if not verdict:
            log.debug(
                "Signature event skipped",
                extra={"reason": verdict.reason.value if verdict.reason else None},
            )
            return None

        countable = cast(SignatureEvent, event)
        record = self._store.for_petition(countable.petition, countable.constituency_id)
        return self._store.record_new_signature(record)


__all__ = [
    "APPLICABLE",
    "Applicability",
    "JournalWriter",
    "SignatureGate",
    "SkipReason",
    "check_applicability",
]
