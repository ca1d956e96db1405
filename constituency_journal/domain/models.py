"""
Domain models for the constituency journal.

`JournalRecord` mirrors one row of the `constituency_petition_journals` table.
`SignatureEvent` and `PetitionRef` describe what the signature validation
workflow hands us; both are owned elsewhere and only read here.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

CONSTITUENCY_ID_MAX_LENGTH = 255


class SignatureState(str, Enum):
    """Lifecycle state of a signature. Only VALIDATED signatures are counted."""

    PENDING = "pending"
    VALIDATED = "validated"
    INVALIDATED = "invalidated"
    FRAUDULENT = "fraudulent"


class PetitionRef(BaseModel):
    """
    Identity-only handle on an externally owned petition.
    """

    id: int = Field(..., description="Primary key of the petition.")

    model_config = {"frozen": True}


class SignatureEvent(BaseModel):
    """
    A single signature as seen by the validation workflow.

    Any of the three fields may be missing or not yet in a countable state;
    deciding whether the event is relevant is the gate's job, not the model's.
    """

    petition: Optional[PetitionRef] = None
    constituency_id: Optional[str] = None
    state: SignatureState = SignatureState.PENDING

    model_config = {"validate_assignment": True}

    @property
    def validated(self) -> bool:
        return self.state is SignatureState.VALIDATED


class JournalRecord(BaseModel):
    """
    Representation of a single row in the `constituency_petition_journals` table.

    Instances are snapshots; every store call returns a fresh one.
    """

    id: int = Field(..., description="Primary key (BIGSERIAL).")
    petition_id: int = Field(..., description="Petition this total belongs to.")
    constituency_id: str = Field(
        ..., min_length=1, max_length=CONSTITUENCY_ID_MAX_LENGTH, description="Region code."
    )
    signature_count: int = Field(0, ge=0, description="Validated signatures so far.")
    created_at: Optional[datetime] = Field(None, description="Row creation timestamp.")
    updated_at: Optional[datetime] = Field(None, description="Last increment timestamp.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    @property
    def key(self) -> tuple[int, str]:
        return (self.petition_id, self.constituency_id)


def petition_id_of(petition: Any) -> Optional[int]:
    """
    Resolve a petition reference to its id.

    Accepts a `PetitionRef`, any object with an integer `id` attribute, or a
    bare integer id. Returns None when there is nothing to resolve.
    """
    if petition is None:
        return None
    if isinstance(petition, bool):
        return None
    if isinstance(petition, int):
        return petition
    petition_id = getattr(petition, "id", None)
    if isinstance(petition_id, int) and not isinstance(petition_id, bool):
        return petition_id
    return None


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


__all__ = [
    "CONSTITUENCY_ID_MAX_LENGTH",
    "JournalRecord",
    "PetitionRef",
    "SignatureEvent",
    "SignatureState",
    "is_blank",
    "petition_id_of",
]
