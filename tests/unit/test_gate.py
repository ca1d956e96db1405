from __future__ import annotations

from typing import Any

import pytest

from constituency_journal import store as store_module
from constituency_journal.domain.gate import (
    JournalWriter,
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
from constituency_journal.errors import PersistenceError

CONSTITUENCY = "E14000001"
EXISTING_COUNT = 20


class _RecordingStore:
    """Dict-backed journal writer that records every call made to it."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.journals: dict[tuple[int, str], JournalRecord] = {}

    def for_petition(self, petition: Any, constituency_id: str | None) -> JournalRecord:
        self.calls.append(("for_petition", (petition.id, constituency_id)))
        key = (petition.id, constituency_id)
        if key not in self.journals:
            self.journals[key] = JournalRecord(
                id=len(self.journals) + 1, petition_id=petition.id, constituency_id=constituency_id
            )
        return self.journals[key]

    def record_new_signature(self, record: JournalRecord) -> JournalRecord:
        self.calls.append(("record_new_signature", record.id))
        stored = self.journals[record.key]
        updated = stored.model_copy(update={"signature_count": stored.signature_count + 1})
        self.journals[record.key] = updated
        return updated


class _FailingStore(_RecordingStore):
    def record_new_signature(self, record: JournalRecord) -> JournalRecord:
        raise PersistenceError("write failed")


@pytest.fixture
def fake_store() -> _RecordingStore:
    return _RecordingStore()


@pytest.fixture
def signature() -> SignatureEvent:
    return SignatureEvent(
        petition=PetitionRef(id=1),
        constituency_id=CONSTITUENCY,
        state=SignatureState.VALIDATED,
    )


class TestCheckApplicability:
    def test_validated_event_with_full_key_is_applicable(self, signature) -> None:
        verdict = check_applicability(signature)
        assert verdict
        assert verdict.reason is None

    def test_missing_event(self) -> None:
        assert check_applicability(None).reason is SkipReason.NO_EVENT

    def test_missing_petition(self, signature) -> None:
        signature.petition = None
        assert check_applicability(signature).reason is SkipReason.NO_PETITION

    @pytest.mark.parametrize("constituency_id", [None, "", "  "])
    def test_blank_constituency(self, signature, constituency_id) -> None:
        signature.constituency_id = constituency_id
        assert check_applicability(signature).reason is SkipReason.NO_CONSTITUENCY

    @pytest.mark.parametrize(
        "state",
        [SignatureState.PENDING, SignatureState.INVALIDATED, SignatureState.FRAUDULENT],
    )
    def test_any_state_other_than_validated(self, signature, state) -> None:
        signature.state = state
        verdict = check_applicability(signature)
        assert not verdict
        assert verdict.reason is SkipReason.NOT_VALIDATED

    @pytest.mark.parametrize("state", list(SignatureState))
    def test_verdict_follows_the_event_validated_flag(self, signature, state) -> None:
        signature.state = state
        assert bool(check_applicability(signature)) is signature.validated

    def test_first_failing_check_wins(self) -> None:
        event = SignatureEvent(petition=None, constituency_id=None, state=SignatureState.PENDING)
        assert check_applicability(event).reason is SkipReason.NO_PETITION


class TestSignatureGate:
    def test_fake_store_satisfies_the_writer_protocol(self, fake_store) -> None:
        assert isinstance(fake_store, JournalWriter)

    def test_does_nothing_if_the_signature_is_none(self, fake_store) -> None:
        assert SignatureGate(fake_store).record_new_signature_for(None) is None
        assert fake_store.calls == []

    def test_does_nothing_if_the_signature_has_no_petition(self, fake_store, signature) -> None:
        signature.petition = None
        assert SignatureGate(fake_store).record_new_signature_for(signature) is None
        assert fake_store.calls == []

    def test_does_nothing_if_the_signature_has_no_constituency_id(
        self, fake_store, signature
    ) -> None:
        signature.constituency_id = None
        assert SignatureGate(fake_store).record_new_signature_for(signature) is None
        assert fake_store.calls == []

    def test_does_nothing_if_the_signature_is_not_validated(self, fake_store, signature) -> None:
        signature.state = SignatureState.PENDING
        assert SignatureGate(fake_store).record_new_signature_for(signature) is None
        assert fake_store.calls == []

    def test_creates_the_journal_and_counts_one(self, fake_store, signature) -> None:
        journal = SignatureGate(fake_store).record_new_signature_for(signature)

        assert journal is not None
        assert journal.signature_count == 1
        assert fake_store.calls == [
            ("for_petition", (1, CONSTITUENCY)),
            ("record_new_signature", journal.id),
        ]

    def test_second_event_reuses_the_same_journal(self, fake_store, signature) -> None:
        gate = SignatureGate(fake_store)
        first = gate.record_new_signature_for(signature)
        second = gate.record_new_signature_for(signature.model_copy())

        assert first is not None and second is not None
        assert second.id == first.id
        assert second.signature_count == 2
        assert len(fake_store.journals) == 1

    def test_increments_an_existing_journal(self, fake_store, signature) -> None:
        existing = fake_store.for_petition(signature.petition, CONSTITUENCY)
        fake_store.journals[existing.key] = existing.model_copy(
            update={"signature_count": EXISTING_COUNT}
        )

        journal = SignatureGate(fake_store).record_new_signature_for(signature)

        assert journal is not None
        assert journal.signature_count == EXISTING_COUNT + 1

    def test_store_failures_propagate(self, signature) -> None:
        with pytest.raises(PersistenceError):
            SignatureGate(_FailingStore()).record_new_signature_for(signature)


def test_module_level_helper_routes_through_the_gate(fake_store, signature) -> None:
    journal = store_module.record_new_signature_for(signature, store=fake_store)  # type: ignore[arg-type]

    assert journal is not None
    assert journal.signature_count == 1


def test_module_level_helper_skips_without_building_a_pool(monkeypatch) -> None:
    def _no_pool() -> None:
        raise AssertionError("the pool must not be touched for skipped events")

    monkeypatch.setattr(store_module, "get_sync_pool", _no_pool)

    assert store_module.record_new_signature_for(None) is None
