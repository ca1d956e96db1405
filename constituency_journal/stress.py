"""
Concurrent load check for the journal store.

Fires many validated signature events for one (petition, constituency) key
from parallel workers and compares the final count to the number of events.

Two modes:
- "threads": workers share one store and its pool, like request threads in a
  single service instance.
- "processes": each worker process opens its own store against the DSN, like
  independent service instances sharing a database.
"""

from __future__ import annotations

import multiprocessing as mp
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import List, Optional, TypedDict

from constituency_journal.domain.gate import SignatureGate
from constituency_journal.domain.models import PetitionRef, SignatureEvent, SignatureState
from constituency_journal.infrastructure.db_factory import build_dsn
from constituency_journal.store import JournalStore
from constituency_journal.utils.logging import get_logger

log = get_logger(__name__)

MODES = ("threads", "processes")


class StressResult(TypedDict, total=False):
    """
    Outcome of one load check run.
    """

    petition_id: int
    constituency_id: str
    mode: str
    workers: int
    events: int
    failed_events: int
    initial_count: int
    expected_count: int
    final_count: int
    rows_for_key: int
    duration_seconds: float
    events_per_sec: float
    consistent: bool


@dataclass(frozen=True)
class WorkItem:
    petition_id: int
    constituency_id: str
    events: int


def _split_events(total: int, workers: int) -> List[int]:
    """Spread `total` events over `workers` as evenly as possible."""
    base, remainder = divmod(total, workers)
    return [base + (1 if i < remainder else 0) for i in range(workers) if base or i < remainder]


def _submit_events(gate: SignatureGate, work: WorkItem) -> int:
    """Send `work.events` validated events through the gate; return failures."""
    event = SignatureEvent(
        petition=PetitionRef(id=work.petition_id),
        constituency_id=work.constituency_id,
        state=SignatureState.VALIDATED,
    )
    failures = 0
    for _ in range(work.events):
        try:
            gate.record_new_signature_for(event)
        except Exception:  # noqa: BLE001 - counted and reported, run continues
            log.exception(
                "Signature event failed during load check",
                extra={"petition_id": work.petition_id, "constituency_id": work.constituency_id},
            )
            failures += 1
    return failures


def _process_worker(dsn: str, work: WorkItem) -> int:
    """
    Worker process entry point: own store, own pool, same database.
    """
    with JournalStore(dsn_override=dsn, pool_min_size=1, pool_max_size=1) as store:
        return _submit_events(SignatureGate(store), work)


def run_stress(
    petition_id: int,
    constituency_id: str,
    events: int,
    workers: int,
    mode: str = "threads",
    dsn_override: Optional[str] = None,
) -> StressResult:
    """
    Run the load check and return the observed totals.

    The journal is created (or read) before the run so the initial count of
    an existing journal is accounted for.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown mode '{mode}'. Available: {', '.join(MODES)}")
    if events < 1 or workers < 1:
        raise ValueError("events and workers must both be positive")

    dsn = dsn_override or build_dsn()
    petition = PetitionRef(id=petition_id)
    work_items = [
        WorkItem(petition_id=petition_id, constituency_id=constituency_id, events=n)
        for n in _split_events(events, workers)
    ]

    with JournalStore(
        dsn_override=dsn, pool_min_size=1, pool_max_size=max(len(work_items), 1)
    ) as store:
        store.ensure_schema()
        initial_count = store.for_petition(petition, constituency_id).signature_count

        log.info(
            "[LOAD CHECK START]",
            extra={"mode": mode, "workers": len(work_items), "events": events},
        )
        start = time.perf_counter()
        failed = 0
        if mode == "threads":
            gate = SignatureGate(store)
            with ThreadPoolExecutor(max_workers=len(work_items)) as executor:
                for failures in executor.map(partial(_submit_events, gate), work_items):
                    failed += failures
        else:
            worker = partial(_process_worker, dsn)
            with mp.get_context("spawn").Pool(processes=len(work_items)) as pool:
                for failures in pool.imap_unordered(worker, work_items):
                    failed += failures
        duration = time.perf_counter() - start

        final = store.get(petition, constituency_id)
        rows_for_key = store.count(petition, constituency_id)

    final_count = final.signature_count if final is not None else 0
    expected = initial_count + events - failed
    result = StressResult(
        petition_id=petition_id,
        constituency_id=constituency_id,
        mode=mode,
        workers=len(work_items),
        events=events,
        failed_events=failed,
        initial_count=initial_count,
        expected_count=expected,
        final_count=final_count,
        rows_for_key=rows_for_key,
        duration_seconds=round(duration, 3),
        events_per_sec=round(events / duration, 2) if duration > 0 else 0.0,
        consistent=final_count == expected and rows_for_key == 1,
    )
    log.info("[LOAD CHECK COMPLETE]", extra=dict(result))
    return result


__all__ = ["MODES", "StressResult", "WorkItem", "run_stress"]
