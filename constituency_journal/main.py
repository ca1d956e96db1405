from __future__ import annotations

import json
import sys
from typing import NoReturn, Optional

import typer

from constituency_journal.config import get_settings
from constituency_journal.domain.gate import SignatureGate, check_applicability
from constituency_journal.domain.models import PetitionRef, SignatureEvent, SignatureState
from constituency_journal.errors import JournalError
from constituency_journal.store import JournalStore
from constituency_journal.stress import MODES, run_stress
from constituency_journal.utils.logging import configure_logging

app = typer.Typer(help="Constituency petition journal CLI.")


def _configure() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _fail(exc: JournalError) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=2)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"pool=({settings.db_pool_min_size},{settings.db_pool_max_size}) "
        f"statement_timeout_ms={settings.db_statement_timeout_ms} "
        f"retries={settings.db_connect_retries}"
    )


@app.command("init-db")
def init_db() -> None:
    """
    Create the journal table and its unique key index.
    """
    _configure()
    try:
        JournalStore().ensure_schema()
    except JournalError as exc:
        _fail(exc)
    typer.echo("Journal schema ready.")


@app.command()
def record(
    petition_id: int = typer.Argument(..., help="Petition the signature belongs to."),
    constituency_id: str = typer.Argument(..., help="Constituency code, e.g. E14000001."),
    state: SignatureState = typer.Option(
        SignatureState.VALIDATED, "--state", help="Signature state to submit."
    ),
) -> None:
    """
    Submit one signature event and print the resulting journal.
    """
    _configure()
    event = SignatureEvent(
        petition=PetitionRef(id=petition_id), constituency_id=constituency_id, state=state
    )
    verdict = check_applicability(event)
    if not verdict:
        typer.echo(f"Skipped: {verdict.reason.value if verdict.reason else 'unknown'}")
        return
    try:
        journal = SignatureGate(JournalStore()).record_new_signature_for(event)
    except JournalError as exc:
        _fail(exc)
    typer.echo(journal.model_dump_json(indent=2) if journal else "Skipped")


@app.command()
def show(
    petition_id: int = typer.Argument(..., help="Petition to report on."),
) -> None:
    """
    List the journals of a petition, largest count first.
    """
    _configure()
    try:
        journals = JournalStore().list_for_petition(PetitionRef(id=petition_id))
    except JournalError as exc:
        _fail(exc)
    for journal in journals:
        typer.echo(f"{journal.constituency_id}\t{journal.signature_count}")
    typer.echo(f"{len(journals)} constituencies, {sum(j.signature_count for j in journals)} signatures")


@app.command()
def stress(
    petition_id: int = typer.Option(1, "--petition", "-p", help="Petition id to load."),
    constituency_id: str = typer.Option("E14000001", "--constituency", "-c"),
    events: Optional[int] = typer.Option(
        None, "--events", "-e", help="Number of validated events (default from settings)."
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Concurrent workers (default from settings)."
    ),
    mode: str = typer.Option("threads", "--mode", "-m", help=f"One of: {', '.join(MODES)}."),
) -> None:
    """
    Hammer one journal with concurrent events and verify nothing was lost.
    """
    _configure()
    settings = get_settings()
    try:
        result = run_stress(
            petition_id=petition_id,
            constituency_id=constituency_id,
            events=settings.stress_events if events is None else events,
            workers=settings.stress_workers if workers is None else workers,
            mode=mode,
        )
    except (ValueError, JournalError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2)
    typer.echo(json.dumps(result, indent=2))
    if not result["consistent"]:
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
