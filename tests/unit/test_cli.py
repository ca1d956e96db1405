from __future__ import annotations

from typer.testing import CliRunner

from constituency_journal.main import app

runner = CliRunner()


def test_info_prints_effective_configuration() -> None:
    result = runner.invoke(app, ["info"])
    assert result.exit_code == 0
    assert "DB=" in result.stdout
    assert "statement_timeout_ms=" in result.stdout


def test_record_skips_pending_signatures_without_a_database() -> None:
    result = runner.invoke(app, ["record", "1", "E14000001", "--state", "pending"])
    assert result.exit_code == 0
    assert "Skipped: not_validated" in result.stdout


def test_stress_rejects_unknown_mode() -> None:
    result = runner.invoke(app, ["stress", "--mode", "fibers", "--events", "1", "--workers", "1"])
    assert result.exit_code == 2


def test_stress_rejects_an_explicit_zero_event_count() -> None:
    result = runner.invoke(app, ["stress", "--events", "0", "--workers", "1"])
    assert result.exit_code == 2
    assert "positive" in result.output
