import json
from datetime import datetime, timedelta, timezone

import pytest

from hsme.migrate_report import MigrationConfig, Mode, PhaseResult, RunReport, parse_args


def _report() -> RunReport:
    return RunReport(
        run_id="20250101T100000Z",
        mode=Mode.DRY_RUN,
        timestamp=datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc),
        status="completed",
        hsme_db_path="hsme.db",
        legacy_db_path="legacy.db",
        phases=[
            PhaseResult(name="preflight", duration=timedelta(milliseconds=2)),
            PhaseResult(
                name="backfill_matched",
                status="failed",
                metadata={"matched": "1", "unmatched": "1"},
                error="boom",
            ),
        ],
        max_created_at="2025-01-01 10:00:00",
    )


def test_round_trip_through_dict():
    report = _report()
    assert RunReport.from_dict(report.to_dict()) == report


def test_round_trip_through_json_text():
    report = _report()
    restored = RunReport.from_dict(json.loads(json.dumps(report.to_dict())))
    assert restored.phases[1].metadata == {"matched": "1", "unmatched": "1"}
    assert restored.mode is Mode.DRY_RUN


def test_duration_is_stored_in_nanoseconds():
    data = _report().to_dict()
    assert data["phases"][0]["duration_ms"] == 2_000_000


def test_empty_fields_are_omitted():
    report = RunReport(run_id="r", mode=Mode.FULL, timestamp=datetime(2025, 1, 1))
    report.phases.append(PhaseResult(name="schema"))
    data = report.to_dict()
    assert "max_created_at" not in data
    assert set(data["phases"][0]) == {"name", "status", "duration_ms"}


def test_save_writes_json_and_summary(tmp_path):
    target = tmp_path / "runs" / "r1"
    report = _report()
    report.save(target)
    saved = json.loads((target / "report.json").read_text())
    assert saved == report.to_dict()
    summary = (target / "report.txt").read_text()
    assert f"Run ID: {report.run_id}" in summary
    assert "Mode: dry-run" in summary
    assert "[backfill_matched] failed" in summary
    assert "  matched=1" in summary
    assert "  ERROR: boom" in summary


def test_parse_args_defaults(monkeypatch):
    for name in ("HSME_DB_PATH", "LEGACY_DB_PATH", "OLLAMA_HOST", "EMBEDDING_MODEL"):
        monkeypatch.delenv(name, raising=False)
    config = parse_args([])
    assert config.mode is Mode.FULL
    assert config.unmatched_threshold == 0.10
    assert config.ollama_host == "http://localhost:11434"
    assert config.embedding_model == "nomic-embed-text"
    assert config.skip_backup is False
    assert config == MigrationConfig(legacy_db_path=config.legacy_db_path)


def test_parse_args_reads_flags_and_lowercases_mode(monkeypatch):
    monkeypatch.setenv("HSME_DB_PATH", "from-env.db")
    config = parse_args(["-mode", "DELTA", "--unmatched-threshold", "0.5", "-skip-backup", "--quiet"])
    assert config.mode is Mode.DELTA
    assert config.unmatched_threshold == 0.5
    assert config.skip_backup and config.quiet
    assert config.hsme_db_path == "from-env.db"


def test_parse_args_flag_beats_environment(monkeypatch):
    monkeypatch.setenv("LEGACY_DB_PATH", "env-legacy.db")
    config = parse_args(["--legacy-db", "flag-legacy.db"])
    assert config.legacy_db_path == "flag-legacy.db"


def test_parse_args_rejects_unknown_mode():
    with pytest.raises(ValueError, match="invalid mode: sideways"):
        parse_args(["--mode", "sideways"])