import sqlite3
import stat
from pathlib import Path

import pytest

from hsme.migrate_phases import MigrationError
from hsme.migrate_preflight import run_backup, run_preflight
from hsme.migrate_report import MigrationConfig, Mode


def _legacy(path: Path) -> Path:
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE observations (id INTEGER PRIMARY KEY, content TEXT)")
    conn.commit()
    conn.close()
    return path


def _config(tmp_path: Path, **overrides) -> MigrationConfig:
    values = dict(
        mode=Mode.FULL,
        hsme_db_path=str(tmp_path / "hsme.db"),
        legacy_db_path=str(_legacy(tmp_path / "legacy.db")),
        migrations_dir=str(tmp_path / "migrations" / "nested"),
    )
    values.update(overrides)
    return MigrationConfig(**values)


def test_preflight_ok_creates_migrations_dir(tmp_path):
    config = _config(tmp_path)
    res = run_preflight(config)
    assert res.name == "preflight"
    assert res.status == "ok"
    assert Path(config.migrations_dir).is_dir()


def test_preflight_missing_legacy_db_fails(tmp_path):
    config = _config(tmp_path)
    config.legacy_db_path = str(tmp_path / "absent.db")
    with pytest.raises(MigrationError, match="Legacy DB") as info:
        run_preflight(config)
    assert info.value.phase.name == "preflight"


@pytest.mark.parametrize("mode,skip", [(Mode.DRY_RUN, False), (Mode.FULL, True)])
def test_backup_skipped(tmp_path, mode, skip):
    res = run_backup(_config(tmp_path, mode=mode, skip_backup=skip))
    assert res.status == "skipped"
    assert res.metadata["reason"] == "dry-run or skip-backup set"


def test_backup_missing_script(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(MigrationError, match="backup script not found"):
        run_backup(_config(tmp_path))


def _script(tmp_path: Path, body: str) -> None:
    scripts = tmp_path / "scripts"
    scripts.mkdir()
    script = scripts / "backup_hot.sh"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def test_backup_runs_script_with_db_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _script(tmp_path, 'printf "%s" "$SQLITE_DB_PATH" > seen.txt\n')
    config = _config(tmp_path)
    res = run_backup(config)
    assert res.status == "ok"
    assert res.metadata["message"] == "hot backup completed successfully"
    assert (tmp_path / "seen.txt").read_text() == config.hsme_db_path


def test_backup_failure_reports_output(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _script(tmp_path, "echo disk-full-here\nexit 3\n")
    with pytest.raises(MigrationError, match="disk-full-here") as info:
        run_backup(_config(tmp_path))
    assert str(info.value).startswith("backup failed")