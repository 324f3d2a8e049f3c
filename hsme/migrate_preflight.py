"""Checks before a migration starts, and the hot backup taken before it changes anything."""

from __future__ import annotations

import os
import sqlite3
import subprocess
import time
from contextlib import closing
from datetime import timedelta
from pathlib import Path

from hsme.migrate_phases import MigrationError
from hsme.migrate_report import MigrationConfig, Mode, PhaseResult

BACKUP_SCRIPT = Path("scripts") / "backup_hot.sh"


def _legacy_uri(path: str) -> str:
    """SQLite URI that opens the legacy database read-only and immutable."""
    return f"{Path(path).resolve().as_uri()}?mode=ro&immutable=1"


def _elapsed(start: float) -> timedelta:
    return timedelta(seconds=time.monotonic() - start)


def run_preflight(config: MigrationConfig) -> PhaseResult:
    """Make sure the report directory exists and both databases can be reached."""
    start = time.monotonic()
    res = PhaseResult(name="preflight")

    try:
        Path(config.migrations_dir).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise MigrationError(f"failed to create migrations directory: {exc}", res) from exc

    try:
        hsme_db = sqlite3.connect(config.hsme_db_path)
    except sqlite3.Error as exc:
        raise MigrationError(f"failed to open HSME DB: {exc}", res) from exc
    with closing(hsme_db):
        try:
            hsme_db.execute("SELECT 1").fetchone()
        except sqlite3.Error as exc:
            raise MigrationError(f"HSME DB unreachable: {exc}", res) from exc

    try:
        legacy_db = sqlite3.connect(_legacy_uri(config.legacy_db_path), uri=True)
    except sqlite3.Error as exc:
        raise MigrationError(f"failed to open Legacy DB: {exc}", res) from exc
    with closing(legacy_db):
        try:
            legacy_db.execute("SELECT 1").fetchone()
        except sqlite3.Error as exc:
            raise MigrationError(f"Legacy DB unreachable: {exc}", res) from exc

    res.duration = _elapsed(start)
    return res


def run_backup(config: MigrationConfig) -> PhaseResult:
    """Run the hot-backup script against the HSME database, unless skipped."""
    start = time.monotonic()
    res = PhaseResult(name="backup")

    if config.mode is Mode.DRY_RUN or config.skip_backup:
        res.status = "skipped"
        res.metadata["reason"] = "dry-run or skip-backup set"
        res.duration = _elapsed(start)
        return res

    script = Path.cwd() / BACKUP_SCRIPT
    if not script.exists():
        raise MigrationError(f"backup script not found at {script}", res)

    env = dict(os.environ, SQLITE_DB_PATH=config.hsme_db_path)
    try:
        completed = subprocess.run(
            [str(script)],
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except OSError as exc:
        raise MigrationError(f"backup failed: {exc}\nOutput: ", res) from exc
    if completed.returncode != 0:
        raise MigrationError(
            f"backup failed: exit status {completed.returncode}\nOutput: {completed.stdout}", res
        )

    res.metadata["message"] = "hot backup completed successfully"
    res.duration = _elapsed(start)
    return res