"""Migration phases that rewrite migrated memories in place."""

from __future__ import annotations

import sqlite3
import time
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Iterator

from hsme.migrate_matcher import load_legacy_observations, parse_wrapper
from hsme.migrate_report import MigrationConfig, Mode, PhaseResult

_GARBAGE_RULE = (
    "source_type = 'engram_migration' AND (length(raw_content) < 50 OR raw_content LIKE '%Title: \n%')"
)


class MigrationError(RuntimeError):
    """A phase failed; ``phase`` holds what it recorded up to the failure."""

    def __init__(self, message: str, phase: PhaseResult | None = None) -> None:
        super().__init__(message)
        self.phase = phase


@contextmanager
def _transaction(conn: sqlite3.Connection, phase: PhaseResult) -> Iterator[None]:
    try:
        if not conn.in_transaction:
            conn.execute("BEGIN")
    except sqlite3.Error as exc:
        raise MigrationError(f"failed to start transaction: {exc}", phase) from exc
    try:
        yield
    except BaseException:
        conn.rollback()
        raise
    try:
        conn.commit()
    except sqlite3.Error as exc:
        raise MigrationError(f"failed to commit transaction: {exc}", phase) from exc


def _elapsed(start: float) -> timedelta:
    return timedelta(seconds=time.monotonic() - start)


def run_restore_matched(
    config: MigrationConfig, hsme_db: sqlite3.Connection, legacy_db: sqlite3.Connection
) -> PhaseResult:
    """Give migrated memories back the metadata of the legacy observation they wrap."""
    start = time.monotonic()
    res = PhaseResult(name="backfill_matched")

    try:
        legacy = load_legacy_observations(legacy_db)
    except RuntimeError as exc:
        raise MigrationError(str(exc), res) from exc

    try:
        rows = hsme_db.execute(
            "SELECT id, raw_content, source_type, created_at, project FROM memories"
            " WHERE source_type LIKE 'engram_migration%'"
        ).fetchall()
    except sqlite3.Error as exc:
        raise MigrationError(f"failed to query HSME memories: {exc}", res) from exc

    matched = unmatched = errored = 0
    with _transaction(hsme_db, res):
        for memory_id, raw_content, source_type, created_at, _project in rows:
            if not all(isinstance(v, str) for v in (raw_content, source_type, created_at)):
                errored += 1
                continue
            try:
                wrapped = parse_wrapper(raw_content)
            except ValueError:
                unmatched += 1
                continue
            obs = legacy.get(wrapped.content)
            if obs is None:
                unmatched += 1
                continue
            if config.mode is Mode.DRY_RUN:
                matched += 1
                continue
            try:
                hsme_db.execute(
                    "UPDATE memories SET source_type = ?, project = ?, created_at = ?,"
                    " updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                    (obs.type, obs.project, obs.created_at, memory_id),
                )
            except sqlite3.Error:
                errored += 1
            else:
                matched += 1

    res.metadata.update(matched=str(matched), unmatched=str(unmatched), errored=str(errored))

    total = matched + unmatched
    if total > 0 and config.mode is not Mode.DRY_RUN:
        ratio = unmatched / total
        if ratio > config.unmatched_threshold:
            raise MigrationError(
                f"unmatched ratio ({ratio:.2f}) exceeds threshold ({config.unmatched_threshold:.2f})", res
            )

    res.duration = _elapsed(start)
    return res


def run_retag_born_in_hsme(config: MigrationConfig, hsme_db: sqlite3.Connection) -> PhaseResult:
    """Turn session migrations into session summaries, taking the project from the wrapper."""
    start = time.monotonic()
    res = PhaseResult(name="retag_born_in_hsme")
    try:
        rows = hsme_db.execute(
            "SELECT id, raw_content FROM memories WHERE source_type = 'engram_session_migration'"
        ).fetchall()
    except sqlite3.Error as exc:
        raise MigrationError(f"failed to query session migrations: {exc}", res) from exc

    retagged = 0
    with _transaction(hsme_db, res):
        for memory_id, raw_content in rows:
            if not isinstance(raw_content, str):
                continue
            try:
                wrapped = parse_wrapper(raw_content)
            except ValueError:
                continue
            if config.mode is not Mode.DRY_RUN:
                try:
                    hsme_db.execute(
                        "UPDATE memories SET source_type = 'session_summary', project = ?,"
                        " updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                        (wrapped.project, memory_id),
                    )
                except sqlite3.Error:
                    continue
            retagged += 1

    res.metadata["retagged"] = str(retagged)
    res.duration = _elapsed(start)
    return res


def run_delete_garbage(config: MigrationConfig, hsme_db: sqlite3.Connection) -> PhaseResult:
    """Delete malformed, nearly empty migrated memories; a dry run only counts them."""
    start = time.monotonic()
    res = PhaseResult(name="delete_garbage")
    deleted = 0
    with _transaction(hsme_db, res):
        if config.mode is not Mode.DRY_RUN:
            try:
                cursor = hsme_db.execute(f"DELETE FROM memories WHERE {_GARBAGE_RULE}")
            except sqlite3.Error as exc:
                raise MigrationError(f"failed to delete garbage: {exc}", res) from exc
            deleted = cursor.rowcount
        else:
            try:
                deleted = int(hsme_db.execute(f"SELECT count(*) FROM memories WHERE {_GARBAGE_RULE}").fetchone()[0])
            except sqlite3.Error:
                deleted = 0

    res.metadata["deleted"] = str(deleted)
    res.duration = _elapsed(start)
    return res


def run_snapshot_legacy(legacy_db: sqlite3.Connection) -> PhaseResult:
    """Record how many live legacy observations there are and the newest creation time."""
    start = time.monotonic()
    res = PhaseResult(name="snapshot_legacy")
    try:
        rowcount, max_created_at = legacy_db.execute(
            "SELECT count(*), max(created_at) FROM observations WHERE deleted_at IS NULL"
        ).fetchone()
    except sqlite3.Error as exc:
        raise MigrationError(f"failed to snapshot legacy: {exc}", res) from exc
    if max_created_at is None:
        raise MigrationError("failed to snapshot legacy: no live observations", res)

    res.metadata["rowcount"] = str(rowcount)
    res.metadata["max_created_at"] = str(max_created_at)
    res.duration = _elapsed(start)
    return res


def find_latest_baseline(config: MigrationConfig) -> str:
    """Path of the report.json of the latest earlier run in the migrations directory."""
    root = Path(config.migrations_dir)
    reports = sorted(
        str(entry / "report.json")
        for entry in root.iterdir()
        if entry.is_dir() and (entry / "report.json").exists()
    )
    if not reports:
        raise FileNotFoundError("no prior baseline report found")
    return reports[-1]