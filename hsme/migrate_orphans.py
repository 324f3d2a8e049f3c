"""Ingesting legacy observations that never reached HSME, and the full migration run."""

from __future__ import annotations

import json
import sqlite3
import time
from contextlib import closing
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Optional

from hsme.migrate_matcher import LegacyObservation, build_wrapper
from hsme.migrate_phases import (
    MigrationError,
    find_latest_baseline,
    run_delete_garbage,
    run_restore_matched,
    run_retag_born_in_hsme,
    run_snapshot_legacy,
)
from hsme.migrate_preflight import _legacy_uri, run_backup, run_preflight
from hsme.migrate_report import MigrationConfig, Mode, PhaseResult, RunReport

StoreFunc = Callable[[sqlite3.Connection, str, str, str, Optional[int], bool], int]
HashFunc = Callable[[str], str]
SchemaFunc = Callable[[str], Any]


def _elapsed(start: float) -> timedelta:
    return timedelta(seconds=time.monotonic() - start)


def _already_stored(hsme_db: sqlite3.Connection, content_hash: str) -> bool:
    try:
        row = hsme_db.execute("SELECT 1 FROM memories WHERE content_hash = ?", (content_hash,)).fetchone()
    except sqlite3.Error:
        return False
    return row is not None


def run_ingest_orphans(
    config: MigrationConfig,
    hsme_db: sqlite3.Connection,
    legacy_db: sqlite3.Connection,
    report: RunReport,
    store: StoreFunc,
    compute_hash: HashFunc,
) -> PhaseResult:
    """Store every live legacy observation whose wrapped form is not yet in HSME.

    ``store(conn, content, source_type, project, supersedes_id, force)`` ingests a
    memory and returns its id; ``compute_hash(content)`` gives its content hash.
    """
    start = time.monotonic()
    res = PhaseResult(name="ingest_orphans")

    try:
        rows = legacy_db.execute(
            "SELECT id, type, title, content, project, created_at FROM observations WHERE deleted_at IS NULL"
        ).fetchall()
    except sqlite3.Error as exc:
        raise MigrationError(str(exc), res) from exc

    ingested = errored = 0
    for row in rows:
        if any(value is None for value in row):
            errored += 1
            continue
        obs_id, kind, title, content, project, created_at = row
        observation = LegacyObservation(
            id=int(obs_id),
            type=str(kind),
            title=str(title),
            content=str(content),
            project=str(project),
            created_at=str(created_at),
        )

        if config.mode is Mode.DELTA and report.max_created_at and observation.created_at <= report.max_created_at:
            continue

        wrapped = build_wrapper(observation)
        if _already_stored(hsme_db, compute_hash(wrapped)):
            continue

        if config.mode is Mode.DRY_RUN:
            ingested += 1
            continue

        try:
            memory_id = store(hsme_db, wrapped, observation.type, observation.project, None, False)
        except Exception:
            errored += 1
            continue

        try:
            hsme_db.execute(
                "UPDATE memories SET created_at = ?, project = ?, source_type = ?,"
                " updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (observation.created_at, observation.project, observation.type, memory_id),
            )
            hsme_db.commit()
        except sqlite3.Error:
            errored += 1
            continue

        ingested += 1

    res.metadata["ingested"] = str(ingested)
    res.metadata["errored"] = str(errored)
    res.duration = _elapsed(start)
    return res


def _record(report: RunReport, name: str, action: Callable[[], PhaseResult], *, gate: bool = False) -> PhaseResult:
    """Run a phase, append its result to the report, and re-raise failures with context."""
    try:
        result = action()
    except MigrationError as exc:
        report.phases.append(exc.phase or PhaseResult(name=name))
        if gate:
            report.status = "failed"
            raise MigrationError(f"{name} failed: {exc}", exc.phase) from exc
        raise MigrationError(f"{name} phase failed: {exc}", exc.phase) from exc
    report.phases.append(result)
    return result


def _baseline_max_created_at(config: MigrationConfig) -> str | None:
    try:
        baseline_path = find_latest_baseline(config)
    except OSError:
        return None
    print(f"Using baseline: {baseline_path}")
    try:
        data = json.loads(Path(baseline_path).read_text(encoding="utf-8"))
        return RunReport.from_dict(data).max_created_at
    except (OSError, ValueError, KeyError, TypeError):
        return None


def run_migration(
    config: MigrationConfig,
    report: RunReport,
    init_schema: SchemaFunc,
    store: StoreFunc,
    compute_hash: HashFunc,
) -> None:
    """Run every migration phase in order, recording each in ``report``.

    ``init_schema(path)`` brings the HSME schema up to date and may return an
    open connection, which is closed again.
    """
    _record(report, "preflight", lambda: run_preflight(config), gate=True)
    print("[preflight] ok")

    backup = _record(report, "backup", lambda: run_backup(config), gate=True)
    print(f"[backup] {backup.status}")

    try:
        hsme_db = sqlite3.connect(config.hsme_db_path)
    except sqlite3.Error as exc:
        raise MigrationError(f"failed to open HSME DB: {exc}") from exc
    with closing(hsme_db):
        try:
            legacy_db = sqlite3.connect(_legacy_uri(config.legacy_db_path), uri=True)
        except sqlite3.Error as exc:
            raise MigrationError(f"failed to open Legacy DB: {exc}") from exc
        with closing(legacy_db):
            _migrate(config, report, hsme_db, legacy_db, init_schema, store, compute_hash)


def _migrate(
    config: MigrationConfig,
    report: RunReport,
    hsme_db: sqlite3.Connection,
    legacy_db: sqlite3.Connection,
    init_schema: SchemaFunc,
    store: StoreFunc,
    compute_hash: HashFunc,
) -> None:
    start = time.monotonic()
    schema = PhaseResult(name="schema", metadata={"applied": "true"})
    try:
        opened = init_schema(config.hsme_db_path)
    except Exception as exc:
        schema.status = "failed"
        schema.error = str(exc)
        schema.duration = _elapsed(start)
        report.phases.append(schema)
        raise MigrationError(f"schema phase failed: {exc}", schema) from exc
    close = getattr(opened, "close", None)
    if callable(close):
        close()
    schema.duration = _elapsed(start)
    report.phases.append(schema)
    print("[schema] ok")

    if config.mode in (Mode.FULL, Mode.DRY_RUN):
        restored = _record(
            report, "backfill_matched", lambda: run_restore_matched(config, hsme_db, legacy_db)
        )
        print(
            f"[backfill_matched] ok matched={restored.metadata.get('matched')}"
            f" unmatched={restored.metadata.get('unmatched')}"
        )
        retagged = _record(report, "retag_born_in_hsme", lambda: run_retag_born_in_hsme(config, hsme_db))
        print(f"[retag_born_in_hsme] ok retagged={retagged.metadata.get('retagged')}")
        cleaned = _record(report, "delete_garbage", lambda: run_delete_garbage(config, hsme_db))
        print(f"[delete_garbage] ok deleted={cleaned.metadata.get('deleted')}")

    if config.mode is Mode.DELTA:
        prior = _baseline_max_created_at(config)
        if prior is not None:
            report.max_created_at = prior

    snapshot = _record(report, "snapshot_legacy", lambda: run_snapshot_legacy(legacy_db))
    report.max_created_at = snapshot.metadata["max_created_at"]
    print(f"[snapshot_legacy] ok rowcount={snapshot.metadata['rowcount']} max_created_at='{report.max_created_at}'")

    ingested = _record(
        report,
        "ingest_orphans",
        lambda: run_ingest_orphans(config, hsme_db, legacy_db, report, store, compute_hash),
    )
    print(f"[ingest_orphans] ok ingested={ingested.metadata['ingested']} errored={ingested.metadata['errored']}")

    report.status = "completed"