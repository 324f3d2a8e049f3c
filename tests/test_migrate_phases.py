import sqlite3

import pytest

from hsme.migrate_phases import (
    MigrationError,
    find_latest_baseline,
    run_delete_garbage,
    run_restore_matched,
    run_retag_born_in_hsme,
    run_snapshot_legacy,
)
from hsme.migrate_report import MigrationConfig, Mode

MATCHED_RAW = "Title: Legacy Note\nProject: ProjA\nType: note\n\nClean content 1"
SESSION_RAW = "Title: HSME Summary\nProject: ProjB\nType: session_summary\n\nSome summary"
GARBAGE_RAW = "Title: \nProject: Unknown\nType: manual\n\n"


@pytest.fixture
def legacy_db():
    conn = sqlite3.connect(":memory:")
    conn.execute(
        "CREATE TABLE observations (id INTEGER PRIMARY KEY, type TEXT, title TEXT, content TEXT,"
        " project TEXT, created_at TEXT, deleted_at TEXT)"
    )
    conn.execute(
        "INSERT INTO observations (id, type, title, content, project, created_at)"
        " VALUES (1, 'note', 'Legacy Note', 'Clean content 1', 'ProjA', '2025-01-01 10:00:00')"
    )
    conn.commit()
    return conn


@pytest.fixture
def hsme_db():
    conn = sqlite3.connect(":memory:")
    conn.execute(
        "CREATE TABLE memories (id INTEGER PRIMARY KEY AUTOINCREMENT, raw_content TEXT, content_hash TEXT,"
        " source_type TEXT, project TEXT, created_at DATETIME, updated_at DATETIME, status TEXT)"
    )
    conn.executemany(
        "INSERT INTO memories (raw_content, content_hash, source_type, created_at, status)"
        " VALUES (?, ?, ?, ?, 'active')",
        [
            (MATCHED_RAW, "hash1", "engram_migration", "2026-04-23"),
            (SESSION_RAW, "hash2", "engram_session_migration", "2026-04-24"),
            (GARBAGE_RAW, "hash3", "engram_migration", "2026-04-25"),
        ],
    )
    conn.commit()
    return conn


def _row(conn, memory_id):
    return conn.execute(
        "SELECT source_type, project, created_at FROM memories WHERE id = ?", (memory_id,)
    ).fetchone()


def test_restore_dry_run_counts_without_writing(hsme_db, legacy_db):
    res = run_restore_matched(MigrationConfig(mode=Mode.DRY_RUN), hsme_db, legacy_db)
    assert res.name == "backfill_matched"
    assert res.metadata == {"matched": "1", "unmatched": "1", "errored": "0"}
    assert _row(hsme_db, 1) == ("engram_migration", None, "2026-04-23")


def test_restore_full_over_threshold_fails_after_commit(hsme_db, legacy_db):
    with pytest.raises(MigrationError, match="exceeds threshold") as info:
        run_restore_matched(MigrationConfig(mode=Mode.FULL, unmatched_threshold=0.10), hsme_db, legacy_db)
    assert info.value.phase.metadata["matched"] == "1"
    assert _row(hsme_db, 1) == ("note", "ProjA", "2025-01-01 10:00:00")


def test_restore_full_within_threshold(hsme_db, legacy_db):
    res = run_restore_matched(MigrationConfig(mode=Mode.FULL, unmatched_threshold=0.6), hsme_db, legacy_db)
    assert res.status == "ok"
    assert res.metadata["matched"] == "1"
    assert _row(hsme_db, 1) == ("note", "ProjA", "2025-01-01 10:00:00")
    assert _row(hsme_db, 3)[0] == "engram_migration"


def test_retag_session_migration(hsme_db):
    res = run_retag_born_in_hsme(MigrationConfig(mode=Mode.FULL), hsme_db)
    assert res.metadata == {"retagged": "1"}
    assert _row(hsme_db, 2)[:2] == ("session_summary", "ProjB")


def test_retag_dry_run_leaves_rows(hsme_db):
    res = run_retag_born_in_hsme(MigrationConfig(mode=Mode.DRY_RUN), hsme_db)
    assert res.metadata == {"retagged": "1"}
    assert _row(hsme_db, 2)[0] == "engram_session_migration"


def test_delete_garbage_after_restore(hsme_db, legacy_db):
    run_restore_matched(MigrationConfig(mode=Mode.FULL, unmatched_threshold=0.6), hsme_db, legacy_db)
    res = run_delete_garbage(MigrationConfig(mode=Mode.FULL), hsme_db)
    assert res.metadata == {"deleted": "1"}
    ids = [r[0] for r in hsme_db.execute("SELECT id FROM memories ORDER BY id")]
    assert ids == [1, 2]


def test_delete_garbage_dry_run_only_counts(hsme_db):
    res = run_delete_garbage(MigrationConfig(mode=Mode.DRY_RUN), hsme_db)
    assert res.metadata == {"deleted": "1"}
    assert hsme_db.execute("SELECT count(*) FROM memories").fetchone()[0] == 3


def test_snapshot_legacy(legacy_db):
    res = run_snapshot_legacy(legacy_db)
    assert res.metadata == {"rowcount": "1", "max_created_at": "2025-01-01 10:00:00"}


def test_snapshot_legacy_without_live_rows(legacy_db):
    legacy_db.execute("UPDATE observations SET deleted_at = '2025-02-01'")
    with pytest.raises(MigrationError, match="failed to snapshot legacy"):
        run_snapshot_legacy(legacy_db)


def test_find_latest_baseline(tmp_path):
    for name in ("20250101T100000Z", "20250102T100000Z"):
        (tmp_path / name).mkdir()
        (tmp_path / name / "report.json").write_text("{}")
    (tmp_path / "20250103T100000Z").mkdir()
    found = find_latest_baseline(MigrationConfig(migrations_dir=str(tmp_path)))
    assert found == str(tmp_path / "20250102T100000Z" / "report.json")


def test_find_latest_baseline_none(tmp_path):
    (tmp_path / "empty-run").mkdir()
    with pytest.raises(FileNotFoundError, match="no prior baseline report found"):
        find_latest_baseline(MigrationConfig(migrations_dir=str(tmp_path)))