"""Configuration and run reports of a legacy-database migration."""

from __future__ import annotations

import argparse
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Sequence


class Mode(str, Enum):
    FULL = "full"
    DELTA = "delta"
    DRY_RUN = "dry-run"


def _default_legacy_path() -> str:
    return os.path.expanduser("~/.engram/engram.db")


@dataclass
class MigrationConfig:
    """Settings of one migration run."""

    mode: Mode = Mode.FULL
    hsme_db_path: str = "data/engram.db"
    legacy_db_path: str = field(default_factory=_default_legacy_path)
    migrations_dir: str = "data/migrations"
    unmatched_threshold: float = 0.10
    skip_backup: bool = False
    ollama_host: str = "http://localhost:11434"
    embedding_model: str = "nomic-embed-text"
    quiet: bool = False


@dataclass
class PhaseResult:
    """Outcome of one migration phase."""

    name: str
    status: str = "ok"
    duration: timedelta = field(default_factory=timedelta)
    metadata: dict[str, str] = field(default_factory=dict)
    error: str = ""

    def _as_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "status": self.status,
            "duration_ms": _nanoseconds(self.duration),
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def _from_json(cls, data: dict[str, Any]) -> PhaseResult:
        return cls(
            name=data.get("name", ""),
            status=data.get("status", ""),
            duration=timedelta(microseconds=int(data.get("duration_ms") or 0) / 1000),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
            error=data.get("error", ""),
        )


def _nanoseconds(duration: timedelta) -> int:
    return (duration // timedelta(microseconds=1)) * 1000


def _trimmed(whole: int, frac: int, digits: int) -> str:
    frac_text = f"{frac:0{digits}d}".rstrip("0")
    return f"{whole}.{frac_text}" if frac_text else str(whole)


def _format_duration(duration: timedelta) -> str:
    """Compact duration text such as ``1.5ms`` or ``1m2.5s``."""
    ns = _nanoseconds(duration)
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns == 0:
        return "0s"
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_trimmed(*divmod(ns, 1_000), 3)}\u00b5s"
    if ns < 1_000_000_000:
        return f"{sign}{_trimmed(*divmod(ns, 1_000_000), 6)}ms"
    hours, rest = divmod(ns, 3_600 * 1_000_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000_000)
    seconds = _trimmed(*divmod(rest, 1_000_000_000), 9)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def _parse_timestamp(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass
class RunReport:
    """Everything recorded about one migration run."""

    run_id: str
    mode: Mode
    timestamp: datetime
    status: str = "running"
    hsme_db_path: str = ""
    legacy_db_path: str = ""
    phases: list[PhaseResult] = field(default_factory=list)
    max_created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "run_id": self.run_id,
            "mode": self.mode.value,
            "timestamp": self.timestamp.isoformat(),
            "phases": [p._as_json() for p in self.phases],
            "status": self.status,
            "hsme_db_path": self.hsme_db_path,
            "legacy_db_path": self.legacy_db_path,
        }
        if self.max_created_at:
            data["max_created_at"] = self.max_created_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunReport:
        return cls(
            run_id=data.get("run_id", ""),
            mode=Mode(data.get("mode", Mode.FULL.value)),
            timestamp=_parse_timestamp(data["timestamp"]),
            status=data.get("status", ""),
            hsme_db_path=data.get("hsme_db_path", ""),
            legacy_db_path=data.get("legacy_db_path", ""),
            phases=[PhaseResult._from_json(p) for p in data.get("phases") or []],
            max_created_at=data.get("max_created_at", ""),
        )

    def _summary(self) -> str:
        lines = [
            f"Run ID: {self.run_id}",
            f"Mode: {self.mode.value}",
            f"Timestamp: {self.timestamp}",
            f"Status: {self.status}",
            "",
            "Phases:",
        ]
        for phase in self.phases:
            lines.append(f"[{phase.name}] {phase.status} ({_format_duration(phase.duration)})")
            lines += [f"  {key}={value}" for key, value in sorted(phase.metadata.items())]
            if phase.error:
                lines.append(f"  ERROR: {phase.error}")
        return "\n".join(lines) + "\n"

    def save(self, directory: str | Path) -> None:
        """Write report.json and report.txt into ``directory``, creating it if needed."""
        target = Path(directory)
        target.mkdir(parents=True, exist_ok=True)
        (target / "report.json").write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        (target / "report.txt").write_text(self._summary(), encoding="utf-8")


def parse_args(argv: Sequence[str] | None = None) -> MigrationConfig:
    """Read the migration settings from the command line and the environment."""
    defaults = MigrationConfig()
    env = os.environ
    parser = argparse.ArgumentParser(prog="migrate-legacy", allow_abbrev=False)
    parser.add_argument("-mode", "--mode", default="full", help="Execution mode (full, delta, dry-run)")
    parser.add_argument(
        "-hsme-db", "--hsme-db", dest="hsme_db_path",
        default=env.get("HSME_DB_PATH", defaults.hsme_db_path), help="HSME SQLite database (read-write)",
    )
    parser.add_argument(
        "-legacy-db", "--legacy-db", dest="legacy_db_path",
        default=env.get("LEGACY_DB_PATH", defaults.legacy_db_path),
        help="Legacy Engram SQLite database (read-only)",
    )
    parser.add_argument(
        "-migrations-dir", "--migrations-dir", dest="migrations_dir",
        default=defaults.migrations_dir, help="Where run reports are written",
    )
    parser.add_argument(
        "-unmatched-threshold", "--unmatched-threshold", dest="unmatched_threshold", type=float,
        default=defaults.unmatched_threshold, help="Refuse phase 4 if unmatched ratio > threshold",
    )
    parser.add_argument(
        "-skip-backup", "--skip-backup", dest="skip_backup", action="store_true",
        help="DANGEROUS \u2014 skip backup phase",
    )
    parser.add_argument(
        "-ollama-host", "--ollama-host", dest="ollama_host",
        default=env.get("OLLAMA_HOST", defaults.ollama_host), help="Ollama endpoint",
    )
    parser.add_argument(
        "-embedding-model", "--embedding-model", dest="embedding_model",
        default=env.get("EMBEDDING_MODEL", defaults.embedding_model), help="Embedding model name",
    )
    parser.add_argument("-quiet", "--quiet", action="store_true", help="Suppress per-row progress output")
    ns = parser.parse_args(argv)

    mode_text = ns.mode.lower()
    try:
        mode = Mode(mode_text)
    except ValueError:
        raise ValueError(f"invalid mode: {mode_text}") from None

    return MigrationConfig(
        mode=mode,
        hsme_db_path=ns.hsme_db_path,
        legacy_db_path=ns.legacy_db_path,
        migrations_dir=ns.migrations_dir,
        unmatched_threshold=ns.unmatched_threshold,
        skip_backup=ns.skip_backup,
        ollama_host=ns.ollama_host,
        embedding_model=ns.embedding_model,
        quiet=ns.quiet,
    )