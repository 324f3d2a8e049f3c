"""System health: memory, graph and task counts, and whether a worker runs."""

from __future__ import annotations

import os
import sqlite3
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from hsme.cli_output import Palette

WORKER_PROCESS = "hsme-worker"
TASK_STATES = ("pending", "processing", "completed", "failed")


@dataclass
class GraphStats:
    nodes: int = 0
    edges: int = 0


@dataclass
class StatusInfo:
    memories: int = 0
    graph: GraphStats = field(default_factory=GraphStats)
    tasks: dict[str, int] = field(default_factory=dict)
    worker_running: bool = False
    latest_errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "memories": self.memories,
            "graph": {"nodes": self.graph.nodes, "edges": self.graph.edges},
            "tasks": dict(self.tasks),
            "worker_running": self.worker_running,
        }
        if self.latest_errors:
            data["latest_errors"] = list(self.latest_errors)
        return data


def _count(conn: sqlite3.Connection, table: str, what: str) -> int:
    try:
        return int(conn.execute(f"SELECT count(*) FROM {table}").fetchone()[0])
    except sqlite3.Error as exc:
        raise RuntimeError(f"failed to count {what}: {exc}") from exc


def get_status(conn: sqlite3.Connection) -> StatusInfo:
    """Gather counts from the database and check for a running worker."""
    info = StatusInfo()
    info.memories = _count(conn, "memories", "memories")
    info.graph.nodes = _count(conn, "kg_nodes", "graph nodes")
    info.graph.edges = _count(conn, "kg_edge_evidence", "graph edges")

    try:
        rows = conn.execute("SELECT status, count(*) FROM async_tasks GROUP BY status").fetchall()
    except sqlite3.Error as exc:
        raise RuntimeError(f"failed to count tasks: {exc}") from exc
    info.tasks = {str(status): int(count) for status, count in rows}

    try:
        error_rows = conn.execute(
            "SELECT last_error FROM async_tasks WHERE last_error IS NOT NULL ORDER BY updated_at DESC LIMIT 5"
        ).fetchall()
    except sqlite3.Error:
        error_rows = []
    info.latest_errors = [str(message) for (message,) in error_rows if message]

    info.worker_running = check_worker_running()
    return info


def check_worker_running() -> bool:
    """Look for a worker process in /proc, falling back to pgrep."""
    if sys.platform.startswith("linux"):
        try:
            entries = list(Path("/proc").iterdir())
        except OSError:
            entries = []
        for entry in entries:
            if not entry.name.isdigit():
                continue
            try:
                if (entry / "comm").read_text().strip() == WORKER_PROCESS:
                    return True
            except OSError:
                continue
    try:
        completed = subprocess.run(
            ["pgrep", WORKER_PROCESS],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=os.environ.copy(),
        )
    except OSError:
        return False
    return completed.returncode == 0


def render_status_text(status: StatusInfo, palette: Palette | None = None) -> str:
    """The status report as printed on a terminal."""
    colors = palette if palette is not None else Palette(False)
    worker = colors.green("RUNNING") if status.worker_running else colors.red("STOPPED")
    painters = {
        "pending": colors.yellow,
        "processing": colors.green,
        "completed": colors.green,
        "failed": colors.red,
    }
    lines = [
        f"Worker Status: {worker}",
        f"Memories: {status.memories}",
        f"Graph:    {status.graph.nodes} nodes, {status.graph.edges} edges",
        "Tasks:",
    ]
    for state in TASK_STATES:
        label = painters[state](state)
        lines.append(f"  - {label:<12}: {status.tasks.get(state, 0)}")
    if status.latest_errors:
        lines += ["", "Latest Errors:"]
        lines += [f"  - {colors.red(message)}" for message in status.latest_errors]
    return "\n".join(lines) + "\n"