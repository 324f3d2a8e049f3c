"""The wrapper format of migrated memories and the legacy observations it came from."""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass

_WRAPPER = re.compile(r"Title: (.*?)\nProject: (.*?)\nType: (.*?)\n\n(.*)", re.DOTALL)


@dataclass
class WrappedMemory:
    title: str
    project: str
    type: str
    content: str


@dataclass
class LegacyObservation:
    id: int
    type: str
    title: str
    content: str
    project: str
    created_at: str


def parse_wrapper(raw: str) -> WrappedMemory:
    """Split a wrapped memory into its header fields and content."""
    match = _WRAPPER.fullmatch(raw)
    if match is None:
        raise ValueError("unparseable wrapper format")
    title, project, kind, content = match.groups()
    return WrappedMemory(title=title, project=project, type=kind, content=content)


def build_wrapper(observation: LegacyObservation) -> str:
    """Wrap a legacy observation the way migrated memories are stored."""
    return (
        f"Title: {observation.title}\nProject: {observation.project}\n"
        f"Type: {observation.type}\n\n{observation.content}"
    )


def load_legacy_observations(conn: sqlite3.Connection) -> dict[str, LegacyObservation]:
    """Live legacy observations keyed by their exact content."""
    try:
        rows = conn.execute(
            "SELECT id, type, title, content, project, created_at FROM observations WHERE deleted_at IS NULL"
        ).fetchall()
    except sqlite3.Error as exc:
        raise RuntimeError(f"failed to query legacy observations: {exc}") from exc

    observations: dict[str, LegacyObservation] = {}
    for row in rows:
        if any(value is None for value in row):
            raise RuntimeError(f"failed to scan legacy observation: NULL column in row {row[0]}")
        obs_id, kind, title, content, project, created_at = row
        observation = LegacyObservation(
            id=int(obs_id),
            type=str(kind),
            title=str(title),
            content=str(content),
            project=str(project),
            created_at=str(created_at),
        )
        observations[observation.content] = observation
    return observations