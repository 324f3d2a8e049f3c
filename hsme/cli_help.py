"""Help texts of the command-line interface."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import TextIO

_PROGRAM = "hsme-cli"
_ROW_WIDTH = 24
_TOP_ROW_WIDTH = 15

_COMMANDS: tuple[tuple[str, str], ...] = (
    ("store", "Ingest content from stdin"),
    ("search-fuzzy", "Semantic search"),
    ("search-exact", "Keyword search"),
    ("explore", "Trace graph dependencies"),
    ("status", "Show system health"),
    ("admin", "Admin operations (backup, restore, retry-failed)"),
    ("help", "Show this help or help for a specific subcommand"),
)


@dataclass(frozen=True)
class _Topic:
    usage: str
    summary: str
    heading: str = "Flags"
    rows: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    def render(self) -> str:
        text = f"Usage: {_PROGRAM} {self.usage}\n\n{self.summary}\n"
        if self.rows:
            text += f"\n{self.heading}:\n" + _table(self.rows, _ROW_WIDTH)
        return text


def _table(rows: tuple[tuple[str, str], ...], width: int) -> str:
    return "".join(f"  {name.ljust(width)}{text}\n" for name, text in rows)


_SEARCH_ROWS = (
    ("--limit int", "(default 10) Maximum number of results"),
    ("--project string", "(optional) Filter results by project"),
)

_TOPICS: dict[str, _Topic] = {
    "store": _Topic(
        "store --source-type <type> [--project <proj>] [--supersedes <id>] [--force-reingest]",
        "Ingest content from stdin into HSME.",
        rows=(
            ("--source-type string", "(required) Type of source (e.g., 'code', 'note', 'log')"),
            ("--project string", "(optional) Project name"),
            ("--supersedes int", "(optional) ID of the memory this entry supersedes"),
            ("--force-reingest", "(optional) Force re-processing even if content exists"),
        ),
    ),
    "search-fuzzy": _Topic(
        "search-fuzzy <query> [--limit <n>] [--project <proj>]",
        "Perform a semantic search using embeddings.",
        rows=_SEARCH_ROWS,
    ),
    "search-exact": _Topic(
        "search-exact <keyword> [--limit <n>] [--project <proj>]",
        "Perform a lexical search for exact keywords.",
        rows=_SEARCH_ROWS,
    ),
    "explore": _Topic(
        "explore <entity-name> [--direction upstream|downstream|both] [--max-depth <n>] [--max-nodes <n>]",
        "Trace dependencies in the knowledge graph.",
        rows=(
            ("--direction string", '(default "both") Direction to trace: upstream, downstream, or both'),
            ("--max-depth int", "(default 5) Maximum recursion depth"),
            ("--max-nodes int", "(default 100) Maximum total nodes to return"),
        ),
    ),
    "status": _Topic(
        "status [--watch] [--interval <duration>]",
        "Show system health, worker status, and queue metrics.",
        rows=(
            ("--watch", "Update status periodically (requires TTY)"),
            ("--interval duration", "(default 2s) Update interval in watch mode"),
        ),
    ),
    "admin": _Topic(
        "admin <subcommand> [flags]",
        "Administrative operations.",
        heading="Subcommands",
        rows=(
            ("retry-failed", "Re-queue failed tasks"),
            ("backup", "Create a database backup"),
            ("restore", "Restore from a backup"),
        ),
    ),
    "admin retry-failed": _Topic(
        "admin retry-failed",
        "Re-queue all tasks in 'failed' state.",
    ),
    "admin backup": _Topic(
        "admin backup [--out <path>]",
        "Create a backup of the current database.",
        rows=(
            (
                "--out string",
                "(optional) Path to save the backup. Defaults to backups/engram-<timestamp>.db",
            ),
        ),
    ),
    "admin restore": _Topic(
        "admin restore (--from <path> | --latest)",
        "Restore the database from a backup.",
        rows=(
            ("--from string", "Path to the backup file"),
            ("--latest", "Use the most recent backup in the backups/ directory"),
        ),
    ),
}


class UnknownHelpTopic(LookupError):
    """Help was asked for a subcommand that does not exist."""

    def __init__(self, topic: str) -> None:
        super().__init__(f"unknown subcommand for help: {topic}")
        self.topic = topic


def top_level_help() -> str:
    """Overview of every subcommand."""
    return (
        "HSME CLI \u2014 Unified command-line interface for HSME\n\n"
        f"Usage: {_PROGRAM} <subcommand> [flags]\n\n"
        "Subcommands:\n"
        + _table(_COMMANDS, _TOP_ROW_WIDTH)
        + f'\nUse "{_PROGRAM} help <subcommand>" for detailed usage.\n'
    )


def subcommand_help(name: str) -> str:
    """Detailed usage of one subcommand."""
    try:
        topic = _TOPICS[name]
    except KeyError:
        raise UnknownHelpTopic(name) from None
    return topic.render()


def run_help(args: list[str], out: TextIO | None = None) -> None:
    """Write the help asked for by ``args`` (the words after ``help``)."""
    stream = out if out is not None else sys.stdout
    text = subcommand_help(args[0]) if args else top_level_help()
    stream.write(text)