"""Command-line options shared by every subcommand."""

from __future__ import annotations

import argparse
from collections.abc import Collection
from dataclasses import dataclass

EXIT_USAGE = 1
EXIT_RUNTIME = 2

_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False"}


@dataclass
class CliOptions:
    """Database, model and output settings of one invocation."""

    db_path: str = ""
    ollama_host: str = ""
    embedding_model: str = ""
    output_format: str = "text"
    no_color: bool = False


_DESTINATIONS = ("db_path", "ollama_host", "embedding_model", "output_format", "no_color")


def add_db_arguments(parser: argparse.ArgumentParser, options: CliOptions) -> argparse.ArgumentParser:
    """Register the shared options on ``parser``, defaulting to the values in ``options``."""
    parser.add_argument("-db", "--db", dest="db_path", default=options.db_path, help="Path to SQLite database")
    parser.add_argument(
        "-ollama-host", "--ollama-host", dest="ollama_host", default=options.ollama_host, help="Ollama API host"
    )
    parser.add_argument(
        "-embedding-model",
        "--embedding-model",
        dest="embedding_model",
        default=options.embedding_model,
        help="Model for generating embeddings",
    )
    parser.add_argument(
        "-format",
        "--format",
        dest="output_format",
        default=options.output_format,
        help="Output format (text|json)",
    )
    parser.add_argument(
        "-no-color",
        "--no-color",
        dest="no_color",
        action="store_true",
        default=options.no_color,
        help="Disable ANSI color output",
    )
    return parser


def apply_namespace(options: CliOptions, namespace: argparse.Namespace) -> CliOptions:
    """Copy parsed shared options from ``namespace`` into ``options`` and return it."""
    for name in _DESTINATIONS:
        if hasattr(namespace, name):
            setattr(options, name, getattr(namespace, name))
    return options


def _parse_bool(text: str) -> bool | None:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return None


def scan_trailing_flags(
    args: list[str], bool_flags: Collection[str], value_flags: Collection[str]
) -> dict[str, str | bool]:
    """Find known flags among leftover arguments, so flags may follow positionals.

    Returns the flags found, by name. Boolean flags map to a bool, the others
    to their string value. Unknown flags, invalid booleans and a value flag
    with nothing after it are ignored.
    """
    found: dict[str, str | bool] = {}
    tokens = iter(args)
    for arg in tokens:
        if not arg.startswith("-"):
            continue
        name = arg.lstrip("-")
        if "=" in name:
            name, value = name.split("=", 1)
            if name in bool_flags:
                parsed = _parse_bool(value)
                if parsed is not None:
                    found[name] = parsed
            elif name in value_flags:
                found[name] = value
            continue
        if name in bool_flags:
            found[name] = True
        elif name in value_flags:
            value = next(tokens, None)
            if value is not None:
                found[name] = value
    return found