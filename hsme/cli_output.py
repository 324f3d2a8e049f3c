"""Rendering command results as text or JSON."""

from __future__ import annotations

import dataclasses
import json
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TextIO

COLOR_RESET = "\033[0m"
COLOR_RED = "\033[31m"
COLOR_GREEN = "\033[32m"
COLOR_YELLOW = "\033[33m"


@dataclass(frozen=True)
class Palette:
    """Wraps text in ANSI colours when enabled."""

    enabled: bool = False

    def _paint(self, code: str, text: str) -> str:
        return f"{code}{text}{COLOR_RESET}" if self.enabled else text

    def green(self, text: str) -> str:
        return self._paint(COLOR_GREEN, text)

    def red(self, text: str) -> str:
        return self._paint(COLOR_RED, text)

    def yellow(self, text: str) -> str:
        return self._paint(COLOR_YELLOW, text)


def is_tty(stream: TextIO | None = None) -> bool:
    target = stream if stream is not None else sys.stdout
    try:
        return target.isatty()
    except (AttributeError, ValueError, OSError):
        return False


def should_color(no_color: bool, stream: TextIO | None = None) -> bool:
    """Colour only on a terminal, without NO_COLOR set and without --no-color."""
    return is_tty(stream) and not os.environ.get("NO_COLOR") and not no_color


def _palette(palette: Palette | None) -> Palette:
    return palette if palette is not None else Palette(should_color(False))


def _jsonable(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def format_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=_jsonable)


def format_text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def format_store_result(result: Any, palette: Palette | None = None) -> str:
    if not isinstance(result, Mapping):
        return format_text(result)
    return f"Memory stored successfully. ID: {_palette(palette).green(str(result.get('memory_id')))}"


def _result_list(result: Any) -> list[Any] | None:
    if not isinstance(result, Mapping):
        return None
    items = result.get("results")
    return list(items) if isinstance(items, (list, tuple)) else None


def format_search_results(results: Any, palette: Palette | None = None) -> str:
    items = _result_list(results)
    if items is None:
        return format_text(results)
    if not items:
        return "No results found."
    colors = _palette(palette)
    parts = [f"Found {len(items)} results:\n"]
    for position, item in enumerate(items, start=1):
        label = colors.green(f"Memory {_get(item, 'memory_id')}")
        score = float(_get(item, "score", 0.0) or 0.0)
        coverage = _get(item, "vector_coverage", "")
        parts.append(f"\n{position}. {label} (Score: {score:.4f}, Coverage: {coverage})\n")
        if _get(item, "is_superseded", False):
            parts.append(colors.yellow("   [SUPERSEDED]\n"))
        for highlight in _get(item, "highlights", None) or []:
            parts.append(f"   - {_get(highlight, 'text', '')}\n")
    return "".join(parts)


def format_exact_results(results: Any, palette: Palette | None = None) -> str:
    items = _result_list(results)
    if items is None:
        return format_text(results)
    if not items:
        return "No exact matches found."
    colors = _palette(palette)
    parts = [f"Found {len(items)} exact matches:\n"]
    for position, item in enumerate(items, start=1):
        label = colors.green(f"Memory {_get(item, 'memory_id')}")
        parts.append(
            f"\n{position}. {label} (Chunk {_get(item, 'chunk_id')}, Index {_get(item, 'chunk_index')})\n"
        )
        parts.append(f"   {_get(item, 'text', '')}\n")
    return "".join(parts)


def format_explore_result(result: Any, palette: Palette | None = None) -> str:
    if result is None or isinstance(result, str) or _get(result, "entity") is None:
        return format_text(result)
    colors = _palette(palette)
    nodes = list(_get(result, "nodes", None) or [])
    edges = list(_get(result, "edges", None) or [])
    parts = [
        f"Exploration for: {colors.yellow(str(_get(result, 'entity')))}\n",
        f"Nodes: {len(nodes)}, Edges: {len(edges)}\n",
    ]
    if _get(result, "truncated", False):
        parts.append(colors.red("Result set was truncated due to limits.\n"))
    parts.append("\nNodes:\n")
    for node in nodes:
        name = colors.green(str(_get(node, "name")))
        parts.append(f"- [{_get(node, 'id')}] {name} ({_get(node, 'type')})\n")
    parts.append("\nConnections:\n")
    for edge in edges:
        parts.append(
            f"- Memory {_get(edge, 'memory_id')}: {_get(edge, 'source_id')} "
            f"--({_get(edge, 'relation_type')})--> {_get(edge, 'target_id')}\n"
        )
    return "".join(parts)


def format_admin_backup_result(result: Any, palette: Palette | None = None) -> str:
    if not isinstance(result, Mapping):
        return format_text(result)
    return f"Backup created successfully: {_palette(palette).green(str(result.get('backup')))}"


def format_admin_restore_result(result: Any, palette: Palette | None = None) -> str:
    if not isinstance(result, Mapping):
        return format_text(result)
    return f"Database restored successfully from: {_palette(palette).green(str(result.get('restore')))}"


def format_admin_retry_result(result: Any, palette: Palette | None = None) -> str:
    if not isinstance(result, Mapping):
        return format_text(result)
    return f"Retry complete. Retried tasks: {_palette(palette).green(str(result.get('retried_tasks')))}"


def write_result(stream: TextIO, value: Any, output_format: str) -> None:
    """Write ``value`` as indented JSON or as text, followed by a newline."""
    text = format_json(value) if output_format == "json" else format_text(value)
    stream.write(text + "\n")


def write_error(stream: TextIO, error: BaseException | str, code: int, output_format: str) -> None:
    if output_format == "json":
        stream.write(format_json({"error": str(error), "code": code}) + "\n")
        return
    stream.write(f"error: {error}\n")