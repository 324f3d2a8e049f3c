import io
import json
from types import SimpleNamespace

import pytest

from hsme.cli_output import (
    Palette,
    format_admin_backup_result,
    format_exact_results,
    format_explore_result,
    format_json,
    format_search_results,
    format_store_result,
    format_text,
    should_color,
    write_error,
    write_result,
)

PLAIN = Palette(False)


def test_format_json():
    assert format_json({"foo": "bar"}).strip() == '{\n  "foo": "bar"\n}'


@pytest.mark.parametrize(
    "value, output_format, contains",
    [
        ({"foo": "bar"}, "json", '"foo": "bar"'),
        ("hello world", "text", "hello world"),
    ],
)
def test_write_result(value, output_format, contains):
    buf = io.StringIO()
    write_result(buf, value, output_format)
    assert contains in buf.getvalue()


@pytest.mark.parametrize(
    "output_format, contains",
    [
        ("json", '"error": "something went wrong"'),
        ("text", "error: something went wrong"),
    ],
)
def test_write_error(output_format, contains):
    buf = io.StringIO()
    write_error(buf, RuntimeError("something went wrong"), 2, output_format)
    assert contains in buf.getvalue()
    if output_format == "json":
        assert json.loads(buf.getvalue())["code"] == 2


def test_color_functions_disabled():
    assert should_color(True) is False
    assert PLAIN.green("test") == "test"


def test_color_functions_enabled():
    colors = Palette(True)
    assert colors.green("x") == "\033[32mx\033[0m"
    assert colors.red("x") == "\033[31mx\033[0m"
    assert colors.yellow("x") == "\033[33mx\033[0m"


def test_format_text_of_non_string():
    assert format_text(42) == "42"


def test_store_result():
    assert format_store_result({"memory_id": 7}, PLAIN) == "Memory stored successfully. ID: 7"
    assert format_store_result("raw", PLAIN) == "raw"


def test_search_results_empty_and_filled():
    assert format_search_results({"results": []}, PLAIN) == "No results found."
    item = SimpleNamespace(
        memory_id=7,
        score=0.5,
        vector_coverage="complete",
        is_superseded=True,
        highlights=[SimpleNamespace(text="first line")],
    )
    text = format_search_results({"results": [item]}, PLAIN)
    assert text.startswith("Found 1 results:\n")
    assert "1. Memory 7 (Score: 0.5000, Coverage: complete)" in text
    assert "[SUPERSEDED]" in text
    assert "   - first line" in text


def test_exact_results():
    assert format_exact_results({"results": []}, PLAIN) == "No exact matches found."
    item = {"memory_id": 3, "chunk_id": 9, "chunk_index": 0, "text": "timeout here"}
    text = format_exact_results({"results": [item]}, PLAIN)
    assert "1. Memory 3 (Chunk 9, Index 0)" in text
    assert "   timeout here" in text


def test_explore_result():
    result = {
        "entity": "redis",
        "nodes": [{"id": 1, "name": "redis", "type": "TECH"}],
        "edges": [{"memory_id": 1, "source_id": 1, "relation_type": "CAUSES", "target_id": 2}],
        "truncated": True,
    }
    text = format_explore_result(result, PLAIN)
    assert "Exploration for: redis" in text
    assert "Nodes: 1, Edges: 1" in text
    assert "truncated" in text
    assert "- [1] redis (TECH)" in text
    assert "- Memory 1: 1 --(CAUSES)--> 2" in text


def test_admin_backup_result():
    assert format_admin_backup_result({"backup": "b.db"}, PLAIN) == "Backup created successfully: b.db"