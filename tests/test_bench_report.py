import json

import pytest

from hsme.bench_eval import (
    BenchConfig,
    BenchmarkReport,
    EvalQuery,
    Metric,
    ResultRow,
    evaluate_acceptance,
    make_paired_result,
    make_rank_delta,
)
from hsme.bench_report import (
    delta_string,
    pass_fail,
    rank_string,
    render_markdown,
    write_reports,
)


@pytest.fixture
def report():
    query = EvalQuery(id="q1", category="pure_recency", query="alpha", resolved_memory_id=4)
    paired = make_paired_result(query, 4, [ResultRow(2), ResultRow(4)], [ResultRow(4)])
    rep = BenchmarkReport(config=BenchConfig(run_id="r1"), eval_total=1)
    rep.fuzzy_results.append(paired)
    rep.exact_samples.append(paired)
    rep.deltas.append(make_rank_delta(paired))
    metric = Metric()
    metric.record(paired.on_top1, paired.on_top3, paired.on_top10)
    metric.finalize()
    rep.category_metrics["pure_recency"] = metric
    rep.acceptance = evaluate_acceptance(rep.category_metrics)
    return rep


def test_rank_string():
    assert rank_string(None) == "-"
    assert rank_string(3) == "3"


def test_delta_string_signs():
    assert delta_string(None, 1) == "-"
    assert delta_string(2, 2) == "+0"
    assert delta_string(1, 4).startswith("-")


def test_pass_fail():
    assert pass_fail(True) == "PASS"
    assert pass_fail(False) == "FAIL"


def test_render_markdown_sections(report):
    md = render_markdown(report)
    assert md.startswith("# Benchmark Run: Decay OFF vs ON\n")
    assert "Run ID: `r1`" in md
    assert "Half-Life: 14.00 days" in md
    assert "Overall acceptance: **FAIL**" in md
    assert "| pure_recency top-3 | 60% | 100% | PASS |" in md
    assert "Exact samples executed: 1" in md
    assert "| q1 | pure_recency | 4 | 2 | 1 | +1 |" in md


def test_render_markdown_lists_drift_ids(report):
    report.baseline_drift.ids = ["q1", "q2"]
    assert "Mismatched/missing IDs: `[q1 q2]`" in render_markdown(report)


def test_write_reports(tmp_path, report):
    write_reports(tmp_path, report)
    full = json.loads((tmp_path / "report.json").read_text())
    assert full["run_id"] == "r1"
    assert full["eval_total"] == 1
    assert len(full["deltas"]) == 1
    delta = json.loads((tmp_path / "delta.json").read_text())
    assert set(delta) == {"run_id", "half_life_days", "baseline_drift", "deltas", "category_metrics"}
    assert delta["category_metrics"] == full["category_metrics"]
    assert (tmp_path / "report.md").read_text() == render_markdown(report)


def test_write_reports_missing_dir(tmp_path, report):
    with pytest.raises(FileNotFoundError):
        write_reports(tmp_path / "absent", report)