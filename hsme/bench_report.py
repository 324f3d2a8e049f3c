"""Writing benchmark reports as JSON and Markdown."""

from __future__ import annotations

import json
from pathlib import Path

from hsme.bench_eval import BenchmarkReport, Metric

_STATUS_WORDS = {True: "PASS", False: "FAIL"}


def _dump(data: object) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def write_reports(run_dir: str | Path, report: BenchmarkReport) -> None:
    """Write report.json, delta.json and report.md into ``run_dir``."""
    directory = Path(run_dir)
    full = report.to_dict()
    (directory / "report.json").write_text(_dump(full), encoding="utf-8")

    delta = {
        "run_id": report.run_id,
        "half_life_days": report.config.half_life,
        "baseline_drift": full["baseline_drift"],
        "deltas": full["deltas"],
        "category_metrics": full["category_metrics"],
    }
    (directory / "delta.json").write_text(_dump(delta), encoding="utf-8")
    (directory / "report.md").write_text(render_markdown(report), encoding="utf-8")


def rank_string(rank: int | None) -> str:
    """Show a 1-based rank, or a dash when the expected winner was not found."""
    return "-" if rank is None else str(rank)


def delta_string(off: int | None, on: int | None) -> str:
    """Signed rank improvement from decay OFF to decay ON, or a dash."""
    if off is None or on is None:
        return "-"
    return f"{off - on:+d}"


def pass_fail(ok: bool) -> str:
    """Turn an acceptance outcome into the word shown in the report."""
    return _STATUS_WORDS[bool(ok)]


def _pct(value: float) -> str:
    return f"{value * 100:.0f}%"


def render_markdown(report: BenchmarkReport) -> str:
    """Render the human-readable summary of a benchmark run."""
    config = report.config
    metrics = report.category_metrics
    acceptance = report.acceptance
    drift = report.baseline_drift

    def metric(name: str) -> Metric:
        return metrics.get(name) or Metric()

    def threshold(name: str) -> float:
        return acceptance.thresholds.get(name, 0.0)

    lines = [
        "# Benchmark Run: Decay OFF vs ON",
        "",
        f"Run ID: `{report.run_id}`",
        f"Half-Life: {config.half_life:.2f} days",
        f"Database: `{config.db_path}`",
        f"Eval set: `{config.eval_path}`",
        f"Baseline: `{config.baseline_path}`",
        f"Queries: {report.eval_total}",
        "",
        "## Baseline Drift Check",
        "",
        f"Compared: {drift.compared}; matched: {drift.matched}; "
        f"mismatched: {drift.mismatched}; missing: {drift.missing}",
        "",
    ]
    if drift.ids:
        lines += [f"Mismatched/missing IDs: `[{' '.join(drift.ids)}]`", ""]

    lines += [
        "## Acceptance Thresholds",
        "",
        f"Overall acceptance: **{pass_fail(acceptance.passed)}**",
        "",
        "| Criterion | Required | Result | Status |",
        "|---|---:|---:|---|",
        f"| pure_recency top-3 | {_pct(threshold('pure_recency_top3'))} | "
        f"{_pct(metric('pure_recency').top3_hit_rate)} | {pass_fail(acceptance.pure_recency_top3_passed)} |",
        f"| adversarial top-3 | {_pct(threshold('adversarial_top3'))} | "
        f"{_pct(metric('adversarial').top3_hit_rate)} | {pass_fail(acceptance.adversarial_top3_passed)} |",
        f"| pure_relevance top-10 | {_pct(threshold('pure_relevance_top10'))} | "
        f"{_pct(metric('pure_relevance').top10_hit_rate)} | {pass_fail(acceptance.pure_relevance_top10_passed)} |",
        f"| mixed top-3 | {_pct(threshold('mixed_top3'))} | "
        f"{_pct(metric('mixed').top3_hit_rate)} | {pass_fail(acceptance.mixed_top3_passed)} |",
        "",
        "## Category Metrics (decay ON, fuzzy search)",
        "",
        "| Category | N | Top-1 | Top-3 | Top-10 |",
        "|---|---:|---:|---:|---:|",
    ]
    for name in sorted(metrics):
        m = metrics[name]
        lines.append(
            f"| {name} | {m.n} | {_pct(m.top1_hit_rate)} | {_pct(m.top3_hit_rate)} | {_pct(m.top10_hit_rate)} |"
        )
    overall = report.overall_metrics
    lines += [
        f"| overall | {overall.n} | {_pct(overall.top1_hit_rate)} | "
        f"{_pct(overall.top3_hit_rate)} | {_pct(overall.top10_hit_rate)} |",
        "",
        "## Fuzzy Search Rank Deltas",
        "",
        "| ID | Category | Expected | OFF Rank | ON Rank | Delta |",
        "|---|---|---:|---:|---:|---:|",
    ]
    for r in report.fuzzy_results:
        lines.append(
            f"| {r.id} | {r.category} | {r.expected_winner_id} | {rank_string(r.off_expected_rank)} | "
            f"{rank_string(r.on_expected_rank)} | {delta_string(r.off_expected_rank, r.on_expected_rank)} |"
        )
    lines += [
        "",
        "## Exact Search Samples",
        "",
        f"Exact samples executed: {len(report.exact_samples)}",
        "",
        "| ID | Category | Expected | OFF Rank | ON Rank |",
        "|---|---|---:|---:|---:|",
    ]
    for r in report.exact_samples:
        lines.append(
            f"| {r.id} | {r.category} | {r.expected_winner_id} | {rank_string(r.off_expected_rank)} | "
            f"{rank_string(r.on_expected_rank)} |"
        )
    return "\n".join(lines) + "\n"