"""Paired decay-off / decay-on evaluation of the search engine against a frozen eval set."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol, Sequence

SEARCH_LIMIT = 10

DEFAULT_THRESHOLDS: dict[str, float] = {
    "pure_recency_top3": 0.60,
    "adversarial_top3": 0.80,
    "pure_relevance_top10": 0.60,
    "mixed_top3": 0.60,
}


def _utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class BenchConfig:
    """Settings of one benchmark run."""

    db_path: str = "data/engram.db"
    eval_path: str = "docs/future-missions/mission-3-eval-set.yaml"
    baseline_path: str = "docs/future-missions/mission-3-baseline.json"
    half_life: float = 14.0
    output_dir: str = "data/benchmarks"
    run_id: str = ""
    queries: str = ""
    no_vector: bool = False

    def __post_init__(self) -> None:
        if self.half_life <= 0:
            raise ValueError("half-life must be > 0")
        if not self.run_id:
            self.run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")

    def _as_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "db_path": self.db_path,
            "eval_path": self.eval_path,
            "baseline_path": self.baseline_path,
            "half_life_days": self.half_life,
            "output_dir": self.output_dir,
            "run_id": self.run_id,
        }
        if self.queries:
            data["queries"] = self.queries
        data["no_vector"] = self.no_vector
        return data


@dataclass
class EvalQuery:
    id: str
    category: str
    query: str
    resolved_memory_id: int = 0
    memory_id: int = 0

    @property
    def expected_winner(self) -> int:
        """The resolved winner id, falling back to the plain memory id."""
        return self.resolved_memory_id or self.memory_id


@dataclass
class EvalSet:
    schema_version: int = 1
    frozen_at: str = ""
    total_queries: int = 0
    queries: list[EvalQuery] = field(default_factory=list)


@dataclass
class BaselineResult:
    id: str
    actual_top_10_ids: list[int] = field(default_factory=list)
    expected_winner_id: int = 0
    expected_winner_rank: int | None = None
    in_top_10: bool = False
    in_top_3: bool = False
    in_top_1: bool = False


@dataclass
class Baseline:
    schema_version: int = 0
    measured_at: str = ""
    total_queries: int = 0
    results: list[BaselineResult] = field(default_factory=list)


@dataclass
class ResultRow:
    memory_id: int
    score: float = 0.0


@dataclass
class PairedResult:
    id: str
    category: str
    query: str
    expected_winner_id: int
    off: list[ResultRow]
    on: list[ResultRow]
    off_expected_rank: int | None
    on_expected_rank: int | None
    off_top1: bool
    off_top3: bool
    off_top10: bool
    on_top1: bool
    on_top3: bool
    on_top10: bool


@dataclass
class RankDelta:
    id: str
    category: str
    query: str
    off_rank: int | None
    on_rank: int | None
    rank_delta: int | None = None


@dataclass
class Metric:
    """Hit counts that become hit rates once finalized."""

    n: int = 0
    top1_hit_rate: float = 0.0
    top3_hit_rate: float = 0.0
    top10_hit_rate: float = 0.0

    def record(self, top1: bool, top3: bool, top10: bool) -> None:
        self.n += 1
        self.top1_hit_rate += int(top1)
        self.top3_hit_rate += int(top3)
        self.top10_hit_rate += int(top10)

    def finalize(self) -> None:
        if self.n == 0:
            return
        self.top1_hit_rate /= self.n
        self.top3_hit_rate /= self.n
        self.top10_hit_rate /= self.n


@dataclass
class BaselineDrift:
    compared: int = 0
    matched: int = 0
    mismatched: int = 0
    missing: int = 0
    ids: list[str] = field(default_factory=list)


@dataclass
class Acceptance:
    passed: bool = False
    pure_recency_top3_passed: bool = False
    adversarial_top3_passed: bool = False
    pure_relevance_top10_passed: bool = False
    mixed_top3_passed: bool = False
    thresholds: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_THRESHOLDS))


def _row_json(row: ResultRow) -> dict[str, Any]:
    data: dict[str, Any] = {"memory_id": row.memory_id}
    if row.score:
        data["score"] = row.score
    return data


def _paired_json(paired: PairedResult) -> dict[str, Any]:
    data = asdict(paired)
    data["off"] = [_row_json(r) for r in paired.off]
    data["on"] = [_row_json(r) for r in paired.on]
    return data


def _delta_json(delta: RankDelta) -> dict[str, Any]:
    data = asdict(delta)
    if delta.rank_delta is None:
        del data["rank_delta"]
    return data


def _drift_json(drift: BaselineDrift) -> dict[str, Any]:
    data: dict[str, Any] = {
        "compared": drift.compared,
        "matched": drift.matched,
        "mismatched": drift.mismatched,
        "missing": drift.missing,
    }
    if drift.ids:
        data["mismatched_or_missing_ids"] = list(drift.ids)
    return data


@dataclass
class BenchmarkReport:
    config: BenchConfig
    run_id: str = ""
    started_at: str = ""
    finished_at: str = ""
    eval_total: int = 0
    baseline_drift: BaselineDrift = field(default_factory=BaselineDrift)
    fuzzy_results: list[PairedResult] = field(default_factory=list)
    exact_samples: list[PairedResult] = field(default_factory=list)
    category_metrics: dict[str, Metric] = field(default_factory=dict)
    overall_metrics: Metric = field(default_factory=Metric)
    acceptance: Acceptance = field(default_factory=Acceptance)
    deltas: list[RankDelta] = field(default_factory=list)
    schema_version: int = 1

    def __post_init__(self) -> None:
        if not self.run_id:
            self.run_id = self.config.run_id

    def to_dict(self) -> dict[str, Any]:
        """The report as a JSON-ready mapping with its published key names."""
        return {
            "schema_version": self.schema_version,
            "run_id": self.run_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "config": self.config._as_json(),
            "eval_total": self.eval_total,
            "baseline_drift": _drift_json(self.baseline_drift),
            "fuzzy_results": [_paired_json(p) for p in self.fuzzy_results],
            "exact_samples": [_paired_json(p) for p in self.exact_samples],
            "category_metrics": {k: asdict(self.category_metrics[k]) for k in sorted(self.category_metrics)},
            "overall_metrics": asdict(self.overall_metrics),
            "acceptance": asdict(self.acceptance),
            "deltas": [_delta_json(d) for d in self.deltas],
        }


class Searcher(Protocol):
    """Runs searches; ``decay`` is the half-life in days, or None to disable decay."""

    def fuzzy(self, query: str, limit: int, decay: float | None) -> Sequence[Any]:
        """Hybrid search; each result carries ``memory_id`` and ``score``."""

    def exact(self, query: str, limit: int, decay: float | None) -> Sequence[Any]:
        """Lexical search; each result carries ``memory_id`` and ``score``."""


def _read_json(path: str | Path) -> Any:
    text = Path(path).read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"parse {path}: {exc}") from exc


def load_eval_set(path: str | Path) -> EvalSet:
    """Read a frozen eval set; an empty one is an error."""
    data = _read_json(path)
    queries = []
    for item in data.get("queries") or []:
        criterion = item.get("expected_winner_criterion") or {}
        queries.append(
            EvalQuery(
                id=item.get("id", ""),
                category=item.get("category", ""),
                query=item.get("query", ""),
                resolved_memory_id=int(criterion.get("resolved_memory_id") or 0),
                memory_id=int(criterion.get("memory_id") or 0),
            )
        )
    if not queries:
        raise ValueError("eval set has no queries")
    return EvalSet(
        schema_version=int(data.get("schema_version") or 0),
        frozen_at=data.get("frozen_at", ""),
        total_queries=int(data.get("total_queries") or 0),
        queries=queries,
    )


def load_baseline(path: str | Path) -> Baseline:
    """Read the frozen decay-off baseline."""
    data = _read_json(path)
    results = [
        BaselineResult(
            id=item.get("id", ""),
            actual_top_10_ids=[int(i) for i in item.get("actual_top_10_ids") or []],
            expected_winner_id=int(item.get("expected_winner_id") or 0),
            expected_winner_rank=item.get("expected_winner_rank"),
            in_top_10=bool(item.get("in_top_10", False)),
            in_top_3=bool(item.get("in_top_3", False)),
            in_top_1=bool(item.get("in_top_1", False)),
        )
        for item in data.get("results") or []
    ]
    return Baseline(
        schema_version=int(data.get("schema_version") or 0),
        measured_at=data.get("measured_at", ""),
        total_queries=int(data.get("total_queries") or 0),
        results=results,
    )


def eval_set_from_queries(raw: Iterable[str]) -> EvalSet:
    """Build an ad-hoc eval set, skipping blank queries."""
    queries = [
        EvalQuery(id=f"adhoc-{position:02d}", category="ad_hoc", query=text.strip())
        for position, text in enumerate(raw, start=1)
        if text.strip()
    ]
    return EvalSet(schema_version=1, frozen_at="ad-hoc", total_queries=len(queries), queries=queries)


def rank_of(rows: Sequence[ResultRow], memory_id: int) -> int | None:
    """One-based position of ``memory_id`` in ``rows``; None if absent or id is 0."""
    if memory_id == 0:
        return None
    return next((rank for rank, row in enumerate(rows, start=1) if row.memory_id == memory_id), None)


def in_top_n(rank: int | None, n: int) -> bool:
    return rank is not None and rank <= n


def make_paired_result(
    query: EvalQuery, expected: int, off: list[ResultRow], on: list[ResultRow]
) -> PairedResult:
    off_rank = rank_of(off, expected)
    on_rank = rank_of(on, expected)
    return PairedResult(
        id=query.id,
        category=query.category,
        query=query.query,
        expected_winner_id=expected,
        off=off,
        on=on,
        off_expected_rank=off_rank,
        on_expected_rank=on_rank,
        off_top1=in_top_n(off_rank, 1),
        off_top3=in_top_n(off_rank, 3),
        off_top10=in_top_n(off_rank, 10),
        on_top1=in_top_n(on_rank, 1),
        on_top3=in_top_n(on_rank, 3),
        on_top10=in_top_n(on_rank, 10),
    )


def make_rank_delta(paired: PairedResult) -> RankDelta:
    delta = None
    if paired.off_expected_rank is not None and paired.on_expected_rank is not None:
        delta = paired.off_expected_rank - paired.on_expected_rank
    return RankDelta(
        id=paired.id,
        category=paired.category,
        query=paired.query,
        off_rank=paired.off_expected_rank,
        on_rank=paired.on_expected_rank,
        rank_delta=delta,
    )


def evaluate_acceptance(metrics: Mapping[str, Metric]) -> Acceptance:
    """Check per-category hit rates against the fixed thresholds."""
    acceptance = Acceptance()
    thresholds = acceptance.thresholds

    def metric(name: str) -> Metric:
        return metrics.get(name) or Metric()

    acceptance.pure_recency_top3_passed = metric("pure_recency").top3_hit_rate >= thresholds["pure_recency_top3"]
    acceptance.adversarial_top3_passed = metric("adversarial").top3_hit_rate >= thresholds["adversarial_top3"]
    acceptance.pure_relevance_top10_passed = (
        metric("pure_relevance").top10_hit_rate >= thresholds["pure_relevance_top10"]
    )
    acceptance.mixed_top3_passed = metric("mixed").top3_hit_rate >= thresholds["mixed_top3"]
    acceptance.passed = all(
        (
            acceptance.pure_recency_top3_passed,
            acceptance.adversarial_top3_passed,
            acceptance.pure_relevance_top10_passed,
            acceptance.mixed_top3_passed,
        )
    )
    return acceptance


def _rows(results: Iterable[Any]) -> list[ResultRow]:
    return [ResultRow(memory_id=r.memory_id, score=r.score) for r in results]


def _search(kind: str, method: Any, query: str, decay: float | None) -> list[ResultRow]:
    label = "off" if decay is None else "on"
    try:
        return _rows(method(query, SEARCH_LIMIT, decay))
    except Exception as exc:
        raise RuntimeError(f"{kind} {label} error for {query!r}: {exc}") from exc


def run_eval(searcher: Searcher, config: BenchConfig, eval_set: EvalSet, baseline: Baseline) -> BenchmarkReport:
    """Run every eval query with decay off and on, and collect metrics and drift."""
    report = BenchmarkReport(
        config=config,
        run_id=config.run_id,
        started_at=_utc_now_rfc3339(),
        eval_total=len(eval_set.queries),
    )
    baseline_by_id = {b.id: b for b in baseline.results}
    drift = report.baseline_drift
    on_decay = config.half_life

    for query in eval_set.queries:
        expected = query.expected_winner

        fuzzy_off = _search("fuzzy", searcher.fuzzy, query.query, None)
        fuzzy_on = _search("fuzzy", searcher.fuzzy, query.query, on_decay)
        paired = make_paired_result(query, expected, fuzzy_off, fuzzy_on)
        report.fuzzy_results.append(paired)
        report.deltas.append(make_rank_delta(paired))
        report.category_metrics.setdefault(query.category, Metric()).record(
            paired.on_top1, paired.on_top3, paired.on_top10
        )
        report.overall_metrics.record(paired.on_top1, paired.on_top3, paired.on_top10)

        prior = baseline_by_id.get(query.id)
        if prior is None:
            drift.missing += 1
            drift.ids.append(query.id)
        else:
            drift.compared += 1
            if list(prior.actual_top_10_ids) == [row.memory_id for row in paired.off]:
                drift.matched += 1
            else:
                drift.mismatched += 1
                drift.ids.append(query.id)

        exact_off = _search("exact", searcher.exact, query.query, None)
        exact_on = _search("exact", searcher.exact, query.query, on_decay)
        report.exact_samples.append(make_paired_result(query, expected, exact_off, exact_on))

    for metric in report.category_metrics.values():
        metric.finalize()
    report.overall_metrics.finalize()
    report.acceptance = evaluate_acceptance(report.category_metrics)
    report.finished_at = _utc_now_rfc3339()
    return report