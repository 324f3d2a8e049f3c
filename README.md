# hsme

Supporting tools for a SQLite-backed memory store that holds text
memories, their chunks, an asynchronous task queue and a small knowledge
graph. The package is a library; it installs no commands. It covers
three areas:

- **Decay benchmarking** (`hsme.bench_eval`, `hsme.bench_report`):
  run an evaluation set against a search backend with time decay
  switched off and on, compare the decay-off ranking with a stored
  baseline, compute hit rates per category and check them against fixed
  acceptance thresholds. Reports are written as `report.json`,
  `delta.json` and `report.md`.
- **Command-line helpers** (`hsme.cli_flags`, `hsme.cli_help`,
  `hsme.cli_output`, `hsme.cli_status`): shared database options for
  `argparse`, help texts, text/JSON result formatting with optional ANSI
  colour, and a status snapshot of memories, graph size, task queue and
  worker process.
- **Legacy migration** (`hsme.migrate_report`, `hsme.migrate_matcher`,
  `hsme.migrate_phases`, `hsme.migrate_preflight`,
  `hsme.migrate_orphans`): restore metadata of migrated rows from a
  legacy observations database, retag session summaries, delete
  malformed rows, snapshot the legacy database and ingest observations
  that never made it across, recording every phase in a run report.

The package uses only the standard library; tests need `pytest`
(`pip install hsme[test]`).

## Benchmarks

```python
from pathlib import Path
from hsme.bench_eval import BenchConfig, load_eval_set, load_baseline, run_eval
from hsme.bench_report import write_reports

config = BenchConfig(db_path="data/engram.db", half_life=14.0, run_id="run1")
eval_set = load_eval_set("eval.json")
baseline = load_baseline("baseline.json")
report = run_eval(searcher, config, eval_set, baseline)

run_dir = Path(config.output_dir) / config.run_id
run_dir.mkdir(parents=True, exist_ok=True)
write_reports(run_dir, report)
```

`searcher` is any object implementing the `Searcher` protocol:
`fuzzy(query, limit, decay)` and `exact(query, limit, decay)`. `decay`
is the half-life in days, or `None` for decay off; each returned result
must have `memory_id` and `score` attributes. `run_eval` calls each
search with a limit of 10, once with decay off and once with the
config's half-life, and wraps any search failure in a `RuntimeError`
naming the query.

`BenchConfig` raises `ValueError` for a half-life that is not positive
and fills an empty `run_id` with a UTC timestamp such as
`20250101T120000Z`. `load_eval_set` reads JSON and raises `ValueError`
for unparseable input or a set without queries. Each `EvalQuery`'s
expected winner is its `resolved_memory_id`, falling back to
`memory_id`.

Ad-hoc queries can replace a frozen set with
`eval_set_from_queries(["first query", "second query"])`; blank entries
are dropped and the rest are numbered by their original position,
`adhoc-01`, `adhoc-02`, ….

Ranks are 1-based; `rank_of(rows, memory_id)` returns `None` when the
expected memory is absent or the expected id is 0, and
`in_top_n(rank, n)` is false for a missing rank. `Metric.record` counts
hits and `Metric.finalize` turns them into rates.
`evaluate_acceptance(metrics)` passes only when all four criteria hold:

| Criterion              | Required |
|------------------------|---------:|
| pure_recency top-3     |      60% |
| adversarial top-3      |      80% |
| pure_relevance top-10  |      60% |
| mixed top-3            |      60% |

`BenchmarkReport.to_dict()` gives the JSON form written to
`report.json`; `render_markdown(report)` gives `report.md`.

## Command-line helpers

```python
import argparse
from hsme.cli_flags import CliOptions, add_db_arguments, apply_namespace

options = CliOptions(db_path="data/engram.db")
parser = add_db_arguments(argparse.ArgumentParser(), options)
apply_namespace(options, parser.parse_args(["--format", "json", "--no-color"]))
```

The shared options are `--db`, `--ollama-host`, `--embedding-model`,
`--format` and `--no-color` (each also accepted with a single dash).
`scan_trailing_flags(args, bool_flags, value_flags)` picks known flags
out of arguments that follow positionals and returns them by name.

`top_level_help()` and `subcommand_help(name)` return the help texts;
`run_help(args, out)` writes one, and an unknown topic raises
`UnknownHelpTopic`.

```python
import sys
from hsme.cli_output import format_json, write_result, write_error

write_result(sys.stdout, {"status": "ok"}, "json")
write_error(sys.stderr, RuntimeError("database locked"), 2, "text")
```

JSON output is indented with two spaces. Errors in JSON form carry
`error` and `code` keys; in text form they read `error: <message>`.
`Palette` colours text green, red or yellow when enabled;
`should_color(no_color, stream)` is true only when the stream is a
terminal, `NO_COLOR` is unset and `no_color` is false. The
`format_*_result(s)` functions render store, search, exact-match,
graph-exploration and admin results from mappings or objects.

`get_status(conn)` counts rows in `memories`, `kg_nodes`,
`kg_edge_evidence` and `async_tasks` (by status), collects the five
latest task errors and checks for a running `hsme-worker` process via
`/proc` or `pgrep`. `render_status_text(status, palette)` prints it.

## Migration

`parse_wrapper(raw)` splits a migrated memory of the form

```
Title: <title>
Project: <project>
Type: <type>

<content>
```

into a `WrappedMemory` (raising `ValueError` otherwise), and
`build_wrapper(observation)` produces the same layout from a
`LegacyObservation`. `load_legacy_observations(conn)` reads live
observations keyed by their exact content.

`parse_args(argv)` builds a `MigrationConfig` from options and the
`HSME_DB_PATH`, `LEGACY_DB_PATH`, `OLLAMA_HOST` and `EMBEDDING_MODEL`
environment variables; an unknown mode raises `ValueError`. Migration
runs in one of three `Mode`s — full, delta or dry-run — and a dry run
changes nothing while still counting what would change.

`run_migration(config, report, init_schema, store, compute_hash)` runs
the phases in order — preflight, backup, schema, backfill of matched
rows, retagging, garbage deletion (full and dry-run only), legacy
snapshot and orphan ingestion — appending a `PhaseResult` for each to
the `RunReport`. A failing phase raises `MigrationError`. The backup
phase runs `scripts/backup_hot.sh` from the working directory with
`SQLITE_DB_PATH` set, unless skipped. `RunReport.save(directory)`
writes `report.json` and `report.txt`; `RunReport.from_dict` reads a
saved report back.

## What this package does not do

It has no search engine, indexer, embedding client, task worker or
schema of its own, and it provides no command-line program or server.
Benchmarks need a `Searcher` supplied by the caller, and the migration
needs the caller to pass `init_schema(path)`, a
`store(conn, content, source_type, project, supersedes_id, force)`
function that ingests a memory and returns its id, and
`compute_hash(content)`.