"""Prometheus metrics helpers for the roster importer."""

from __future__ import annotations

from typing import Iterable, Literal, Mapping

from prometheus_client import Counter, Histogram

_validation_rows = Counter(
    "roster_validation_rows_total",
    "Rows evaluated by roster validation, by outcome.",
    ["status"],
)
_import_rows = Counter(
    "roster_import_rows_total",
    "Rows handled by committed roster imports, by action.",
    ["action"],
)
_import_runs = Counter(
    "roster_import_runs_total",
    "Roster import calls by final status.",
    ["status"],
)
_import_conflicts = Counter(
    "roster_import_conflicts_total",
    "Transaction conflicts that forced a roster import attempt to be retried.",
)
_import_duration = Histogram(
    "roster_import_duration_seconds",
    "Wall-clock duration of roster import calls, including retries.",
    ["status"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60),
)


def record_validation(statuses: Iterable[str]) -> None:
    """Increment the validation counter once per row status."""

    for status in statuses:
        _validation_rows.labels(status=status).inc()


def record_import_rows(counts: Mapping[str, int]) -> None:
    for action, count in counts.items():
        if count:
            _import_rows.labels(action=action).inc(count)


def record_import_conflict() -> None:
    _import_conflicts.inc()


def record_import_run(
    *,
    status: Literal["succeeded", "partially_failed", "blocked", "failed"],
    duration_seconds: float,
) -> None:
    _import_runs.labels(status=status).inc()
    _import_duration.labels(status=status).observe(max(duration_seconds, 0.0))


__all__ = [
    "record_import_conflict",
    "record_import_rows",
    "record_import_run",
    "record_validation",
]
