"""
pipelines/qa.py — Read-only quality pass over the store.

Reads the countries reference table, the indicator catalog and every
country_data row (nulls included), runs the checks in
transforms/quality.py and logs one line per check plus an overall
verdict. Never writes.

A failed read never aborts the pass: every check that depends on it is
reported as FAIL with the store error as its details.

Usage:
    from visualclimate_pipeline.pipelines.qa import run
    report = await run()
    if report.status == "FAIL":
        ...
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from visualclimate_shared.config import settings
from visualclimate_shared.constants import QACheckStatus
from visualclimate_shared.errors import PersistenceError
from visualclimate_pipeline.loaders.supabase_loader import SupabaseLoader
from visualclimate_pipeline.transforms.quality import (
    CheckResult,
    check_country_coverage,
    check_duplicate_keys,
    check_indicator_catalog,
    check_null_ratio,
    check_year_bounds,
    overall_status,
)
from visualclimate_pipeline.utils.logging import get_logger

log = get_logger(__name__, pipeline="qa")


@dataclass
class QAReport:
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def status(self) -> QACheckStatus:
        return overall_status(self.checks)

    def counts(self) -> dict[str, int]:
        return {s: sum(1 for c in self.checks if c.status == s) for s in ("PASS", "WARN", "FAIL")}


async def _read(table: str, fetch: Callable[[], Awaitable[Any]]) -> tuple[Any, str | None]:
    """Run one store read; a PersistenceError becomes an error message."""
    try:
        return await fetch(), None
    except PersistenceError as exc:
        log.error("qa_read_failed", table=table, error=str(exc))
        return None, f"{table} read failed: {exc}"


async def run(
    *,
    loader: SupabaseLoader | None = None,
    year_from: int | None = None,
    year_to: int | None = None,
    null_threshold: float | None = None,
) -> QAReport:
    """
    Run every check against the current store contents.

    Args:
        loader:         Store gateway (built from settings when None).
        year_from:      Lowest acceptable year (settings.year_start).
        year_to:        Highest acceptable year (settings.score_year).
        null_threshold: Max share of null values before a WARN.
    """
    loader = loader or SupabaseLoader()
    first = year_from if year_from is not None else settings.year_start
    last = year_to if year_to is not None else settings.score_year
    threshold = null_threshold if null_threshold is not None else settings.qa_null_threshold

    log.info("qa_start", year_bounds=[first, last], null_threshold=threshold)

    countries, countries_error = await _read("countries", loader.fetch_countries)
    definitions, catalog_error = await _read("indicators", loader.fetch_indicator_definitions)
    observations, rows_error = await _read(
        "country_data", lambda: loader.fetch_observations(include_nulls=True)
    )

    def _check(name: str, errors: list[str | None], run_check: Callable[[], CheckResult]) -> CheckResult:
        failed = [e for e in errors if e]
        if failed:
            return CheckResult(name, "FAIL", "; ".join(failed))
        return run_check()

    report = QAReport(
        checks=[
            _check(
                "indicator_catalog",
                [catalog_error, rows_error],
                lambda: check_indicator_catalog((d.code for d in definitions), observations),
            ),
            _check(
                "country_coverage",
                [countries_error, rows_error],
                lambda: check_country_coverage(observations, [c.iso3 for c in countries]),
            ),
            _check("null_ratio", [rows_error], lambda: check_null_ratio(observations, threshold)),
            _check("duplicate_keys", [rows_error], lambda: check_duplicate_keys(observations)),
            _check("year_bounds", [rows_error], lambda: check_year_bounds(observations, first, last)),
        ]
    )

    for check in report.checks:
        emit = log.error if check.status == "FAIL" else log.warning if check.status == "WARN" else log.info
        emit("qa_check", check=check.name, status=check.status, details=check.details)

    rows = 0 if observations is None else len(observations)
    log.info("qa_complete", status=report.status, rows=rows, **report.counts())
    return report
