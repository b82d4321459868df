"""
transforms/quality.py — Read-only data quality checks over the store contents.

Each check takes plain frames / lists and returns a CheckResult with a
PASS, WARN or FAIL status and a one-line detail string. Nothing here
touches the store; pipelines/qa.py does the reading and reporting.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import polars as pl

from visualclimate_shared.constants import OBSERVATION_KEY, QACheckStatus


@dataclass(frozen=True)
class CheckResult:
    name: str
    status: QACheckStatus
    details: str


def check_country_coverage(observations: pl.DataFrame, countries: Iterable[str]) -> CheckResult:
    """Every tracked country should have at least one indicator row."""
    tracked = sorted(set(countries))
    with_data = set(observations["country_iso3"].unique().to_list()) if len(observations) else set()
    missing = [c for c in tracked if c not in with_data]

    if not tracked:
        return CheckResult("country_coverage", "FAIL", "no tracked countries")
    if len(observations) == 0:
        status: QACheckStatus = "FAIL"
    elif missing:
        status = "WARN"
    else:
        status = "PASS"

    details = f"{len(tracked) - len(missing)}/{len(tracked)} countries have data, {len(observations)} rows"
    if missing:
        shown = ", ".join(missing[:20]) + (" …" if len(missing) > 20 else "")
        details += f" (no data: {shown})"
    return CheckResult("country_coverage", status, details)


def check_null_ratio(observations: pl.DataFrame, threshold: float) -> CheckResult:
    """Share of rows with a null or non-finite value must stay below ``threshold``."""
    total = len(observations)
    if total == 0:
        return CheckResult("null_ratio", "PASS", "0 rows")
    bad = observations.filter(
        pl.col("value").is_null() | ~pl.col("value").is_finite()
    ).height
    ratio = bad / total
    status: QACheckStatus = "PASS" if ratio < threshold else "WARN"
    return CheckResult(
        "null_ratio",
        status,
        f"{bad}/{total} null values ({ratio:.2%}, threshold {threshold:.0%})",
    )


def check_duplicate_keys(
    observations: pl.DataFrame,
    key: Sequence[str] = OBSERVATION_KEY,
) -> CheckResult:
    """No (country, indicator, year) key may appear twice."""
    if len(observations) == 0:
        return CheckResult("duplicate_keys", "PASS", "0 rows")
    dupes = (
        observations.group_by(list(key))
        .len()
        .filter(pl.col("len") > 1)
        .sort(list(key))
    )
    if dupes.is_empty():
        return CheckResult("duplicate_keys", "PASS", "no duplicate keys")
    sample = ", ".join(
        "/".join(str(v) for v in row[: len(key)]) for row in dupes.head(5).iter_rows()
    )
    return CheckResult("duplicate_keys", "FAIL", f"{len(dupes)} duplicated keys (e.g. {sample})")


def check_year_bounds(observations: pl.DataFrame, year_from: int, year_to: int) -> CheckResult:
    """All years must fall inside [year_from, year_to]."""
    if len(observations) == 0:
        return CheckResult("year_bounds", "PASS", "0 rows")
    outside = observations.filter(~pl.col("year").is_between(year_from, year_to))
    lo, hi = observations["year"].min(), observations["year"].max()
    if outside.is_empty():
        return CheckResult("year_bounds", "PASS", f"years {lo}–{hi} within {year_from}–{year_to}")
    codes = sorted(outside["indicator_code"].unique().to_list())[:10]
    return CheckResult(
        "year_bounds",
        "FAIL",
        f"{len(outside)} rows outside {year_from}–{year_to} (range {lo}–{hi}; codes {', '.join(codes)})",
    )


def check_indicator_catalog(indicator_codes: Iterable[str], observations: pl.DataFrame) -> CheckResult:
    """The catalog must not be empty and should cover every code in use."""
    catalog = set(indicator_codes)
    if not catalog:
        return CheckResult("indicator_catalog", "FAIL", "indicators table is empty")
    used = set(observations["indicator_code"].unique().to_list()) if len(observations) else set()
    unregistered = sorted(used - catalog)
    if unregistered:
        return CheckResult(
            "indicator_catalog",
            "WARN",
            f"{len(catalog)} indicators registered; {len(unregistered)} codes in use but not registered: "
            + ", ".join(unregistered[:10]),
        )
    return CheckResult("indicator_catalog", "PASS", f"{len(catalog)} indicators registered")


def overall_status(results: Sequence[CheckResult]) -> QACheckStatus:
    """FAIL if any check failed, else WARN if any warned, else PASS."""
    statuses = {r.status for r in results}
    if "FAIL" in statuses:
        return "FAIL"
    if "WARN" in statuses:
        return "WARN"
    return "PASS"
