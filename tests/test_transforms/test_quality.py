"""
tests/test_transforms/test_quality.py — QA check verdicts.
"""

from __future__ import annotations

import polars as pl

from visualclimate_pipeline.transforms.quality import (
    CheckResult,
    check_country_coverage,
    check_duplicate_keys,
    check_indicator_catalog,
    check_null_ratio,
    check_year_bounds,
    overall_status,
)


def _obs(rows: list[tuple[str, str, int, float | None]]) -> pl.DataFrame:
    return pl.DataFrame(
        rows,
        schema={"country_iso3": pl.String, "indicator_code": pl.String, "year": pl.Int64, "value": pl.Float64},
        orient="row",
    )


EMPTY = _obs([])


class TestCountryCoverage:
    def test_all_covered(self):
        obs = _obs([("KOR", "X", 2020, 1.0), ("USA", "X", 2020, 2.0)])
        assert check_country_coverage(obs, ["KOR", "USA"]).status == "PASS"

    def test_gaps_warn_and_name_the_countries(self):
        obs = _obs([("KOR", "X", 2020, 1.0)])
        result = check_country_coverage(obs, ["KOR", "USA", "DEU"])
        assert result.status == "WARN"
        assert "DEU" in result.details and "USA" in result.details

    def test_no_rows_fail(self):
        assert check_country_coverage(EMPTY, ["KOR"]).status == "FAIL"


class TestNullRatio:
    def test_below_threshold(self):
        obs = _obs([("KOR", "X", 2020, 1.0)] * 9 + [("KOR", "X", 2021, None)])
        assert check_null_ratio(obs, 0.30).status == "PASS"

    def test_at_or_above_threshold_warns(self):
        obs = _obs([("KOR", "X", 2020, 1.0), ("KOR", "X", 2021, None)])
        result = check_null_ratio(obs, 0.30)
        assert result.status == "WARN"
        assert "1/2" in result.details


def test_duplicate_keys_fail():
    obs = _obs([("KOR", "X", 2020, 1.0), ("KOR", "X", 2020, 2.0), ("USA", "X", 2020, 1.0)])
    result = check_duplicate_keys(obs)
    assert result.status == "FAIL"
    assert "KOR/X/2020" in result.details
    assert check_duplicate_keys(obs.unique(subset=["country_iso3"])).status == "PASS"


def test_year_bounds():
    obs = _obs([("KOR", "X", 2000, 1.0), ("KOR", "X", 2024, 1.0)])
    assert check_year_bounds(obs, 2000, 2024).status == "PASS"

    late = _obs([("KOR", "X", 2025, 1.0), ("KOR", "Y", 1990, 1.0)])
    result = check_year_bounds(late, 2000, 2024)
    assert result.status == "FAIL"
    assert "2 rows" in result.details


def test_indicator_catalog():
    obs = _obs([("KOR", "X", 2020, 1.0), ("KOR", "Z", 2020, 1.0)])
    assert check_indicator_catalog([], obs).status == "FAIL"
    assert check_indicator_catalog(["X", "Z"], obs).status == "PASS"
    unregistered = check_indicator_catalog(["X"], obs)
    assert unregistered.status == "WARN"
    assert "Z" in unregistered.details


def test_overall_status_is_worst():
    ok = CheckResult("a", "PASS", "")
    warn = CheckResult("b", "WARN", "")
    fail = CheckResult("c", "FAIL", "")
    assert overall_status([ok]) == "PASS"
    assert overall_status([ok, warn]) == "WARN"
    assert overall_status([warn, fail, ok]) == "FAIL"
    assert overall_status([]) == "PASS"
