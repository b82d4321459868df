"""
tests/test_transforms/test_derived.py — Ratio, growth-gap, sum and classification rules.
"""

from __future__ import annotations

import polars as pl
import pytest

from visualclimate_pipeline.transforms.derived import (
    classify_climate_action,
    growth_gap_series,
    ratio_series,
    sum_series,
)


def _series(*rows: tuple[str, int, float]) -> pl.DataFrame:
    return pl.DataFrame(
        rows,
        schema={"country_iso3": pl.String, "year": pl.Int64, "value": pl.Float64},
        orient="row",
    )


class TestRatioSeries:
    def test_disjoint_years_yield_nothing(self):
        out = ratio_series(_series(("A", 2020, 10.0)), _series(("A", 2021, 5.0)))
        assert out.is_empty()

    def test_shared_pairs_only(self):
        num = _series(("A", 2020, 10.0), ("A", 2021, 12.0), ("B", 2020, 3.0))
        den = _series(("A", 2020, 5.0), ("B", 2021, 1.0))
        out = ratio_series(num, den)
        assert out.rows() == [("A", 2020, 2.0)]

    def test_scale_and_rounding(self):
        # 11.6 t per capita / (32000 USD / 1000) = 0.3625
        out = ratio_series(
            _series(("KOR", 2022, 11.6)),
            _series(("KOR", 2022, 32000.0)),
            scale=1000.0,
            decimals=4,
        )
        assert out["value"][0] == pytest.approx(0.3625)

    def test_min_denominator_excludes_zero_and_below(self):
        num = _series(("A", 2020, 1.0), ("B", 2020, 1.0), ("C", 2020, 1.0))
        den = _series(("A", 2020, 0.0), ("B", 2020, 0.5), ("C", 2020, 2.0))

        assert ratio_series(num, den)["country_iso3"].to_list() == ["B", "C"]
        assert ratio_series(num, den, min_denominator=1.0)["country_iso3"].to_list() == ["C"]

    def test_empty_input(self):
        assert ratio_series(_series(), _series(("A", 2020, 1.0))).is_empty()


class TestGrowthGap:
    def test_decoupling_against_base_year(self):
        gdp = _series(("A", 2010, 100.0), ("A", 2020, 150.0))
        co2 = _series(("A", 2010, 10.0), ("A", 2020, 9.0))
        out = growth_gap_series(gdp, co2, base_year=2010, decimals=2)

        values = dict(zip(out["year"], out["value"]))
        assert values[2010] == 0.0
        # +50% GDP, -10% CO2
        assert values[2020] == pytest.approx(60.0)

    def test_country_without_base_year_excluded(self):
        gdp = _series(("A", 2011, 100.0), ("A", 2020, 150.0), ("B", 2010, 1.0), ("B", 2020, 2.0))
        co2 = _series(("A", 2011, 10.0), ("A", 2020, 9.0), ("B", 2010, 1.0), ("B", 2020, 1.0))
        out = growth_gap_series(gdp, co2, base_year=2010)
        assert set(out["country_iso3"].to_list()) == {"B"}

    def test_zero_base_excluded(self):
        gdp = _series(("A", 2010, 0.0), ("A", 2020, 5.0))
        co2 = _series(("A", 2010, 1.0), ("A", 2020, 1.0))
        assert growth_gap_series(gdp, co2, base_year=2010).is_empty()


def test_sum_series_adds_per_country_year():
    out = sum_series(
        [
            _series(("A", 2024, 1.0), ("B", 2024, 2.0)),
            _series(("A", 2024, 10.0)),
            _series(),
        ]
    )
    assert out.rows() == [("A", 2024, 11.0), ("B", 2024, 2.0)]


class TestClassifyClimateAction:
    def test_changer_starter_talker(self):
        co2 = _series(
            ("A", 2015, 10.0), ("A", 2023, 8.0),      # falling
            ("B", 2015, 10.0), ("B", 2022, 12.0),     # rising
            ("C", 2015, 10.0), ("C", 2021, 11.0),     # rising
        )
        ren = _series(
            ("A", 2018, 10.0), ("A", 2023, 20.0),     # +10 pp
            ("B", 2019, 10.0), ("B", 2023, 15.0),     # +5 pp
            ("C", 2018, 10.0), ("C", 2023, 11.0),     # +1 pp
        )
        out = classify_climate_action(co2, ren)
        classes = dict(zip(out["country_iso3"], out["value"]))
        assert classes == {"A": 1.0, "B": 2.0, "C": 3.0}

    def test_cagr_uses_latest_available_end_year(self):
        co2 = _series(("A", 2015, 10.0), ("A", 2021, 5.0), ("A", 2022, 20.0))
        out = classify_climate_action(co2, _series())
        # 2022 wins over 2021: rising, and no renewables → Talker
        assert out["value"][0] == 3.0
        assert out["cagr"][0] == pytest.approx((20.0 / 10.0) ** (1 / 7) - 1)

    def test_no_metrics_no_row(self):
        co2 = _series(("A", 2016, 10.0))
        ren = _series(("A", 2020, 10.0))
        assert classify_climate_action(co2, ren).is_empty()
