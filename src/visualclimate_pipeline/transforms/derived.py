"""
transforms/derived.py — Derived indicators computed from persisted series.

All functions are pure: they take canonical series frames
(country_iso3, year, value) and return a new series frame. Countries or
years without enough input are left out of the output; nothing here
raises for missing data.

  ratio_series            numerator / (denominator / scale) on shared (country, year) pairs
  growth_gap_series       % change of one series minus % change of another since a base year
  sum_series              per (country, year) sum across several series
  classify_climate_action Changer / Starter / Talker from CO2 CAGR and renewables delta
"""

from __future__ import annotations

from collections.abc import Sequence

import polars as pl

from visualclimate_shared.constants import (
    CLIMATE_CHANGER,
    CLIMATE_STARTER,
    CLIMATE_TALKER,
)

KEY = ["country_iso3", "year"]

SERIES_SCHEMA: dict[str, pl.DataType] = {
    "country_iso3": pl.String,
    "year": pl.Int64,
    "value": pl.Float64,
}


def _empty() -> pl.DataFrame:
    return pl.DataFrame(schema=SERIES_SCHEMA)


def round_half_up(expr: pl.Expr, decimals: int) -> pl.Expr:
    """floor(x * 10^d + 0.5) / 10^d — halves always round toward +inf."""
    factor = 10.0**decimals
    return (expr * factor + 0.5).floor() / factor


def _finite(df: pl.DataFrame) -> pl.DataFrame:
    return df.filter(pl.col("value").is_not_null() & pl.col("value").is_finite())


def ratio_series(
    numerator: pl.DataFrame,
    denominator: pl.DataFrame,
    *,
    scale: float = 1.0,
    min_denominator: float = 0.0,
    decimals: int | None = None,
) -> pl.DataFrame:
    """
    value = numerator / (denominator / scale) for every (country, year)
    present in both series with denominator > min_denominator.

    Pairs present in only one input are skipped; there is no interpolation.
    """
    if numerator.is_empty() or denominator.is_empty():
        return _empty()

    joined = numerator.select(*KEY, pl.col("value").alias("num")).join(
        denominator.select(*KEY, pl.col("value").alias("den")),
        on=KEY,
        how="inner",
    )
    joined = joined.filter(
        pl.col("num").is_not_null()
        & pl.col("den").is_not_null()
        & (pl.col("den") > min_denominator)
    )
    value = pl.col("num") / (pl.col("den") / scale)
    if decimals is not None:
        value = round_half_up(value, decimals)

    out = joined.select(*KEY, value.alias("value"))
    return _finite(out).sort(KEY)


def growth_gap_series(
    lead: pl.DataFrame,
    lag: pl.DataFrame,
    *,
    base_year: int,
    decimals: int | None = None,
) -> pl.DataFrame:
    """
    For each country with both series at ``base_year`` (non-zero base
    values) and each year present in both series:

        value = pct_change(lead, base → year) - pct_change(lag, base → year)

    Decoupling is growth_gap_series(gdp, co2, base_year=2010). Countries
    missing either base value are excluded entirely.
    """
    if lead.is_empty() or lag.is_empty():
        return _empty()

    bases = (
        lead.filter(pl.col("year") == base_year)
        .select("country_iso3", pl.col("value").alias("lead_base"))
        .join(
            lag.filter(pl.col("year") == base_year).select(
                "country_iso3", pl.col("value").alias("lag_base")
            ),
            on="country_iso3",
            how="inner",
        )
        .filter(
            pl.col("lead_base").is_not_null()
            & pl.col("lag_base").is_not_null()
            & (pl.col("lead_base") != 0)
            & (pl.col("lag_base") != 0)
        )
    )
    if bases.is_empty():
        return _empty()

    joined = (
        lead.select(*KEY, pl.col("value").alias("lead"))
        .join(lag.select(*KEY, pl.col("value").alias("lag")), on=KEY, how="inner")
        .join(bases, on="country_iso3", how="inner")
    )
    lead_pct = (pl.col("lead") - pl.col("lead_base")) / pl.col("lead_base") * 100
    lag_pct = (pl.col("lag") - pl.col("lag_base")) / pl.col("lag_base") * 100
    value = lead_pct - lag_pct
    if decimals is not None:
        value = round_half_up(value, decimals)

    out = joined.select(*KEY, value.alias("value"))
    return _finite(out).sort(KEY)


def sum_series(series: Sequence[pl.DataFrame]) -> pl.DataFrame:
    """Per (country, year) sum over every non-empty input series."""
    frames = [s.select(KEY + ["value"]) for s in series if not s.is_empty()]
    if not frames:
        return _empty()
    return _finite(
        pl.concat(frames)
        .group_by(KEY)
        .agg(pl.col("value").sum())
        .sort(KEY)
    )


# ---------------------------------------------------------------------------
# Climate action classification
# ---------------------------------------------------------------------------

CO2_START_YEAR = 2015
CO2_END_YEARS = (2023, 2022, 2021)
RENEWABLES_START_YEARS = (2018, 2019)
RENEWABLES_END_YEARS = (2023, 2022, 2021)
RENEWABLES_DELTA_THRESHOLD = 2.0   # percentage points


def _first_available(values: dict[int, float], years: Sequence[int]) -> tuple[int, float] | None:
    for year in years:
        if year in values:
            return year, values[year]
    return None


def classify_climate_action(co2: pl.DataFrame, renewables: pl.DataFrame) -> pl.DataFrame:
    """
    Classify each country from its CO2-per-capita trend and its change in
    renewable share of electricity.

      decarbonizing  CO2 CAGR from 2015 to the latest of 2023/2022/2021 < 0
      transitioning  renewables share (latest of 2023/2022/2021) minus share
                     in 2018 (or 2019) > 2 percentage points

    Changer (1) is both, Starter (2) is one of the two, Talker (3) is
    neither. Countries where neither metric can be computed get no row.

    Returns:
        DataFrame with country_iso3, value (class), cagr, renewables_delta.
    """
    by_country: dict[str, dict[str, dict[int, float]]] = {}
    for name, frame in (("co2", co2), ("ren", renewables)):
        for iso3, year, value in frame.select(KEY + ["value"]).iter_rows():
            if value is None:
                continue
            by_country.setdefault(iso3, {"co2": {}, "ren": {}})[name][year] = value

    rows: list[dict[str, object]] = []
    for iso3 in sorted(by_country):
        series = by_country[iso3]

        cagr: float | None = None
        start = series["co2"].get(CO2_START_YEAR)
        end = _first_available(series["co2"], CO2_END_YEARS)
        if start is not None and end is not None and start > 0:
            end_year, end_value = end
            if end_value >= 0:
                cagr = (end_value / start) ** (1 / (end_year - CO2_START_YEAR)) - 1

        delta: float | None = None
        ren_start = _first_available(series["ren"], RENEWABLES_START_YEARS)
        ren_end = _first_available(series["ren"], RENEWABLES_END_YEARS)
        if ren_start is not None and ren_end is not None:
            delta = ren_end[1] - ren_start[1]

        if cagr is None and delta is None:
            continue

        decarbonizing = cagr is not None and cagr < 0
        transitioning = delta is not None and delta > RENEWABLES_DELTA_THRESHOLD
        if decarbonizing and transitioning:
            cls = CLIMATE_CHANGER
        elif decarbonizing or transitioning:
            cls = CLIMATE_STARTER
        else:
            cls = CLIMATE_TALKER

        rows.append(
            {"country_iso3": iso3, "value": float(cls), "cagr": cagr, "renewables_delta": delta}
        )

    return pl.DataFrame(
        rows,
        schema={
            "country_iso3": pl.String,
            "value": pl.Float64,
            "cagr": pl.Float64,
            "renewables_delta": pl.Float64,
        },
    )
