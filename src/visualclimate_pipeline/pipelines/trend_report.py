"""
pipelines/trend_report.py — Base-year vs latest-year change report.

For one indicator, compares each country's value in the base year (2000)
with its latest available value, ranks countries by percentage change
(largest reduction first, countries without a change last) and writes a
markdown table to ``<analysis_dir>/<code>-trend.md``.

Read-only against the store; the markdown file is a side artifact.

Usage:
    from visualclimate_pipeline.pipelines.trend_report import run
    path = await run(indicator="EN.GHG.CO2.PC.CE.AR5")
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from pathlib import Path

import polars as pl

from visualclimate_shared.config import settings
from visualclimate_shared.constants import CO2_PER_CAPITA
from visualclimate_pipeline.loaders.supabase_loader import SupabaseLoader
from visualclimate_pipeline.utils.logging import get_logger

log = get_logger(__name__, pipeline="trend_report")

BASE_YEAR = 2000

TREND_SCHEMA: dict[str, pl.DataType] = {
    "country_iso3": pl.String,
    "name": pl.String,
    "base_value": pl.Float64,
    "latest_year": pl.Int64,
    "latest_value": pl.Float64,
    "change_pct": pl.Float64,
    "trend": pl.String,
}


def trend_table(
    observations: pl.DataFrame,
    countries: dict[str, str],
    *,
    base_year: int = BASE_YEAR,
) -> pl.DataFrame:
    """
    One row per country in ``countries`` (iso3 → name), ranked by change.

    change_pct = (latest - base) / base * 100, null when either value is
    missing or the base is zero.
    """
    valid = observations.filter(pl.col("value").is_not_null())
    rows: list[dict[str, object]] = []
    for iso3, name in countries.items():
        series = valid.filter(pl.col("country_iso3") == iso3).sort("year", descending=True)
        base = series.filter(pl.col("year") == base_year)["value"]
        base_value = base[0] if len(base) else None
        latest_year = series["year"][0] if len(series) else None
        latest_value = series["value"][0] if len(series) else None

        change = None
        trend = "N/A"
        if base_value is not None and latest_value is not None and base_value != 0:
            change = (latest_value - base_value) / base_value * 100
            trend = "Increasing" if change >= 0 else "Decreasing"

        rows.append(
            {
                "country_iso3": iso3,
                "name": name,
                "base_value": base_value,
                "latest_year": latest_year,
                "latest_value": latest_value,
                "change_pct": change,
                "trend": trend,
            }
        )

    return pl.DataFrame(rows, schema=TREND_SCHEMA).sort(
        ["change_pct", "country_iso3"], nulls_last=True
    )


def _fmt(value: float | None, decimals: int = 2) -> str:
    return "N/A" if value is None else f"{value:.{decimals}f}"


def render_markdown(table: pl.DataFrame, *, indicator: str, base_year: int = BASE_YEAR) -> str:
    lines = [
        f"# {indicator} trend comparison ({base_year} vs latest)",
        "",
        f"> Generated: {date.today().isoformat()}",
        f"> Source indicator: `{indicator}` from `country_data`",
        "",
        "## Methodology",
        "",
        f"- **Base year**: {base_year}",
        "- **Comparison**: latest available year per country",
        f"- **Formula**: change % = (latest - {base_year}) / {base_year} value x 100",
        "",
        "## Results (ranked by change %)",
        "",
        f"| Rank | Country | ISO3 | {base_year} Value | Latest Year | Latest Value | Change % | Trend |",
        "|------|---------|------|-----------|-------------|--------------|----------|-------|",
    ]
    for rank, row in enumerate(table.iter_rows(named=True), start=1):
        change = row["change_pct"]
        change_text = "N/A" if change is None else f"{'+' if change >= 0 else ''}{change:.1f}%"
        lines.append(
            f"| {rank} | {row['name']} | {row['country_iso3']} | {_fmt(row['base_value'])} | "
            f"{row['latest_year'] if row['latest_year'] is not None else 'N/A'} | "
            f"{_fmt(row['latest_value'])} | {change_text} | {row['trend']} |"
        )

    decreasing = table.filter(pl.col("change_pct") < 0).height
    increasing = table.filter(pl.col("change_pct") >= 0).height
    lines += [
        "",
        "## Summary",
        "",
        f"- Countries compared: {decreasing + increasing}/{len(table)}",
        f"- Decreasing: {decreasing}",
        f"- Increasing: {increasing}",
        "",
    ]
    return "\n".join(lines)


async def run(
    *,
    indicator: str = CO2_PER_CAPITA,
    countries: Iterable[str] | None = None,
    base_year: int = BASE_YEAR,
    output_dir: str | Path | None = None,
    loader: SupabaseLoader | None = None,
) -> Path:
    """
    Build the trend report and write it to disk.

    Args:
        indicator:  Indicator code to compare.
        countries:  ISO3 codes to include (every reference country when None).
        base_year:  Year the change is measured from.
        output_dir: Directory for the markdown file (settings.analysis_dir).
        loader:     Store gateway (built from settings when None).

    Returns:
        Path of the written markdown file.
    """
    loader = loader or SupabaseLoader()
    reference = {c.iso3: c.name for c in await loader.fetch_countries()}
    if countries is not None:
        wanted = sorted(set(countries))
        reference = {iso3: reference.get(iso3, iso3) for iso3 in wanted}

    observations = await loader.fetch_observations([indicator], year_from=base_year)
    if countries is not None:
        observations = observations.filter(pl.col("country_iso3").is_in(list(reference)))

    table = trend_table(observations, reference, base_year=base_year)
    out_dir = Path(output_dir or settings.analysis_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"{indicator}-trend.md"
    path.write_text(render_markdown(table, indicator=indicator, base_year=base_year), encoding="utf-8")

    log.info(
        "trend_report_written",
        indicator=indicator,
        path=str(path),
        countries=len(table),
        compared=table.filter(pl.col("change_pct").is_not_null()).height,
    )
    return path
