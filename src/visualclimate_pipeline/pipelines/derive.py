"""
pipelines/derive.py — Regenerate the derived indicators from stored series.

For every configured derivation the stage:
  1. reads its input series from country_data (one read for all inputs)
  2. computes the new series with the pure functions in transforms/derived.py
  3. deletes every existing row for the derived code
  4. upserts the new rows

A failed delete is logged and the upsert still runs (it is idempotent on
the store key). Countries or years with insufficient input are silently
left out.

Usage:
    from visualclimate_pipeline.pipelines.derive import run
    summary = await run()
    print(summary.rows_by_code)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

import polars as pl

from visualclimate_shared.constants import (
    CLIMATE_CLASS_YEAR,
    CO2_PER_CAPITA,
    DECOUPLING_BASE_YEAR,
    DERIVED_CLIMATE_CLASS,
    DERIVED_CO2_PER_GDP,
    DERIVED_DECOUPLING,
    DERIVED_EMISSIONS_INTENSITY,
    DERIVED_SOURCE,
    GDP_PER_CAPITA,
    GDP_TOTAL,
    GHG_TOTAL_KT,
    OBSERVATION_KEY,
    OBSERVATIONS_TABLE,
    RENEWABLE_ELEC_SHARE,
)
from visualclimate_shared.errors import PersistenceError
from visualclimate_pipeline.loaders.supabase_loader import LoadResult, SupabaseLoader
from visualclimate_pipeline.pipelines.catalog import DERIVED_DEFINITIONS
from visualclimate_pipeline.sources.climatetrace import CTRACE_TOTAL, SECTOR_INDICATOR_MAP
from visualclimate_pipeline.transforms.derived import (
    SERIES_SCHEMA,
    classify_climate_action,
    growth_gap_series,
    ratio_series,
    sum_series,
)
from visualclimate_pipeline.utils.logging import get_logger

log = get_logger(__name__, pipeline="derive")

Series = Mapping[str, pl.DataFrame]


@dataclass(frozen=True)
class Derivation:
    """One derived code: the inputs it reads and how to compute it."""

    code: str
    inputs: tuple[str, ...]
    compute: Callable[[Series], pl.DataFrame]
    source: str = DERIVED_SOURCE


def _climate_class(series: Series) -> pl.DataFrame:
    classes = classify_climate_action(series[CO2_PER_CAPITA], series[RENEWABLE_ELEC_SHARE])
    return classes.select(
        "country_iso3",
        pl.lit(CLIMATE_CLASS_YEAR, dtype=pl.Int64).alias("year"),
        "value",
    )


DERIVATIONS: tuple[Derivation, ...] = (
    # t CO2e per 1000 USD: per-capita CO2 over per-capita GDP in thousands
    Derivation(
        DERIVED_CO2_PER_GDP,
        (CO2_PER_CAPITA, GDP_PER_CAPITA),
        lambda s: ratio_series(
            s[CO2_PER_CAPITA], s[GDP_PER_CAPITA], scale=1000.0, min_denominator=0.0, decimals=4
        ),
    ),
    Derivation(
        DERIVED_DECOUPLING,
        (GDP_PER_CAPITA, CO2_PER_CAPITA),
        lambda s: growth_gap_series(
            s[GDP_PER_CAPITA], s[CO2_PER_CAPITA], base_year=DECOUPLING_BASE_YEAR, decimals=2
        ),
    ),
    Derivation(
        DERIVED_EMISSIONS_INTENSITY,
        (GHG_TOTAL_KT, GDP_TOTAL),
        lambda s: ratio_series(s[GHG_TOTAL_KT], s[GDP_TOTAL], min_denominator=0.0),
    ),
    Derivation(
        DERIVED_CLIMATE_CLASS,
        (CO2_PER_CAPITA, RENEWABLE_ELEC_SHARE),
        _climate_class,
    ),
    Derivation(
        CTRACE_TOTAL,
        tuple(SECTOR_INDICATOR_MAP.values()),
        lambda s: sum_series([s[code] for code in SECTOR_INDICATOR_MAP.values()]),
        source="Climate TRACE",
    ),
)


@dataclass
class DeriveSummary:
    rows_by_code: dict[str, int] = field(default_factory=dict)
    deleted_by_code: dict[str, int] = field(default_factory=dict)
    delete_failures: list[str] = field(default_factory=list)
    load: LoadResult | None = None


def split_series(observations: pl.DataFrame, codes: Sequence[str]) -> dict[str, pl.DataFrame]:
    """One canonical (country_iso3, year, value) frame per code; empty when absent."""
    out: dict[str, pl.DataFrame] = {}
    for code in codes:
        frame = observations.filter(pl.col("indicator_code") == code)
        out[code] = (
            frame.select(list(SERIES_SCHEMA)).cast(SERIES_SCHEMA)
            if not frame.is_empty()
            else pl.DataFrame(schema=SERIES_SCHEMA)
        )
    return out


def compute_all(
    observations: pl.DataFrame,
    derivations: Sequence[Derivation] = DERIVATIONS,
) -> dict[str, pl.DataFrame]:
    """Compute every derivation into store rows, keyed by derived code."""
    codes = list(dict.fromkeys(c for d in derivations for c in d.inputs))
    series = split_series(observations, codes)
    out: dict[str, pl.DataFrame] = {}
    for derivation in derivations:
        computed = derivation.compute(series)
        out[derivation.code] = computed.select(
            "country_iso3",
            pl.lit(derivation.code).alias("indicator_code"),
            pl.col("year").cast(pl.Int64),
            pl.col("value").cast(pl.Float64),
            pl.lit(derivation.source).alias("source"),
        )
    return out


async def run(
    *,
    loader: SupabaseLoader | None = None,
    derivations: Sequence[Derivation] = DERIVATIONS,
    dry_run: bool = False,
) -> DeriveSummary:
    """
    Recompute and replace every derived indicator.

    Args:
        loader:      Store gateway (built from settings when None).
        derivations: Derivations to run, in order.
        dry_run:     Compute but neither delete nor write.
    """
    loader = loader or SupabaseLoader()
    input_codes = list(dict.fromkeys(c for d in derivations for c in d.inputs))
    log.info("derive_start", derivations=[d.code for d in derivations], dry_run=dry_run)

    observations = await loader.fetch_observations(input_codes)
    computed = compute_all(observations, derivations)
    summary = DeriveSummary(rows_by_code={code: len(df) for code, df in computed.items()})

    for code, rows in summary.rows_by_code.items():
        countries = computed[code]["country_iso3"].n_unique() if rows else 0
        log.info("derivation_computed", code=code, rows=rows, countries=countries)

    if dry_run:
        log.info("dry_run_complete", rows=sum(summary.rows_by_code.values()))
        return summary

    await loader.ensure_indicators(
        DERIVED_DEFINITIONS[d.code] for d in derivations if d.code in DERIVED_DEFINITIONS
    )

    total = LoadResult(table=OBSERVATIONS_TABLE)
    for derivation in derivations:
        code = derivation.code
        try:
            summary.deleted_by_code[code] = await loader.delete_where(
                OBSERVATIONS_TABLE, indicator_code=code
            )
        except PersistenceError as exc:
            log.error("derivation_delete_failed", code=code, error=str(exc))
            summary.delete_failures.append(code)

        frame = computed[code]
        if frame.is_empty():
            log.warning("derivation_empty", code=code)
            continue
        total.merge(await loader.upsert(OBSERVATIONS_TABLE, frame, conflict_columns=OBSERVATION_KEY))

    summary.load = total
    log.info(
        "derive_complete",
        rows=sum(summary.rows_by_code.values()),
        records_loaded=total.records_loaded,
        records_failed=total.records_failed,
        delete_failures=summary.delete_failures,
    )
    return summary
