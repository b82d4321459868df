"""
pipelines/ingest.py — Fetch every catalog indicator and persist it.

Orchestrates:
  1. Read the reference country list (zero countries → NoDataAvailable)
  2. Probe the World Bank API once; when it is down WDI is skipped for
     every indicator and the fallbacks answer instead
  3. Run one FallbackChain per indicator, at most ``fetch_concurrency``
     chains in flight; each chain tries its adapters strictly in order
  4. Register the catalog entries in ``indicators``
  5. Upsert the combined rows into ``country_data`` on
     (country_iso3, indicator_code, year)

An indicator that no adapter can supply is reported with source NONE and
never halts the run.

Usage:
    from visualclimate_pipeline.pipelines.ingest import run
    summary = await run()
    print(summary.sources_by_indicator())
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

import polars as pl

from visualclimate_shared.config import settings
from visualclimate_shared.constants import OBSERVATION_KEY, OBSERVATIONS_TABLE, SOURCE_NONE
from visualclimate_shared.errors import NoDataAvailable
from visualclimate_pipeline.loaders.supabase_loader import LoadResult, SupabaseLoader
from visualclimate_pipeline.pipelines.catalog import IndicatorSpec, build_ingest_plan
from visualclimate_pipeline.sources.fallback import RECORD_SCHEMA, FallbackResult
from visualclimate_pipeline.sources.worldbank import WorldBankSource
from visualclimate_pipeline.utils.download_cache import DownloadCache
from visualclimate_pipeline.utils.logging import get_logger
from visualclimate_pipeline.utils.retry import RetryPolicy

log = get_logger(__name__, pipeline="ingest")


@dataclass
class IngestSummary:
    """What one ingest run fetched, from where, and what was written."""

    countries: int
    results: list[FallbackResult] = field(default_factory=list)
    skipped_sources: list[str] = field(default_factory=list)
    load: LoadResult | None = None
    dry_run: bool = False

    def sources_by_indicator(self) -> dict[str, str]:
        return {r.indicator: r.source for r in self.results}

    @property
    def missing(self) -> list[str]:
        return [r.indicator for r in self.results if not r.found]

    @property
    def fell_back(self) -> list[str]:
        return [r.indicator for r in self.results if r.fell_back]

    @property
    def rows(self) -> int:
        return sum(len(r.records) for r in self.results)


async def _probe_worldbank(plan: Sequence[IndicatorSpec]) -> list[str]:
    """Return the WDI adapter names to skip for this run (empty when healthy)."""
    probes = {a.name: a for spec in plan for a in spec.adapters if isinstance(a, WorldBankSource)}
    skipped: list[str] = []
    for name, adapter in probes.items():
        if not await adapter.probe():
            log.warning("source_skipped_for_run", source=name, reason="health probe failed")
            skipped.append(name)
    return skipped


def combine_records(results: Sequence[FallbackResult]) -> pl.DataFrame:
    """Concatenate every found result; first row per store key wins."""
    frames = [r.records for r in results if r.found and not r.records.is_empty()]
    if not frames:
        return pl.DataFrame(schema=RECORD_SCHEMA)
    return pl.concat(frames).unique(subset=OBSERVATION_KEY, keep="first", maintain_order=True)


async def run(
    *,
    loader: SupabaseLoader | None = None,
    plan: Sequence[IndicatorSpec] | None = None,
    year_range: tuple[int, int] | None = None,
    concurrency: int | None = None,
    retry_policy: RetryPolicy | None = None,
    probe: bool = True,
    dry_run: bool = False,
) -> IngestSummary:
    """
    Run the ingest stage end-to-end.

    Args:
        loader:       Store gateway (built from settings when None).
        plan:         Indicator specs to ingest (the full catalog when None).
        year_range:   Default inclusive year bound for specs without their own.
        concurrency:  Max indicator chains in flight.
        retry_policy: Policy handed to every adapter when the plan is built here.
        probe:        Probe the World Bank API before fetching.
        dry_run:      Fetch and combine but write nothing.

    Raises:
        ConfigurationError: store credentials missing (raised by the loader).
        NoDataAvailable:    the countries reference table is empty.
    """
    loader = loader or SupabaseLoader()
    first_last = year_range or (settings.year_start, settings.year_end)
    limit = concurrency or settings.fetch_concurrency

    countries = [c.iso3 for c in await loader.fetch_countries()]
    if not countries:
        raise NoDataAvailable("countries table is empty; nothing to ingest")

    if plan is None:
        plan = build_ingest_plan(
            cache=DownloadCache(max_age_hours=settings.csv_cache_hours),
            retry_policy=retry_policy or RetryPolicy.from_settings(),
        )

    log.info(
        "ingest_start",
        countries=len(countries),
        indicators=len(plan),
        year_range=list(first_last),
        concurrency=limit,
        dry_run=dry_run,
    )

    skipped = await _probe_worldbank(plan) if probe else []
    semaphore = asyncio.Semaphore(limit)

    async def _run_chain(spec: IndicatorSpec) -> FallbackResult:
        async with semaphore:
            return await spec.chain().run(countries, spec.year_range or first_last, skip=skipped)

    results = list(await asyncio.gather(*(_run_chain(spec) for spec in plan)))
    summary = IngestSummary(
        countries=len(countries),
        results=results,
        skipped_sources=skipped,
        dry_run=dry_run,
    )

    for result in results:
        log.info("indicator_source", **result.summary())

    combined = combine_records(results)
    if dry_run:
        log.info("dry_run_complete", rows=len(combined))
    else:
        await loader.ensure_indicators(spec.definition for spec in plan)
        summary.load = await loader.upsert(OBSERVATIONS_TABLE, combined, conflict_columns=OBSERVATION_KEY)

    by_source = Counter(r.source for r in results)
    log.info(
        "ingest_complete",
        rows=len(combined),
        indicators=len(results),
        by_source=dict(sorted(by_source.items())),
        no_source=summary.missing,
        fell_back=summary.fell_back,
        skipped_sources=skipped,
        records_failed=summary.load.records_failed if summary.load else 0,
    )
    if by_source.get(SOURCE_NONE):
        log.warning("indicators_without_source", indicators=summary.missing)
    return summary
