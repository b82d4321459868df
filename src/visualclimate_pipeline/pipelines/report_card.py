"""
pipelines/report_card.py — Score every country and persist the Report Card.

Orchestrates:
  1. Read the countries reference table and every scored indicator up to
     the score year (full read; scoring is never incremental). An empty
     countries table raises NoDataAvailable
  2. Normalize, weight and grade (transforms/scoring.py)
  3. Delete the previous REPORT.* rows for the score year
  4. Upsert the new domain scores, total and numeric grade
  5. Log the run summary: scored / excluded (with reasons), grade
     distribution, top 10 and bottom 10

Usage:
    from visualclimate_pipeline.pipelines.report_card import run
    result = await run(score_year=2024)
    print(result.grade_distribution())
"""

from __future__ import annotations

from visualclimate_shared.config import settings
from visualclimate_shared.constants import OBSERVATION_KEY, OBSERVATIONS_TABLE, REPORT_CODES
from visualclimate_shared.errors import NoDataAvailable, PersistenceError
from visualclimate_pipeline.loaders.supabase_loader import SupabaseLoader
from visualclimate_pipeline.pipelines.catalog import REPORT_DEFINITIONS
from visualclimate_pipeline.transforms.scoring import (
    ScoringResult,
    score_countries,
    score_rows,
    scored_indicator_codes,
)
from visualclimate_pipeline.utils.logging import get_logger

log = get_logger(__name__, pipeline="report_card")

RANKING_SIZE = 10


def _log_summary(result: ScoringResult) -> None:
    for excluded in result.excluded:
        log.info(
            "country_excluded",
            country=excluded.country_iso3,
            reason=excluded.exclusion_reason,
            domains_present=list(excluded.domains),
        )

    log.info(
        "grade_distribution",
        score_year=result.score_year,
        **{grade.replace("+", "_plus"): n for grade, n in result.grade_distribution().items()},
    )
    log.info(
        "ranking_top",
        countries=[(s.country_iso3, s.total, s.grade) for s in result.top(RANKING_SIZE)],
    )
    log.info(
        "ranking_bottom",
        countries=[(s.country_iso3, s.total, s.grade) for s in result.bottom(RANKING_SIZE)],
    )


async def run(
    *,
    score_year: int | None = None,
    loader: SupabaseLoader | None = None,
    dry_run: bool = False,
) -> ScoringResult:
    """
    Compute and store the Report Card for ``score_year``.

    Args:
        score_year: Latest year a value may come from; rows are stored at this year.
        loader:     Store gateway (built from settings when None).
        dry_run:    Score and log but write nothing.

    Raises:
        NoDataAvailable: the countries reference table is empty.
    """
    year = score_year or settings.score_year
    loader = loader or SupabaseLoader()
    log.info("report_card_start", score_year=year, dry_run=dry_run)

    countries = [c.iso3 for c in await loader.fetch_countries()]
    if not countries:
        raise NoDataAvailable("countries table is empty; nothing to score")

    observations = await loader.fetch_observations(scored_indicator_codes(), year_to=year)
    log.info(
        "report_card_inputs",
        countries=len(countries),
        rows=len(observations),
    )

    result = score_countries(observations, year, countries=countries)
    rows = score_rows(result.scores, year)
    _log_summary(result)

    if dry_run:
        log.info("dry_run_complete", scored=len(result.scored), rows=len(rows))
        return result

    await loader.ensure_indicators(REPORT_DEFINITIONS.values())
    try:
        await loader.delete_where(OBSERVATIONS_TABLE, indicator_code=REPORT_CODES, year=year)
    except PersistenceError as exc:
        log.error("report_card_delete_failed", score_year=year, error=str(exc))

    load = await loader.upsert(OBSERVATIONS_TABLE, rows, conflict_columns=OBSERVATION_KEY)
    result.load = load
    log.info(
        "report_card_complete",
        score_year=year,
        scored=len(result.scored),
        excluded=len(result.excluded),
        records_loaded=load.records_loaded,
        records_failed=load.records_failed,
    )
    return result
