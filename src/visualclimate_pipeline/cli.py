"""
cli.py — Click CLI entrypoint for the pipeline stages.

Usage:
    visualclimate-pipeline run ingest
    visualclimate-pipeline run score --score-year 2024
    visualclimate-pipeline run all --dry-run
    visualclimate-pipeline plan
"""

from __future__ import annotations

import asyncio
import sys

import click

from visualclimate_shared.config import settings
from visualclimate_shared.errors import ConfigurationError, NoDataAvailable, PersistenceError
from visualclimate_pipeline.utils.logging import configure_logging, get_logger

log = get_logger(__name__)

STAGES = ["ingest", "derive", "score", "qa", "trend-report", "all"]

# Order of the stages `all` runs
ALL_STAGES = ["ingest", "derive", "score", "qa"]


@click.group()
@click.option(
    "--log-level",
    default=settings.log_level,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Log level",
)
@click.option(
    "--log-format",
    default=settings.log_format,
    type=click.Choice(["json", "console"]),
    help="Log renderer",
)
def main(log_level: str, log_format: str) -> None:
    """VisualClimate ingestion, scoring and QA pipeline."""
    configure_logging(log_level=log_level, log_format=log_format)


async def _run_stage(stage: str, *, dry_run: bool, score_year: int | None, indicator: str | None) -> bool:
    """Run one stage; returns False when the stage reports a failed verdict."""
    if stage == "ingest":
        from visualclimate_pipeline.pipelines import ingest

        summary = await ingest.run(dry_run=dry_run)
        for code, source in summary.sources_by_indicator().items():
            click.echo(f"  {code:40s} {source}")
        return summary.load is None or summary.load.records_failed == 0

    if stage == "derive":
        from visualclimate_pipeline.pipelines import derive

        derived = await derive.run(dry_run=dry_run)
        for code, rows in derived.rows_by_code.items():
            click.echo(f"  {code:40s} {rows} rows")
        return derived.load is None or derived.load.records_failed == 0

    if stage == "score":
        from visualclimate_pipeline.pipelines import report_card

        result = await report_card.run(score_year=score_year, dry_run=dry_run)
        click.echo(f"  scored {len(result.scored)}, excluded {len(result.excluded)}")
        for grade, n in result.grade_distribution().items():
            click.echo(f"  {grade:3s} {n}")
        return result.load is None or result.load.records_failed == 0

    if stage == "qa":
        from visualclimate_pipeline.pipelines import qa

        report = await qa.run()
        for check in report.checks:
            click.echo(f"  [{check.status}] {check.name}: {check.details}")
        click.echo(f"  overall: {report.status}")
        return report.status != "FAIL"

    if stage == "trend-report":
        from visualclimate_pipeline.pipelines import trend_report

        kwargs = {"indicator": indicator} if indicator else {}
        path = await trend_report.run(**kwargs)
        click.echo(f"  wrote {path}")
        return True

    raise click.BadParameter(f"Unknown stage: {stage}")


@main.command()
@click.argument("stage", type=click.Choice(STAGES, case_sensitive=False))
@click.option("--dry-run", is_flag=True, help="Fetch and compute but write nothing.")
@click.option("--score-year", type=int, default=None, help="Report Card year (default: settings.score_year).")
@click.option("--indicator", default=None, help="Indicator code for trend-report.")
def run(stage: str, dry_run: bool, score_year: int | None, indicator: str | None) -> None:
    """Run a named stage or 'all' (ingest, derive, score, qa)."""
    stages = ALL_STAGES if stage == "all" else [stage]
    ok = True
    try:
        settings.require_store_credentials()
        for name in stages:
            click.echo(f"Running stage: {name}")
            log.info("stage_start", stage=name, dry_run=dry_run)
            stage_ok = asyncio.run(
                _run_stage(name, dry_run=dry_run, score_year=score_year, indicator=indicator)
            )
            log.info("stage_complete", stage=name, ok=stage_ok)
            ok = ok and stage_ok
    except ConfigurationError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(2)
    except NoDataAvailable as exc:
        click.echo(f"No data: {exc}", err=True)
        sys.exit(1)
    except PersistenceError as exc:
        log.error("stage_store_error", error=str(exc))
        click.echo(f"Store error: {exc}", err=True)
        sys.exit(1)

    if not ok:
        sys.exit(1)


@main.command()
def plan() -> None:
    """Show every ingested indicator and its ordered sources."""
    from visualclimate_pipeline.pipelines.catalog import build_ingest_plan
    from visualclimate_pipeline.utils.download_cache import DownloadCache
    from visualclimate_pipeline.utils.retry import RetryPolicy

    specs = build_ingest_plan(cache=DownloadCache(), retry_policy=RetryPolicy.from_settings())
    click.echo(f"{len(specs)} indicators:")
    for spec in specs:
        first, last = spec.year_range or (settings.year_start, settings.year_end)
        click.echo(f"  {spec.code:40s} {first}-{last}  " + " → ".join(spec.chain().source_names))


if __name__ == "__main__":
    main()
