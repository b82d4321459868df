"""
visualclimate_pipeline — ETL workers behind the VisualClimate Report Card.

Architecture:
  sources/     — one adapter per transport (World Bank API, Climate TRACE API,
                 OWID grapher API, remote/local CSV) plus the fallback chain
  transforms/  — derived indicators, normalization/scoring, QA checks
  loaders/     — batched idempotent Supabase upserts, filtered deletes, reads
  pipelines/   — stage orchestrators: ingest, derive, score, qa, trend report
  utils/       — structlog configuration, retry policy, download cache

Quick start:
    from visualclimate_pipeline.pipelines.report_card import run as run_scores
    import asyncio
    summary = asyncio.run(run_scores(dry_run=True))

CLI:
    visualclimate-pipeline run all
    visualclimate-pipeline run score --score-year 2024 --dry-run
    visualclimate-pipeline plan
"""

__version__ = "0.1.0"
