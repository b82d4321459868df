"""
tests/test_pipelines/test_ingest.py — Ingest stage against stub adapters and the in-memory store.

Tests cover:
  - Rows from the first adapter with data are stored with provenance
  - Indicators no adapter can supply are reported as NONE
  - Catalog entries are registered
  - Dry run writes nothing
  - Empty countries table raises NoDataAvailable
  - A failing World Bank probe skips WDI for every indicator
"""

from __future__ import annotations

import polars as pl
import pytest

from visualclimate_shared.errors import NoDataAvailable, SourceUnavailable
from visualclimate_shared.models.indicators import IndicatorDefinition
from visualclimate_pipeline.pipelines import ingest
from visualclimate_pipeline.pipelines.catalog import IndicatorSpec
from visualclimate_pipeline.sources.base import BaseSource, empty_series
from visualclimate_pipeline.sources.fallback import FallbackResult
from visualclimate_pipeline.sources.worldbank import WorldBankSource
from visualclimate_pipeline.utils.retry import RetryPolicy


class StubSource(BaseSource):
    def __init__(self, name: str, frame: pl.DataFrame | None = None, error: Exception | None = None):
        super().__init__(name=name, retry_policy=RetryPolicy.no_retry())
        self.frame = frame if frame is not None else empty_series()
        self.error = error
        self.calls = 0

    async def extract(self, indicator, year_range):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.frame

    def transform(self, raw):
        return raw


def _series(*rows: tuple[str, int, float]) -> pl.DataFrame:
    return pl.DataFrame(
        {
            "country_iso3": [r[0] for r in rows],
            "year": [r[1] for r in rows],
            "value": [r[2] for r in rows],
        }
    )


def _spec(code: str, adapters: list[BaseSource]) -> IndicatorSpec:
    return IndicatorSpec(IndicatorDefinition(code=code, name=f"{code} name", source="test"), adapters)


def _plan() -> list[IndicatorSpec]:
    return [
        _spec("A.CODE", [StubSource("WDI", _series(("KOR", 2021, 1.0), ("USA", 2021, 2.0), ("FRA", 2021, 3.0)))]),
        _spec(
            "B.CODE",
            [
                StubSource("WDI", error=SourceUnavailable("WDI", "HTTP 503")),
                StubSource("OWID", _series(("DEU", 2020, 5.0))),
            ],
        ),
        _spec("C.CODE", [StubSource("WDI")]),
    ]


@pytest.mark.asyncio
async def test_run_stores_rows_with_provenance(loader, fake_supabase):
    summary = await ingest.run(loader=loader, plan=_plan(), year_range=(2000, 2023), probe=False)

    assert summary.sources_by_indicator() == {"A.CODE": "WDI", "B.CODE": "OWID", "C.CODE": "NONE"}
    assert summary.missing == ["C.CODE"]
    assert summary.fell_back == ["B.CODE"]
    assert summary.countries == 3

    stored = {(r["country_iso3"], r["indicator_code"], r["year"]): r for r in fake_supabase.rows("country_data")}
    # FRA is not a tracked country
    assert set(stored) == {("KOR", "A.CODE", 2021), ("USA", "A.CODE", 2021), ("DEU", "B.CODE", 2020)}
    assert stored[("DEU", "B.CODE", 2020)]["source"] == "OWID"
    assert summary.load is not None and summary.load.status == "success"


@pytest.mark.asyncio
async def test_run_registers_catalog_entries(loader, fake_supabase):
    await ingest.run(loader=loader, plan=_plan(), probe=False)
    assert {r["code"] for r in fake_supabase.rows("indicators")} == {"A.CODE", "B.CODE", "C.CODE"}


@pytest.mark.asyncio
async def test_rerun_is_idempotent(loader, fake_supabase):
    await ingest.run(loader=loader, plan=_plan(), probe=False)
    first = sorted(fake_supabase.rows("country_data"), key=lambda r: (r["indicator_code"], r["country_iso3"]))
    await ingest.run(loader=loader, plan=_plan(), probe=False)
    second = sorted(fake_supabase.rows("country_data"), key=lambda r: (r["indicator_code"], r["country_iso3"]))
    assert first == second


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(loader, fake_supabase):
    summary = await ingest.run(loader=loader, plan=_plan(), probe=False, dry_run=True)

    assert summary.dry_run
    assert summary.load is None
    assert summary.rows == 3
    assert fake_supabase.rows("country_data") == []
    assert ("country_data", "upsert") not in fake_supabase.calls


@pytest.mark.asyncio
async def test_empty_countries_table_raises(make_supabase):
    from visualclimate_pipeline.loaders.supabase_loader import SupabaseLoader

    loader = SupabaseLoader(client=make_supabase({"countries": []}))
    with pytest.raises(NoDataAvailable):
        await ingest.run(loader=loader, plan=_plan(), probe=False)


@pytest.mark.asyncio
async def test_failed_probe_skips_worldbank(loader, monkeypatch):
    wdi = WorldBankSource(name="WDI", retry_policy=RetryPolicy.no_retry())

    async def _down() -> bool:
        return False

    async def _never_called(indicator, year_range):
        raise AssertionError("WDI should have been skipped")

    monkeypatch.setattr(wdi, "probe", _down)
    monkeypatch.setattr(wdi, "extract", _never_called)
    fallback = StubSource("GitHub/datasets", _series(("KOR", 2022, 51_700_000.0)))

    summary = await ingest.run(
        loader=loader,
        plan=[_spec("SP.POP.TOTL", [wdi, fallback])],
        probe=True,
    )

    assert summary.skipped_sources == ["WDI"]
    assert summary.sources_by_indicator() == {"SP.POP.TOTL": "GitHub/datasets"}
    assert fallback.calls == 1


def test_combine_records_keeps_first_per_key():
    rows_a = pl.DataFrame(
        {"country_iso3": ["KOR"], "indicator_code": ["X"], "year": [2020], "value": [1.0], "source": ["A"]}
    )
    rows_b = rows_a.with_columns(pl.lit(9.0).alias("value"), pl.lit("B").alias("source"))
    results = [
        FallbackResult(indicator="X", source="A", records=rows_a),
        FallbackResult(indicator="X", source="B", records=rows_b),
    ]
    combined = ingest.combine_records(results)
    assert combined.rows() == [("KOR", "X", 2020, 1.0, "A")]
