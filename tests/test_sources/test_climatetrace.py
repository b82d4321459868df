"""
tests/test_sources/test_climatetrace.py — Unit tests for ClimateTraceSource.
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from structlog.testing import capture_logs

from visualclimate_shared.errors import ParseError
from visualclimate_pipeline.pipelines.catalog import build_ingest_plan
from visualclimate_pipeline.sources.climatetrace import SECTOR_INDICATOR_MAP, ClimateTraceSource
from visualclimate_pipeline.utils.download_cache import DownloadCache

FIXTURES = Path(__file__).parent.parent / "fixtures"
BASE = "https://ct.test/v7"
RANKINGS_URL = f"{BASE}/rankings/countries"


@pytest.fixture
def power_payload() -> dict:
    return json.loads((FIXTURES / "climatetrace_power.json").read_text())


@pytest.mark.asyncio
async def test_latest_year_from_totals(power_payload, mock_http, fast_retry):
    route = mock_http.get(RANKINGS_URL).mock(return_value=httpx.Response(200, json=power_payload))
    source = ClimateTraceSource("power", base_url=BASE, page_delay=0, retry_policy=fast_retry)

    df = await source.fetch("CTRACE.POWER", None, (2000, 2024))

    assert set(df["year"].to_list()) == {2024}
    # null quantity entries are skipped
    assert sorted(df["country_iso3"].to_list()) == ["CHN", "KOR", "USA"]
    assert route.calls[0].request.url.params["sector"] == "power"


@pytest.mark.asyncio
async def test_year_outside_range_is_filtered(power_payload, mock_http, fast_retry):
    mock_http.get(RANKINGS_URL).mock(return_value=httpx.Response(200, json=power_payload))
    source = ClimateTraceSource("power", base_url=BASE, page_delay=0, retry_policy=fast_retry)

    df = await source.fetch("CTRACE.POWER", None, (2000, 2023))
    assert df.is_empty()


@pytest.mark.asyncio
async def test_pages_until_short_page(power_payload, mock_http, fast_retry):
    full = dict(power_payload, rankings=power_payload["rankings"][:2])
    short = dict(power_payload, rankings=[{"country": "KOR", "emissionsQuantity": 1.0e6}])
    route = mock_http.get(RANKINGS_URL).mock(
        side_effect=[httpx.Response(200, json=full), httpx.Response(200, json=short)]
    )
    source = ClimateTraceSource("power", base_url=BASE, page_size=2, page_delay=0, retry_policy=fast_retry)

    df = await source.fetch("CTRACE.POWER", {"KOR", "USA"}, (2000, 2024))

    assert route.call_count == 2
    assert sorted(df["country_iso3"].to_list()) == ["KOR", "USA"]


@pytest.mark.asyncio
async def test_same_country_quantities_summed(mock_http, fast_retry):
    payload = {
        "totals": {"start": "2024-01-01"},
        "rankings": [
            {"country": "KOR", "emissionsQuantity": 100.0},
            {"country": "KOR", "emissionsQuantity": 50.0},
        ],
    }
    mock_http.get(RANKINGS_URL).mock(return_value=httpx.Response(200, json=payload))
    source = ClimateTraceSource("waste", base_url=BASE, page_delay=0, retry_policy=fast_retry)

    df = await source.fetch("CTRACE.WASTE", None, (2000, 2024))
    assert df.to_dicts() == [{"country_iso3": "KOR", "year": 2024, "value": 150.0}]


@pytest.mark.asyncio
async def test_non_object_payload_is_parse_error(mock_http, fast_retry):
    mock_http.get(RANKINGS_URL).mock(return_value=httpx.Response(200, json=["nope"]))
    source = ClimateTraceSource("power", base_url=BASE, page_delay=0, retry_policy=fast_retry)
    with pytest.raises(ParseError):
        await source.fetch("CTRACE.POWER", None, (2000, 2024))


def test_unknown_sector_rejected():
    with pytest.raises(ValueError):
        ClimateTraceSource("volcanoes")


def test_every_sector_has_a_code():
    assert len(SECTOR_INDICATOR_MAP) == 9
    assert all(code.startswith("CTRACE.") for code in SECTOR_INDICATOR_MAP.values())


@pytest.mark.asyncio
async def test_snapshot_year_ahead_of_range_is_reported(mock_http, fast_retry):
    payload = {"totals": {"start": "2025-01-01"}, "rankings": [{"country": "KOR", "emissionsQuantity": 5.0}]}
    mock_http.get(RANKINGS_URL).mock(return_value=httpx.Response(200, json=payload))
    source = ClimateTraceSource("power", base_url=BASE, page_delay=0, retry_policy=fast_retry)

    with capture_logs() as logs:
        df = await source.fetch("CTRACE.POWER", None, (2000, 2024))

    assert df.is_empty()
    warning = next(e for e in logs if e["event"] == "climatetrace_year_out_of_range")
    assert warning["log_level"] == "warning"
    assert warning["data_year"] == 2025
    assert warning["year_range"] == [2000, 2024]


def test_catalog_range_follows_score_year(fast_retry):
    plan = build_ingest_plan(cache=DownloadCache(), retry_policy=fast_retry, score_year=2025)
    ctrace = [spec for spec in plan if spec.code.startswith("CTRACE.")]

    assert len(ctrace) == len(SECTOR_INDICATOR_MAP)
    assert {spec.year_range[1] for spec in ctrace} == {2025}
