"""
tests/test_sources/test_owid_api.py — Unit tests for OWIDGrapherSource.
"""

from __future__ import annotations

import httpx
import pytest

from visualclimate_shared.errors import ParseError
from visualclimate_pipeline.sources.owid_api import OWIDGrapherSource

BASE = "https://owid.test/v1"
DATA_URL = f"{BASE}/indicators/1145573.data.json"
META_URL = f"{BASE}/indicators/1145573.metadata.json"

METADATA = {
    "dimensions": {
        "entities": {
            "values": [
                {"id": 13, "name": "South Korea", "code": "KOR"},
                {"id": 9, "name": "United States", "code": "USA"},
                {"id": 355, "name": "World"},
            ]
        }
    }
}


@pytest.fixture
def source(fast_retry) -> OWIDGrapherSource:
    return OWIDGrapherSource(1145573, base_url=BASE, retry_policy=fast_retry)


@pytest.mark.asyncio
async def test_entities_resolved_to_iso3(source, mock_http):
    mock_http.get(DATA_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "values": [81.4, 81.5, 83.1, 57.0],
                "years": [2021, 2022, 2022, 2022],
                "entities": [13, 13, 9, 355],
            },
        )
    )
    mock_http.get(META_URL).mock(return_value=httpx.Response(200, json=METADATA))

    df = await source.fetch("SP.URB.TOTL.IN.ZS", None, (2000, 2023))

    # World has no code and is dropped
    assert sorted(df["country_iso3"].to_list()) == ["KOR", "KOR", "USA"]
    assert df.filter(df["country_iso3"] == "USA")["value"][0] == pytest.approx(83.1)


@pytest.mark.asyncio
async def test_parallel_arrays_must_match(source, mock_http):
    mock_http.get(DATA_URL).mock(
        return_value=httpx.Response(200, json={"values": [1.0], "years": [2021, 2022], "entities": [13]})
    )
    mock_http.get(META_URL).mock(return_value=httpx.Response(200, json=METADATA))

    with pytest.raises(ParseError):
        await source.fetch("SP.URB.TOTL.IN.ZS", None, (2000, 2023))


@pytest.mark.asyncio
async def test_metadata_without_entities_is_parse_error(source, mock_http):
    mock_http.get(DATA_URL).mock(
        return_value=httpx.Response(200, json={"values": [1.0], "years": [2021], "entities": [13]})
    )
    mock_http.get(META_URL).mock(return_value=httpx.Response(200, json={"dimensions": {}}))

    with pytest.raises(ParseError):
        await source.fetch("SP.URB.TOTL.IN.ZS", None, (2000, 2023))
