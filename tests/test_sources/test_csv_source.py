"""
tests/test_sources/test_csv_source.py — Unit tests for CSVSource.

Local fixture files cover the OWID, ND-GAIN and datasets layouts; remote
reads are mocked with respx.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import polars as pl
import pytest

from visualclimate_shared.errors import ParseError, SourceUnavailable
from visualclimate_pipeline.sources.csv_source import CSVSource
from visualclimate_pipeline.utils.download_cache import DownloadCache

FIXTURES = Path(__file__).parent.parent / "fixtures"


def _value(df: pl.DataFrame, iso3: str, year: int) -> float:
    return df.filter((pl.col("country_iso3") == iso3) & (pl.col("year") == year))["value"][0]


class TestLongLayout:
    @pytest.mark.asyncio
    async def test_owid_column_by_name(self, fast_retry):
        source = CSVSource(
            FIXTURES / "owid_co2_sample.csv",
            name="OWID CO2",
            country_column="iso_code",
            value_column="co2_per_capita",
            retry_policy=fast_retry,
        )
        df = await source.fetch("OWID.CO2_PER_CAPITA", None, (2000, 2023))

        # World (blank iso_code) and OWID_AFR are not countries
        assert sorted(set(df["country_iso3"].to_list())) == ["DEU", "KOR", "USA"]
        assert len(df) == 5
        assert _value(df, "KOR", 2022) == pytest.approx(11.606)

    @pytest.mark.asyncio
    async def test_multiplier_and_blank_cells(self, fast_retry):
        source = CSVSource(
            FIXTURES / "owid_co2_sample.csv",
            name="OWID",
            country_column="iso_code",
            value_column="total_ghg",
            multiplier=1000.0,
            retry_policy=fast_retry,
        )
        df = await source.fetch("EN.ATM.GHGT.KT.CE", {"KOR", "DEU"}, (2000, 2023))

        assert _value(df, "DEU", 2021) == pytest.approx(759_200.0)
        # KOR 2022 total_ghg is blank: absent, not zero
        assert df.filter((pl.col("country_iso3") == "KOR") & (pl.col("year") == 2022)).is_empty()

    @pytest.mark.asyncio
    async def test_quoted_names_with_commas_stay_in_one_field(self, fast_retry):
        source = CSVSource(
            FIXTURES / "datasets_population_sample.csv",
            name="GitHub/datasets",
            country_column="Country Code",
            year_column="Year",
            value_column="Value",
            retry_policy=fast_retry,
        )
        df = await source.fetch("SP.POP.TOTL", {"KOR", "USA"}, (2000, 2023))

        assert len(df) == 3
        assert _value(df, "KOR", 2021) == 51_769_539.0

    @pytest.mark.asyncio
    async def test_year_range_applied(self, fast_retry):
        source = CSVSource(
            FIXTURES / "owid_co2_sample.csv",
            country_column="iso_code",
            value_column="co2",
            retry_policy=fast_retry,
        )
        df = await source.fetch("OWID.CO2", None, (2022, 2022))
        assert set(df["year"].to_list()) == {2022}

    @pytest.mark.asyncio
    async def test_missing_column_is_parse_error(self, fast_retry):
        source = CSVSource(
            FIXTURES / "owid_co2_sample.csv",
            country_column="iso_code",
            value_column="does_not_exist",
            retry_policy=fast_retry,
        )
        with pytest.raises(ParseError):
            await source.fetch("X", None, (2000, 2023))

    @pytest.mark.asyncio
    async def test_missing_file_is_unavailable(self, tmp_path, fast_retry):
        source = CSVSource(tmp_path / "nope.csv", country_column="iso_code", retry_policy=fast_retry)
        with pytest.raises(SourceUnavailable):
            await source.fetch("X", None, (2000, 2023))

    def test_long_layout_requires_value_column(self):
        with pytest.raises(ValueError):
            CSVSource("x.csv", country_column="iso_code", value_column=None)


class TestWideLayout:
    @pytest.mark.asyncio
    async def test_ndgain_year_columns_unpivoted(self, fast_retry):
        source = CSVSource(
            FIXTURES / "ndgain_readiness_sample.csv",
            name="ND-GAIN",
            country_column="ISO3",
            layout="wide",
            retry_policy=fast_retry,
        )
        df = await source.fetch("NDGAIN.READINESS", None, (2021, 2022))

        # USA 2022 blank, XKX all blank
        assert len(df) == 5
        assert "XKX" not in df["country_iso3"].to_list()
        assert _value(df, "DEU", 2022) == pytest.approx(0.717)

    @pytest.mark.asyncio
    async def test_no_year_columns_in_range_is_empty(self, fast_retry):
        source = CSVSource(
            FIXTURES / "ndgain_readiness_sample.csv",
            country_column="ISO3",
            layout="wide",
            retry_policy=fast_retry,
        )
        df = await source.fetch("NDGAIN.READINESS", None, (2000, 2010))
        assert df.is_empty()


class TestRemoteCSV:
    URL = "https://csv.test/owid-co2-data.csv"

    @pytest.mark.asyncio
    async def test_shared_cache_downloads_once(self, mock_http, fast_retry):
        route = mock_http.get(self.URL).mock(
            return_value=httpx.Response(200, content=(FIXTURES / "owid_co2_sample.csv").read_bytes())
        )
        cache = DownloadCache()
        co2 = CSVSource(self.URL, country_column="iso_code", value_column="co2", cache=cache, retry_policy=fast_retry)
        ghg = CSVSource(
            self.URL, country_column="iso_code", value_column="total_ghg", cache=cache, retry_policy=fast_retry
        )

        first = await co2.fetch("OWID.CO2", None, (2000, 2023))
        second = await ghg.fetch("OWID.TOTAL_GHG", None, (2000, 2023))

        assert route.call_count == 1
        assert cache.downloads == 1
        assert not first.is_empty() and not second.is_empty()

    @pytest.mark.asyncio
    async def test_http_404_is_unavailable(self, mock_http, fast_retry):
        mock_http.get(self.URL).mock(return_value=httpx.Response(404))
        source = CSVSource(self.URL, country_column="iso_code", value_column="co2", retry_policy=fast_retry)
        with pytest.raises(SourceUnavailable):
            await source.fetch("OWID.CO2", None, (2000, 2023))
