"""
sources/csv_source.py — Remote or local CSV source adapter.

One class covers every CSV the pipeline reads; instances differ only in
configuration, decided once in the indicator catalog:

  long layout — one row per country/year with a value column:
      datasets-org  "Country Name","Country Code","Year","Value"
      OWID CO2      country,year,iso_code,...,co2_per_capita,...,total_ghg,...
      OWID energy   country,year,iso_code,...,renewables_share_elec,...
  wide layout — one row per country, one column per year:
      ND-GAIN       "ISO3","Name","1995","1996",...,"2023"

The header is read once and the required columns are resolved by name,
never by position. Fields are parsed by polars' CSV reader, so quoted
values containing the delimiter ("Korea, Rep.") stay in one field.
Everything is read as strings and cast afterwards; cells that do not
parse as numbers become absent values.

Remote files are downloaded through a DownloadCache so an OWID CSV shared
by many indicators is fetched once per run.

Usage:
    owid = CSVSource(settings.owid_co2_csv_url, name="OWID",
                     country_column="iso_code", year_column="year",
                     value_column="total_ghg", multiplier=1000)
    df = await owid.fetch("EN.ATM.GHGT.KT.CE", {"KOR"}, (2000, 2023))
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Literal

import polars as pl

from visualclimate_shared.errors import ParseError, SourceUnavailable
from visualclimate_pipeline.sources.base import BaseSource, empty_series
from visualclimate_pipeline.utils.download_cache import DownloadCache
from visualclimate_pipeline.utils.retry import RetryPolicy

CSVLayout = Literal["long", "wide"]

NULL_VALUES = ["", "..", "NA", "N/A", "nan", "NaN"]


def _is_remote(location: str) -> bool:
    return location.startswith(("http://", "https://"))


class CSVSource(BaseSource):
    """Reads one indicator out of a CSV file or URL."""

    name = "CSV"

    def __init__(
        self,
        location: str | Path,
        *,
        country_column: str,
        year_column: str | None = "year",
        value_column: str | None = "value",
        layout: CSVLayout = "long",
        multiplier: float = 1.0,
        cache: DownloadCache | None = None,
        name: str | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(name=name, retry_policy=retry_policy, timeout=timeout)
        if layout == "long" and (not year_column or not value_column):
            raise ValueError("long layout needs year_column and value_column")
        self.location = str(location)
        self.country_column = country_column
        self.year_column = year_column
        self.value_column = value_column
        self.layout = layout
        self.multiplier = multiplier
        self._cache = cache if cache is not None else DownloadCache()

    def get_metadata(self) -> dict[str, Any]:
        return {
            **super().get_metadata(),
            "location": self.location,
            "layout": self.layout,
            "value_column": self.value_column,
            "multiplier": self.multiplier,
        }

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _parse(self, payload: bytes | Path) -> pl.DataFrame:
        source: Any = io.BytesIO(payload) if isinstance(payload, bytes) else payload
        try:
            return pl.read_csv(
                source,
                infer_schema_length=0,
                null_values=NULL_VALUES,
                truncate_ragged_lines=True,
            )
        except (pl.exceptions.ComputeError, pl.exceptions.NoDataError) as exc:
            raise ParseError(self.name, f"unreadable CSV at {self.location}: {exc}") from exc

    async def _download(self) -> pl.DataFrame:
        async with self._client() as client:
            response = await self._get(client, self.location)
        self._log.info("csv_downloaded", url=self.location, bytes=len(response.content))
        return self._parse(response.content)

    async def _read_local(self) -> pl.DataFrame:
        path = Path(self.location)
        if not path.is_file():
            raise SourceUnavailable(self.name, f"file not found: {path}")
        return self._parse(path)

    async def _read_frame(self) -> pl.DataFrame:
        loader = self._download if _is_remote(self.location) else self._read_local
        return await self._cache.get_or_fetch(self.location, loader)

    # ------------------------------------------------------------------
    # Header resolution
    # ------------------------------------------------------------------

    def _require_columns(self, frame: pl.DataFrame, columns: list[str]) -> None:
        missing = [c for c in columns if c not in frame.columns]
        if missing:
            raise ParseError(
                self.name,
                f"required column(s) {missing} not in header of {self.location}",
            )

    @staticmethod
    def _year_columns(frame: pl.DataFrame, year_range: tuple[int, int]) -> list[str]:
        first, last = year_range
        return [
            c
            for c in frame.columns
            if c.strip().isdigit() and len(c.strip()) == 4 and first <= int(c) <= last
        ]

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    async def extract(self, indicator: str, year_range: tuple[int, int]) -> pl.DataFrame:
        frame = await self._read_frame()

        if self.layout == "wide":
            self._require_columns(frame, [self.country_column])
            year_cols = self._year_columns(frame, year_range)
            if not year_cols:
                self._log.warning("csv_no_year_columns", location=self.location)
                return pl.DataFrame()
            return frame.select([self.country_column, *year_cols]).unpivot(
                index=self.country_column,
                on=year_cols,
                variable_name="year",
                value_name="value",
            ).rename({self.country_column: "country"})

        year_col, value_col = str(self.year_column), str(self.value_column)
        self._require_columns(frame, [self.country_column, year_col, value_col])
        return frame.select(
            pl.col(self.country_column).alias("country"),
            pl.col(year_col).alias("year"),
            pl.col(value_col).alias("value"),
        )

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        if raw.is_empty():
            return empty_series()
        return raw.select(
            pl.col("country").str.strip_chars().alias("country_iso3"),
            pl.col("year").str.strip_chars().cast(pl.Int64, strict=False).alias("year"),
            (
                pl.col("value").str.strip_chars().cast(pl.Float64, strict=False)
                * self.multiplier
            ).alias("value"),
        )
