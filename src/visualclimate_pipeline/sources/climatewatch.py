"""
sources/climatewatch.py — Climate Watch historical emissions API adapter.

Endpoint:
  GET /v1/data/historical_emissions?gas=All GHG&sector=Total including LUCF&source=PIK&page=N&per_page=M

Response shape:
  {
    "data": [
      {"iso_code3": "KOR", "country": "South Korea", "data_source": "PIK",
       "sector": "Total including LULUCF", "gas": "All GHG", "unit": "MtCO₂e",
       "emissions": [{"year": 2000, "value": 512.3}, ...]},
      ...
    ]
  }

Each record carries a full per-year series; the emissions arrays are
flattened into one row per (country, year). Records for any other sector
(the API answers "Total including LULUCF" for the LUCF query) are skipped.
Values are MtCO2e; ``multiplier`` rescales them (1000 for kt).

Usage:
    source = ClimateWatchSource()
    df = await source.fetch("CLIMATEWATCH.TOTAL_GHG", None, (2000, 2023))
"""

from __future__ import annotations

import asyncio
from typing import Any

import polars as pl

from visualclimate_shared.config import settings
from visualclimate_shared.errors import ParseError
from visualclimate_pipeline.sources.base import BaseSource, empty_series
from visualclimate_pipeline.utils.retry import RetryPolicy

PER_PAGE = 200
MAX_PAGES = 50

DEFAULT_QUERY: dict[str, str] = {
    "gas": "All GHG",
    "sector": "Total including LUCF",
    "source": "PIK",
}

# Sector labels the total-including-land-use query comes back with
TOTAL_SECTORS = frozenset({"Total including LUCF", "Total including LULUCF"})


class ClimateWatchSource(BaseSource):
    """Total GHG per country and year from Climate Watch (PIK)."""

    name = "Climate Watch"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        multiplier: float = 1.0,
        per_page: int = PER_PAGE,
        page_delay: float | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(name=name, retry_policy=retry_policy, timeout=timeout)
        self._base_url = (base_url or settings.climatewatch_base_url).rstrip("/")
        self._multiplier = multiplier
        self._per_page = per_page
        self._page_delay = page_delay if page_delay is not None else settings.page_delay_seconds

    def get_metadata(self) -> dict[str, Any]:
        return {**super().get_metadata(), "multiplier": self._multiplier}

    def _flatten(self, record: Any) -> list[dict[str, Any]]:
        if not isinstance(record, dict) or record.get("sector") not in TOTAL_SECTORS:
            return []
        iso3 = str(record.get("iso_code3") or "").strip().upper()
        emissions = record.get("emissions")
        if not iso3 or not isinstance(emissions, list):
            return []
        return [
            {"iso_code3": iso3, "year": point.get("year"), "value": point.get("value")}
            for point in emissions
            if isinstance(point, dict)
        ]

    async def extract(self, indicator: str, year_range: tuple[int, int]) -> pl.DataFrame:
        url = f"{self._base_url}/data/historical_emissions"
        rows: list[dict[str, Any]] = []

        async with self._client() as client:
            for page in range(1, MAX_PAGES + 1):
                params = {**DEFAULT_QUERY, "page": page, "per_page": self._per_page}
                payload = await self._get_json(client, url, params)
                records = payload.get("data") if isinstance(payload, dict) else None
                if not isinstance(records, list):
                    raise ParseError(self.name, f"no data array in response (page {page})")

                for record in records:
                    rows.extend(self._flatten(record))

                self._log.debug("climatewatch_page", page=page, records=len(records))
                if len(records) < self._per_page:
                    break
                await asyncio.sleep(self._page_delay)

        if not rows:
            return pl.DataFrame()
        return pl.DataFrame(
            rows,
            schema={"iso_code3": pl.String, "year": pl.Int64, "value": pl.Float64},
            strict=False,
        )

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        if raw.is_empty():
            return empty_series()
        return raw.select(
            pl.col("iso_code3").alias("country_iso3"),
            pl.col("year"),
            pl.col("value") * self._multiplier,
        )
