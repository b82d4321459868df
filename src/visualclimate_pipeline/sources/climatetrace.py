"""
sources/climatetrace.py — Climate TRACE v7 rankings API source adapter.

Endpoint:
  GET /v7/rankings/countries?sector={sector}&size=300&page=N

Response shape:
  {
    "totals":   {"gas": "co2e_100yr", "emissionsQuantity": ..., "start": "2024-01-01", "end": "..."},
    "rankings": [{"rank": 1, "country": "CHN", "emissionsQuantity": 5.1e9, ...}, ...]
  }

The API only serves the latest available year; it is read from
totals.start. When that year lies outside the requested range (a new
snapshot year ahead of the configured score year) every row is filtered
out and a warning names the year; raise SCORE_YEAR to admit it. Pages
are requested until a short or empty one comes back.
Quantities for the same country within a sector are summed.

Sectors and indicator codes:
  power                  → CTRACE.POWER
  manufacturing          → CTRACE.MANUFACTURING
  transportation         → CTRACE.TRANSPORTATION
  agriculture            → CTRACE.AGRICULTURE
  fossil_fuel_operations → CTRACE.FOSSIL_FUEL_OPERATIONS
  buildings              → CTRACE.BUILDINGS
  waste                  → CTRACE.WASTE
  forestry_and_land_use  → CTRACE.FORESTRY_AND_LAND_USE
  mineral_extraction     → CTRACE.MINERAL_EXTRACTION

Usage:
    source = ClimateTraceSource(sector="power")
    df = await source.fetch("CTRACE.POWER", None, (2000, 2024))
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any

import polars as pl

from visualclimate_shared.config import settings
from visualclimate_shared.errors import ParseError
from visualclimate_pipeline.sources.base import BaseSource, empty_series
from visualclimate_pipeline.utils.retry import RetryPolicy

PAGE_SIZE = 300
MAX_PAGES = 50
PAGE_DELAY_SECONDS = 0.3

SECTOR_INDICATOR_MAP: dict[str, str] = {
    "power": "CTRACE.POWER",
    "manufacturing": "CTRACE.MANUFACTURING",
    "transportation": "CTRACE.TRANSPORTATION",
    "agriculture": "CTRACE.AGRICULTURE",
    "fossil_fuel_operations": "CTRACE.FOSSIL_FUEL_OPERATIONS",
    "buildings": "CTRACE.BUILDINGS",
    "waste": "CTRACE.WASTE",
    "forestry_and_land_use": "CTRACE.FORESTRY_AND_LAND_USE",
    "mineral_extraction": "CTRACE.MINERAL_EXTRACTION",
}

CTRACE_TOTAL = "CTRACE.TOTAL"


class ClimateTraceSource(BaseSource):
    """Country emissions for one Climate TRACE sector (latest year only)."""

    name = "Climate TRACE"

    def __init__(
        self,
        sector: str,
        *,
        base_url: str | None = None,
        page_size: int = PAGE_SIZE,
        page_delay: float = PAGE_DELAY_SECONDS,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        if sector not in SECTOR_INDICATOR_MAP:
            raise ValueError(f"Unknown Climate TRACE sector: {sector!r}")
        super().__init__(retry_policy=retry_policy, timeout=timeout)
        self.sector = sector
        self._base_url = (base_url or settings.climatetrace_base_url).rstrip("/")
        self._page_size = page_size
        self._page_delay = page_delay

    def get_metadata(self) -> dict[str, Any]:
        return {**super().get_metadata(), "sector": self.sector}

    @staticmethod
    def _data_year(payload: dict[str, Any]) -> int:
        start = (payload.get("totals") or {}).get("start")
        if isinstance(start, str) and len(start) >= 4 and start[:4].isdigit():
            return int(start[:4])
        return date.today().year

    async def extract(self, indicator: str, year_range: tuple[int, int]) -> pl.DataFrame:
        url = f"{self._base_url}/rankings/countries"
        rows: list[dict[str, Any]] = []
        year = date.today().year

        async with self._client() as client:
            for page in range(1, MAX_PAGES + 1):
                params = {"sector": self.sector, "size": self._page_size, "page": page}
                payload = await self._get_json(client, url, params)
                if not isinstance(payload, dict):
                    raise ParseError(self.name, f"unexpected payload shape from {url}")

                year = self._data_year(payload)
                rankings = payload.get("rankings") or []
                if not isinstance(rankings, list):
                    raise ParseError(self.name, f"rankings is not a list ({self.sector} p{page})")

                for entry in rankings:
                    if not isinstance(entry, dict):
                        continue
                    quantity = entry.get("emissionsQuantity")
                    if not isinstance(quantity, (int, float)) or isinstance(quantity, bool):
                        continue
                    rows.append(
                        {
                            "country": str(entry.get("country") or "").strip().upper(),
                            "year": year,
                            "emissions_quantity": float(quantity),
                        }
                    )

                self._log.debug(
                    "climatetrace_page",
                    sector=self.sector,
                    page=page,
                    rankings=len(rankings),
                )
                if len(rankings) < self._page_size:
                    break
                await asyncio.sleep(self._page_delay)

        first, last = year_range
        if rows and not first <= year <= last:
            self._log.warning(
                "climatetrace_year_out_of_range",
                sector=self.sector,
                data_year=year,
                year_range=[first, last],
                countries=len(rows),
            )

        if not rows:
            return pl.DataFrame()
        return pl.DataFrame(rows)

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        if raw.is_empty():
            return empty_series()
        return (
            raw.group_by(["country", "year"], maintain_order=True)
            .agg(pl.col("emissions_quantity").sum().alias("value"))
            .rename({"country": "country_iso3"})
            .select(["country_iso3", "year", "value"])
        )
