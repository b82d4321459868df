"""
sources/worldbank.py — World Bank WDI API source adapter.

Endpoint:
  GET /v2/country/all/indicator/{code}?format=json&date=2000:2023&per_page=500&page=N

Response shape (a two-element JSON array):
  [
    {"page": 1, "pages": 4, "per_page": 500, "total": 1734},
    [
      {"countryiso3code": "KOR", "date": "2022", "value": 11.6, ...},
      ...
    ]
  ]

Aggregates (regions, income groups) come back with a blank or non-country
countryiso3code and are dropped by the shared ISO3 filter. A missing or
null value means "absent", not zero.

An error payload ``[{"message": [...]}]`` is a ParseError.

Usage:
    source = WorldBankSource()
    df = await source.fetch("NY.GDP.PCAP.CD", {"KOR", "USA"}, (2000, 2023))
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import polars as pl

from visualclimate_shared.config import settings
from visualclimate_shared.constants import POPULATION
from visualclimate_shared.errors import ParseError, SourceUnavailable
from visualclimate_pipeline.sources.base import BaseSource, empty_series
from visualclimate_pipeline.utils.retry import RetryPolicy

PER_PAGE = 500
MAX_PAGES = 200


class WorldBankSource(BaseSource):
    """Pulls one WDI indicator for every country, page by page."""

    name = "WDI"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        per_page: int = PER_PAGE,
        page_delay: float | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(name=name, retry_policy=retry_policy, timeout=timeout)
        self._base_url = (base_url or settings.worldbank_base_url).rstrip("/")
        self._per_page = per_page
        self._page_delay = settings.page_delay_seconds if page_delay is None else page_delay

    def _indicator_url(self, indicator: str, country: str = "all") -> str:
        return f"{self._base_url}/country/{country}/indicator/{indicator}"

    # ------------------------------------------------------------------
    # Health probe
    # ------------------------------------------------------------------

    async def probe(self) -> bool:
        """
        One cheap request against the API (US population, single year).

        Returns True when the API answers with a JSON page (after the
        policy's retry). Used once per run to skip WDI for every indicator
        when it is down.
        """
        url = self._indicator_url(POPULATION, country="US")
        params = {"format": "json", "date": "2023:2023", "per_page": 1}
        try:
            async with self._client() as client:
                payload = await self._get_json(client, url, params)
        except (SourceUnavailable, ParseError) as exc:
            self._log.warning("worldbank_probe_failed", error=str(exc))
            return False

        healthy = isinstance(payload, list)
        self._log.info("worldbank_probe", healthy=healthy)
        return healthy

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _parse_page(self, payload: Any, url: str) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        """Split a WDI page into (meta, records)."""
        if not isinstance(payload, list) or not payload:
            raise ParseError(self.name, f"unexpected payload shape from {url}")
        meta = payload[0]
        if not isinstance(meta, dict):
            raise ParseError(self.name, f"unexpected page header from {url}")
        if "message" in meta:
            raise ParseError(self.name, f"API error from {url}: {meta['message']}")
        records = payload[1] if len(payload) > 1 and payload[1] is not None else []
        if not isinstance(records, list):
            raise ParseError(self.name, f"unexpected record list from {url}")
        return meta, records

    async def _fetch_pages(
        self, indicator: str, year_range: tuple[int, int]
    ) -> list[dict[str, Any]]:
        url = self._indicator_url(indicator)
        first, last = year_range
        rows: list[dict[str, Any]] = []

        async with self._client() as client:
            for page in range(1, MAX_PAGES + 1):
                params = {
                    "format": "json",
                    "date": f"{first}:{last}",
                    "per_page": self._per_page,
                    "page": page,
                }
                payload = await self._get_json(client, url, params)
                meta, records = self._parse_page(payload, url)
                rows.extend(records)

                total_pages = int(meta.get("pages") or 1)
                self._log.debug(
                    "worldbank_page",
                    indicator=indicator,
                    page=page,
                    pages=total_pages,
                    records=len(records),
                )
                if len(records) < self._per_page or page >= total_pages:
                    break
                await asyncio.sleep(self._page_delay)

        return rows

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    async def extract(self, indicator: str, year_range: tuple[int, int]) -> pl.DataFrame:
        records = await self._fetch_pages(indicator, year_range)
        if not records:
            self._log.warning("worldbank_no_records", indicator=indicator)
            return pl.DataFrame()

        flat = [
            {
                "countryiso3code": rec.get("countryiso3code"),
                "date": rec.get("date"),
                "value": rec.get("value"),
            }
            for rec in records
            if isinstance(rec, dict)
        ]
        return pl.DataFrame(
            flat,
            schema={"countryiso3code": pl.String, "date": pl.String, "value": pl.Float64},
            strict=False,
        )

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        if raw.is_empty():
            return empty_series()
        return raw.select(
            pl.col("countryiso3code").alias("country_iso3"),
            pl.col("date").str.slice(0, 4).cast(pl.Int64, strict=False).alias("year"),
            pl.col("value"),
        )
