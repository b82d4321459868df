"""
sources/base.py — Abstract base class for all source adapters.

Each concrete adapter implements:
  extract()      — fetch the raw payload for one indicator, return a polars DataFrame
  transform()    — reduce the raw frame to the canonical (country_iso3, year, value) series
  get_metadata() — describe the adapter for run summaries

fetch() is the single entry point the fallback chain uses: it runs
extract → transform, applies the shared country/year/value filters, and
times and logs the whole thing. An empty frame is a valid "no data"
outcome; failures surface as SourceUnavailable or ParseError.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

import httpx
import polars as pl
import structlog

from visualclimate_shared.config import settings
from visualclimate_shared.constants import ISO3_PATTERN, SERIES_COLUMNS
from visualclimate_shared.errors import ParseError, SourceUnavailable
from visualclimate_pipeline.utils.retry import RetryPolicy

log = structlog.get_logger(__name__)

SERIES_SCHEMA: dict[str, pl.DataType] = {
    "country_iso3": pl.String,
    "year": pl.Int64,
    "value": pl.Float64,
}


def empty_series() -> pl.DataFrame:
    """A zero-row frame with the canonical series schema."""
    return pl.DataFrame(schema=SERIES_SCHEMA)


class BaseSource(ABC):
    """Abstract base for every VisualClimate source adapter."""

    # Override in subclass; used as the provenance label on stored rows
    name: str = "unknown"

    def __init__(
        self,
        *,
        name: str | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        if name is not None:
            self.name = name
        self._retry = retry_policy or RetryPolicy.from_settings()
        self._timeout = timeout if timeout is not None else settings.request_timeout
        self._log = log.bind(source_name=self.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    async def extract(self, indicator: str, year_range: tuple[int, int]) -> pl.DataFrame:
        """
        Fetch the raw rows for one indicator.

        Raises:
            SourceUnavailable: upstream unreachable, HTTP error, file missing.
            ParseError:        upstream answered with something unreadable.
        """
        ...

    @abstractmethod
    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        """Reduce a raw frame to country_iso3 / year / value columns."""
        ...

    def get_metadata(self) -> dict[str, Any]:
        return {"source_name": self.name, "adapter": type(self).__name__}

    # ------------------------------------------------------------------
    # Orchestration: the fallback chain calls this
    # ------------------------------------------------------------------

    async def fetch(
        self,
        indicator: str,
        countries: Iterable[str] | None,
        year_range: tuple[int, int],
    ) -> pl.DataFrame:
        """
        Extract + transform + filter with timing and structured logging.

        Args:
            indicator:  Canonical indicator code being ingested.
            countries:  ISO3 codes to keep (None keeps every valid ISO3 code).
            year_range: Inclusive (first, last) year bound.

        Returns:
            DataFrame with columns country_iso3, year, value; possibly empty.
        """
        fetch_log = self._log.bind(indicator=indicator, year_range=list(year_range))
        fetch_log.debug("source_fetch_start")

        t0 = time.monotonic()
        try:
            raw = await self.extract(indicator, year_range)
            result = self.transform(raw) if not raw.is_empty() else empty_series()
            result = filter_series(result, countries, year_range)
        except (SourceUnavailable, ParseError) as exc:
            fetch_log.warning(
                "source_fetch_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                duration_ms=int((time.monotonic() - t0) * 1000),
            )
            raise

        fetch_log.info(
            "source_fetch_complete",
            rows=len(result),
            countries=result["country_iso3"].n_unique(),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return result

    # ------------------------------------------------------------------
    # HTTP helpers shared by the API and remote CSV adapters
    # ------------------------------------------------------------------

    async def _get(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """GET under the retry policy; HTTP and transport errors become SourceUnavailable."""

        async def _once() -> httpx.Response:
            try:
                response = await client.get(url, params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise SourceUnavailable(
                    self.name, f"HTTP {exc.response.status_code} for {url}"
                ) from exc
            except httpx.HTTPError as exc:
                raise SourceUnavailable(self.name, f"{type(exc).__name__} for {url}: {exc}") from exc
            return response

        return await self._retry.call(_once)

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._get(client, url, params)
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(self.name, f"invalid JSON from {url}") from exc

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            headers={"Accept": "application/json, text/csv;q=0.9, */*;q=0.8"},
        )


def filter_series(
    df: pl.DataFrame,
    countries: Iterable[str] | None,
    year_range: tuple[int, int],
) -> pl.DataFrame:
    """
    Apply the shared record rules to a canonical series.

    Keeps rows whose country is an uppercase ISO3 code (and in ``countries``
    when given), whose year lies in ``year_range`` and whose value is a
    finite number. Duplicate (country, year) pairs keep the first row.
    """
    if df.is_empty():
        return empty_series()

    first, last = year_range
    df = df.select(
        pl.col("country_iso3").cast(pl.String).str.strip_chars(),
        pl.col("year").cast(pl.Int64, strict=False),
        pl.col("value").cast(pl.Float64, strict=False),
    )
    df = df.filter(
        pl.col("country_iso3").str.contains(ISO3_PATTERN)
        & pl.col("year").is_between(first, last)
        & pl.col("value").is_not_null()
        & pl.col("value").is_finite()
    )
    if countries is not None:
        df = df.filter(pl.col("country_iso3").is_in(sorted(set(countries))))

    return df.unique(subset=["country_iso3", "year"], keep="first", maintain_order=True).select(
        SERIES_COLUMNS
    )
