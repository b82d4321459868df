"""
sources/fallback.py — Ordered fallback over source adapters for one indicator.

For indicator I with adapters [A1, A2, ..., An] the chain awaits A1; if it
raises or returns no rows it moves to A2, and so on. The first adapter that
returns at least one row wins and its name is stamped on every record as
the ``source`` column. Adapters are never raced: provenance depends on
knowing which one answered first.

When the list is exhausted the result carries ``source = "NONE"`` and a
NoDataAvailable error instead of raising, so one missing indicator never
halts the run.

Usage:
    chain = FallbackChain("SP.POP.TOTL", [wdi, datasets_population])
    result = await chain.run(countries, (2000, 2023), skip={"WDI"})
    result.source        # "GitHub/datasets"
    result.records       # country_iso3, indicator_code, year, value, source
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal

import polars as pl
import structlog

from visualclimate_shared.constants import SOURCE_NONE
from visualclimate_shared.errors import NoDataAvailable, SourceError
from visualclimate_pipeline.sources.base import BaseSource

log = structlog.get_logger(__name__)

AttemptOutcome = Literal["ok", "empty", "failed", "skipped"]

RECORD_SCHEMA: dict[str, pl.DataType] = {
    "country_iso3": pl.String,
    "indicator_code": pl.String,
    "year": pl.Int64,
    "value": pl.Float64,
    "source": pl.String,
}


@dataclass
class FallbackAttempt:
    """What happened when one adapter was tried."""

    source: str
    outcome: AttemptOutcome
    rows: int = 0
    error: str | None = None


@dataclass
class FallbackResult:
    """Outcome of a fallback chain for one indicator."""

    indicator: str
    source: str = SOURCE_NONE
    records: pl.DataFrame = field(default_factory=lambda: pl.DataFrame(schema=RECORD_SCHEMA))
    attempts: list[FallbackAttempt] = field(default_factory=list)
    error: NoDataAvailable | None = None

    @property
    def found(self) -> bool:
        return self.source != SOURCE_NONE

    @property
    def fell_back(self) -> bool:
        """True when the winning adapter was not the first one configured."""
        return self.found and bool(self.attempts) and self.attempts[0].source != self.source

    def summary(self) -> dict[str, object]:
        return {
            "indicator": self.indicator,
            "source": self.source,
            "rows": len(self.records),
            "countries": self.records["country_iso3"].n_unique() if len(self.records) else 0,
            "attempts": [f"{a.source}:{a.outcome}" for a in self.attempts],
        }


class FallbackChain:
    """An indicator code plus the ordered adapters that can supply it."""

    def __init__(self, indicator: str, adapters: Sequence[BaseSource]) -> None:
        if not adapters:
            raise ValueError(f"No adapters configured for {indicator}")
        self.indicator = indicator
        self.adapters = list(adapters)

    @property
    def source_names(self) -> list[str]:
        return [a.name for a in self.adapters]

    async def run(
        self,
        countries: Iterable[str] | None,
        year_range: tuple[int, int],
        *,
        skip: Collection[str] = (),
    ) -> FallbackResult:
        """
        Try each adapter in order until one returns rows.

        Args:
            countries:  ISO3 codes to keep (None keeps all).
            year_range: Inclusive (first, last) year bound.
            skip:       Adapter names known to be down for this run.

        Returns:
            FallbackResult; ``source == "NONE"`` when every adapter failed or came back empty.
        """
        chain_log = log.bind(indicator=self.indicator)
        result = FallbackResult(indicator=self.indicator)
        country_list = sorted(set(countries)) if countries is not None else None

        for adapter in self.adapters:
            if adapter.name in skip:
                result.attempts.append(FallbackAttempt(adapter.name, "skipped"))
                chain_log.debug("fallback_adapter_skipped", source=adapter.name)
                continue

            try:
                series = await adapter.fetch(self.indicator, country_list, year_range)
            except SourceError as exc:
                result.attempts.append(FallbackAttempt(adapter.name, "failed", error=str(exc)))
                chain_log.warning("fallback_adapter_failed", source=adapter.name, error=str(exc))
                continue
            except Exception as exc:
                result.attempts.append(
                    FallbackAttempt(adapter.name, "failed", error=f"{type(exc).__name__}: {exc}")
                )
                chain_log.error(
                    "fallback_adapter_crashed",
                    source=adapter.name,
                    error=str(exc),
                    exc_info=True,
                )
                continue

            if series.is_empty():
                result.attempts.append(FallbackAttempt(adapter.name, "empty"))
                chain_log.info("fallback_adapter_empty", source=adapter.name)
                continue

            result.attempts.append(FallbackAttempt(adapter.name, "ok", rows=len(series)))
            result.source = adapter.name
            result.records = series.with_columns(
                pl.lit(self.indicator).alias("indicator_code"),
                pl.lit(adapter.name).alias("source"),
            ).select(list(RECORD_SCHEMA))
            chain_log.info(
                "fallback_source_used",
                source=adapter.name,
                rows=len(series),
                fell_back=result.fell_back,
            )
            return result

        result.error = NoDataAvailable(
            f"{self.indicator}: no data from any of {self.source_names}"
        )
        chain_log.warning("fallback_exhausted", tried=self.source_names)
        return result
