"""
loaders/supabase_loader.py — Reads and idempotent writes against Supabase.

Every stage funnels its store access through this module. The loader:
  - Converts polars DataFrames to list[dict] (JSON-serialisable)
  - Batches rows to respect Supabase payload limits (500 rows by default)
  - Upserts (INSERT … ON CONFLICT DO UPDATE) on an explicit conflict key;
    the last write wins, so replaying the same rows changes nothing
  - Handles partial failures: logs the failed batch with its offset and
    continues with the rest; the LoadResult reports the damage
  - Deletes by filter before full regeneration of derived / score rows
  - Reads the countries reference table and pages through country_data

Usage:
    from visualclimate_pipeline.loaders.supabase_loader import SupabaseLoader

    loader = SupabaseLoader()
    result = await loader.upsert(
        "country_data",
        df,
        conflict_columns=["country_iso3", "indicator_code", "year"],
    )
    print(result.records_loaded, result.records_failed, result.status)
"""

from __future__ import annotations

import math
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import polars as pl
import structlog

from visualclimate_shared.config import settings
from visualclimate_shared.constants import (
    COUNTRIES_TABLE,
    INDICATOR_KEY,
    INDICATORS_TABLE,
    OBSERVATIONS_TABLE,
)
from visualclimate_shared.db import get_supabase_client
from visualclimate_shared.errors import PersistenceError
from visualclimate_shared.models.countries import CountryRecord
from visualclimate_shared.models.indicators import IndicatorDefinition

log = structlog.get_logger(__name__)

BATCH_SIZE = 500     # rows per Supabase request
PAGE_SIZE = 1000     # PostgREST default max rows per select

OBSERVATION_COLUMNS = "country_iso3,indicator_code,year,value,source"
OBSERVATION_SCHEMA: dict[str, pl.DataType] = {
    "country_iso3": pl.String,
    "indicator_code": pl.String,
    "year": pl.Int64,
    "value": pl.Float64,
    "source": pl.String,
}


@dataclass
class LoadResult:
    """Summary of a loader write operation."""

    table: str
    records_loaded: int = 0
    records_failed: int = 0
    batches_total: int = 0
    batches_failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.records_failed == 0

    @property
    def status(self) -> str:
        if self.records_failed == 0:
            return "success"
        if self.records_loaded > 0:
            return "partial_failure"
        return "failure"

    def merge(self, other: "LoadResult") -> "LoadResult":
        """Fold another result for the same table into this one."""
        self.records_loaded += other.records_loaded
        self.records_failed += other.records_failed
        self.batches_total += other.batches_total
        self.batches_failed += other.batches_failed
        self.errors.extend(other.errors)
        self.duration_ms += other.duration_ms
        return self


class SupabaseLoader:
    """
    Handles all reads and writes against the canonical store.

    Uses the service role key so RLS is bypassed for ETL writes.
    """

    def __init__(self, client: Any | None = None, batch_size: int | None = None) -> None:
        self._batch_size = batch_size or settings.upsert_batch_size or BATCH_SIZE
        self._client = client if client is not None else get_supabase_client()

    # ------------------------------------------------------------------
    # Core upsert
    # ------------------------------------------------------------------

    async def upsert(
        self,
        table: str,
        df: pl.DataFrame,
        conflict_columns: Sequence[str],
    ) -> LoadResult:
        """
        Upsert all rows from a polars DataFrame into a Supabase table.

        Null values are omitted from each dict to allow DB-level defaults.

        Args:
            table:            Target table name.
            df:               Normalized polars DataFrame.
            conflict_columns: Columns that identify uniqueness for upsert.

        Returns:
            LoadResult with counts and error list.
        """
        result = LoadResult(table=table)
        t0 = time.monotonic()

        if df.is_empty():
            log.warning("upsert_empty_dataframe", table=table)
            return result

        loader_log = log.bind(table=table, total_rows=len(df))
        loader_log.info("upsert_start")

        rows = self._to_dicts(df)

        n_batches = math.ceil(len(rows) / self._batch_size)
        result.batches_total = n_batches

        for batch_idx in range(n_batches):
            start = batch_idx * self._batch_size
            batch = rows[start : start + self._batch_size]

            try:
                self._client.table(table).upsert(
                    batch,
                    on_conflict=",".join(conflict_columns),
                ).execute()
                result.records_loaded += len(batch)
                loader_log.debug(
                    "batch_loaded",
                    batch=batch_idx + 1,
                    n_batches=n_batches,
                    batch_size=len(batch),
                )
            except Exception as exc:
                error_msg = f"Batch {batch_idx + 1}/{n_batches} (offset {start}): {exc}"
                log.error(
                    "batch_failed",
                    table=table,
                    batch=batch_idx + 1,
                    offset=start,
                    error=str(exc),
                )
                result.records_failed += len(batch)
                result.batches_failed += 1
                result.errors.append(error_msg)

        result.duration_ms = int((time.monotonic() - t0) * 1000)
        loader_log.info(
            "upsert_complete",
            records_loaded=result.records_loaded,
            records_failed=result.records_failed,
            duration_ms=result.duration_ms,
            status=result.status,
        )
        return result

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    async def delete_where(self, table: str, **filters: Any) -> int:
        """
        Delete every row matching all ``filters`` (column=value, or
        column=[values] for an IN filter).

        Returns:
            Number of rows the store reported as deleted.

        Raises:
            PersistenceError: if the delete fails or no filter is given.
        """
        if not filters:
            raise PersistenceError(f"Refusing unfiltered delete on {table}")

        query = self._client.table(table).delete()
        for column, value in filters.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                query = query.in_(column, list(value))
            else:
                query = query.eq(column, value)

        try:
            response = query.execute()
        except Exception as exc:
            log.error("delete_failed", table=table, filters=_printable(filters), error=str(exc))
            raise PersistenceError(f"Delete on {table} failed: {exc}") from exc

        deleted = len(response.data or [])
        log.info("delete_complete", table=table, filters=_printable(filters), deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _select_all(self, table: str, columns: str, apply_filters: Any = None) -> list[dict[str, Any]]:
        """Page through a select with .range() until a short page comes back."""
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            query = self._client.table(table).select(columns)
            if apply_filters is not None:
                query = apply_filters(query)
            try:
                response = query.range(offset, offset + PAGE_SIZE - 1).execute()
            except Exception as exc:
                log.error("select_failed", table=table, offset=offset, error=str(exc))
                raise PersistenceError(f"Select on {table} failed at offset {offset}: {exc}") from exc

            page = response.data or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
        return rows

    async def fetch_countries(self) -> list[CountryRecord]:
        """Return every row of the countries reference table."""
        rows = self._select_all(
            COUNTRIES_TABLE,
            "iso3,name,region",
            lambda q: q.order("iso3"),
        )
        countries: list[CountryRecord] = []
        for row in rows:
            try:
                countries.append(CountryRecord.from_db_row(row))
            except ValueError as exc:
                log.warning("country_row_invalid", row=row, error=str(exc))
        log.debug("countries_fetched", count=len(countries))
        return countries

    async def fetch_indicator_definitions(self) -> list[IndicatorDefinition]:
        rows = self._select_all(INDICATORS_TABLE, "code,name,unit,source,category", lambda q: q.order("code"))
        return [IndicatorDefinition.from_db_row(r) for r in rows]

    async def fetch_observations(
        self,
        codes: Iterable[str] | None = None,
        *,
        year_from: int | None = None,
        year_to: int | None = None,
        include_nulls: bool = False,
    ) -> pl.DataFrame:
        """
        Read country_data rows as a DataFrame, newest year first.

        Args:
            codes:         Indicator codes to read (None reads every code).
            year_from:     Inclusive lower year bound.
            year_to:       Inclusive upper year bound.
            include_nulls: Keep rows whose value is null (QA only).
        """
        code_list = sorted(set(codes)) if codes is not None else None

        def apply_filters(query: Any) -> Any:
            if code_list is not None:
                query = query.in_("indicator_code", code_list)
            if year_from is not None:
                query = query.gte("year", year_from)
            if year_to is not None:
                query = query.lte("year", year_to)
            if not include_nulls:
                query = query.not_.is_("value", "null")
            return (
                query.order("year", desc=True)
                .order("indicator_code")
                .order("country_iso3")
            )

        rows = self._select_all(OBSERVATIONS_TABLE, OBSERVATION_COLUMNS, apply_filters)
        log.debug("observations_fetched", codes=code_list, rows=len(rows))
        if not rows:
            return pl.DataFrame(schema=OBSERVATION_SCHEMA)
        return pl.DataFrame(
            [{k: r.get(k) for k in OBSERVATION_SCHEMA} for r in rows],
            schema=OBSERVATION_SCHEMA,
            strict=False,
        )

    # ------------------------------------------------------------------
    # Indicator catalog
    # ------------------------------------------------------------------

    async def ensure_indicators(self, definitions: Iterable[IndicatorDefinition]) -> LoadResult:
        """
        Make sure every definition exists in the indicators table.

        New codes are inserted; existing codes only get their missing
        (null/empty) metadata fields filled in. Nothing is ever deleted and
        populated fields are never overwritten.
        """
        wanted = {d.code: d for d in definitions}
        existing = {d.code: d for d in await self.fetch_indicator_definitions()}

        new_rows = [d.model_dump() for code, d in wanted.items() if code not in existing]
        result = LoadResult(table=INDICATORS_TABLE)
        if new_rows:
            result = await self.upsert(
                INDICATORS_TABLE, pl.DataFrame(new_rows), conflict_columns=INDICATOR_KEY
            )

        backfilled = 0
        for code, definition in wanted.items():
            current = existing.get(code)
            if current is None:
                continue
            patch = {
                k: v
                for k, v in definition.to_insert_dict().items()
                if k != "code" and v and not getattr(current, k)
            }
            if not patch:
                continue
            try:
                self._client.table(INDICATORS_TABLE).update(patch).eq("code", code).execute()
                backfilled += 1
            except Exception as exc:
                log.error("indicator_backfill_failed", code=code, error=str(exc))
                result.errors.append(f"{code}: {exc}")

        log.info(
            "indicators_ensured",
            inserted=result.records_loaded,
            backfilled=backfilled,
            unchanged=len(wanted) - len(new_rows) - backfilled,
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_dicts(df: pl.DataFrame) -> list[dict[str, Any]]:
        """Convert a DataFrame to JSON-serialisable dicts with nulls stripped."""
        return [{k: v for k, v in row.items() if v is not None} for row in df.to_dicts()]



def _printable(filters: dict[str, Any]) -> dict[str, Any]:
    return {k: (sorted(v) if isinstance(v, (set, frozenset)) else v) for k, v in filters.items()}
