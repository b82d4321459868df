"""
utils/download_cache.py — Run-scoped cache for downloaded CSV frames.

Dozens of indicators are read from the same OWID CSV. The cache makes sure
each URL is downloaded and parsed once per run: the first caller fetches
while concurrent callers for the same URL wait on a per-URL asyncio.Lock
and then reuse the frame.

With ``max_age_hours > 0`` the raw frame is also staged in DuckDB
(one table per URL plus a metadata table holding the download time), so a
rerun within that window skips the download entirely.

Usage:
    cache = DownloadCache(max_age_hours=settings.csv_cache_hours)
    df = await cache.get_or_fetch(url, lambda: download_and_parse(url))
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from collections.abc import Awaitable, Callable

import duckdb
import polars as pl
import structlog

from visualclimate_shared.db import get_duckdb_connection

log = structlog.get_logger(__name__)

META_TABLE = "visualclimate_cache_meta"


class DownloadCache:
    """Per-run memo of downloaded frames, optionally backed by DuckDB staging."""

    def __init__(
        self,
        *,
        max_age_hours: float = 0.0,
        connection: duckdb.DuckDBPyConnection | None = None,
    ) -> None:
        self._frames: dict[str, pl.DataFrame] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._max_age_hours = max_age_hours
        self._conn = connection
        self.downloads = 0

    def __len__(self) -> int:
        return len(self._frames)

    def __contains__(self, key: object) -> bool:
        return key in self._frames

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[pl.DataFrame]],
    ) -> pl.DataFrame:
        """Return the cached frame for ``key``, calling ``fetch`` at most once."""
        async with self._lock(key):
            cached = self._frames.get(key)
            if cached is not None:
                log.debug("download_cache_hit", key=key)
                return cached

            staged = self._load_staged(key)
            if staged is not None:
                self._frames[key] = staged
                return staged

            frame = await fetch()
            self.downloads += 1
            self._frames[key] = frame
            self._stage(key, frame)
            return frame

    def clear(self) -> None:
        self._frames.clear()
        self._locks.clear()

    # ------------------------------------------------------------------
    # DuckDB staging
    # ------------------------------------------------------------------

    @property
    def _staging_enabled(self) -> bool:
        return self._max_age_hours > 0

    def _connection(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            self._conn = get_duckdb_connection()
        return self._conn

    @staticmethod
    def _staging_table(key: str) -> str:
        return "csv_raw_" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]

    def _load_staged(self, key: str) -> pl.DataFrame | None:
        if not self._staging_enabled:
            return None
        try:
            duck = self._connection()
            duck.execute(
                f"CREATE TABLE IF NOT EXISTS {META_TABLE} "
                "(cache_key TEXT PRIMARY KEY, table_name TEXT, downloaded_at DOUBLE)"
            )
            row = duck.execute(
                f"SELECT table_name, downloaded_at FROM {META_TABLE} WHERE cache_key = ?",
                [key],
            ).fetchone()
            if row is None:
                return None
            table_name, downloaded_at = row
            age_hours = (time.time() - downloaded_at) / 3600
            if age_hours >= self._max_age_hours:
                log.debug("download_cache_stale", key=key, age_hours=round(age_hours, 1))
                return None
            frame = duck.execute(f"SELECT * FROM {table_name}").pl()
        except duckdb.Error as exc:
            log.warning("download_cache_read_failed", key=key, error=str(exc))
            return None

        log.info("download_cache_staged_hit", key=key, rows=len(frame), age_hours=round(age_hours, 1))
        return frame

    def _stage(self, key: str, frame: pl.DataFrame) -> None:
        if not self._staging_enabled:
            return
        table_name = self._staging_table(key)
        try:
            duck = self._connection()
            duck.register("_tmp_download", frame)
            duck.execute(f"CREATE OR REPLACE TABLE {table_name} AS SELECT * FROM _tmp_download")
            duck.unregister("_tmp_download")
            duck.execute(
                f"INSERT INTO {META_TABLE} (cache_key, table_name, downloaded_at) VALUES (?, ?, ?) "
                "ON CONFLICT (cache_key) DO UPDATE SET "
                "table_name = excluded.table_name, downloaded_at = excluded.downloaded_at",
                [key, table_name, time.time()],
            )
        except duckdb.Error as exc:
            log.warning("download_cache_stage_failed", key=key, error=str(exc))
            return
        log.debug("download_cache_staged", key=key, table=table_name, rows=len(frame))
