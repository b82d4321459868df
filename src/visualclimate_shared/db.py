"""
db.py — Supabase and DuckDB client singletons.

Usage:
    from visualclimate_shared.db import get_supabase_client, get_duckdb_connection

    supabase = get_supabase_client()   # service role key (pipeline writes)
    duck = get_duckdb_connection()     # download staging cache
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

import duckdb
import structlog
from supabase import Client, create_client

from visualclimate_shared.config import settings

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Supabase: one service-role client per process (thread-safe via lock)
# ---------------------------------------------------------------------------
_supabase_lock = threading.Lock()
_supabase_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Return the singleton Supabase client authenticated with the service role.

    Raises:
        ConfigurationError: if SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is unset.
    """
    global _supabase_client

    with _supabase_lock:
        if _supabase_client is None:
            settings.require_store_credentials()
            _supabase_client = create_client(
                settings.supabase_url,
                settings.supabase_service_role_key,
            )
            logger.info("supabase_client_created", url=settings.supabase_url)
        return _supabase_client


def reset_supabase_client() -> None:
    """Reset the singleton client (useful in tests)."""
    global _supabase_client
    with _supabase_lock:
        _supabase_client = None


# ---------------------------------------------------------------------------
# DuckDB: single connection per process
# ---------------------------------------------------------------------------
_duckdb_lock = threading.Lock()
_duckdb_conn: Optional[duckdb.DuckDBPyConnection] = None


def get_duckdb_connection(path: str | None = None) -> duckdb.DuckDBPyConnection:
    """
    Return a singleton DuckDB connection to the staging database.

    The file path defaults to settings.duckdb_path; ":memory:" is accepted.
    Parent directories are created when missing.
    """
    global _duckdb_conn

    with _duckdb_lock:
        if _duckdb_conn is None:
            db_path = path or settings.duckdb_path
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            _duckdb_conn = duckdb.connect(db_path)
            logger.info("duckdb_connected", path=db_path)

        return _duckdb_conn


def reset_duckdb_connection() -> None:
    """Reset the DuckDB singleton (useful in tests)."""
    global _duckdb_conn
    with _duckdb_lock:
        if _duckdb_conn is not None:
            _duckdb_conn.close()
            _duckdb_conn = None
