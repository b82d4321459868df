"""
tests/conftest.py — Shared pytest fixtures for the pipeline test suite.

Provides:
  fixture_path()    — resolves paths to tests/fixtures/
  FakeSupabase      — in-memory stand-in for supabase.Client (tables as
                      lists of dicts, PostgREST-style query builder)
  fake_supabase     — a FakeSupabase seeded with a few countries
  loader            — SupabaseLoader bound to fake_supabase
  fast_retry        — RetryPolicy with no real sleeping
  mock_http         — configured respx router for faking HTTP responses
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import respx

from visualclimate_pipeline.loaders.supabase_loader import SupabaseLoader
from visualclimate_pipeline.utils.retry import RetryPolicy

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def fixture_path() -> Path:
    return FIXTURES_DIR


# ---------------------------------------------------------------------------
# In-memory Supabase client
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, data: list[dict[str, Any]]) -> None:
        self.data = data
        self.count = len(data)


class FakeQuery:
    """Chainable query builder covering the calls the loader makes."""

    def __init__(self, client: "FakeSupabase", table: str) -> None:
        self._client = client
        self._table = table
        self._op = "select"
        self._columns: list[str] | None = None
        self._filters: list[Callable[[dict[str, Any]], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._range: tuple[int, int] | None = None
        self._payload: Any = None
        self._conflict: list[str] = []
        self._negate = False

    # operations --------------------------------------------------------
    def select(self, columns: str = "*") -> "FakeQuery":
        self._op = "select"
        self._columns = None if columns == "*" else [c.strip() for c in columns.split(",")]
        return self

    def upsert(self, rows: list[dict[str, Any]], on_conflict: str = "") -> "FakeQuery":
        self._op = "upsert"
        self._payload = [dict(r) for r in rows]
        self._conflict = [c for c in on_conflict.split(",") if c]
        return self

    def insert(self, rows: list[dict[str, Any]]) -> "FakeQuery":
        self._op = "insert"
        self._payload = [dict(r) for r in rows]
        return self

    def update(self, patch: dict[str, Any]) -> "FakeQuery":
        self._op = "update"
        self._payload = dict(patch)
        return self

    def delete(self) -> "FakeQuery":
        self._op = "delete"
        return self

    # filters -----------------------------------------------------------
    def _add(self, predicate: Callable[[dict[str, Any]], bool]) -> "FakeQuery":
        if self._negate:
            self._negate = False
            self._filters.append(lambda r: not predicate(r))
        else:
            self._filters.append(predicate)
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda r: r.get(column) == value)

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        allowed = set(values)
        return self._add(lambda r: r.get(column) in allowed)

    def gte(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda r: r.get(column) is not None and r[column] >= value)

    def lte(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda r: r.get(column) is not None and r[column] <= value)

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        return self._add(lambda r: r.get(column) is None)

    @property
    def not_(self) -> "FakeQuery":
        self._negate = True
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order.append((column, desc))
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    # execution ---------------------------------------------------------
    def execute(self) -> FakeResponse:
        self._client.calls.append((self._table, self._op))
        failure = self._client.failures.get((self._table, self._op))
        if failure is not None:
            if callable(failure) and not isinstance(failure, Exception):
                failure = failure(self._payload)
            if failure is not None:
                raise failure

        rows = self._client.tables.setdefault(self._table, [])
        matched = [r for r in rows if all(f(r) for f in self._filters)]

        if self._op == "select":
            out = [dict(r) for r in matched]
            for column, desc in reversed(self._order):
                out.sort(
                    key=lambda r: (r.get(column) is None, r.get(column) if r.get(column) is not None else 0),
                    reverse=desc,
                )
            if self._range is not None:
                start, end = self._range
                out = out[start : end + 1]
            if self._columns is not None:
                out = [{c: r.get(c) for c in self._columns} for r in out]
            return FakeResponse(out)

        if self._op == "upsert":
            for new in self._payload:
                key = tuple(new.get(c) for c in self._conflict)
                existing = next(
                    (r for r in rows if tuple(r.get(c) for c in self._conflict) == key), None
                )
                if existing is not None and self._conflict:
                    existing.update(new)
                else:
                    rows.append(dict(new))
            return FakeResponse(self._payload)

        if self._op == "insert":
            rows.extend(dict(r) for r in self._payload)
            return FakeResponse(self._payload)

        if self._op == "update":
            for r in matched:
                r.update(self._payload)
            return FakeResponse([dict(r) for r in matched])

        if self._op == "delete":
            self._client.tables[self._table] = [r for r in rows if not any(r is m for m in matched)]
            return FakeResponse(matched)

        raise AssertionError(f"unsupported op {self._op}")


class FakeSupabase:
    """
    Minimal supabase.Client replacement.

    ``tables`` maps table name → list of row dicts. ``failures`` maps
    (table, op) → an exception to raise, or a callable taking the payload
    and returning an exception (or None to let the call through).
    """

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            k: [dict(r) for r in v] for k, v in (tables or {}).items()
        }
        self.failures: dict[tuple[str, str], Any] = {}
        self.calls: list[tuple[str, str]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.get(table, [])


COUNTRIES = [
    {"iso3": "KOR", "name": "South Korea", "region": "Asia"},
    {"iso3": "USA", "name": "United States", "region": "Americas"},
    {"iso3": "DEU", "name": "Germany", "region": "Europe"},
]


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase({"countries": COUNTRIES, "indicators": [], "country_data": []})


@pytest.fixture
def loader(fake_supabase: FakeSupabase) -> SupabaseLoader:
    return SupabaseLoader(client=fake_supabase, batch_size=2)


# ---------------------------------------------------------------------------
# Retry policy without real sleeping
# ---------------------------------------------------------------------------

@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fast_retry(sleeps: list[float]) -> RetryPolicy:
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return RetryPolicy(max_attempts=2, backoff_seconds=3.0, sleep=_sleep)


# ---------------------------------------------------------------------------
# respx HTTP mock router
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_http():
    """
    Activate the respx mock router for all httpx requests.

    Usage in tests:
        def test_something(mock_http):
            mock_http.get("https://...").mock(return_value=httpx.Response(200, json={...}))
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def make_supabase() -> type[FakeSupabase]:
    """The FakeSupabase class, for tests that seed their own tables."""
    return FakeSupabase


# ---------------------------------------------------------------------------
# Logging isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _restore_structlog_config(monkeypatch):
    """Undo any structlog.configure() a test triggers (e.g. via the CLI).

    Logger caching is disabled while tests run so that a configuration made
    by one test cannot be frozen into module-level loggers used by later
    tests (which would defeat structlog.testing.capture_logs).
    """
    import structlog

    saved = structlog.get_config()
    real_configure = structlog.configure

    def _configure_uncached(**kwargs):
        kwargs["cache_logger_on_first_use"] = False
        real_configure(**kwargs)

    monkeypatch.setattr(structlog, "configure", _configure_uncached)
    yield
    real_configure(**saved)
