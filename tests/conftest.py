"""
Shared fixtures: an in-process engine adapter and ready-made profiles.
"""
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import pytest

from multibench.adapters import EngineAdapter
from multibench.catalog import QueryCatalog, query_from_dict
from multibench.config import BenchmarkConfig
from multibench.models import Dialect, EngineProfile


class FakeDriverError(Exception):
    pass


@dataclass
class FakeEngine:
    """Scripted behaviour of one engine."""
    rows: List[tuple] = field(default_factory=lambda: [(1,)])
    delay: float = 0.002
    error: Optional[str] = None
    unreachable: bool = False
    table_rows: int = 1000
    on_query: Optional[Callable[[str], None]] = None
    statements: List[str] = field(default_factory=list)
    opened: int = 0
    closed: int = 0
    aborted: int = 0
    in_flight: int = 0
    max_in_flight: int = 0
    query_timeout: Optional[float] = None


class FakeConnection:
    def __init__(self, engine_name: str):
        self.engine_name = engine_name
        self.closed = False
        self.cancel_event = threading.Event()


class FakeAdapter(EngineAdapter):
    """Adapter backed by FakeEngine scripts keyed by engine name."""

    driver_errors = (FakeDriverError,)

    def __init__(self, dialect: Dialect, engines: Dict[str, FakeEngine]):
        self.dialect = dialect
        self.engines = engines
        self._lock = threading.Lock()

    def _open(self, profile, timeout, query_timeout):
        engine = self.engines[profile.name]
        if engine.unreachable:
            raise OSError("connection refused")
        with self._lock:
            engine.opened += 1
            engine.query_timeout = query_timeout
        return FakeConnection(profile.name)

    def _close(self, conn):
        if not conn.closed:
            conn.closed = True
            with self._lock:
                self.engines[conn.engine_name].closed += 1

    def _force_close(self, conn):
        conn.cancel_event.set()
        with self._lock:
            self.engines[conn.engine_name].aborted += 1
        self._close(conn)

    def _fetch(self, conn, sql, timeout):
        engine = self.engines[conn.engine_name]
        with self._lock:
            engine.statements.append(sql)
            engine.in_flight += 1
            engine.max_in_flight = max(engine.max_in_flight, engine.in_flight)
        try:
            if sql.startswith("EXPLAIN"):
                return [("Seq Scan on table",), ("  Filter: true",)]
            if "count(*)" in sql:
                return [(engine.table_rows,)]
            if engine.on_query:
                engine.on_query(sql)
            if engine.error:
                raise FakeDriverError(engine.error)
            # Returns early when the connection is force-closed
            conn.cancel_event.wait(engine.delay)
            if conn.cancel_event.is_set():
                raise FakeDriverError("connection closed")
            return list(engine.rows)
        finally:
            with self._lock:
                engine.in_flight -= 1

    def _explain_sql(self, sql, analyze):
        return f"EXPLAIN {sql}"


ENGINE_NAMES = ("clickhouse", "cedardb", "postgres_heap", "postgres_fdw")


def make_profiles() -> List[EngineProfile]:
    return [
        EngineProfile(name="clickhouse", dialect="clickhouse", table="uk_price_paid",
                      connection={"host": "ch", "port": 8123}),
        EngineProfile(name="cedardb", dialect="cedar", table="uk_price_paid",
                      connection={"host": "cedar", "port": 5433}),
        EngineProfile(name="postgres_heap", dialect="postgres", table="uk_price_paid_pg",
                      connection={"host": "pg", "port": 5432}),
        EngineProfile(name="postgres_fdw", dialect="postgres", table="uk_price_paid",
                      connection={"host": "pg", "port": 5432}),
    ]


def make_query(query_id="q_count", **extra) -> dict:
    query = {
        "id": query_id,
        "description": "Transactions per type",
        "variants": {
            "postgres": "SELECT type, COUNT(*) FROM {table} GROUP BY type ORDER BY type",
            "cedar": "SELECT type, COUNT(*) FROM {table} GROUP BY type ORDER BY type",
            "clickhouse": "SELECT type, count() FROM {table} GROUP BY type ORDER BY toString(type)",
        },
    }
    query.update(extra)
    return query


@pytest.fixture
def profiles():
    return make_profiles()


@pytest.fixture
def fake_engines():
    return {name: FakeEngine(rows=[("detached", 500), ("flat", 500)]) for name in ENGINE_NAMES}


@pytest.fixture
def adapters(fake_engines):
    return {dialect: FakeAdapter(dialect, fake_engines) for dialect in Dialect}


@pytest.fixture
def config(profiles):
    return BenchmarkConfig(engines=tuple(profiles), timeout=5.0, connect_timeout=1.0)


@pytest.fixture
def catalog():
    return QueryCatalog([query_from_dict(make_query())])
