#!/usr/bin/env python3
"""
Engine adapter interface.

An adapter wraps one database driver and its dialect quirks. Adapters are
stateless; every call receives the connection it operates on, so a
connection is only ever owned by the run that opened it.
"""
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import EngineConnectionError, QueryError, QueryTimeout
from ..models import Dialect, EngineProfile

logger = logging.getLogger('engine_adapter')


@dataclass(frozen=True)
class QueryOutcome:
    """Rows returned by a statement and its wall-clock duration."""
    rows: List[tuple]
    duration_ms: float

    @property
    def row_count(self) -> int:
        return len(self.rows)


class EngineAdapter(ABC):
    """Abstract base class for engine adapters."""

    dialect: Dialect = None
    # Driver exception types translated to QueryError at the boundary
    driver_errors: Tuple[type, ...] = ()

    @abstractmethod
    def _open(self, profile: EngineProfile, timeout: float, query_timeout: Optional[float]) -> Any:
        """Open a driver connection and check that it answers.

        `query_timeout` is the longest statement the connection will run;
        transport read timeouts must not fire before it.
        """

    @abstractmethod
    def _close(self, conn: Any):
        """Close a connection gracefully."""

    @abstractmethod
    def _force_close(self, conn: Any):
        """Tear down a connection that has a statement in flight."""

    @abstractmethod
    def _fetch(self, conn: Any, sql: str, timeout: Optional[float]) -> List[tuple]:
        """Run a statement and return all of its rows."""

    @abstractmethod
    def _explain_sql(self, sql: str, analyze: bool) -> str:
        """Wrap a statement in the dialect's EXPLAIN syntax."""

    def _prepare(self, conn: Any, timeout: Optional[float]):
        """Session setup issued before the timed statement, outside the timing."""

    def _is_timeout(self, error: Exception) -> bool:
        """Whether a driver error is the server enforcing a time limit."""
        return False

    def connect(self, profile: EngineProfile, timeout: float = 10.0, query_timeout: Optional[float] = None) -> Any:
        """Connect to the engine described by `profile`."""
        conn_info = profile.connection
        logger.info(f"Connecting to {profile.name} at {conn_info.get('host')}:{conn_info.get('port')}")
        try:
            conn = self._open(profile, timeout, query_timeout)
        except Exception as e:
            logger.error(f"Error connecting to {profile.name}: {e}")
            raise EngineConnectionError(profile.name, str(e)) from e
        logger.debug(f"{profile.name} connection established")
        return conn

    def close(self, conn: Any):
        """Close a connection, ignoring errors from one that is already gone."""
        try:
            self._close(conn)
        except Exception as e:
            logger.debug(f"Ignoring error while closing connection: {e}")

    def abort(self, conn: Any):
        """Forcibly close a connection with a hung statement."""
        try:
            self._force_close(conn)
        except Exception as e:
            logger.debug(f"Ignoring error while aborting connection: {e}")

    @contextmanager
    def session(self, profile: EngineProfile, timeout: float = 10.0,
                query_timeout: Optional[float] = None) -> Iterator[Any]:
        """Scoped connection: released on success, error and timeout alike."""
        conn = self.connect(profile, timeout, query_timeout)
        try:
            yield conn
        finally:
            self.close(conn)

    def _translate(self, error: Exception, timeout: Optional[float]) -> QueryError:
        if self._is_timeout(error):
            return QueryTimeout(timeout, str(error))
        return QueryError(str(error))

    def _guarded_fetch(self, conn: Any, sql: str, timeout: Optional[float]) -> List[tuple]:
        try:
            return [tuple(row) for row in self._fetch(conn, sql, timeout)]
        except self.driver_errors as e:
            raise self._translate(e, timeout) from e

    def execute(self, conn: Any, sql: str, timeout: Optional[float] = None) -> QueryOutcome:
        """
        Execute `sql` and fetch all rows.

        With a timeout, the statement runs on a watchdog thread. When the
        bound passes the connection is force-closed and QueryTimeout is
        raised without waiting for the driver to return.
        """
        try:
            self._prepare(conn, timeout)
        except self.driver_errors as e:
            raise self._translate(e, timeout) from e

        if timeout is None:
            start_time = time.perf_counter()
            rows = self._guarded_fetch(conn, sql, None)
            return QueryOutcome(rows, (time.perf_counter() - start_time) * 1000)

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix='query-watchdog')
        try:
            start_time = time.perf_counter()
            future = pool.submit(self._guarded_fetch, conn, sql, timeout)
            try:
                rows = future.result(timeout=timeout)
            except FutureTimeout:
                logger.warning(f"Query exceeded {timeout}s, closing connection")
                self.abort(conn)
                raise QueryTimeout(timeout)
            duration_ms = (time.perf_counter() - start_time) * 1000
        finally:
            pool.shutdown(wait=False)
        return QueryOutcome(rows, duration_ms)

    def explain(self, conn: Any, sql: str, timeout: Optional[float] = None, analyze: bool = False) -> str:
        """Return the engine's plan for `sql` as text."""
        outcome = self.execute(conn, self._explain_sql(sql, analyze), timeout)
        return "\n".join(" ".join(str(col) for col in row) for row in outcome.rows)

    def row_count(self, conn: Any, table: str, timeout: Optional[float] = None) -> int:
        """Number of rows in `table`."""
        outcome = self.execute(conn, f"SELECT count(*) FROM {table}", timeout)
        return int(outcome.rows[0][0])

    def table_info(self, conn: Any, table: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Row count and on-disk size of `table`. Size is None when unknown."""
        return {"total_rows": self.row_count(conn, table, timeout), "size_bytes": None}
