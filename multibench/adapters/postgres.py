#!/usr/bin/env python3
"""
PostgreSQL-wire adapters built on psycopg 3.

PostgresAdapter serves both the HEAP table and the pg_clickhouse foreign
table setups; CedarAdapter speaks the same protocol with CedarDB's quirks.
"""
import logging
from typing import Any, Dict, List, Optional

import psycopg
from psycopg import errors as pg_errors

from ..models import Dialect, EngineProfile
from .base import EngineAdapter

logger = logging.getLogger('postgres_adapter')


class PostgresAdapter(EngineAdapter):
    """PostgreSQL specific adapter implementation."""

    dialect = Dialect.POSTGRES
    driver_errors = (psycopg.Error,)

    def _open(self, profile: EngineProfile, timeout: float, query_timeout: Optional[float]) -> psycopg.Connection:
        conn_info = profile.connection
        conn_params = {
            "host": conn_info.get('host', 'localhost'),
            "port": int(conn_info.get('port', 5432)),
            "dbname": conn_info.get('database', 'postgres'),
            "user": conn_info.get('user', 'postgres'),
            # libpq only accepts whole seconds, and 0 means wait forever
            "connect_timeout": max(1, int(timeout)),
        }
        if conn_info.get('password'):
            conn_params["password"] = conn_info['password']
        conn = psycopg.connect(**conn_params, autocommit=True)
        try:
            conn.execute("SELECT 1")
        except psycopg.Error:
            conn.close()
            raise
        return conn

    def _close(self, conn: psycopg.Connection):
        conn.close()

    def _force_close(self, conn: psycopg.Connection):
        conn.cancel()
        conn.close()

    def _prepare(self, conn: psycopg.Connection, timeout: Optional[float]):
        # Server-side bound as well, so the backend stops working after we hang up
        timeout_ms = int(timeout * 1000) if timeout else 0
        conn.execute(f"SET statement_timeout = {timeout_ms}")

    def _fetch(self, conn: psycopg.Connection, sql: str, timeout: Optional[float]) -> List[tuple]:
        with conn.cursor() as cursor:
            cursor.execute(sql)
            if cursor.description is None:
                # Statement returned no result set (e.g. SET)
                return []
            return cursor.fetchall()

    def _is_timeout(self, error: Exception) -> bool:
        return isinstance(error, pg_errors.QueryCanceled)

    def _explain_sql(self, sql: str, analyze: bool) -> str:
        if analyze:
            return f"EXPLAIN (ANALYZE, BUFFERS, TIMING) {sql}"
        return f"EXPLAIN {sql}"

    def table_info(self, conn: psycopg.Connection, table: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Row count and on-disk sizes.

        size_bytes is the total relation size (heap, indexes and TOAST);
        table_bytes and index_bytes split out the main fork and the indexes.
        """
        total_rows = self.row_count(conn, table, timeout)
        rows = self.execute(conn, f"""
        SELECT
            pg_total_relation_size('{table}'::regclass),
            pg_relation_size('{table}'::regclass),
            pg_indexes_size('{table}'::regclass)
        """, timeout).rows
        total_bytes, table_bytes, index_bytes = rows[0]
        return {
            "total_rows": total_rows,
            "size_bytes": int(total_bytes or 0),
            "table_bytes": int(table_bytes or 0),
            "index_bytes": int(index_bytes or 0),
        }


class CedarAdapter(PostgresAdapter):
    """CedarDB over the PostgreSQL wire protocol."""

    dialect = Dialect.CEDAR

    def _prepare(self, conn: Any, timeout: Optional[float]):
        # CedarDB has no statement_timeout; the watchdog alone bounds queries
        pass

    def _explain_sql(self, sql: str, analyze: bool) -> str:
        if analyze:
            return f"EXPLAIN ANALYZE {sql}"
        return f"EXPLAIN {sql}"

    def table_info(self, conn: Any, table: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        # No pg_total_relation_size in CedarDB
        return EngineAdapter.table_info(self, conn, table, timeout)
