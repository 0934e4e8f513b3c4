#!/usr/bin/env python3
"""
ClickHouse adapter built on clickhouse-connect.
"""
import logging
import math
import re
from typing import Any, Dict, List, Optional

import clickhouse_connect
from clickhouse_connect.driver.client import Client
from clickhouse_connect.driver.exceptions import ClickHouseError

from ..models import Dialect, EngineProfile
from .base import EngineAdapter

logger = logging.getLogger('clickhouse_adapter')

# clickhouse-connect's own HTTP read timeout
DEFAULT_SEND_RECEIVE_TIMEOUT = 300
# Slack over the statement bound so the server-side limit fires first
SEND_RECEIVE_MARGIN = 30


class ClickHouseAdapter(EngineAdapter):
    """ClickHouse specific adapter implementation."""

    dialect = Dialect.CLICKHOUSE
    driver_errors = (ClickHouseError,)

    def _open(self, profile: EngineProfile, timeout: float, query_timeout: Optional[float]) -> Client:
        conn_info = profile.connection
        send_receive_timeout = DEFAULT_SEND_RECEIVE_TIMEOUT
        if query_timeout:
            send_receive_timeout = max(send_receive_timeout, math.ceil(query_timeout) + SEND_RECEIVE_MARGIN)
        client = clickhouse_connect.get_client(
            host=conn_info.get('host', 'localhost'),
            port=int(conn_info.get('port', 8123)),
            username=conn_info.get('user', 'default'),
            password=conn_info.get('password', ''),
            database=conn_info.get('database', 'default'),
            secure=bool(conn_info.get('secure', False)),
            connect_timeout=timeout,
            send_receive_timeout=send_receive_timeout,
        )
        # Test connection
        client.command("SELECT 1")
        return client

    def _close(self, conn: Client):
        conn.close()

    def _force_close(self, conn: Client):
        # Drops the HTTP pool; the server still enforces max_execution_time
        conn.close()

    def _fetch(self, conn: Client, sql: str, timeout: Optional[float]) -> List[tuple]:
        settings = {}
        if timeout:
            settings['max_execution_time'] = math.ceil(timeout)
        result = conn.query(sql, settings=settings)
        logger.debug(f"Query {result.query_id} returned {len(result.result_rows)} rows")
        return result.result_rows

    def _is_timeout(self, error: Exception) -> bool:
        message = str(error)
        if "TIMEOUT_EXCEEDED" in message:
            return True
        # HTTP read timeout raised by the driver as OperationalError
        if "read timed out" in message.lower():
            return True
        code_match = re.search(r'(?:error code|Code:) (\d+)', message)
        return bool(code_match) and code_match.group(1) == '159'

    def _explain_sql(self, sql: str, analyze: bool) -> str:
        if analyze:
            return f"EXPLAIN PIPELINE {sql}"
        return f"EXPLAIN indexes = 1 {sql}"

    def explain(self, conn: Client, sql: str, timeout: Optional[float] = None, analyze: bool = False) -> str:
        # EXPLAIN returns one plan line per row
        outcome = self.execute(conn, self._explain_sql(sql, analyze), timeout)
        return "\n".join(str(row[0]) for row in outcome.rows)

    def table_info(self, conn: Client, table: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Get row count and active part size of a table from system.parts."""
        if '.' in table:
            database, name = table.split('.', 1)
            database_filter = f"database = '{database}'"
        else:
            name = table
            database_filter = "database = currentDatabase()"

        size_query = f"""
        SELECT
            sum(bytes_on_disk) as size_bytes,
            sum(rows) as total_rows
        FROM system.parts
        WHERE table = '{name}' AND {database_filter} AND active = 1
        """
        rows = self.execute(conn, size_query, timeout).rows
        if rows and rows[0][1]:
            return {"total_rows": int(rows[0][1]), "size_bytes": int(rows[0][0] or 0)}
        # No parts (empty table or a view/engine without parts)
        return {"total_rows": self.row_count(conn, table, timeout), "size_bytes": 0}
