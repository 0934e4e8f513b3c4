#!/usr/bin/env python3
"""
Exception hierarchy for the benchmark harness.

Configuration-time errors abort a benchmark before any engine is touched.
Run-time errors are caught by the execution runner and recorded on the
RunResult of the affected (engine, query) pair.
"""


class BenchmarkError(Exception):
    """Base class for all harness errors."""


class ConfigurationError(BenchmarkError):
    """Malformed engine profile, query definition or settings."""


class MissingVariant(ConfigurationError):
    """No SQL registered for a query in the requested dialect."""

    def __init__(self, query_id: str, dialect: str, engine: str = None):
        self.query_id = query_id
        self.dialect = dialect
        self.engine = engine
        target = f"engine '{engine}' ({dialect})" if engine else f"dialect '{dialect}'"
        super().__init__(f"Query '{query_id}' has no SQL variant for {target}")


class EngineConnectionError(BenchmarkError):
    """The engine could not be reached. Fatal for that engine's run set."""

    def __init__(self, engine: str, message: str):
        self.engine = engine
        super().__init__(f"Cannot connect to {engine}: {message}")


class QueryError(BenchmarkError):
    """The engine rejected or faulted on a statement."""


class QueryTimeout(QueryError):
    """A statement exceeded its configured time bound."""

    def __init__(self, timeout: float, message: str = ""):
        self.timeout = timeout
        super().__init__(message or f"Query exceeded timeout of {timeout}s")
