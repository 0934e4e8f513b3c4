#!/usr/bin/env python3
"""
Core data model shared by the catalog, runner, validator and report.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .errors import ConfigurationError

IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$')


class Dialect(Enum):
    """SQL dialect spoken by an engine."""
    POSTGRES = "postgres"
    CLICKHOUSE = "clickhouse"
    CEDAR = "cedar"

    @classmethod
    def parse(cls, value: str) -> 'Dialect':
        """Resolve a dialect tag, rejecting anything not registered."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            known = ", ".join(d.value for d in cls)
            raise ConfigurationError(f"Unknown dialect '{value}' (expected one of: {known})")


class SqlFeature(Enum):
    """SQL constructs whose availability differs between engines."""
    EXTRACT = "EXTRACT"
    DATE_TRUNC = "DATE_TRUNC"
    TO_YEAR = "toYear"
    TO_YYYYMM = "toYYYYMM"
    PERCENTILE_CONT = "PERCENTILE_CONT"
    QUANTILE_TDIGEST = "quantileTDigest"
    WINDOW_FUNCTIONS = "window_functions"

    @classmethod
    def parse(cls, value: str) -> 'SqlFeature':
        if isinstance(value, cls):
            return value
        for feature in cls:
            if value in (feature.value, feature.name) or str(value).upper() == feature.name:
                return feature
        raise ConfigurationError(f"Unknown SQL feature '{value}'")


DIALECT_FEATURES: Dict[Dialect, FrozenSet[SqlFeature]] = {
    Dialect.POSTGRES: frozenset({
        SqlFeature.EXTRACT,
        SqlFeature.DATE_TRUNC,
        SqlFeature.PERCENTILE_CONT,
        SqlFeature.WINDOW_FUNCTIONS,
    }),
    Dialect.CEDAR: frozenset({
        SqlFeature.EXTRACT,
        SqlFeature.DATE_TRUNC,
        SqlFeature.PERCENTILE_CONT,
        SqlFeature.WINDOW_FUNCTIONS,
    }),
    Dialect.CLICKHOUSE: frozenset({
        SqlFeature.EXTRACT,
        SqlFeature.DATE_TRUNC,
        SqlFeature.TO_YEAR,
        SqlFeature.TO_YYYYMM,
        SqlFeature.QUANTILE_TDIGEST,
        SqlFeature.WINDOW_FUNCTIONS,
    }),
}


# Constructs whose results are estimates rather than exact values
APPROXIMATE_FEATURES: FrozenSet[SqlFeature] = frozenset({SqlFeature.QUANTILE_TDIGEST})

@dataclass(frozen=True)
class EngineProfile:
    """One database engine under comparison."""
    name: str
    dialect: Dialect
    table: str
    connection: Mapping[str, Any] = field(default_factory=dict, hash=False)
    features: FrozenSet[SqlFeature] = frozenset()
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Engine profile is missing a name")
        object.__setattr__(self, 'dialect', Dialect.parse(self.dialect))
        if not self.table or not IDENTIFIER_RE.match(self.table):
            raise ConfigurationError(f"Engine '{self.name}': invalid table name '{self.table}'")
        object.__setattr__(self, 'connection', MappingProxyType(dict(self.connection)))
        if self.features:
            features = frozenset(SqlFeature.parse(f) for f in self.features)
        else:
            features = DIALECT_FEATURES[self.dialect]
        object.__setattr__(self, 'features', features)

    @property
    def supports_exact_percentile(self) -> bool:
        return SqlFeature.PERCENTILE_CONT in self.features

    @property
    def supports_window_functions(self) -> bool:
        return SqlFeature.WINDOW_FUNCTIONS in self.features


@dataclass(frozen=True)
class QueryVariant:
    """SQL text for one dialect. `{table}` is replaced by the engine's table."""
    sql: str
    features: FrozenSet[SqlFeature] = frozenset()

    def render(self, table: str) -> str:
        return self.sql.replace("{table}", table)


@dataclass(frozen=True)
class QueryDefinition:
    """A logical benchmark query and its per-dialect SQL."""
    id: str
    description: str
    variants: Mapping[Dialect, QueryVariant] = field(hash=False)
    skip_engines: FrozenSet[str] = frozenset()
    approximate_columns: Tuple[int, ...] = ()
    compared_columns: Optional[Tuple[int, ...]] = None
    tolerance: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'variants', MappingProxyType(dict(self.variants)))

    def is_skipped_for(self, engine: EngineProfile) -> bool:
        return engine.name in self.skip_engines


class ErrorKind(Enum):
    """Why a run did not produce a timing."""
    TIMEOUT = "Timeout"
    ENGINE_ERROR = "EngineError"
    CONNECTION_ERROR = "ConnectionError"
    SKIPPED = "Skipped"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class RunError:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class RunResult:
    """Outcome of one (engine, query) execution."""
    engine: str
    query_id: str
    duration_ms: Optional[float] = None
    row_count: Optional[int] = None
    plan: Optional[str] = None
    error: Optional[RunError] = None
    rows: Optional[Tuple[tuple, ...]] = None
    warmup_runs: int = 0
    started_at: Optional[datetime] = None

    @property
    def status(self) -> str:
        return "ok" if self.error is None else self.error.kind.value

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form without retained rows or plan text."""
        return {
            "engine": self.engine,
            "query_id": self.query_id,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "row_count": self.row_count,
            "warmup_runs": self.warmup_runs,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "error": self.error.message if self.error else None,
        }
