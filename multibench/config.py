#!/usr/bin/env python3
"""
Benchmark configuration: engine profiles, custom queries and run settings.

Settings come from a JSON file (optional) and are overridden by CLI flags.
Connection values may reference environment variables as ${VAR}; a .env
file is loaded with python-dotenv before expansion. Without a configuration
file the four engines of the UK Price Paid lab are built from environment
variables.
"""
import json
import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError
from .models import EngineProfile

logger = logging.getLogger('benchmark_config')


class PlanMode(Enum):
    """When to fetch the EXPLAIN plan relative to the timed execution."""
    BEFORE = "before"
    AFTER = "after"
    NONE = "none"


@dataclass(frozen=True)
class BenchmarkConfig:
    """Everything a benchmark invocation needs, passed to each component."""
    engines: Tuple[EngineProfile, ...] = ()
    query_ids: Optional[Tuple[str, ...]] = None
    custom_queries: Tuple[Dict[str, Any], ...] = ()
    include_builtin_queries: bool = True
    warmup_runs: int = 0
    timeout: float = 300.0
    connect_timeout: float = 10.0
    tolerance: float = 0.01
    plan_mode: PlanMode = PlanMode.BEFORE
    explain_analyze: bool = False
    parallel_engines: bool = False
    check_parity: bool = False
    retain_rows: int = 10000
    output: str = "benchmark_results.json"

    def __post_init__(self):
        if self.warmup_runs < 0:
            raise ConfigurationError("warmup_runs must be >= 0")
        if self.timeout <= 0 or self.connect_timeout <= 0:
            raise ConfigurationError("timeouts must be positive")
        if not 0 <= self.tolerance < 1:
            raise ConfigurationError(f"tolerance must be a fraction in [0, 1), got {self.tolerance}")
        if self.retain_rows < 0:
            raise ConfigurationError("retain_rows must be >= 0")
        object.__setattr__(self, 'plan_mode', PlanMode(self.plan_mode))
        if self.explain_analyze and self.plan_mode is PlanMode.BEFORE:
            # EXPLAIN ANALYZE executes the query, which would warm caches ahead of the timed run
            raise ConfigurationError("explain_analyze requires plan_mode 'after' or 'none'")
        names = [e.name for e in self.engines]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate engine names: {', '.join(duplicates)}")

    @property
    def engine_order(self) -> Dict[str, int]:
        """Registration index of each engine, used for tie-breaking."""
        return {engine.name: i for i, engine in enumerate(self.engines)}

    def select_engines(self, names: Sequence[str]) -> 'BenchmarkConfig':
        """Restrict to the named engines, keeping registration order."""
        known = {e.name for e in self.engines}
        unknown = [n for n in names if n not in known]
        if unknown:
            raise ConfigurationError(f"Unknown engines: {', '.join(unknown)}")
        wanted = set(names)
        return replace(self, engines=tuple(e for e in self.engines if e.name in wanted))


def _expand(value: Any) -> Any:
    """Expand ${VAR} references in connection values."""
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, dict):
        return {k: _expand(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand(v) for v in value]
    return value


def profile_from_dict(data: Dict[str, Any]) -> EngineProfile:
    """Build an EngineProfile from its JSON definition."""
    for key in ("name", "dialect", "table"):
        if not data.get(key):
            raise ConfigurationError(f"Engine definition missing '{key}': {data}")
    connection = data.get("connection", {})
    if not isinstance(connection, dict):
        raise ConfigurationError(f"Engine '{data['name']}': connection must be an object")
    return EngineProfile(
        name=data["name"],
        dialect=data["dialect"],
        table=data["table"],
        connection=_expand(connection),
        features=frozenset(data.get("features", ())),
        description=data.get("description", ""),
    )


def default_engine_profiles() -> List[EngineProfile]:
    """The four engines of the UK Price Paid lab, from environment variables."""
    pg_connection = {
        "host": os.getenv('PG_HOST', 'localhost'),
        "port": int(os.getenv('PG_PORT', 5432)),
        "user": os.getenv('PG_USER', 'postgres'),
        "password": os.getenv('PG_PASSWORD', ''),
        "database": os.getenv('PG_DATABASE', 'postgres'),
    }
    return [
        EngineProfile(
            name="clickhouse",
            dialect="clickhouse",
            table=os.getenv('CLICKHOUSE_TABLE', 'uk_price_paid'),
            connection={
                "host": os.getenv('CLICKHOUSE_HOST', 'localhost'),
                "port": int(os.getenv('CLICKHOUSE_PORT', 8123)),
                "user": os.getenv('CLICKHOUSE_USER', 'default'),
                "password": os.getenv('CLICKHOUSE_PASSWORD', ''),
                "database": os.getenv('CLICKHOUSE_DATABASE', 'default'),
                "secure": os.getenv('CLICKHOUSE_SECURE', 'false').lower() == 'true',
            },
            description="ClickHouse MergeTree",
        ),
        EngineProfile(
            name="cedardb",
            dialect="cedar",
            table=os.getenv('CEDAR_TABLE', 'uk_price_paid'),
            connection={
                "host": os.getenv('CEDAR_HOST', 'localhost'),
                "port": int(os.getenv('CEDAR_PORT', 5433)),
                "user": os.getenv('CEDAR_USER', 'postgres'),
                "password": os.getenv('CEDAR_PASSWORD', ''),
                "database": os.getenv('CEDAR_DATABASE', 'postgres'),
            },
            description="CedarDB",
        ),
        EngineProfile(
            name="postgres_heap",
            dialect="postgres",
            table=os.getenv('PG_HEAP_TABLE', 'uk_price_paid_pg'),
            connection=pg_connection,
            description="PostgreSQL HEAP table",
        ),
        EngineProfile(
            name="postgres_fdw",
            dialect="postgres",
            table=os.getenv('PG_FDW_TABLE', 'uk_price_paid'),
            connection=pg_connection,
            description="PostgreSQL foreign table over pg_clickhouse",
        ),
    ]


_SETTING_KEYS = (
    "warmup_runs", "timeout", "connect_timeout", "tolerance", "plan_mode",
    "explain_analyze", "parallel_engines", "check_parity", "retain_rows",
    "output", "include_builtin_queries",
)


def config_from_dict(data: Dict[str, Any]) -> BenchmarkConfig:
    """Build a BenchmarkConfig from a parsed configuration document."""
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a JSON object")
    engines_data = data.get("engines")
    if engines_data:
        engines = tuple(profile_from_dict(e) for e in engines_data)
    else:
        engines = tuple(default_engine_profiles())

    settings = data.get("settings", {})
    unknown = sorted(set(settings) - set(_SETTING_KEYS))
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")
    if "plan_mode" in settings:
        try:
            settings = dict(settings, plan_mode=PlanMode(settings["plan_mode"]))
        except ValueError:
            raise ConfigurationError(f"Invalid plan_mode '{settings['plan_mode']}'")
    elif settings.get("explain_analyze"):
        settings = dict(settings, plan_mode=PlanMode.AFTER)

    queries = data.get("queries", [])
    if not isinstance(queries, list):
        raise ConfigurationError("'queries' must be a list of query definitions")

    return BenchmarkConfig(engines=engines, custom_queries=tuple(queries), **settings)


def load_config(path: Optional[str] = None, env_file: Optional[str] = None) -> BenchmarkConfig:
    """
    Load the benchmark configuration.

    Args:
        path: JSON configuration file. When omitted the lab's default engines
              are built from environment variables.
        env_file: .env file to load before expanding ${VAR} references.
    """
    load_dotenv(env_file or '.env')

    if not path:
        logger.info("No configuration file given, using default engine profiles")
        return config_from_dict({})

    if not os.path.exists(path):
        raise ConfigurationError(f"Configuration file not found: {path}")
    with open(path, 'r') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}")

    config = config_from_dict(data)
    logger.info(f"Loaded configuration from {path}: {len(config.engines)} engines")
    return config
