"""
Engine adapters, one per SQL dialect.
"""
from typing import Dict, Mapping, Optional

from ..models import Dialect
from .base import EngineAdapter, QueryOutcome
from .clickhouse import ClickHouseAdapter
from .postgres import CedarAdapter, PostgresAdapter

ADAPTERS: Dict[Dialect, type] = {
    Dialect.POSTGRES: PostgresAdapter,
    Dialect.CLICKHOUSE: ClickHouseAdapter,
    Dialect.CEDAR: CedarAdapter,
}


def build_adapters(overrides: Optional[Mapping[Dialect, EngineAdapter]] = None) -> Dict[Dialect, EngineAdapter]:
    """One adapter instance per dialect, with optional replacements."""
    adapters = {dialect: cls() for dialect, cls in ADAPTERS.items()}
    if overrides:
        adapters.update(overrides)
    return adapters


__all__ = [
    'ADAPTERS',
    'EngineAdapter',
    'QueryOutcome',
    'ClickHouseAdapter',
    'PostgresAdapter',
    'CedarAdapter',
    'build_adapters',
]
