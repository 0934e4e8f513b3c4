"""
Multi-engine SQL benchmark harness.
"""
from .catalog import QueryCatalog, build_catalog
from .config import BenchmarkConfig, PlanMode, load_config
from .errors import (
    BenchmarkError,
    ConfigurationError,
    EngineConnectionError,
    MissingVariant,
    QueryError,
    QueryTimeout,
)
from .harness import create_session, run_benchmark
from .models import Dialect, EngineProfile, ErrorKind, QueryDefinition, RunResult, SqlFeature
from .report import ComparisonReport, ReportAggregator
from .runner import BenchmarkSession, ExecutionRunner
from .validator import ResultValidator, ValidationOutcome

__all__ = [
    'BenchmarkConfig',
    'BenchmarkError',
    'BenchmarkSession',
    'ComparisonReport',
    'ConfigurationError',
    'Dialect',
    'EngineConnectionError',
    'EngineProfile',
    'ErrorKind',
    'ExecutionRunner',
    'MissingVariant',
    'PlanMode',
    'QueryCatalog',
    'QueryDefinition',
    'QueryError',
    'QueryTimeout',
    'ReportAggregator',
    'ResultValidator',
    'RunResult',
    'SqlFeature',
    'ValidationOutcome',
    'build_catalog',
    'create_session',
    'load_config',
    'run_benchmark',
]
