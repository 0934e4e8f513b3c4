#!/usr/bin/env python3
"""
One benchmark invocation: validate, run every pair, validate results, report.
"""
import logging
from typing import Mapping, Optional

from .adapters import EngineAdapter
from .catalog import QueryCatalog, build_catalog
from .config import BenchmarkConfig
from .models import Dialect
from .report import ComparisonReport, ReportAggregator
from .runner import BenchmarkSession
from .validator import ResultValidator

logger = logging.getLogger('benchmark_harness')


def create_session(config: BenchmarkConfig, catalog: Optional[QueryCatalog] = None,
                   adapters: Optional[Mapping[Dialect, EngineAdapter]] = None) -> BenchmarkSession:
    """Build and validate a session. Configuration errors surface here, before any connection."""
    if catalog is None:
        catalog = build_catalog(config)
    session = BenchmarkSession(config, catalog, adapters)
    session.validate()
    return session


def run_benchmark(session: BenchmarkSession) -> ComparisonReport:
    """Run a validated session and build its comparison report."""
    config = session.config
    validator = ResultValidator(config.tolerance, config.engine_order,
                                {e.name: e.dialect for e in config.engines})

    dataset_parity = None
    if config.check_parity:
        logger.info("Checking dataset row counts across engines")
        dataset_parity = validator.check_dataset_parity(session.collect_row_counts())

    results = session.run_all()
    aggregator = ReportAggregator([e.name for e in config.engines], validator)
    queries = {q.id: q for q in session.catalog}
    return aggregator.build(results, queries, dataset_parity)
