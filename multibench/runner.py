#!/usr/bin/env python3
"""
Execution runner: drives queries against engines and records RunResults.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .adapters import EngineAdapter, build_adapters
from .catalog import QueryCatalog
from .config import BenchmarkConfig, PlanMode
from .errors import EngineConnectionError, QueryError, QueryTimeout
from .models import Dialect, EngineProfile, ErrorKind, QueryDefinition, RunError, RunResult

logger = logging.getLogger('execution_runner')


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionRunner:
    """Runs one query against one engine. Never retries."""

    def __init__(self, config: BenchmarkConfig, catalog: QueryCatalog,
                 adapters: Optional[Mapping[Dialect, EngineAdapter]] = None):
        self.config = config
        self.catalog = catalog
        self.adapters = dict(adapters) if adapters is not None else build_adapters()

    def failed_result(self, engine: EngineProfile, query: QueryDefinition, kind: ErrorKind, message: str,
                      started_at: Optional[datetime] = None, plan: Optional[str] = None) -> RunResult:
        return RunResult(
            engine=engine.name,
            query_id=query.id,
            plan=plan,
            error=RunError(kind, message),
            warmup_runs=self.config.warmup_runs,
            started_at=started_at or _now(),
        )

    def run(self, engine: EngineProfile, query: QueryDefinition) -> RunResult:
        """
        Execute `query` on `engine` and return exactly one RunResult.

        Steps: resolve SQL, acquire a connection, run explicit warm-up
        executions, fetch the plan before or after as configured, then run
        the timed execution bounded by the configured timeout.
        """
        started_at = _now()
        if query.is_skipped_for(engine):
            logger.info(f"Skipping {query.id} on {engine.name} (marked skipped)")
            return self.failed_result(engine, query, ErrorKind.SKIPPED, "query marked skipped for this engine", started_at)

        sql = self.catalog.render(query.id, engine)
        adapter = self.adapters[engine.dialect]

        logger.info(f"Running {query.id} on {engine.name}")
        try:
            with adapter.session(engine, self.config.connect_timeout, self.config.timeout) as conn:
                return self._run_on(adapter, conn, engine, query, sql, started_at)
        except EngineConnectionError as e:
            return self.failed_result(engine, query, ErrorKind.CONNECTION_ERROR, str(e), started_at)

    def _run_on(self, adapter: EngineAdapter, conn: Any, engine: EngineProfile,
                query: QueryDefinition, sql: str, started_at: datetime) -> RunResult:
        timeout = self.config.timeout
        plan = None
        stage = "warm-up"
        try:
            for i in range(self.config.warmup_runs):
                logger.debug(f"Warm-up run {i + 1}/{self.config.warmup_runs} of {query.id} on {engine.name}")
                adapter.execute(conn, sql, timeout)

            if self.config.plan_mode is PlanMode.BEFORE:
                stage = "EXPLAIN"
                plan = self._explain(adapter, conn, engine, sql)

            stage = "timed run"
            outcome = adapter.execute(conn, sql, timeout)
        except QueryTimeout as e:
            logger.error(f"{query.id} on {engine.name} timed out during {stage}")
            return self.failed_result(engine, query, ErrorKind.TIMEOUT, f"{stage}: {e}", started_at, plan)
        except QueryError as e:
            logger.error(f"{query.id} on {engine.name} failed during {stage}: {e}")
            return self.failed_result(engine, query, ErrorKind.ENGINE_ERROR, str(e), started_at, plan)

        logger.info(f"{query.id} on {engine.name}: {outcome.duration_ms:.1f} ms ({outcome.row_count:,} rows)")

        if self.config.plan_mode is PlanMode.AFTER:
            try:
                plan = self._explain(adapter, conn, engine, sql)
            except QueryTimeout:
                logger.warning(f"EXPLAIN for {query.id} on {engine.name} timed out, no plan recorded")

        rows = tuple(outcome.rows) if outcome.row_count <= self.config.retain_rows else None
        return RunResult(
            engine=engine.name,
            query_id=query.id,
            duration_ms=outcome.duration_ms,
            row_count=outcome.row_count,
            plan=plan,
            rows=rows,
            warmup_runs=self.config.warmup_runs,
            started_at=started_at,
        )

    def _explain(self, adapter: EngineAdapter, conn: Any, engine: EngineProfile, sql: str) -> Optional[str]:
        """Plan text, or None when the engine cannot explain the statement."""
        try:
            return adapter.explain(conn, sql, self.config.timeout, self.config.explain_analyze)
        except QueryTimeout:
            raise
        except QueryError as e:
            logger.warning(f"EXPLAIN failed on {engine.name}: {e}")
            return None


class BenchmarkSession:
    """
    Runs every (query, engine) pair of a benchmark invocation.

    Pairs run sequentially by default. With `parallel_engines` the engines
    run concurrently for one query at a time; one engine never sees two
    queries at once. Cancellation takes effect between pairs.
    """

    def __init__(self, config: BenchmarkConfig, catalog: QueryCatalog,
                 adapters: Optional[Mapping[Dialect, EngineAdapter]] = None):
        self.config = config
        self.catalog = catalog
        self.runner = ExecutionRunner(config, catalog, adapters)
        self._results: List[RunResult] = []
        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._down: Dict[str, str] = {}

    @property
    def adapters(self) -> Dict[Dialect, EngineAdapter]:
        return self.runner.adapters

    def validate(self):
        """Fail before any connection is opened if the catalog cannot serve every engine."""
        self.catalog.warn_missing(self.config.engines)
        self.catalog.validate_for(self.config.engines)

    def cancel(self):
        """Stop after the pair currently in flight."""
        if not self._cancelled.is_set():
            logger.warning("Cancellation requested, finishing the current query")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _record(self, result: RunResult):
        with self._lock:
            self._results.append(result)

    def _run_unit(self, engine: EngineProfile, query: QueryDefinition):
        if self._cancelled.is_set():
            result = self.runner.failed_result(engine, query, ErrorKind.CANCELLED, "benchmark cancelled before this run")
        elif engine.name in self._down:
            result = self.runner.failed_result(engine, query, ErrorKind.SKIPPED,
                                               f"engine unreachable: {self._down[engine.name]}")
        else:
            result = self.runner.run(engine, query)
            if result.error and result.error.kind is ErrorKind.CONNECTION_ERROR:
                logger.error(f"{engine.name} is unreachable, skipping its remaining queries")
                with self._lock:
                    self._down[engine.name] = result.error.message
        self._record(result)

    def run_all(self) -> List[RunResult]:
        """Run the whole benchmark and return the results in completion order."""
        self.validate()
        engines = self.config.engines
        logger.info(f"Starting benchmark: {len(self.catalog)} queries x {len(engines)} engines"
                    f" ({'parallel across engines' if self.config.parallel_engines else 'sequential'})")

        for query in self.catalog:
            if self.config.parallel_engines and not self._cancelled.is_set():
                with ThreadPoolExecutor(max_workers=len(engines) or 1, thread_name_prefix='engine') as pool:
                    futures = [pool.submit(self._run_unit, engine, query) for engine in engines]
                    for future in futures:
                        future.result()
            else:
                for engine in engines:
                    self._run_unit(engine, query)

        logger.info("All benchmarks completed" if not self.cancelled else "Benchmark cancelled")
        with self._lock:
            return list(self._results)

    def collect_row_counts(self) -> Dict[str, Optional[int]]:
        """Row count of every engine's dataset table, None where unavailable."""
        counts = {}
        for engine in self.config.engines:
            adapter = self.adapters[engine.dialect]
            try:
                with adapter.session(engine, self.config.connect_timeout, self.config.timeout) as conn:
                    counts[engine.name] = adapter.row_count(conn, engine.table, self.config.timeout)
            except (EngineConnectionError, QueryError) as e:
                logger.error(f"Could not count rows on {engine.name}: {e}")
                counts[engine.name] = None
        return counts

    def collect_table_info(self) -> Dict[str, Dict[str, Any]]:
        """Row count and size of every engine's dataset table."""
        info = {}
        for engine in self.config.engines:
            adapter = self.adapters[engine.dialect]
            try:
                with adapter.session(engine, self.config.connect_timeout, self.config.timeout) as conn:
                    info[engine.name] = adapter.table_info(conn, engine.table, self.config.timeout)
            except (EngineConnectionError, QueryError) as e:
                logger.error(f"Could not read table info on {engine.name}: {e}")
                info[engine.name] = {"error": str(e)}
        return info
