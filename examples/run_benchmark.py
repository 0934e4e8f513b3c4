#!/usr/bin/env python3
"""
Command line entry point for the multi-engine benchmark.

    multibench run --engines=clickhouse,postgres_heap --queries=q1_price_by_year_type \
        --warmup=1 --timeout=300 --tolerance=1 --output=results.json
"""
import argparse
import logging
import signal
from dataclasses import replace
from typing import List, Mapping, Optional

from multibench import (
    BenchmarkConfig,
    ConfigurationError,
    PlanMode,
    build_catalog,
    create_session,
    load_config,
    run_benchmark,
)
from multibench.adapters import EngineAdapter
from multibench.models import Dialect, ErrorKind
from multibench.report import format_bytes, print_summary_table, save_report

logger = logging.getLogger('multibench')

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_NO_ENGINE_REACHED = 2


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Multi-engine SQL benchmark harness')
    parser.add_argument('--config', help='JSON configuration file (engines, queries, settings)')
    parser.add_argument('--env-file', default='.env', help='Path to environment file')
    parser.add_argument('--engines', help='Comma-separated engine names to include')
    parser.add_argument('--queries', help='Comma-separated query ids to include')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Run the benchmark')
    run_parser.add_argument('--engines', dest='run_engines', help='Comma-separated engine names to include')
    run_parser.add_argument('--queries', dest='run_queries', help='Comma-separated query ids to include')
    run_parser.add_argument('--warmup', type=int, help='Untimed executions before the timed run')
    run_parser.add_argument('--timeout', type=float, help='Per-statement timeout in seconds')
    run_parser.add_argument('--connect-timeout', type=float, help='Connection timeout in seconds')
    run_parser.add_argument('--tolerance', type=float,
                            help='Relative tolerance for approximate columns, in percent (default 1)')
    run_parser.add_argument('--output', help='Output file for results')
    run_parser.add_argument('--plan-mode', choices=[m.value for m in PlanMode],
                            help='Fetch EXPLAIN plans before or after the timed run, or never')
    run_parser.add_argument('--explain-analyze', action='store_true', default=None,
                            help='Use EXPLAIN ANALYZE variants (executes the query again, so plans are fetched after the timed run)')
    run_parser.add_argument('--parallel-engines', action='store_true', default=None,
                            help='Run engines concurrently for each query')
    run_parser.add_argument('--check-parity', action='store_true', default=None,
                            help='Compare dataset row counts across engines before running')

    subparsers.add_parser('list', help='Show the engines and queries the configuration resolves to')
    subparsers.add_parser('table-info', help='Show row counts and sizes of each engine\'s table')
    return parser


def resolve_config(args: argparse.Namespace) -> BenchmarkConfig:
    """Load the configuration file and apply command line overrides."""
    config = load_config(args.config, args.env_file)

    engines = _split(getattr(args, 'run_engines', None) or args.engines)
    if engines:
        config = config.select_engines(engines)
    queries = _split(getattr(args, 'run_queries', None) or args.queries)
    if queries:
        config = replace(config, query_ids=tuple(queries))

    overrides = {}
    if getattr(args, 'warmup', None) is not None:
        overrides['warmup_runs'] = args.warmup
    if getattr(args, 'timeout', None) is not None:
        overrides['timeout'] = args.timeout
    if getattr(args, 'connect_timeout', None) is not None:
        overrides['connect_timeout'] = args.connect_timeout
    if getattr(args, 'tolerance', None) is not None:
        overrides['tolerance'] = args.tolerance / 100.0
    if getattr(args, 'output', None):
        overrides['output'] = args.output
    if getattr(args, 'plan_mode', None):
        overrides['plan_mode'] = PlanMode(args.plan_mode)
    for flag in ('explain_analyze', 'parallel_engines', 'check_parity'):
        if getattr(args, flag, None) is not None:
            overrides[flag] = getattr(args, flag)
    if overrides.get('explain_analyze') and 'plan_mode' not in overrides and config.plan_mode is PlanMode.BEFORE:
        overrides['plan_mode'] = PlanMode.AFTER
    if overrides:
        config = replace(config, **overrides)

    if not config.engines:
        raise ConfigurationError("No engines configured")
    return config


def cmd_list(config: BenchmarkConfig) -> int:
    catalog = build_catalog(config)
    print("\n===== Engines =====")
    for engine in config.engines:
        conn_info = engine.connection
        print(f"{engine.name:<20} {engine.dialect.value:<12} {engine.table:<25} "
              f"{conn_info.get('host')}:{conn_info.get('port')}")
    print("\n===== Queries =====")
    for query in catalog:
        dialects = ", ".join(sorted(d.value for d in query.variants))
        print(f"{query.id:<28} [{dialects}] {query.description}")
    print()
    return EXIT_OK


def cmd_table_info(config: BenchmarkConfig, adapters: Optional[Mapping[Dialect, EngineAdapter]] = None) -> int:
    session = create_session(config, adapters=adapters)
    info = session.collect_table_info()
    print("\n===== Table Information =====")
    for engine in config.engines:
        details = info[engine.name]
        print(f"\nEngine: {engine.name} ({engine.table})")
        if "error" in details:
            print(f"Error: {details['error']}")
            continue
        size = format_bytes(details['size_bytes']) if details['size_bytes'] is not None else "unknown"
        print(f"Size: {size} ({details['total_rows']:,} rows)")
        if "table_bytes" in details:
            print(f"Table: {format_bytes(details['table_bytes'])}, Indexes: {format_bytes(details['index_bytes'])}")
    print("\n=============================\n")
    if all("error" in details for details in info.values()):
        return EXIT_NO_ENGINE_REACHED
    return EXIT_OK


def cmd_run(config: BenchmarkConfig, adapters: Optional[Mapping[Dialect, EngineAdapter]] = None) -> int:
    session = create_session(config, adapters=adapters)

    previous_handler = signal.getsignal(signal.SIGINT)
    try:
        signal.signal(signal.SIGINT, lambda signum, frame: session.cancel())
    except ValueError:
        # Not on the main thread; cancellation only through session.cancel()
        previous_handler = None
    try:
        report = run_benchmark(session)
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    save_report(report, config.output)
    print_summary_table(report)
    logger.info(f"Benchmark results saved to {config.output}")

    kinds = [r.error.kind if r.error else None for r in report.results]
    if ErrorKind.CONNECTION_ERROR in kinds and all(
            kind in (ErrorKind.CONNECTION_ERROR, ErrorKind.SKIPPED) for kind in kinds):
        logger.error("No engine could be reached, no query ran")
        return EXIT_NO_ENGINE_REACHED

    if report.has_divergence:
        logger.warning("Benchmark completed with result divergences")
    else:
        logger.info("Benchmark completed")
    return EXIT_OK


def main(argv: Optional[List[str]] = None, adapters: Optional[Mapping[Dialect, EngineAdapter]] = None) -> int:
    """Run the benchmark CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = resolve_config(args)
        if args.command == 'list':
            return cmd_list(config)
        if args.command == 'table-info':
            return cmd_table_info(config, adapters)
        return cmd_run(config, adapters)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    exit(main())
