"""
Tests for report aggregation, persistence and the end-to-end harness.
"""
import json
import os
from dataclasses import replace

from conftest import ENGINE_NAMES
from multibench.harness import create_session, run_benchmark
from multibench.models import ErrorKind, RunError, RunResult
from multibench.report import ReportAggregator, plan_ref, plans_dir_for, print_summary_table, save_report
from multibench.validator import OutcomeKind, ResultValidator


def _result(engine, query_id, duration_ms=None, kind=None, plan=None):
    if kind is not None:
        return RunResult(engine=engine, query_id=query_id, error=RunError(kind, "failed"))
    return RunResult(engine=engine, query_id=query_id, duration_ms=duration_ms, row_count=1, plan=plan)


def test_results_ordered_by_query_then_registration():
    results = [
        _result("postgres_fdw", "q2", 5.0),
        _result("clickhouse", "q2", 1.0),
        _result("cedardb", "q1", 2.0),
        _result("clickhouse", "q1", 3.0),
    ]
    report = ReportAggregator(ENGINE_NAMES).build(results)
    assert [(r.query_id, r.engine) for r in report.results] == [
        ("q1", "clickhouse"), ("q1", "cedardb"), ("q2", "clickhouse"), ("q2", "postgres_fdw"),
    ]
    assert report.query_ids == ["q1", "q2"]


def test_rankings_break_ties_by_registration_and_exclude_failures():
    results = [
        _result("postgres_heap", "q1", 2.0),
        _result("cedardb", "q1", 2.0),
        _result("clickhouse", "q1", kind=ErrorKind.TIMEOUT),
        _result("postgres_fdw", "q1", 1.0),
    ]
    report = ReportAggregator(ENGINE_NAMES).build(results)
    assert report.rankings["q1"] == ("postgres_fdw", "cedardb", "postgres_heap")


def test_summary_rows_and_plan_refs():
    results = [_result("clickhouse", "q1", 1.23456, plan="ReadFromMergeTree"),
               _result("cedardb", "q1", kind=ErrorKind.CONNECTION_ERROR)]
    report = ReportAggregator(ENGINE_NAMES).build(results)
    assert report.summary_rows() == [
        {"query": "q1", "engine": "clickhouse", "duration_ms": 1.235, "row_count": 1, "status": "ok",
         "plan_ref": "q1__clickhouse"},
        {"query": "q1", "engine": "cedardb", "duration_ms": None, "row_count": None, "status": "ConnectionError",
         "plan_ref": None},
    ]
    assert report.entry("q1", "cedardb").status == "ConnectionError"
    assert report.entry("q9", "cedardb") is None


def test_validation_runs_per_query():
    results = [_result("clickhouse", "q1", 1.0), _result("cedardb", "q1", 2.0), _result("cedardb", "q2", 1.0)]
    aggregator = ReportAggregator(ENGINE_NAMES, ResultValidator(engine_order={n: i for i, n in enumerate(ENGINE_NAMES)}))
    report = aggregator.build(results)
    assert report.validation("q1").kind is OutcomeKind.OK
    assert report.validation("q2").kind is OutcomeKind.UNVERIFIED
    assert not report.has_divergence


def test_save_report_writes_json_and_plans(tmp_path):
    results = [_result("clickhouse", "q1", 1.0, plan="Expression\n  ReadFromMergeTree"),
               _result("postgres_heap", "q1", 2.0)]
    report = ReportAggregator(ENGINE_NAMES).build(results)
    output = str(tmp_path / "out" / "results.json")
    save_report(report, output)

    with open(output) as f:
        data = json.load(f)
    assert data["engines"] == list(ENGINE_NAMES)
    assert data["rankings"] == {"q1": ["clickhouse", "postgres_heap"]}
    assert data["plans_dir"] == "results_plans"
    assert len(data["detailed_results"]) == 2

    plan_file = os.path.join(plans_dir_for(output), "q1__clickhouse.txt")
    with open(plan_file) as f:
        assert f.read() == "Expression\n  ReadFromMergeTree"


def test_plan_ref_without_plan():
    assert plan_ref(_result("clickhouse", "q1", 1.0)) is None


def test_print_summary_table(capsys):
    results = [_result("clickhouse", "q1", 1.0), _result("cedardb", "q1", kind=ErrorKind.TIMEOUT)]
    print_summary_table(ReportAggregator(ENGINE_NAMES).build(results))
    out = capsys.readouterr().out
    assert "Query: q1" in out
    assert "Ranking: clickhouse" in out
    assert "FAILED RUNS" in out
    assert "Error Type: Timeout" in out


def test_end_to_end_four_engines_one_query(config, catalog, adapters):
    report = run_benchmark(create_session(config, catalog, adapters))
    assert [r.engine for r in report.results] == list(ENGINE_NAMES)
    assert all(r.duration_ms > 0 for r in report.results)
    assert len({r.row_count for r in report.results}) == 1
    assert report.validation("q_count").kind is OutcomeKind.OK
    assert not report.has_divergence
    assert report.dataset_parity is None


def test_end_to_end_is_deterministic_apart_from_timings(config, catalog, adapters):
    first = run_benchmark(create_session(config, catalog, adapters))
    second = run_benchmark(create_session(config, catalog, adapters))

    def shape(report):
        return [(row["query"], row["engine"], row["row_count"], row["status"]) for row in report.summary_rows()]

    assert shape(first) == shape(second)
    assert [v.to_dict() for v in first.validations] == [v.to_dict() for v in second.validations]


def test_end_to_end_reports_dataset_parity_divergence(config, catalog, adapters, fake_engines):
    fake_engines["cedardb"].table_rows = 995
    report = run_benchmark(create_session(replace(config, check_parity=True), catalog, adapters))
    assert report.dataset_parity.diverged
    assert report.has_divergence
