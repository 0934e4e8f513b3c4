"""
Tests for the query catalog and query collections.
"""
import json
import logging

import pytest

from conftest import make_profiles, make_query
from multibench.catalog import QueryCatalog, build_catalog, query_from_dict
from multibench.config import BenchmarkConfig
from multibench.errors import ConfigurationError, MissingVariant
from multibench.models import Dialect, EngineProfile
from multibench.query_definitions import CustomQueries, UKPricePaidQueries


def test_builtin_collection_covers_every_dialect():
    catalog = QueryCatalog.from_collections([UKPricePaidQueries()])
    assert catalog.ids == [
        "q1_price_by_year_type",
        "q2_recent_london_sales",
        "q3_county_trends",
        "q4_postcode_analysis",
        "q5_monthly_volume_rank",
    ]
    for query in catalog:
        assert set(query.variants) == set(Dialect)
    catalog.validate_for(make_profiles())


def test_builtin_median_is_compared_with_tolerance():
    catalog = QueryCatalog.from_collections([UKPricePaidQueries()])
    q1 = catalog.query("q1_price_by_year_type")
    assert q1.approximate_columns == (4,)
    assert "quantileTDigest" in catalog.get("q1_price_by_year_type", Dialect.CLICKHOUSE)
    assert "PERCENTILE_CONT" in catalog.get("q1_price_by_year_type", "postgres")


def test_builtin_clickhouse_averages_round_half_away_from_zero():
    # round() on a Float64 rounds half to even in ClickHouse; PostgreSQL numeric rounds half away from zero
    catalog = QueryCatalog.from_collections([UKPricePaidQueries()])
    averaged = [q.id for q in catalog if "avg(price)" in catalog.get(q.id, Dialect.CLICKHOUSE)]
    assert averaged == ["q1_price_by_year_type", "q3_county_trends", "q4_postcode_analysis"]
    for query_id in averaged:
        sql = catalog.get(query_id, Dialect.CLICKHOUSE)
        assert "round(avg(price))" not in sql
        assert "round(toDecimal64(avg(price), 4))" in sql

def test_get_returns_dialect_sql():
    catalog = QueryCatalog([query_from_dict(make_query())])
    assert catalog.get("q_count", Dialect.CLICKHOUSE).startswith("SELECT type, count()")


def test_get_missing_variant():
    catalog = QueryCatalog([query_from_dict({"id": "pg_only", "variants": {"postgres": "SELECT 1"}})])
    with pytest.raises(MissingVariant) as excinfo:
        catalog.get("pg_only", Dialect.CLICKHOUSE)
    assert excinfo.value.query_id == "pg_only"
    assert excinfo.value.dialect == "clickhouse"


def test_get_unknown_query():
    with pytest.raises(ConfigurationError, match="Unknown query 'nope'"):
        QueryCatalog().get("nope", Dialect.POSTGRES)


def test_render_substitutes_engine_table():
    catalog = QueryCatalog([query_from_dict(make_query())])
    heap = EngineProfile(name="postgres_heap", dialect="postgres", table="uk_price_paid_pg")
    assert "FROM uk_price_paid_pg GROUP BY" in catalog.render("q_count", heap)


def test_query_requires_a_variant():
    with pytest.raises(ConfigurationError, match="no dialect variants"):
        query_from_dict({"id": "empty", "variants": {}})


def test_query_rejects_unknown_dialect_tag():
    with pytest.raises(ConfigurationError, match="Unknown dialect 'oracle'"):
        query_from_dict({"id": "q", "variants": {"oracle": "SELECT 1 FROM dual"}})


def test_variant_may_only_use_dialect_constructs():
    with pytest.raises(ConfigurationError, match="unsupported constructs: quantileTDigest"):
        query_from_dict({
            "id": "q",
            "variants": {"postgres": {"sql": "SELECT 1", "features": ["quantileTDigest"]}},
        })


def test_duplicate_query_ids_rejected():
    with pytest.raises(ConfigurationError, match="Duplicate query id"):
        QueryCatalog([query_from_dict(make_query()), query_from_dict(make_query())])


def test_validate_for_raises_missing_variant_for_active_engine():
    catalog = QueryCatalog([query_from_dict({"id": "pg_only", "variants": {"postgres": "SELECT 1"}})])
    with pytest.raises(MissingVariant) as excinfo:
        catalog.validate_for(make_profiles())
    assert excinfo.value.engine == "clickhouse"


def test_validate_for_accepts_explicit_skips():
    catalog = QueryCatalog([query_from_dict({
        "id": "pg_only",
        "variants": {"postgres": "SELECT 1"},
        "skip_engines": ["clickhouse", "cedardb"],
    })])
    catalog.validate_for(make_profiles())


def test_validate_for_checks_engine_capabilities():
    catalog = QueryCatalog([query_from_dict({
        "id": "ranked",
        "variants": {"postgres": {"sql": "SELECT RANK() OVER () FROM {table}", "features": ["window_functions"]}},
    })])
    old_pg = EngineProfile(name="old_pg", dialect="postgres", table="t", features=frozenset({"EXTRACT"}))
    with pytest.raises(ConfigurationError, match="does not support"):
        catalog.validate_for([old_pg])


def test_warn_missing_is_not_fatal(caplog):
    catalog = QueryCatalog([query_from_dict({"id": "pg_only", "variants": {"postgres": "SELECT 1"}})])
    with caplog.at_level(logging.WARNING, logger='query_catalog'):
        assert catalog.warn_missing(make_profiles()) == 2
    assert "no clickhouse variant for engine 'clickhouse'" in caplog.text


def test_select_keeps_catalog_order():
    catalog = QueryCatalog.from_collections([UKPricePaidQueries()])
    selected = catalog.select(["q4_postcode_analysis", "q1_price_by_year_type"])
    assert selected.ids == ["q1_price_by_year_type", "q4_postcode_analysis"]
    with pytest.raises(ConfigurationError, match="Unknown queries: q9"):
        catalog.select(["q9"])


def test_build_catalog_appends_configured_queries():
    config = BenchmarkConfig(engines=tuple(make_profiles()), custom_queries=(make_query("q_custom"),))
    catalog = build_catalog(config)
    assert catalog.ids[-1] == "q_custom"
    assert len(catalog) == 6


def test_build_catalog_without_builtins_and_selection():
    config = BenchmarkConfig(
        engines=tuple(make_profiles()),
        custom_queries=(make_query("a"), make_query("b")),
        include_builtin_queries=False,
        query_ids=("b",),
    )
    assert build_catalog(config).ids == ["b"]


def test_build_catalog_requires_queries():
    with pytest.raises(ConfigurationError, match="No queries"):
        build_catalog(BenchmarkConfig(include_builtin_queries=False))


def test_custom_queries_from_file(tmp_path):
    path = tmp_path / "queries.json"
    path.write_text(json.dumps([make_query("q_file", approximate_columns=[1], tolerance=0.05)]))
    collection = CustomQueries.from_file(str(path))
    catalog = QueryCatalog.from_collections([collection])
    query = catalog.query("q_file")
    assert query.approximate_columns == (1,)
    assert query.tolerance == 0.05


def test_custom_queries_require_id_and_variants():
    with pytest.raises(ConfigurationError):
        CustomQueries().add_from_dicts([{"description": "no id"}])
