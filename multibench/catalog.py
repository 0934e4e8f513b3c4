#!/usr/bin/env python3
"""
Query catalog: canonical query definitions and their per-dialect SQL.

The catalog is filled once at configuration load and is read-only
afterwards, so runner threads can share it without locking.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import ConfigurationError, MissingVariant
from .models import DIALECT_FEATURES, Dialect, EngineProfile, QueryDefinition, QueryVariant, SqlFeature
from .query_definitions import BenchmarkQueryCollection, CustomQueries, UKPricePaidQueries

logger = logging.getLogger('query_catalog')


def _parse_variant(query_id: str, dialect: Dialect, data: Any) -> QueryVariant:
    if isinstance(data, str):
        variant = QueryVariant(sql=data)
    elif isinstance(data, dict) and data.get("sql"):
        features = frozenset(SqlFeature.parse(f) for f in data.get("features", ()))
        variant = QueryVariant(sql=data["sql"], features=features)
    else:
        raise ConfigurationError(f"Query '{query_id}': variant for {dialect.value} has no SQL")

    unsupported = variant.features - DIALECT_FEATURES[dialect]
    if unsupported:
        names = ", ".join(sorted(f.value for f in unsupported))
        raise ConfigurationError(f"Query '{query_id}': {dialect.value} variant uses unsupported constructs: {names}")
    return variant


def _column_indexes(query_id: str, key: str, value: Optional[Sequence[int]]) -> Optional[tuple]:
    if value is None:
        return None
    if not all(isinstance(i, int) and i >= 0 for i in value):
        raise ConfigurationError(f"Query '{query_id}': {key} must be non-negative column indexes")
    return tuple(value)


def query_from_dict(data: Dict[str, Any]) -> QueryDefinition:
    """Build a QueryDefinition from its collection dict, validating dialect tags."""
    query_id = data.get("id")
    if not query_id:
        raise ConfigurationError(f"Query definition without id: {data}")
    raw_variants = data.get("variants") or {}
    if not raw_variants:
        raise ConfigurationError(f"Query '{query_id}' has no dialect variants")

    variants = {}
    for tag, variant_data in raw_variants.items():
        dialect = Dialect.parse(tag)
        variants[dialect] = _parse_variant(query_id, dialect, variant_data)

    tolerance = data.get("tolerance")
    if tolerance is not None and not 0 <= tolerance < 1:
        raise ConfigurationError(f"Query '{query_id}': tolerance must be a fraction in [0, 1)")

    return QueryDefinition(
        id=query_id,
        description=data.get("description", ""),
        variants=variants,
        skip_engines=frozenset(data.get("skip_engines") or ()),
        approximate_columns=_column_indexes(query_id, "approximate_columns", data.get("approximate_columns") or ()),
        compared_columns=_column_indexes(query_id, "compared_columns", data.get("compared_columns")),
        tolerance=tolerance,
    )


class QueryCatalog:
    """Ordered, append-only registry of QueryDefinitions."""

    def __init__(self, queries: Iterable[QueryDefinition] = ()):
        self._queries: Dict[str, QueryDefinition] = {}
        for query in queries:
            self._add(query)

    @classmethod
    def from_collections(cls, collections: Iterable[BenchmarkQueryCollection]) -> 'QueryCatalog':
        """Load every query of the given collections, in order."""
        catalog = cls()
        for collection in collections:
            queries = collection.get_queries()
            for query_dict in queries:
                catalog._add(query_from_dict(query_dict))
            logger.info(f"Loaded {len(queries)} queries from collection '{collection.name}'")
        return catalog

    def _add(self, query: QueryDefinition):
        if query.id in self._queries:
            raise ConfigurationError(f"Duplicate query id '{query.id}'")
        if not query.variants:
            raise ConfigurationError(f"Query '{query.id}' has no dialect variants")
        self._queries[query.id] = query

    def __len__(self) -> int:
        return len(self._queries)

    def __iter__(self):
        return iter(self._queries.values())

    def __contains__(self, query_id: str) -> bool:
        return query_id in self._queries

    @property
    def ids(self) -> List[str]:
        return list(self._queries)

    def query(self, query_id: str) -> QueryDefinition:
        try:
            return self._queries[query_id]
        except KeyError:
            raise ConfigurationError(f"Unknown query '{query_id}'")

    def get(self, query_id: str, dialect: Dialect) -> str:
        """SQL template of `query_id` for `dialect`."""
        query = self.query(query_id)
        dialect = Dialect.parse(dialect)
        variant = query.variants.get(dialect)
        if variant is None:
            raise MissingVariant(query_id, dialect.value)
        return variant.sql

    def render(self, query_id: str, engine: EngineProfile) -> str:
        """SQL of `query_id` ready to run on `engine`."""
        query = self.query(query_id)
        variant = query.variants.get(engine.dialect)
        if variant is None:
            raise MissingVariant(query_id, engine.dialect.value, engine.name)
        return variant.render(engine.table)

    def select(self, query_ids: Sequence[str]) -> 'QueryCatalog':
        """A new catalog holding only `query_ids`, in catalog order."""
        unknown = [q for q in query_ids if q not in self._queries]
        if unknown:
            raise ConfigurationError(f"Unknown queries: {', '.join(unknown)}")
        wanted = set(query_ids)
        return QueryCatalog(q for q in self if q.id in wanted)

    def _gaps(self, engines: Sequence[EngineProfile]):
        for query in self:
            for engine in engines:
                if query.is_skipped_for(engine):
                    continue
                if engine.dialect not in query.variants:
                    yield query, engine

    def warn_missing(self, engines: Sequence[EngineProfile]) -> int:
        """Log every (query, engine) pair without SQL. Returns the number found."""
        count = 0
        for query, engine in self._gaps(engines):
            logger.warning(f"Query '{query.id}' has no {engine.dialect.value} variant for engine '{engine.name}'")
            count += 1
        return count

    def validate_for(self, engines: Sequence[EngineProfile]):
        """
        Check the catalog against the active engines before anything runs.

        Raises MissingVariant for the first query lacking SQL for an engine
        that does not explicitly skip it, and ConfigurationError when a
        variant needs a construct the engine profile does not declare.
        """
        for query, engine in self._gaps(engines):
            raise MissingVariant(query.id, engine.dialect.value, engine.name)

        for query in self:
            for engine in engines:
                if query.is_skipped_for(engine):
                    continue
                missing = query.variants[engine.dialect].features - engine.features
                if missing:
                    names = ", ".join(sorted(f.value for f in missing))
                    raise ConfigurationError(
                        f"Query '{query.id}' needs {names}, which engine '{engine.name}' does not support")


def build_catalog(config) -> QueryCatalog:
    """Catalog for a BenchmarkConfig: built-in queries, configured queries, then selection."""
    collections: List[BenchmarkQueryCollection] = []
    if config.include_builtin_queries:
        collections.append(UKPricePaidQueries())
    if config.custom_queries:
        custom = CustomQueries(name="configured_queries", description="Queries from the configuration file")
        custom.add_from_dicts(list(config.custom_queries))
        collections.append(custom)

    catalog = QueryCatalog.from_collections(collections)
    if config.query_ids:
        catalog = catalog.select(config.query_ids)
    if not len(catalog):
        raise ConfigurationError("No queries to run")
    catalog.warn_missing(config.engines)
    return catalog
