#!/usr/bin/env python3
"""
User-defined benchmark query collections.
"""
import json
import logging
import os
from typing import List, Dict, Any, Optional

from ..errors import ConfigurationError
from .base import BenchmarkQueryCollection

logger = logging.getLogger('custom_queries')


class CustomQueries(BenchmarkQueryCollection):
    """
    Queries supplied by the user, either programmatically or from the
    `queries` section of a configuration file.
    """

    def __init__(self, name: str = "custom_queries", description: str = "Custom benchmark queries"):
        self._name = name
        self._description = description
        self._queries = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def add_query(self, query_id: str, variants: Dict[str, Any], description: str = "",
                  skip_engines: Optional[List[str]] = None,
                  approximate_columns: Optional[List[int]] = None,
                  compared_columns: Optional[List[int]] = None,
                  tolerance: Optional[float] = None):
        """Add a query to the collection."""
        self._queries.append({
            "id": query_id,
            "description": description,
            "variants": variants,
            "skip_engines": skip_engines or [],
            "approximate_columns": approximate_columns or [],
            "compared_columns": compared_columns,
            "tolerance": tolerance,
        })

    def add_from_dicts(self, query_defs: List[Dict[str, Any]]):
        """Add queries from their JSON definitions."""
        for query_def in query_defs:
            if not query_def.get("id") or not query_def.get("variants"):
                raise ConfigurationError(f"Query definition missing 'id' or 'variants': {query_def}")
            self.add_query(
                query_id=query_def["id"],
                variants=query_def["variants"],
                description=query_def.get("description", ""),
                skip_engines=query_def.get("skip_engines"),
                approximate_columns=query_def.get("approximate_columns"),
                compared_columns=query_def.get("compared_columns"),
                tolerance=query_def.get("tolerance"),
            )

    @classmethod
    def from_file(cls, path: str) -> 'CustomQueries':
        """Load a JSON list of query definitions."""
        if not os.path.exists(path):
            raise ConfigurationError(f"Query file not found: {path}")
        with open(path, 'r') as f:
            try:
                query_defs = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {path}: {e}")
        collection = cls(name=os.path.basename(path))
        collection.add_from_dicts(query_defs)
        logger.info(f"Loaded {len(query_defs)} queries from {path}")
        return collection

    def get_queries(self) -> List[Dict[str, Any]]:
        """Return the list of benchmark queries."""
        return self._queries
