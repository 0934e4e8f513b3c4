#!/usr/bin/env python3
"""
Base definitions for benchmark query collections.
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any


class BenchmarkQueryCollection(ABC):
    """
    Abstract base class for benchmark query collections.

    Each query is a dict with:
        id: unique query id
        description: logical intent
        variants: {dialect tag: {"sql": ..., "features": [...]}} or {dialect tag: sql}
        skip_engines: engine names explicitly excluded (optional)
        approximate_columns: output column indexes compared within tolerance (optional)
        compared_columns: output column indexes compared row by row (optional)
        tolerance: relative tolerance override for this query (optional)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of the benchmark collection."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Return a description of the benchmark collection."""
        pass

    @abstractmethod
    def get_queries(self) -> List[Dict[str, Any]]:
        """Return a list of benchmark queries."""
        pass
