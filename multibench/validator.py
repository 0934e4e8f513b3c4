#!/usr/bin/env python3
"""
Cross-engine result validation.

Row counts must match exactly. Output values are compared row by row where
both engines retained their rows: exactly for ordinary columns, within a
relative tolerance for columns produced by approximate algorithms.
A divergence is reported, never raised.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .models import APPROXIMATE_FEATURES, Dialect, QueryDefinition, RunResult

logger = logging.getLogger('result_validator')

DATASET_PARITY = "dataset_row_count"


class ComparisonMode(Enum):
    EXACT = "exact"
    TOLERANCE = "tolerance"


class OutcomeKind(Enum):
    OK = "ok"
    DIVERGENCE = "Divergence"
    # fewer than two successful runs to compare
    UNVERIFIED = "Unverified"


@dataclass(frozen=True)
class Comparison:
    """One check of an engine's output against the reference engine."""
    reference: str
    engine: str
    aspect: str
    mode: ComparisonMode
    passed: bool
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.reference,
            "engine": self.engine,
            "aspect": self.aspect,
            "mode": self.mode.value,
            "passed": self.passed,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ValidationOutcome:
    query_id: str
    kind: OutcomeKind
    reference: Optional[str] = None
    comparisons: Tuple[Comparison, ...] = field(default_factory=tuple)

    @property
    def diverged(self) -> bool:
        return self.kind is OutcomeKind.DIVERGENCE

    @property
    def divergences(self) -> List[Comparison]:
        return [c for c in self.comparisons if not c.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query_id": self.query_id,
            "kind": self.kind.value,
            "reference": self.reference,
            "comparisons": [c.to_dict() for c in self.comparisons],
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _as_decimal(value: Any) -> Optional[Decimal]:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def values_equal(a: Any, b: Any) -> bool:
    """Exact equality, treating int, float and Decimal numerically."""
    if _is_number(a) and _is_number(b):
        da, db = _as_decimal(a), _as_decimal(b)
        if da is not None and db is not None:
            return da == db
    return a == b


def relative_error(reference: Any, value: Any) -> Optional[float]:
    """|value - reference| / |reference|, or None for non-numeric values."""
    if not (_is_number(reference) and _is_number(value)):
        return None
    reference, value = float(reference), float(value)
    if reference == 0:
        return 0.0 if value == 0 else float('inf')
    return abs(value - reference) / abs(reference)


class ResultValidator:
    """Compares the results of one query across engines."""

    def __init__(self, tolerance: float = 0.01, engine_order: Optional[Mapping[str, int]] = None,
                 engine_dialects: Optional[Mapping[str, Dialect]] = None):
        self.tolerance = tolerance
        self.engine_order = dict(engine_order or {})
        self.engine_dialects = dict(engine_dialects or {})

    def _approximates(self, query: QueryDefinition, engine: str) -> bool:
        """Whether `engine` ran a variant of `query` that uses an approximate construct."""
        dialect = self.engine_dialects.get(engine)
        if dialect is None:
            # Unknown engine: rely on the query's column declaration alone
            return True
        variant = query.variants.get(dialect)
        return variant is not None and bool(variant.features & APPROXIMATE_FEATURES)

    def _ordered(self, results: Sequence[RunResult]) -> List[RunResult]:
        last = len(self.engine_order)
        return sorted(results, key=lambda r: (self.engine_order.get(r.engine, last), r.engine))

    def validate(self, results: Sequence[RunResult], query: Optional[QueryDefinition] = None) -> ValidationOutcome:
        """
        Validate the successful results of one query.

        The reference is the first successful result in engine registration
        order; every other successful result is compared against it.
        """
        query_ids = {r.query_id for r in results}
        query_id = query.id if query else (query_ids.pop() if len(query_ids) == 1 else "")
        successful = [r for r in self._ordered(results) if r.succeeded]
        if len(successful) < 2:
            return ValidationOutcome(query_id, OutcomeKind.UNVERIFIED,
                                     successful[0].engine if successful else None)

        tolerance = query.tolerance if query and query.tolerance is not None else self.tolerance
        reference = successful[0]
        comparisons: List[Comparison] = []
        for other in successful[1:]:
            comparisons.append(self._compare_counts(reference, other))
            if reference.row_count == other.row_count:
                comparisons.extend(self._compare_rows(reference, other, query, tolerance))

        diverged = any(not c.passed for c in comparisons)
        outcome = ValidationOutcome(
            query_id,
            OutcomeKind.DIVERGENCE if diverged else OutcomeKind.OK,
            reference.engine,
            tuple(comparisons),
        )
        for failed in outcome.divergences:
            logger.error(f"Divergence in {query_id}: {failed.engine} vs {failed.reference} "
                         f"on {failed.aspect} ({failed.mode.value}): {failed.detail}")
        return outcome

    def _compare_counts(self, reference: RunResult, other: RunResult) -> Comparison:
        passed = reference.row_count == other.row_count
        detail = "" if passed else f"{reference.row_count} != {other.row_count}"
        return Comparison(reference.engine, other.engine, "row_count", ComparisonMode.EXACT, passed, detail)

    def _compare_rows(self, reference: RunResult, other: RunResult, query: Optional[QueryDefinition],
                      tolerance: float) -> List[Comparison]:
        if reference.rows is None or other.rows is None or not reference.rows:
            return []

        width = len(reference.rows[0])
        if any(len(row) != width for row in other.rows):
            return [Comparison(reference.engine, other.engine, "columns", ComparisonMode.EXACT, False,
                               f"expected {width} columns")]

        approximate = set()
        if query and (self._approximates(query, reference.engine) or self._approximates(query, other.engine)):
            approximate = set(query.approximate_columns)
        if query and query.compared_columns is not None:
            columns = list(query.compared_columns)
        else:
            columns = list(range(width))

        declared = set(columns) | (set(query.approximate_columns) if query else set())
        out_of_range = sorted(c for c in declared if c >= width)
        if out_of_range:
            return [Comparison(reference.engine, other.engine, "columns", ComparisonMode.EXACT, False,
                               f"column indexes {out_of_range} out of range for {width} columns")]

        comparisons = []
        for column in columns:
            if column in approximate:
                comparisons.append(self._tolerance_column(reference, other, column, tolerance))
            else:
                comparisons.append(self._exact_column(reference, other, column))
        return comparisons

    def _exact_column(self, reference: RunResult, other: RunResult, column: int) -> Comparison:
        for i, (ref_row, row) in enumerate(zip(reference.rows, other.rows)):
            if not values_equal(ref_row[column], row[column]):
                return Comparison(reference.engine, other.engine, f"column[{column}]", ComparisonMode.EXACT,
                                  False, f"row {i}: {ref_row[column]!r} != {row[column]!r}")
        return Comparison(reference.engine, other.engine, f"column[{column}]", ComparisonMode.EXACT, True)

    def _tolerance_column(self, reference: RunResult, other: RunResult, column: int,
                          tolerance: float) -> Comparison:
        worst = 0.0
        for i, (ref_row, row) in enumerate(zip(reference.rows, other.rows)):
            error = relative_error(ref_row[column], row[column])
            if error is None:
                if not values_equal(ref_row[column], row[column]):
                    return Comparison(reference.engine, other.engine, f"column[{column}]", ComparisonMode.TOLERANCE,
                                      False, f"row {i}: {ref_row[column]!r} != {row[column]!r}")
                continue
            worst = max(worst, error)
            if error > tolerance:
                return Comparison(reference.engine, other.engine, f"column[{column}]", ComparisonMode.TOLERANCE,
                                  False, f"row {i}: relative error {error:.4%} exceeds {tolerance:.2%}")
        return Comparison(reference.engine, other.engine, f"column[{column}]", ComparisonMode.TOLERANCE, True,
                          f"max relative error {worst:.4%}")

    def check_dataset_parity(self, counts: Mapping[str, Optional[int]]) -> ValidationOutcome:
        """Compare the dataset row counts collected before the benchmark."""
        available = [(name, counts[name]) for name in self._ordered_names(counts) if counts[name] is not None]
        if len(available) < 2:
            return ValidationOutcome(DATASET_PARITY, OutcomeKind.UNVERIFIED, available[0][0] if available else None)
        ref_name, ref_count = available[0]
        comparisons = tuple(
            Comparison(ref_name, name, "table_rows", ComparisonMode.EXACT, count == ref_count,
                       "" if count == ref_count else f"{ref_count} != {count}")
            for name, count in available[1:]
        )
        diverged = any(not c.passed for c in comparisons)
        if diverged:
            logger.error(f"Dataset row counts differ across engines: {dict(counts)}")
        return ValidationOutcome(DATASET_PARITY, OutcomeKind.DIVERGENCE if diverged else OutcomeKind.OK,
                                 ref_name, comparisons)

    def _ordered_names(self, names) -> List[str]:
        last = len(self.engine_order)
        return sorted(names, key=lambda n: (self.engine_order.get(n, last), n))
