#!/usr/bin/env python3
"""
Comparison report: ordering, rankings, persistence and console output.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .models import QueryDefinition, RunResult
from .validator import ResultValidator, ValidationOutcome

logger = logging.getLogger('report_aggregator')


def plan_ref(result: RunResult) -> Optional[str]:
    """Identifier of a run's plan artifact."""
    if not result.plan:
        return None
    return f"{result.query_id}__{result.engine}"


@dataclass(frozen=True)
class ComparisonReport:
    """All runs of one benchmark invocation. Built once, read-only."""
    engines: Tuple[str, ...]
    results: Tuple[RunResult, ...]
    rankings: Mapping[str, Tuple[str, ...]]
    validations: Tuple[ValidationOutcome, ...] = ()
    dataset_parity: Optional[ValidationOutcome] = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def query_ids(self) -> List[str]:
        seen = []
        for result in self.results:
            if result.query_id not in seen:
                seen.append(result.query_id)
        return seen

    def for_query(self, query_id: str) -> List[RunResult]:
        return [r for r in self.results if r.query_id == query_id]

    def entry(self, query_id: str, engine: str) -> Optional[RunResult]:
        for result in self.results:
            if result.query_id == query_id and result.engine == engine:
                return result
        return None

    def validation(self, query_id: str) -> Optional[ValidationOutcome]:
        for outcome in self.validations:
            if outcome.query_id == query_id:
                return outcome
        return None

    @property
    def has_divergence(self) -> bool:
        outcomes = list(self.validations) + ([self.dataset_parity] if self.dataset_parity else [])
        return any(o.diverged for o in outcomes)

    def summary_rows(self) -> List[Dict[str, Any]]:
        """One flat row per (query, engine), suitable for diffing."""
        return [
            {
                "query": r.query_id,
                "engine": r.engine,
                "duration_ms": round(r.duration_ms, 3) if r.duration_ms is not None else None,
                "row_count": r.row_count,
                "status": r.status,
                "plan_ref": plan_ref(r),
            }
            for r in self.results
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "engines": list(self.engines),
            "summary": self.summary_rows(),
            "rankings": {q: list(engines) for q, engines in self.rankings.items()},
            "validation": [v.to_dict() for v in self.validations],
            "dataset_parity": self.dataset_parity.to_dict() if self.dataset_parity else None,
            "detailed_results": [r.to_dict() for r in self.results],
        }


class ReportAggregator:
    """Builds a ComparisonReport from completed RunResults."""

    def __init__(self, engines: Sequence[str], validator: Optional[ResultValidator] = None):
        self.engines = tuple(engines)
        self.engine_order = {name: i for i, name in enumerate(self.engines)}
        self.validator = validator

    def _engine_key(self, engine: str) -> Tuple[int, str]:
        return (self.engine_order.get(engine, len(self.engine_order)), engine)

    def build(self, results: Sequence[RunResult],
              queries: Optional[Mapping[str, QueryDefinition]] = None,
              dataset_parity: Optional[ValidationOutcome] = None) -> ComparisonReport:
        """
        Order results by query id, then engine registration order, and rank
        each query's successful runs fastest first (ties by registration).
        """
        ordered = tuple(sorted(results, key=lambda r: (r.query_id,) + self._engine_key(r.engine)))

        query_ids = []
        for result in ordered:
            if result.query_id not in query_ids:
                query_ids.append(result.query_id)

        rankings = {}
        validations = []
        for query_id in query_ids:
            runs = [r for r in ordered if r.query_id == query_id]
            timed = sorted((r for r in runs if r.succeeded),
                           key=lambda r: (r.duration_ms,) + self._engine_key(r.engine))
            rankings[query_id] = tuple(r.engine for r in timed)
            if self.validator is not None:
                query = queries.get(query_id) if queries else None
                validations.append(self.validator.validate(runs, query))

        return ComparisonReport(
            engines=self.engines,
            results=ordered,
            rankings=rankings,
            validations=tuple(validations),
            dataset_parity=dataset_parity,
        )


def plans_dir_for(output: str) -> str:
    stem, _ = os.path.splitext(output)
    return f"{stem}_plans"


def save_report(report: ComparisonReport, filename: str) -> Dict[str, Any]:
    """Save the report as JSON and each plan as a separate text file."""
    data = report.to_dict()
    plans = [r for r in report.results if r.plan]
    if plans:
        plans_dir = plans_dir_for(filename)
        os.makedirs(plans_dir, exist_ok=True)
        for result in plans:
            with open(os.path.join(plans_dir, f"{plan_ref(result)}.txt"), 'w') as f:
                f.write(result.plan)
        data["plans_dir"] = os.path.basename(plans_dir)
        logger.info(f"Wrote {len(plans)} plans to {plans_dir}")

    parent = os.path.dirname(filename)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(filename, 'w') as f:
        json.dump(data, f, indent=2)
    logger.info(f"Results saved to {filename}")
    return data


def _format_duration(duration_ms: Optional[float]) -> str:
    if duration_ms is None:
        return "-"
    return f"{duration_ms:,.1f}"


def format_bytes(size_bytes: Union[int, float, str, None]) -> str:
    """Format bytes to human-readable format."""
    if isinstance(size_bytes, str):
        try:
            size_bytes = float(size_bytes)
        except (ValueError, TypeError):
            return "0B"

    if not size_bytes:
        return "0B"

    size_name = ("B", "KB", "MB", "GB", "TB", "PB")
    i = 0
    while size_bytes >= 1024 and i < len(size_name) - 1:
        size_bytes /= 1024
        i += 1
    return f"{size_bytes:.2f} {size_name[i]}"


def print_summary_table(report: ComparisonReport):
    """Print per-query summary tables, rankings and validation results."""
    for query_id in report.query_ids:
        print("\n" + "=" * 100)
        print(f"Query: {query_id}")
        print("-" * 100)
        print(f"{'Engine':<20} | {'Duration (ms)':>14} | {'Rows':>10} | {'Status':<16} | {'Plan':<25}")
        print("-" * 100)
        for result in report.for_query(query_id):
            ref = plan_ref(result) or "-"
            print(f"{result.engine[:20]:<20} | {_format_duration(result.duration_ms):>14} | "
                  f"{result.row_count if result.row_count is not None else '-':>10} | "
                  f"{result.status:<16} | {ref[:25]:<25}")

        ranking = report.rankings.get(query_id, ())
        if ranking:
            print("Ranking: " + " < ".join(ranking))

        outcome = report.validation(query_id)
        if outcome is not None:
            print(f"Validation: {outcome.kind.value}"
                  + (f" (reference: {outcome.reference})" if outcome.reference else ""))
            for comparison in outcome.divergences:
                print(f"  - {comparison.engine} {comparison.aspect} [{comparison.mode.value}]: {comparison.detail}")
    print("=" * 100 + "\n")

    if report.dataset_parity is not None:
        parity = report.dataset_parity
        print(f"Dataset parity: {parity.kind.value}")
        for comparison in parity.divergences:
            print(f"  - {comparison.engine} vs {comparison.reference}: {comparison.detail}")

    failed = [r for r in report.results if not r.succeeded]
    if failed:
        print("\nFAILED RUNS\n" + "=" * 100)
        for i, result in enumerate(failed):
            print(f"Run #{i + 1}: {result.query_id} on {result.engine}")
            print(f"Error Type: {result.status}")
            error_msg = result.error.message
            if len(error_msg) > 200:
                error_msg = error_msg[:197] + "..."
            print(f"Error Message: {error_msg}")
            if i < len(failed) - 1:
                print("-" * 80)
        print("=" * 100 + "\n")
