"""
Run metrics
Aggregates RunSummary objects into an overview and daily buckets for the
persistence/analytics side. Pure functions, no I/O.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .models import FailureCounters, RunSummary


@dataclass
class RunRecord:
    """A finished run as stored by the caller"""

    summary: RunSummary
    started_at: datetime
    finished_at: Optional[datetime] = None


@dataclass
class RunOverview:
    total_runs: int = 0
    total_products: int = 0
    average_duration_ms: int = 0
    success_runs: int = 0
    success_rate: float = 0.0
    average_products_per_run: float = 0.0
    failure_buckets: FailureCounters = field(default_factory=FailureCounters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalRuns': self.total_runs,
            'totalProducts': self.total_products,
            'averageDurationMs': self.average_duration_ms,
            'successRuns': self.success_runs,
            'successRate': self.success_rate,
            'averageProductsPerRun': self.average_products_per_run,
            'failureBuckets': self.failure_buckets.to_dict(),
        }


def build_overview(summaries: Iterable[RunSummary]) -> RunOverview:
    """
    Summarize many runs

    A run counts as successful when it produced at least one product.
    """
    runs = list(summaries)
    if not runs:
        return RunOverview()

    total_products = sum(run.total_products for run in runs)
    total_duration = sum(run.duration_ms for run in runs)
    success_runs = sum(1 for run in runs if run.total_products > 0)

    buckets = FailureCounters()
    for run in runs:
        counters = run.failure_counters
        buckets.http_errors += counters.http_errors
        buckets.no_html += counters.no_html
        buckets.llm_errors += counters.llm_errors
        buckets.parsing_errors += counters.parsing_errors
        buckets.empty_results += counters.empty_results
        buckets.total_pages += counters.total_pages

    return RunOverview(
        total_runs=len(runs),
        total_products=total_products,
        average_duration_ms=round(total_duration / len(runs)),
        success_runs=success_runs,
        success_rate=round(success_runs / len(runs) * 100, 1),
        average_products_per_run=round(total_products / len(runs), 1),
        failure_buckets=buckets,
    )


def bucket_runs_by_day(records: Iterable[RunRecord]) -> List[Dict[str, Any]]:
    """Per-day product totals and average duration, oldest day first"""
    buckets: Dict[str, Dict[str, int]] = {}
    for record in records:
        key = record.started_at.date().isoformat()
        bucket = buckets.setdefault(key, {'products': 0, 'duration': 0, 'runs': 0})
        bucket['products'] += record.summary.total_products
        bucket['duration'] += record.summary.duration_ms
        bucket['runs'] += 1

    return [
        {
            'label': label,
            'totalProducts': value['products'],
            'averageDurationMs': round(value['duration'] / value['runs']) if value['runs'] else 0,
        }
        for label, value in sorted(buckets.items())
    ]
