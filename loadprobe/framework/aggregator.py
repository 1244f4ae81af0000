"""
Result aggregation shared by every run mode.

Every function here is pure: the same sample multiset always produces the
same statistics, whatever traffic shape produced it.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence

from .config import Thresholds
from .models import LatencyStats, ResourceSample, SampleRecord, TestResult


def percentile_position(count: int, percent: int) -> int:
    """Zero-based index of the nearest-rank percentile in a sorted list.

    Uses the 1-based position ceil(percent / 100 * count) computed in
    integer arithmetic.

    Args:
        count: Number of values, must be positive
        percent: Percentile between 1 and 100

    Returns:
        Index into the ascending-sorted values
    """
    return max((percent * count + 99) // 100, 1) - 1


def p95(latencies: Sequence[float]) -> float:
    """95th percentile from a full ascending sort, 0 for no values."""
    if not latencies:
        return 0.0
    ordered = sorted(latencies)
    return ordered[percentile_position(len(ordered), 95)]


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0 for no values."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def latency_stats(latencies: Sequence[float]) -> LatencyStats:
    """Calculate min/max/mean/p95 for a latency set.

    Args:
        latencies: Latencies in milliseconds, any order

    Returns:
        LatencyStats, all zero for an empty set
    """
    if not latencies:
        return LatencyStats()

    ordered = sorted(latencies)
    return LatencyStats(
        min=ordered[0],
        max=ordered[-1],
        mean=mean(ordered),
        p95=ordered[percentile_position(len(ordered), 95)],
    )


def evaluate_thresholds(
    latency: LatencyStats,
    error_rate: float,
    total_requests: int,
    thresholds: Thresholds,
) -> list[str]:
    """Evaluate run statistics against thresholds.

    Args:
        latency: Latency summary of the run
        error_rate: Error rate of the run
        total_requests: Number of requests issued
        thresholds: Limits to check

    Returns:
        List of failure messages (empty if every threshold is met)
    """
    failures = []

    if total_requests == 0:
        failures.append("No requests completed during the run")
        return failures

    if latency.mean > thresholds.response_time_ms:
        failures.append(
            f"Mean response time ({latency.mean:.2f}ms) "
            f"exceeds threshold ({thresholds.response_time_ms}ms)"
        )

    if error_rate > thresholds.error_rate:
        failures.append(
            f"Error rate ({error_rate:.2%}) "
            f"exceeds threshold ({thresholds.error_rate:.2%})"
        )

    if latency.p95 > thresholds.p95_ms:
        failures.append(
            f"P95 response time ({latency.p95:.2f}ms) "
            f"exceeds threshold ({thresholds.p95_ms}ms)"
        )

    return failures


def aggregate(
    test_name: str,
    started_at: datetime,
    duration_seconds: float,
    samples: Iterable[SampleRecord],
    resource_samples: Iterable[ResourceSample] = (),
    thresholds: Optional[Thresholds] = None,
) -> TestResult:
    """
    Derive a TestResult from the raw records of one run window.

    Args:
        test_name: Name to record on the result
        started_at: Start of the window
        duration_seconds: Nominal window length used for the achieved rate
        samples: Per-request records, treated as an unordered multiset
        resource_samples: Per-tick resource snapshots
        thresholds: Limits to evaluate, skipped when None

    Returns:
        Frozen TestResult
    """
    records = list(samples)
    ticks = sorted(resource_samples, key=lambda s: s.tick)

    total = len(records)
    successful = sum(1 for r in records if r.success)
    failed = total - successful

    latency = latency_stats([r.latency_ms for r in records])
    error_rate = failed / total if total else 0.0
    achieved_rate = total / duration_seconds if duration_seconds > 0 else 0.0

    failures: list[str] = []
    if thresholds is not None:
        failures = evaluate_thresholds(latency, error_rate, total, thresholds)

    return TestResult(
        test_name=test_name,
        timestamp=started_at,
        duration_seconds=duration_seconds,
        total_requests=total,
        successful_requests=successful,
        failed_requests=failed,
        latency=latency,
        error_rate=error_rate,
        achieved_rate=achieved_rate,
        cpu_usage=tuple(s.cpu_percent for s in ticks),
        memory_usage=tuple(s.memory_mb for s in ticks),
        threshold_failures=tuple(failures),
    )
