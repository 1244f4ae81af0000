"""
Data models shared by every run mode.

This module defines the raw per-request and per-tick records collected
while a run is in progress, and the read-only aggregates derived from them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class SampleRecord:
    """
    Outcome of one issued request.

    Attributes:
        endpoint: URL or path the request was sent to
        latency_ms: Time from issue to response or failure
        success: Whether the request got a 2xx response
        scenario: Scenario name when issued by a virtual user
        status_code: HTTP status, None on transport failure
        error: Failure description, None on success
    """

    endpoint: str
    latency_ms: float
    success: bool
    scenario: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "endpoint": self.endpoint,
            "scenario": self.scenario,
            "latency_ms": round(self.latency_ms, 2),
            "success": self.success,
            "status_code": self.status_code,
            "error": self.error,
        }


@dataclass(frozen=True)
class ResourceSample:
    """
    Process resource snapshot taken on one sampling tick.

    Attributes:
        tick: Zero-based tick index within the run
        timestamp: Wall-clock time of the snapshot
        cpu_percent: Process CPU utilization
        memory_mb: Process resident memory in megabytes
    """

    tick: int
    timestamp: datetime
    cpu_percent: float
    memory_mb: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "tick": self.tick,
            "timestamp": self.timestamp.isoformat(),
            "cpu_percent": round(self.cpu_percent, 2),
            "memory_mb": round(self.memory_mb, 2),
        }


@dataclass(frozen=True)
class LatencyStats:
    """Latency summary in milliseconds."""

    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    p95: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "min_ms": round(self.min, 2),
            "max_ms": round(self.max, 2),
            "mean_ms": round(self.mean, 2),
            "p95_ms": round(self.p95, 2),
        }


@dataclass(frozen=True)
class TestResult:
    """
    Aggregate of one finished run.

    Attributes:
        test_name: Name from the run configuration
        timestamp: When the run started
        duration_seconds: Configured run duration
        total_requests: Number of sample records in the window
        successful_requests: Records with success set
        failed_requests: Records without success
        latency: Latency summary over all records
        error_rate: failed / total, 0 when nothing was issued
        achieved_rate: total / duration in requests per second
        cpu_usage: CPU series, one value per resource tick
        memory_usage: Memory series, one value per resource tick
        threshold_failures: Threshold checks the run did not meet
    """

    __test__ = False  # Tell pytest this is not a test class

    test_name: str
    timestamp: datetime
    duration_seconds: float
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    latency: LatencyStats = field(default_factory=LatencyStats)
    error_rate: float = 0.0
    achieved_rate: float = 0.0
    cpu_usage: tuple[float, ...] = ()
    memory_usage: tuple[float, ...] = ()
    threshold_failures: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        """Whether every configured threshold was met."""
        return not self.threshold_failures

    @property
    def cpu_avg(self) -> float:
        """Mean of the CPU series."""
        if not self.cpu_usage:
            return 0.0
        return sum(self.cpu_usage) / len(self.cpu_usage)

    @property
    def memory_avg(self) -> float:
        """Mean of the memory series."""
        if not self.memory_usage:
            return 0.0
        return sum(self.memory_usage) / len(self.memory_usage)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "test_name": self.test_name,
            "timestamp": self.timestamp.isoformat(),
            "duration_seconds": self.duration_seconds,
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "response_time": self.latency.to_dict(),
            "error_rate": round(self.error_rate, 4),
            "achieved_rate": round(self.achieved_rate, 2),
            "resource_usage": {
                "cpu": [round(v, 2) for v in self.cpu_usage],
                "memory": [round(v, 2) for v in self.memory_usage],
            },
            "passed": self.passed,
            "threshold_failures": list(self.threshold_failures),
        }
