"""
Result models for virtual-user load tests.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from loadprobe.framework.aggregator import mean
from loadprobe.framework.models import SampleRecord, TestResult


@dataclass
class ScenarioStats:
    """Running counters of one scenario, owned by the simulator."""

    requests: int = 0
    errors: int = 0
    response_times: list[float] = field(default_factory=list)

    def record(self, sample: SampleRecord) -> None:
        """Fold one completed request into the counters."""
        self.requests += 1
        self.response_times.append(sample.latency_ms)
        if not sample.success:
            self.errors += 1

    def freeze(self) -> "ScenarioResult":
        """Read-only summary of the counters."""
        return ScenarioResult(
            requests=self.requests,
            errors=self.errors,
            average_response_time_ms=mean(self.response_times),
        )


@dataclass(frozen=True)
class ScenarioResult:
    """Requests, errors and mean latency of one scenario."""

    requests: int = 0
    errors: int = 0
    average_response_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "requests": self.requests,
            "errors": self.errors,
            "average_response_time_ms": round(self.average_response_time_ms, 2),
        }


@dataclass(frozen=True)
class UserMetrics:
    """
    Virtual-user concurrency.

    Attributes:
        concurrent: Active users when the result was produced
        peak: Highest active-user count observed
        average: Mean of the periodic active-user samples
    """

    concurrent: int = 0
    peak: int = 0
    average: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "concurrent": self.concurrent,
            "peak": self.peak,
            "average": round(self.average, 2),
        }


@dataclass(frozen=True)
class LoadTestResult:
    """
    Result of a virtual-user load test.

    Attributes:
        result: Global aggregate over every request
        scenario_results: Per-scenario buckets keyed by scenario name
        user_metrics: Concurrency of the virtual users
    """

    result: TestResult
    scenario_results: Mapping[str, ScenarioResult] = field(default_factory=dict)
    user_metrics: UserMetrics = field(default_factory=UserMetrics)

    def __post_init__(self):
        object.__setattr__(
            self, "scenario_results", MappingProxyType(dict(self.scenario_results))
        )

    @property
    def test_name(self) -> str:
        """Name of the test."""
        return self.result.test_name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data = self.result.to_dict()
        data["scenario_results"] = {
            name: scenario.to_dict()
            for name, scenario in self.scenario_results.items()
        }
        data["user_metrics"] = self.user_metrics.to_dict()
        return data
