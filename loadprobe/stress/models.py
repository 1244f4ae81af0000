"""
Data models for stepped stress testing.

This module defines the controller states, the per-step aggregate, the
breaking point and the system limits derived from a step sequence.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from loadprobe.framework.models import TestResult


class StepState(Enum):
    """States of the adaptive step controller."""

    STEPPING = "stepping"
    BREAKING_POINT_FOUND = "breaking_point_found"
    MAX_LOAD_REACHED = "max_load_reached"

    @property
    def is_terminal(self) -> bool:
        """Whether the controller stops in this state."""
        return self is not StepState.STEPPING


class Violation(Enum):
    """Limits a step can violate."""

    ERROR_RATE = "error_rate"
    CPU = "cpu"
    MEMORY = "memory"
    RESPONSE_TIME = "response_time"


@dataclass(frozen=True)
class LoadStep:
    """
    Aggregate of one fixed-duration step.

    Attributes:
        index: Zero-based position in the step sequence
        target_rate: Rate the step was driven at
        result: TestResult of the step window
        violations: Limits the step violated
    """

    index: int
    target_rate: float
    result: TestResult
    violations: tuple[Violation, ...] = ()

    @property
    def violated(self) -> bool:
        """Whether any limit was violated."""
        return bool(self.violations)

    @property
    def achieved_rate(self) -> float:
        """Requests per second actually issued."""
        return self.result.achieved_rate

    @property
    def error_rate(self) -> float:
        """Failed over total requests of the step."""
        return self.result.error_rate

    @property
    def mean_latency_ms(self) -> float:
        """Mean latency of the step."""
        return self.result.latency.mean

    @property
    def p95_latency_ms(self) -> float:
        """95th percentile latency of the step."""
        return self.result.latency.p95

    @property
    def cpu_usage(self) -> float:
        """Mean process CPU over the step's resource samples."""
        return self.result.cpu_avg

    @property
    def memory_usage(self) -> float:
        """Mean process memory over the step's resource samples."""
        return self.result.memory_avg

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "index": self.index,
            "target_rate": self.target_rate,
            "actual_rate": round(self.achieved_rate, 2),
            "total_requests": self.result.total_requests,
            "error_rate": round(self.error_rate, 4),
            "avg_response_time_ms": round(self.mean_latency_ms, 2),
            "p95_response_time_ms": round(self.p95_latency_ms, 2),
            "cpu_usage": round(self.cpu_usage, 2),
            "memory_usage": round(self.memory_usage, 2),
            "violations": [v.value for v in self.violations],
        }


@dataclass(frozen=True)
class BreakingPoint:
    """
    The step at which the stress test stopped.

    Attributes:
        step: First violating step, or the last step when max load was
            reached without a violation
        violated: False when the test ended at max load
    """

    step: LoadStep
    violated: bool = True

    @property
    def rate(self) -> float:
        """Achieved rate at the breaking point."""
        return self.step.achieved_rate

    @property
    def target_rate(self) -> float:
        """Target rate at the breaking point."""
        return self.step.target_rate

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "rate": round(self.rate, 2),
            "target_rate": self.target_rate,
            "error_rate": round(self.step.error_rate, 4),
            "response_time_ms": round(self.step.mean_latency_ms, 2),
            "cpu_usage": round(self.step.cpu_usage, 2),
            "memory_usage": round(self.step.memory_usage, 2),
            "violated": self.violated,
            "violations": [v.value for v in self.step.violations],
        }


@dataclass(frozen=True)
class SystemLimits:
    """
    Limits derived from the step sequence.

    Attributes:
        max_sustainable_rate: Highest achieved rate of a non-violating step
        cpu_saturation_point: Target rate where CPU first reached its limit
        memory_saturation_point: Target rate where memory first reached
            its limit
    """

    max_sustainable_rate: float = 0.0
    cpu_saturation_point: float = 0.0
    memory_saturation_point: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "max_sustainable_rate": round(self.max_sustainable_rate, 2),
            "cpu_saturation_point": self.cpu_saturation_point,
            "memory_saturation_point": self.memory_saturation_point,
        }


@dataclass(frozen=True)
class StressTestResult:
    """
    Result of a stepped stress test.

    Attributes:
        result: Aggregate over every request of every step
        steps: Steps in execution order
        breaking_point: Where the test stopped
        system_limits: Limits derived from the steps
        final_state: Terminal controller state
    """

    result: TestResult
    steps: tuple[LoadStep, ...] = ()
    breaking_point: Optional[BreakingPoint] = None
    system_limits: SystemLimits = field(default_factory=SystemLimits)
    final_state: StepState = StepState.MAX_LOAD_REACHED

    @property
    def test_name(self) -> str:
        """Name of the test."""
        return self.result.test_name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data = self.result.to_dict()
        data.update({
            "final_state": self.final_state.value,
            "breaking_point": (
                self.breaking_point.to_dict() if self.breaking_point else None
            ),
            "load_steps": [step.to_dict() for step in self.steps],
            "system_limits": self.system_limits.to_dict(),
        })
        return data
