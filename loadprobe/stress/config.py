"""
Configuration for stepped stress tests.

A stress test runs fixed-duration steps at increasing target rates until a
limit is violated or the maximum load is reached.
"""

import copy
import math
from dataclasses import dataclass, field
from typing import Any, Optional

from loadprobe.framework.config import BASE_SCHEMA, TestConfiguration, parse_duration

_OPTIONAL_LIMIT = {"type": ["number", "null"], "exclusiveMinimum": 0}

STRESS_SCHEMA: dict[str, Any] = copy.deepcopy(BASE_SCHEMA)
STRESS_SCHEMA["required"] = ["name", "endpoints", "max_load", "increment_step"]
STRESS_SCHEMA["properties"].update({
    "max_load": {"type": "number", "exclusiveMinimum": 0},
    "increment_step": {"type": "number", "exclusiveMinimum": 0},
    "step_duration": copy.deepcopy(BASE_SCHEMA["properties"]["duration"]),
    "failure_threshold": {"type": "number", "minimum": 0, "maximum": 1},
    "resource_limits": {
        "type": "object",
        "properties": {
            "cpu_percent": _OPTIONAL_LIMIT,
            "memory_mb": _OPTIONAL_LIMIT,
            "response_time_ms": _OPTIONAL_LIMIT,
        },
        "additionalProperties": False,
    },
})


@dataclass(frozen=True)
class ResourceLimits:
    """
    Limits that end a stress test when exceeded.

    A limit left as None is not enforced.

    Attributes:
        cpu_percent: Maximum mean process CPU during a step
        memory_mb: Maximum mean process memory during a step
        response_time_ms: Maximum mean latency during a step
    """

    cpu_percent: Optional[float] = None
    memory_mb: Optional[float] = None
    response_time_ms: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "cpu_percent": self.cpu_percent,
            "memory_mb": self.memory_mb,
            "response_time_ms": self.response_time_ms,
        }


@dataclass(frozen=True)
class StressTestConfiguration(TestConfiguration):
    """
    Configuration of a stepped stress test.

    ``target_rate`` is the rate of the first step; ``duration`` of the base
    configuration is not used, every step lasts ``step_duration``.

    Attributes:
        max_load: Highest target rate a step may use
        increment_step: Rate added after each non-violating step
        step_duration: Seconds per step
        failure_threshold: Error rate above which a step violates
        resource_limits: CPU, memory and latency limits
    """

    SCHEMA = STRESS_SCHEMA

    max_load: float = 100.0
    increment_step: float = 10.0
    step_duration: float = 10.0
    failure_threshold: float = 0.1
    resource_limits: ResourceLimits = field(default_factory=ResourceLimits)

    @property
    def planned_steps(self) -> int:
        """Number of steps when no violation stops the test early."""
        if self.increment_step <= 0 or self.max_load < self.target_rate:
            return 0
        return math.floor((self.max_load - self.target_rate) / self.increment_step) + 1

    @property
    def planned_duration(self) -> float:
        """Seconds of traffic when every planned step runs."""
        return self.planned_steps * self.step_duration

    def errors(self) -> list[str]:
        """Collect validation errors without raising."""
        errors = super().errors()
        if self.step_duration <= 0:
            errors.append(f"step_duration must be positive, got {self.step_duration}")
        if self.increment_step <= 0:
            errors.append(f"increment_step must be positive, got {self.increment_step}")
        if self.max_load < self.target_rate:
            errors.append(
                f"max_load ({self.max_load}) must not be below target_rate "
                f"({self.target_rate})"
            )
        if not 0 <= self.failure_threshold <= 1:
            errors.append("failure_threshold must be between 0 and 1")
        for name, value in self.resource_limits.to_dict().items():
            if value is not None and value <= 0:
                errors.append(f"resource_limits.{name} must be positive")
        return errors

    def step_configuration(self, index: int, target_rate: float) -> TestConfiguration:
        """Configuration of one step.

        Each step ramps up over half its duration.

        Args:
            index: Zero-based step index
            target_rate: Target rate of the step

        Returns:
            Plain run configuration for the step
        """
        return TestConfiguration(
            name=f"{self.name}-step-{index + 1}",
            duration=self.step_duration,
            ramp_up_time=self.step_duration / 2,
            target_rate=target_rate,
            endpoints=self.endpoints,
            thresholds=self.thresholds,
            method=self.method,
            max_in_flight=self.max_in_flight,
        )

    @classmethod
    def _base_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        kwargs = super()._base_kwargs(data)
        kwargs["max_load"] = float(data["max_load"])
        kwargs["increment_step"] = float(data["increment_step"])
        if "step_duration" in data:
            kwargs["step_duration"] = parse_duration(data["step_duration"])
        if "failure_threshold" in data:
            kwargs["failure_threshold"] = float(data["failure_threshold"])
        limits = data.get("resource_limits", {})
        kwargs["resource_limits"] = ResourceLimits(
            cpu_percent=limits.get("cpu_percent"),
            memory_mb=limits.get("memory_mb"),
            response_time_ms=limits.get("response_time_ms"),
        )
        return kwargs

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data = super().to_dict()
        data.update({
            "max_load": self.max_load,
            "increment_step": self.increment_step,
            "step_duration": self.step_duration,
            "failure_threshold": self.failure_threshold,
            "resource_limits": self.resource_limits.to_dict(),
        })
        return data
