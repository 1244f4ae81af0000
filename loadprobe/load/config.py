"""
Configuration for virtual-user load tests.

A load test replaces the flat rate target with a fixed population of
virtual users, each looping over weighted scenarios with a think-time pause
between requests.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Sequence

from loadprobe.framework.config import BASE_SCHEMA, TestConfiguration

# Tolerance for weights that should sum to 100
WEIGHT_TOLERANCE = 0.01

LOAD_SCHEMA: dict[str, Any] = copy.deepcopy(BASE_SCHEMA)
LOAD_SCHEMA["required"] = ["name", "scenarios"]
LOAD_SCHEMA["properties"].update({
    "scenarios": {
        "type": "array",
        "minItems": 1,
        "items": {
            "type": "object",
            "required": ["name", "weight", "endpoint"],
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "weight": {"type": "number", "minimum": 0, "maximum": 100},
                "endpoint": {"type": "string", "minLength": 1},
            },
        },
    },
    "concurrent_users": {"type": "integer", "minimum": 1},
    "think_time": {
        "type": "object",
        "properties": {
            "min_ms": {"type": "number", "minimum": 0},
            "max_ms": {"type": "number", "minimum": 0},
        },
    },
})


@dataclass(frozen=True)
class Scenario:
    """
    One weighted request type.

    Attributes:
        name: Scenario name, the key of its result bucket
        weight: Share of requests in percent (0-100)
        endpoint: URL or path requested by this scenario
    """

    name: str
    weight: float
    endpoint: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {"name": self.name, "weight": self.weight, "endpoint": self.endpoint}


@dataclass(frozen=True)
class ThinkTime:
    """Bounds of the uniform pause between a virtual user's requests."""

    min_ms: float = 1000.0
    max_ms: float = 3000.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {"min_ms": self.min_ms, "max_ms": self.max_ms}


@dataclass(frozen=True)
class LoadTestConfiguration(TestConfiguration):
    """
    Configuration of a virtual-user load test.

    When no endpoints are given they are taken from the scenarios.

    Attributes:
        scenarios: Weighted scenarios, weights summing to 100
        concurrent_users: Number of virtual users kept active
        think_time: Pause bounds between requests of one user
    """

    SCHEMA = LOAD_SCHEMA

    scenarios: Sequence[Scenario] = ()
    concurrent_users: int = 10
    think_time: ThinkTime = field(default_factory=ThinkTime)

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "scenarios", tuple(self.scenarios))
        if not self.endpoints:
            object.__setattr__(
                self, "endpoints", tuple(s.endpoint for s in self.scenarios)
            )

    @property
    def total_weight(self) -> float:
        """Sum of scenario weights."""
        return sum(s.weight for s in self.scenarios)

    def errors(self) -> list[str]:
        """Collect validation errors without raising."""
        errors = super().errors()

        if not self.scenarios:
            errors.append("at least one scenario is required")
        else:
            names = [s.name for s in self.scenarios]
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                errors.append(f"duplicate scenario names: {', '.join(duplicates)}")
            for scenario in self.scenarios:
                if scenario.weight < 0:
                    errors.append(f"scenario {scenario.name}: weight must not be negative")
                if not scenario.endpoint:
                    errors.append(f"scenario {scenario.name}: endpoint must not be empty")
            if abs(self.total_weight - 100) > WEIGHT_TOLERANCE:
                errors.append(
                    f"scenario weights must sum to 100, got {self.total_weight:g}"
                )

        if self.concurrent_users < 1:
            errors.append("concurrent_users must be at least 1")
        if self.think_time.min_ms < 0:
            errors.append("think_time.min_ms must not be negative")
        if self.think_time.max_ms < self.think_time.min_ms:
            errors.append("think_time.max_ms must not be below think_time.min_ms")

        return errors

    @classmethod
    def _base_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        kwargs = super()._base_kwargs(data)
        kwargs["scenarios"] = tuple(
            Scenario(
                name=s["name"],
                weight=float(s["weight"]),
                endpoint=s["endpoint"],
            )
            for s in data.get("scenarios", [])
        )
        if "concurrent_users" in data:
            kwargs["concurrent_users"] = data["concurrent_users"]
        if "think_time" in data:
            defaults = ThinkTime()
            kwargs["think_time"] = ThinkTime(
                min_ms=data["think_time"].get("min_ms", defaults.min_ms),
                max_ms=data["think_time"].get("max_ms", defaults.max_ms),
            )
        return kwargs

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data = super().to_dict()
        data.update({
            "scenarios": [s.to_dict() for s in self.scenarios],
            "concurrent_users": self.concurrent_users,
            "think_time": self.think_time.to_dict(),
        })
        return data
