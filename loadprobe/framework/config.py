"""
Configuration management for load test runs.

This module defines the base run configuration, loads configurations from
YAML files and validates them before any traffic is issued.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml
from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)


VALID_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
VALID_MODES = ["ramp", "load", "stress"]

DURATION_PATTERN = "^[0-9]+(\\.[0-9]+)?(ms|s|m|h|d)?$"

_DURATION = {
    "anyOf": [
        {"type": "number", "exclusiveMinimum": 0},
        {"type": "string", "pattern": DURATION_PATTERN},
    ]
}

# JSON Schema shared by every run mode; mode-specific schemas extend it
BASE_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["name"],
    "properties": {
        "mode": {"type": "string", "enum": VALID_MODES},
        "name": {"type": "string", "minLength": 1},
        "duration": _DURATION,
        "ramp_up_time": {
            "anyOf": [
                {"type": "number", "minimum": 0},
                {"type": "string", "pattern": DURATION_PATTERN},
            ]
        },
        "target_rate": {"type": "number", "exclusiveMinimum": 0},
        "endpoints": {
            "type": "array",
            "items": {"type": "string", "minLength": 1},
        },
        "method": {"type": "string", "enum": VALID_METHODS},
        "max_in_flight": {"type": ["integer", "null"], "minimum": 1},
        "thresholds": {
            "type": "object",
            "properties": {
                "response_time_ms": {"type": "number", "exclusiveMinimum": 0},
                "error_rate": {"type": "number", "minimum": 0, "maximum": 1},
                "p95_ms": {"type": "number", "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        },
    },
}


class ConfigurationError(ValueError):
    """Raised when a run configuration is invalid."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


def validate_schema(data: dict[str, Any], schema: dict[str, Any]) -> list[str]:
    """
    Validate raw configuration data against a JSON schema.

    Args:
        data: Configuration dictionary to validate
        schema: JSON schema to validate against

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        path = ".".join(str(p) for p in error.path) or "<root>"
        errors.append(f"{path}: {error.message}")
    return errors


def parse_duration(value: float | int | str | None) -> float:
    """Parse a duration to seconds.

    Args:
        value: Seconds as a number, or a string such as "500ms", "30s", "5m"

    Returns:
        Duration in seconds, 0 if the value cannot be parsed
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)

    match = re.fullmatch(r"([0-9]+(?:\.[0-9]+)?)(ms|s|m|h|d)?", value.strip().lower())
    if not match:
        return 0.0

    multipliers = {
        "ms": 0.001,
        "s": 1,
        "m": 60,
        "h": 3600,
        "d": 86400,
    }
    number, unit = match.groups()
    return float(number) * multipliers[unit or "s"]


def read_yaml(path: Path | str) -> dict[str, Any]:
    """Read a YAML mapping from a file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If the YAML is invalid or not a mapping
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping")
    return data


@dataclass(frozen=True)
class Thresholds:
    """
    Pass/fail limits evaluated on a finished run.

    Attributes:
        response_time_ms: Maximum acceptable mean latency
        error_rate: Maximum acceptable error rate (0-1)
        p95_ms: Maximum acceptable 95th percentile latency
    """

    response_time_ms: float = 1000.0
    error_rate: float = 0.05
    p95_ms: float = 2000.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Thresholds":
        """Create Thresholds from dictionary."""
        defaults = cls()
        return cls(
            response_time_ms=data.get("response_time_ms", defaults.response_time_ms),
            error_rate=data.get("error_rate", defaults.error_rate),
            p95_ms=data.get("p95_ms", defaults.p95_ms),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "response_time_ms": self.response_time_ms,
            "error_rate": self.error_rate,
            "p95_ms": self.p95_ms,
        }

    def errors(self) -> list[str]:
        """Collect validation errors."""
        errors = []
        if self.response_time_ms <= 0:
            errors.append("thresholds.response_time_ms must be positive")
        if not 0 <= self.error_rate <= 1:
            errors.append("thresholds.error_rate must be between 0 and 1")
        if self.p95_ms <= 0:
            errors.append("thresholds.p95_ms must be positive")
        return errors


@dataclass(frozen=True)
class TestConfiguration:
    """
    Configuration of one bounded-duration run.

    A configuration is frozen; runs never mutate it.

    Attributes:
        name: Test name, also used in report file names
        duration: Run duration in seconds
        ramp_up_time: Seconds to ramp linearly to the target rate
        target_rate: Steady-state target in requests per second
        endpoints: URLs or paths to send requests to
        thresholds: Pass/fail limits
        method: HTTP method for every request
        max_in_flight: Optional cap on outstanding requests
    """

    __test__ = False  # Tell pytest this is not a test class

    SCHEMA = BASE_SCHEMA

    name: str
    duration: float = 60.0
    ramp_up_time: float = 0.0
    target_rate: float = 10.0
    endpoints: Sequence[str] = ()
    thresholds: Thresholds = field(default_factory=Thresholds)
    method: str = "GET"
    max_in_flight: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "endpoints", tuple(self.endpoints))

    def errors(self) -> list[str]:
        """Collect validation errors without raising."""
        errors = []
        if not self.name:
            errors.append("name must not be empty")
        if not self.endpoints:
            errors.append("at least one endpoint is required")
        if self.duration <= 0:
            errors.append(f"duration must be positive, got {self.duration}")
        if self.ramp_up_time < 0:
            errors.append(f"ramp_up_time must not be negative, got {self.ramp_up_time}")
        if self.target_rate <= 0:
            errors.append(f"target_rate must be positive, got {self.target_rate}")
        if self.method.upper() not in VALID_METHODS:
            errors.append(f"Invalid method: {self.method}. Must be one of {VALID_METHODS}")
        if self.max_in_flight is not None and self.max_in_flight < 1:
            errors.append("max_in_flight must be at least 1")
        errors.extend(self.thresholds.errors())
        return errors

    def validate(self) -> None:
        """
        Validate the configuration.

        Raises:
            ConfigurationError: If any check fails
        """
        errors = self.errors()
        if errors:
            raise ConfigurationError(
                f"Invalid configuration '{self.name}': {'; '.join(errors)}",
                errors,
            )

    @classmethod
    def _base_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "name": data["name"],
            "thresholds": Thresholds.from_dict(data.get("thresholds", {})),
            "method": data.get("method", "GET").upper(),
            "max_in_flight": data.get("max_in_flight"),
        }
        if "duration" in data:
            kwargs["duration"] = parse_duration(data["duration"])
        if "ramp_up_time" in data:
            kwargs["ramp_up_time"] = parse_duration(data["ramp_up_time"])
        if "target_rate" in data:
            kwargs["target_rate"] = float(data["target_rate"])
        if "endpoints" in data:
            kwargs["endpoints"] = tuple(data["endpoints"])
        return kwargs

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestConfiguration":
        """
        Create and validate a configuration from a dictionary.

        Raises:
            ConfigurationError: If the schema or semantic validation fails
        """
        # HTTP methods are accepted in any case
        if isinstance(data.get("method"), str):
            data = {**data, "method": data["method"].upper()}

        errors = validate_schema(data, cls.SCHEMA)
        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                errors,
            )
        config = cls(**cls._base_kwargs(data))
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: Path | str) -> "TestConfiguration":
        """
        Load and validate a configuration of this type from a YAML file.

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ConfigurationError: If the YAML is invalid or validation fails
        """
        return cls.from_dict(read_yaml(path))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "duration": self.duration,
            "ramp_up_time": self.ramp_up_time,
            "target_rate": self.target_rate,
            "endpoints": list(self.endpoints),
            "thresholds": self.thresholds.to_dict(),
            "method": self.method,
            "max_in_flight": self.max_in_flight,
        }


def load_config(path: Path | str) -> TestConfiguration:
    """
    Load a run configuration from a YAML file.

    The optional top-level ``mode`` key selects the configuration type:
    ``ramp`` (default), ``load`` for virtual users or ``stress``.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated configuration of the matching type

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConfigurationError: If the YAML is invalid or validation fails
    """
    from loadprobe.load.config import LoadTestConfiguration
    from loadprobe.stress.config import StressTestConfiguration

    data = read_yaml(path)
    mode = data.get("mode", "ramp")
    config_types: dict[str, type[TestConfiguration]] = {
        "ramp": TestConfiguration,
        "load": LoadTestConfiguration,
        "stress": StressTestConfiguration,
    }
    if mode not in config_types:
        raise ConfigurationError(
            f"Invalid mode: {mode}. Must be one of {VALID_MODES}",
            [f"mode: {mode!r} is not one of {VALID_MODES}"],
        )

    logger.debug("Loading %s configuration from %s", mode, path)
    return config_types[mode].from_dict(data)
