"""
Adaptive load and stress testing for HTTP endpoints.

Three run modes share one engine and one aggregator:
- Constant ramp: LoadGenerator chases a linearly ramped request rate
- Virtual users: ConcurrentUserSimulator loops users over weighted scenarios
- Stress: AdaptiveStepController steps the rate up until a limit breaks
"""

from .framework import (
    ConfigurationError,
    EventBus,
    ReportPersistenceError,
    ReportWriter,
    TestConfiguration,
    TestResult,
    Thresholds,
    configure_logging,
    load_config,
)
from .load import (
    ConcurrentUserSimulator,
    LoadGenerator,
    LoadTestConfiguration,
    LoadTestResult,
    Scenario,
    ThinkTime,
)
from .stress import (
    AdaptiveStepController,
    ResourceLimits,
    StressTestConfiguration,
    StressTestResult,
)

__version__ = "0.1.0"

__all__ = [
    "AdaptiveStepController",
    "ConcurrentUserSimulator",
    "ConfigurationError",
    "EventBus",
    "LoadGenerator",
    "LoadTestConfiguration",
    "LoadTestResult",
    "ReportPersistenceError",
    "ReportWriter",
    "ResourceLimits",
    "Scenario",
    "StressTestConfiguration",
    "StressTestResult",
    "TestConfiguration",
    "TestResult",
    "ThinkTime",
    "Thresholds",
    "configure_logging",
    "load_config",
]
