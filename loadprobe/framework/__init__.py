"""
Shared building blocks of the load testing engine.

This package provides:
- Configuration loading and validation
- Raw sample and aggregate result models
- Result aggregation (latency statistics, error rate, throughput)
- The HTTP request primitive, resource sampling and notifications
- Report persistence
"""

from .aggregator import aggregate, evaluate_thresholds, latency_stats, p95
from .config import (
    ConfigurationError,
    TestConfiguration,
    Thresholds,
    load_config,
    parse_duration,
)
from .events import (
    ErrorEvent,
    EventBus,
    ProgressEvent,
    RequestEvent,
    StepCompleteEvent,
)
from .log import configure_logging
from .models import LatencyStats, ResourceSample, SampleRecord, TestResult
from .reporter import ReportPersistenceError, ReportWriter
from .requester import HttpRequester, RequestOutcome
from .resources import ResourceMonitor

__all__ = [
    # Config
    "ConfigurationError",
    "TestConfiguration",
    "Thresholds",
    "load_config",
    "parse_duration",
    # Models
    "LatencyStats",
    "ResourceSample",
    "SampleRecord",
    "TestResult",
    # Aggregation
    "aggregate",
    "evaluate_thresholds",
    "latency_stats",
    "p95",
    # Events
    "EventBus",
    "ProgressEvent",
    "RequestEvent",
    "ErrorEvent",
    "StepCompleteEvent",
    # Requests and resources
    "HttpRequester",
    "RequestOutcome",
    "ResourceMonitor",
    # Reporting
    "ReportWriter",
    "ReportPersistenceError",
    # Logging
    "configure_logging",
]
