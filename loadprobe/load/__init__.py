"""
Load generation: constant-ramp runs and virtual-user simulation.

This package provides:
- LoadGenerator: Runs one bounded-duration test against a set of endpoints
- ConcurrentUserSimulator: Virtual users looping over weighted scenarios
"""

from .config import LoadTestConfiguration, Scenario, ThinkTime
from .generator import (
    LoadGenerator,
    LoadRun,
    LoadShape,
    RampShape,
    run_load_test_sync,
    target_requests,
)
from .models import LoadTestResult, ScenarioResult, UserMetrics
from .users import (
    ConcurrentUserSimulator,
    VirtualUserShape,
    run_user_simulation_sync,
    select_scenario,
)

__all__ = [
    # Generator
    "LoadGenerator",
    "LoadRun",
    "LoadShape",
    "RampShape",
    "run_load_test_sync",
    "target_requests",
    # Virtual users
    "ConcurrentUserSimulator",
    "VirtualUserShape",
    "run_user_simulation_sync",
    "select_scenario",
    # Config and results
    "LoadTestConfiguration",
    "Scenario",
    "ThinkTime",
    "LoadTestResult",
    "ScenarioResult",
    "UserMetrics",
]
