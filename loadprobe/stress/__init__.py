"""
Stepped stress testing for finding breaking points.
"""

from .config import ResourceLimits, StressTestConfiguration
from .controller import (
    AdaptiveStepController,
    derive_system_limits,
    evaluate_step,
    run_stress_test_sync,
)
from .models import (
    BreakingPoint,
    LoadStep,
    StepState,
    StressTestResult,
    SystemLimits,
    Violation,
)

__all__ = [
    "AdaptiveStepController",
    "derive_system_limits",
    "evaluate_step",
    "run_stress_test_sync",
    "ResourceLimits",
    "StressTestConfiguration",
    "BreakingPoint",
    "LoadStep",
    "StepState",
    "StressTestResult",
    "SystemLimits",
    "Violation",
]
