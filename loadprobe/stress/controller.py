"""
Adaptive stepped stress testing.

The controller drives fixed-duration LoadGenerator runs at increasing
target rates and stops at the first step that violates a limit, or when
the next step would exceed the maximum load. The breaking point and the
system limits are derived from the resulting step sequence.
"""

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Optional, Sequence

from loadprobe.framework.aggregator import aggregate
from loadprobe.framework.events import EventBus, StepCompleteEvent
from loadprobe.framework.models import ResourceSample, SampleRecord, TestResult
from loadprobe.load.generator import LoadGenerator

from .config import ResourceLimits, StressTestConfiguration
from .models import (
    BreakingPoint,
    LoadStep,
    StepState,
    StressTestResult,
    SystemLimits,
    Violation,
)

logger = logging.getLogger(__name__)


def evaluate_step(
    result: TestResult,
    failure_threshold: float,
    limits: ResourceLimits,
) -> list[Violation]:
    """Check one step's aggregate against the stress limits.

    Args:
        result: TestResult of the step
        failure_threshold: Maximum error rate
        limits: CPU, memory and latency limits

    Returns:
        Violated limits, empty when the step is sustainable
    """
    violations = []
    if result.error_rate > failure_threshold:
        violations.append(Violation.ERROR_RATE)
    if limits.cpu_percent is not None and result.cpu_avg > limits.cpu_percent:
        violations.append(Violation.CPU)
    if limits.memory_mb is not None and result.memory_avg > limits.memory_mb:
        violations.append(Violation.MEMORY)
    if (
        limits.response_time_ms is not None
        and result.latency.mean > limits.response_time_ms
    ):
        violations.append(Violation.RESPONSE_TIME)
    return violations


def derive_system_limits(
    steps: Sequence[LoadStep],
    limits: ResourceLimits,
) -> SystemLimits:
    """Derive system limits from a step sequence.

    Args:
        steps: Steps in execution order
        limits: Configured resource limits

    Returns:
        SystemLimits; saturation points are 0 when never reached
    """
    sustainable = [step.achieved_rate for step in steps if not step.violated]

    cpu_point = 0.0
    if limits.cpu_percent is not None:
        cpu_point = next(
            (s.target_rate for s in steps if s.cpu_usage >= limits.cpu_percent),
            0.0,
        )

    memory_point = 0.0
    if limits.memory_mb is not None:
        memory_point = next(
            (s.target_rate for s in steps if s.memory_usage >= limits.memory_mb),
            0.0,
        )

    return SystemLimits(
        max_sustainable_rate=max(sustainable, default=0.0),
        cpu_saturation_point=cpu_point,
        memory_saturation_point=memory_point,
    )


class AdaptiveStepController:
    """
    Runs stepped stress tests.

    Each step reuses the LoadGenerator's ramp issuance with a ramp-up of
    half the step duration. The controller state moves from STEPPING to
    BREAKING_POINT_FOUND or MAX_LOAD_REACHED and never back.
    """

    def __init__(
        self,
        generator: Optional[LoadGenerator] = None,
        events: Optional[EventBus] = None,
    ):
        """Initialize the controller.

        Step notifications go to the same bus as the generator's progress,
        request and error events.

        Args:
            generator: Engine used for every step
            events: Event bus, the generator's by default

        Raises:
            ValueError: If ``events`` is not the given generator's bus
        """
        if generator is not None and events is not None and events is not generator.events:
            raise ValueError("events must be the generator's event bus")
        self.generator = generator or LoadGenerator(events=events)
        self.events = self.generator.events
        self.state = StepState.STEPPING
        self._current_rate = 0.0

    @property
    def current_rate(self) -> float:
        """Target rate of the step in progress (or the last one run)."""
        return self._current_rate

    def _transition(self, step: LoadStep, config: StressTestConfiguration) -> StepState:
        if step.violated:
            return StepState.BREAKING_POINT_FOUND
        if step.target_rate + config.increment_step > config.max_load:
            return StepState.MAX_LOAD_REACHED
        return StepState.STEPPING

    async def run(self, config: StressTestConfiguration) -> StressTestResult:
        """Run the stress test.

        Args:
            config: Stress test configuration

        Returns:
            StressTestResult with steps, breaking point and system limits

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config.validate()

        started_at = datetime.utcnow()
        self.state = StepState.STEPPING
        steps: list[LoadStep] = []
        samples: list[SampleRecord] = []
        resource_samples: list[ResourceSample] = []
        rate = config.target_rate

        logger.info(
            "Starting stress test %s: %.1f -> %.1f req/s in steps of %.1f (%.1fs each)",
            config.name,
            config.target_rate,
            config.max_load,
            config.increment_step,
            config.step_duration,
        )

        while not self.state.is_terminal:
            self._current_rate = rate
            step_run = await self.generator.execute(
                config.step_configuration(len(steps), rate)
            )

            samples.extend(step_run.samples)
            offset = len(resource_samples)
            resource_samples.extend(
                dataclasses.replace(sample, tick=offset + i)
                for i, sample in enumerate(step_run.resource_samples)
            )

            step = LoadStep(
                index=len(steps),
                target_rate=rate,
                result=step_run.result,
                violations=tuple(
                    evaluate_step(
                        step_run.result,
                        config.failure_threshold,
                        config.resource_limits,
                    )
                ),
            )
            steps.append(step)
            self.events.publish(StepCompleteEvent(test_name=config.name, step=step))

            logger.info(
                "Step %d at %.1f req/s: achieved %.1f req/s, %.2f%% errors, mean %.1fms%s",
                step.index + 1,
                step.target_rate,
                step.achieved_rate,
                step.error_rate * 100,
                step.mean_latency_ms,
                f", violated {', '.join(v.value for v in step.violations)}"
                if step.violated else "",
            )

            self.state = self._transition(step, config)
            if self.state is StepState.STEPPING:
                rate += config.increment_step

        last = steps[-1]
        breaking_point = BreakingPoint(
            step=last,
            violated=self.state is StepState.BREAKING_POINT_FOUND,
        )
        if breaking_point.violated:
            logger.warning(
                "Breaking point found for %s at %.1f req/s (target %.1f)",
                config.name,
                breaking_point.rate,
                breaking_point.target_rate,
            )
        else:
            logger.info("Max load reached for %s without a violation", config.name)

        overall = aggregate(
            test_name=config.name,
            started_at=started_at,
            duration_seconds=len(steps) * config.step_duration,
            samples=samples,
            resource_samples=resource_samples,
            thresholds=config.thresholds,
        )

        return StressTestResult(
            result=overall,
            steps=tuple(steps),
            breaking_point=breaking_point,
            system_limits=derive_system_limits(steps, config.resource_limits),
            final_state=self.state,
        )


def run_stress_test_sync(
    config: StressTestConfiguration,
    generator: Optional[LoadGenerator] = None,
) -> StressTestResult:
    """Synchronous wrapper for running a stress test.

    Args:
        config: Stress test configuration
        generator: Engine to run steps on, a default LoadGenerator otherwise

    Returns:
        StressTestResult
    """
    controller = AdaptiveStepController(generator)
    return asyncio.run(controller.run(config))
