"""
Tests for stepped stress testing.

Most tests drive the controller with a scripted generator so step outcomes
are exact; one test runs real timed steps end to end.
"""

import asyncio
import random
import time
from datetime import datetime
from types import SimpleNamespace

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from loadprobe.framework.aggregator import aggregate
from loadprobe.framework.config import ConfigurationError, TestConfiguration
from loadprobe.framework.events import EventBus, StepCompleteEvent
from loadprobe.framework.models import ResourceSample, SampleRecord
from loadprobe.framework.requester import RequestOutcome
from loadprobe.framework.resources import ResourceMonitor
from loadprobe.load.generator import LoadGenerator
from loadprobe.stress.config import ResourceLimits, StressTestConfiguration
from loadprobe.stress.controller import (
    AdaptiveStepController,
    derive_system_limits,
    evaluate_step,
    run_stress_test_sync,
)
from loadprobe.stress.models import LoadStep, StepState, Violation


class ScriptedGenerator:
    """
    Generator stand-in producing exact step results.

    Each step issues ``target_rate * duration`` requests; steps whose index
    is in ``failing_steps`` fail every request. CPU is reported equal to the
    step's target rate.
    """

    def __init__(self, failing_steps=()):
        self.failing_steps = set(failing_steps)
        self.events = EventBus()
        self.configs: list[TestConfiguration] = []

    async def execute(self, config: TestConfiguration):
        self.configs.append(config)
        index = int(config.name.rsplit("-", 1)[1]) - 1
        success = index not in self.failing_steps
        count = int(config.target_rate * config.duration)
        samples = [
            SampleRecord(endpoint="/a", latency_ms=10.0, success=success)
            for _ in range(count)
        ]
        resource_samples = [
            ResourceSample(
                tick=tick,
                timestamp=datetime(2024, 1, 1),
                cpu_percent=config.target_rate,
                memory_mb=100.0,
            )
            for tick in range(2)
        ]
        result = aggregate(
            test_name=config.name,
            started_at=datetime(2024, 1, 1),
            duration_seconds=config.duration,
            samples=samples,
            resource_samples=resource_samples,
        )
        return SimpleNamespace(
            result=result,
            samples=samples,
            resource_samples=resource_samples,
        )


def _config(**overrides) -> StressTestConfiguration:
    values = {
        "name": "stress",
        "endpoints": ["/a"],
        "target_rate": 10,
        "max_load": 100,
        "increment_step": 30,
        "step_duration": 1,
        "failure_threshold": 0.1,
    }
    values.update(overrides)
    return StressTestConfiguration(**values)


def _step(index, target_rate, cpu=0.0, memory=0.0, failed=0, total=10, violations=()):
    samples = [
        SampleRecord(endpoint="/a", latency_ms=5.0, success=i >= failed)
        for i in range(total)
    ]
    resource_samples = [ResourceSample(0, datetime(2024, 1, 1), cpu, memory)]
    result = aggregate(f"s-{index}", datetime(2024, 1, 1), 1.0, samples, resource_samples)
    return LoadStep(index, target_rate, result, tuple(violations))


class TestEvaluateStep:
    """Tests for the step violation predicate."""

    def test_error_rate_above_threshold(self):
        step = _step(0, 10, failed=2)

        assert evaluate_step(step.result, 0.1, ResourceLimits()) == [Violation.ERROR_RATE]

    def test_error_rate_at_threshold_is_sustainable(self):
        step = _step(0, 10, failed=1)

        assert evaluate_step(step.result, 0.1, ResourceLimits()) == []

    def test_resource_limits(self):
        step = _step(0, 10, cpu=95.0, memory=600.0)
        limits = ResourceLimits(cpu_percent=90, memory_mb=512, response_time_ms=1)

        violations = evaluate_step(step.result, 0.1, limits)

        assert violations == [Violation.CPU, Violation.MEMORY, Violation.RESPONSE_TIME]

    def test_unset_limits_not_enforced(self):
        step = _step(0, 10, cpu=1000.0, memory=1e6)

        assert evaluate_step(step.result, 0.1, ResourceLimits()) == []


class TestDeriveSystemLimits:
    """Tests for system limit derivation."""

    def test_max_sustainable_ignores_violating_steps(self):
        steps = [
            _step(0, 10, total=10),
            _step(1, 40, total=40),
            _step(2, 70, total=70, violations=[Violation.ERROR_RATE]),
        ]

        limits = derive_system_limits(steps, ResourceLimits())

        assert limits.max_sustainable_rate == 40
        assert limits.cpu_saturation_point == 0
        assert limits.memory_saturation_point == 0

    def test_saturation_at_first_step_reaching_limit(self):
        steps = [
            _step(0, 10, cpu=20, memory=100),
            _step(1, 40, cpu=50, memory=200),
            _step(2, 70, cpu=80, memory=300),
        ]

        limits = derive_system_limits(steps, ResourceLimits(cpu_percent=50, memory_mb=300))

        assert limits.cpu_saturation_point == 40
        assert limits.memory_saturation_point == 70

    def test_no_sustainable_step(self):
        steps = [_step(0, 10, failed=10, violations=[Violation.ERROR_RATE])]

        assert derive_system_limits(steps, ResourceLimits()).max_sustainable_rate == 0


class TestAdaptiveStepController:
    """Tests for AdaptiveStepController runs."""

    @pytest.mark.asyncio
    async def test_max_load_reached(self):
        generator = ScriptedGenerator()
        controller = AdaptiveStepController(generator)

        result = await controller.run(_config())

        assert [s.target_rate for s in result.steps] == [10, 40, 70, 100]
        assert result.final_state is StepState.MAX_LOAD_REACHED
        assert controller.state is StepState.MAX_LOAD_REACHED
        assert not result.breaking_point.violated
        assert result.breaking_point.target_rate == 100
        assert result.system_limits.max_sustainable_rate == 100
        assert result.result.total_requests == 220
        assert result.result.duration_seconds == 4

    @pytest.mark.asyncio
    async def test_breaking_point_on_error_rate(self):
        generator = ScriptedGenerator(failing_steps={2})

        result = await AdaptiveStepController(generator).run(_config())

        assert [s.target_rate for s in result.steps] == [10, 40, 70]
        assert result.final_state is StepState.BREAKING_POINT_FOUND
        assert result.breaking_point.violated
        assert result.breaking_point.target_rate == 70
        assert result.breaking_point.rate == 70
        assert result.system_limits.max_sustainable_rate == 40

    @pytest.mark.asyncio
    async def test_cpu_limit_breaks_and_saturates(self):
        generator = ScriptedGenerator()
        config = _config(resource_limits=ResourceLimits(cpu_percent=50))

        result = await AdaptiveStepController(generator).run(config)

        assert result.breaking_point.step.violations == (Violation.CPU,)
        assert result.breaking_point.target_rate == 70
        assert result.system_limits.cpu_saturation_point == 70

    @pytest.mark.asyncio
    async def test_step_configurations(self):
        generator = ScriptedGenerator()

        await AdaptiveStepController(generator).run(_config(step_duration=2))

        assert [c.name for c in generator.configs] == [
            "stress-step-1", "stress-step-2", "stress-step-3", "stress-step-4",
        ]
        assert all(c.duration == 2 and c.ramp_up_time == 1 for c in generator.configs)

    @pytest.mark.asyncio
    async def test_resource_series_reindexed(self):
        result = await AdaptiveStepController(ScriptedGenerator()).run(_config())

        assert len(result.result.cpu_usage) == 8
        assert result.result.cpu_usage == (10, 10, 40, 40, 70, 70, 100, 100)

    @pytest.mark.asyncio
    async def test_step_complete_events(self):
        generator = ScriptedGenerator(failing_steps={1})
        completed = []
        generator.events.subscribe(StepCompleteEvent, completed.append)

        result = await AdaptiveStepController(generator).run(_config())

        assert [e.step for e in completed] == list(result.steps)

    @pytest.mark.asyncio
    async def test_invalid_configuration(self):
        generator = ScriptedGenerator()

        with pytest.raises(ConfigurationError):
            await AdaptiveStepController(generator).run(_config(increment_step=0))

        assert generator.configs == []

    @pytest.mark.property
    @given(
        target_rate=st.integers(min_value=1, max_value=20),
        increment=st.integers(min_value=1, max_value=20),
        extra_steps=st.integers(min_value=0, max_value=8),
        failing=st.sets(st.integers(min_value=0, max_value=10), max_size=4),
    )
    @settings(max_examples=100)
    def test_stops_at_first_violation(self, target_rate, increment, extra_steps, failing):
        config = _config(
            target_rate=target_rate,
            increment_step=increment,
            max_load=target_rate + increment * extra_steps,
        )
        generator = ScriptedGenerator(failing_steps=failing)

        result = asyncio.run(AdaptiveStepController(generator).run(config))

        rates = [s.target_rate for s in result.steps]
        assert all(a < b for a, b in zip(rates, rates[1:]))
        assert all(not s.violated for s in result.steps[:-1])
        assert max(rates) <= config.max_load

        first_failing = min((i for i in failing if i <= extra_steps), default=None)
        if first_failing is None:
            assert result.final_state is StepState.MAX_LOAD_REACHED
            assert len(result.steps) == config.planned_steps
        else:
            assert result.final_state is StepState.BREAKING_POINT_FOUND
            assert len(result.steps) == first_failing + 1
            assert result.breaking_point.step is result.steps[-1]
            assert result.breaking_point.rate <= result.breaking_point.target_rate
            assert result.system_limits.max_sustainable_rate < result.breaking_point.rate


@pytest.mark.slow
@pytest.mark.asyncio
async def test_stress_against_degrading_service(resource_monitor):
    controller = None
    issued = 0

    async def requester(endpoint):
        nonlocal issued
        issued += 1
        n = issued
        await asyncio.sleep(0.005)
        if controller.current_rate > 40 and n % 2:
            return RequestOutcome(success=False, latency_ms=5.0, status_code=503, error="HTTP 503")
        return RequestOutcome(success=True, latency_ms=5.0, status_code=200)

    generator = LoadGenerator(
        requester=requester,
        resource_monitor=resource_monitor,
        rng=random.Random(3),
        tick_seconds=0.01,
    )
    controller = AdaptiveStepController(generator)

    result = await controller.run(_config())

    assert [s.target_rate for s in result.steps] == [10, 40, 70]
    assert result.final_state is StepState.BREAKING_POINT_FOUND
    assert result.breaking_point.violated
    assert result.breaking_point.rate <= result.breaking_point.target_rate
    assert result.system_limits.max_sustainable_rate < result.breaking_point.rate
    assert result.steps[-1].error_rate == pytest.approx(0.5, abs=0.02)


def test_run_stress_test_sync():
    result = run_stress_test_sync(_config(max_load=40), ScriptedGenerator())

    assert result.test_name == "stress"
    assert result.final_state is StepState.MAX_LOAD_REACHED
    assert [s.target_rate for s in result.steps] == [10, 40]


@pytest.mark.slow
@pytest.mark.asyncio
async def test_cpu_bound_step_violates_cpu_limit():
    async def busy(endpoint):
        end = time.perf_counter() + 0.02
        while time.perf_counter() < end:
            pass
        return RequestOutcome(success=True, latency_ms=20.0, status_code=200)

    generator = LoadGenerator(requester=busy, resource_monitor=ResourceMonitor())
    config = _config(
        target_rate=40,
        max_load=40,
        resource_limits=ResourceLimits(cpu_percent=30),
    )

    result = await AdaptiveStepController(generator).run(config)

    assert len(result.steps) == 1
    assert result.steps[0].cpu_usage > 30
    assert Violation.CPU in result.breaking_point.step.violations
    assert result.final_state is StepState.BREAKING_POINT_FOUND
    assert result.system_limits.cpu_saturation_point == 40


class TestControllerEvents:
    """Tests for the controller's event bus."""

    def test_uses_generator_bus(self):
        generator = ScriptedGenerator()

        assert AdaptiveStepController(generator).events is generator.events
        assert AdaptiveStepController(generator, generator.events).events is generator.events

    def test_default_generator_shares_given_bus(self):
        events = EventBus()

        controller = AdaptiveStepController(events=events)

        assert controller.generator.events is events
        assert controller.events is events

    def test_separate_bus_rejected(self):
        with pytest.raises(ValueError, match="generator's event bus"):
            AdaptiveStepController(ScriptedGenerator(), EventBus())


@pytest.mark.parametrize(
    "state, terminal",
    [
        (StepState.STEPPING, False),
        (StepState.BREAKING_POINT_FOUND, True),
        (StepState.MAX_LOAD_REACHED, True),
    ],
)
def test_step_state_is_terminal(state, terminal):
    assert state.is_terminal is terminal
