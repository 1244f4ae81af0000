"""
Virtual-user traffic shape.

Instead of chasing a flat rate, a fixed population of virtual users each
loop: pick a weighted scenario, request its endpoint, pause for a random
think time, repeat until the run ends.
"""

import asyncio
import logging
import random
from typing import Optional, Sequence

from loadprobe.framework.aggregator import mean

from .config import LoadTestConfiguration, Scenario
from .generator import LoadGenerator, LoadRun
from .models import LoadTestResult, ScenarioStats, UserMetrics

logger = logging.getLogger(__name__)


def select_scenario(scenarios: Sequence[Scenario], rng: random.Random) -> Scenario:
    """Pick a scenario by cumulative weight.

    A draw in [0, 100) selects the first scenario whose cumulative weight
    exceeds it. A draw past the cumulative sum falls back to the first
    scenario.

    Args:
        scenarios: Scenarios with weights in percent
        rng: Random source

    Returns:
        The selected scenario
    """
    draw = rng.random() * 100
    cumulative = 0.0
    for scenario in scenarios:
        cumulative += scenario.weight
        if draw < cumulative:
            return scenario
    return scenarios[0]


class VirtualUserShape:
    """
    Keeps ``concurrent_users`` sessions running for the run duration.

    The active-user count is sampled once per interval for the average
    concurrency; each session records its requests under its scenario's
    own counters as well as in the run's global samples.
    """

    def __init__(
        self,
        config: LoadTestConfiguration,
        sample_interval_seconds: float = 1.0,
    ):
        """Initialize the shape.

        Args:
            config: Load test configuration
            sample_interval_seconds: Interval between active-user samples
        """
        self.config = config
        self.sample_interval_seconds = sample_interval_seconds
        self.scenario_stats = {s.name: ScenarioStats() for s in config.scenarios}
        self.active_users = 0
        self.peak_users = 0
        self.user_samples: list[int] = []

    def _think_time(self, rng: random.Random) -> float:
        think = self.config.think_time
        return rng.uniform(think.min_ms, think.max_ms) / 1000

    async def _run_session(self, run: LoadRun) -> None:
        try:
            while run.is_active():
                scenario = select_scenario(self.config.scenarios, run.rng)
                sample = await run.request(scenario.endpoint, scenario=scenario.name)
                self.scenario_stats[scenario.name].record(sample)
                await asyncio.sleep(self._think_time(run.rng))
        finally:
            self.active_users -= 1

    async def drive(self, run: LoadRun) -> None:
        sessions: list[asyncio.Task] = []
        tick = 0

        while run.is_active():
            while self.active_users < self.config.concurrent_users:
                sessions.append(asyncio.create_task(self._run_session(run)))
                self.active_users += 1
                self.peak_users = max(self.peak_users, self.active_users)

            self.user_samples.append(self.active_users)

            tick += 1
            next_at = min(tick * self.sample_interval_seconds, run.config.duration)
            await asyncio.sleep(max(next_at - run.elapsed(), 0.0))

        logger.debug("Waiting for %d virtual users to finish", self.active_users)
        await asyncio.gather(*sessions)

    def user_metrics(self) -> UserMetrics:
        """Concurrency summary of the sessions."""
        return UserMetrics(
            concurrent=self.active_users,
            peak=self.peak_users,
            average=mean(self.user_samples),
        )


class ConcurrentUserSimulator:
    """
    Runs virtual-user load tests on top of a LoadGenerator.
    """

    def __init__(
        self,
        generator: Optional[LoadGenerator] = None,
        sample_interval_seconds: float = 1.0,
    ):
        """Initialize the simulator.

        Args:
            generator: Engine providing the request primitive and aggregation
            sample_interval_seconds: Interval between active-user samples
        """
        self.generator = generator or LoadGenerator()
        self.sample_interval_seconds = sample_interval_seconds

    async def run(self, config: LoadTestConfiguration) -> LoadTestResult:
        """Run a virtual-user load test.

        Args:
            config: Load test configuration

        Returns:
            LoadTestResult with global, per-scenario and concurrency data

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        shape = VirtualUserShape(config, self.sample_interval_seconds)
        run = await self.generator.execute(config, shape)

        return LoadTestResult(
            result=run.result,
            scenario_results={
                name: stats.freeze() for name, stats in shape.scenario_stats.items()
            },
            user_metrics=shape.user_metrics(),
        )


def run_user_simulation_sync(
    config: LoadTestConfiguration,
    generator: Optional[LoadGenerator] = None,
) -> LoadTestResult:
    """Synchronous wrapper for running a virtual-user load test.

    Args:
        config: Load test configuration
        generator: Engine to run on, a default LoadGenerator otherwise

    Returns:
        LoadTestResult
    """
    simulator = ConcurrentUserSimulator(generator)
    return asyncio.run(simulator.run(config))
