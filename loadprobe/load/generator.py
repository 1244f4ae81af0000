"""
Load generation engine.

This module runs one bounded-duration test: a pluggable load shape decides
when requests are issued, while the engine owns the request primitive,
progress reporting, resource sampling and final aggregation.
"""

import asyncio
import contextlib
import logging
import math
import random
import time
from datetime import datetime
from typing import AsyncIterator, Optional, Protocol

import httpx

from loadprobe.framework.aggregator import aggregate
from loadprobe.framework.config import TestConfiguration
from loadprobe.framework.events import ErrorEvent, EventBus, ProgressEvent, RequestEvent
from loadprobe.framework.models import ResourceSample, SampleRecord, TestResult
from loadprobe.framework.requester import HttpRequester, RequestOutcome, Requester
from loadprobe.framework.resources import ResourceMonitor

logger = logging.getLogger(__name__)


def target_requests(target_rate: float, ramp_up_time: float, elapsed: float) -> int:
    """Number of requests that should have been started after ``elapsed`` seconds.

    The rate ramps linearly from zero to ``target_rate`` over
    ``ramp_up_time`` and stays flat afterwards; a ramp of 0 is flat from the
    start.

    Args:
        target_rate: Steady-state requests per second
        ramp_up_time: Ramp duration in seconds
        elapsed: Seconds since the run started

    Returns:
        Requests owed by ``elapsed``
    """
    if elapsed <= 0:
        return 0
    progress = 1.0 if ramp_up_time <= 0 else min(elapsed / ramp_up_time, 1.0)
    return math.floor(target_rate * progress * elapsed)


class LoadRun:
    """
    State of one run window.

    All mutation happens on the event loop thread inside a single
    scheduling turn, so counters and lists are updated without locks.
    """

    def __init__(
        self,
        config: TestConfiguration,
        requester: Requester,
        events: EventBus,
        rng: random.Random,
        clock=time.perf_counter,
    ):
        self.config = config
        self.requester = requester
        self.events = events
        self.rng = rng
        self.clock = clock

        self.samples: list[SampleRecord] = []
        self.resource_samples: list[ResourceSample] = []
        self.started_at = datetime.utcnow()
        self.issued = 0
        self.result: Optional[TestResult] = None

        self._start = clock()
        self._in_flight: set[asyncio.Task] = set()
        self._failed = 0
        self._latency_sum = 0.0

    def elapsed(self) -> float:
        """Seconds since the run started."""
        return self.clock() - self._start

    def remaining(self) -> float:
        """Seconds until the run duration elapses, never negative."""
        return max(self.config.duration - self.elapsed(), 0.0)

    def is_active(self) -> bool:
        """Whether new requests may still be issued."""
        return self.elapsed() < self.config.duration

    @property
    def in_flight(self) -> int:
        """Requests issued but not yet completed."""
        return len(self._in_flight)

    def at_capacity(self) -> bool:
        """Whether the optional in-flight cap is reached."""
        cap = self.config.max_in_flight
        return cap is not None and len(self._in_flight) >= cap

    def pick_endpoint(self) -> str:
        """Uniform random choice among configured endpoints."""
        return self.rng.choice(self.config.endpoints)

    async def request(self, endpoint: str, scenario: Optional[str] = None) -> SampleRecord:
        """Issue one request, record its sample and notify subscribers.

        Args:
            endpoint: Endpoint to request
            scenario: Scenario name recorded on the sample

        Returns:
            The recorded SampleRecord
        """
        start_time = time.perf_counter()
        try:
            outcome = await self.requester(endpoint)
        except Exception as e:
            logger.debug("Requester raised for %s: %s", endpoint, e)
            outcome = RequestOutcome(
                success=False,
                latency_ms=(time.perf_counter() - start_time) * 1000,
                error=f"{type(e).__name__}: {e}",
            )

        sample = SampleRecord(
            endpoint=endpoint,
            latency_ms=outcome.latency_ms,
            success=outcome.success,
            scenario=scenario,
            status_code=outcome.status_code,
            error=outcome.error,
        )
        self.samples.append(sample)
        self._latency_sum += sample.latency_ms
        if not sample.success:
            self._failed += 1

        if self.events.has_subscribers(RequestEvent):
            self.events.publish(RequestEvent(test_name=self.config.name, sample=sample))
        if not sample.success and self.events.has_subscribers(ErrorEvent):
            self.events.publish(ErrorEvent(test_name=self.config.name, sample=sample))

        return sample

    def issue(self, endpoint: str, scenario: Optional[str] = None) -> asyncio.Task:
        """Start a request without waiting for it."""
        self.issued += 1
        task = asyncio.create_task(self.request(endpoint, scenario))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def drain(self) -> None:
        """Wait until every issued request has completed."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight))

    def progress(self) -> ProgressEvent:
        """Snapshot of the run so far."""
        elapsed = self.elapsed()
        completed = len(self.samples)
        return ProgressEvent(
            test_name=self.config.name,
            elapsed_fraction=min(elapsed / self.config.duration, 1.0),
            current_rate=completed / elapsed if elapsed > 0 else 0.0,
            error_rate=self._failed / completed if completed else 0.0,
            mean_latency_ms=self._latency_sum / completed if completed else 0.0,
        )

    def finish(self) -> TestResult:
        """Aggregate the window into its TestResult."""
        self.result = aggregate(
            test_name=self.config.name,
            started_at=self.started_at,
            duration_seconds=self.config.duration,
            samples=self.samples,
            resource_samples=self.resource_samples,
            thresholds=self.config.thresholds,
        )
        return self.result


class LoadShape(Protocol):
    """Decides when requests are issued during a run."""

    async def drive(self, run: LoadRun) -> None:
        """Issue traffic until the run duration elapses."""
        ...


class RampShape:
    """
    Chases a linearly ramped request-rate target.

    On every tick the number of requests owed by the elapsed time is
    compared with the number already issued and the gap is closed. Once the
    duration elapses the requests owed at the boundary are issued and
    nothing more is started.
    """

    def __init__(self, tick_seconds: float = 0.05):
        """Initialize the shape.

        Args:
            tick_seconds: Interval between target re-evaluations
        """
        self.tick_seconds = tick_seconds

    def _top_up(self, run: LoadRun, elapsed: float) -> None:
        config = run.config
        owed = target_requests(config.target_rate, config.ramp_up_time, elapsed)
        while run.issued < owed and not run.at_capacity():
            run.issue(run.pick_endpoint())

    async def drive(self, run: LoadRun) -> None:
        while run.is_active():
            self._top_up(run, run.elapsed())
            await asyncio.sleep(min(self.tick_seconds, run.remaining()))
        self._top_up(run, run.config.duration)


class LoadGenerator:
    """
    Runs bounded-duration load tests.

    The generator validates the configuration, opens an HTTP client unless
    a requester was supplied, runs a load shape alongside the progress and
    resource loops, waits for every in-flight request and aggregates the
    window.
    """

    def __init__(
        self,
        requester: Optional[Requester] = None,
        events: Optional[EventBus] = None,
        resource_monitor: Optional[ResourceMonitor] = None,
        rng: Optional[random.Random] = None,
        base_url: str = "",
        timeout_seconds: float = 30.0,
        tick_seconds: float = 0.05,
        sample_interval_seconds: float = 1.0,
        progress_interval_seconds: float = 1.0,
    ):
        """Initialize the load generator.

        Args:
            requester: Request primitive, an httpx-backed one by default
            events: Bus for progress/request/error notifications
            resource_monitor: Process sampler, the current process by default
            rng: Random source for endpoint selection
            base_url: Base URL for relative endpoints of the default client
            timeout_seconds: Request timeout of the default client
            tick_seconds: Ramp re-evaluation interval
            sample_interval_seconds: Resource sampling interval
            progress_interval_seconds: Progress notification interval
        """
        self.requester = requester
        self.events = events or EventBus()
        self.resource_monitor = resource_monitor or ResourceMonitor()
        self.rng = rng or random.Random()
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.tick_seconds = tick_seconds
        self.sample_interval_seconds = sample_interval_seconds
        self.progress_interval_seconds = progress_interval_seconds

    @contextlib.asynccontextmanager
    async def _session(self, config: TestConfiguration) -> AsyncIterator[Requester]:
        if self.requester is not None:
            yield self.requester
            return

        # Offered load is unbounded unless the configuration caps it
        limits = httpx.Limits(
            max_connections=config.max_in_flight,
            max_keepalive_connections=config.max_in_flight or 100,
        )
        async with httpx.AsyncClient(base_url=self.base_url, limits=limits) as client:
            yield HttpRequester(
                client,
                method=config.method,
                timeout_seconds=self.timeout_seconds,
            )

    async def _monitor_progress(self, run: LoadRun) -> None:
        tick = 0
        while run.is_active():
            self.events.publish(run.progress())
            tick += 1
            next_at = min(tick * self.progress_interval_seconds, run.config.duration)
            await asyncio.sleep(max(next_at - run.elapsed(), 0.0))

    async def _sample_resources(self, run: LoadRun) -> None:
        # Each tick is sampled at the end of its interval; the last one at the
        # run boundary
        self.resource_monitor.start()
        tick = 0
        next_at = 0.0
        while next_at < run.config.duration:
            next_at = min((tick + 1) * self.sample_interval_seconds, run.config.duration)
            await asyncio.sleep(max(next_at - run.elapsed(), 0.0))
            sample = self.resource_monitor.sample(tick)
            if sample is not None:
                run.resource_samples.append(sample)
            tick += 1

    def ramp_shape(self) -> RampShape:
        """The default constant-ramp shape."""
        return RampShape(tick_seconds=self.tick_seconds)

    async def execute(
        self,
        config: TestConfiguration,
        shape: Optional[LoadShape] = None,
    ) -> LoadRun:
        """Run one window with a given load shape.

        Args:
            config: Run configuration
            shape: Load shape, the ramp shape by default

        Returns:
            The finished LoadRun, its ``result`` set

        Raises:
            ConfigurationError: If the configuration is invalid; no request
                is issued in that case
        """
        config.validate()
        shape = shape or self.ramp_shape()

        logger.info(
            "Starting %s: %.1fs at %.1f req/s (ramp-up %.1fs, %d endpoints)",
            config.name,
            config.duration,
            config.target_rate,
            config.ramp_up_time,
            len(config.endpoints),
        )

        async with self._session(config) as requester:
            run = LoadRun(config, requester, self.events, self.rng)
            monitors = [
                asyncio.create_task(self._monitor_progress(run)),
                asyncio.create_task(self._sample_resources(run)),
            ]
            try:
                await shape.drive(run)
                await run.drain()
                await asyncio.gather(*monitors)
            except BaseException:
                for task in monitors:
                    task.cancel()
                raise

        result = run.finish()
        logger.info(
            "Finished %s: %d requests, %.2f%% errors, mean %.1fms, p95 %.1fms",
            config.name,
            result.total_requests,
            result.error_rate * 100,
            result.latency.mean,
            result.latency.p95,
        )
        return run

    async def run(self, config: TestConfiguration) -> TestResult:
        """Run a constant-ramp test.

        Args:
            config: Run configuration

        Returns:
            TestResult of the run
        """
        run = await self.execute(config)
        return run.result


def run_load_test_sync(
    config: TestConfiguration,
    requester: Optional[Requester] = None,
    base_url: str = "",
) -> TestResult:
    """Synchronous wrapper for running a constant-ramp test.

    Args:
        config: Run configuration
        requester: Request primitive, an httpx-backed one by default
        base_url: Base URL for relative endpoints

    Returns:
        TestResult
    """
    generator = LoadGenerator(requester=requester, base_url=base_url)
    return asyncio.run(generator.run(config))
