"""
Live notification stream for running tests.

Events are published synchronously to subscribers. They carry no
acknowledgment or backpressure and never feed back into load control.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from .models import SampleRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """
    Periodic progress of a run.

    Attributes:
        test_name: Name of the running test
        elapsed_fraction: Elapsed time over duration, capped at 1
        current_rate: Completed requests per second so far
        error_rate: Failed over completed requests so far
        mean_latency_ms: Mean latency of completed requests so far
    """

    test_name: str
    elapsed_fraction: float
    current_rate: float
    error_rate: float
    mean_latency_ms: float


@dataclass(frozen=True)
class RequestEvent:
    """A request completed with a response."""

    test_name: str
    sample: SampleRecord


@dataclass(frozen=True)
class ErrorEvent:
    """A request failed."""

    test_name: str
    sample: SampleRecord


@dataclass(frozen=True)
class StepCompleteEvent:
    """A stress step finished; ``step`` is its full LoadStep aggregate."""

    test_name: str
    step: Any


Event = TypeVar("Event")
Handler = Callable[[Any], None]


class EventBus:
    """
    Typed publish/subscribe channel.

    Handlers subscribe to an event class and receive every published
    instance of it. A handler that raises is logged and skipped.
    """

    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(
        self,
        event_type: type[Event],
        handler: Callable[[Event], None],
    ) -> Callable[[], None]:
        """Register a handler.

        Args:
            event_type: Event class to listen for
            handler: Callable receiving each event

        Returns:
            Function that removes the subscription
        """
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event: Any) -> None:
        """Deliver an event to every handler of its type."""
        for handler in list(self._handlers.get(type(event), ())):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler %r failed for %s", handler, type(event).__name__
                )

    def has_subscribers(self, event_type: Optional[type] = None) -> bool:
        """Check whether anything listens for an event type (or any type)."""
        if event_type is None:
            return any(self._handlers.values())
        return bool(self._handlers.get(event_type))
