"""
Request primitive used by every traffic shape.

A requester is any async callable taking an endpoint and returning a
RequestOutcome. It never raises for a failed request; failures are part of
the outcome.
"""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestOutcome:
    """
    Result of one request.

    Attributes:
        success: True for a 2xx response
        latency_ms: Time until response or failure
        status_code: HTTP status, None on transport failure
        error: Failure description, None on success
    """

    success: bool
    latency_ms: float
    status_code: Optional[int] = None
    error: Optional[str] = None


Requester = Callable[[str], Awaitable[RequestOutcome]]


class HttpRequester:
    """
    Issues single HTTP requests through a shared httpx.AsyncClient.

    Non-2xx responses, timeouts and connection errors are reported as failed
    outcomes.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        method: str = "GET",
        timeout_seconds: float = 30.0,
    ):
        """Initialize the requester.

        Args:
            client: Client used for every request
            method: HTTP method
            timeout_seconds: Per-request timeout
        """
        self.client = client
        self.method = method.upper()
        self.timeout_seconds = timeout_seconds

    async def __call__(self, endpoint: str) -> RequestOutcome:
        """Send one request and measure its latency.

        Args:
            endpoint: Absolute URL, or a path relative to the client base URL

        Returns:
            RequestOutcome
        """
        start_time = time.perf_counter()
        try:
            response = await self.client.request(
                self.method,
                endpoint,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.debug("Request to %s timed out: %s", endpoint, e)
            return RequestOutcome(
                success=False,
                latency_ms=latency_ms,
                error=f"timeout: {e}",
            )
        except httpx.HTTPError as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.debug("Request to %s failed: %s", endpoint, e)
            return RequestOutcome(
                success=False,
                latency_ms=latency_ms,
                error=f"{type(e).__name__}: {e}",
            )

        latency_ms = (time.perf_counter() - start_time) * 1000
        if response.is_success:
            return RequestOutcome(
                success=True,
                latency_ms=latency_ms,
                status_code=response.status_code,
            )

        return RequestOutcome(
            success=False,
            latency_ms=latency_ms,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}",
        )
