"""
Notivate Backend - Retry & Circuit Breaker
============================================

What:  The resilience primitives shared by the OCR and synthesis adapters.
How:   RetryPolicy builds a fresh tenacity AsyncRetrying per call (exponential
       backoff with jitter, bounded attempts, transient errors only).
       CircuitBreaker is a small in-process state machine per adapter.
Who:   VisionOCRService, GeminiService.

Error Handling Chain (per adapter call):
    circuit_breaker.can_execute()   → OPEN: fail fast with CircuitBreakerOpenError
    retry_policy.call(fn, deadline) → transient errors retried with backoff,
                                      all attempts bounded by the deadline
    success                         → record_success()
    any failure after retries       → record_failure(), adapter maps the error
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from notivate.config import Settings
from notivate.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that may resolve on their own. Auth errors, bad requests and
# malformed answers are not retried.
TRANSIENT_ERRORS = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    google_exceptions.ServiceUnavailable,      # 503
    google_exceptions.GatewayTimeout,          # 504, includes DeadlineExceeded
    google_exceptions.InternalServerError,     # 500
    google_exceptions.TooManyRequests,         # 429, includes ResourceExhausted
)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Tenacity settings for one adapter.

    Example: attempt 1 → ~2s wait, attempt 2 → ~4s wait (+ up to `jitter` s).
    """

    max_attempts: int = 3
    min_wait: float = 2
    max_wait: float = 10
    jitter: float = 1

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            min_wait=settings.retry_min_wait,
            max_wait=settings.retry_max_wait,
        )

    def retrying(self, log: logging.Logger = logger) -> AsyncRetrying:
        # New instance per call: AsyncRetrying keeps per-run statistics
        return AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.min_wait,
                max=self.max_wait,
                jitter=self.jitter,
            ),
            before_sleep=before_sleep_log(log, logging.WARNING),
            reraise=True,
        )

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        log: logging.Logger = logger,
        deadline: Optional[float] = None,
        **kwargs: Any,
    ) -> T:
        """
        Runs `fn` under this policy; the last exception is re-raised as-is.

        `deadline` bounds all attempts and backoff sleeps together. When it
        passes, the call in flight is cancelled and asyncio.TimeoutError is
        raised (never retried).
        """
        attempts = self.retrying(log)(fn, *args, **kwargs)
        if deadline is None:
            return await attempts
        return await asyncio.wait_for(attempts, timeout=deadline)


class CircuitBreaker:
    """
    Prevents cascade failures when an upstream is down.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Let requests through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not shared across processes: each uvicorn worker keeps its own breaker.
    All transitions happen without awaiting, so coroutines of one event loop
    never observe a half-applied state change.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        name: str = "upstream",
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    @classmethod
    def from_settings(cls, name: str, settings: Settings) -> "CircuitBreaker":
        return cls(
            name=name,
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    def can_execute(self) -> bool:
        """
        Returns True if a call may proceed.

        Raises:
            CircuitBreakerOpenError: OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = self._clock() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker '%s' transitioning to HALF_OPEN after %.1fs",
                    self.name,
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(1, int(self.recovery_timeout - elapsed))
            raise CircuitBreakerOpenError(service=self.name, recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker '%s' transitioning to CLOSED (service recovered)", self.name)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker '%s' returning to OPEN (test request failed)", self.name)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker '%s' OPENING after %d consecutive failures",
                self.name,
                self.failure_count,
            )
            self.state = self.OPEN
