"""Retry executor for upstream model calls.

Wraps one upstream call with tenacity, retrying only errors whose
classification marks them retryable:

- Overloaded (503): wait the current backoff, then double it.
- Rate limited (429): wait the advised delay plus a safety margin when
  the upstream gave one, otherwise the current backoff. Never doubles.
- Anything else propagates immediately.

No jitter is applied.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from shared.config import RetrySettings
from shared.errors import ErrorKind, OrchestratorError
from shared.logging import get_logger
from shared.models import RetryState

logger = get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, OrchestratorError) and exc.retryable


class RetryExecutor:
    """
    Executes an upstream operation with classification-driven backoff.

    State is kept per execute() call, so one executor can be shared by
    concurrent requests.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay_ms: float = 2000,
        rate_limit_margin_ms: float = 500,
        sleep: Optional[SleepFunc] = None
    ) -> None:
        """
        Initialize retry executor.

        Args:
            max_attempts: Total attempts including the first one
            base_delay_ms: Initial backoff for overloaded upstream
            rate_limit_margin_ms: Added to an advised rate-limit delay
            sleep: Coroutine used to wait between attempts
        """
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.rate_limit_margin_ms = rate_limit_margin_ms
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_settings(cls, settings: RetrySettings, sleep: Optional[SleepFunc] = None) -> "RetryExecutor":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_ms=settings.base_delay_ms,
            rate_limit_margin_ms=settings.rate_limit_margin_ms,
            sleep=sleep,
        )

    def compute_backoff_ms(self, error: OrchestratorError, state: RetryState) -> float:
        """
        Delay before retrying after the given error.

        Does not mutate state; doubling is applied by the caller.
        """
        if error.kind == ErrorKind.UPSTREAM_RATE_LIMITED and error.retry_after_seconds is not None:
            return error.retry_after_seconds * 1000 + self.rate_limit_margin_ms
        return state.current_backoff_ms

    def _wait_seconds(self, retry_state: RetryCallState, state: RetryState) -> float:
        error = retry_state.outcome.exception()
        state.last_error = error

        delay_ms = self.compute_backoff_ms(error, state)
        if error.kind == ErrorKind.UPSTREAM_OVERLOADED:
            state.current_backoff_ms *= 2

        return delay_ms / 1000

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            "Upstream call failed, retrying",
            kind=error.kind.value,
            upstream_status=error.upstream_status,
            attempt=retry_state.attempt_number,
            delay_ms=retry_state.next_action.sleep * 1000,
        )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run the operation, retrying retryable failures.

        Args:
            operation: Zero-argument coroutine factory performing one attempt

        Returns:
            The operation's result

        Raises:
            OrchestratorError: The last error once retries are exhausted,
                or the first non-retryable one
        """
        state = RetryState(current_backoff_ms=self.base_delay_ms)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception(_is_retryable),
            wait=lambda retry_state: self._wait_seconds(retry_state, state),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    state.attempts = attempt.retry_state.attempt_number
                    result = await operation()
        except OrchestratorError as e:
            if e.retryable:
                logger.error(
                    "Upstream retries exhausted",
                    kind=e.kind.value,
                    attempts=state.attempts
                )
            raise

        return result
