"""Bounded retry policy for CircleCI API calls."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from circleci_provisioner.client.errors import APIError, RetryExhaustedError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 300.0


def is_retryable(exc: BaseException) -> bool:
    """Only 429/500/502/503 API responses are retried."""
    return isinstance(exc, APIError) and exc.is_retryable


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    exc = outcome.exception() if outcome is not None else None
    delay = retry_state.next_action.sleep if retry_state.next_action is not None else 0.0
    logger.info(
        "Retryable error on attempt %d (%s); backing off %.1fs",
        retry_state.attempt_number,
        exc,
        delay,
    )


class RetryPolicy:
    """Retry retryable API errors within a total time budget.

    Backoff is exponential (``initial_wait`` doubling up to ``max_wait``).
    When the budget (or the optional attempt ceiling) is exhausted, the last
    error is raised wrapped in ``RetryExhaustedError``. Terminal errors are
    re-raised unchanged after the first attempt.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int | None = None,
        initial_wait: float = 1.0,
        max_wait: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if timeout < 0:
            raise ValueError("timeout must be >= 0")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.initial_wait = initial_wait
        self.max_wait = max_wait
        self._sleep = sleep

    def _retrying(self) -> Retrying:
        stop = stop_after_delay(self.timeout)
        if self.max_attempts is not None:
            stop = stop | stop_after_attempt(self.max_attempts)
        return Retrying(
            retry=retry_if_exception(is_retryable),
            stop=stop,
            wait=wait_exponential(multiplier=self.initial_wait, max=self.max_wait),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=False,
        )

    def call(self, fn: Callable[..., T], /, *args: object, **kwargs: object) -> T:
        """Invoke ``fn(*args, **kwargs)`` under this policy."""
        try:
            return self._retrying()(fn, *args, **kwargs)
        except RetryError as e:
            last = e.last_attempt
            exc = last.exception()
            if exc is None:
                raise
            raise RetryExhaustedError(exc, last.attempt_number) from exc
