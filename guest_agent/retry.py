"""Bounded attempt-based retry.

A retryable decides per attempt whether another attempt is wanted:

    attempt() returns False      -> done
    attempt() returns True       -> try again (no error recorded)
    attempt() raises RetryableError -> try again, error recorded
    attempt() raises anything else  -> fatal, propagated unchanged

Once the attempt budget is spent, RetryExhaustedError carries the last
underlying error so callers can tell "gave up after N tries due to X" from a
single fatal failure.

Example:
    >>> strategy = AttemptRetryStrategy(10, 1.0, MonitRetryable(runner))
    >>> strategy.run()
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Protocol, Union

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from guest_agent.logging import get_logger


class RetryableError(Exception):
    """Raised by a retryable to request another attempt."""


class RetryExhaustedError(Exception):
    """All attempts were used without the retryable reporting success."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        msg = f"Gave up after {attempts} attempt(s)"
        if last_error is not None:
            msg += f": {last_error}"
        super().__init__(msg)


class Retryable(Protocol):
    def attempt(self) -> bool:
        ...


class RetryableFunc:
    """Adapts a plain callable to the Retryable protocol."""

    def __init__(self, func: Callable[[], bool]):
        self.func = func

    def attempt(self) -> bool:
        return bool(self.func())


def _wants_retry(should_retry) -> bool:
    return bool(should_retry)


class AttemptRetryStrategy:
    def __init__(
        self,
        max_attempts: int,
        delay: float,
        retryable: Union[Retryable, Callable[[], bool]],
        sleep: Callable[[float], None] = time.sleep,
        name: str = "retry",
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delay = delay
        self.retryable = retryable if hasattr(retryable, "attempt") else RetryableFunc(retryable)
        self._sleep = sleep
        self.log = get_logger(source=name, tags=[name, "retry"])

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        reason = ""
        if outcome is not None and outcome.failed:
            reason = f": {outcome.exception()}"
        self.log.debug(
            f"Attempt {retry_state.attempt_number}/{self.max_attempts} requested retry"
            f"{reason}; sleeping {self.delay:g}s"
        )

    def run(self) -> None:
        """Run the retryable until it succeeds, fails fatally or runs out of attempts.

        Raises:
            RetryExhaustedError: If every attempt asked for a retry
            Exception: Whatever a retryable raised as a non-retryable failure
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.delay),
            retry=retry_if_exception_type(RetryableError) | retry_if_result(_wants_retry),
            sleep=self._sleep,
            before_sleep=self._before_sleep,
            reraise=False,
        )
        try:
            retrying(self.retryable.attempt)
        except RetryError as error:
            last_attempt = error.last_attempt
            last_error = last_attempt.exception() if last_attempt.failed else None
            if isinstance(last_error, RetryableError) and last_error.__cause__ is not None:
                last_error = last_error.__cause__
            self.log.warning(f"Gave up after {self.max_attempts} attempt(s)")
            raise RetryExhaustedError(self.max_attempts, last_error) from last_error
