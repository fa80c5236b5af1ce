"""Tests for retry.py - bounded attempt-based retry.

This test suite covers:
- Success on the first and on a later attempt
- Exhaustion with and without a recorded error
- Fatal errors propagating unchanged
- Sleep count between attempts
"""

import pytest

from guest_agent.retry import (
    AttemptRetryStrategy,
    RetryableError,
    RetryableFunc,
    RetryExhaustedError,
)
from guest_agent.system.runner import CommandError


class ScriptedRetryable:
    """Returns or raises the scripted outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def attempt(self):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class TestAttemptRetryStrategy:
    """Tests for AttemptRetryStrategy.run()."""

    def test_success_on_first_attempt_does_not_sleep(self, sleeps):
        """Test that a retryable reporting done stops immediately."""
        retryable = ScriptedRetryable(False)

        AttemptRetryStrategy(5, 1.0, retryable, sleep=sleeps.append).run()

        assert retryable.calls == 1
        assert sleeps == []

    def test_retries_until_done(self, sleeps):
        """Test that True requests another attempt after the delay."""
        retryable = ScriptedRetryable(True, True, False)

        AttemptRetryStrategy(5, 0.5, retryable, sleep=sleeps.append).run()

        assert retryable.calls == 3
        assert sleeps == [0.5, 0.5]

    def test_exhaustion_without_error(self, sleeps):
        """Test exhaustion when every attempt asks for another."""
        retryable = ScriptedRetryable(True)

        with pytest.raises(RetryExhaustedError) as exc_info:
            AttemptRetryStrategy(3, 1.0, retryable, sleep=sleeps.append).run()

        assert retryable.calls == 3
        assert len(sleeps) == 2
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is None

    def test_exhaustion_carries_last_error(self, sleeps):
        """Test that the last retryable error is carried on exhaustion."""
        retryable = ScriptedRetryable(
            RetryableError("first"),
            RetryableError("second"),
        )

        with pytest.raises(RetryExhaustedError) as exc_info:
            AttemptRetryStrategy(2, 1.0, retryable, sleep=sleeps.append).run()

        assert str(exc_info.value.last_error) == "second"
        assert "second" in str(exc_info.value)

    def test_exhaustion_unwraps_underlying_cause(self, sleeps):
        """Test that a RetryableError raised from another error reports the cause."""
        underlying = CommandError(["monit", "status"], 1, stderr="connection refused")

        def attempt():
            raise RetryableError("not listening") from underlying

        with pytest.raises(RetryExhaustedError) as exc_info:
            AttemptRetryStrategy(2, 1.0, attempt, sleep=sleeps.append).run()

        assert exc_info.value.last_error is underlying
        assert exc_info.value.__cause__ is underlying

    def test_fatal_error_propagates_unchanged(self, sleeps):
        """Test that non-retryable errors stop retrying at once."""
        retryable = ScriptedRetryable(ValueError("broken"))

        with pytest.raises(ValueError, match="broken"):
            AttemptRetryStrategy(5, 1.0, retryable, sleep=sleeps.append).run()

        assert retryable.calls == 1
        assert sleeps == []

    def test_fatal_error_after_retries(self, sleeps):
        """Test that a fatal error on a later attempt still propagates."""
        retryable = ScriptedRetryable(RetryableError("wait"), RuntimeError("gone"))

        with pytest.raises(RuntimeError, match="gone"):
            AttemptRetryStrategy(5, 1.0, retryable, sleep=sleeps.append).run()

        assert retryable.calls == 2
        assert sleeps == [1.0]

    def test_accepts_plain_callable(self, sleeps):
        """Test that a bare callable is adapted to the retryable protocol."""
        results = iter([True, False])

        AttemptRetryStrategy(3, 1.0, lambda: next(results), sleep=sleeps.append).run()

        assert sleeps == [1.0]

    def test_single_attempt_never_sleeps(self, sleeps):
        """Test that one allowed attempt means no sleep at all."""
        with pytest.raises(RetryExhaustedError):
            AttemptRetryStrategy(1, 1.0, ScriptedRetryable(True), sleep=sleeps.append).run()

        assert sleeps == []

    @pytest.mark.parametrize("attempts", [0, -1])
    def test_rejects_non_positive_attempts(self, attempts):
        """Test that at least one attempt is required."""
        with pytest.raises(ValueError):
            AttemptRetryStrategy(attempts, 1.0, ScriptedRetryable(False))


class TestRetryableFunc:
    """Tests for RetryableFunc adapter."""

    def test_coerces_result_to_bool(self):
        """Test that truthy results request a retry."""
        assert RetryableFunc(lambda: 1).attempt() is True
        assert RetryableFunc(lambda: None).attempt() is False
