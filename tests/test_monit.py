"""Tests for services/monit.py and monit startup."""

import pytest

from guest_agent.retry import AttemptRetryStrategy, RetryableError, RetryExhaustedError
from guest_agent.services.monit import MonitRetryable, is_not_listening
from guest_agent.system.runner import CommandError


class TestIsNotListening:
    """Tests for is_not_listening()."""

    @pytest.mark.parametrize(
        "stderr",
        [
            "monit: error connecting to the monit daemon",
            "Cannot connect to monit daemon",
            "Connection refused",
        ],
    )
    def test_startup_messages(self, stderr):
        """Test messages printed while monit's HTTP interface starts."""
        assert is_not_listening(CommandError(["monit", "status"], 1, stderr=stderr)) is True

    def test_other_failures(self):
        """Test that unrelated failures are not mistaken for startup."""
        error = CommandError(["monit", "status"], 1, stderr="monit: permission denied")
        assert is_not_listening(error) is False


class TestMonitRetryable:
    """Tests for MonitRetryable.attempt()."""

    def test_success_is_done(self, fake_runner):
        """Test that a working monit ends the retry loop."""
        assert MonitRetryable(fake_runner).attempt() is False
        assert fake_runner.commands == [["monit", "status"]]

    def test_not_listening_is_retryable(self, fake_runner):
        """Test that a not-yet-listening monit asks for another attempt."""
        fake_runner.add_result("monit status", stderr="Connection refused", returncode=1)

        with pytest.raises(RetryableError) as exc_info:
            MonitRetryable(fake_runner).attempt()

        assert isinstance(exc_info.value.__cause__, CommandError)

    def test_other_errors_are_fatal(self, fake_runner):
        """Test that unexpected monit failures propagate as-is."""
        fake_runner.add_result("monit status", stderr="permission denied", returncode=1)

        with pytest.raises(CommandError):
            MonitRetryable(fake_runner).attempt()

    def test_retry_until_listening(self, fake_runner, sleeps):
        """Test the strategy keeps probing until monit answers."""
        fake_runner.add_result("monit status", stderr="Connection refused", returncode=1)
        fake_runner.add_result("monit status", stderr="Connection refused", returncode=1)
        fake_runner.add_result("monit status", stdout="The Monit daemon is running")

        AttemptRetryStrategy(10, 1.0, MonitRetryable(fake_runner), sleep=sleeps.append).run()

        assert fake_runner.commands == [["monit", "status"]] * 3
        assert sleeps == [1.0, 1.0]

    def test_exhaustion_reports_last_command_error(self, fake_runner, sleeps):
        """Test exhaustion carries the last monit failure."""
        fake_runner.add_result("monit status", stderr="Connection refused", returncode=1)

        with pytest.raises(RetryExhaustedError) as exc_info:
            AttemptRetryStrategy(4, 1.0, MonitRetryable(fake_runner), sleep=sleeps.append).run()

        assert isinstance(exc_info.value.last_error, CommandError)
        assert len(fake_runner.commands) == 4
        assert len(sleeps) == 3
