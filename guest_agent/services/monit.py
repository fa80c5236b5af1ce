"""Process supervisor (monit) readiness probing."""

from __future__ import annotations

from guest_agent.logging import LoggerFactory
from guest_agent.retry import RetryableError
from guest_agent.system.runner import CommandError, CommandRunner


log = LoggerFactory.for_monit()

MONIT_RETRY_ATTEMPTS = 10
MONIT_RETRY_DELAY = 1.0

# monit prints these while its HTTP interface is still coming up
NOT_LISTENING_MARKERS = (
    "connection refused",
    "cannot connect",
    "not running",
    "error connecting",
)


def is_not_listening(error: CommandError) -> bool:
    output = f"{error.stdout}\n{error.stderr}".lower()
    return any(marker in output for marker in NOT_LISTENING_MARKERS)


class MonitRetryable:
    """Probes monit's status; 'not yet listening' is worth another attempt."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def attempt(self) -> bool:
        try:
            self.runner.run(["monit", "status"], log_output=False)
        except CommandError as error:
            if is_not_listening(error):
                log.debug("monit is not listening yet")
                raise RetryableError(str(error)) from error
            raise
        return False
