from __future__ import annotations

from guest_agent.system.runner import CommandRunner


UDEV_SETTLE_TIMEOUT_SECONDS = 5


class Udev:
    """udevadm wrapper used to flush pending device events before lookups."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def trigger(self) -> None:
        self.runner.run(["udevadm", "trigger"], log_output=False)

    def settle(self) -> None:
        self.runner.run(
            ["udevadm", "settle", f"--timeout={UDEV_SETTLE_TIMEOUT_SECONDS}"],
            log_output=False,
        )
