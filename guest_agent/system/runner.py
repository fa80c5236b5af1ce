"""Command execution with logging of command, output and return code."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from guest_agent.logging import LoggerFactory


log = LoggerFactory.for_system()


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    returncode: int


class CommandError(Exception):
    """External command exited non-zero or could not be started."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip() or "no output"
        super().__init__(
            f"Command failed ({' '.join(self.command)}) rc={returncode}: {detail}"
        )


class CommandRunner:
    def run(
        self,
        command: Sequence[str],
        check: bool = True,
        input_text: Optional[str] = None,
        log_output: bool = True,
    ) -> CommandResult:
        """Run ``command`` and capture its output.

        Args:
            command: Argument list, never a shell string
            check: Raise CommandError on a non-zero exit code
            input_text: Optional text fed to the command's stdin
            log_output: Log stdout/stderr even when the command succeeds

        Raises:
            CommandError: If the command is missing, or fails and check is set
        """
        command_display = " ".join(command)
        log.debug(f"Running command: {command_display}")
        try:
            completed = subprocess.run(
                list(command),
                input=input_text,
                text=True,
                capture_output=True,
                check=False,
            )
        except (FileNotFoundError, PermissionError) as error:
            log.debug(f"Command could not start: {command_display}: {error}")
            raise CommandError(command, 127, stderr=str(error)) from error

        result = CommandResult(
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            returncode=completed.returncode,
        )
        if result.stdout and (log_output or result.returncode != 0):
            log.debug(f"stdout: {result.stdout.strip()}")
        if result.stderr and (log_output or result.returncode != 0):
            log.debug(f"stderr: {result.stderr.strip()}")
        log.debug(f"Command completed with return code {result.returncode}")

        if check and result.returncode != 0:
            raise CommandError(command, result.returncode, result.stdout, result.stderr)
        return result
