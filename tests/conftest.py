"""
Pytest configuration and shared fixtures for vm-guest-agent tests.

This module provides in-memory stand-ins for the filesystem and the command
runner so platform operations can be exercised without touching the host.
"""

import fnmatch
import posixpath
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

from guest_agent.config.directories import DirectoriesProvider
from guest_agent.system.runner import CommandError, CommandResult


# ==============================================================================
# Fakes
# ==============================================================================


class FakeFileSystem:
    """Thread-safe in-memory filesystem with the FileSystem interface."""

    def __init__(self):
        self._lock = threading.Lock()
        self.files: Dict[str, str] = {}
        self.dirs: Dict[str, int] = {}
        self.symlinks: Dict[str, str] = {}
        self.modes: Dict[str, int] = {}
        self.owners: Dict[str, tuple] = {}
        self.homes: Dict[str, str] = {}
        self.writes: List[tuple] = []

    # -- helpers for arranging tests ------------------------------------------

    def add_file(self, path: str, content: str = "") -> None:
        with self._lock:
            self.files[path] = content

    def add_dir(self, path: str, mode: int = 0o755) -> None:
        with self._lock:
            self.dirs[path] = mode

    def add_symlink(self, path: str, target: str) -> None:
        with self._lock:
            self.symlinks[path] = target

    def remove(self, path: str) -> None:
        with self._lock:
            self.files.pop(path, None)
            self.dirs.pop(path, None)
            self.symlinks.pop(path, None)

    # -- FileSystem interface -------------------------------------------------

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self.files or path in self.dirs or path in self.symlinks

    def read_text(self, path: str) -> str:
        with self._lock:
            if path not in self.files:
                raise FileNotFoundError(path)
            return self.files[path]

    def write_text(self, path: str, content: str, mode: Optional[int] = None) -> bool:
        with self._lock:
            if self.files.get(path) == content:
                return False
            self.files[path] = content
            if mode is not None:
                self.modes[path] = mode
            return True

    def write(self, path: str, content: str) -> None:
        with self._lock:
            self.writes.append((path, content))

    def mkdir_all(self, path: str, mode: int) -> None:
        with self._lock:
            self.dirs[path] = mode

    def chown(self, path: str, user: Optional[str] = None, group: Optional[str] = None) -> None:
        with self._lock:
            self.owners[path] = (user, group)

    def home_dir(self, username: str) -> str:
        if username not in self.homes:
            raise KeyError(f"Unknown user: {username}")
        return self.homes[username]

    def glob(self, pattern: str) -> List[str]:
        with self._lock:
            paths = set(self.files) | set(self.dirs) | set(self.symlinks)
        return sorted(path for path in paths if fnmatch.fnmatchcase(path, pattern))

    def realpath(self, path: str) -> str:
        with self._lock:
            target = self.symlinks.get(path, path)
        if not target.startswith("/"):
            target = posixpath.normpath(posixpath.join(posixpath.dirname(path), target))
        return target


class FakeCmdRunner:
    """Records commands and replays configured results.

    A configured result list is consumed in order; its last entry repeats.
    Unconfigured commands succeed with empty output.
    Callbacks registered with on_run fire after a command succeeds, which lets
    tests model side effects such as sfdisk creating partition nodes.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.commands: List[List[str]] = []
        self.inputs: Dict[str, Optional[str]] = {}
        self._results: Dict[str, List[CommandResult]] = {}
        self._callbacks: Dict[str, List[Callable[[], None]]] = {}

    def add_result(self, command: Union[str, List[str]], stdout: str = "", stderr: str = "", returncode: int = 0) -> None:
        key = command if isinstance(command, str) else " ".join(command)
        self._results.setdefault(key, []).append(
            CommandResult(stdout=stdout, stderr=stderr, returncode=returncode)
        )

    def on_run(self, command: Union[str, List[str]], callback: Callable[[], None]) -> None:
        key = command if isinstance(command, str) else " ".join(command)
        self._callbacks.setdefault(key, []).append(callback)

    def run(self, command, check=True, input_text=None, log_output=True) -> CommandResult:
        key = " ".join(command)
        with self._lock:
            self.commands.append(list(command))
            self.inputs[key] = input_text
            queue = self._results.get(key)
            if queue:
                result = queue.pop(0) if len(queue) > 1 else queue[0]
            else:
                result = CommandResult(stdout="", stderr="", returncode=0)
        if check and result.returncode != 0:
            raise CommandError(command, result.returncode, result.stdout, result.stderr)
        if result.returncode == 0:
            for callback in self._callbacks.get(key, []):
                callback()
        return result

    def ran(self, command: Union[str, List[str]]) -> bool:
        key = command if isinstance(command, str) else " ".join(command)
        with self._lock:
            return any(" ".join(recorded) == key for recorded in self.commands)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def fake_fs() -> FakeFileSystem:
    """Fixture providing an empty in-memory filesystem."""
    return FakeFileSystem()


@pytest.fixture
def fake_runner() -> FakeCmdRunner:
    """Fixture providing a recording command runner."""
    return FakeCmdRunner()


@pytest.fixture
def dirs() -> DirectoriesProvider:
    """Fixture providing the standard /var/vcap layout."""
    return DirectoriesProvider(base_dir=Path("/var/vcap"))


@pytest.fixture
def sleeps() -> List[float]:
    """Fixture collecting requested sleep durations instead of sleeping."""
    return []
