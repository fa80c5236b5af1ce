"""Capability surface every platform variant exposes to the agent."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

from guest_agent.services.stats import StatsCollector
from guest_agent.services.vitals import Vitals
from guest_agent.system.filesystem import FileSystem
from guest_agent.system.runner import CommandRunner


class Platform(ABC):
    """One guest OS family.

    Disk and network operations block until done and carry no ordering
    relative to each other; the caller sequences them.
    """

    name: str = ""

    @property
    @abstractmethod
    def runner(self) -> CommandRunner:
        ...

    @property
    @abstractmethod
    def fs(self) -> FileSystem:
        ...

    @property
    @abstractmethod
    def stats_collector(self) -> StatsCollector:
        ...

    @abstractmethod
    def setup_ephemeral_disk_with_path(self, reference: Any, mount_point: Optional[str] = None) -> None:
        """Partition, format and mount the ephemeral disk, at the data dir by default."""

    @abstractmethod
    def mount_persistent_disk(self, reference: Any, mount_point: Optional[str] = None) -> None:
        """Mount the persistent disk, formatting it only if it has no filesystem."""

    @abstractmethod
    def normalize_disk_path(self, reference: Any) -> str:
        """Resolve a disk reference to its kernel device node."""

    @abstractmethod
    def setup_manual_networking(self, networks: Any) -> Optional[threading.Thread]:
        ...

    @abstractmethod
    def setup_dhcp(self, networks: Any) -> None:
        ...

    @abstractmethod
    def setup_ssh(self, public_key: str, username: str) -> None:
        ...

    @abstractmethod
    def start_monit(self) -> None:
        ...

    @abstractmethod
    def get_vitals(self) -> Vitals:
        ...
