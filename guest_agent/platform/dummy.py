"""Platform that changes nothing; used for bootstrap and local runs."""

from __future__ import annotations

import threading
from typing import Any, Optional

from guest_agent.config.directories import DirectoriesProvider
from guest_agent.domain.models import DeviceReference
from guest_agent.logging import LoggerFactory
from guest_agent.platform.base import Platform
from guest_agent.services.stats import StatsCollector
from guest_agent.services.vitals import Vitals, VitalsService
from guest_agent.storage.device_path import DevicePathResolver
from guest_agent.system.filesystem import FileSystem
from guest_agent.system.runner import CommandRunner


log = LoggerFactory.for_platform()


class DummyPlatform(Platform):
    name = "dummy"

    def __init__(
        self,
        dirs: DirectoriesProvider,
        runner: CommandRunner,
        fs: FileSystem,
        stats_collector: StatsCollector,
        resolver: DevicePathResolver,
        vitals_service: Optional[VitalsService] = None,
    ):
        self.dirs = dirs
        self._runner = runner
        self._fs = fs
        self._stats_collector = stats_collector
        self.resolver = resolver
        self.vitals_service = vitals_service or VitalsService(stats_collector, dirs)

    @property
    def runner(self) -> CommandRunner:
        return self._runner

    @property
    def fs(self) -> FileSystem:
        return self._fs

    @property
    def stats_collector(self) -> StatsCollector:
        return self._stats_collector

    def setup_ephemeral_disk_with_path(self, reference: Any, mount_point: Optional[str] = None) -> None:
        log.debug("dummy: skipping ephemeral disk setup")

    def mount_persistent_disk(self, reference: Any, mount_point: Optional[str] = None) -> None:
        log.debug("dummy: skipping persistent disk mount")

    def normalize_disk_path(self, reference: Any) -> str:
        return self.resolver.resolve(DeviceReference.from_settings(reference))

    def setup_manual_networking(self, networks: Any) -> Optional[threading.Thread]:
        log.debug("dummy: skipping manual networking")
        return None

    def setup_dhcp(self, networks: Any) -> None:
        log.debug("dummy: skipping dhcp")

    def setup_ssh(self, public_key: str, username: str) -> None:
        log.debug("dummy: skipping ssh setup")

    def start_monit(self) -> None:
        log.debug("dummy: skipping monit start")

    def get_vitals(self) -> Vitals:
        return self.vitals_service.get()
