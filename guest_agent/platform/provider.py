"""Composition root: builds every platform variant once at startup.

The device path resolver is chosen from configuration here and shared by
all variants, since resolution policy follows the hypervisor rather than
the guest OS. The background stats loop is also started here, once.
"""

from __future__ import annotations

import threading
from typing import Optional

from guest_agent.config.directories import DirectoriesProvider
from guest_agent.config.settings import (
    RESOLUTION_SCSI,
    RESOLUTION_VIRTIO,
    LinuxOptions,
    PlatformOptions,
)
from guest_agent.logging import LoggerFactory
from guest_agent.platform.base import Platform
from guest_agent.platform.dummy import DummyPlatform
from guest_agent.platform.exceptions import PlatformNotFoundError
from guest_agent.platform.linux import LinuxPlatform
from guest_agent.services.arp import ArpAnnouncer
from guest_agent.services.net import CentosNetManager, UbuntuNetManager
from guest_agent.services.stats import StatsCollector
from guest_agent.services.vitals import VitalsService
from guest_agent.storage.device_path import (
    DevicePathResolver,
    IDDevicePathResolver,
    IdentityDevicePathResolver,
    MappedDevicePathResolver,
    ScsiDevicePathResolver,
    VirtioDevicePathResolver,
)
from guest_agent.system.filesystem import FileSystem
from guest_agent.system.runner import CommandRunner
from guest_agent.system.udev import Udev


log = LoggerFactory.for_platform()


def build_device_path_resolver(options: LinuxOptions, fs: FileSystem, udev: Udev) -> DevicePathResolver:
    timeout = options.disk_wait_timeout
    poll_interval = options.disk_poll_interval
    resolution = options.device_path_resolution_type

    if resolution == RESOLUTION_VIRTIO:
        return VirtioDevicePathResolver(
            IDDevicePathResolver(fs, udev, timeout, poll_interval),
            MappedDevicePathResolver(fs, timeout, poll_interval),
        )
    if resolution == RESOLUTION_SCSI:
        return ScsiDevicePathResolver(fs, timeout, poll_interval)
    return IdentityDevicePathResolver()


class PlatformProvider:
    def __init__(
        self,
        options: Optional[PlatformOptions] = None,
        dirs: Optional[DirectoriesProvider] = None,
        stats_collector: Optional[StatsCollector] = None,
        runner: Optional[CommandRunner] = None,
        fs: Optional[FileSystem] = None,
        udev: Optional[Udev] = None,
    ):
        self.options = options or PlatformOptions()
        self.dirs = dirs or DirectoriesProvider()
        self.stats_collector = stats_collector or StatsCollector()
        self.runner = runner or CommandRunner()
        self.fs = fs or FileSystem()
        self.udev = udev or Udev(self.runner)

        self.resolver = build_device_path_resolver(self.options.linux, self.fs, self.udev)
        vitals_service = VitalsService(self.stats_collector, self.dirs)
        arp = self.options.arp
        announcer = ArpAnnouncer(
            self.runner,
            self.fs,
            iterations=arp.iterations,
            iteration_delay=arp.iteration_delay,
            interface_check_delay=arp.interface_check_delay,
        )

        self._platforms: dict[str, Platform] = {
            "ubuntu": self._linux("ubuntu", UbuntuNetManager(self.fs, self.runner, announcer), vitals_service),
            "centos": self._linux("centos", CentosNetManager(self.fs, self.runner, announcer), vitals_service),
            "dummy": DummyPlatform(
                self.dirs,
                self.runner,
                self.fs,
                self.stats_collector,
                self.resolver,
                vitals_service=vitals_service,
            ),
        }
        log.debug(
            f"Platforms wired: {', '.join(self._platforms)} "
            f"(resolver {type(self.resolver).__name__})"
        )

        self._stop_event = threading.Event()
        self._stats_thread = threading.Thread(
            target=self.stats_collector.start_collecting,
            args=(self.options.stats_collection_interval, self._stop_event),
            name="stats-collector",
            daemon=True,
        )
        self._stats_thread.start()

    def _linux(self, name: str, net_manager, vitals_service: VitalsService) -> LinuxPlatform:
        return LinuxPlatform(
            name,
            self.options.linux,
            self.dirs,
            self.runner,
            self.fs,
            self.stats_collector,
            self.resolver,
            net_manager,
            vitals_service=vitals_service,
        )

    @property
    def names(self) -> list[str]:
        return list(self._platforms)

    def get(self, name: str) -> Platform:
        try:
            return self._platforms[name]
        except KeyError:
            raise PlatformNotFoundError(name) from None

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the stats loop and wait for it to exit."""
        self._stop_event.set()
        self._stats_thread.join(timeout)
