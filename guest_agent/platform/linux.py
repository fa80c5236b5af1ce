"""Linux platform shared by the Ubuntu and CentOS families.

The families differ only in their network manager; disk handling, SSH
setup, monit startup and vitals are identical.
"""

from __future__ import annotations

import os
import threading
import time
from typing import Any, Callable, Optional

from guest_agent.config.directories import DirectoriesProvider
from guest_agent.config.settings import LinuxOptions
from guest_agent.domain.models import DeviceReference, Networks
from guest_agent.logging import LoggerFactory, operation_context
from guest_agent.platform.base import Platform
from guest_agent.platform.exceptions import PlatformError
from guest_agent.retry import AttemptRetryStrategy
from guest_agent.services.monit import MONIT_RETRY_ATTEMPTS, MONIT_RETRY_DELAY, MonitRetryable
from guest_agent.services.net import BaseNetManager
from guest_agent.services.stats import StatsCollector
from guest_agent.services.vitals import Vitals, VitalsService
from guest_agent.storage.device_path import DevicePathResolver
from guest_agent.storage.disk import DiskPartitioningEngine
from guest_agent.system.filesystem import FileSystem
from guest_agent.system.runner import CommandError, CommandRunner


log = LoggerFactory.for_platform()

SSH_DIR_MODE = 0o700
AUTHORIZED_KEYS_MODE = 0o600


def as_networks(networks: Any) -> Networks:
    return networks if isinstance(networks, Networks) else Networks.from_dict(networks or {})


class LinuxPlatform(Platform):
    def __init__(
        self,
        name: str,
        options: LinuxOptions,
        dirs: DirectoriesProvider,
        runner: CommandRunner,
        fs: FileSystem,
        stats_collector: StatsCollector,
        resolver: DevicePathResolver,
        net_manager: BaseNetManager,
        vitals_service: Optional[VitalsService] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.options = options
        self.dirs = dirs
        self._runner = runner
        self._fs = fs
        self._stats_collector = stats_collector
        self.resolver = resolver
        self.net_manager = net_manager
        self.disk_engine = DiskPartitioningEngine(
            resolver,
            runner,
            fs,
            dirs=dirs,
            data_dir_group=options.ephemeral_disk_group,
            partition_wait_timeout=options.disk_wait_timeout,
            partition_poll_interval=options.disk_poll_interval,
        )
        self.vitals_service = vitals_service or VitalsService(stats_collector, dirs)
        self._sleep = sleep

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
        reference = DeviceReference.from_settings(reference)
        if not (reference.path or reference.id or reference.volume_id):
            log.info("Ephemeral disk reference is empty, skipping ephemeral disk setup")
            return
        self.disk_engine.setup_ephemeral_disk(reference, mount_point or str(self.dirs.data_dir))

    def mount_persistent_disk(self, reference: Any, mount_point: Optional[str] = None) -> None:
        self.disk_engine.mount_persistent_disk(
            DeviceReference.from_settings(reference),
            mount_point or str(self.dirs.store_dir),
            bind_mount=self.options.bind_mount_persistent_disk,
        )

    def normalize_disk_path(self, reference: Any) -> str:
        return self.resolver.resolve(DeviceReference.from_settings(reference))

    def setup_manual_networking(self, networks: Any) -> Optional[threading.Thread]:
        with operation_context("net-manual", platform=self.name):
            return self.net_manager.setup_manual_networking(as_networks(networks))

    def setup_dhcp(self, networks: Any) -> None:
        with operation_context("net-dhcp", platform=self.name):
            self.net_manager.setup_dhcp(as_networks(networks))

    def setup_ssh(self, public_key: str, username: str) -> None:
        with operation_context("ssh-setup", username=username):
            try:
                home = self.fs.home_dir(username)
            except KeyError as error:
                raise PlatformError(f"Cannot find home directory of {username}") from error

            ssh_dir = os.path.join(home, ".ssh")
            authorized_keys = os.path.join(ssh_dir, "authorized_keys")
            try:
                self.fs.mkdir_all(ssh_dir, SSH_DIR_MODE)
                self.fs.chown(ssh_dir, user=username, group=username)
                self.fs.write_text(authorized_keys, public_key, mode=AUTHORIZED_KEYS_MODE)
                self.fs.chown(authorized_keys, user=username, group=username)
            except (OSError, LookupError) as error:
                raise PlatformError(f"Failed to install public key for {username}: {error}") from error

    def start_monit(self) -> None:
        with operation_context("monit-start"):
            try:
                self.runner.run(["sv", "up", "monit"])
            except CommandError as error:
                raise PlatformError(f"Failed to start monit: {error}") from error

            strategy = AttemptRetryStrategy(
                MONIT_RETRY_ATTEMPTS,
                MONIT_RETRY_DELAY,
                MonitRetryable(self.runner),
                sleep=self._sleep,
                name="monit",
            )
            strategy.run()

    def get_vitals(self) -> Vitals:
        return self.vitals_service.get()
