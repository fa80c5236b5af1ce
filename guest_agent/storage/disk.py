"""Ephemeral and persistent disk preparation.

Ephemeral Disk Layout:
    Partition 1: swap, sized from physical memory
    Partition 2: ext4 data, mounted at the data directory

Swap Sizing:
    D = disk size, M = physical memory, both in 1 KiB blocks.

    D >  2*M  ->  swap = M       (swap capped at one memory's worth)
    D <= 2*M  ->  swap = D // 2  (small disks split evenly)

    data = D - swap in both branches, so swap + data == D.

Steps (strictly sequential, single attempt, no rollback):
    resolve -> size-probe -> plan -> partition -> settle -> format -> mount -> mkdir

Re-running setup against a disk whose data partition is already mounted at
the target is a no-op, so the whole operation can be retried by the caller.

Implementation Details:
    - sfdisk -s reports sizes in 1 KiB blocks
    - sfdisk reads the partition script from stdin; the last partition takes
      the remainder of the disk
    - After sfdisk, udev is settled and each partition node is polled for
      with the same bounded deadline as device resolution
    - Physical memory comes from psutil
"""

from __future__ import annotations

import os
from typing import Callable, Optional

import psutil

from guest_agent.config.directories import DirectoriesProvider
from guest_agent.config.settings import DEFAULT_DISK_POLL_INTERVAL, DEFAULT_DISK_WAIT_TIMEOUT
from guest_agent.domain.models import (
    DeviceReference,
    Partition,
    PartitionPlan,
    PartitionType,
    partition_path,
)
from guest_agent.logging import LoggerFactory, operation_context
from guest_agent.storage.device_path import DeviceNodeResolver, DevicePathResolver
from guest_agent.storage.exceptions import (
    DeviceNotFoundError,
    DirectoryCreationError,
    FormatError,
    MountError,
    PartitionError,
    SizeProbeError,
)
from guest_agent.system.filesystem import FileSystem
from guest_agent.system.runner import CommandError, CommandRunner
from guest_agent.system.udev import Udev


log = LoggerFactory.for_disk()

BLOCK_SIZE = 1024
DATA_DIR_MODE = 0o750
DATA_FILESYSTEM = "ext4"
PROC_MOUNTS = "/proc/mounts"

SFDISK_PARTITION_TYPES = {
    PartitionType.SWAP: "S",
    PartitionType.LINUX: "L",
}


def total_memory_in_blocks() -> int:
    return psutil.virtual_memory().total // BLOCK_SIZE


def calculate_partition_sizes(disk_size_in_blocks: int, memory_in_blocks: int) -> tuple[int, int]:
    """Return (swap, data) sizes in blocks for an ephemeral disk.

    D == 2*M falls into the halving branch.
    """
    if disk_size_in_blocks > 2 * memory_in_blocks:
        swap_size = memory_in_blocks
    else:
        swap_size = disk_size_in_blocks // 2
    return swap_size, disk_size_in_blocks - swap_size


def build_ephemeral_plan(disk_size_in_blocks: int, memory_in_blocks: int) -> PartitionPlan:
    swap_size, data_size = calculate_partition_sizes(disk_size_in_blocks, memory_in_blocks)
    return PartitionPlan(
        partitions=(
            Partition(type=PartitionType.SWAP, size_in_blocks=swap_size),
            Partition(type=PartitionType.LINUX, size_in_blocks=data_size),
        )
    )


class SfdiskPartitioner:
    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def get_device_size_in_blocks(self, device_path: str) -> int:
        try:
            result = self.runner.run(["sfdisk", "-s", device_path])
        except CommandError as error:
            raise SizeProbeError(
                f"Failed to probe size of {device_path}: {error}", device=device_path
            ) from error
        output = result.stdout.strip()
        try:
            size = int(output)
        except ValueError as error:
            raise SizeProbeError(
                f"Unexpected sfdisk size output for {device_path}: {output!r}",
                device=device_path,
            ) from error
        if size <= 0:
            raise SizeProbeError(f"{device_path} reports a size of {size}", device=device_path)
        return size

    @staticmethod
    def build_script(plan: PartitionPlan) -> str:
        lines = []
        for index, partition in enumerate(plan):
            size = "" if index == len(plan) - 1 else f"{partition.size_in_blocks}KiB"
            lines.append(f",{size},{SFDISK_PARTITION_TYPES[partition.type]}")
        return "\n".join(lines) + "\n"

    def partition(self, device_path: str, plan: PartitionPlan) -> None:
        script = self.build_script(plan)
        log.debug(f"Partitioning {device_path} with {len(plan)} partition(s)")
        try:
            self.runner.run(["sfdisk", device_path], input_text=script)
        except CommandError as error:
            raise PartitionError(
                f"Failed to partition {device_path}: {error}", device=device_path
            ) from error


class Formatter:
    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def filesystem_type(self, partition: str) -> str:
        result = self.runner.run(
            ["blkid", "-s", "TYPE", "-o", "value", partition], check=False
        )
        return result.stdout.strip() if result.returncode == 0 else ""

    def format(self, partition: str, partition_type: PartitionType) -> None:
        if partition_type == PartitionType.SWAP:
            command = ["mkswap", partition]
        else:
            command = ["mke2fs", "-t", DATA_FILESYSTEM, "-j", partition]
        try:
            self.runner.run(command)
        except CommandError as error:
            raise FormatError(
                f"Failed to format {partition} as {partition_type.value}: {error}",
                device=partition,
            ) from error


class Mounter:
    def __init__(self, runner: CommandRunner, fs: FileSystem):
        self.runner = runner
        self.fs = fs

    def is_mounted_at(self, device: str, mount_point: str) -> bool:
        try:
            mounts = self.fs.read_text(PROC_MOUNTS)
        except OSError:
            return False
        target = os.path.normpath(mount_point)
        for line in mounts.splitlines():
            parts = line.split()
            if len(parts) > 1 and parts[0] == device and os.path.normpath(parts[1]) == target:
                return True
        return False

    def mount(self, device: str, mount_point: str, *options: str) -> None:
        try:
            self.runner.run(["mount", *options, device, mount_point])
        except CommandError as error:
            raise MountError(
                f"Failed to mount {device} at {mount_point}: {error}",
                device=device,
                mount_point=mount_point,
            ) from error

    def swap_on(self, partition: str) -> None:
        try:
            self.runner.run(["swapon", partition])
        except CommandError as error:
            raise MountError(
                f"Failed to activate swap on {partition}: {error}", device=partition
            ) from error


class DiskPartitioningEngine:
    """Prepares ephemeral and persistent disks on a resolved device."""

    def __init__(
        self,
        resolver: DevicePathResolver,
        runner: CommandRunner,
        fs: FileSystem,
        dirs: Optional[DirectoriesProvider] = None,
        partitioner: Optional[SfdiskPartitioner] = None,
        memory_in_blocks: Callable[[], int] = total_memory_in_blocks,
        data_dir_group: Optional[str] = None,
        udev: Optional[Udev] = None,
        partition_wait_timeout: float = DEFAULT_DISK_WAIT_TIMEOUT,
        partition_poll_interval: float = DEFAULT_DISK_POLL_INTERVAL,
    ):
        self.resolver = resolver
        self.runner = runner
        self.fs = fs
        self.dirs = dirs or DirectoriesProvider()
        self.partitioner = partitioner or SfdiskPartitioner(runner)
        self.formatter = Formatter(runner)
        self.mounter = Mounter(runner, fs)
        self.memory_in_blocks = memory_in_blocks
        self.data_dir_group = data_dir_group
        self.udev = udev or Udev(runner)
        self.partition_waiter = DeviceNodeResolver(
            fs, timeout=partition_wait_timeout, poll_interval=partition_poll_interval
        )

    def calculate_ephemeral_plan(self, device_path: str) -> PartitionPlan:
        disk_size = self.partitioner.get_device_size_in_blocks(device_path)
        memory = self.memory_in_blocks()
        plan = build_ephemeral_plan(disk_size, memory)
        log.info(
            f"Ephemeral disk {device_path}: {disk_size} blocks, memory {memory} blocks, "
            f"swap {plan[0].size_in_blocks}, data {plan[1].size_in_blocks}"
        )
        return plan

    def setup_ephemeral_disk(self, reference: DeviceReference, mount_point: str) -> None:
        with operation_context("disk-ephemeral", mount_point=mount_point) as op_log:
            device_path = self.resolver.resolve(reference)
            op_log.debug(f"Resolved {reference.describe()} to {device_path}")

            plan = self.calculate_ephemeral_plan(device_path)
            swap_partition = partition_path(device_path, 1)
            data_partition = partition_path(device_path, 2)

            if self.mounter.is_mounted_at(data_partition, mount_point):
                op_log.info(f"{data_partition} already mounted at {mount_point}, skipping")
                return

            self._partition(device_path, plan)
            self.formatter.format(swap_partition, PartitionType.SWAP)
            self.formatter.format(data_partition, PartitionType.LINUX)
            self.mounter.swap_on(swap_partition)
            self._mount_data_dir(data_partition, mount_point)
            self._create_runtime_dirs(mount_point)

    def mount_persistent_disk(
        self,
        reference: DeviceReference,
        mount_point: str,
        bind_mount: bool = False,
    ) -> None:
        with operation_context("disk-persistent", mount_point=mount_point) as op_log:
            device_path = self.resolver.resolve(reference)

            if bind_mount:
                self._make_dir(mount_point)
                self.mounter.mount(device_path, mount_point, "--bind")
                return

            data_partition = partition_path(device_path, 1)
            if self.mounter.is_mounted_at(data_partition, mount_point):
                op_log.info(f"{data_partition} already mounted at {mount_point}, skipping")
                return

            if not self.fs.exists(data_partition):
                disk_size = self.partitioner.get_device_size_in_blocks(device_path)
                plan = PartitionPlan(
                    partitions=(Partition(type=PartitionType.LINUX, size_in_blocks=disk_size),)
                )
                self._partition(device_path, plan)

            # Persistent data survives re-attachment, so never reformat ext4
            if self.formatter.filesystem_type(data_partition) != DATA_FILESYSTEM:
                self.formatter.format(data_partition, PartitionType.LINUX)
            self._mount_data_dir(data_partition, mount_point)

    def _partition(self, device_path: str, plan: PartitionPlan) -> None:
        self.partitioner.partition(device_path, plan)
        try:
            self.udev.settle()
        except CommandError as error:
            raise PartitionError(
                f"udev did not settle after partitioning {device_path}: {error}",
                device=device_path,
            ) from error

        for number in range(1, len(plan) + 1):
            node = partition_path(device_path, number)
            try:
                self.partition_waiter.resolve(DeviceReference(path=node))
            except DeviceNotFoundError as error:
                raise PartitionError(
                    f"Partition {node} did not appear after partitioning {device_path}: {error}",
                    device=device_path,
                ) from error

    def _make_dir(self, path: str) -> None:
        try:
            self.fs.mkdir_all(path, DATA_DIR_MODE)
        except OSError as error:
            raise DirectoryCreationError(path, str(error)) from error

    def _mount_data_dir(self, partition: str, mount_point: str) -> None:
        self._make_dir(mount_point)
        self.mounter.mount(partition, mount_point)
        if self.data_dir_group:
            try:
                self.fs.chown(mount_point, user="root", group=self.data_dir_group)
            except (OSError, LookupError) as error:
                raise MountError(
                    f"Failed to set ownership of {mount_point}: {error}",
                    device=partition,
                    mount_point=mount_point,
                ) from error

    def _create_runtime_dirs(self, mount_point: str) -> None:
        for path in self.dirs.runtime_dirs(mount_point):
            self._make_dir(str(path))
