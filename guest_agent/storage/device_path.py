"""Resolution of virtualization-layer disk references to kernel device nodes.

The hypervisor signals that a disk is attached before the guest kernel has
finished enumerating it, so every resolver except Identity is a bounded poll:
look for the device, sleep one poll interval, look again, and give up with
DeviceNotFoundError once the deadline has passed.

Variants:
    IdentityDevicePathResolver: the settings already carry the final path
    DeviceNodeResolver:         waits for a known node, e.g. a new partition
    MappedDevicePathResolver:   /dev/sdX may surface as /dev/xvdX or /dev/vdX
    IDDevicePathResolver:       /dev/disk/by-id/*<serial> after a udev settle
    ScsiDevicePathResolver:     rescan SCSI hosts, find the target's block dev
    VirtioDevicePathResolver:   by-id first, mapped lookup as fallback

Stability:
    Candidates are examined in a fixed order (priority list or sorted glob)
    and the first existing one is returned, so a single resolve() never
    alternates between aliases that udev created in quick succession.

Example:
    >>> resolver = MappedDevicePathResolver(FileSystem(), timeout=5.0)
    >>> resolver.resolve(DeviceReference(path="/dev/sdb"))
    '/dev/xvdb'
"""

from __future__ import annotations

import os
import time
from abc import ABC, abstractmethod
from typing import Optional

from guest_agent.config.settings import DEFAULT_DISK_POLL_INTERVAL, DEFAULT_DISK_WAIT_TIMEOUT
from guest_agent.domain.models import DeviceReference
from guest_agent.logging import LoggerFactory, get_logger
from guest_agent.storage.exceptions import DeviceNotFoundError, DeviceReferenceError
from guest_agent.system.filesystem import FileSystem
from guest_agent.system.udev import Udev


log = LoggerFactory.for_disk()
poll_log = get_logger(source="disk", tags=["disk", "poll"])

MAPPED_DEVICE_PREFIXES = ("/dev/xvd", "/dev/vd", "/dev/sd")
DISK_BY_ID_DIR = "/dev/disk/by-id"
# virtio-blk exposes at most 20 characters of the serial
VIRTIO_SERIAL_LENGTH = 20
SCSI_HOST_SCAN_GLOB = "/sys/class/scsi_host/host*/scan"


class DevicePathResolver(ABC):
    @abstractmethod
    def resolve(self, reference: DeviceReference) -> str:
        """Return the kernel device node for ``reference``.

        Raises:
            DeviceNotFoundError: If the device did not appear in time
            DeviceReferenceError: If the reference lacks the needed field
        """


class IdentityDevicePathResolver(DevicePathResolver):
    def resolve(self, reference: DeviceReference) -> str:
        if not reference.path:
            raise DeviceReferenceError(reference.describe(), "path")
        return reference.path


class PollingDevicePathResolver(DevicePathResolver):
    """Shared bounded-poll loop; subclasses only say where to look."""

    required_field = "path"

    def __init__(
        self,
        fs: FileSystem,
        timeout: float = DEFAULT_DISK_WAIT_TIMEOUT,
        poll_interval: float = DEFAULT_DISK_POLL_INTERVAL,
    ):
        self.fs = fs
        self.timeout = timeout
        self.poll_interval = poll_interval

    @abstractmethod
    def find(self, reference: DeviceReference) -> Optional[str]:
        """Single lookup; returns a candidate path or None."""

    def resolve(self, reference: DeviceReference) -> str:
        if not getattr(reference, self.required_field):
            raise DeviceReferenceError(reference.describe(), self.required_field)

        name = type(self).__name__
        deadline = time.monotonic() + self.timeout
        polls = 0
        while True:
            polls += 1
            candidate = self.find(reference)
            # Re-check right before returning: udev may have removed the alias
            if candidate is not None and self.fs.exists(candidate):
                log.debug(
                    f"{name} resolved {reference.describe()} to {candidate} after {polls} poll(s)"
                )
                return candidate

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                log.warning(
                    f"{name} gave up on {reference.describe()} after {polls} poll(s)"
                )
                raise DeviceNotFoundError(reference.describe(), self.timeout)
            poll_log.trace(f"{reference.describe()} not present yet (poll {polls})")
            time.sleep(min(self.poll_interval, remaining))


class DeviceNodeResolver(PollingDevicePathResolver):
    """Waits for a known device node, such as a freshly written partition."""

    def find(self, reference: DeviceReference) -> Optional[str]:
        return reference.path


class MappedDevicePathResolver(PollingDevicePathResolver):
    """Maps /dev/sdX to whichever of xvdX, vdX, sdX the kernel created."""

    required_field = "path"

    @staticmethod
    def candidates(device_path: str) -> list[str]:
        if device_path.startswith("/dev/sd"):
            suffix = device_path[len("/dev/sd"):]
            return [f"{prefix}{suffix}" for prefix in MAPPED_DEVICE_PREFIXES]
        return [device_path]

    def find(self, reference: DeviceReference) -> Optional[str]:
        for candidate in self.candidates(reference.path):
            if self.fs.exists(candidate):
                return candidate
        return None


class IDDevicePathResolver(PollingDevicePathResolver):
    """Looks the disk up by serial in udev's /dev/disk/by-id namespace."""

    required_field = "id"

    def __init__(
        self,
        fs: FileSystem,
        udev: Udev,
        timeout: float = DEFAULT_DISK_WAIT_TIMEOUT,
        poll_interval: float = DEFAULT_DISK_POLL_INTERVAL,
    ):
        super().__init__(fs, timeout, poll_interval)
        self.udev = udev

    def resolve(self, reference: DeviceReference) -> str:
        # One flush per lookup; udev failures propagate as infrastructure errors
        if reference.id:
            self.udev.trigger()
            self.udev.settle()
        return super().resolve(reference)

    def find(self, reference: DeviceReference) -> Optional[str]:
        serial = reference.id[:VIRTIO_SERIAL_LENGTH]
        matches = self.fs.glob(os.path.join(DISK_BY_ID_DIR, f"*{serial}"))
        if not matches:
            return None
        if len(matches) > 1:
            log.warning(
                f"{len(matches)} by-id entries match {serial}: {', '.join(matches)}; using {matches[0]}"
            )
        return self.fs.realpath(matches[0])


class ScsiDevicePathResolver(PollingDevicePathResolver):
    """Finds the block device behind a SCSI target after rescanning hosts."""

    required_field = "volume_id"

    def rescan(self) -> None:
        for scan_path in self.fs.glob(SCSI_HOST_SCAN_GLOB):
            try:
                self.fs.write(scan_path, "- - -")
            except OSError as error:
                log.debug(f"SCSI rescan of {scan_path} failed: {error}")

    def find(self, reference: DeviceReference) -> Optional[str]:
        self.rescan()
        pattern = f"/sys/bus/scsi/devices/*:0:{reference.volume_id}:0/block/*"
        matches = self.fs.glob(pattern)
        if not matches:
            return None
        if len(matches) > 1:
            log.warning(
                f"{len(matches)} block devices for SCSI target {reference.volume_id}; using {matches[0]}"
            )
        return f"/dev/{os.path.basename(matches[0])}"


class VirtioDevicePathResolver(DevicePathResolver):
    """By-id lookup first; the mapped lookup only when by-id times out."""

    def __init__(
        self,
        id_resolver: IDDevicePathResolver,
        mapped_resolver: MappedDevicePathResolver,
    ):
        self.id_resolver = id_resolver
        self.mapped_resolver = mapped_resolver

    def resolve(self, reference: DeviceReference) -> str:
        if reference.id:
            try:
                return self.id_resolver.resolve(reference)
            except DeviceNotFoundError as error:
                log.info(f"{error}; falling back to mapped device path lookup")
        else:
            log.debug(f"{reference.describe()} has no id; using mapped device path lookup")
        return self.mapped_resolver.resolve(reference)
