"""Custom exceptions for storage operations.

Every exception names the disk-setup step that failed so operators can tell
a missing device from a formatting tool failure from a timeout.

Exception Hierarchy:
    StorageError (base)
        ├── DeviceError
        │   ├── DeviceNotFoundError
        │   └── DeviceReferenceError
        ├── SizeProbeError
        ├── PartitionError
        ├── FormatError
        ├── MountError
        └── DirectoryCreationError

Usage:
    from guest_agent.storage.exceptions import DeviceNotFoundError

    if deadline_passed:
        raise DeviceNotFoundError(reference.describe(), timeout)
"""

from __future__ import annotations

from typing import Optional


class StorageError(Exception):
    """Base exception for all storage operations."""

    step = "storage"


class DeviceError(StorageError):
    """Base exception for device-related errors."""

    step = "resolve"


class DeviceNotFoundError(DeviceError):
    """Device did not appear before the resolver's deadline."""

    def __init__(self, device_name: str, timeout: Optional[float] = None):
        self.device_name = device_name
        self.timeout = timeout
        msg = f"Device not found: {device_name}"
        if timeout is not None:
            msg += f" (timed out after {timeout:g}s)"
        super().__init__(msg)


class DeviceReferenceError(DeviceError, ValueError):
    """Device reference lacks the field the resolver needs."""

    def __init__(self, reference: str, field_name: str):
        self.reference = reference
        self.field_name = field_name
        super().__init__(f"Device reference {reference} has no {field_name}")


class SizeProbeError(StorageError):
    """Disk size could not be determined."""

    step = "size-probe"

    def __init__(self, message: str, device: Optional[str] = None):
        self.device = device
        super().__init__(message)


class PartitionError(StorageError):
    """Partition table could not be written."""

    step = "partition"

    def __init__(self, message: str, device: Optional[str] = None):
        self.device = device
        super().__init__(message)


class FormatError(StorageError):
    """mkswap/mkfs failed on a partition."""

    step = "format"

    def __init__(self, message: str, device: Optional[str] = None):
        self.device = device
        super().__init__(message)


class MountError(StorageError):
    """Mount or swap activation failed."""

    step = "mount"

    def __init__(self, message: str, device: Optional[str] = None, mount_point: Optional[str] = None):
        self.device = device
        self.mount_point = mount_point
        super().__init__(message)


class DirectoryCreationError(StorageError):
    """Runtime directory tree could not be created on a mounted volume."""

    step = "mkdir"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to create {path}: {reason}")
