"""Domain models for platform setup operations.

This package contains the immutable value objects passed between the
platform, the disk engine and the network managers.
"""

from __future__ import annotations

from .models import (
    DeviceReference,
    InterfaceAddress,
    NetworkSettings,
    Networks,
    Partition,
    PartitionPlan,
    PartitionType,
    partition_path,
)


__all__ = [
    "DeviceReference",
    "InterfaceAddress",
    "NetworkSettings",
    "Networks",
    "Partition",
    "PartitionPlan",
    "PartitionType",
    "partition_path",
]
