"""Domain model for platform setup operations.

Value objects passed between the platform, the disk engine and the network
managers. All of them are immutable and created fresh per operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ==============================================================================
# Disk Domain
# ==============================================================================


@dataclass(frozen=True)
class DeviceReference:
    """A virtualization-layer disk identifier as supplied in agent settings.

    Not a filesystem path yet: which field matters depends on the resolver
    variant in use.
    """

    path: str = ""  # e.g., "/dev/sdb" as seen by the hypervisor
    id: str = ""  # e.g., a virtio serial / volume UUID
    volume_id: str = ""  # e.g., a SCSI target number

    @classmethod
    def from_settings(cls, value: Any) -> DeviceReference:
        """Build a reference from a settings value.

        A bare string is treated as a device path; dicts accept the agent's
        ``path``/``id``/``volume_id`` keys in either case style.

        Raises:
            TypeError: If the value is neither a string nor a dict
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(path=value)
        if isinstance(value, dict):
            return cls(
                path=str(value.get("path") or value.get("Path") or ""),
                id=str(value.get("id") or value.get("ID") or ""),
                volume_id=str(value.get("volume_id") or value.get("VolumeID") or ""),
            )
        raise TypeError(f"Unsupported device reference: {value!r}")

    def describe(self) -> str:
        """Short label for log messages."""
        parts = [
            f"{name}={value}"
            for name, value in (("path", self.path), ("id", self.id), ("volume_id", self.volume_id))
            if value
        ]
        return " ".join(parts) or "<empty>"


class PartitionType(Enum):
    SWAP = "swap"
    LINUX = "linux"


@dataclass(frozen=True)
class Partition:
    type: PartitionType
    size_in_blocks: int  # 1 KiB blocks


@dataclass(frozen=True)
class PartitionPlan:
    """Ordered partition layout; partition numbering is positional."""

    partitions: tuple[Partition, ...]

    @property
    def total_blocks(self) -> int:
        return sum(partition.size_in_blocks for partition in self.partitions)

    def __iter__(self):
        return iter(self.partitions)

    def __len__(self) -> int:
        return len(self.partitions)

    def __getitem__(self, index: int) -> Partition:
        return self.partitions[index]


def partition_path(device_path: str, number: int) -> str:
    """Kernel name of partition ``number`` on ``device_path``.

    Returns: e.g., "/dev/sdb1" or "/dev/nvme0n1p1"
    """
    suffix = "p" if device_path[-1].isdigit() else ""
    return f"{device_path}{suffix}{number}"


# ==============================================================================
# Network Domain
# ==============================================================================


@dataclass(frozen=True)
class InterfaceAddress:
    interface: str  # e.g., "eth0"
    ip: str  # e.g., "10.0.0.5"


@dataclass(frozen=True)
class NetworkSettings:
    """Settings of one named network from the agent settings document."""

    ip: str = ""
    netmask: str = ""
    gateway: str = ""
    mac: str = ""
    interface: str = ""
    dns: tuple[str, ...] = ()
    default: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NetworkSettings:
        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return None

        return cls(
            ip=pick("ip", "IP") or "",
            netmask=pick("netmask", "Netmask") or "",
            gateway=pick("gateway", "Gateway") or "",
            mac=pick("mac", "Mac") or "",
            interface=pick("interface", "Interface") or "",
            dns=tuple(pick("dns", "DNS", "Dns") or ()),
            default=tuple(pick("default", "Default") or ()),
        )

    @property
    def is_dhcp(self) -> bool:
        return not self.ip

    def is_default_for(self, category: str) -> bool:
        return category in self.default


@dataclass(frozen=True)
class Networks:
    """Named networks in settings order."""

    items: dict[str, NetworkSettings] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Networks:
        return cls(
            items={
                name: value
                if isinstance(value, NetworkSettings)
                else NetworkSettings.from_dict(value)
                for name, value in data.items()
            }
        )

    def default_dns_network(self) -> NetworkSettings | None:
        """The network flagged as default for DNS, if any."""
        for network in self.items.values():
            if network.is_default_for("dns"):
                return network
        return None

    def static(self) -> list[tuple[str, NetworkSettings]]:
        return [(name, network) for name, network in self.items.items() if not network.is_dhcp]
