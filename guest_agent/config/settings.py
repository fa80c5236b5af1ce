"""Platform options loaded from the agent's settings file."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from guest_agent.logging import LoggerFactory


log = LoggerFactory.for_system()


SETTINGS_PATH = Path(
    os.environ.get(
        "GUEST_AGENT_SETTINGS_PATH",
        "/var/vcap/bosh/agent.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_DISK_WAIT_TIMEOUT = 5.0
DEFAULT_DISK_POLL_INTERVAL = 0.5
DEFAULT_ARP_ITERATIONS = 20
DEFAULT_ARP_ITERATION_DELAY = 5.0
DEFAULT_ARP_INTERFACE_CHECK_DELAY = 0.1
DEFAULT_STATS_COLLECTION_INTERVAL = 10.0

RESOLUTION_VIRTIO = "virtio"
RESOLUTION_SCSI = "scsi"

# Settings keys as written by the director alongside their python names
_KEY_ALIASES = {
    "DevicePathResolutionType": "device_path_resolution_type",
    "BindMountPersistentDisk": "bind_mount_persistent_disk",
    "DiskWaitTimeout": "disk_wait_timeout",
    "DiskPollInterval": "disk_poll_interval",
    "EphemeralDiskGroup": "ephemeral_disk_group",
    "Iterations": "iterations",
    "IterationDelay": "iteration_delay",
    "InterfaceCheckDelay": "interface_check_delay",
}


@dataclass(frozen=True)
class LinuxOptions:
    device_path_resolution_type: str = ""
    bind_mount_persistent_disk: bool = False
    disk_wait_timeout: float = DEFAULT_DISK_WAIT_TIMEOUT
    disk_poll_interval: float = DEFAULT_DISK_POLL_INTERVAL
    ephemeral_disk_group: str | None = None


@dataclass(frozen=True)
class ArpOptions:
    iterations: int = DEFAULT_ARP_ITERATIONS
    iteration_delay: float = DEFAULT_ARP_ITERATION_DELAY
    interface_check_delay: float = DEFAULT_ARP_INTERFACE_CHECK_DELAY


@dataclass(frozen=True)
class PlatformOptions:
    linux: LinuxOptions = field(default_factory=LinuxOptions)
    arp: ArpOptions = field(default_factory=ArpOptions)
    stats_collection_interval: float = DEFAULT_STATS_COLLECTION_INTERVAL


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {_KEY_ALIASES.get(key, key): value for key, value in data.items()}


def _section(data: dict[str, Any], *names: str) -> dict[str, Any]:
    for name in names:
        value = data.get(name)
        if isinstance(value, dict):
            return _normalize_keys(value)
    return {}


def _coerce(name: str, value: Any, default: Any) -> Any:
    """Convert a settings value to the type of its field's default.

    Raises:
        TypeError: If a flag is not a JSON boolean
        ValueError: If a number cannot be parsed
    """
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise TypeError(f"{name} must be true or false, got {value!r}")
        return value
    if value is None:
        return default
    if default is None:
        return str(value)
    return type(default)(value)


def _build(cls, values: dict[str, Any]):
    kwargs = {}
    for option in fields(cls):
        if option.name in values:
            kwargs[option.name] = _coerce(option.name, values[option.name], option.default)
    return cls(**kwargs)


def options_from_dict(data: dict[str, Any]) -> PlatformOptions:
    """Build PlatformOptions from a parsed settings document.

    Unknown keys are ignored so newer settings files keep working. Values
    are converted to each option's type.

    Raises:
        TypeError: If a flag is not a boolean
        ValueError: If a numeric option cannot be parsed
    """
    platform_section = _section(data, "Platform", "platform") or _normalize_keys(data)
    linux = _build(LinuxOptions, _section(platform_section, "Linux", "linux"))
    arp = _build(ArpOptions, _section(platform_section, "Arp", "arp"))
    interval = platform_section.get(
        "stats_collection_interval", DEFAULT_STATS_COLLECTION_INTERVAL
    )
    return PlatformOptions(
        linux=linux,
        arp=arp,
        stats_collection_interval=_coerce(
            "stats_collection_interval", interval, DEFAULT_STATS_COLLECTION_INTERVAL
        ),
    )


def load_options(path: Path | None = None) -> PlatformOptions:
    settings_path = path or SETTINGS_PATH
    if not settings_path.exists():
        return PlatformOptions()
    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return PlatformOptions()
    if not isinstance(data, dict):
        return PlatformOptions()
    try:
        return options_from_dict(data)
    except (TypeError, ValueError) as error:
        log.warning(f"Invalid platform options in {settings_path}, using defaults: {error}")
        return PlatformOptions()
