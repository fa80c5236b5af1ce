"""Platform-level exceptions."""

from __future__ import annotations


class PlatformError(Exception):
    """Base exception for platform operations."""

    step = "platform"


class PlatformNotFoundError(PlatformError):
    """Raised when the provider has no platform for an OS family."""

    step = "lookup"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Platform not found: {name}")
