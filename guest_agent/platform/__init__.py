"""Platform implementations per guest OS family and their composition root."""

from guest_agent.platform.base import Platform
from guest_agent.platform.exceptions import PlatformError, PlatformNotFoundError
from guest_agent.platform.provider import PlatformProvider

__all__ = ["Platform", "PlatformError", "PlatformNotFoundError", "PlatformProvider"]
