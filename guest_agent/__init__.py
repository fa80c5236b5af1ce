"""Platform-configuration core of the VM guest agent."""

from guest_agent.__version__ import __version__

__all__ = ["__version__"]
