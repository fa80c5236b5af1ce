"""Thin wrappers around command execution, the filesystem and udev."""
