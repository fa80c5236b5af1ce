"""Filesystem primitives used by the platform layer.

Paths are passed as strings because most of them live under /dev, /sys and
/proc rather than in a project tree.
"""

from __future__ import annotations

import glob as _glob
import os
import shutil
from pathlib import Path
from typing import Optional

from guest_agent.logging import LoggerFactory


log = LoggerFactory.for_system()


class FileSystem:
    def exists(self, path: str) -> bool:
        return os.path.exists(path)  # noqa: PTH110

    def read_text(self, path: str) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_text(self, path: str, content: str, mode: Optional[int] = None) -> bool:
        """Write ``content`` unless the file already holds it.

        Returns:
            True when the file was created or its content changed
        """
        target = Path(path)
        if target.exists() and target.read_text(encoding="utf-8") == content:
            log.debug(f"{path} already up to date")
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        if mode is not None:
            target.chmod(mode)
        log.debug(f"Wrote {len(content)} bytes to {path}")
        return True

    def write(self, path: str, content: str) -> None:
        """Write without reading first; sysfs control files are write-only."""
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(content)

    def mkdir_all(self, path: str, mode: int) -> None:
        target = Path(path)
        target.mkdir(parents=True, exist_ok=True)
        # mkdir honours umask, so the final mode is applied explicitly
        target.chmod(mode)

    def chown(self, path: str, user: Optional[str] = None, group: Optional[str] = None) -> None:
        shutil.chown(path, user=user, group=group)

    def home_dir(self, username: str) -> str:
        home = os.path.expanduser(f"~{username}")
        if home.startswith("~"):
            raise KeyError(f"Unknown user: {username}")
        return home

    def glob(self, pattern: str) -> list[str]:
        return sorted(_glob.glob(pattern))

    def realpath(self, path: str) -> str:
        return os.path.realpath(path)
