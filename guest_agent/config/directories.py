"""Well-known agent directory layout."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_BASE_DIR = Path(os.environ.get("GUEST_AGENT_BASE_DIR", "/var/vcap"))


@dataclass(frozen=True)
class DirectoriesProvider:
    base_dir: Path = DEFAULT_BASE_DIR

    @property
    def data_dir(self) -> Path:
        """Mount point of the ephemeral disk's data partition."""
        return self.base_dir / "data"

    @property
    def store_dir(self) -> Path:
        """Mount point of the persistent disk."""
        return self.base_dir / "store"

    @property
    def settings_dir(self) -> Path:
        return self.base_dir / "bosh" / "settings"

    @property
    def monit_dir(self) -> Path:
        return self.base_dir / "monit"

    def runtime_dirs(self, mount_point: Path | str) -> list[Path]:
        """Runtime subdirectories created on a freshly mounted data volume."""
        return [Path(mount_point) / "sys" / "log", Path(mount_point) / "sys" / "run"]
