"""Vitals reported to the director: load, CPU, memory, swap and disk usage."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, Optional

from guest_agent.config.directories import DirectoriesProvider
from guest_agent.logging import LoggerFactory
from guest_agent.services.stats import CpuLoad, CpuStats, DiskStats, StatsCollector, Usage


log = LoggerFactory.for_stats()


@dataclass(frozen=True)
class Vitals:
    load: CpuLoad
    cpu: CpuStats
    mem: Usage
    swap: Usage
    disk: dict[str, DiskStats] = field(default_factory=dict)

    def to_dict(self) -> dict:
        def usage(value: Usage) -> dict:
            return {"kb": value.used // 1024, "percent": value.percent}

        return {
            "load": [self.load.one, self.load.five, self.load.fifteen],
            "cpu": {"user": self.cpu.user, "sys": self.cpu.sys, "wait": self.cpu.wait},
            "mem": usage(self.mem),
            "swap": usage(self.swap),
            "disk": {
                name: {
                    "percent": stats.disk.percent,
                    "inode_percent": stats.inodes.percent,
                }
                for name, stats in self.disk.items()
            },
        }


class VitalsService:
    def __init__(
        self,
        stats: StatsCollector,
        dirs: DirectoriesProvider,
        is_mount: Callable[[str], bool] = os.path.ismount,
    ):
        self.stats = stats
        self.dirs = dirs
        self.is_mount = is_mount

    def _disk(self, path: str) -> Optional[DiskStats]:
        if not self.is_mount(path):
            return None
        try:
            return self.stats.get_disk_stats(path)
        except OSError as error:
            log.warning(f"Disk stats unavailable for {path}: {error}")
            return None

    def get(self) -> Vitals:
        disks: dict[str, DiskStats] = {}
        for name, path in (
            ("system", "/"),
            ("ephemeral", str(self.dirs.data_dir)),
            ("persistent", str(self.dirs.store_dir)),
        ):
            stats = self._disk(path)
            if stats is not None:
                disks[name] = stats

        return Vitals(
            load=self.stats.get_cpu_load(),
            cpu=self.stats.get_cpu_stats(),
            mem=self.stats.get_mem_stats(),
            swap=self.stats.get_swap_stats(),
            disk=disks,
        )
