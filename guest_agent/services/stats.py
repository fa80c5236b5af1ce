"""System statistics sampled with psutil.

The collector keeps the most recent CPU sample so readers get a meaningful
percentage without blocking; memory, swap and disk figures are read on
demand.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Optional

import psutil

from guest_agent.config.settings import DEFAULT_STATS_COLLECTION_INTERVAL
from guest_agent.logging import LoggerFactory


log = LoggerFactory.for_stats()


@dataclass(frozen=True)
class CpuLoad:
    one: float
    five: float
    fifteen: float


@dataclass(frozen=True)
class CpuStats:
    user: float
    sys: float
    wait: float
    total: float


@dataclass(frozen=True)
class Usage:
    total: int
    used: int

    @property
    def percent(self) -> float:
        if not self.total:
            return 0.0
        return round(self.used * 100.0 / self.total, 1)


@dataclass(frozen=True)
class DiskStats:
    disk: Usage
    inodes: Usage


class StatsCollector:
    def __init__(self):
        self._lock = threading.Lock()
        self._last_cpu: Optional[CpuStats] = None

    def get_cpu_load(self) -> CpuLoad:
        one, five, fifteen = os.getloadavg()
        return CpuLoad(one=one, five=five, fifteen=fifteen)

    def sample_cpu(self) -> CpuStats:
        times = psutil.cpu_times_percent(interval=None)
        stats = CpuStats(
            user=times.user,
            sys=times.system,
            wait=getattr(times, "iowait", 0.0),
            total=100.0,
        )
        with self._lock:
            self._last_cpu = stats
        return stats

    def get_cpu_stats(self) -> CpuStats:
        with self._lock:
            last = self._last_cpu
        return last if last is not None else self.sample_cpu()

    def get_mem_stats(self) -> Usage:
        mem = psutil.virtual_memory()
        return Usage(total=mem.total, used=mem.total - mem.available)

    def get_swap_stats(self) -> Usage:
        swap = psutil.swap_memory()
        return Usage(total=swap.total, used=swap.used)

    def get_disk_stats(self, mount_point: str) -> DiskStats:
        usage = psutil.disk_usage(mount_point)
        stat = os.statvfs(mount_point)
        return DiskStats(
            disk=Usage(total=usage.total, used=usage.used),
            inodes=Usage(total=stat.f_files, used=stat.f_files - stat.f_ffree),
        )

    def start_collecting(
        self,
        interval: float = DEFAULT_STATS_COLLECTION_INTERVAL,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        """Sample CPU every ``interval`` seconds until ``stop_event`` is set.

        Blocks the calling thread; run it in a background thread.
        """
        stop_event = stop_event or threading.Event()
        log.info(f"Stats collection started (interval {interval:g}s)")
        while not stop_event.is_set():
            try:
                self.sample_cpu()
            except (OSError, RuntimeError) as error:
                log.debug(f"Stats sample failed: {error}")
            stop_event.wait(interval)
        log.info("Stats collection stopped")
