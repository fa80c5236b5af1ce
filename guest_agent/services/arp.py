"""Gratuitous ARP announcements after static IP assignment.

Switches and peers may still cache the previous owner of an address. ARP has
no acknowledgement, so each address is announced a fixed number of times
rather than until confirmed. Announcements are best-effort: failures are
logged and never reach the caller.
"""

from __future__ import annotations

import socket
import threading
import time
from typing import Callable, Iterable, Optional

import psutil

from guest_agent.config.settings import (
    DEFAULT_ARP_INTERFACE_CHECK_DELAY,
    DEFAULT_ARP_ITERATION_DELAY,
    DEFAULT_ARP_ITERATIONS,
)
from guest_agent.domain.models import InterfaceAddress
from guest_agent.logging import LoggerFactory, get_logger
from guest_agent.retry import AttemptRetryStrategy, RetryExhaustedError
from guest_agent.system.filesystem import FileSystem
from guest_agent.system.runner import CommandError, CommandRunner


log = LoggerFactory.for_network()
poll_log = get_logger(source="net", tags=["net", "arp", "poll"])


class IpResolver:
    """Looks up the IPv4 address assigned to an interface."""

    def get_primary_ipv4(self, interface: str) -> Optional[str]:
        for address in psutil.net_if_addrs().get(interface, []):
            if address.family == socket.AF_INET:
                return address.address
        return None


class _BroadcastRetryable:
    """One arping per attempt; asks for another until the quota is sent."""

    def __init__(self, runner: CommandRunner, address: InterfaceAddress, iterations: int):
        self.runner = runner
        self.address = address
        self.iterations = iterations
        self.sent = 0

    def attempt(self) -> bool:
        self.sent += 1
        try:
            self.runner.run(
                ["arping", "-c", "1", "-U", "-I", self.address.interface, self.address.ip],
                log_output=False,
            )
            poll_log.trace(
                f"Announced {self.address.ip} on {self.address.interface} "
                f"({self.sent}/{self.iterations})"
            )
        except CommandError as error:
            log.info(f"Ignoring arping failure on {self.address.interface}: {error}")
        return self.sent < self.iterations


class ArpAnnouncer:
    def __init__(
        self,
        runner: CommandRunner,
        fs: FileSystem,
        iterations: int = DEFAULT_ARP_ITERATIONS,
        iteration_delay: float = DEFAULT_ARP_ITERATION_DELAY,
        interface_check_delay: float = DEFAULT_ARP_INTERFACE_CHECK_DELAY,
        ip_resolver: Optional[IpResolver] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runner = runner
        self.fs = fs
        self.iterations = iterations
        self.iteration_delay = iteration_delay
        self.interface_check_delay = interface_check_delay
        self.ip_resolver = ip_resolver or IpResolver()
        self._sleep = sleep

    @property
    def interface_wait_limit(self) -> int:
        """Number of interface checks made before giving up on an interface."""
        window = max(self.iterations, 1) * self.iteration_delay
        if self.interface_check_delay <= 0:
            return 1
        return max(int(window / self.interface_check_delay), 1)

    def _wait_for_interface(self, interface: str) -> bool:
        sys_path = f"/sys/class/net/{interface}"
        for check in range(self.interface_wait_limit):
            if self.fs.exists(sys_path):
                return True
            poll_log.trace(f"Waiting for {interface} to appear (check {check + 1})")
            self._sleep(self.interface_check_delay)
        return False

    def _broadcast(self, address: InterfaceAddress) -> None:
        if self.iterations < 1:
            return
        if not self._wait_for_interface(address.interface):
            log.warning(f"Interface {address.interface} never appeared; not announcing {address.ip}")
            return

        retryable = _BroadcastRetryable(self.runner, address, self.iterations)
        strategy = AttemptRetryStrategy(
            self.iterations,
            self.iteration_delay,
            retryable,
            sleep=self._sleep,
            name="arp",
        )
        try:
            strategy.run()
        except RetryExhaustedError as error:
            log.warning(f"ARP announcement on {address.interface} incomplete: {error}")
            return
        log.debug(f"Announced {address.ip} on {address.interface} {retryable.sent} time(s)")

    def _broadcast_safely(self, address: InterfaceAddress) -> None:
        try:
            self._broadcast(address)
        except Exception as error:
            log.warning(f"ARP announcement on {address.interface} failed: {error}")

    def announce(self, addresses: Iterable[InterfaceAddress]) -> None:
        """Announce every address concurrently and wait for all of them."""
        workers = [
            threading.Thread(
                target=self._broadcast_safely,
                args=(address,),
                name=f"arp-{address.interface}",
                daemon=True,
            )
            for address in addresses
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

    def announce_on(self, interfaces: Iterable[str]) -> None:
        """Announce the current IPv4 address of each named interface."""
        addresses = []
        for interface in interfaces:
            ip = self.ip_resolver.get_primary_ipv4(interface)
            if ip is None:
                log.warning(f"No IPv4 address on {interface}; skipping ARP announcement")
                continue
            addresses.append(InterfaceAddress(interface=interface, ip=ip))
        self.announce(addresses)

    def announce_in_background(self, addresses: Iterable[InterfaceAddress]) -> threading.Thread:
        """Start announcing without blocking the caller."""
        addresses = list(addresses)
        thread = threading.Thread(
            target=self.announce,
            args=(addresses,),
            name="arp-announcer",
            daemon=True,
        )
        thread.start()
        return thread
