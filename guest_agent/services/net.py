"""Interface configuration per OS family.

Both managers write the distribution's configuration files, restart
networking only when a file actually changed, and fire gratuitous ARP for
static addresses without waiting for it.
"""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from typing import Optional

from guest_agent.domain.models import InterfaceAddress, NetworkSettings, Networks
from guest_agent.logging import LoggerFactory
from guest_agent.services.arp import ArpAnnouncer
from guest_agent.system.filesystem import FileSystem
from guest_agent.system.runner import CommandRunner


log = LoggerFactory.for_network()

GENERATED_HEADER = "# Generated by vm-guest-agent\n"

DHCP_CONFIG_TEMPLATE = """{header}
option rfc3442-classless-static-routes code 121 = array of unsigned integer 8;

send host-name "<hostname>";

request subnet-mask, broadcast-address, time-offset, routers,
\tdomain-name, domain-name-servers, domain-search, host-name,
\tnetbios-name-servers, netbios-scope, interface-mtu,
\trfc3442-classless-static-routes, ntp-servers;

{prepends}"""


def render_dhcp_config(networks: Networks) -> str:
    dns_network = networks.default_dns_network()
    servers = list(dns_network.dns) if dns_network else []
    # prepend pushes to the front, so the first server must be written last
    prepends = "".join(
        f"prepend domain-name-servers {server};\n" for server in reversed(servers)
    )
    return DHCP_CONFIG_TEMPLATE.format(header=GENERATED_HEADER, prepends=prepends)


class BaseNetManager(ABC):
    dhcp_config_path = "/etc/dhcp/dhclient.conf"

    def __init__(self, fs: FileSystem, runner: CommandRunner, announcer: ArpAnnouncer):
        self.fs = fs
        self.runner = runner
        self.announcer = announcer

    def interface_for(self, network: NetworkSettings, index: int) -> str:
        """Interface name from settings, else by MAC, else positional ethN."""
        if network.interface:
            return network.interface
        if network.mac:
            for address_path in self.fs.glob("/sys/class/net/*/address"):
                try:
                    mac = self.fs.read_text(address_path).strip().lower()
                except OSError:
                    continue
                if mac == network.mac.lower():
                    return os.path.basename(os.path.dirname(address_path))
        return f"eth{index}"

    def static_addresses(self, networks: Networks) -> list[tuple[InterfaceAddress, NetworkSettings]]:
        return [
            (InterfaceAddress(interface=self.interface_for(network, index), ip=network.ip), network)
            for index, (_, network) in enumerate(networks.static())
        ]

    def setup_dhcp(self, networks: Networks) -> None:
        content = render_dhcp_config(networks)
        if not self.fs.write_text(self.dhcp_config_path, content):
            log.debug("dhclient configuration unchanged; not restarting")
            return
        log.info(f"Wrote {self.dhcp_config_path}; restarting DHCP client")
        self.restart_dhcp()

    def setup_manual_networking(self, networks: Networks) -> Optional[threading.Thread]:
        """Apply static addresses, then announce them in the background.

        Returns:
            The announcement thread, or None when no network is static
        """
        configured = self.static_addresses(networks)
        if not configured:
            log.debug("No static networks to configure")
            return None

        if self.write_static_config(configured, networks):
            log.info(f"Static network configuration changed for {len(configured)} interface(s)")
            self.restart_networking([address.interface for address, _ in configured])

        addresses = [address for address, _ in configured]
        return self.announcer.announce_in_background(addresses)

    @abstractmethod
    def write_static_config(
        self,
        configured: list[tuple[InterfaceAddress, NetworkSettings]],
        networks: Networks,
    ) -> bool:
        """Write static configuration; returns True if anything changed."""

    @abstractmethod
    def restart_networking(self, interfaces: list[str]) -> None:
        ...

    @abstractmethod
    def restart_dhcp(self) -> None:
        ...


class UbuntuNetManager(BaseNetManager):
    dhcp_config_path = "/etc/dhcp3/dhclient.conf"
    interfaces_path = "/etc/network/interfaces"

    def write_static_config(self, configured, networks) -> bool:
        dns_network = networks.default_dns_network()
        blocks = [GENERATED_HEADER, "auto lo\niface lo inet loopback\n"]
        for address, network in configured:
            lines = [
                f"auto {address.interface}",
                f"iface {address.interface} inet static",
                f"    address {network.ip}",
                f"    netmask {network.netmask}",
            ]
            if network.gateway and network.is_default_for("gateway"):
                lines.append(f"    gateway {network.gateway}")
            if dns_network is network and network.dns:
                lines.append(f"    dns-nameservers {' '.join(network.dns)}")
            blocks.append("\n".join(lines) + "\n")
        return self.fs.write_text(self.interfaces_path, "\n".join(blocks))

    def restart_networking(self, interfaces: list[str]) -> None:
        self.runner.run(["ifdown", "-a", "--no-loopback"], check=False)
        self.runner.run(["ifup", "-a", "--no-loopback"])

    def restart_dhcp(self) -> None:
        self.runner.run(["pkill", "dhclient3"], check=False)
        self.runner.run(["/etc/init.d/networking", "restart"])


class CentosNetManager(BaseNetManager):
    dhcp_config_path = "/etc/dhcp/dhclient.conf"
    scripts_dir = "/etc/sysconfig/network-scripts"

    def write_static_config(self, configured, networks) -> bool:
        dns_network = networks.default_dns_network()
        changed = False
        for address, network in configured:
            lines = [
                GENERATED_HEADER.rstrip("\n"),
                f"DEVICE={address.interface}",
                "BOOTPROTO=static",
                f"IPADDR={network.ip}",
                f"NETMASK={network.netmask}",
                "ONBOOT=yes",
            ]
            if network.gateway and network.is_default_for("gateway"):
                lines.append(f"GATEWAY={network.gateway}")
            if dns_network is network:
                lines.extend(f"DNS{index}={server}" for index, server in enumerate(network.dns, start=1))
            path = f"{self.scripts_dir}/ifcfg-{address.interface}"
            changed = self.fs.write_text(path, "\n".join(lines) + "\n") or changed
        return changed

    def restart_networking(self, interfaces: list[str]) -> None:
        self.runner.run(["service", "network", "restart"])

    def restart_dhcp(self) -> None:
        self.runner.run(["service", "network", "restart"])
