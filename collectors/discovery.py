# ==============================================================================
# FILE: collectors/discovery.py
# PURPOSE: Finds hosts on the local IPv4 subnet from the ARP table plus an
#          active ping sweep, resolves their names, and feeds the store.
# ==============================================================================
import ipaddress
import logging
import platform
import socket
import subprocess
from typing import Dict, List, Optional

import psutil

from .base import PeriodicCollector
from .throughput import is_loopback

logger = logging.getLogger(__name__)


def _is_windows() -> bool:
    return platform.system().lower() == "windows"


def parse_arp_output(text: str) -> Dict[str, str]:
    """
    Extract IP -> MAC pairs from `arp -a` style output.

    A line counts only when its first token (parentheses stripped) is an
    IPv4 address and some token has exactly five colons. Anything else is
    skipped.
    """
    pairs: Dict[str, str] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        ip = _extract_ip(parts[0])
        mac = next((word.lower() for word in parts if word.count(':') == 5), '')
        if ip and mac:
            pairs[ip] = mac
    return pairs


def _extract_ip(token: str) -> str:
    try:
        return str(ipaddress.IPv4Address(token.strip('()')))
    except ValueError:
        return ''


def local_subnet() -> Optional[ipaddress.IPv4Network]:
    """First IPv4 network bound to a non-loopback interface, or None."""
    try:
        interfaces_addrs = psutil.net_if_addrs()
    except (psutil.Error, OSError) as e:
        logger.warning(f"Error fetching interfaces: {e}")
        return None

    for iface_name, addrs in interfaces_addrs.items():
        if is_loopback(iface_name):
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.address or not addr.netmask:
                continue
            try:
                network = ipaddress.IPv4Network(f"{addr.address}/{addr.netmask}", strict=False)
            except ValueError:
                continue
            if network.is_loopback or network.is_link_local:
                continue
            return network
    return None


class HostDiscoveryProvider:
    """OS access used by discovery. Swap this out to avoid shelling out."""

    def neighbor_table(self) -> Dict[str, str]:
        raise NotImplementedError

    def is_alive(self, ip: str) -> bool:
        raise NotImplementedError

    def reverse_lookup(self, ip: str) -> str:
        raise NotImplementedError


class ShellDiscoveryProvider(HostDiscoveryProvider):
    """Uses the system `arp` and `ping` commands and the resolver."""

    def __init__(self, ping_timeout: float = 1.0, command_timeout: float = 10.0):
        self.ping_timeout = ping_timeout
        self.command_timeout = command_timeout

    def neighbor_table(self) -> Dict[str, str]:
        try:
            proc = subprocess.run(
                ["arp", "-a"], capture_output=True, text=True,
                errors="ignore", timeout=self.command_timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Error executing arp: {e}")
            return {}
        if proc.returncode != 0:
            logger.warning(f"Error executing arp: exit status {proc.returncode}")
            return {}
        return parse_arp_output(proc.stdout)

    def is_alive(self, ip: str) -> bool:
        if _is_windows():
            cmd = ["ping", "-n", "1", "-w", str(int(self.ping_timeout * 1000)), ip]
        elif platform.system() == "Darwin":
            # BSD ping takes -W in milliseconds.
            cmd = ["ping", "-c", "1", "-W", str(max(1, int(self.ping_timeout * 1000))), ip]
        else:
            cmd = ["ping", "-c", "1", "-W", str(max(1, int(self.ping_timeout))), ip]
        try:
            proc = subprocess.run(
                cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
                timeout=self.ping_timeout + 2,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return proc.returncode == 0

    def reverse_lookup(self, ip: str) -> str:
        try:
            hostname, _, _ = socket.gethostbyaddr(ip)
        except (socket.herror, socket.gaierror, OSError):
            return ''
        return hostname.rstrip('.')


class SubnetSweeper:
    def sweep(self, network: ipaddress.IPv4Network) -> List[str]:
        raise NotImplementedError


class SequentialSweeper(SubnetSweeper):
    """Pings every host address one after another; time grows with subnet size."""

    def __init__(self, provider: HostDiscoveryProvider):
        self.provider = provider

    def sweep(self, network: ipaddress.IPv4Network) -> List[str]:
        # hosts() already leaves out the network and broadcast addresses.
        return [str(ip) for ip in network.hosts() if self.provider.is_alive(str(ip))]


class DeviceDiscoveryCollector(PeriodicCollector):
    def __init__(self, store, interval: float = 10.0,
                 provider: Optional[HostDiscoveryProvider] = None,
                 sweeper: Optional[SubnetSweeper] = None,
                 sweep_enabled: bool = True, max_sweep_hosts: int = 1024):
        super().__init__('discovery', interval, run_immediately=False)
        self.store = store
        self.provider = provider or ShellDiscoveryProvider()
        self.sweeper = sweeper or SequentialSweeper(self.provider)
        self.sweep_enabled = sweep_enabled
        self.max_sweep_hosts = max_sweep_hosts

    def collect(self):
        # ip -> {'mac': ..., 'hostname': ...}
        devices: Dict[str, Dict[str, str]] = {
            ip: {'mac': mac, 'hostname': ''} for ip, mac in self.provider.neighbor_table().items()
        }

        subnet = local_subnet() if self.sweep_enabled else None
        if subnet is not None:
            if subnet.num_addresses - 2 > self.max_sweep_hosts:
                logger.warning(f"Skipping sweep of {subnet}: more than {self.max_sweep_hosts} hosts")
            else:
                for ip in self.sweeper.sweep(subnet):
                    devices.setdefault(ip, {'mac': '', 'hostname': ''})

        for ip, info in devices.items():
            if not info['hostname']:
                info['hostname'] = self.provider.reverse_lookup(ip)
            self.store.update_device(ip, info['mac'], info['hostname'])

        logger.debug(f"Discovery tick: {len(devices)} devices (subnet {subnet})")
