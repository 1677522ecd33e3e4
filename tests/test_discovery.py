import ipaddress
import socket
import subprocess
from types import SimpleNamespace

from collectors import discovery
from collectors.discovery import (
    DeviceDiscoveryCollector, HostDiscoveryProvider, SequentialSweeper,
    ShellDiscoveryProvider, local_subnet, parse_arp_output,
)

LINUX_ARP = """\
? (192.168.1.1) at 00:1A:2B:3C:4D:5E [ether] on eth0
router.lan (192.168.1.254) at aa:bb:cc:dd:ee:ff [ether] on eth0
? (192.168.1.77) at <incomplete> on eth0
garbage line without address
? (not-an-ip) at 11:22:33:44:55:66 [ether] on eth0
"""

WINDOWS_ARP = """\
Interface: 192.168.1.10 --- 0x4
  Internet Address      Physical Address      Type
  192.168.1.1           00-1a-2b-3c-4d-5e     dynamic
"""


def test_parse_linux_arp_output():
    assert parse_arp_output(LINUX_ARP) == {
        "192.168.1.1": "00:1a:2b:3c:4d:5e",
        "192.168.1.254": "aa:bb:cc:dd:ee:ff",
    }


def test_dash_separated_macs_are_not_matched():
    assert parse_arp_output(WINDOWS_ARP) == {}


def test_parse_empty_output():
    assert parse_arp_output("") == {}


class FakeProvider(HostDiscoveryProvider):
    def __init__(self, arp=None, alive=(), names=None):
        self.arp = arp or {}
        self.alive = set(alive)
        self.names = names or {}
        self.probed = []
        self.looked_up = []

    def neighbor_table(self):
        return dict(self.arp)

    def is_alive(self, ip):
        self.probed.append(ip)
        return ip in self.alive

    def reverse_lookup(self, ip):
        self.looked_up.append(ip)
        return self.names.get(ip, "")


def test_sequential_sweep_skips_network_and_broadcast():
    provider = FakeProvider(alive={"10.0.0.1", "10.0.0.6"})
    found = SequentialSweeper(provider).sweep(ipaddress.IPv4Network("10.0.0.0/29"))
    assert found == ["10.0.0.1", "10.0.0.6"]
    assert provider.probed == [f"10.0.0.{i}" for i in range(1, 7)]


def test_collect_merges_arp_sweep_and_names(monkeypatch, store):
    monkeypatch.setattr(discovery, "local_subnet", lambda: ipaddress.IPv4Network("192.168.1.0/29"))
    provider = FakeProvider(
        arp={"192.168.1.1": "00:1a:2b:3c:4d:5e"},
        alive={"192.168.1.1", "192.168.1.3"},
        names={"192.168.1.1": "router.lan"},
    )
    collector = DeviceDiscoveryCollector(store, provider=provider)
    collector.collect()

    devices = store.snapshot_devices()
    assert set(devices) == {"192.168.1.1", "192.168.1.3"}
    assert devices["192.168.1.1"].mac == "00:1a:2b:3c:4d:5e"
    assert devices["192.168.1.1"].hostname == "router.lan"
    assert devices["192.168.1.3"].mac == ""
    assert devices["192.168.1.3"].is_active is True


def test_collect_without_subnet_uses_arp_only(monkeypatch, store):
    monkeypatch.setattr(discovery, "local_subnet", lambda: None)
    provider = FakeProvider(arp={"10.1.1.1": "aa:aa:aa:aa:aa:aa"})
    DeviceDiscoveryCollector(store, provider=provider).collect()
    assert list(store.snapshot_devices()) == ["10.1.1.1"]
    assert provider.probed == []


def test_oversized_subnet_is_not_swept(monkeypatch, store):
    monkeypatch.setattr(discovery, "local_subnet", lambda: ipaddress.IPv4Network("10.0.0.0/16"))
    provider = FakeProvider()
    DeviceDiscoveryCollector(store, provider=provider, max_sweep_hosts=254).collect()
    assert provider.probed == []


def test_hostname_stays_sticky_across_ticks(monkeypatch, store):
    monkeypatch.setattr(discovery, "local_subnet", lambda: None)
    provider = FakeProvider(arp={"10.1.1.1": "aa:aa:aa:aa:aa:aa"}, names={"10.1.1.1": "nas"})
    collector = DeviceDiscoveryCollector(store, provider=provider)
    collector.collect()
    provider.names = {"10.1.1.1": ""}
    collector.collect()
    assert store.snapshot_devices()["10.1.1.1"].hostname == "nas"


def test_arp_command_failure_returns_empty(monkeypatch):
    def boom(*args, **kwargs):
        raise FileNotFoundError("arp")

    monkeypatch.setattr(discovery.subprocess, "run", boom)
    assert ShellDiscoveryProvider().neighbor_table() == {}


def test_arp_nonzero_exit_returns_empty(monkeypatch):
    monkeypatch.setattr(
        discovery.subprocess, "run",
        lambda *a, **kw: SimpleNamespace(returncode=1, stdout=LINUX_ARP),
    )
    assert ShellDiscoveryProvider().neighbor_table() == {}


def test_arp_output_is_parsed(monkeypatch):
    monkeypatch.setattr(
        discovery.subprocess, "run",
        lambda *a, **kw: SimpleNamespace(returncode=0, stdout=LINUX_ARP),
    )
    assert "192.168.1.254" in ShellDiscoveryProvider().neighbor_table()


def test_is_alive_uses_single_ping(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return SimpleNamespace(returncode=0)

    monkeypatch.setattr(discovery, "_is_windows", lambda: False)
    monkeypatch.setattr(discovery.platform, "system", lambda: "Linux")
    monkeypatch.setattr(discovery.subprocess, "run", fake_run)
    assert ShellDiscoveryProvider().is_alive("192.168.1.9") is True
    assert calls == [["ping", "-c", "1", "-W", "1", "192.168.1.9"]]


def test_is_alive_on_macos_waits_in_milliseconds(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return SimpleNamespace(returncode=1)

    monkeypatch.setattr(discovery, "_is_windows", lambda: False)
    monkeypatch.setattr(discovery.platform, "system", lambda: "Darwin")
    monkeypatch.setattr(discovery.subprocess, "run", fake_run)
    assert ShellDiscoveryProvider(ping_timeout=1.0).is_alive("192.168.1.9") is False
    assert calls == [["ping", "-c", "1", "-W", "1000", "192.168.1.9"]]


def test_is_alive_timeout_is_false(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, 3)

    monkeypatch.setattr(discovery.subprocess, "run", fake_run)
    assert ShellDiscoveryProvider().is_alive("192.168.1.9") is False


def test_reverse_lookup_strips_dot_and_degrades(monkeypatch):
    monkeypatch.setattr(discovery.socket, "gethostbyaddr", lambda ip: ("host.lan.", [], [ip]))
    assert ShellDiscoveryProvider().reverse_lookup("10.0.0.5") == "host.lan"

    def fail(ip):
        raise socket.herror("unknown host")

    monkeypatch.setattr(discovery.socket, "gethostbyaddr", fail)
    assert ShellDiscoveryProvider().reverse_lookup("10.0.0.5") == ""


def _addr(family, address, netmask):
    return SimpleNamespace(family=family, address=address, netmask=netmask)


def test_local_subnet_skips_loopback_and_link_local(monkeypatch):
    monkeypatch.setattr(discovery.psutil, "net_if_addrs", lambda: {
        "lo": [_addr(socket.AF_INET, "127.0.0.1", "255.0.0.0")],
        "eth1": [_addr(socket.AF_INET, "169.254.3.4", "255.255.0.0")],
        "eth0": [
            _addr(socket.AF_INET6, "fe80::1", "ffff:ffff:ffff:ffff::"),
            _addr(socket.AF_INET, "192.168.1.10", "255.255.255.0"),
        ],
    })
    assert local_subnet() == ipaddress.IPv4Network("192.168.1.0/24")


def test_local_subnet_none_when_absent(monkeypatch):
    monkeypatch.setattr(discovery.psutil, "net_if_addrs", lambda: {})
    assert local_subnet() is None
