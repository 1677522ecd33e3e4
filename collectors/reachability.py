# ==============================================================================
# FILE: collectors/reachability.py
# PURPOSE: Liveness and round-trip time for a fixed target set using ICMP echo
#          with a TCP connect fallback. Echo packets are built and parsed with
#          Scapy but sent over a plain socket, so no sniffer is needed.
# ==============================================================================
import ipaddress
import logging
import os
import platform
import socket
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from scapy.all import ICMP, IP, Raw

from .base import PeriodicCollector

logger = logging.getLogger(__name__)

DEFAULT_TARGETS = ['8.8.8.8', '1.1.1.1', '127.0.0.1']
DEFAULT_TCP_PORTS = [80, 443, 53, 22]
ECHO_PAYLOAD = b'ping-test-data'

ICMP_ECHO_REPLY = 0
ICMP_DEST_UNREACHABLE = 3
ICMP_ECHO_REQUEST = 8
ICMP_TIME_EXCEEDED = 11


class ProbeError(Exception):
    """A single probe attempt failed (timeout, refusal, bad reply...)."""


@dataclass
class ProbeResult:
    host: str
    latency_ms: Optional[float]
    success: bool
    method: str  # "ICMP", "TCP:<port>" or "FAILED"
    error: Optional[str] = None


def _open_icmp_socket() -> Tuple[socket.socket, bool]:
    """Raw ICMP socket if permitted, otherwise the unprivileged datagram flavour."""
    try:
        return socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP), True
    except OSError as raw_error:
        try:
            return socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_ICMP), False
        except OSError as e:
            raise ProbeError(f"listen ICMP (may need root/admin): {raw_error}; {e}") from e


def _parse_icmp(data: bytes, is_raw: bool):
    """ICMP layer of a received datagram."""
    # Raw sockets, and datagram sockets on BSD/macOS, keep the IPv4 header.
    # Its first byte (0x45...) is never a valid ICMP type.
    if is_raw or (len(data) >= 20 and data[0] >> 4 == 4):
        packet = IP(data)
        if ICMP not in packet:
            raise ProbeError("reply carries no ICMP layer")
        return packet[ICMP]
    return ICMP(data)


def icmp_ping(host: str, timeout: float = 5.0, seq: int = 1) -> float:
    """Send one echo request and return the verified RTT in milliseconds."""
    try:
        dest = socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError) as e:
        raise ProbeError(f"resolve {host}: {e}") from e

    sock, is_raw = _open_icmp_socket()
    with sock:
        request = ICMP(type=ICMP_ECHO_REQUEST, code=0, id=os.getpid() & 0xffff, seq=seq) / Raw(load=ECHO_PAYLOAD)
        try:
            sock.settimeout(timeout)
            start = time.perf_counter()
            deadline = start + timeout
            sock.sendto(bytes(request), (dest, 0))
            while True:
                data, peer = sock.recvfrom(1500)
                elapsed_ms = (time.perf_counter() - start) * 1000.0
                reply = _parse_icmp(data, is_raw)
                # A raw socket also sees our own outgoing request (e.g. on loopback).
                if reply.type == ICMP_ECHO_REQUEST and reply.id == request.id and reply.seq == seq:
                    remaining = deadline - time.perf_counter()
                    if remaining <= 0:
                        raise ProbeError(f"ICMP exchange with {dest}: timed out")
                    sock.settimeout(remaining)
                    continue
                break
        except OSError as e:
            raise ProbeError(f"ICMP exchange with {dest}: {e}") from e

        # Datagram ICMP sockets get their echo id rewritten to the local port.
        expected_id = request.id if is_raw else sock.getsockname()[1]

    if peer[0] != dest:
        raise ProbeError(f"reply from wrong host: got {peer[0]}, expected {dest}")

    if reply.type == ICMP_ECHO_REPLY:
        if reply.id == expected_id:
            return elapsed_ms
        raise ProbeError("echo reply ID mismatch")
    if reply.type == ICMP_DEST_UNREACHABLE:
        raise ProbeError("destination unreachable")
    if reply.type == ICMP_TIME_EXCEEDED:
        raise ProbeError("time exceeded")
    raise ProbeError(f"unexpected ICMP type: {reply.type}")


def tcp_ping(host: str, port: int, timeout: float = 3.0) -> float:
    """TCP handshake time in milliseconds. Not comparable to an ICMP RTT."""
    start = time.perf_counter()
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return (time.perf_counter() - start) * 1000.0
    except OSError as e:
        raise ProbeError(f"TCP connect to {host}:{port}: {e}") from e


def probe_host(host: str, icmp_timeout: float = 5.0,
               tcp_ports: Sequence[int] = DEFAULT_TCP_PORTS, tcp_timeout: float = 3.0) -> ProbeResult:
    """ICMP first, then TCP on each port in order until one connects."""
    try:
        return ProbeResult(host, icmp_ping(host, icmp_timeout), True, 'ICMP')
    except ProbeError as e:
        logger.debug(f"ICMP ping failed for {host}: {e}; trying TCP fallback")

    for port in tcp_ports:
        try:
            return ProbeResult(host, tcp_ping(host, port, tcp_timeout), True, f'TCP:{port}')
        except ProbeError:
            continue

    return ProbeResult(host, None, False, 'FAILED', 'both ICMP and TCP ping failed')


def detect_gateway(probe_timeout: float = 2.0, probe_ports: Sequence[int] = (80, 53)) -> Optional[str]:
    """
    Best-effort guess of the default gateway.

    Asks the routing table which local address would reach the internet
    (a connected UDP socket sends nothing), assumes the gateway is `.1` of
    that /24, and keeps it only if it accepts a TCP connection on port 80
    or 53. This is a heuristic, not route inspection.
    """
    logger.info("Detecting gateway IP...")
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(('8.8.8.8', 80))
            local_ip = sock.getsockname()[0]
    except OSError as e:
        logger.info(f"Could not detect gateway via UDP dial: {e}")
        return None

    try:
        network = ipaddress.IPv4Network(f"{local_ip}/24", strict=False)
    except ValueError:
        return None
    candidate = str(network.network_address + 1)

    for port in probe_ports:
        try:
            tcp_ping(candidate, port, probe_timeout)
        except ProbeError:
            continue
        logger.info(f"Gateway IP found: {candidate}")
        return candidate

    logger.info("No valid gateway IP found")
    return None


class ReachabilityCollector(PeriodicCollector):
    """Probes every target sequentially each tick and records every outcome."""

    def __init__(self, store, targets: Optional[List[str]] = None, interval: float = 5.0,
                 icmp_timeout: float = 5.0, tcp_ports: Sequence[int] = DEFAULT_TCP_PORTS,
                 tcp_timeout: float = 3.0, detect_gw: bool = True, gateway_timeout: float = 2.0):
        super().__init__('reachability', interval, run_immediately=True)
        self.store = store
        self.icmp_timeout = icmp_timeout
        self.tcp_ports = list(tcp_ports)
        self.tcp_timeout = tcp_timeout
        self.targets = list(DEFAULT_TARGETS if targets is None else targets)

        if detect_gw:
            gateway = detect_gateway(gateway_timeout)
            if gateway and gateway not in self.targets:
                self.targets.insert(0, gateway)
                logger.info(f"Gateway IP detected: {gateway}")

        logger.info(f"OS: {platform.system()}, initialized ping collector with targets: {self.targets}")

    def collect(self):
        for target in self.targets:
            result = probe_host(target, self.icmp_timeout, self.tcp_ports, self.tcp_timeout)
            latency = result.latency_ms if result.latency_ms is not None else 0.0
            self.store.record_probe(target, latency, result.success, result.method)

            if result.success:
                logger.info(f"{result.method} ping to {target}: RTT = {latency:.2f}ms")
            else:
                logger.warning(f"Ping to {target} failed: {result.error}")
