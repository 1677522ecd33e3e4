# ==============================================================================
# FILE: telemetry/data_models.py
# PURPOSE: Defines the entities held by the telemetry store.
# ==============================================================================
import collections
from dataclasses import dataclass, field
from typing import Any, Deque, Dict

MAX_HISTORY_POINTS = 100


def bounded_history(maxlen: int = MAX_HISTORY_POINTS) -> Deque:
    return collections.deque(maxlen=maxlen)


@dataclass(frozen=True)
class DataPoint:
    timestamp: float
    bytes_rx: int
    bytes_tx: int
    speed_rx: float
    speed_tx: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp, 'bytes_rx': self.bytes_rx, 'bytes_tx': self.bytes_tx,
            'speed_rx': self.speed_rx, 'speed_tx': self.speed_tx,
        }


@dataclass
class InterfaceStats:
    """Cumulative counters and derived speed (bytes/s) for one NIC."""
    name: str
    bytes_rx: int = 0
    bytes_tx: int = 0
    packets_rx: int = 0
    packets_tx: int = 0
    speed_rx: float = 0.0
    speed_tx: float = 0.0
    history: Deque[DataPoint] = field(default_factory=bounded_history)
    last_check: float = 0.0

    def copy(self) -> 'InterfaceStats':
        clone = collections.deque(self.history, maxlen=self.history.maxlen)
        return InterfaceStats(
            self.name, self.bytes_rx, self.bytes_tx, self.packets_rx, self.packets_tx,
            self.speed_rx, self.speed_tx, clone, self.last_check,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'bytes_rx': self.bytes_rx, 'bytes_tx': self.bytes_tx,
            'packets_rx': self.packets_rx, 'packets_tx': self.packets_tx,
            'speed_rx': self.speed_rx, 'speed_tx': self.speed_tx,
            'history': [p.to_dict() for p in self.history],
            'last_check': self.last_check,
        }


@dataclass
class Device:
    """A host seen on the local subnet, keyed by IPv4 address."""
    ip: str
    mac: str = ''
    hostname: str = ''
    last_seen: float = 0.0
    is_active: bool = True

    def copy(self) -> 'Device':
        return Device(self.ip, self.mac, self.hostname, self.last_seen, self.is_active)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ip': self.ip, 'mac': self.mac, 'hostname': self.hostname,
            'last_seen': self.last_seen, 'is_active': self.is_active,
        }


@dataclass(frozen=True)
class PingPoint:
    timestamp: float
    latency_ms: float
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {'timestamp': self.timestamp, 'latency_ms': self.latency_ms, 'success': self.success}


@dataclass
class PingStats:
    """Latency and loss statistics for one probe target."""
    host: str
    last_latency_ms: float = 0.0
    avg_latency_ms: float = 0.0
    packet_loss: float = 0.0
    total_pings: int = 0
    failed_pings: int = 0
    history: Deque[PingPoint] = field(default_factory=bounded_history)
    last_updated: float = 0.0
    # Probe method of the latest sample ("ICMP", "TCP:443", "FAILED"); metadata only.
    last_method: str = ''

    def copy(self) -> 'PingStats':
        clone = collections.deque(self.history, maxlen=self.history.maxlen)
        return PingStats(
            self.host, self.last_latency_ms, self.avg_latency_ms, self.packet_loss,
            self.total_pings, self.failed_pings, clone, self.last_updated, self.last_method,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'last_latency_ms': self.last_latency_ms, 'avg_latency_ms': self.avg_latency_ms,
            'packet_loss': self.packet_loss,
            'total_pings': self.total_pings, 'failed_pings': self.failed_pings,
            'history': [p.to_dict() for p in self.history],
            'last_updated': self.last_updated, 'last_method': self.last_method,
        }
