# ==============================================================================
# FILE: telemetry/store.py
# PURPOSE: Shared in-memory time-series store written by the collectors and
#          read by the API. One reader/writer lock guards all three maps.
# ==============================================================================
import threading
import time
from typing import Any, Callable, Dict

from .data_models import (
    MAX_HISTORY_POINTS, DataPoint, Device, InterfaceStats, PingPoint, PingStats,
    bounded_history,
)

DEVICE_ACTIVE_WINDOW_S = 5 * 60


class ReadWriteLock:
    """Many concurrent readers or one writer. Waiting writers block new readers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    def reading(self):
        return _Guard(self.acquire_read, self.release_read)

    def writing(self):
        return _Guard(self.acquire_write, self.release_write)


class _Guard:
    def __init__(self, enter, leave):
        self._enter = enter
        self._leave = leave

    def __enter__(self):
        self._enter()
        return self

    def __exit__(self, *exc):
        self._leave()
        return False


class TelemetryStore:
    """
    Owns every InterfaceStats, Device and PingStats record.

    Mutations take the exclusive lock and reads take the shared lock, each
    for exactly one logical operation. Readers always get independent copies.
    Input is never validated here; whatever the collectors pass is stored.
    """

    def __init__(self, history_points: int = MAX_HISTORY_POINTS,
                 device_active_window_s: float = DEVICE_ACTIVE_WINDOW_S,
                 clock: Callable[[], float] = time.time):
        self.history_points = history_points
        self.device_active_window_s = device_active_window_s
        self._clock = clock
        self._lock = ReadWriteLock()
        self._interfaces: Dict[str, InterfaceStats] = {}
        self._devices: Dict[str, Device] = {}
        self._pings: Dict[str, PingStats] = {}
        self._last_updated = clock()

    @property
    def last_updated(self) -> float:
        with self._lock.reading():
            return self._last_updated

    # --- Mutations ---

    def update_interface(self, name: str, bytes_rx: int, bytes_tx: int,
                         packets_rx: int, packets_tx: int) -> None:
        with self._lock.writing():
            now = self._clock()
            iface = self._interfaces.get(name)
            if iface is not None:
                elapsed = now - iface.last_check
                if elapsed > 0:
                    # Counter resets yield negative speeds; left unclamped.
                    iface.speed_rx = (bytes_rx - iface.bytes_rx) / elapsed
                    iface.speed_tx = (bytes_tx - iface.bytes_tx) / elapsed
                iface.history.append(DataPoint(now, bytes_rx, bytes_tx, iface.speed_rx, iface.speed_tx))
                iface.bytes_rx, iface.bytes_tx = bytes_rx, bytes_tx
                iface.packets_rx, iface.packets_tx = packets_rx, packets_tx
                iface.last_check = now
            else:
                self._interfaces[name] = InterfaceStats(
                    name=name, bytes_rx=bytes_rx, bytes_tx=bytes_tx,
                    packets_rx=packets_rx, packets_tx=packets_tx,
                    history=bounded_history(self.history_points), last_check=now,
                )
            self._last_updated = now

    def update_device(self, ip: str, mac: str = '', hostname: str = '') -> None:
        with self._lock.writing():
            now = self._clock()
            device = self._devices.get(ip)
            if device is not None:
                device.last_seen = now
                device.is_active = True
                # First non-empty value wins.
                if hostname and not device.hostname:
                    device.hostname = hostname
                if mac and not device.mac:
                    device.mac = mac
            else:
                self._devices[ip] = Device(ip=ip, mac=mac, hostname=hostname, last_seen=now, is_active=True)
            self._last_updated = now

    def record_probe(self, host: str, latency_ms: float, success: bool, method: str = '') -> None:
        """Feed one probe outcome. Failed samples count toward loss but never toward latency."""
        with self._lock.writing():
            now = self._clock()
            ping = self._pings.get(host)
            if ping is not None:
                ping.total_pings += 1
                if not success:
                    ping.failed_pings += 1
                else:
                    ping.last_latency_ms = latency_ms
                    # Mean over retained successful history plus this sample.
                    total, count = latency_ms, 1
                    for point in ping.history:
                        if point.success:
                            total += point.latency_ms
                            count += 1
                    ping.avg_latency_ms = total / count
                ping.packet_loss = ping.failed_pings / ping.total_pings * 100
                ping.history.append(PingPoint(now, latency_ms, success))
                ping.last_updated = now
                ping.last_method = method
            else:
                ping = PingStats(
                    host=host, last_latency_ms=latency_ms,
                    avg_latency_ms=latency_ms if success else 0.0,
                    packet_loss=0.0 if success else 100.0,
                    total_pings=1, failed_pings=0 if success else 1,
                    history=bounded_history(self.history_points),
                    last_updated=now, last_method=method,
                )
                ping.history.append(PingPoint(now, latency_ms, success))
                self._pings[host] = ping
            self._last_updated = now

    # --- Snapshots ---

    def snapshot_interfaces(self) -> Dict[str, InterfaceStats]:
        with self._lock.reading():
            return {name: iface.copy() for name, iface in self._interfaces.items()}

    def snapshot_devices(self) -> Dict[str, Device]:
        """Copies of all devices; is_active reflects last_seen age, not the stored flag."""
        with self._lock.reading():
            now = self._clock()
            result = {}
            for ip, device in self._devices.items():
                clone = device.copy()
                clone.is_active = (now - device.last_seen) < self.device_active_window_s
                result[ip] = clone
            return result

    def snapshot_pings(self) -> Dict[str, PingStats]:
        with self._lock.reading():
            return {host: ping.copy() for host, ping in self._pings.items()}

    def live_data(self) -> Dict[str, Any]:
        """JSON-ready aggregate pushed to dashboards on every broadcast cycle."""
        interfaces = self.snapshot_interfaces()
        devices = self.snapshot_devices()
        pings = self.snapshot_pings()
        return {
            'timestamp': self._clock(),
            'interfaces': {name: iface.to_dict() for name, iface in interfaces.items()},
            'devices': {ip: device.to_dict() for ip, device in devices.items()},
            'pings': {host: ping.to_dict() for host, ping in pings.items()},
            'active_devices': sum(1 for d in devices.values() if d.is_active),
            'total_devices': len(devices),
            'total_rx': sum(i.speed_rx for i in interfaces.values()),
            'total_tx': sum(i.speed_tx for i in interfaces.values()),
        }
