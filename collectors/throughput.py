# ==============================================================================
# FILE: collectors/throughput.py
# PURPOSE: Feeds per-NIC cumulative byte/packet counters into the store.
# ==============================================================================
import logging

import psutil

from .base import PeriodicCollector

logger = logging.getLogger(__name__)

LOOPBACK_NAMES = {'lo', 'lo0', 'Loopback Pseudo-Interface 1'}


def is_loopback(iface_name: str) -> bool:
    return iface_name in LOOPBACK_NAMES or iface_name.startswith('Loopback')


class ThroughputCollector(PeriodicCollector):
    def __init__(self, store, interval: float = 2.0):
        super().__init__('throughput', interval)
        self.store = store

    def collect(self):
        try:
            counters = psutil.net_io_counters(pernic=True)
        except (psutil.Error, OSError) as e:
            logger.warning(f"Error collecting network stats: {e}")
            return

        for iface_name, io in counters.items():
            if is_loopback(iface_name):
                continue
            self.store.update_interface(
                iface_name, io.bytes_recv, io.bytes_sent, io.packets_recv, io.packets_sent
            )
