# PURPOSE: Main entry point for the application. Run this file.
# ==============================================================================
import logging

import uvicorn

from config import settings
from telemetry.store import TelemetryStore
from collectors.throughput import ThroughputCollector
from collectors.discovery import DeviceDiscoveryCollector, ShellDiscoveryProvider
from collectors.reachability import ReachabilityCollector
from web.api import create_app

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_collectors(store):
    return [
        ThroughputCollector(store, interval=settings.THROUGHPUT_INTERVAL_S),
        DeviceDiscoveryCollector(
            store,
            interval=settings.DISCOVERY_INTERVAL_S,
            provider=ShellDiscoveryProvider(ping_timeout=settings.SWEEP_PING_TIMEOUT_S),
            sweep_enabled=settings.SWEEP_ENABLED,
            max_sweep_hosts=settings.MAX_SWEEP_HOSTS,
        ),
        ReachabilityCollector(
            store,
            targets=settings.PING_TARGETS,
            interval=settings.PING_INTERVAL_S,
            icmp_timeout=settings.ICMP_TIMEOUT_S,
            tcp_ports=settings.TCP_PORTS,
            tcp_timeout=settings.TCP_TIMEOUT_S,
            detect_gw=settings.DETECT_GATEWAY,
            gateway_timeout=settings.GATEWAY_PROBE_TIMEOUT_S,
        ),
    ]


def main():
    store = TelemetryStore(
        history_points=settings.HISTORY_POINTS,
        device_active_window_s=settings.DEVICE_ACTIVE_WINDOW_S,
    )
    collectors = build_collectors(store)
    for collector in collectors:
        collector.start()

    app = create_app(store, broadcast_interval=settings.BROADCAST_INTERVAL_S)

    print(f"\n--- {settings.APP_NAME} ---")
    print(f"==> Dashboard API: http://localhost:{settings.API_PORT}/api/ <==")
    print("---------------------------------")

    try:
        uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
    finally:
        for collector in collectors:
            collector.stop(timeout=1)
        print("Monitoring stopped.")


if __name__ == '__main__':
    main()
