from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "LAN Telemetry Monitor"
    LOG_LEVEL: str = "INFO"

    # Live API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080
    BROADCAST_INTERVAL_S: float = 2.0

    # Collection intervals
    THROUGHPUT_INTERVAL_S: float = 2.0
    DISCOVERY_INTERVAL_S: float = 10.0
    PING_INTERVAL_S: float = 5.0

    # Reachability probes
    PING_TARGETS: List[str] = ["8.8.8.8", "1.1.1.1", "127.0.0.1"]
    DETECT_GATEWAY: bool = True
    GATEWAY_PROBE_TIMEOUT_S: float = 2.0
    ICMP_TIMEOUT_S: float = 5.0
    TCP_TIMEOUT_S: float = 3.0
    TCP_PORTS: List[int] = [80, 443, 53, 22]

    # Device discovery
    SWEEP_ENABLED: bool = True
    SWEEP_PING_TIMEOUT_S: float = 1.0
    MAX_SWEEP_HOSTS: int = 1024

    # Store
    HISTORY_POINTS: int = 100
    DEVICE_ACTIVE_WINDOW_S: float = 300.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
