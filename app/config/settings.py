from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    redis_url: str = "redis://localhost:6379"
    redis_max_connections: int = 50
    redis_socket_timeout: int = 5

    telemetry_topic: str = "energy-usage"
    alert_topic: str = "energy-alerts"

    event_bus_queue_max_size: int = 10000
    event_bus_partition_count: int = 4
    event_retention_seconds: int = 86400

    telemetry_retention_seconds: int = 7 * 86400

    device_service_url: str = "http://localhost:8081/api/v1/devices"
    user_service_url: str = "http://localhost:8082/api/v1/users"
    lookup_timeout_seconds: float = 10.0

    circuit_breaker_failure_threshold: int = 6
    circuit_breaker_timeout_seconds: int = 60
    circuit_breaker_half_open_max_calls: int = 3

    aggregation_window_seconds: int = 3600
    aggregation_interval_seconds: int = 3600
    aggregation_lock_timeout_seconds: int = 3000
    scheduler_enabled: bool = True

    backpressure_queue_threshold: int = 8000
    backpressure_reject_threshold: int = 9500

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
