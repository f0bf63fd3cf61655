import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import httpx
import redis.asyncio as redis
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api import alerts, ingestions, usages
from app.clients.batch_lookup import DeviceClient, UserClient
from app.config.settings import Settings, get_settings
from app.core.circuit_breaker import CircuitBreaker
from app.core.event_bus import EventBus
from app.core.redis_client import create_redis_client
from app.core.scheduler import HourlyScheduler
from app.middleware.backpressure import BackpressureMiddleware
from app.services.alert_publisher import AlertPublisher
from app.services.ingestion_service import IngestionService
from app.services.telemetry_writer import TelemetryWriter
from app.services.usage_service import UsageAggregator
from app.storage.energy_store import EnergyUsageStore
from app.storage.event_store import EventStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _circuit_breaker(name: str, settings: Settings) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        failure_threshold=settings.circuit_breaker_failure_threshold,
        timeout_seconds=settings.circuit_breaker_timeout_seconds,
        half_open_max_calls=settings.circuit_breaker_half_open_max_calls,
    )


def create_app(
    settings: Optional[Settings] = None,
    redis_client: Optional[redis.Redis] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        redis_conn = redis_client or create_redis_client(settings)
        http = http_client or httpx.AsyncClient(timeout=settings.lookup_timeout_seconds)

        event_store = EventStore(redis_conn, settings.event_retention_seconds)
        event_bus = EventBus(
            event_store,
            partition_count=settings.event_bus_partition_count,
            queue_max_size=settings.event_bus_queue_max_size,
            durable_topics={settings.alert_topic},
        )
        energy_store = EnergyUsageStore(redis_conn, settings.telemetry_retention_seconds)

        writer = TelemetryWriter(energy_store)
        event_bus.subscribe(settings.telemetry_topic, writer.handle)

        aggregator = UsageAggregator(
            energy_store,
            DeviceClient(
                settings.device_service_url,
                http,
                settings.lookup_timeout_seconds,
                _circuit_breaker("device_service", settings),
            ),
            UserClient(
                settings.user_service_url,
                http,
                settings.lookup_timeout_seconds,
                _circuit_breaker("user_service", settings),
            ),
            AlertPublisher(event_bus, settings.alert_topic),
            window=timedelta(seconds=settings.aggregation_window_seconds),
            redis_client=redis_conn,
            lock_timeout_seconds=settings.aggregation_lock_timeout_seconds,
            tick_seconds=settings.aggregation_interval_seconds,
        )
        scheduler = HourlyScheduler(
            aggregator.run,
            interval_seconds=settings.aggregation_interval_seconds,
            name="energy threshold check",
        )

        app.state.settings = settings
        app.state.event_store = event_store
        app.state.event_bus = event_bus
        app.state.ingestion_service = IngestionService(event_bus, settings.telemetry_topic)
        app.state.usage_scheduler = scheduler
        app.state.usage_aggregator = aggregator

        await event_bus.start()
        if settings.scheduler_enabled:
            scheduler.start()
        logger.info("Usage service started")

        yield

        await scheduler.stop()
        await event_bus.stop()
        if http_client is None:
            await http.aclose()
        if redis_client is None:
            await redis_conn.aclose()
        logger.info("Usage service stopped")

    app = FastAPI(title="Energy Usage Service", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(BackpressureMiddleware)

    app.include_router(ingestions.router, prefix="/api/v1/ingestions", tags=["ingestions"])
    app.include_router(usages.router, prefix="/api/v1/usages", tags=["usages"])
    app.include_router(alerts.router, prefix="/api/v1/alerts", tags=["alerts"])

    @app.get("/health")
    async def health_check(request: Request):
        return {
            "status": "healthy",
            "service": "usage-service",
            "queue_depth": request.app.state.event_bus.get_queue_size(),
        }

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(KeyError)
    async def key_error_handler(request: Request, exc: KeyError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    return app


app = create_app()
