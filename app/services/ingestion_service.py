import logging

from app.core.event_bus import EventBus
from app.models.telemetry import TelemetryEvent

logger = logging.getLogger(__name__)


class TelemetryQueueFull(Exception):
    pass


class IngestionService:
    def __init__(self, event_bus: EventBus, topic: str):
        self.event_bus = event_bus
        self.topic = topic

    async def ingest_energy_usage(self, event: TelemetryEvent) -> None:
        accepted = await self.event_bus.publish(
            self.topic,
            event.device_id,
            event.model_dump_json(by_alias=True),
        )
        if not accepted:
            raise TelemetryQueueFull(
                f"Telemetry queue full, rejected event for device {event.device_id}"
            )

        logger.info(f"Successfully ingested energy usage for device: {event.device_id}")
