import logging

from pydantic import ValidationError

from app.models.telemetry import TelemetryEvent, TimeSeriesPoint
from app.storage.energy_store import EnergyUsageStore

logger = logging.getLogger(__name__)


class TelemetryWriter:
    """Consumer of the inbound telemetry topic.

    Persistence is at-most-once: a failed write is logged and the event is
    considered handled.
    """

    def __init__(self, store: EnergyUsageStore):
        self.store = store

    async def handle(self, event: dict) -> None:
        try:
            telemetry = TelemetryEvent.model_validate_json(event["message"])
        except (KeyError, ValidationError) as e:
            logger.error(f"Dropping undecodable telemetry message {event.get('key')}: {e}")
            return

        await self.write(telemetry)

    async def write(self, event: TelemetryEvent) -> None:
        logger.debug(f"Received energy-usage event: {event}")
        try:
            point = TimeSeriesPoint.from_event(event)
            await self.store.write_point(point)
        except Exception as e:
            logger.error(
                f"Failed to process energy usage event for device {event.device_id}: {e}",
                exc_info=True,
            )
            return

        logger.debug(f"Wrote energy usage point for device {event.device_id}")
