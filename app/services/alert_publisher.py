import logging

from app.core.event_bus import EventBus
from app.models.alert import AlertEvent

logger = logging.getLogger(__name__)


class AlertPublisher:
    """Fire-and-forget producer for the outbound alert topic."""

    def __init__(self, event_bus: EventBus, topic: str):
        self.event_bus = event_bus
        self.topic = topic

    async def publish(self, alert: AlertEvent) -> None:
        accepted = await self.event_bus.publish(
            self.topic,
            alert.owner_id,
            alert.model_dump_json(by_alias=True),
        )
        if accepted:
            logger.debug(f"Published alert for owner {alert.owner_id} to {self.topic}")
