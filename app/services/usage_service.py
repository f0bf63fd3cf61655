import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Optional

import redis.asyncio as redis

from app.clients.batch_lookup import DeviceClient, UserClient
from app.core.locks import DistributedLock
from app.models.alert import AlertEvent
from app.models.usage import (
    AggregationReport,
    DeviceEnergyUsage,
    RunOutcome,
    UsageWindow,
)
from app.services.alert_publisher import AlertPublisher
from app.storage.energy_store import EnergyUsageStore

logger = logging.getLogger(__name__)

AGGREGATION_LOCK = "usage-aggregation"


class UsageAggregator:
    """Sums the trailing window per owner and alerts on threshold violations.

    A run never fails because of the lookup services: devices without a
    resolvable owner are dropped and owners without an enabled alert config
    are skipped. Store query errors propagate to the caller.
    """

    def __init__(
        self,
        store: EnergyUsageStore,
        device_client: DeviceClient,
        user_client: UserClient,
        publisher: AlertPublisher,
        window: timedelta = timedelta(hours=1),
        redis_client: Optional[redis.Redis] = None,
        lock_timeout_seconds: int = 3000,
        tick_seconds: int = 3600,
    ):
        self.store = store
        self.device_client = device_client
        self.user_client = user_client
        self.publisher = publisher
        self.window = window
        self.redis = redis_client
        self.lock_timeout_seconds = lock_timeout_seconds
        self.tick_seconds = tick_seconds

    def tick_lock_name(self, now: datetime) -> str:
        # Nearest slot, so replicas with slightly skewed clocks agree.
        return f"{AGGREGATION_LOCK}:{round(now.timestamp() / self.tick_seconds)}"

    async def run(self, now: Optional[datetime] = None) -> AggregationReport:
        now = now or datetime.now(timezone.utc)
        if self.redis is None:
            return await self.check_thresholds(now)

        lock = DistributedLock(
            self.redis, self.tick_lock_name(now), self.lock_timeout_seconds
        )
        if not await lock.acquire():
            logger.info(
                "Energy threshold check for this tick already claimed by another instance"
            )
            return AggregationReport(outcome=RunOutcome.SKIPPED)

        return await self.check_thresholds(now)

    async def check_thresholds(
        self, now: Optional[datetime] = None
    ) -> AggregationReport:
        now = now or datetime.now(timezone.utc)
        window = UsageWindow.trailing(now, self.window)
        report = AggregationReport(window=window)
        logger.info("Starting energy threshold check")

        usages = await self.store.sum_by_device(window)
        report.devices_queried = len(usages)
        if not usages:
            logger.warning(
                f"No device energy usage found since {window.start.isoformat()}"
            )
            report.outcome = RunOutcome.EMPTY_WINDOW
            return report

        owned = await self._resolve_owners(usages)
        report.devices_unresolved = len(usages) - len(owned)

        owner_totals = self._aggregate_by_owner(owned)
        report.owners = len(owner_totals)
        report.owner_totals = owner_totals

        alerts, skipped = await self._evaluate_thresholds(owner_totals)
        report.owners_skipped = skipped

        for alert in alerts:
            await self.publisher.publish(alert)
        report.alerts_emitted = len(alerts)

        logger.info(
            f"Energy threshold check done: {report.devices_queried} devices, "
            f"{report.devices_unresolved} unresolved, {report.owners} owners, "
            f"{report.owners_skipped} skipped, {report.alerts_emitted} alerts"
        )
        return report

    async def _resolve_owners(
        self, usages: list[DeviceEnergyUsage]
    ) -> list[DeviceEnergyUsage]:
        devices = await self.device_client.lookup({u.device_id for u in usages})

        owned = []
        for usage in usages:
            device = devices.get(usage.device_id)
            if device is None or device.owner_id is None:
                logger.warning(f"Device info not found for deviceId: {usage.device_id}")
                continue
            usage.owner_id = device.owner_id
            owned.append(usage)

        return owned

    @staticmethod
    def _aggregate_by_owner(usages: list[DeviceEnergyUsage]) -> dict[str, float]:
        totals: dict[str, float] = defaultdict(float)
        for usage in usages:
            totals[usage.owner_id] += usage.energy_consumed
        return dict(totals)

    async def _evaluate_thresholds(
        self, owner_totals: dict[str, float]
    ) -> tuple[list[AlertEvent], int]:
        if not owner_totals:
            return [], 0

        configs = await self.user_client.lookup(owner_totals.keys())

        alerts = []
        skipped = 0
        for owner_id, total in sorted(owner_totals.items()):
            config = configs.get(owner_id)
            if config is None or not config.alerting_enabled or config.threshold is None:
                logger.info(f"User {owner_id} not found or alerting disabled")
                skipped += 1
                continue

            if total > config.threshold:
                logger.warning(
                    f"ALERT: User ID: {owner_id} has exceeded threshold: "
                    f"{config.threshold}, Total Consumption: {total}"
                )
                alerts.append(
                    AlertEvent(
                        owner_id=owner_id,
                        threshold=config.threshold,
                        energy_consumed=total,
                        contact_address=config.contact_address,
                    )
                )
            else:
                logger.debug(
                    f"User ID: {owner_id} is within threshold: {config.threshold}. "
                    f"Total Consumption: {total}"
                )

        return alerts, skipped
