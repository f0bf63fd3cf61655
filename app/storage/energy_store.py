import logging

import redis.asyncio as redis

from app.models.telemetry import ENERGY_MEASUREMENT, TimeSeriesPoint, to_epoch_ms
from app.models.usage import DeviceEnergyUsage, UsageWindow

logger = logging.getLogger(__name__)

# Points are sharded into hourly buckets so that retention is a plain EXPIRE
# and a trailing window touches at most a couple of keys per device.
BUCKET_MS = 3600 * 1000


class EnergyUsageStore:
    """Redis-backed time series for the ``energy_usage`` measurement.

    Layout per hourly bucket ``b``:

    - ``energy_usage:series:{b}:{device_id}``: hash of ``time_ms -> energyConsumed``
    - ``energy_usage:index:{b}``: set of device ids with points in ``b``

    Writing the same ``(device_id, time_ms)`` coordinate twice keeps the
    last value.
    """

    def __init__(self, redis_client: redis.Redis, retention_seconds: int):
        self.redis = redis_client
        self.retention_seconds = retention_seconds

    @staticmethod
    def _series_key(bucket: int, device_id: str) -> str:
        return f"{ENERGY_MEASUREMENT}:series:{bucket}:{device_id}"

    @staticmethod
    def _index_key(bucket: int) -> str:
        return f"{ENERGY_MEASUREMENT}:index:{bucket}"

    async def write_point(self, point: TimeSeriesPoint) -> None:
        bucket = point.time_ms // BUCKET_MS
        series_key = self._series_key(bucket, point.device_id)
        index_key = self._index_key(bucket)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(series_key, str(point.time_ms), repr(point.energy_consumed))
            pipe.expire(series_key, self.retention_seconds)
            pipe.sadd(index_key, point.device_id)
            pipe.expire(index_key, self.retention_seconds)
            await pipe.execute()

    async def sum_by_device(self, window: UsageWindow) -> list[DeviceEnergyUsage]:
        start_ms = to_epoch_ms(window.start)
        stop_ms = to_epoch_ms(window.stop)
        buckets = list(range(start_ms // BUCKET_MS, (stop_ms - 1) // BUCKET_MS + 1))

        async with self.redis.pipeline(transaction=False) as pipe:
            for bucket in buckets:
                pipe.smembers(self._index_key(bucket))
            members = await pipe.execute()

        series = [
            (bucket, device_id.decode())
            for bucket, device_ids in zip(buckets, members)
            for device_id in device_ids
        ]
        if not series:
            return []

        async with self.redis.pipeline(transaction=False) as pipe:
            for bucket, device_id in series:
                pipe.hgetall(self._series_key(bucket, device_id))
            values = await pipe.execute()

        totals: dict[str, float] = {}
        for (_, device_id), points in sorted(zip(series, values)):
            for time_ms, value in sorted((int(t), v) for t, v in points.items()):
                if start_ms <= time_ms < stop_ms:
                    totals[device_id] = totals.get(device_id, 0.0) + float(value)

        logger.debug(
            f"Summed {len(totals)} devices over {len(buckets)} buckets "
            f"in [{window.start.isoformat()}, {window.stop.isoformat()})"
        )

        return [
            DeviceEnergyUsage(device_id=device_id, energy_consumed=total)
            for device_id, total in sorted(totals.items())
        ]
