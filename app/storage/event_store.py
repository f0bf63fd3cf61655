import json
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as redis


class EventStore:
    """Append-only per-topic log of every message published on the bus."""

    def __init__(self, redis_client: redis.Redis, retention_seconds: int = 86400):
        self.redis = redis_client
        self.retention_seconds = retention_seconds

    async def append_event(self, topic: str, key: str, message: str) -> str:
        now = datetime.now(timezone.utc)
        event_id = f"{topic}:{int(now.timestamp() * 1000000)}"
        event_data = {
            "id": event_id,
            "topic": topic,
            "key": key,
            "message": json.loads(message),
            "timestamp": now.isoformat(),
        }

        redis_key = f"events:{topic}"
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zadd(redis_key, {json.dumps(event_data): now.timestamp()})
            pipe.zremrangebyscore(
                redis_key, "-inf", now.timestamp() - self.retention_seconds
            )
            pipe.expire(redis_key, self.retention_seconds)
            await pipe.execute()

        return event_id

    async def get_events(
        self, topic: str, start_time: Optional[datetime] = None, limit: int = 100
    ) -> list[dict]:
        key = f"events:{topic}"

        min_score = start_time.timestamp() if start_time else "-inf"

        results = await self.redis.zrevrangebyscore(
            key, "+inf", min_score, start=0, num=limit
        )

        return [json.loads(r) for r in results]
