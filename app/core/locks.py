import uuid
from typing import Optional

import redis.asyncio as redis


class DistributedLock:
    """SET NX EX lock shared by every replica.

    There is no release: the lock lives for ``timeout`` seconds, so a job
    keyed by its schedule slot runs at most once per slot across replicas.
    """

    def __init__(self, redis_client: redis.Redis, resource: str, timeout: int):
        self.redis = redis_client
        self.resource = resource
        self.timeout = timeout
        self.lock_key = f"lock:{resource}"
        self.lock_value: Optional[str] = None

    async def acquire(self) -> bool:
        self.lock_value = str(uuid.uuid4())

        acquired = await self.redis.set(
            self.lock_key, self.lock_value, nx=True, ex=self.timeout
        )

        return bool(acquired)
