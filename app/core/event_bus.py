import asyncio
import inspect
import logging
import zlib
from collections import defaultdict
from typing import Callable, Iterable, Optional

from app.storage.event_store import EventStore

logger = logging.getLogger(__name__)


class EventBus:
    """In-process topic bus with ordered partitions.

    Every message is routed to one partition by a stable hash of its key and
    each partition is drained by a single worker, so messages sharing a key
    are handled in publish order while partitions run concurrently.
    """

    def __init__(
        self,
        event_store: Optional[EventStore] = None,
        partition_count: int = 4,
        queue_max_size: int = 10000,
        durable_topics: Iterable[str] = (),
    ):
        self.subscribers: dict[str, list[Callable]] = defaultdict(list)
        self.event_store = event_store
        self.partition_count = partition_count
        self.queue_max_size = queue_max_size
        self.durable_topics = set(durable_topics)
        self.queues: list[asyncio.Queue] = []
        self.workers: list[asyncio.Task] = []
        self.running = False

    async def start(self):
        self.queues = [
            asyncio.Queue(maxsize=self.queue_max_size)
            for _ in range(self.partition_count)
        ]
        self.running = True

        for i in range(self.partition_count):
            worker = asyncio.create_task(self._worker(i))
            self.workers.append(worker)

        logger.info(f"Event bus started with {self.partition_count} partitions")

    async def stop(self):
        self.running = False

        for worker in self.workers:
            worker.cancel()

        await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers.clear()

        logger.info("Event bus stopped")

    def subscribe(self, topic: str, handler: Callable):
        self.subscribers[topic].append(handler)

    def partition_for(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % self.partition_count

    async def publish(self, topic: str, key: str, message: str) -> bool:
        if not self.running:
            raise RuntimeError("Event bus is not running")

        event = {
            "topic": topic,
            "key": key,
            "message": message,
        }

        if self.event_store is not None and topic in self.durable_topics:
            try:
                await self.event_store.append_event(topic, key, message)
            except Exception as e:
                logger.error(f"Failed to persist event {topic}/{key}: {e}")

        try:
            self.queues[self.partition_for(key)].put_nowait(event)
        except asyncio.QueueFull:
            logger.error(f"Event queue full, dropping event: {topic}/{key}")
            return False

        return True

    async def join(self):
        await asyncio.gather(*(queue.join() for queue in self.queues))

    async def _worker(self, partition: int):
        logger.info(f"Event bus worker {partition} started")
        queue = self.queues[partition]

        while self.running:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            try:
                await self._process_event(event)
            except Exception as e:
                logger.error(f"Worker {partition} error: {e}")
            finally:
                queue.task_done()

        logger.info(f"Event bus worker {partition} stopped")

    async def _process_event(self, event: dict):
        topic = event["topic"]
        handlers = self.subscribers.get(topic, [])

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event handler for {topic}: {e}", exc_info=True)

    def get_queue_size(self) -> int:
        return sum(queue.qsize() for queue in self.queues)
