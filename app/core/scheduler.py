import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class JobAlreadyRunning(Exception):
    pass


def next_boundary(now: datetime, interval_seconds: int) -> float:
    """Epoch seconds of the first multiple of ``interval_seconds`` after ``now``."""
    ts = now.timestamp()
    return ts - (ts % interval_seconds) + interval_seconds


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HourlyScheduler:
    """Runs a job on wall-clock aligned ticks, skipping a tick while busy."""

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        interval_seconds: int = 3600,
        name: str = "job",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.job = job
        self.interval_seconds = interval_seconds
        self.name = name
        self.clock = clock
        self.last_result: Any = None
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._runs: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info(
                f"Scheduler for {self.name} started, interval {self.interval_seconds}s"
            )

    async def stop(self):
        tasks = list(self._runs)
        if self._task is not None:
            tasks.append(self._task)

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._task = None
        self._runs.clear()
        logger.info(f"Scheduler for {self.name} stopped")

    async def run_once(self, job: Optional[Callable[[], Awaitable[Any]]] = None) -> Any:
        if self._lock.locked():
            raise JobAlreadyRunning(f"{self.name} is already running")

        async with self._lock:
            self.last_result = await (job or self.job)()
            return self.last_result

    async def tick(self):
        try:
            await self.run_once()
        except JobAlreadyRunning:
            logger.warning(f"Skipping {self.name} tick, previous run still active")
        except Exception as e:
            logger.error(f"{self.name} run failed: {e}", exc_info=True)

    async def _loop(self):
        next_run = next_boundary(self.clock(), self.interval_seconds)

        while True:
            await asyncio.sleep(max(0.0, next_run - self.clock().timestamp()))

            # Detached so a slow run cannot delay the next tick.
            run = asyncio.create_task(self.tick())
            self._runs.add(run)
            run.add_done_callback(self._runs.discard)

            next_run += self.interval_seconds
            if next_run <= self.clock().timestamp():
                next_run = next_boundary(self.clock(), self.interval_seconds)
