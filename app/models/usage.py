from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class DeviceEnergyUsage(BaseModel):
    device_id: str
    energy_consumed: float
    owner_id: Optional[str] = None


class UsageWindow(BaseModel):
    """Half-open interval ``[start, stop)``."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    stop: datetime

    @model_validator(mode="after")
    def check_order(self) -> "UsageWindow":
        if self.start >= self.stop:
            raise ValueError("window start must be before stop")
        return self

    @classmethod
    def trailing(cls, now: datetime, length: timedelta) -> "UsageWindow":
        return cls(start=now - length, stop=now)


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    EMPTY_WINDOW = "empty_window"
    SKIPPED = "skipped"


class AggregationReport(BaseModel):
    window: Optional[UsageWindow] = None
    outcome: RunOutcome = RunOutcome.COMPLETED
    devices_queried: int = 0
    devices_unresolved: int = 0
    owners: int = 0
    owners_skipped: int = 0
    alerts_emitted: int = 0
    owner_totals: dict[str, float] = {}
