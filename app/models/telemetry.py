from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ENERGY_MEASUREMENT = "energy_usage"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


class TelemetryEvent(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    device_id: str = Field(min_length=1)
    energy_consumed: float = Field(gt=0)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TimeSeriesPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    measurement: str = ENERGY_MEASUREMENT
    device_id: str
    energy_consumed: float
    time_ms: int

    @classmethod
    def from_event(cls, event: TelemetryEvent) -> "TimeSeriesPoint":
        return cls(
            device_id=event.device_id,
            energy_consumed=float(event.energy_consumed),
            time_ms=to_epoch_ms(event.timestamp),
        )
