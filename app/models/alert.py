from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

THRESHOLD_EXCEEDED_MESSAGE = "Energy consumption threshold exceeded"


class AlertEvent(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    owner_id: str
    message: str = THRESHOLD_EXCEEDED_MESSAGE
    threshold: float
    energy_consumed: float
    contact_address: Optional[str] = None
