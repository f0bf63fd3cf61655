from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class DeviceRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ownerId", "userId", "owner_id")
    )


class OwnerAlertConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    alerting_enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices("alertingEnabled", "alerting", "alerting_enabled"),
    )
    threshold: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices(
            "threshold", "energyAlertingThreshold", "energy_alerting_threshold"
        ),
    )
    contact_address: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("contactAddress", "email", "contact_address"),
    )
