"""Request models for the SOS API."""

from pydantic import BaseModel, Field

from sos_guardian.domain.sessions import TriggerMethod


class TriggerRequest(BaseModel):
    """Body of an SOS trigger from a button, shake, or power-button source."""

    owner_id: str = Field(min_length=1)
    trigger_method: TriggerMethod = TriggerMethod.MANUAL
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    accuracy: float | None = Field(default=None, ge=0.0)


class OwnerRequest(BaseModel):
    """Body naming the user an operation applies to."""

    owner_id: str = Field(min_length=1)
