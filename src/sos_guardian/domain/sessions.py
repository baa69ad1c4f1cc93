"""Domain models for SOS sessions."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class SessionStatus(StrEnum):
    """Lifecycle status of an SOS session."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class TriggerMethod(StrEnum):
    """How an SOS session was started."""

    MANUAL = "manual"
    SHAKE = "shake"
    POWER_BUTTON = "power_button"


@dataclass(frozen=True)
class Location:
    """Device location captured at activation."""

    latitude: float
    longitude: float
    accuracy: float | None = None

    def maps_link(self) -> str:
        """Return a Google Maps link for the coordinates."""
        return f"https://maps.google.com/?q={self.latitude},{self.longitude}"


@dataclass(frozen=True)
class SOSSession:
    """Represents a persisted SOS session."""

    id: str
    owner_id: str
    status: SessionStatus
    trigger_method: TriggerMethod
    created_at: datetime
    deactivated_at: datetime | None = None
    duration_seconds: int | None = None
    location: Location | None = None
