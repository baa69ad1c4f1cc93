"""Domain models for trusted contacts."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TrustedContact:
    """A contact notified when an SOS session starts."""

    name: str
    phone: str
    email: str | None = None
