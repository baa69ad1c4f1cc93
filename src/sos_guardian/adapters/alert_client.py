"""HTTP client for the alert backend that relays SMS, WhatsApp, and calls."""

from dataclasses import dataclass

import httpx

from sos_guardian.domain.contacts import TrustedContact
from sos_guardian.domain.sessions import SOSSession
from sos_guardian.services.sos import NotificationSink


@dataclass
class HttpxAlertClient(NotificationSink):
    """Alert client implemented with httpx."""

    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str) -> "HttpxAlertClient":
        """Create an alert client with a managed httpx session."""
        return cls(base_url=base_url.rstrip("/"), http_client=httpx.AsyncClient())

    async def send_alerts(
        self, owner_id: str, session: SOSSession, contacts: list[TrustedContact]
    ) -> None:
        """Ask the backend to alert every contact about the session."""
        location = session.location
        payload: dict[str, object] = {
            "userId": owner_id,
            "sosId": session.id,
            "triggerMethod": str(session.trigger_method),
            "message": _alert_message(session),
            "location": (
                {"latitude": location.latitude, "longitude": location.longitude}
                if location
                else None
            ),
            "contacts": [
                {"name": contact.name, "phone": contact.phone} for contact in contacts
            ],
        }
        response = await self.http_client.post(
            f"{self.base_url}/api/sos/send-alerts", json=payload, timeout=15
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()


def _alert_message(session: SOSSession) -> str:
    if session.location is None:
        return "SOS ALERT: your contact has triggered an emergency alert."
    return (
        "SOS ALERT: your contact has triggered an emergency alert. "
        f"Location: {session.location.maps_link()}"
    )
