"""Supabase-backed SOS session repository."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from sos_guardian.domain.sessions import (
    Location,
    SessionStatus,
    SOSSession,
    TriggerMethod,
)
from sos_guardian.services.session_store import SOSSessionRepository

_logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, user_id, status, trigger_method, location, created_at, "
    "deactivated_at, duration"
)


@dataclass
class SupabaseSOSSessionRepository(SOSSessionRepository):
    """Supabase implementation for SOS sessions."""

    client: Client

    def create_session(
        self, owner_id: str, trigger_method: TriggerMethod, location: Location | None
    ) -> SOSSession:
        """Create an active session row and return it."""
        now = datetime.now(tz=UTC).isoformat()
        response = (
            self.client.table("sos_alerts")
            .insert(
                {
                    "user_id": owner_id,
                    "status": str(SessionStatus.ACTIVE),
                    "trigger_method": str(trigger_method),
                    "location": _location_payload(location),
                    "created_at": now,
                    "updated_at": now,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create SOS session")
        return _to_session(response.data[0])

    def get_session(self, owner_id: str, session_id: str) -> SOSSession | None:
        """Return a session by id, if present."""
        response = (
            self.client.table("sos_alerts")
            .select(_COLUMNS)
            .eq("id", session_id)
            .eq("user_id", owner_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_session(response.data[0])

    def mark_inactive(
        self,
        owner_id: str,
        session_id: str,
        deactivated_at: datetime,
        duration_seconds: int,
    ) -> None:
        """Mark the session inactive and record a stop event."""
        self.client.table("sos_alerts").update(
            {
                "status": str(SessionStatus.INACTIVE),
                "deactivated_at": deactivated_at.isoformat(),
                "duration": duration_seconds,
                "stopped_by": "user",
                "updated_at": datetime.now(tz=UTC).isoformat(),
            }
        ).eq("id", session_id).eq("user_id", owner_id).execute()
        try:
            self.client.table("sos_events").insert(
                {
                    "sos_id": session_id,
                    "user_id": owner_id,
                    "type": "sos_stopped",
                    "timestamp": deactivated_at.isoformat(),
                    "duration": duration_seconds,
                    "stopped_by": "user",
                    "reason": "User manually stopped SOS",
                }
            ).execute()
        except Exception:
            _logger.warning("Could not store stop event for session %s", session_id)

    def query_active_sessions(self, owner_id: str) -> list[SOSSession]:
        """Return active sessions for the owner, newest first."""
        response = (
            self.client.table("sos_alerts")
            .select(_COLUMNS)
            .eq("user_id", owner_id)
            .eq("status", str(SessionStatus.ACTIVE))
            .order("created_at", desc=True)
            .execute()
        )
        return [_to_session(row) for row in response.data or []]

    def list_history(self, owner_id: str, limit: int) -> list[SOSSession]:
        """Return the most recent sessions for the owner."""
        response = (
            self.client.table("sos_alerts")
            .select(_COLUMNS)
            .eq("user_id", owner_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_to_session(row) for row in response.data or []]


def _location_payload(location: Location | None) -> dict[str, float | None] | None:
    if location is None:
        return None
    return {
        "latitude": location.latitude,
        "longitude": location.longitude,
        "accuracy": location.accuracy,
    }


def _parse_datetime(value: object) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _to_session(row: dict[str, object]) -> SOSSession:
    location = row.get("location")
    created_at = _parse_datetime(row.get("created_at")) or datetime.now(tz=UTC)
    duration = row.get("duration")
    return SOSSession(
        id=str(row["id"]),
        owner_id=str(row["user_id"]),
        status=SessionStatus(row["status"]),
        trigger_method=TriggerMethod(row.get("trigger_method") or "manual"),
        created_at=created_at,
        deactivated_at=_parse_datetime(row.get("deactivated_at")),
        duration_seconds=int(duration) if isinstance(duration, int | float) else None,
        location=(
            Location(
                latitude=float(location["latitude"]),
                longitude=float(location["longitude"]),
                accuracy=location.get("accuracy"),
            )
            if isinstance(location, dict)
            else None
        ),
    )
