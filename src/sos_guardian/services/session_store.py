"""Process-wide SOS session state machine."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from sos_guardian.domain.errors import PersistenceError
from sos_guardian.domain.sessions import Location, SOSSession, TriggerMethod
from sos_guardian.services.coordinator import CoordinatorState, SOSRecordingCoordinator

_logger = logging.getLogger(__name__)


class SOSSessionRepository(Protocol):
    """Durable storage for SOS sessions."""

    def create_session(
        self, owner_id: str, trigger_method: TriggerMethod, location: Location | None
    ) -> SOSSession:
        """Create an active session and return it."""

    def get_session(self, owner_id: str, session_id: str) -> SOSSession | None:
        """Return a session by id, if present."""

    def mark_inactive(
        self,
        owner_id: str,
        session_id: str,
        deactivated_at: datetime,
        duration_seconds: int,
    ) -> None:
        """Record that a session ended."""

    def query_active_sessions(self, owner_id: str) -> list[SOSSession]:
        """Return every session still marked active for the owner."""

    def list_history(self, owner_id: str, limit: int) -> list[SOSSession]:
        """Return the owner's most recent sessions, newest first."""


@dataclass
class SOSSessionStore:
    """Inactive -> Active -> Inactive state machine for one device.

    Activation and deactivation are idempotent: a second activate while a
    session is live, or a deactivate with nothing live, is a logged no-op.
    """

    repository: SOSSessionRepository
    coordinator_factory: Callable[[CoordinatorState], SOSRecordingCoordinator]
    upload_drain_timeout_seconds: float = 5.0
    _session_id: str | None = field(init=False, default=None)
    _owner_id: str | None = field(init=False, default=None)
    _created_at: datetime | None = field(init=False, default=None)
    _state: CoordinatorState = field(init=False, default_factory=CoordinatorState)
    _coordinator: SOSRecordingCoordinator | None = field(init=False, default=None)
    _deactivating: bool = field(init=False, default=False)

    @property
    def is_active(self) -> bool:
        return self._session_id is not None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def owner_id(self) -> str | None:
        return self._owner_id

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def coordinator(self) -> SOSRecordingCoordinator | None:
        return self._coordinator

    @property
    def is_recording(self) -> bool:
        return self._state.is_recording

    @property
    def is_uploading(self) -> bool:
        return self._state.is_uploading

    def activate(
        self,
        session_id: str,
        *,
        owner_id: str | None = None,
        created_at: datetime | None = None,
    ) -> bool:
        """Enter the active state; returns False if a session is already live."""
        if self._session_id is not None:
            _logger.info(
                "Ignoring activation of %s: session %s is already active",
                session_id,
                self._session_id,
            )
            return False
        self._session_id = session_id
        self._owner_id = owner_id
        self._created_at = created_at
        self._state = CoordinatorState()
        self._coordinator = self.coordinator_factory(self._state)
        _logger.info("SOS activated: session=%s", session_id)
        return True

    async def deactivate_safely(self, owner_id: str | None = None) -> None:
        """Stop capture, drain uploads (bounded), persist, then reset.

        Local state is reset even when persistence fails; the failure is
        re-raised afterwards as PersistenceError.
        """
        if self._session_id is None or self._deactivating:
            _logger.info("Deactivation ignored: no SOS session to end")
            return
        self._deactivating = True
        session_id = self._session_id
        state = self._state
        coordinator = self._coordinator
        resolved_owner = self._owner_id or owner_id
        if owner_id and self._owner_id and owner_id != self._owner_id:
            _logger.warning(
                "Deactivation of %s requested for %s; session belongs to %s",
                session_id,
                owner_id,
                self._owner_id,
            )
        _logger.info("Deactivating SOS session %s", session_id)
        try:
            if coordinator is not None:
                coordinator.close()
            if state.is_recording and coordinator is not None:
                await coordinator.stop_capture_safely()
            await self._drain_uploads(state)
            if resolved_owner is None:
                _logger.warning(
                    "No owner for session %s; deactivation not persisted", session_id
                )
                return
            deactivated_at = datetime.now(tz=UTC)
            created_at = self._created_at or await self._lookup_created_at(
                resolved_owner, session_id
            )
            duration = (
                max(int((deactivated_at - created_at).total_seconds()), 0)
                if created_at
                else 0
            )
            try:
                await asyncio.to_thread(
                    self.repository.mark_inactive,
                    resolved_owner,
                    session_id,
                    deactivated_at,
                    duration,
                )
            except Exception as exc:
                _logger.exception("Failed to persist deactivation of %s", session_id)
                raise PersistenceError(
                    f"Deactivation of SOS session {session_id} may not have been saved"
                ) from exc
            _logger.info(
                "SOS session %s deactivated after %ss", session_id, duration
            )
        finally:
            self._reset()

    async def check_for_active_session_on_start(
        self, owner_id: str
    ) -> SOSSession | None:
        """Re-enter the active state for a session left open by a previous run."""
        try:
            sessions = await asyncio.to_thread(
                self.repository.query_active_sessions, owner_id
            )
        except Exception:
            _logger.exception("Failed to query active SOS sessions for %s", owner_id)
            return None
        if not sessions:
            return None
        ordered = sorted(sessions, key=lambda session: session.created_at, reverse=True)
        recovered = ordered[0]
        if len(ordered) > 1:
            _logger.warning(
                "Found %s active SOS sessions for %s; recovering %s, leaving %s",
                len(ordered),
                owner_id,
                recovered.id,
                [session.id for session in ordered[1:]],
            )
        if self._session_id == recovered.id:
            return recovered
        if not self.activate(
            recovered.id, owner_id=owner_id, created_at=recovered.created_at
        ):
            return None
        _logger.info("Recovered active SOS session %s", recovered.id)
        return recovered

    async def _drain_uploads(self, state: CoordinatorState) -> None:
        outstanding = state.outstanding_uploads()
        if not outstanding:
            return
        _logger.info("Waiting up to %ss for uploads", self.upload_drain_timeout_seconds)
        _, pending = await asyncio.wait(
            outstanding, timeout=self.upload_drain_timeout_seconds
        )
        if pending:
            _logger.warning(
                "%s upload(s) still running after %ss; continuing deactivation",
                len(pending),
                self.upload_drain_timeout_seconds,
            )

    async def _lookup_created_at(
        self, owner_id: str, session_id: str
    ) -> datetime | None:
        try:
            session = await asyncio.to_thread(
                self.repository.get_session, owner_id, session_id
            )
        except Exception:
            _logger.warning("Could not load session %s for duration", session_id)
            return None
        return session.created_at if session else None

    def _reset(self) -> None:
        if self._coordinator is not None:
            self._coordinator.close()
        self._state.reset()
        self._session_id = None
        self._owner_id = None
        self._created_at = None
        self._coordinator = None
        self._deactivating = False
