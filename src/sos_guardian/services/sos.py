"""SOS activation flow: session record, evidence capture, contact alerts."""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, Protocol

from sos_guardian.domain.contacts import TrustedContact
from sos_guardian.domain.evidence import UploadedArtifact
from sos_guardian.domain.sessions import Location, SOSSession, TriggerMethod
from sos_guardian.services.session_store import SOSSessionRepository, SOSSessionStore

_logger = logging.getLogger(__name__)


class ContactRepository(Protocol):
    """Persistence interface for trusted contacts."""

    def list_contacts(self, owner_id: str) -> list[TrustedContact]:
        """Return the owner's trusted contacts that can be alerted."""


class NotificationSink(Protocol):
    """Fire-and-forget dispatch of SOS alerts (push, SMS, WhatsApp, voice)."""

    async def send_alerts(
        self, owner_id: str, session: SOSSession, contacts: list[TrustedContact]
    ) -> None:
        """Alert the given contacts about the session."""


@dataclass
class SOSService:
    """Entry point used by trigger sources and the API."""

    store: SOSSessionStore
    session_repository: SOSSessionRepository
    contact_repository: ContactRepository
    notifier: NotificationSink
    recording_duration_seconds: float = 25.0
    capture_task: "asyncio.Task[list[UploadedArtifact]] | None" = field(
        init=False, default=None
    )
    _background: "set[asyncio.Task[Any]]" = field(init=False, default_factory=set)
    _trigger_lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)

    async def trigger(
        self,
        owner_id: str,
        trigger_method: TriggerMethod = TriggerMethod.MANUAL,
        location: Location | None = None,
    ) -> SOSSession | None:
        """Start an SOS session; returns None if one is already active."""
        async with self._trigger_lock:
            if self.store.is_active:
                _logger.info(
                    "SOS trigger (%s) ignored: session %s already active",
                    trigger_method,
                    self.store.session_id,
                )
                return None
            session = await asyncio.to_thread(
                self.session_repository.create_session,
                owner_id,
                trigger_method,
                location,
            )
            self.store.activate(
                session.id, owner_id=owner_id, created_at=session.created_at
            )
        _logger.info("SOS session %s created via %s", session.id, trigger_method)

        self._start_capture(session.id, owner_id)
        self._spawn(self._alert_contacts(owner_id, session), name=f"alert:{session.id}")
        return session

    async def deactivate(self, owner_id: str) -> None:
        """End the active session; raises PersistenceError if it wasn't saved."""
        await self.store.deactivate_safely(owner_id)

    async def recover(self, owner_id: str) -> SOSSession | None:
        """Restore a session left active by a previous run and resume capture."""
        was_active = self.store.is_active
        session = await self.store.check_for_active_session_on_start(owner_id)
        if session is not None and not was_active:
            self._start_capture(session.id, owner_id)
        return session

    async def shutdown(self) -> None:
        """Finalize any live capture and wait (bounded) for background work."""
        coordinator = self.store.coordinator
        if coordinator is not None:
            coordinator.close()
            if coordinator.is_capturing or self.store.is_recording:
                await coordinator.stop_capture_safely()
        pending = {task for task in self._background if not task.done()}
        pending |= self.store.state.outstanding_uploads()
        if not pending:
            return
        timeout = self.store.upload_drain_timeout_seconds
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            _logger.warning(
                "%s background task(s) still running after %ss at shutdown",
                len(still_running),
                timeout,
            )

    async def history(self, owner_id: str, limit: int = 10) -> list[SOSSession]:
        """Return recent SOS sessions for the owner."""
        return await asyncio.to_thread(
            self.session_repository.list_history, owner_id, limit
        )

    def status(self) -> dict[str, object]:
        """Return the flags presentation layers render."""
        return {
            "active": self.store.is_active,
            "session_id": self.store.session_id,
            "is_recording": self.store.is_recording,
            "is_uploading": self.store.is_uploading,
        }

    async def _alert_contacts(self, owner_id: str, session: SOSSession) -> None:
        try:
            contacts = await asyncio.to_thread(
                self.contact_repository.list_contacts, owner_id
            )
            if not contacts:
                _logger.warning("No trusted contacts to alert for %s", owner_id)
                return
            await self.notifier.send_alerts(owner_id, session, contacts)
            _logger.info(
                "Alerted %s contact(s) for session %s", len(contacts), session.id
            )
        except Exception:
            _logger.exception("Failed to alert contacts for session %s", session.id)

    def _start_capture(self, session_id: str, owner_id: str) -> None:
        coordinator = self.store.coordinator
        if coordinator is None:
            return
        self.capture_task = self._spawn(
            coordinator.start_capture(
                session_id, owner_id, self.recording_duration_seconds
            ),
            name=f"capture:{session_id}",
        )

    def _spawn(
        self, coro: "Coroutine[Any, Any, Any]", *, name: str
    ) -> "asyncio.Task[Any]":
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
