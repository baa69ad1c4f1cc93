"""Shared test fixtures."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

import pytest

from sos_guardian.config import Settings
from sos_guardian.containers import AppContainer
from sos_guardian.domain.contacts import TrustedContact
from sos_guardian.domain.sessions import (
    Location,
    SessionStatus,
    SOSSession,
    TriggerMethod,
)
from sos_guardian.services.coordinator import CoordinatorState, SOSRecordingCoordinator
from sos_guardian.services.evidence import EvidenceStorage, EvidenceUploader
from sos_guardian.services.session_store import SOSSessionRepository, SOSSessionStore
from sos_guardian.services.sos import ContactRepository, NotificationSink, SOSService


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class FakeRecordingDevice:
    """Device that writes nothing and returns a fixed path when stopped."""

    path: str | None
    start_error: Exception | None = None
    stop_error: Exception | None = None
    stop_delay: float = 0.0
    started: int = 0
    stopped: int = 0

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started += 1

    async def stop(self) -> str | None:
        self.stopped += 1
        if self.stop_delay:
            await asyncio.sleep(self.stop_delay)
        if self.stop_error is not None:
            raise self.stop_error
        return self.path


@dataclass
class FakeDeviceProvider:
    """Provider returning one fake device, or None for a denied permission."""

    device: FakeRecordingDevice | None
    acquire_error: Exception | None = None
    acquire_delay: float = 0.0
    acquire_calls: int = 0

    async def acquire(self) -> FakeRecordingDevice | None:
        self.acquire_calls += 1
        if self.acquire_delay:
            await asyncio.sleep(self.acquire_delay)
        if self.acquire_error is not None:
            raise self.acquire_error
        return self.device


@dataclass
class InMemorySOSSessionRepository(SOSSessionRepository):
    """In-memory SOS session repository for tests."""

    sessions: dict[str, SOSSession] = field(default_factory=dict)
    mark_inactive_calls: list[dict[str, object]] = field(default_factory=list)
    fail_mark_inactive: bool = False
    clock: Callable[[], datetime] = _utcnow

    def create_session(
        self, owner_id: str, trigger_method: TriggerMethod, location: Location | None
    ) -> SOSSession:
        session = SOSSession(
            id=str(uuid4()),
            owner_id=owner_id,
            status=SessionStatus.ACTIVE,
            trigger_method=trigger_method,
            created_at=self.clock(),
            location=location,
        )
        self.sessions[session.id] = session
        return session

    def get_session(self, owner_id: str, session_id: str) -> SOSSession | None:
        session = self.sessions.get(session_id)
        if session is None or session.owner_id != owner_id:
            return None
        return session

    def mark_inactive(
        self,
        owner_id: str,
        session_id: str,
        deactivated_at: datetime,
        duration_seconds: int,
    ) -> None:
        self.mark_inactive_calls.append(
            {
                "owner_id": owner_id,
                "session_id": session_id,
                "deactivated_at": deactivated_at,
                "duration_seconds": duration_seconds,
            }
        )
        if self.fail_mark_inactive:
            raise RuntimeError("network unavailable")
        session = self.sessions[session_id]
        self.sessions[session_id] = SOSSession(
            id=session.id,
            owner_id=session.owner_id,
            status=SessionStatus.INACTIVE,
            trigger_method=session.trigger_method,
            created_at=session.created_at,
            deactivated_at=deactivated_at,
            duration_seconds=duration_seconds,
            location=session.location,
        )

    def query_active_sessions(self, owner_id: str) -> list[SOSSession]:
        return [
            session
            for session in self.sessions.values()
            if session.owner_id == owner_id and session.status is SessionStatus.ACTIVE
        ]

    def list_history(self, owner_id: str, limit: int) -> list[SOSSession]:
        owned = [s for s in self.sessions.values() if s.owner_id == owner_id]
        owned.sort(key=lambda session: session.created_at, reverse=True)
        return owned[:limit]


@dataclass
class InMemoryEvidenceStorage(EvidenceStorage):
    """In-memory blob store and metadata table for tests."""

    uploads: dict[str, str] = field(default_factory=dict)
    metadata: list[dict[str, object]] = field(default_factory=list)
    failing_paths: set[str] = field(default_factory=set)

    def upload(self, local_path: str, destination_path: str, content_type: str) -> str:
        if local_path in self.failing_paths:
            raise RuntimeError("storage/unknown")
        self.uploads[destination_path] = local_path
        return f"https://storage.test/{destination_path}"

    def save_metadata(self, owner_id: str, metadata: dict[str, object]) -> str:
        self.metadata.append({"user_id": owner_id, **metadata})
        return str(len(self.metadata))


@dataclass
class InMemoryContactRepository(ContactRepository):
    """In-memory trusted contacts for tests."""

    contacts: dict[str, list[TrustedContact]] = field(default_factory=dict)

    def list_contacts(self, owner_id: str) -> list[TrustedContact]:
        return self.contacts.get(owner_id, [])


@dataclass
class FakeNotificationSink(NotificationSink):
    """Records alerts instead of sending them."""

    sent: list[tuple[str, str, int]] = field(default_factory=list)
    error: Exception | None = None

    async def send_alerts(
        self, owner_id: str, session: SOSSession, contacts: list[TrustedContact]
    ) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((owner_id, session.id, len(contacts)))


def build_store(  # noqa: PLR0913
    repository: InMemorySOSSessionRepository,
    audio_provider: FakeDeviceProvider,
    video_provider: FakeDeviceProvider,
    storage: InMemoryEvidenceStorage | None = None,
    *,
    uploader: object | None = None,
    late_artifact_grace_seconds: float = 0.05,
    upload_drain_timeout_seconds: float = 0.2,
) -> SOSSessionStore:
    resolved_uploader = uploader or EvidenceUploader(
        storage=storage or InMemoryEvidenceStorage()
    )

    def factory(state: CoordinatorState) -> SOSRecordingCoordinator:
        return SOSRecordingCoordinator(
            audio_provider=audio_provider,
            video_provider=video_provider,
            uploader=resolved_uploader,  # type: ignore[arg-type]
            state=state,
            late_artifact_grace_seconds=late_artifact_grace_seconds,
        )

    return SOSSessionStore(
        repository=repository,
        coordinator_factory=factory,
        upload_drain_timeout_seconds=upload_drain_timeout_seconds,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="test.service.key",
        alert_backend_url="https://alerts.test",
        recording_duration_seconds=0.05,
        late_artifact_grace_seconds=0.05,
        upload_drain_timeout_seconds=0.2,
    )


@pytest.fixture
def session_repository() -> InMemorySOSSessionRepository:
    return InMemorySOSSessionRepository()


@pytest.fixture
def evidence_storage() -> InMemoryEvidenceStorage:
    return InMemoryEvidenceStorage()


@pytest.fixture
def notifier() -> FakeNotificationSink:
    return FakeNotificationSink()


@pytest.fixture
def audio_provider() -> FakeDeviceProvider:
    return FakeDeviceProvider(FakeRecordingDevice(path="/tmp/audio.m4a"))


@pytest.fixture
def video_provider() -> FakeDeviceProvider:
    return FakeDeviceProvider(FakeRecordingDevice(path="/tmp/video.mp4"))


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    session_repository: InMemorySOSSessionRepository,
    evidence_storage: InMemoryEvidenceStorage,
    notifier: FakeNotificationSink,
    audio_provider: FakeDeviceProvider,
    video_provider: FakeDeviceProvider,
) -> AppContainer:
    store = build_store(
        session_repository,
        audio_provider,
        video_provider,
        evidence_storage,
        late_artifact_grace_seconds=settings.late_artifact_grace_seconds,
        upload_drain_timeout_seconds=settings.upload_drain_timeout_seconds,
    )
    contacts = InMemoryContactRepository(
        {"user-1": [TrustedContact(name="Asha", phone="+15550100")]}
    )
    sos_service = SOSService(
        store=store,
        session_repository=session_repository,
        contact_repository=contacts,
        notifier=notifier,
        recording_duration_seconds=settings.recording_duration_seconds,
    )

    async def close_resources() -> None:
        await sos_service.shutdown()

    return AppContainer(
        settings=settings,
        session_store=store,
        sos_service=sos_service,
        close_resources=close_resources,
    )
