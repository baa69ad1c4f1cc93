"""Tests for the SOS activation flow."""

import asyncio
from datetime import UTC, datetime, timedelta

from sos_guardian.containers import AppContainer
from sos_guardian.domain.sessions import Location, SessionStatus, TriggerMethod
from tests.conftest import (
    FakeNotificationSink,
    InMemoryEvidenceStorage,
    InMemorySOSSessionRepository,
)


def test_trigger_creates_session_captures_and_alerts(
    container: AppContainer,
    session_repository: InMemorySOSSessionRepository,
    evidence_storage: InMemoryEvidenceStorage,
    notifier: FakeNotificationSink,
) -> None:
    service = container.sos_service

    async def scenario() -> list:
        session = await service.trigger(
            "user-1", TriggerMethod.SHAKE, Location(latitude=12.97, longitude=77.59)
        )
        assert session is not None
        assert service.status()["active"] is True
        assert service.capture_task is not None
        uploaded = await service.capture_task
        await asyncio.sleep(0.05)
        return uploaded

    uploaded = asyncio.run(scenario())

    session_id = container.session_store.session_id
    assert session_id is not None
    assert session_repository.sessions[session_id].trigger_method is TriggerMethod.SHAKE
    assert {str(item.kind) for item in uploaded} == {"audio", "video"}
    assert {row["sos_id"] for row in evidence_storage.metadata} == {session_id}
    assert notifier.sent == [("user-1", session_id, 1)]


def test_second_trigger_while_active_is_ignored(
    container: AppContainer, session_repository: InMemorySOSSessionRepository
) -> None:
    service = container.sos_service

    async def scenario() -> list:
        return await asyncio.gather(
            service.trigger("user-1", TriggerMethod.MANUAL),
            service.trigger("user-1", TriggerMethod.POWER_BUTTON),
        )

    first, second = asyncio.run(scenario())

    assert first is not None
    assert second is None
    assert len(session_repository.sessions) == 1


def test_alert_failure_does_not_roll_back_session(
    container: AppContainer, notifier: FakeNotificationSink
) -> None:
    notifier.error = RuntimeError("backend down")
    service = container.sos_service

    async def scenario() -> None:
        await service.trigger("user-1")
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert container.session_store.is_active is True
    assert notifier.sent == []


def test_trigger_without_contacts_skips_alerts(
    container: AppContainer, notifier: FakeNotificationSink
) -> None:
    service = container.sos_service

    async def scenario() -> None:
        await service.trigger("user-without-contacts")
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert notifier.sent == []


def test_deactivate_persists_and_clears_status(
    container: AppContainer, session_repository: InMemorySOSSessionRepository
) -> None:
    service = container.sos_service

    async def scenario() -> str:
        session = await service.trigger("user-1")
        assert session is not None
        await service.deactivate("user-1")
        return session.id

    session_id = asyncio.run(scenario())

    assert session_repository.sessions[session_id].status is SessionStatus.INACTIVE
    assert service.status() == {
        "active": False,
        "session_id": None,
        "is_recording": False,
        "is_uploading": False,
    }


def test_history_returns_newest_first(
    container: AppContainer, session_repository: InMemorySOSSessionRepository
) -> None:
    now = datetime.now(tz=UTC)
    session_repository.clock = lambda: now - timedelta(hours=1)
    first = session_repository.create_session("user-1", TriggerMethod.MANUAL, None)
    session_repository.clock = lambda: now
    second = session_repository.create_session("user-1", TriggerMethod.SHAKE, None)
    session_repository.create_session("user-2", TriggerMethod.MANUAL, None)

    history = asyncio.run(container.sos_service.history("user-1", limit=5))

    assert [session.id for session in history] == [second.id, first.id]


def test_recover_resumes_evidence_capture(
    container: AppContainer,
    session_repository: InMemorySOSSessionRepository,
    evidence_storage: InMemoryEvidenceStorage,
) -> None:
    session = session_repository.create_session("user-1", TriggerMethod.MANUAL, None)
    service = container.sos_service

    async def scenario() -> list:
        recovered = await service.recover("user-1")
        assert recovered is not None
        await asyncio.sleep(0.01)
        coordinator = container.session_store.coordinator
        assert coordinator is not None
        assert coordinator.is_capturing is True
        assert container.session_store.is_recording is True
        assert service.capture_task is not None
        return await service.capture_task

    uploaded = asyncio.run(scenario())

    assert {str(item.kind) for item in uploaded} == {"audio", "video"}
    assert {row["sos_id"] for row in evidence_storage.metadata} == {session.id}


def test_recover_of_live_session_does_not_restart_capture(
    container: AppContainer, session_repository: InMemorySOSSessionRepository
) -> None:
    service = container.sos_service

    async def scenario() -> None:
        session = await service.trigger("user-1")
        assert session is not None
        first_capture = service.capture_task
        recovered = await service.recover("user-1")
        assert recovered is not None
        assert recovered.id == session.id
        assert service.capture_task is first_capture

    asyncio.run(scenario())


def test_session_lifecycle_end_to_end(
    container: AppContainer,
    session_repository: InMemorySOSSessionRepository,
    evidence_storage: InMemoryEvidenceStorage,
) -> None:
    session_repository.clock = lambda: datetime.now(tz=UTC) - timedelta(seconds=26)
    service = container.sos_service
    store = container.session_store

    async def scenario() -> str:
        session = await service.trigger("user-1", TriggerMethod.MANUAL)
        assert session is not None
        assert service.capture_task is not None
        uploaded = await service.capture_task
        assert len(uploaded) == 2
        assert store.state.pending_upload_batch is None
        assert store.is_recording is False
        assert store.is_uploading is False
        await service.deactivate("user-1")
        return session.id

    session_id = asyncio.run(scenario())

    assert len(session_repository.mark_inactive_calls) == 1
    call = session_repository.mark_inactive_calls[0]
    assert call["session_id"] == session_id
    assert call["duration_seconds"] in {26, 27}
    assert session_repository.sessions[session_id].status is SessionStatus.INACTIVE
    assert sorted(row["type"] for row in evidence_storage.metadata) == [
        "audio",
        "video",
    ]
    assert {row["sos_id"] for row in evidence_storage.metadata} == {session_id}
    assert store.is_active is False
