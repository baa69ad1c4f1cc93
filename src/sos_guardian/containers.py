"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from supabase import create_client

from sos_guardian.adapters.alert_client import HttpxAlertClient
from sos_guardian.adapters.ffmpeg_device import FfmpegDeviceProvider
from sos_guardian.adapters.supabase_contact_repository import (
    SupabaseContactRepository,
)
from sos_guardian.adapters.supabase_evidence_storage import SupabaseEvidenceStorage
from sos_guardian.adapters.supabase_session_repository import (
    SupabaseSOSSessionRepository,
)
from sos_guardian.config import Settings
from sos_guardian.domain.evidence import EvidenceKind
from sos_guardian.services.coordinator import CoordinatorState, SOSRecordingCoordinator
from sos_guardian.services.evidence import EvidenceUploader
from sos_guardian.services.session_store import SOSSessionStore
from sos_guardian.services.sos import SOSService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_store: SOSSessionStore
    sos_service: SOSService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    session_repository = SupabaseSOSSessionRepository(supabase_client)
    contact_repository = SupabaseContactRepository(supabase_client)
    uploader = EvidenceUploader(
        storage=SupabaseEvidenceStorage(
            supabase_client, bucket=resolved_settings.evidence_bucket
        ),
        default_duration_seconds=resolved_settings.default_evidence_duration_seconds,
    )
    recordings_dir = Path(resolved_settings.recordings_dir)
    audio_provider = FfmpegDeviceProvider(
        kind=EvidenceKind.AUDIO,
        input_format=resolved_settings.audio_input_format,
        input_name=resolved_settings.audio_input,
        output_dir=recordings_dir,
        binary=resolved_settings.ffmpeg_binary,
    )
    video_provider = FfmpegDeviceProvider(
        kind=EvidenceKind.VIDEO,
        input_format=resolved_settings.video_input_format,
        input_name=resolved_settings.video_input,
        output_dir=recordings_dir,
        binary=resolved_settings.ffmpeg_binary,
    )

    def build_coordinator(state: CoordinatorState) -> SOSRecordingCoordinator:
        return SOSRecordingCoordinator(
            audio_provider=audio_provider,
            video_provider=video_provider,
            uploader=uploader,
            state=state,
            late_artifact_grace_seconds=resolved_settings.late_artifact_grace_seconds,
        )

    session_store = SOSSessionStore(
        repository=session_repository,
        coordinator_factory=build_coordinator,
        upload_drain_timeout_seconds=resolved_settings.upload_drain_timeout_seconds,
    )
    alert_client = HttpxAlertClient.create(resolved_settings.alert_backend_url)
    sos_service = SOSService(
        store=session_store,
        session_repository=session_repository,
        contact_repository=contact_repository,
        notifier=alert_client,
        recording_duration_seconds=resolved_settings.recording_duration_seconds,
    )

    async def close_resources() -> None:
        await sos_service.shutdown()
        await alert_client.close()

    return AppContainer(
        settings=resolved_settings,
        session_store=session_store,
        sos_service=sos_service,
        close_resources=close_resources,
    )
