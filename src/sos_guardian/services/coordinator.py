"""Coordinates audio and video capture for an SOS session."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from sos_guardian.domain.evidence import EvidenceArtifact, UploadedArtifact
from sos_guardian.services.recorders import (
    AudioRecorder,
    DeviceProvider,
    MediaRecorder,
    VideoRecorder,
)

_logger = logging.getLogger(__name__)


class ArtifactUploader(Protocol):
    """Uploads a single artifact for a session."""

    async def upload(
        self, owner_id: str, session_id: str, artifact: EvidenceArtifact
    ) -> UploadedArtifact:
        """Upload the artifact and persist its metadata."""


@dataclass
class CoordinatorState:
    """Recording/upload flags shared with presentation layers."""

    is_recording: bool = False
    is_uploading: bool = False
    pending_upload_batch: "asyncio.Task[list[UploadedArtifact]] | None" = None
    late_uploads: "set[asyncio.Task[UploadedArtifact | None]]" = field(
        default_factory=set
    )

    def outstanding_uploads(self) -> "set[asyncio.Task[object]]":
        """Return upload tasks that have not settled yet."""
        tasks: set[asyncio.Task[object]] = {
            task for task in self.late_uploads if not task.done()
        }
        if self.pending_upload_batch and not self.pending_upload_batch.done():
            tasks.add(self.pending_upload_batch)
        return tasks

    def refresh_uploading(self) -> None:
        self.is_uploading = bool(self.outstanding_uploads())

    def reset(self) -> None:
        self.is_recording = False
        self.is_uploading = False
        self.pending_upload_batch = None
        self.late_uploads = set()


@dataclass
class SOSRecordingCoordinator:
    """Runs one audio and one video recorder as a single evidence capture."""

    audio_provider: DeviceProvider
    video_provider: DeviceProvider
    uploader: ArtifactUploader
    state: CoordinatorState
    late_artifact_grace_seconds: float = 3.0
    audio_recorder: AudioRecorder | None = field(init=False, default=None)
    video_recorder: VideoRecorder | None = field(init=False, default=None)
    late_uploads: "list[asyncio.Task[UploadedArtifact | None]]" = field(
        init=False, default_factory=list
    )
    _capturing: bool = field(init=False, default=False)
    _closed: bool = field(init=False, default=False)
    _stop_requested: bool = field(init=False, default=False)
    _recorders_settled: asyncio.Event = field(init=False, default_factory=asyncio.Event)

    @property
    def is_capturing(self) -> bool:
        return self._capturing

    async def start_capture(
        self, session_id: str, owner_id: str, max_duration_seconds: float
    ) -> list[UploadedArtifact]:
        """Record audio and video concurrently, then upload what was captured.

        Returns the artifacts uploaded by the primary batch. Recorders that
        finish after the batch was dispatched are uploaded separately and
        tracked in ``state.late_uploads``.
        """
        if self._closed:
            _logger.info("Capture for session %s skipped: coordinator closed", session_id)
            return []
        if self._capturing:
            _logger.warning("Capture already running for session %s", session_id)
            return []
        self._capturing = True
        self._stop_requested = False
        self._recorders_settled.clear()
        self.state.is_recording = True
        self.audio_recorder = AudioRecorder(self.audio_provider)
        self.video_recorder = VideoRecorder(self.video_provider)
        _logger.info("Starting audio + video capture for session %s", session_id)

        try:
            recordings = [
                asyncio.create_task(self._record(self.audio_recorder, max_duration_seconds)),
                asyncio.create_task(self._record(self.video_recorder, max_duration_seconds)),
            ]
            try:
                artifacts, pending = await self._collect(
                    recordings, max_duration_seconds
                )
                if not artifacts:
                    _logger.info("No evidence captured for session %s", session_id)
                    return []
                batch = asyncio.create_task(
                    self.upload_batch(owner_id, session_id, artifacts)
                )
                self.state.pending_upload_batch = batch
                self.state.is_uploading = True
                for recording in pending:
                    self._track_late(
                        asyncio.create_task(
                            self._upload_late(recording, owner_id, session_id)
                        )
                    )
            finally:
                self._refresh_recording()
                self._recorders_settled.set()

            try:
                return await asyncio.shield(batch)
            finally:
                if self.state.pending_upload_batch is batch:
                    self.state.pending_upload_batch = None
                self.state.refresh_uploading()
        finally:
            self._capturing = False

    async def stop_capture_safely(self) -> None:
        """Stop both recorders and wait for them; never raises."""
        recorders = [
            recorder
            for recorder in (self.audio_recorder, self.video_recorder)
            if recorder is not None
        ]
        if not recorders:
            return
        self._stop_requested = True
        _logger.info("Stopping capture safely")
        results = await asyncio.gather(
            *(recorder.stop_early() for recorder in recorders),
            return_exceptions=True,
        )
        for recorder, result in zip(recorders, results, strict=True):
            if isinstance(result, Exception):
                _logger.warning("Stopping %s recorder failed: %s", recorder.kind, result)
        if self._capturing:
            await self._recorders_settled.wait()
        self._refresh_recording()

    async def upload_batch(
        self, owner_id: str, session_id: str, artifacts: list[EvidenceArtifact]
    ) -> list[UploadedArtifact]:
        """Upload every artifact independently and return the successes."""
        _logger.info(
            "Uploading %s artifact(s) for session %s", len(artifacts), session_id
        )
        results = await asyncio.gather(
            *(
                self.uploader.upload(owner_id, session_id, artifact)
                for artifact in artifacts
            ),
            return_exceptions=True,
        )
        uploaded: list[UploadedArtifact] = []
        for artifact, result in zip(artifacts, results, strict=True):
            if isinstance(result, Exception):
                _logger.error("Upload of %s evidence failed: %s", artifact.kind, result)
                continue
            uploaded.append(result)
        _logger.info(
            "Uploaded %s/%s artifact(s) for session %s",
            len(uploaded),
            len(artifacts),
            session_id,
        )
        return uploaded

    def close(self) -> None:
        """Refuse any capture that has not started yet."""
        self._closed = True

    async def _collect(
        self,
        recordings: "list[asyncio.Task[EvidenceArtifact | None]]",
        max_duration_seconds: float,
    ) -> "tuple[list[EvidenceArtifact], set[asyncio.Task[EvidenceArtifact | None]]]":
        done, pending = await asyncio.wait(
            recordings, timeout=max_duration_seconds + self.late_artifact_grace_seconds
        )
        artifacts = [task.result() for task in done if task.result() is not None]
        if not artifacts and pending:
            # nothing to dispatch yet, so the slow recorder joins the batch
            await asyncio.wait(pending)
            artifacts = [task.result() for task in pending if task.result() is not None]
            pending = set()
        return artifacts, pending

    async def _record(
        self, recorder: MediaRecorder, max_duration_seconds: float
    ) -> EvidenceArtifact | None:
        if self._stop_requested:
            _logger.info("%s recording skipped: capture already stopped", recorder.kind)
            return None
        try:
            await recorder.start(max_duration_seconds)
        except Exception:
            _logger.exception("%s recording failed", recorder.kind)
            return None
        return recorder.artifact()

    async def _upload_late(
        self,
        recording: "asyncio.Task[EvidenceArtifact | None]",
        owner_id: str,
        session_id: str,
    ) -> UploadedArtifact | None:
        artifact = await recording
        self._refresh_recording()
        if artifact is None:
            return None
        _logger.info("Uploading late %s for session %s", artifact.kind, session_id)
        try:
            return await self.uploader.upload(owner_id, session_id, artifact)
        except Exception:
            _logger.exception("Late %s upload failed", artifact.kind)
            return None

    def _track_late(self, task: "asyncio.Task[UploadedArtifact | None]") -> None:
        self.late_uploads.append(task)
        self.state.late_uploads.add(task)
        self.state.is_uploading = True

        def _done(finished: "asyncio.Task[UploadedArtifact | None]") -> None:
            self.state.late_uploads.discard(finished)
            self.state.refresh_uploading()

        task.add_done_callback(_done)

    def _refresh_recording(self) -> None:
        self.state.is_recording = any(
            recorder is not None and recorder.state.is_busy
            for recorder in (self.audio_recorder, self.video_recorder)
        )
