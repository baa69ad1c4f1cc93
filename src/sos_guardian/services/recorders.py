"""Recorders that own a single capture device for one SOS capture."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sos_guardian.domain.errors import FinalizeError
from sos_guardian.domain.evidence import EvidenceArtifact, EvidenceKind
from sos_guardian.domain.recording import RecordingState

_logger = logging.getLogger(__name__)


class RecordingDevice(Protocol):
    """Start/stop primitives of an acquired microphone or camera."""

    async def start(self) -> None:
        """Begin writing media to the device's output file."""

    async def stop(self) -> str | None:
        """Stop recording and return the artifact path, if one was written."""


class DeviceProvider(Protocol):
    """Hands out recording devices."""

    async def acquire(self) -> RecordingDevice | None:
        """Return a device, or None when permission was not granted."""


@dataclass
class MediaRecorder:
    """Owns the lifecycle of one recording device.

    Recording ends either when the auto-stop deadline fires or when
    ``stop_early`` is called. Both paths go through ``_request_finalize``,
    which moves the state from RECORDING to FINALIZING exactly once, so the
    device is stopped a single time and every caller sees the same result.
    A recorder is single-use.
    """

    provider: DeviceProvider
    kind: EvidenceKind
    state: RecordingState = field(init=False, default=RecordingState.IDLE)
    deadline: datetime | None = field(init=False, default=None)
    recorded_at: datetime | None = field(init=False, default=None)
    artifact_path: str | None = field(init=False, default=None)
    failure_reason: str | None = field(init=False, default=None)
    _device: RecordingDevice | None = field(init=False, default=None)
    _result: "asyncio.Future[str | None] | None" = field(init=False, default=None)
    _timer: asyncio.TimerHandle | None = field(init=False, default=None)
    _finalize_task: "asyncio.Task[None] | None" = field(init=False, default=None)
    _started_monotonic: float | None = field(init=False, default=None)
    _elapsed_seconds: float | None = field(init=False, default=None)

    async def start(self, max_duration_seconds: float) -> str | None:
        """Record until the deadline or an early stop and return the artifact path.

        Resolves None when the device permission was denied or the device
        could not be started. Raises FinalizeError when stopping the device
        failed.
        """
        if self._result is not None:
            raise RuntimeError(f"{self.kind} recorder has already been started")
        loop = asyncio.get_running_loop()
        self._result = loop.create_future()
        self.state = RecordingState.RECORDING

        try:
            device = await self.provider.acquire()
            if device is not None:
                await device.start()
        except Exception as exc:
            _logger.exception("%s device could not be started", self.kind)
            self._fail(f"device setup failed: {exc}")
            return None
        if device is None:
            _logger.warning("%s permission not granted; no artifact", self.kind)
            self._fail("permission denied")
            return None

        self._device = device
        self._started_monotonic = time.monotonic()
        self.recorded_at = datetime.now(tz=UTC)
        self.deadline = self.recorded_at + timedelta(seconds=max_duration_seconds)
        _logger.info("%s recording started (max %.1fs)", self.kind, max_duration_seconds)

        if self.state is RecordingState.FINALIZING:
            # stop_early arrived while the device was being set up
            self._finalize_task = asyncio.create_task(self._finalize())
        else:
            self._timer = loop.call_later(max_duration_seconds, self._request_finalize)
        return await asyncio.shield(self._result)

    async def stop_early(self) -> str | None:
        """Finalize now; safe to call when idle and safe to call repeatedly."""
        if self._result is None:
            return None
        self._request_finalize()
        return await asyncio.shield(self._result)

    def artifact(self) -> EvidenceArtifact | None:
        """Return the finished artifact, if recording completed with a file."""
        if self.state is not RecordingState.COMPLETED or self.artifact_path is None:
            return None
        duration = (
            round(self._elapsed_seconds) if self._elapsed_seconds is not None else None
        )
        return EvidenceArtifact(
            kind=self.kind,
            local_path=self.artifact_path,
            recorded_at=self.recorded_at or datetime.now(tz=UTC),
            duration_seconds=duration,
        )

    def _request_finalize(self) -> None:
        if self.state is not RecordingState.RECORDING:
            return
        self.state = RecordingState.FINALIZING
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._device is not None:
            self._finalize_task = asyncio.create_task(self._finalize())

    async def _finalize(self) -> None:
        if self._device is None or self._result is None:
            return
        try:
            path = await self._device.stop()
        except Exception as exc:
            _logger.exception("Failed to stop %s recording", self.kind)
            self.state = RecordingState.FAILED
            self.failure_reason = f"stop failed: {exc}"
            error = FinalizeError(f"{self.kind} recording could not be finalized")
            error.__cause__ = exc
            self._result.set_exception(error)
            return
        if self._started_monotonic is not None:
            self._elapsed_seconds = time.monotonic() - self._started_monotonic
        if path:
            self.state = RecordingState.COMPLETED
            self.artifact_path = path
            _logger.info("%s recording finalized: %s", self.kind, path)
        else:
            self.state = RecordingState.FAILED
            self.failure_reason = "device produced no file"
        self._result.set_result(path or None)

    def _fail(self, reason: str) -> None:
        self.state = RecordingState.FAILED
        self.failure_reason = reason
        if self._result is not None and not self._result.done():
            self._result.set_result(None)


class AudioRecorder(MediaRecorder):
    """Recorder bound to the microphone."""

    def __init__(self, provider: DeviceProvider) -> None:
        super().__init__(provider=provider, kind=EvidenceKind.AUDIO)


class VideoRecorder(MediaRecorder):
    """Recorder bound to the camera."""

    def __init__(self, provider: DeviceProvider) -> None:
        super().__init__(provider=provider, kind=EvidenceKind.VIDEO)
