"""Recording lifecycle states."""

from enum import StrEnum


class RecordingState(StrEnum):
    """State of a single recorder handle."""

    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_busy(self) -> bool:
        return self in {RecordingState.RECORDING, RecordingState.FINALIZING}
