"""Domain models for recorded evidence."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class EvidenceKind(StrEnum):
    """Media kind of a recorded artifact."""

    AUDIO = "audio"
    VIDEO = "video"

    @property
    def extension(self) -> str:
        return "m4a" if self is EvidenceKind.AUDIO else "mp4"

    @property
    def content_type(self) -> str:
        return "audio/mp4" if self is EvidenceKind.AUDIO else "video/mp4"


@dataclass(frozen=True)
class EvidenceArtifact:
    """A finished recording waiting to be uploaded."""

    kind: EvidenceKind
    local_path: str
    recorded_at: datetime
    duration_seconds: int | None = None


@dataclass(frozen=True)
class UploadedArtifact:
    """An artifact stored in blob storage with persisted metadata."""

    kind: EvidenceKind
    url: str
    storage_path: str
    file_name: str
    session_id: str
    duration_seconds: int
    recorded_at: datetime
