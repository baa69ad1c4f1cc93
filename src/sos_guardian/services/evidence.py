"""Evidence upload to blob storage with metadata persistence."""

import asyncio
import time
from dataclasses import dataclass
from typing import Protocol

from sos_guardian.domain.errors import UploadError
from sos_guardian.domain.evidence import EvidenceArtifact, UploadedArtifact


class EvidenceStorage(Protocol):
    """Blob storage and metadata persistence for evidence files."""

    def upload(self, local_path: str, destination_path: str, content_type: str) -> str:
        """Upload a local file and return its remote URL."""

    def save_metadata(self, owner_id: str, metadata: dict[str, object]) -> str:
        """Persist evidence metadata and return the record id."""


@dataclass
class EvidenceUploader:
    """Uploads a finished artifact and records where it went."""

    storage: EvidenceStorage
    default_duration_seconds: int = 25

    async def upload(
        self, owner_id: str, session_id: str, artifact: EvidenceArtifact
    ) -> UploadedArtifact:
        """Upload one artifact; raises UploadError without retrying."""
        file_name = f"{artifact.kind}_{int(time.time() * 1000)}.{artifact.kind.extension}"
        storage_path = f"evidence/{owner_id}/{session_id}/{file_name}"
        duration = (
            artifact.duration_seconds
            if artifact.duration_seconds is not None
            else self.default_duration_seconds
        )
        try:
            url = await asyncio.to_thread(
                self.storage.upload,
                artifact.local_path,
                storage_path,
                artifact.kind.content_type,
            )
            await asyncio.to_thread(
                self.storage.save_metadata,
                owner_id,
                _metadata(
                    artifact, url, storage_path, file_name, session_id, duration
                ),
            )
        except Exception as exc:
            raise UploadError(
                f"Failed to upload {artifact.kind} evidence for session {session_id}"
            ) from exc
        return UploadedArtifact(
            kind=artifact.kind,
            url=url,
            storage_path=storage_path,
            file_name=file_name,
            session_id=session_id,
            duration_seconds=duration,
            recorded_at=artifact.recorded_at,
        )


def _metadata(  # noqa: PLR0913
    artifact: EvidenceArtifact,
    url: str,
    storage_path: str,
    file_name: str,
    session_id: str,
    duration: int,
) -> dict[str, object]:
    return {
        "type": str(artifact.kind),
        "url": url,
        "storage_path": storage_path,
        "file_name": file_name,
        "sos_id": session_id,
        "duration": duration,
        "recorded_at": artifact.recorded_at.isoformat(),
    }
