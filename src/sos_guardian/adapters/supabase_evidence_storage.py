"""Supabase-backed evidence storage."""

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from supabase import Client

from sos_guardian.services.evidence import EvidenceStorage


@dataclass
class SupabaseEvidenceStorage(EvidenceStorage):
    """Uploads evidence files to a storage bucket and metadata to a table."""

    client: Client
    bucket: str = "evidence"

    def upload(self, local_path: str, destination_path: str, content_type: str) -> str:
        """Upload a local file and return its URL."""
        data = Path(local_path).read_bytes()
        bucket = self.client.storage.from_(self.bucket)
        bucket.upload(destination_path, data, {"content-type": content_type})
        return bucket.get_public_url(destination_path)

    def save_metadata(self, owner_id: str, metadata: dict[str, object]) -> str:
        """Insert an evidence row and return its id."""
        response = (
            self.client.table("evidence")
            .insert(
                {
                    **metadata,
                    "user_id": owner_id,
                    "created_at": datetime.now(tz=UTC).isoformat(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save evidence metadata")
        return str(response.data[0]["id"])
