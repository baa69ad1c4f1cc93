"""Supabase-backed trusted contact repository."""

import logging
from dataclasses import dataclass

from supabase import Client

from sos_guardian.domain.contacts import TrustedContact
from sos_guardian.services.sos import ContactRepository

_logger = logging.getLogger(__name__)


@dataclass
class SupabaseContactRepository(ContactRepository):
    """Supabase implementation for trusted contacts."""

    client: Client

    def list_contacts(self, owner_id: str) -> list[TrustedContact]:
        """Return contacts with a phone number."""
        response = (
            self.client.table("trusted_contacts")
            .select("id, name, phone, email")
            .eq("user_id", owner_id)
            .execute()
        )
        contacts: list[TrustedContact] = []
        for row in response.data or []:
            phone = row.get("phone")
            if not phone:
                _logger.warning("Skipping contact without phone: %s", row.get("id"))
                continue
            contacts.append(
                TrustedContact(
                    name=row.get("name") or "Trusted Contact",
                    phone=str(phone),
                    email=row.get("email"),
                )
            )
        return contacts
