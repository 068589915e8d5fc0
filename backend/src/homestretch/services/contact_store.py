"""Global contact store: one contact per contact type, last writer wins."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.domain.models import Contact, db_now
from homestretch.domain.schemas import ContactUpsert

logger = logging.getLogger(__name__)


class ContactStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_type(self, contact_type: str) -> Optional[Contact]:
        result = await self.db.execute(
            select(Contact).where(Contact.contact_type == contact_type)
        )
        return result.scalar_one_or_none()

    async def list(self) -> list[Contact]:
        result = await self.db.execute(select(Contact).order_by(Contact.contact_type))
        return list(result.scalars().all())

    async def upsert(self, data: ContactUpsert) -> Contact:
        """Replace the contact for ``data.type`` (or create it)."""
        contact = await self.get_by_type(data.type)
        if contact is None:
            contact = Contact(contact_type=data.type)
            self.db.add(contact)
        contact.name = data.name
        contact.email = data.email
        contact.phone = data.phone
        contact.company = data.company
        contact.updated_at = db_now()
        await self.db.flush()
        logger.info("Upserted %s contact %s", data.type, data.email)
        return contact
