"""Property persistence and the revision-checked workflow document write."""

import logging
import re
import uuid
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.app.config import get_settings
from homestretch.domain.models import Property, db_now
from homestretch.domain.schemas import PropertyCreate
from homestretch.domain.workflow import PropertyWorkflowState
from homestretch.services.pipeline_errors import NotFoundError, StateConflictError
from homestretch.services.workflow_state import (
    create_initial_workflow_state,
    dump_workflow_state,
    load_workflow_state,
)

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def email_slug(value: Optional[str]) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim; 'unnamed' if empty."""
    slug = _NON_ALNUM.sub("-", (value or "").lower()).strip("-")
    return slug or "unnamed"


class PropertyStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, property_id: str) -> Property:
        prop = await self.db.get(Property, property_id)
        if prop is None:
            raise NotFoundError(f"Property {property_id} not found.")
        return prop

    async def find_by_email(self, email: str) -> Optional[Property]:
        result = await self.db.execute(
            select(Property).where(func.lower(Property.property_email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def _unique_email(self, address: Optional[str]) -> str:
        """``<slug>@<email_domain>``, suffixed -2, -3, ... when the slug is taken."""
        domain = get_settings().email_domain
        base = email_slug(address)
        candidate = f"{base}@{domain}"
        suffix = 2
        while await self.find_by_email(candidate) is not None:
            candidate = f"{base}-{suffix}@{domain}"
            suffix += 1
        return candidate

    async def create(self, data: PropertyCreate, contract_doc_hash: Optional[str] = None) -> Property:
        """Insert a property with its inbound address and an initial workflow document."""
        state = create_initial_workflow_state()
        prop = Property(
            id=str(uuid.uuid4()),
            property_name=(data.property_name or data.address_full).strip(),
            address_full=data.address_full.strip(),
            city=data.city,
            state=data.state,
            zip=data.zip,
            property_email=await self._unique_email(data.address_full),
            buyer_names=list(data.buyer_names),
            seller_names=list(data.seller_names),
            purchase_price=data.purchase_price,
            earnest_money_amount=data.earnest_money_amount,
            earnest_money_deadline=data.earnest_money_deadline,
            closing_date=data.closing_date,
            contract_doc_hash=contract_doc_hash,
            workflow_state=dump_workflow_state(state),
            workflow_revision=1,
        )
        self.db.add(prop)
        await self.db.flush()
        logger.info("Created property %s (%s)", prop.id, prop.property_email)
        return prop

    def get_workflow_state(self, prop: Property) -> Optional[PropertyWorkflowState]:
        return load_workflow_state(prop.workflow_state)

    async def update_workflow_state(
        self,
        prop: Property,
        state: PropertyWorkflowState,
    ) -> PropertyWorkflowState:
        """Write the whole document if nobody else wrote since ``prop`` was read.

        Raises:
            StateConflictError: the stored revision moved on.
        """
        expected = prop.workflow_revision or 0
        result = await self.db.execute(
            update(Property)
            .where(Property.id == prop.id, Property.workflow_revision == expected)
            .values(
                workflow_state=dump_workflow_state(state),
                workflow_revision=expected + 1,
                updated_at=db_now(),
            )
        )
        if result.rowcount == 0:
            logger.warning(
                "Stale workflow write for property %s at revision %d", prop.id, expected
            )
            raise StateConflictError(
                "The pipeline was updated by another request. Reload and try again."
            )
        return state
