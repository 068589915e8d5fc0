"""Contact routes: one global contact per type, last writer wins."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.domain.schemas import ContactResponse, ContactUpsert
from homestretch.infra.database import get_db
from homestretch.services.contact_store import ContactStore

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


@router.post("", response_model=ContactResponse)
async def upsert_contact(data: ContactUpsert, db: AsyncSession = Depends(get_db)):
    contact = await ContactStore(db).upsert(data)
    await db.commit()
    return contact


@router.get("", response_model=list[ContactResponse])
async def list_contacts(db: AsyncSession = Depends(get_db)):
    return await ContactStore(db).list()
