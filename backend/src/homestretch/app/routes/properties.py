"""Property routes: create from extracted contract facts, read, pipeline overview."""

import base64
import binascii
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.app.routes.errors import to_http_error
from homestretch.domain.enums import DocumentSource
from homestretch.domain.schemas import PipelineOverview, PropertyCreate, PropertyResponse
from homestretch.infra.database import get_db
from homestretch.services.document_store import PDF_MIME_TYPE, DocumentStore, sha256_hex
from homestretch.services.pipeline_errors import PipelineError
from homestretch.services.property_store import PropertyStore
from homestretch.services.workflow_state import build_pipeline_overview, create_initial_workflow_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/properties", tags=["properties"])


@router.post("", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
async def create_property(data: PropertyCreate, db: AsyncSession = Depends(get_db)):
    """Create a property, its inbound address and its initial pipeline.

    When ``contract_pdf_base64`` is given the contract is stored as the
    property's first document and its hash recorded for attachment lookup.
    """
    contract = None
    if data.contract_pdf_base64:
        try:
            contract = base64.b64decode(data.contract_pdf_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="contract_pdf_base64 is not valid base64",
            )

    store = PropertyStore(db)
    prop = await store.create(data, contract_doc_hash=sha256_hex(contract) if contract else None)
    if contract:
        await DocumentStore(db).save(
            prop.id,
            data.contract_filename or "purchase-contract.pdf",
            PDF_MIME_TYPE,
            contract,
            source=DocumentSource.CONTRACT_UPLOAD,
        )
    await db.commit()
    return prop


@router.get("/{property_id}", response_model=PropertyResponse)
async def get_property(property_id: str, db: AsyncSession = Depends(get_db)):
    try:
        return await PropertyStore(db).get(property_id)
    except PipelineError as exc:
        raise to_http_error(exc) from exc


@router.get("/{property_id}/pipeline", response_model=PipelineOverview)
async def get_pipeline(property_id: str, db: AsyncSession = Depends(get_db)):
    """All six steps and the current label."""
    store = PropertyStore(db)
    try:
        prop = await store.get(property_id)
        state = store.get_workflow_state(prop)
        if state is None:
            state = create_initial_workflow_state()
            await store.update_workflow_state(prop, state)
            await db.commit()
    except PipelineError as exc:
        raise to_http_error(exc) from exc
    return build_pipeline_overview(prop.id, state)
