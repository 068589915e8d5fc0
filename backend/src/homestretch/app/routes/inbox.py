"""Property inbox routes and the inbound email webhook."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.app.config import get_settings
from homestretch.app.routes.errors import to_http_error
from homestretch.domain.schemas import (
    InboundEmailPayload,
    InboxMessageResponse,
    InboxSendRequest,
    InboxThreadSummary,
    MarkReadRequest,
)
from homestretch.infra.database import get_db
from homestretch.services.email_intake import EmailIntakeService
from homestretch.services.inbox_store import InboxStore
from homestretch.services.outbound_email_service import OutboundEmailService
from homestretch.services.pipeline_errors import PipelineError
from homestretch.services.property_store import PropertyStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/properties/{property_id}/inbox", tags=["inbox"])
inbound_router = APIRouter(prefix="/api/inbox", tags=["inbox"])


async def get_outbound_service(db: AsyncSession = Depends(get_db)) -> OutboundEmailService:
    return OutboundEmailService(db)


async def get_intake_service(db: AsyncSession = Depends(get_db)) -> EmailIntakeService:
    return EmailIntakeService(db)


@router.get("", response_model=list[InboxThreadSummary])
async def list_threads(property_id: str, db: AsyncSession = Depends(get_db)):
    """Threads for the property, most recently active first."""
    try:
        await PropertyStore(db).get(property_id)
    except PipelineError as exc:
        raise to_http_error(exc) from exc
    return await InboxStore(db).list_threads(property_id)


@router.get("/{thread_id}", response_model=list[InboxMessageResponse])
async def get_thread(property_id: str, thread_id: str, db: AsyncSession = Depends(get_db)):
    try:
        return await InboxStore(db).get_thread(property_id, thread_id)
    except PipelineError as exc:
        raise to_http_error(exc) from exc


@router.patch("/emails/{message_id}", response_model=InboxMessageResponse)
async def mark_read(
    property_id: str,
    message_id: str,
    data: MarkReadRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        message = await InboxStore(db).mark_read(property_id, message_id, data.read)
    except PipelineError as exc:
        raise to_http_error(exc) from exc
    await db.commit()
    return message


@router.post("/send", response_model=InboxMessageResponse)
async def send_email(
    property_id: str,
    data: InboxSendRequest,
    outbound: OutboundEmailService = Depends(get_outbound_service),
):
    """Send a new email or a reply from the property's own address."""
    try:
        prop = await PropertyStore(outbound.db).get(property_id)
        if not prop.property_email:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Property email is missing.",
            )
        sent = await outbound.send(
            property_id=prop.id,
            from_email=prop.property_email,
            to=data.to,
            cc=data.cc,
            subject=data.subject,
            body=data.body,
            body_html=data.body_html,
            reply_to_message_id=data.reply_to_message_id,
        )
    except PipelineError as exc:
        await outbound.db.rollback()
        raise to_http_error(exc) from exc
    await outbound.db.commit()
    return await InboxStore(outbound.db).get(sent.delivered_message_id)


@inbound_router.post("/inbound")
async def receive_inbound(
    payload: InboundEmailPayload,
    intake: EmailIntakeService = Depends(get_intake_service),
    x_inbound_token: Optional[str] = Header(default=None),
):
    """Mail-provider webhook for mail sent to a property address.

    When ``inbound_webhook_token`` is configured, the ``X-Inbound-Token``
    header must match it.
    """
    expected = get_settings().inbound_webhook_token
    if expected and x_inbound_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid inbound token")

    try:
        result = await intake.ingest(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    return {
        "status": result.status,
        "property_id": result.property_id,
        "message_id": result.message_id,
        "thread_id": result.thread_id,
        "document_ids": result.document_ids,
    }
