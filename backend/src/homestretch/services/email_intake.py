"""Inbound email intake for property mailboxes.

Routes a webhook payload to its property by recipient address, stores the
message and its PDF attachments, then runs the earnest and closing
automations on it. Automation failures are logged; the stored message
stays and the batch pass retries its analysis later.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.domain.enums import DocumentSource, MessageDirection
from homestretch.domain.models import Property
from homestretch.domain.schemas import InboundEmailPayload
from homestretch.services.closing_inbox_automation import ClosingInboxAutomation
from homestretch.services.document_store import PDF_MIME_TYPE, DocumentStore
from homestretch.services.earnest_inbox_automation import EarnestInboxAutomation
from homestretch.services.inbox_store import InboxStore, to_participant
from homestretch.services.property_store import PropertyStore

logger = logging.getLogger(__name__)


@dataclass
class IntakeResult:
    status: str  # stored, duplicate, unroutable
    property_id: Optional[str] = None
    message_id: Optional[str] = None
    thread_id: Optional[str] = None
    document_ids: list[str] = field(default_factory=list)


def _header(headers: dict[str, str], name: str) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted and value and value.strip():
            return value.strip()
    return None


def _decode_pdfs(payload: InboundEmailPayload) -> list[tuple[str, bytes]]:
    """Decode PDF attachments up front so a bad payload stores nothing."""
    pdfs = []
    for attachment in payload.attachments:
        if attachment.content_type.split(";")[0].strip().lower() != PDF_MIME_TYPE:
            continue
        try:
            content = base64.b64decode(attachment.content_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Attachment {attachment.filename} is not valid base64") from exc
        pdfs.append((attachment.filename or "attachment.pdf", content))
    return pdfs


class EmailIntakeService:
    def __init__(
        self,
        db: AsyncSession,
        earnest_automation: Optional[EarnestInboxAutomation] = None,
        closing_automation: Optional[ClosingInboxAutomation] = None,
    ):
        self.db = db
        self.properties = PropertyStore(db)
        self.documents = DocumentStore(db)
        self.inbox = InboxStore(db)
        self.earnest_automation = earnest_automation or EarnestInboxAutomation(db)
        self.closing_automation = closing_automation or ClosingInboxAutomation(db)

    async def _resolve_property(self, payload: InboundEmailPayload) -> Optional[Property]:
        for address in [*payload.to, *payload.cc]:
            recipient = to_participant(address)["email"]
            prop = await self.properties.find_by_email(recipient)
            if prop is not None:
                return prop
        return None

    async def ingest(self, payload: InboundEmailPayload) -> IntakeResult:
        """Store one inbound email and run the inbox automations on it.

        Raises:
            ValueError: an attachment is not valid base64.
        """
        prop = await self._resolve_property(payload)
        if prop is None:
            logger.warning("Inbound email to %s matched no property", ", ".join(payload.to))
            return IntakeResult(status="unroutable")

        if payload.provider_email_id and await self.inbox.exists_by_provider_id(
            payload.provider_email_id
        ):
            logger.info("Skipping duplicate inbound email %s", payload.provider_email_id)
            return IntakeResult(status="duplicate", property_id=prop.id)

        pdfs = _decode_pdfs(payload)
        sender = to_participant(payload.from_)
        references_header = _header(payload.headers, "References")

        message = await self.inbox.create_message(
            property_id=prop.id,
            direction=MessageDirection.INBOUND,
            from_email=sender["email"],
            from_name=sender["name"],
            to=[to_participant(address) for address in payload.to],
            cc=[to_participant(address) for address in payload.cc],
            subject=payload.subject,
            body_text=payload.text,
            body_html=payload.html,
            message_id=_header(payload.headers, "Message-ID"),
            in_reply_to=_header(payload.headers, "In-Reply-To"),
            references=references_header.split() if references_header else [],
            has_attachments=bool(payload.attachments),
            sent_at=payload.received_at or datetime.now(timezone.utc),
            provider_email_id=payload.provider_email_id,
        )

        document_ids = []
        for filename, content in pdfs:
            document = await self.documents.save(
                prop.id,
                filename,
                PDF_MIME_TYPE,
                content,
                source=DocumentSource.EMAIL_INTAKE,
                message_id=message.id,
            )
            document_ids.append(document.id)

        await self.db.commit()
        result = IntakeResult(
            status="stored",
            property_id=prop.id,
            message_id=message.id,
            thread_id=message.thread_id,
            document_ids=document_ids,
        )

        try:
            await self.earnest_automation.process_stored_message(message)
            await self.db.commit()
        except Exception as exc:
            await self.db.rollback()
            logger.error("Earnest automation failed for message %s: %s", result.message_id, exc)
            await self.inbox.record_analysis_failure(result.message_id, str(exc))
            await self.db.commit()

        if document_ids:
            try:
                message = await self.inbox.get(result.message_id)
                await self.closing_automation.process_stored_message(message, document_ids)
                await self.db.commit()
            except Exception as exc:
                await self.db.rollback()
                logger.error("Closing automation failed for message %s: %s", result.message_id, exc)

        return result
