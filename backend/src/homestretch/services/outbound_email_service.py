"""SendGrid delivery for property mailboxes.

Sends from the property's own address, carries In-Reply-To / References
when replying, and records the sent message in the property inbox.
Uses asyncio.to_thread to wrap the synchronous SendGrid client.
"""

import asyncio
import base64
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

import sendgrid
from sendgrid.helpers.mail import (
    Attachment,
    Cc,
    ContentId,
    Disposition,
    Email,
    FileContent,
    FileName,
    FileType,
    Header,
    Mail,
    To,
)
from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.app.config import get_settings
from homestretch.domain.enums import MessageDirection
from homestretch.domain.models import PropertyDocument
from homestretch.services.collaborators import with_timeout
from homestretch.services.document_store import DocumentStore
from homestretch.services.inbox_store import InboxStore, to_participant
from homestretch.services.pipeline_errors import (
    CollaboratorError,
    DeliveryError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """What the delivery collaborator hands back after a successful send."""

    delivered_message_id: str  # inbox message id of the stored copy
    provider_message_id: Optional[str]
    thread_id: str
    sent_at: datetime
    message_id_header: str


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    return sendgrid.SendGridAPIClient(api_key=get_settings().sendgrid_api_key)


def _send_mail(mail: Mail) -> Optional[str]:
    """Synchronous send via SendGrid. Returns the provider message id."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code not in (200, 201, 202):
        logger.error(
            "SendGrid returned status %s: %s",
            response.status_code,
            response.body,
        )
        raise DeliveryError(f"SendGrid returned status {response.status_code}")
    headers = response.headers or {}
    return headers.get("X-Message-Id")


def _new_message_id() -> str:
    return f"<{uuid.uuid4().hex}@{get_settings().email_domain}>"


class OutboundEmailService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.inbox = InboxStore(db)
        self.documents = DocumentStore(db)

    async def _build_attachments(self, documents: Sequence[PropertyDocument]) -> list[Attachment]:
        attachments = []
        for document in documents:
            try:
                content = await self.documents.read_bytes(document)
            except OSError as exc:
                raise DeliveryError(
                    f"Attachment {document.filename} could not be read: {exc}"
                ) from exc
            attachments.append(
                Attachment(
                    FileContent(base64.b64encode(content).decode("ascii")),
                    FileName(document.filename),
                    FileType(document.mime_type),
                    Disposition("attachment"),
                    ContentId(document.id),
                )
            )
        return attachments

    async def send(
        self,
        *,
        property_id: str,
        from_email: str,
        to: Sequence[str],
        subject: str,
        body: str,
        body_html: Optional[str] = None,
        cc: Sequence[str] = (),
        attachments: Sequence[PropertyDocument] = (),
        reply_to_message_id: Optional[str] = None,
    ) -> DeliveryResult:
        """Deliver an email and store it in the property inbox (already read).

        Args:
            reply_to_message_id: Inbox message id being replied to; its
                Message-ID and References become this email's threading headers.

        Raises:
            NotFoundError: ``reply_to_message_id`` is not a message of this property.
            DeliveryError: SendGrid rejected the email, timed out, or is not configured.
        """
        settings = get_settings()
        if not settings.sendgrid_api_key:
            raise DeliveryError("SENDGRID_API_KEY is not configured.")

        in_reply_to = None
        references: list[str] = []
        if reply_to_message_id:
            parent = await self.inbox.get(reply_to_message_id)
            if parent is None or parent.property_id != property_id:
                raise NotFoundError(f"Message {reply_to_message_id} not found.")
            if parent.message_id:
                in_reply_to = parent.message_id
                references = [*(parent.references or []), parent.message_id]

        message_id_header = _new_message_id()
        mail = Mail(
            from_email=Email(from_email),
            to_emails=[To(address) for address in to],
            subject=subject,
            plain_text_content=body,
            html_content=body_html,
        )
        for address in cc:
            mail.add_cc(Cc(address))
        mail.add_header(Header("Message-ID", message_id_header))
        if in_reply_to:
            mail.add_header(Header("In-Reply-To", in_reply_to))
            mail.add_header(Header("References", " ".join(references)))
        for attachment in await self._build_attachments(attachments):
            mail.add_attachment(attachment)

        try:
            provider_message_id = await with_timeout(
                asyncio.to_thread(_send_mail, mail), "Email delivery"
            )
        except DeliveryError:
            raise
        except CollaboratorError as exc:
            raise DeliveryError(str(exc)) from exc
        except Exception as exc:
            logger.error("SendGrid send failed: %s", exc)
            raise DeliveryError(f"Email delivery failed: {exc}") from exc

        sent_at = datetime.now(timezone.utc)
        stored = await self.inbox.create_message(
            property_id=property_id,
            direction=MessageDirection.OUTBOUND,
            from_email=from_email,
            to=[to_participant(address) for address in to],
            cc=[to_participant(address) for address in cc],
            subject=subject,
            body_text=body,
            body_html=body_html,
            message_id=message_id_header,
            in_reply_to=in_reply_to,
            references=references,
            has_attachments=bool(attachments),
            sent_at=sent_at,
            provider_email_id=provider_message_id,
        )
        logger.info(
            "Sent email %s from %s to %s (provider id %s)",
            stored.id, from_email, ", ".join(to), provider_message_id,
        )
        return DeliveryResult(
            delivered_message_id=stored.id,
            provider_message_id=provider_message_id,
            thread_id=stored.thread_id,
            sent_at=sent_at,
            message_id_header=message_id_header,
        )
