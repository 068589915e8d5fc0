"""Inbox persistence: threaded messages, read state and write-once analysis."""

import logging
import uuid
from datetime import datetime, timezone
from email.utils import parseaddr
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.app.config import get_settings
from homestretch.domain.enums import MessageDirection
from homestretch.domain.models import InboxMessage, db_now
from homestretch.domain.schemas import InboxMessageAnalysis, InboxThreadSummary, Participant
from homestretch.services.email_threading import compute_thread_id
from homestretch.services.pipeline_errors import NotFoundError

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 120


def to_participant(address: str) -> dict:
    """'Jane Doe <jane@x.com>' -> {'email': 'jane@x.com', 'name': 'Jane Doe'}."""
    name, email = parseaddr(address)
    return {"email": (email or address).strip().lower(), "name": name.strip() or None}


class InboxStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _thread_for_header(self, property_id: str, header_message_id: str) -> Optional[str]:
        result = await self.db.execute(
            select(InboxMessage.thread_id)
            .where(
                InboxMessage.property_id == property_id,
                InboxMessage.message_id == header_message_id,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_message(
        self,
        *,
        property_id: str,
        direction: MessageDirection,
        from_email: str,
        to: Sequence[dict],
        subject: str,
        sent_at: datetime,
        from_name: Optional[str] = None,
        cc: Sequence[dict] = (),
        body_text: Optional[str] = None,
        body_html: Optional[str] = None,
        message_id: Optional[str] = None,
        in_reply_to: Optional[str] = None,
        references: Sequence[str] = (),
        has_attachments: bool = False,
        provider_email_id: Optional[str] = None,
    ) -> InboxMessage:
        """Store a message in its thread. Outbound messages are stored already read."""

        async def lookup(header: str) -> Optional[str]:
            return await self._thread_for_header(property_id, header)

        thread_id = await compute_thread_id(
            property_id,
            subject,
            lookup,
            in_reply_to=in_reply_to,
            references=references,
        )
        if sent_at.tzinfo is not None:
            sent_at = sent_at.astimezone(timezone.utc).replace(tzinfo=None)
        is_outbound = direction == MessageDirection.OUTBOUND
        now = db_now()
        message = InboxMessage(
            id=str(uuid.uuid4()),
            provider_email_id=provider_email_id,
            property_id=property_id,
            thread_id=thread_id,
            direction=direction.value,
            from_email=from_email,
            from_name=from_name,
            to_recipients=list(to),
            cc_recipients=list(cc),
            subject=subject or "",
            body_text=body_text,
            body_html=body_html,
            message_id=message_id,
            in_reply_to=in_reply_to,
            references=list(references),
            has_attachments=has_attachments,
            read=is_outbound,
            read_at=now if is_outbound else None,
            sent_at=sent_at,
            analysis=None,
            analysis_attempts=0,
            created_at=now,
        )
        self.db.add(message)
        await self.db.flush()
        logger.info(
            "Stored %s message %s in thread %s for property %s",
            direction.value, message.id, thread_id, property_id,
        )
        return message

    async def mark_read(self, property_id: str, message_id: str, read: bool) -> InboxMessage:
        message = await self.get_for_property(property_id, message_id)
        message.read = read
        message.read_at = db_now() if read else None
        await self.db.flush()
        return message

    async def claim_analysis(self, message_id: str, analysis: InboxMessageAnalysis) -> bool:
        """Set ``analysis`` only if it is still unset. Returns True if this call set it."""
        result = await self.db.execute(
            update(InboxMessage)
            .where(InboxMessage.id == message_id, InboxMessage.analysis.is_(None))
            .values(analysis=analysis.model_dump(mode="json"))
        )
        claimed = result.rowcount == 1
        if not claimed:
            logger.info("Analysis for message %s was already recorded", message_id)
        return claimed

    async def record_analysis_failure(self, message_id: str, error: str) -> None:
        """Count a failed analysis run so the batch pass can give up on the message."""
        await self.db.execute(
            update(InboxMessage)
            .where(InboxMessage.id == message_id, InboxMessage.analysis.is_(None))
            .values(
                analysis_attempts=InboxMessage.analysis_attempts + 1,
                last_analysis_error=error[:1000],
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, message_id: str) -> Optional[InboxMessage]:
        return await self.db.get(InboxMessage, message_id)

    async def get_for_property(self, property_id: str, message_id: str) -> InboxMessage:
        message = await self.get(message_id)
        if message is None or message.property_id != property_id:
            raise NotFoundError(f"Message {message_id} not found.")
        return message

    async def exists_by_provider_id(self, provider_email_id: str) -> bool:
        result = await self.db.execute(
            select(InboxMessage.id)
            .where(InboxMessage.provider_email_id == provider_email_id)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get_thread(self, property_id: str, thread_id: str) -> list[InboxMessage]:
        """Messages of one thread, oldest first."""
        result = await self.db.execute(
            select(InboxMessage)
            .where(InboxMessage.property_id == property_id, InboxMessage.thread_id == thread_id)
            .order_by(InboxMessage.sent_at, InboxMessage.created_at)
        )
        messages = list(result.scalars().all())
        if not messages:
            raise NotFoundError(f"Thread {thread_id} not found.")
        return messages

    async def list_unanalyzed_inbound(
        self,
        limit: int = 100,
        max_attempts: Optional[int] = None,
    ) -> list[InboxMessage]:
        """Inbound messages still awaiting analysis, least-attempted and oldest first.

        Messages that already failed ``max_attempts`` times are left out.
        """
        if max_attempts is None:
            max_attempts = get_settings().inbox_analysis_max_attempts
        result = await self.db.execute(
            select(InboxMessage)
            .where(
                InboxMessage.direction == MessageDirection.INBOUND.value,
                InboxMessage.analysis.is_(None),
                InboxMessage.analysis_attempts < max_attempts,
            )
            .order_by(InboxMessage.analysis_attempts, InboxMessage.sent_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_threads(self, property_id: str) -> list[InboxThreadSummary]:
        """Thread summaries for a property, most recently active first."""
        result = await self.db.execute(
            select(InboxMessage)
            .where(InboxMessage.property_id == property_id)
            .order_by(InboxMessage.sent_at.desc(), InboxMessage.created_at.desc())
        )
        grouped: dict[str, list[InboxMessage]] = {}
        for message in result.scalars().all():
            grouped.setdefault(message.thread_id, []).append(message)

        threads = []
        for thread_id, messages in grouped.items():
            latest, oldest = messages[0], messages[-1]

            participants: dict[str, Participant] = {}
            for message in messages:
                participants.setdefault(
                    message.from_email,
                    Participant(email=message.from_email, name=message.from_name),
                )
                for recipient in message.to_recipients or []:
                    participants.setdefault(recipient["email"], Participant(**recipient))

            threads.append(
                InboxThreadSummary(
                    id=thread_id,
                    subject=oldest.subject,
                    participants=list(participants.values()),
                    preview=(latest.body_text or latest.body_html or "")[:PREVIEW_CHARS],
                    message_count=len(messages),
                    has_attachments=any(m.has_attachments for m in messages),
                    unread=any(
                        not m.read and m.direction == MessageDirection.INBOUND.value
                        for m in messages
                    ),
                    last_message_at=latest.sent_at,
                    last_message_from=latest.from_email,
                    created_at=oldest.sent_at,
                )
            )

        threads.sort(key=lambda thread: thread.last_message_at, reverse=True)
        return threads
