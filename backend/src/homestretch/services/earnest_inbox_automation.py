"""Classifies newly stored inbound email once and feeds it to the earnest workflow."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.domain.enums import MessageDirection
from homestretch.domain.models import InboxMessage
from homestretch.domain.schemas import PipelineStepView
from homestretch.services.earnest_workflow import EarnestWorkflow
from homestretch.services.inbound_analyzer import EarnestInboundAnalyzer, EmailInput
from homestretch.services.inbox_store import InboxStore

logger = logging.getLogger(__name__)


class EarnestInboxAutomation:
    """At-most-once signal application per message.

    Outbound and already-analyzed messages are skipped. The analysis is
    claimed with a conditional write before it is applied, so a duplicate
    run that lost the race applies nothing.
    """

    def __init__(
        self,
        db: AsyncSession,
        analyzer: Optional[EarnestInboundAnalyzer] = None,
        workflow: Optional[EarnestWorkflow] = None,
    ):
        self.db = db
        self.inbox = InboxStore(db)
        self.analyzer = analyzer or EarnestInboundAnalyzer()
        self.workflow = workflow or EarnestWorkflow(db)

    async def process_stored_message(self, message: InboxMessage) -> Optional[PipelineStepView]:
        if message.direction != MessageDirection.INBOUND.value:
            return None
        if message.analysis is not None:
            return None

        analysis = await self.analyzer.analyze(
            EmailInput.from_message(message), property_id=message.property_id
        )
        if not await self.inbox.claim_analysis(message.id, analysis):
            return None

        logger.info(
            "Message %s analyzed as %s (%s, %.2f)",
            message.id,
            analysis.pipeline_label.value,
            analysis.earnest_signal.value,
            analysis.confidence,
        )
        return await self.workflow.apply_inbox_analysis(
            message.property_id,
            message.id,
            message.thread_id,
            analysis,
        )


async def process_pending_messages(
    db: AsyncSession,
    analyzer: Optional[EarnestInboundAnalyzer] = None,
    limit: int = 100,
) -> int:
    """Batch pass over inbound messages that still have no analysis.

    Each message commits on its own. A failure is rolled back and counted on
    the message; it is retried on later passes, behind messages with fewer
    failures, until it reaches ``inbox_analysis_max_attempts``. Returns the
    number processed.
    """
    inbox = InboxStore(db)
    automation = EarnestInboxAutomation(db, analyzer=analyzer)
    pending_ids = [message.id for message in await inbox.list_unanalyzed_inbound(limit)]

    processed = 0
    for message_id in pending_ids:
        try:
            message = await inbox.get(message_id)
            if message is None:
                continue
            await automation.process_stored_message(message)
            await db.commit()
            processed += 1
        except Exception as exc:
            await db.rollback()
            logger.error("Inbox automation failed for message %s: %s", message_id, exc)
            await inbox.record_analysis_failure(message_id, str(exc))
            await db.commit()
    if processed:
        logger.info("Inbox automation processed %d message(s)", processed)
    return processed
