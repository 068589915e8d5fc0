"""Scans a stored message's PDF attachments for an ALTA closing statement."""

import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.agents.alta_detector_agent import AltaDetectorAgent
from homestretch.app.config import get_settings
from homestretch.domain.enums import DetectedDocumentType
from homestretch.domain.models import InboxMessage
from homestretch.domain.schemas import AltaDetectionResult, PipelineStepView
from homestretch.services.closing_workflow import AltaEvidence, ClosingWorkflow
from homestretch.services.collaborators import call_agent
from homestretch.services.document_store import PDF_MIME_TYPE, DocumentStore
from homestretch.services.pipeline_errors import CollaboratorError

logger = logging.getLogger(__name__)


class ClosingInboxAutomation:
    def __init__(
        self,
        db: AsyncSession,
        detector: Optional[AltaDetectorAgent] = None,
        workflow: Optional[ClosingWorkflow] = None,
    ):
        self.db = db
        self.documents = DocumentStore(db)
        self.detector = detector or AltaDetectorAgent()
        self.workflow = workflow or ClosingWorkflow(db)

    def _qualifies(self, detection: AltaDetectionResult) -> bool:
        return (
            detection.is_match
            and detection.document_type == DetectedDocumentType.ALTA_STATEMENT
            and detection.confidence >= get_settings().signal_confidence_floor
        )

    async def process_stored_message(
        self,
        message: InboxMessage,
        document_ids: Sequence[str],
    ) -> Optional[PipelineStepView]:
        """Forward the first qualifying ALTA statement to the closing workflow.

        Returns the closing view when one was forwarded, else None.
        """
        for document_id in document_ids:
            document = await self.documents.get(document_id)
            if document is None or document.property_id != message.property_id:
                continue
            if document.mime_type != PDF_MIME_TYPE:
                continue

            try:
                content = await self.documents.read_bytes(document)
            except OSError as exc:
                logger.warning("Could not read document %s: %s", document.id, exc)
                continue

            try:
                detection: AltaDetectionResult = await call_agent(
                    self.detector.detect(
                        filename=document.filename,
                        mime_type=document.mime_type,
                        file_bytes=content,
                        received_at=message.sent_at,
                        property_id=message.property_id,
                    ),
                    "ALTA detection",
                )
            except CollaboratorError as exc:
                logger.warning("ALTA detection failed for %s: %s", document.filename, exc)
                continue

            if not self._qualifies(detection):
                logger.info(
                    "Attachment %s is not a qualifying ALTA statement (%s, %.2f)",
                    document.filename, detection.document_type.value, detection.confidence,
                )
                continue

            return await self.workflow.apply_alta_detection(
                message.property_id,
                AltaEvidence(
                    message_id=message.id,
                    thread_id=message.thread_id,
                    document_id=document.id,
                    filename=document.filename,
                    summary=detection.summary,
                    confidence=detection.confidence,
                    reason=f'Attachment "{document.filename}" was classified as an ALTA closing statement.',
                    analyzed_at=detection.detected_at,
                ),
            )
        return None
