"""ALTA Detector Agent - Recognizes ALTA closing statements among PDF attachments."""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from homestretch.agents.base import AgentResult, BaseAgent
from homestretch.agents.prompts.closing import (
    ALTA_DETECTOR_SYSTEM_PROMPT,
    ALTA_DETECTOR_TEMPLATE,
)
from homestretch.domain.enums import DetectedDocumentType
from homestretch.domain.schemas import (
    AltaClassification,
    AltaDetectionExtraction,
    AltaDetectionResult,
)

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
NOT_ALTA_WARNING = "Document was not classified as an ALTA closing statement."
DEFAULT_ALTA_SUMMARY = "ALTA closing statement detected for the transaction."


def normalize_extraction(extraction: AltaDetectionExtraction) -> AltaDetectionExtraction:
    """Force a consistent shape on non-ALTA answers and fill in a missing summary."""
    warnings = list(extraction.warnings)
    classification = extraction.classification
    is_alta = (
        classification.is_alta_document
        and classification.document_type == DetectedDocumentType.ALTA_STATEMENT
    )

    if not is_alta:
        if NOT_ALTA_WARNING not in warnings:
            warnings.append(NOT_ALTA_WARNING)
        return AltaDetectionExtraction(
            classification=AltaClassification(
                is_alta_document=False,
                document_type=DetectedDocumentType.OTHER,
                confidence=classification.confidence,
            ),
            summary=None,
            warnings=warnings,
        )

    return AltaDetectionExtraction(
        classification=classification,
        summary=(extraction.summary or "").strip() or DEFAULT_ALTA_SUMMARY,
        warnings=warnings,
    )


class AltaDetectorAgent(BaseAgent):
    """Classifies a single PDF as ALTA settlement statement or other."""

    def __init__(self):
        super().__init__(
            agent_name="alta_detector",
            temperature=0.0,
        )

    async def detect(
        self,
        filename: str,
        mime_type: str,
        file_bytes: bytes,
        received_at: Optional[datetime] = None,
        property_id: Optional[str] = None,
    ) -> AgentResult:
        """Classify one PDF attachment.

        Non-PDF or empty input fails without calling the model.

        Returns:
            AgentResult whose ``data`` is an ``AltaDetectionResult``.
        """
        if mime_type != PDF_MIME_TYPE:
            return AgentResult.failure(
                "Only application/pdf inputs are supported for closing ALTA detection."
            )
        if not file_bytes:
            return AgentResult.failure("PDF input buffer is empty.")

        detected_at = datetime.now(timezone.utc)
        prompt = ALTA_DETECTOR_TEMPLATE.format(
            context=json.dumps(
                {
                    "filename": filename,
                    "received_at_iso": received_at.isoformat() if received_at else None,
                },
                indent=2,
            )
        )
        result = await self.generate_structured(
            prompt=[prompt, {"mime_type": PDF_MIME_TYPE, "data": file_bytes}],
            output_model=AltaDetectionExtraction,
            system_instruction=ALTA_DETECTOR_SYSTEM_PROMPT,
            property_id=property_id,
        )
        if not result.ok:
            return result

        normalized = normalize_extraction(result.data)
        return AgentResult.success(
            data=AltaDetectionResult(
                is_match=normalized.classification.is_alta_document,
                document_type=normalized.classification.document_type,
                confidence=normalized.classification.confidence,
                summary=normalized.summary,
                warnings=normalized.warnings,
                filename=filename,
                bytes=len(file_bytes),
                detected_at=detected_at,
                model_name=self.model_name,
            ),
            tokens_used=result.tokens_used,
            latency_ms=result.latency_ms,
        )
