"""Tests for ALTA detection over stored inbound attachments."""

import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from homestretch.agents.base import AgentResult
from homestretch.domain.enums import (
    DetectedDocumentType,
    DocumentSource,
    PendingUserAction,
    StepStatus,
)
from homestretch.domain.schemas import AltaDetectionResult
from homestretch.services.closing_inbox_automation import ClosingInboxAutomation

ALTA = b"%PDF-1.4 ALTA settlement statement"
OTHER = b"%PDF-1.4 inspection report"


def _detection(filename, is_match=True, confidence=0.95):
    return AltaDetectionResult(
        is_match=is_match,
        document_type=DetectedDocumentType.ALTA_STATEMENT if is_match else DetectedDocumentType.OTHER,
        confidence=confidence,
        summary="Final ALTA settlement statement." if is_match else None,
        filename=filename,
        bytes=100,
        detected_at=datetime(2026, 10, 12, 16, 0, tzinfo=timezone.utc),
        model_name="gemini-test",
    )


@pytest.fixture
def detector():
    mock = MagicMock()
    mock.detect = AsyncMock()
    return mock


@pytest.fixture
def automation(db_session, detector):
    return ClosingInboxAutomation(db_session, detector=detector)


@pytest.fixture
def message_with(make_property, make_inbound_message, make_document):
    """Store an inbound message plus the given (filename, content, mime) attachments."""
    async def _factory(*attachments):
        prop = await make_property()
        message = await make_inbound_message(prop.id, subject="Closing docs", has_attachments=True)
        documents = []
        for filename, content, mime_type in attachments:
            documents.append(
                await make_document(
                    prop.id,
                    filename=filename,
                    content=content,
                    mime_type=mime_type,
                    source=DocumentSource.EMAIL_INTAKE,
                    message_id=message.id,
                )
            )
        return prop, message, documents

    return _factory


class TestClosingInboxAutomation:
    async def test_first_qualifying_document_is_forwarded(self, automation, detector, message_with):
        prop, message, docs = await message_with(
            ("inspection.pdf", OTHER, "application/pdf"),
            ("ALTA.pdf", ALTA, "application/pdf"),
            ("ALTA copy.pdf", ALTA, "application/pdf"),
        )
        detector.detect.side_effect = [
            AgentResult.success(data=_detection("inspection.pdf", is_match=False, confidence=0.9)),
            AgentResult.success(data=_detection("ALTA.pdf")),
            AgentResult.success(data=_detection("ALTA copy.pdf")),
        ]

        view = await automation.process_stored_message(message, [d.id for d in docs])

        assert detector.detect.await_count == 2
        assert view.step_status == StepStatus.ACTION_NEEDED
        assert view.pending_user_action == PendingUserAction.CONFIRM_CLOSING_COMPLETE
        assert view.evidence.document_id == docs[1].id
        assert view.evidence.message_id == message.id
        assert view.latest_analysis.reason == (
            'Attachment "ALTA.pdf" was classified as an ALTA closing statement.'
        )
        assert detector.detect.call_args.kwargs["file_bytes"] == ALTA

    async def test_low_confidence_is_ignored(self, automation, detector, message_with):
        prop, message, docs = await message_with(("ALTA.pdf", ALTA, "application/pdf"))
        detector.detect.return_value = AgentResult.success(data=_detection("ALTA.pdf", confidence=0.79))

        assert await automation.process_stored_message(message, [docs[0].id]) is None
        view = await automation.workflow.get_view(prop.id)
        assert view.step_status == StepStatus.LOCKED

    async def test_detector_failure_skips_document(self, automation, detector, message_with):
        prop, message, docs = await message_with(
            ("scan.pdf", OTHER, "application/pdf"),
            ("ALTA.pdf", ALTA, "application/pdf"),
        )
        detector.detect.side_effect = [
            AgentResult.failure("model unavailable"),
            AgentResult.success(data=_detection("ALTA.pdf")),
        ]

        view = await automation.process_stored_message(message, [d.id for d in docs])

        assert view.evidence.document_id == docs[1].id

    async def test_unreadable_file_skipped(self, automation, detector, message_with):
        prop, message, docs = await message_with(("ALTA.pdf", ALTA, "application/pdf"))
        os.remove(docs[0].file_path)

        assert await automation.process_stored_message(message, [docs[0].id]) is None
        detector.detect.assert_not_called()

    async def test_non_pdf_and_foreign_documents_skipped(self, automation, detector, message_with, make_property, make_document):
        prop, message, docs = await message_with(("photo.jpg", b"\xff\xd8", "image/jpeg"))
        other_prop = await make_property(address_full="9 Elsewhere Rd")
        foreign = await make_document(other_prop.id, filename="ALTA.pdf", content=ALTA)

        result = await automation.process_stored_message(message, [docs[0].id, foreign.id, "missing-id"])

        assert result is None
        detector.detect.assert_not_called()
