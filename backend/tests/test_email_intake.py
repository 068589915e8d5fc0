"""Tests for inbound email intake with the inbox automations mocked."""

import base64
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from homestretch.domain.enums import DocumentSource
from homestretch.domain.schemas import InboundEmailPayload
from homestretch.services.document_store import DocumentStore
from homestretch.services.email_intake import EmailIntakeService
from homestretch.services.inbox_store import InboxStore
from homestretch.services.pipeline_errors import CollaboratorError

PDF = b"%PDF-1.4 ALTA settlement"


def _payload(to, **overrides):
    data = {
        "from": "Erin Escrow <erin@titleco.test>",
        "to": to,
        "subject": "Closing documents",
        "text": "Final ALTA attached.",
        "headers": {"message-id": "<m1@titleco.test>", "References": "<a@x> <b@x>"},
        "attachments": [
            {
                "filename": "ALTA.pdf",
                "content_type": "application/pdf",
                "content_base64": base64.b64encode(PDF).decode(),
            },
            {
                "filename": "logo.png",
                "content_type": "image/png",
                "content_base64": base64.b64encode(b"\x89PNG").decode(),
            },
        ],
        "received_at": datetime(2026, 10, 12, 16, 0, tzinfo=timezone.utc).isoformat(),
        "provider_email_id": "prov-1",
    }
    data.update(overrides)
    return InboundEmailPayload.model_validate(data)


def _automation():
    mock = MagicMock()
    mock.process_stored_message = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def earnest_automation():
    return _automation()


@pytest.fixture
def closing_automation():
    return _automation()


@pytest.fixture
def intake(db_session, earnest_automation, closing_automation):
    return EmailIntakeService(
        db_session,
        earnest_automation=earnest_automation,
        closing_automation=closing_automation,
    )


class TestEmailIntake:
    async def test_stores_message_and_pdf_attachments(
        self, db_session, intake, make_property, earnest_automation, closing_automation
    ):
        prop = await make_property(address_full="12 Oak Lane")

        result = await intake.ingest(_payload(["someone@else.test"], cc=["12-OAK-LANE@inbox.test"]))

        assert result.status == "stored"
        assert result.property_id == prop.id
        message = await InboxStore(db_session).get(result.message_id)
        assert message.from_email == "erin@titleco.test"
        assert message.from_name == "Erin Escrow"
        assert message.message_id == "<m1@titleco.test>"
        assert message.references == ["<a@x>", "<b@x>"]
        assert message.has_attachments is True
        assert message.read is False
        assert message.provider_email_id == "prov-1"

        documents = await DocumentStore(db_session).list_by_message(message.id)
        assert [d.filename for d in documents] == ["ALTA.pdf"]
        assert documents[0].source == DocumentSource.EMAIL_INTAKE.value
        assert result.document_ids == [documents[0].id]

        earnest_automation.process_stored_message.assert_awaited_once()
        closing_automation.process_stored_message.assert_awaited_once()
        assert closing_automation.process_stored_message.call_args.args[1] == [documents[0].id]

    async def test_unroutable(self, db_session, intake, make_property, earnest_automation):
        await make_property(address_full="12 Oak Lane")

        result = await intake.ingest(_payload(["nobody@inbox.test"]))

        assert result.status == "unroutable"
        earnest_automation.process_stored_message.assert_not_called()

    async def test_duplicate_provider_id(self, intake, make_property, earnest_automation):
        await make_property(address_full="12 Oak Lane")
        first = await intake.ingest(_payload(["12-oak-lane@inbox.test"]))
        second = await intake.ingest(_payload(["12-oak-lane@inbox.test"]))

        assert first.status == "stored"
        assert second.status == "duplicate"
        assert earnest_automation.process_stored_message.await_count == 1

    async def test_invalid_attachment_stores_nothing(self, db_session, intake, make_property):
        prop = await make_property(address_full="12 Oak Lane")
        bad = [{"filename": "x.pdf", "content_type": "application/pdf", "content_base64": "not base64!"}]

        with pytest.raises(ValueError):
            await intake.ingest(_payload(["12-oak-lane@inbox.test"], attachments=bad))

        assert await InboxStore(db_session).list_threads(prop.id) == []

    async def test_automation_failures_are_contained(
        self, db_session, intake, make_property, earnest_automation, closing_automation
    ):
        await make_property(address_full="12 Oak Lane")
        earnest_automation.process_stored_message.side_effect = CollaboratorError("timed out")

        result = await intake.ingest(_payload(["12-oak-lane@inbox.test"]))

        assert result.status == "stored"
        closing_automation.process_stored_message.assert_awaited_once()
        stored = await InboxStore(db_session).get(result.message_id)
        assert stored.analysis_attempts == 1
        assert stored.last_analysis_error == "timed out"

    async def test_no_pdf_skips_closing_automation(self, intake, make_property, closing_automation):
        await make_property(address_full="12 Oak Lane")

        result = await intake.ingest(_payload(["12-oak-lane@inbox.test"], attachments=[]))

        assert result.document_ids == []
        closing_automation.process_stored_message.assert_not_called()

    async def test_reply_joins_existing_thread(self, db_session, intake, make_property, make_inbound_message):
        prop = await make_property(address_full="12 Oak Lane")
        parent = await make_inbound_message(prop.id, subject="Earnest money", message_id="<parent@x>")

        result = await intake.ingest(
            _payload(
                ["12-oak-lane@inbox.test"],
                subject="Totally different",
                headers={"In-Reply-To": "<parent@x>"},
                attachments=[],
            )
        )

        assert result.thread_id == parent.thread_id
