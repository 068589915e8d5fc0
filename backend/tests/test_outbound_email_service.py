"""Tests for SendGrid delivery with the provider call patched out."""

from unittest.mock import MagicMock, patch

import pytest

from homestretch.domain.enums import MessageDirection
from homestretch.services.email_threading import subject_thread_id
from homestretch.services.inbox_store import InboxStore
from homestretch.services.outbound_email_service import OutboundEmailService
from homestretch.services.pipeline_errors import DeliveryError, NotFoundError

_SEND_MAIL = "homestretch.services.outbound_email_service._send_mail"


class TestOutboundEmailService:
    async def test_send_stores_read_outbound_message(self, db_session, make_property, make_document):
        prop = await make_property()
        contract = await make_document(prop.id)

        with patch(_SEND_MAIL, MagicMock(return_value="sg-123")) as send_mail:
            result = await OutboundEmailService(db_session).send(
                property_id=prop.id,
                from_email=prop.property_email,
                to=["Erin Escrow <erin@titleco.test>"],
                subject="Earnest money",
                body="Please send wiring instructions.",
                attachments=[contract],
            )

        mail = send_mail.call_args.args[0]
        payload = mail.get()
        assert payload["headers"]["Message-ID"] == result.message_id_header
        assert payload["attachments"][0]["filename"] == "purchase-contract.pdf"
        assert "In-Reply-To" not in payload["headers"]

        assert result.provider_message_id == "sg-123"
        assert result.thread_id == subject_thread_id("earnest money", prop.id)
        assert result.sent_at.tzinfo is not None
        stored = await InboxStore(db_session).get(result.delivered_message_id)
        assert stored.direction == MessageDirection.OUTBOUND.value
        assert stored.read is True
        assert stored.has_attachments is True
        assert stored.to_recipients == [{"email": "erin@titleco.test", "name": "Erin Escrow"}]

    async def test_reply_carries_threading_headers(self, db_session, make_property, make_inbound_message):
        prop = await make_property()
        parent = await make_inbound_message(
            prop.id, subject="Wire info", message_id="<p@x>", references=("<r@x>",)
        )

        with patch(_SEND_MAIL, MagicMock(return_value=None)) as send_mail:
            result = await OutboundEmailService(db_session).send(
                property_id=prop.id,
                from_email=prop.property_email,
                to=["erin@titleco.test"],
                subject="Something else entirely",
                body="Thanks!",
                reply_to_message_id=parent.id,
            )

        headers = send_mail.call_args.args[0].get()["headers"]
        assert headers["In-Reply-To"] == "<p@x>"
        assert headers["References"] == "<r@x> <p@x>"
        assert result.thread_id == parent.thread_id
        stored = await InboxStore(db_session).get(result.delivered_message_id)
        assert stored.references == ["<r@x>", "<p@x>"]

    async def test_reply_to_unknown_message(self, db_session, make_property):
        prop = await make_property()
        with patch(_SEND_MAIL, MagicMock()) as send_mail, pytest.raises(NotFoundError):
            await OutboundEmailService(db_session).send(
                property_id=prop.id,
                from_email=prop.property_email,
                to=["erin@titleco.test"],
                subject="Re: nothing",
                body="Hi",
                reply_to_message_id="missing",
            )
        send_mail.assert_not_called()

    async def test_missing_api_key(self, db_session, make_property, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "sendgrid_api_key", "")
        prop = await make_property()
        with pytest.raises(DeliveryError):
            await OutboundEmailService(db_session).send(
                property_id=prop.id,
                from_email=prop.property_email,
                to=["erin@titleco.test"],
                subject="Hi",
                body="Hi",
            )

    async def test_provider_error_stores_nothing(self, db_session, make_property):
        prop = await make_property()
        failing = MagicMock(side_effect=DeliveryError("SendGrid returned status 500"))

        with patch(_SEND_MAIL, failing), pytest.raises(DeliveryError):
            await OutboundEmailService(db_session).send(
                property_id=prop.id,
                from_email=prop.property_email,
                to=["erin@titleco.test"],
                subject="Hi",
                body="Hi",
            )

        assert await InboxStore(db_session).list_threads(prop.id) == []

    async def test_unexpected_client_error_becomes_delivery_error(self, db_session, make_property):
        prop = await make_property()
        failing = MagicMock(side_effect=ConnectionError("connection reset"))

        with patch(_SEND_MAIL, failing), pytest.raises(DeliveryError, match="connection reset"):
            await OutboundEmailService(db_session).send(
                property_id=prop.id,
                from_email=prop.property_email,
                to=["erin@titleco.test"],
                subject="Hi",
                body="Hi",
            )
