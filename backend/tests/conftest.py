"""Shared test infrastructure for the Homestretch test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- test_settings: cached Settings pointed at a temp attachments dir
- make_property: factory for Property rows with an initial workflow document
- make_contact: factory for the global escrow officer contact
- make_document: factory for stored PDF documents
- make_inbound_message: factory for stored inbound InboxMessage rows
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from homestretch.infra.database import Base

import homestretch.domain.models  # noqa: F401

from homestretch.app.config import get_settings
from homestretch.domain.enums import ContactType, DocumentSource, MessageDirection
from homestretch.domain.schemas import ContactUpsert, PropertyCreate
from homestretch.services.contact_store import ContactStore
from homestretch.services.document_store import PDF_MIME_TYPE, DocumentStore
from homestretch.services.inbox_store import InboxStore
from homestretch.services.property_store import PropertyStore

PDF_BYTES = b"%PDF-1.4\n% test document\n"


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def test_settings(tmp_path, monkeypatch):
    """Point file storage at a temp dir and use deterministic config values."""
    settings = get_settings()
    monkeypatch.setattr(settings, "attachments_dir", str(tmp_path / "attachments"))
    monkeypatch.setattr(settings, "email_domain", "inbox.test")
    monkeypatch.setattr(settings, "sendgrid_api_key", "SG.test-key")
    monkeypatch.setattr(settings, "inbound_webhook_token", "")
    monkeypatch.setattr(settings, "signal_confidence_floor", 0.8)
    monkeypatch.setattr(settings, "collaborator_timeout_seconds", 5.0)
    return settings


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_property(db_session):
    """Factory that creates a Property with its initial workflow document.

    Usage:
        prop = await make_property(address_full="12 Oak St")
    """
    async def _factory(
        address_full: str = "123 Main St, Austin, TX 78701",
        buyer_names: tuple = ("Jordan Buyer",),
        earnest_money_amount: float = 5000.0,
        earnest_money_deadline: str = "2026-11-01",
        contract_doc_hash: str | None = None,
    ):
        data = PropertyCreate(
            address_full=address_full,
            buyer_names=list(buyer_names),
            earnest_money_amount=earnest_money_amount,
            earnest_money_deadline=earnest_money_deadline,
        )
        return await PropertyStore(db_session).create(data, contract_doc_hash=contract_doc_hash)

    return _factory


@pytest.fixture
def make_contact(db_session):
    """Factory that upserts the global escrow officer contact."""
    async def _factory(
        name: str = "Erin Escrow",
        email: str = "erin@titleco.test",
        company: str | None = "Title Co",
        contact_type: str = ContactType.ESCROW_OFFICER.value,
    ):
        return await ContactStore(db_session).upsert(
            ContactUpsert(type=contact_type, name=name, email=email, company=company)
        )

    return _factory


@pytest.fixture
def make_document(db_session):
    """Factory that stores a PDF document for a property."""
    async def _factory(
        property_id: str,
        filename: str = "purchase-contract.pdf",
        content: bytes = PDF_BYTES,
        mime_type: str = PDF_MIME_TYPE,
        source: DocumentSource = DocumentSource.CONTRACT_UPLOAD,
        message_id: str | None = None,
    ):
        return await DocumentStore(db_session).save(
            property_id,
            filename,
            mime_type,
            content,
            source=source,
            message_id=message_id,
        )

    return _factory


@pytest.fixture
def make_inbound_message(db_session):
    """Factory that stores an inbound message for a property."""
    async def _factory(
        property_id: str,
        subject: str = "Wiring instructions",
        body_text: str | None = "Please find the wiring instructions attached.",
        from_email: str = "erin@titleco.test",
        message_id: str | None = None,
        in_reply_to: str | None = None,
        references: tuple = (),
        sent_at: datetime | None = None,
        has_attachments: bool = False,
    ):
        return await InboxStore(db_session).create_message(
            property_id=property_id,
            direction=MessageDirection.INBOUND,
            from_email=from_email,
            to=[{"email": "main-st@inbox.test", "name": None}],
            subject=subject,
            body_text=body_text,
            message_id=message_id,
            in_reply_to=in_reply_to,
            references=list(references),
            has_attachments=has_attachments,
            sent_at=sent_at or datetime.now(timezone.utc),
        )

    return _factory


@pytest.fixture
def draft_agent_mock():
    """Mock EarnestDraftAgent; tests set ``draft.return_value``."""
    agent = MagicMock()
    agent.model_name = "gemini-test"
    agent.draft = AsyncMock()
    return agent


@pytest.fixture
def outbound_mock():
    """Mock OutboundEmailService; tests set ``send.return_value``."""
    service = MagicMock()
    service.send = AsyncMock()
    return service
