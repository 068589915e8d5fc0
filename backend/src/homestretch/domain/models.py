"""SQLAlchemy ORM models for the closing pipeline.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from homestretch.infra.database import Base


def db_now() -> datetime:
    """Naive UTC timestamp, the form SQLite DateTime columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Property
# ---------------------------------------------------------------------------


class Property(Base):
    """A property under contract, created once an executed purchase contract is ingested.

    ``workflow_state`` holds the whole PropertyWorkflowState document. It is
    only ever replaced as a unit; ``workflow_revision`` increments on every
    write and guards against lost updates.
    """

    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    property_name = Column(String(255), nullable=False)
    address_full = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip = Column(String(20), nullable=True)
    property_email = Column(String(255), unique=True, nullable=True, index=True)

    # Contract facts (extracted upstream)
    buyer_names = Column(JSON, default=list)
    seller_names = Column(JSON, default=list)
    purchase_price = Column(Float, nullable=True)
    earnest_money_amount = Column(Float, nullable=True)
    earnest_money_deadline = Column(String(20), nullable=True)  # YYYY-MM-DD
    closing_date = Column(String(20), nullable=True)
    contract_doc_hash = Column(String(64), nullable=True, index=True)

    # Pipeline workflow document
    workflow_state = Column(JSON(none_as_null=True), nullable=True)
    workflow_revision = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=db_now)
    updated_at = Column(DateTime, default=db_now, onupdate=db_now)

    documents = relationship("PropertyDocument", back_populates="property_ref")


class PropertyDocument(Base):
    """A stored file attached to a property (purchase contract, inbound PDF)."""

    __tablename__ = "property_documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size_bytes = Column(Integer, nullable=True)
    doc_hash = Column(String(64), nullable=True)
    source = Column(String(30), default="email_intake")  # contract_upload, email_intake
    message_id = Column(String(36), nullable=True)  # inbox message that delivered it
    created_at = Column(DateTime, default=db_now)

    property_ref = relationship("Property", back_populates="documents")


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


class InboxMessage(Base):
    """One inbound or outbound email for a property.

    ``analysis`` is write-once: it is set by the inbox automation the first
    time the message is classified and never overwritten.
    """

    __tablename__ = "inbox_messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider_email_id = Column(String(255), unique=True, nullable=True)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    thread_id = Column(String(64), nullable=False, index=True)
    direction = Column(String(10), nullable=False)  # inbound, outbound
    from_email = Column(String(255), nullable=False)
    from_name = Column(String(255), nullable=True)
    to_recipients = Column(JSON, default=list)  # [{"email": ..., "name": ...}]
    cc_recipients = Column(JSON, default=list)
    subject = Column(String(998), nullable=False, default="")
    body_text = Column(Text, nullable=True)
    body_html = Column(Text, nullable=True)
    message_id = Column(String(998), nullable=True, index=True)  # RFC 5322 Message-ID header
    in_reply_to = Column(String(998), nullable=True)
    references = Column("references_json", JSON, default=list)
    has_attachments = Column(Boolean, default=False)
    read = Column(Boolean, default=False)
    sent_at = Column(DateTime, nullable=False)
    read_at = Column(DateTime, nullable=True)
    analysis = Column(JSON(none_as_null=True), nullable=True)
    analysis_attempts = Column(Integer, nullable=False, default=0)  # failed analysis runs
    last_analysis_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=db_now)


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class Contact(Base):
    """Latest contact for a contact type. One row per type; writes replace it."""

    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    contact_type = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    company = Column(String(255), nullable=True)
    updated_at = Column(DateTime, default=db_now, onupdate=db_now)


# ---------------------------------------------------------------------------
# Agent activity
# ---------------------------------------------------------------------------


class AgentLog(Base):
    """Activity record for every AI agent call."""

    __tablename__ = "agent_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agent_name = Column(String(100), nullable=False)
    action = Column(String(100), nullable=False)
    input_summary = Column(Text, nullable=True)
    output_summary = Column(Text, nullable=True)
    tokens_used = Column(Integer, default=0)
    latency_ms = Column(Integer, default=0)
    related_property_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=db_now)
