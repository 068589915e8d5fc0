"""Pydantic v2 schemas for API request/response validation and agent I/O."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from homestretch.domain.enums import (
    ActionOwnerRole,
    ClassificationLabel,
    DetectedDocumentType,
    DraftStatus,
    EarnestSignal,
    EmailPipelineStage,
    EmailUrgency,
    MessageDirection,
    PendingUserAction,
    PipelineLabel,
    StepStatus,
    SuggestedUserAction,
)


# ---------------------------------------------------------------------------
# Agent structured outputs
# ---------------------------------------------------------------------------


class DateFact(BaseModel):
    label: str
    iso_date: str | None = None
    raw_text: str


class PersonFact(BaseModel):
    role: str
    name: str


class ActionFact(BaseModel):
    action: str
    owner_role: ActionOwnerRole = ActionOwnerRole.UNKNOWN
    due_date: str | None = None


class MoneyFact(BaseModel):
    label: str
    amount: float | None = None
    raw_text: str


class EmailKeyFacts(BaseModel):
    dates: list[DateFact] = Field(default_factory=list)
    people: list[PersonFact] = Field(default_factory=list)
    actions: list[ActionFact] = Field(default_factory=list)
    money: list[MoneyFact] = Field(default_factory=list)


class EmailPipelineResult(BaseModel):
    """Stage classification of a single transaction email."""

    summary: str
    primary_stage: EmailPipelineStage
    substage: Literal["appraisal"] | None = None
    urgency: EmailUrgency = EmailUrgency.LOW
    confidence: float = Field(ge=0, le=1)
    key_facts: EmailKeyFacts = Field(default_factory=EmailKeyFacts)
    warnings: list[str] = Field(default_factory=list)


class EarnestSignalResult(BaseModel):
    """Second-pass earnest signal for emails classified into the earnest stage."""

    earnest_signal: EarnestSignal
    suggested_user_action: SuggestedUserAction = SuggestedUserAction.NONE
    confidence: float = Field(ge=0, le=1)
    reason: str
    warnings: list[str] = Field(default_factory=list)


class AltaClassification(BaseModel):
    is_alta_document: bool
    document_type: DetectedDocumentType
    confidence: float = Field(ge=0, le=1)


class AltaDetectionExtraction(BaseModel):
    """Raw model output for the ALTA closing-statement detector."""

    classification: AltaClassification
    summary: str | None = None
    warnings: list[str] = Field(default_factory=list)


class AltaDetectionResult(BaseModel):
    """Normalized document-detection result handed to the closing automation."""

    is_match: bool
    document_type: DetectedDocumentType
    confidence: float
    summary: str | None = None
    warnings: list[str] = Field(default_factory=list)
    filename: str
    bytes: int
    detected_at: datetime
    model_name: str | None = None


class EarnestDraftResult(BaseModel):
    """Composed earnest-money kickoff email."""

    subject: str
    body: str
    generation_reason: str


class InboxMessageAnalysis(BaseModel):
    """Write-once classification stored on an inbound message."""

    version: Literal[1] = 1
    pipeline_label: ClassificationLabel
    summary: str
    confidence: float = Field(ge=0, le=1)
    reason: str
    earnest_signal: EarnestSignal = EarnestSignal.NONE
    suggested_user_action: SuggestedUserAction = SuggestedUserAction.NONE
    warnings: list[str] = Field(default_factory=list)
    analyzed_at: datetime


# ---------------------------------------------------------------------------
# Pipeline views
# ---------------------------------------------------------------------------


class ContactView(BaseModel):
    type: str
    name: str
    email: str
    company: str | None = None


class AttachmentView(BaseModel):
    document_id: str
    filename: str


class EvidenceView(BaseModel):
    message_id: str | None = None
    thread_id: str | None = None
    document_id: str | None = None
    filename: str | None = None


class LatestAnalysisView(BaseModel):
    pipeline_label: ClassificationLabel = ClassificationLabel.UNKNOWN
    summary: str | None = None
    confidence: float | None = None
    reason: str | None = None
    earnest_signal: EarnestSignal | None = None
    updated_at: datetime | None = None


class DraftView(BaseModel):
    status: DraftStatus = DraftStatus.MISSING
    subject: str | None = None
    body: str | None = None
    generated_at: datetime | None = None
    model_name: str | None = None
    generation_reason: str | None = None
    last_error: str | None = None


class SendStateView(BaseModel):
    thread_id: str | None = None
    message_id: str | None = None
    sent_at: datetime | None = None


class PipelineStepView(BaseModel):
    """User-facing view returned by every stage operation. Same shape for every stage."""

    property_id: str
    property_email: str | None = None
    stage: PipelineLabel
    step_status: StepStatus
    locked_reason: str | None = None
    pending_user_action: PendingUserAction = PendingUserAction.NONE
    prompt_to_user: str | None = None
    evidence: EvidenceView = Field(default_factory=EvidenceView)
    latest_analysis: LatestAnalysisView = Field(default_factory=LatestAnalysisView)
    contact: ContactView | None = None
    attachment: AttachmentView | None = None
    draft: DraftView = Field(default_factory=DraftView)
    send_state: SendStateView = Field(default_factory=SendStateView)


class PipelineStepSummary(BaseModel):
    label: PipelineLabel
    status: StepStatus
    locked_reason: str | None = None
    last_transition_at: datetime
    last_transition_reason: str | None = None


class PipelineOverview(BaseModel):
    property_id: str
    current_label: PipelineLabel
    steps: list[PipelineStepSummary]


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class PropertyCreate(BaseModel):
    """Contract facts for a new property, already extracted from the executed contract."""

    property_name: str | None = None
    address_full: str
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    buyer_names: list[str] = Field(default_factory=list)
    seller_names: list[str] = Field(default_factory=list)
    purchase_price: float | None = None
    earnest_money_amount: float | None = None
    earnest_money_deadline: str | None = None
    closing_date: str | None = None
    contract_filename: str | None = None
    contract_pdf_base64: str | None = None


class PropertyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    property_name: str
    address_full: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    property_email: str | None = None
    buyer_names: list[str] = Field(default_factory=list)
    seller_names: list[str] = Field(default_factory=list)
    purchase_price: float | None = None
    earnest_money_amount: float | None = None
    earnest_money_deadline: str | None = None
    closing_date: str | None = None
    contract_doc_hash: str | None = None


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class ContactUpsert(BaseModel):
    type: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str
    phone: str | None = None
    company: str | None = None

    @field_validator("type", "name", "email")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("email")
    @classmethod
    def _looks_like_email(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("invalid email address")
        return value


class ContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str = Field(validation_alias="contact_type")
    name: str
    email: str
    phone: str | None = None
    company: str | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Pipeline commands
# ---------------------------------------------------------------------------


class EarnestSendRequest(BaseModel):
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    body_html: str | None = None


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


class Participant(BaseModel):
    email: str
    name: str | None = None


class InboxMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    thread_id: str
    direction: MessageDirection
    from_email: str
    from_name: str | None = None
    to_recipients: list[Participant] = Field(default_factory=list)
    cc_recipients: list[Participant] = Field(default_factory=list)
    subject: str
    body_text: str | None = None
    body_html: str | None = None
    message_id: str | None = None
    in_reply_to: str | None = None
    references: list[str] = Field(default_factory=list)
    has_attachments: bool = False
    read: bool
    sent_at: datetime
    read_at: datetime | None = None
    analysis: InboxMessageAnalysis | None = None


class InboxThreadSummary(BaseModel):
    id: str
    subject: str
    participants: list[Participant]
    preview: str
    message_count: int
    has_attachments: bool
    unread: bool
    last_message_at: datetime
    last_message_from: str
    created_at: datetime


class InboxSendRequest(BaseModel):
    to: list[str] = Field(min_length=1)
    cc: list[str] = Field(default_factory=list)
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    body_html: str | None = None
    reply_to_message_id: str | None = None


class MarkReadRequest(BaseModel):
    read: bool


class InboundAttachment(BaseModel):
    filename: str = "attachment.pdf"
    content_type: str
    content_base64: str


class InboundEmailPayload(BaseModel):
    """Normalized inbound email as posted by the mail provider's inbound webhook."""

    model_config = ConfigDict(populate_by_name=True)

    provider_email_id: str | None = None
    from_: str = Field(alias="from")
    to: list[str] = Field(min_length=1)
    cc: list[str] = Field(default_factory=list)
    subject: str = ""
    text: str | None = None
    html: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    attachments: list[InboundAttachment] = Field(default_factory=list)
    received_at: datetime | None = None
