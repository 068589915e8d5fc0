"""Domain enumerations for the closing pipeline.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class PipelineLabel(str, Enum):
    """The six closing-pipeline stages, in order."""

    UNDER_CONTRACT = "under_contract"
    EARNEST_MONEY = "earnest_money"
    DUE_DILIGENCE_INSPECTION = "due_diligence_inspection"
    FINANCING = "financing"
    TITLE_ESCROW = "title_escrow"
    CLOSING = "closing"


class ClassificationLabel(str, Enum):
    """A pipeline label as assigned by email classification (may be unknown)."""

    UNDER_CONTRACT = "under_contract"
    EARNEST_MONEY = "earnest_money"
    DUE_DILIGENCE_INSPECTION = "due_diligence_inspection"
    FINANCING = "financing"
    TITLE_ESCROW = "title_escrow"
    CLOSING = "closing"
    UNKNOWN = "unknown"


class StepStatus(str, Enum):
    """Status of a single pipeline step."""

    LOCKED = "locked"
    ACTION_NEEDED = "action_needed"
    WAITING_FOR_PARTIES = "waiting_for_parties"
    COMPLETED = "completed"


class DraftStatus(str, Enum):
    """Lifecycle of the earnest-money email draft."""

    MISSING = "missing"
    READY = "ready"
    SENT = "sent"


class PendingUserAction(str, Enum):
    """The action a stage is waiting on the user to take."""

    NONE = "none"
    SEND_EARNEST_EMAIL = "send_earnest_email"
    CONFIRM_EARNEST_COMPLETE = "confirm_earnest_complete"
    CONFIRM_CLOSING_COMPLETE = "confirm_closing_complete"


class EarnestSignal(str, Enum):
    """Earnest-specific outcome extracted from an inbound email."""

    NONE = "none"
    WIRE_INSTRUCTIONS_PROVIDED = "wire_instructions_provided"
    EARNEST_RECEIVED_CONFIRMATION = "earnest_received_confirmation"


class SuggestedUserAction(str, Enum):
    """User action suggested by the earnest signal pass."""

    NONE = "none"
    CONFIRM_EARNEST_COMPLETE = "confirm_earnest_complete"


class EmailPipelineStage(str, Enum):
    """Stage vocabulary used by the email classifier."""

    EARNEST_MONEY_DEPOSIT = "earnest_money_deposit"
    DUE_DILIGENCE = "due_diligence"
    FINANCING_PERIOD = "financing_period"
    TITLE_ESCROW = "title_escrow"
    SIGNING_DATE = "signing_date"
    CLOSING = "closing"
    UNKNOWN = "unknown"


class EmailUrgency(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActionOwnerRole(str, Enum):
    """Who owns an action item mentioned in an email."""

    AGENT = "agent"
    BUYER = "buyer"
    SELLER = "seller"
    LENDER = "lender"
    ESCROW = "escrow"
    TITLE = "title"
    UNKNOWN = "unknown"


class DetectedDocumentType(str, Enum):
    ALTA_STATEMENT = "alta_statement"
    OTHER = "other"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class ContactType(str, Enum):
    """Well-known contact types. Other free-form types are accepted too."""

    ESCROW_OFFICER = "escrow_officer"
    TITLE_COMPANY = "title_company"
    REAL_ESTATE_AGENT = "real_estate_agent"
    LENDER = "lender"


class DocumentSource(str, Enum):
    CONTRACT_UPLOAD = "contract_upload"
    EMAIL_INTAKE = "email_intake"


# Maps classifier stages onto pipeline labels
STAGE_TO_LABEL: dict[EmailPipelineStage, ClassificationLabel] = {
    EmailPipelineStage.EARNEST_MONEY_DEPOSIT: ClassificationLabel.EARNEST_MONEY,
    EmailPipelineStage.DUE_DILIGENCE: ClassificationLabel.DUE_DILIGENCE_INSPECTION,
    EmailPipelineStage.FINANCING_PERIOD: ClassificationLabel.FINANCING,
    EmailPipelineStage.TITLE_ESCROW: ClassificationLabel.TITLE_ESCROW,
    EmailPipelineStage.SIGNING_DATE: ClassificationLabel.CLOSING,
    EmailPipelineStage.CLOSING: ClassificationLabel.CLOSING,
    EmailPipelineStage.UNKNOWN: ClassificationLabel.UNKNOWN,
}
