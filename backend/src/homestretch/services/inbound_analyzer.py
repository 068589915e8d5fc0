"""Two-pass classification of inbound transaction emails.

Pass one places the email in a pipeline stage. Pass two runs only for
earnest emails and extracts the earnest signal. The combined result is the
write-once ``InboxMessageAnalysis`` stored on the message.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from homestretch.agents.email_signal_agent import EmailSignalAgent
from homestretch.domain.enums import (
    STAGE_TO_LABEL,
    ActionOwnerRole,
    ClassificationLabel,
    EarnestSignal,
    EmailPipelineStage,
    EmailUrgency,
    SuggestedUserAction,
)
from homestretch.domain.models import InboxMessage
from homestretch.domain.schemas import (
    ActionFact,
    DateFact,
    EarnestSignalResult,
    EmailKeyFacts,
    EmailPipelineResult,
    InboxMessageAnalysis,
    MoneyFact,
    PersonFact,
)
from homestretch.services.collaborators import call_agent

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 12000
KEPT_HEAD_CHARS = 7000
KEPT_TAIL_CHARS = 4000
MIN_BODY_CHARS = 5

EMPTY_BODY_WARNING = "Email body is empty or nearly empty."
AMBIGUOUS_WARNING = "Email stage is ambiguous."
SUBSTAGE_WARNING = "Appraisal substage is only valid under financing_period."

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[\s\S]*?</\1>", re.IGNORECASE)
_BLOCK_END_RE = re.compile(r"<(br\s*/?|/p|/div|/li|/tr|/table|/section|/article)>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


@dataclass
class EmailInput:
    subject: str
    from_email: str
    to: list[str] = field(default_factory=list)
    received_at: Optional[datetime] = None
    text_body: Optional[str] = None
    html_body: Optional[str] = None

    @classmethod
    def from_message(cls, message: InboxMessage) -> "EmailInput":
        return cls(
            subject=message.subject,
            from_email=message.from_email,
            to=[recipient["email"] for recipient in message.to_recipients or []],
            received_at=message.sent_at,
            text_body=message.body_text,
            html_body=message.body_html,
        )

    def received_at_iso(self) -> Optional[str]:
        return self.received_at.isoformat() if self.received_at else None


# ---------------------------------------------------------------------------
# Body normalization
# ---------------------------------------------------------------------------


def strip_html(markup: str) -> str:
    text = _SCRIPT_STYLE_RE.sub(" ", markup)
    text = _BLOCK_END_RE.sub("\n", text)
    text = _TAG_RE.sub(" ", text)
    text = text.replace("\r", "")
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    return html.unescape(text.strip())


def truncate_long_text(text: str) -> str:
    """Keep the head and tail of very long bodies."""
    if len(text) <= MAX_BODY_CHARS:
        return text
    head = text[:KEPT_HEAD_CHARS].strip()
    tail = text[-KEPT_TAIL_CHARS:].strip()
    return "\n".join([head, "", "[... email body truncated for length ...]", "", tail])


def normalize_body(text_body: Optional[str], html_body: Optional[str]) -> str:
    """Plain text preferred, HTML stripped as fallback, long bodies truncated."""
    if text_body and text_body.strip():
        return truncate_long_text(text_body.strip())
    if html_body and html_body.strip():
        return truncate_long_text(strip_html(html_body.strip()))
    return ""


# ---------------------------------------------------------------------------
# Result cleanup
# ---------------------------------------------------------------------------


def fallback_pipeline_result(warnings: list[str]) -> EmailPipelineResult:
    return EmailPipelineResult(
        summary="Email content was empty or too limited to classify reliably.",
        primary_stage=EmailPipelineStage.UNKNOWN,
        substage=None,
        urgency=EmailUrgency.LOW,
        confidence=0,
        key_facts=EmailKeyFacts(),
        warnings=warnings,
    )


def _resolve_relative_date(raw_text: str, received_at: Optional[datetime]) -> Optional[str]:
    if received_at is None:
        return None
    offsets = {"today": 0, "tomorrow": 1, "yesterday": -1}
    offset = offsets.get(raw_text.strip().lower())
    if offset is None:
        return None
    if received_at.tzinfo is not None:
        received_at = received_at.astimezone(timezone.utc)
    return (received_at.date() + timedelta(days=offset)).isoformat()


def sanitize_pipeline_result(
    result: EmailPipelineResult,
    email: EmailInput,
    normalized_body: str,
) -> EmailPipelineResult:
    """Trim model output, drop empty facts and add deterministic warnings."""
    dates = []
    for fact in result.key_facts.dates:
        raw_text = fact.raw_text.strip()
        label = fact.label.strip()
        if not label or not raw_text:
            continue
        iso_date = fact.iso_date or _resolve_relative_date(raw_text, email.received_at)
        dates.append(DateFact(label=label, iso_date=iso_date, raw_text=raw_text))

    people = [
        PersonFact(role=person.role.strip(), name=person.name.strip())
        for person in result.key_facts.people
        if person.name.strip()
    ]
    actions = [
        ActionFact(
            action=action.action.strip(),
            owner_role=action.owner_role or ActionOwnerRole.UNKNOWN,
            due_date=action.due_date,
        )
        for action in result.key_facts.actions
        if action.action.strip()
    ]
    money = [
        MoneyFact(label=fact.label.strip(), amount=fact.amount, raw_text=fact.raw_text.strip())
        for fact in result.key_facts.money
        if fact.label.strip() or fact.raw_text.strip()
    ]

    warnings = list(result.warnings)

    def warn(message: str) -> None:
        if message not in warnings:
            warnings.append(message)

    if len(normalized_body) < 20:
        warn(EMPTY_BODY_WARNING)
    if result.primary_stage == EmailPipelineStage.UNKNOWN:
        warn(AMBIGUOUS_WARNING)
    substage = result.substage
    if result.primary_stage != EmailPipelineStage.FINANCING_PERIOD and substage is not None:
        substage = None
        warn(SUBSTAGE_WARNING)
    for fact in dates:
        if fact.iso_date is None:
            warn(f"Could not normalize explicit date text: {fact.raw_text}")

    return result.model_copy(
        update={
            "summary": result.summary.strip(),
            "substage": substage,
            "key_facts": EmailKeyFacts(dates=dates, people=people, actions=actions, money=money),
            "warnings": warnings,
        }
    )


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class EarnestInboundAnalyzer:
    """Composes stage classification and the earnest second pass."""

    def __init__(self, signal_agent: Optional[EmailSignalAgent] = None):
        self.signal_agent = signal_agent or EmailSignalAgent()

    async def parse_pipeline(
        self,
        email: EmailInput,
        property_id: Optional[str] = None,
    ) -> EmailPipelineResult:
        """Stage classification. Near-empty bodies never reach the model."""
        normalized_body = normalize_body(email.text_body, email.html_body)
        if len(normalized_body) < MIN_BODY_CHARS:
            return fallback_pipeline_result([EMPTY_BODY_WARNING])

        payload = {
            "subject": email.subject,
            "from": email.from_email,
            "to": email.to,
            "received_at_iso": email.received_at_iso(),
            "body": normalized_body,
        }
        result = await call_agent(
            self.signal_agent.classify_stage(payload, property_id=property_id),
            "Email stage classification",
        )
        return sanitize_pipeline_result(result, email, normalized_body)

    async def analyze(
        self,
        email: EmailInput,
        property_id: Optional[str] = None,
    ) -> InboxMessageAnalysis:
        """Full analysis for one email.

        Raises:
            CollaboratorError: either model pass failed or timed out.
        """
        pipeline = await self.parse_pipeline(email, property_id)
        label = STAGE_TO_LABEL.get(pipeline.primary_stage, ClassificationLabel.UNKNOWN)
        analyzed_at = datetime.now(timezone.utc)

        if label != ClassificationLabel.EARNEST_MONEY:
            return InboxMessageAnalysis(
                pipeline_label=label,
                summary=pipeline.summary,
                confidence=pipeline.confidence,
                reason=f"Email classified as {label.value}.",
                earnest_signal=EarnestSignal.NONE,
                suggested_user_action=SuggestedUserAction.NONE,
                warnings=list(pipeline.warnings),
                analyzed_at=analyzed_at,
            )

        payload = {
            "subject": email.subject,
            "from": email.from_email,
            "to": email.to,
            "received_at_iso": email.received_at_iso(),
            "text_body": email.text_body,
            "html_body": email.html_body,
        }
        signal: EarnestSignalResult = await call_agent(
            self.signal_agent.detect_earnest_signal(
                payload,
                pipeline_summary=pipeline.summary,
                pipeline_confidence=pipeline.confidence,
                property_id=property_id,
            ),
            "Earnest signal detection",
        )
        return InboxMessageAnalysis(
            pipeline_label=label,
            summary=pipeline.summary,
            confidence=signal.confidence,
            reason=signal.reason.strip(),
            earnest_signal=signal.earnest_signal,
            suggested_user_action=signal.suggested_user_action,
            warnings=[*pipeline.warnings, *signal.warnings],
            analyzed_at=analyzed_at,
        )
