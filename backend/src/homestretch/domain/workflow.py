"""Pydantic models for the persisted PropertyWorkflowState document.

The document is stored as JSON on ``properties.workflow_state`` and always
round-trips through these models, so a stored document that does not match
(unknown version, missing or extra steps, a locked step without a reason)
fails validation instead of being partially interpreted.
"""

from datetime import datetime
from typing import Iterator, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from homestretch.domain.enums import (
    ClassificationLabel,
    DraftStatus,
    EarnestSignal,
    PendingUserAction,
    PipelineLabel,
    StepStatus,
)

WORKFLOW_SCHEMA_VERSION = 1


class WorkflowStepState(BaseModel):
    """One stage of the pipeline. ``locked_reason`` is set iff the step is locked."""

    model_config = ConfigDict(extra="forbid")

    label: PipelineLabel
    status: StepStatus
    locked_reason: str | None = None
    last_transition_at: datetime
    last_transition_reason: str | None = None

    @model_validator(mode="after")
    def _locked_reason_matches_status(self) -> "WorkflowStepState":
        is_locked = self.status == StepStatus.LOCKED
        if is_locked and not self.locked_reason:
            raise ValueError(f"step {self.label.value} is locked without a locked_reason")
        if not is_locked and self.locked_reason is not None:
            raise ValueError(
                f"step {self.label.value} has a locked_reason while {self.status.value}"
            )
        return self


class WorkflowSteps(BaseModel):
    """Exactly one entry per known stage; stages never appear or disappear."""

    model_config = ConfigDict(extra="forbid")

    under_contract: WorkflowStepState
    earnest_money: WorkflowStepState
    due_diligence_inspection: WorkflowStepState
    financing: WorkflowStepState
    title_escrow: WorkflowStepState
    closing: WorkflowStepState

    @model_validator(mode="after")
    def _labels_match_keys(self) -> "WorkflowSteps":
        for label in PipelineLabel:
            step = getattr(self, label.value)
            if step.label != label:
                raise ValueError(f"step stored under {label.value} is labelled {step.label.value}")
        return self

    def get(self, label: PipelineLabel) -> WorkflowStepState:
        return getattr(self, label.value)

    def set(self, step: WorkflowStepState) -> None:
        setattr(self, step.label.value, step)

    def items(self) -> Iterator[tuple[PipelineLabel, WorkflowStepState]]:
        """Yield (label, step) pairs in pipeline order."""
        for label in PipelineLabel:
            yield label, getattr(self, label.value)


class EarnestDraftState(BaseModel):
    """The editable earnest-money email and what happened when it was sent."""

    model_config = ConfigDict(extra="forbid")

    status: DraftStatus = DraftStatus.MISSING
    generated_at: datetime | None = None
    subject: str | None = None
    body: str | None = None
    recipient_email: str | None = None
    recipient_name: str | None = None
    contact_type: Literal["escrow_officer"] = "escrow_officer"
    attachment_document_id: str | None = None
    attachment_filename: str | None = None
    model_name: str | None = None
    generation_reason: str | None = None
    thread_id: str | None = None
    sent_message_id: str | None = None
    provider_message_id: str | None = None
    sent_at: datetime | None = None
    last_error: str | None = None

    @model_validator(mode="after")
    def _status_fields_present(self) -> "EarnestDraftState":
        if self.status in (DraftStatus.READY, DraftStatus.SENT):
            if self.subject is None or self.body is None or self.attachment_document_id is None:
                raise ValueError(
                    f"{self.status.value} draft requires subject, body and attachment"
                )
        if self.status == DraftStatus.SENT:
            if self.thread_id is None or self.sent_message_id is None or self.sent_at is None:
                raise ValueError("sent draft requires thread id, message id and sent_at")
        return self


class StageSuggestion(BaseModel):
    """The most recent actionable AI-derived hint for a stage.

    Overwritten on every new piece of evidence; only the newest is kept.
    """

    model_config = ConfigDict(extra="forbid")

    pending_user_action: PendingUserAction = PendingUserAction.NONE
    prompt_to_user: str | None = None
    evidence_message_id: str | None = None
    evidence_thread_id: str | None = None
    evidence_document_id: str | None = None
    evidence_filename: str | None = None
    latest_summary: str | None = None
    latest_confidence: float | None = None
    latest_reason: str | None = None
    latest_pipeline_label: ClassificationLabel = ClassificationLabel.UNKNOWN
    updated_at: datetime | None = None


class EarnestSuggestion(StageSuggestion):
    latest_earnest_signal: EarnestSignal = EarnestSignal.NONE


class ClosingSuggestion(StageSuggestion):
    pass


class EarnestStageState(BaseModel):
    model_config = ConfigDict(extra="forbid")

    draft: EarnestDraftState = Field(default_factory=EarnestDraftState)
    suggestion: EarnestSuggestion = Field(default_factory=EarnestSuggestion)


class ClosingStageState(BaseModel):
    model_config = ConfigDict(extra="forbid")

    suggestion: ClosingSuggestion = Field(default_factory=ClosingSuggestion)


class PropertyWorkflowState(BaseModel):
    """Per-property pipeline document, mutated only by whole-document read-modify-write."""

    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = WORKFLOW_SCHEMA_VERSION
    current_label: PipelineLabel
    steps: WorkflowSteps
    earnest: EarnestStageState
    closing_stage: ClosingStageState | None = None
