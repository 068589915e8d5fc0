"""Closing stage: ALTA statement evidence and the cascading completion."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from homestretch.domain.enums import (
    ClassificationLabel,
    PendingUserAction,
    PipelineLabel,
    StepStatus,
)
from homestretch.domain.schemas import PipelineStepView
from homestretch.domain.workflow import (
    ClosingStageState,
    PropertyWorkflowState,
    StageSuggestion,
)
from homestretch.services.stage_workflow import StageWorkflow
from homestretch.services.workflow_state import transition_step, utcnow

logger = logging.getLogger(__name__)

DEFAULT_ALTA_EVIDENCE_SUMMARY = "ALTA closing document detected for the transaction."


@dataclass
class AltaEvidence:
    """A qualifying ALTA detection, tied to the message and document it came from."""

    message_id: str
    thread_id: str
    document_id: str
    filename: str
    confidence: float
    reason: str
    analyzed_at: datetime
    summary: Optional[str] = None


class ClosingWorkflow(StageWorkflow):
    label = PipelineLabel.CLOSING

    def ensure_stage_state(self, state: PropertyWorkflowState) -> bool:
        if state.closing_stage is None:
            state.closing_stage = ClosingStageState()
            return True
        return False

    def suggestion(self, state: PropertyWorkflowState) -> StageSuggestion:
        return state.closing_stage.suggestion

    def set_suggestion(self, state: PropertyWorkflowState, suggestion: StageSuggestion) -> None:
        state.closing_stage.suggestion = suggestion

    async def apply_alta_detection(self, property_id: str, evidence: AltaEvidence) -> PipelineStepView:
        """Ask the user to confirm closing. No-op once closing is completed."""
        prop, state = await self.load(property_id)
        if state.steps.get(self.label).status == StepStatus.COMPLETED:
            return self.view(prop, state)

        self.transition(
            state, StepStatus.ACTION_NEEDED, "ALTA closing document received.", evidence.analyzed_at
        )
        self.update_suggestion(
            state,
            pending_user_action=PendingUserAction.CONFIRM_CLOSING_COMPLETE,
            prompt_to_user=(
                "An ALTA closing document was received. Is this closed? Mark complete when ready."
            ),
            evidence_message_id=evidence.message_id,
            evidence_thread_id=evidence.thread_id,
            evidence_document_id=evidence.document_id,
            evidence_filename=evidence.filename,
            latest_summary=evidence.summary or DEFAULT_ALTA_EVIDENCE_SUMMARY,
            latest_confidence=evidence.confidence,
            latest_reason=evidence.reason,
            latest_pipeline_label=ClassificationLabel.CLOSING,
            updated_at=evidence.analyzed_at,
        )
        await self.save(prop, state)
        logger.info(
            "ALTA statement %s moved closing to action_needed for property %s",
            evidence.filename, prop.id,
        )
        return self.view(prop, state)

    async def confirm_complete(self, property_id: str) -> PipelineStepView:
        """Complete closing and, with it, every other step of the pipeline."""
        prop, state = await self.load(property_id)
        self.require_pending(
            state,
            PendingUserAction.CONFIRM_CLOSING_COMPLETE,
            "Closing can only be completed when user confirmation is pending.",
        )
        now = utcnow()
        for label, _ in list(state.steps.items()):
            if label == PipelineLabel.CLOSING:
                reason = "User confirmed closing complete after ALTA was received."
            else:
                reason = "Marked completed when closing was confirmed."
            transition_step(state, label, StepStatus.COMPLETED, reason, now)
        state.current_label = self.label
        self.update_suggestion(
            state,
            pending_user_action=PendingUserAction.NONE,
            prompt_to_user=None,
            latest_pipeline_label=ClassificationLabel.CLOSING,
            updated_at=now,
        )
        await self.save(prop, state)
        logger.info("Closing confirmed for property %s; all steps completed", prop.id)
        return self.view(prop, state)
