"""Shared read-modify-write machinery for per-stage pipeline sub-workflows.

A stage workflow loads the property and its workflow document once,
mutates a deep copy, and writes it back once through the revision-checked
``PropertyStore.update_workflow_state``. Subclasses supply the stage label,
where the stage's suggestion lives, and any extra view fields.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.domain.enums import PendingUserAction, PipelineLabel, StepStatus
from homestretch.domain.models import Property
from homestretch.domain.schemas import EvidenceView, LatestAnalysisView, PipelineStepView
from homestretch.domain.workflow import PropertyWorkflowState, StageSuggestion
from homestretch.services.pipeline_errors import StateConflictError
from homestretch.services.property_store import PropertyStore
from homestretch.services.workflow_state import create_initial_workflow_state, transition_step

logger = logging.getLogger(__name__)


class StageWorkflow(ABC):
    label: PipelineLabel

    def __init__(self, db: AsyncSession):
        self.db = db
        self.properties = PropertyStore(db)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def ensure_stage_state(self, state: PropertyWorkflowState) -> bool:
        """Create missing stage sub-state in place. Returns True if anything was added."""
        return False

    @abstractmethod
    def suggestion(self, state: PropertyWorkflowState) -> StageSuggestion:
        """The stage's suggestion record inside ``state``."""

    @abstractmethod
    def set_suggestion(self, state: PropertyWorkflowState, suggestion: StageSuggestion) -> None:
        """Replace the stage's suggestion record inside ``state``."""

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    async def load(self, property_id: str) -> tuple[Property, PropertyWorkflowState]:
        """Load the property and a private copy of its workflow document.

        The document is created (and persisted) on first access, and so is
        any stage sub-state this workflow needs.
        """
        prop = await self.properties.get(property_id)
        return prop, await self._working_copy(prop)

    async def reload(self, prop: Property) -> tuple[Property, PropertyWorkflowState]:
        """Re-read ``prop`` after losing a revision race and return a fresh working copy."""
        await self.db.refresh(prop)
        return prop, await self._working_copy(prop)

    async def _working_copy(self, prop: Property) -> PropertyWorkflowState:
        state = self.properties.get_workflow_state(prop)
        created = state is None
        if created:
            state = create_initial_workflow_state()
        else:
            state = state.model_copy(deep=True)
        if self.ensure_stage_state(state) or created:
            await self.save(prop, state)
        return state

    async def save(self, prop: Property, state: PropertyWorkflowState) -> PropertyWorkflowState:
        return await self.properties.update_workflow_state(prop, state)

    # ------------------------------------------------------------------
    # Mutation helpers
    # ------------------------------------------------------------------

    def transition(
        self,
        state: PropertyWorkflowState,
        status: StepStatus,
        reason: str,
        at: Optional[datetime] = None,
    ) -> None:
        state.current_label = self.label
        transition_step(state, self.label, status, reason, at)

    def update_suggestion(self, state: PropertyWorkflowState, **values) -> StageSuggestion:
        """Overwrite selected suggestion fields, keeping the rest."""
        merged = self.suggestion(state).model_copy(update=values)
        # model_copy(update=...) skips validation; re-validate the merged record
        merged = type(merged).model_validate(merged.model_dump())
        self.set_suggestion(state, merged)
        return merged

    def require_pending(
        self,
        state: PropertyWorkflowState,
        action: PendingUserAction,
        message: str,
    ) -> None:
        """Reject a user command unless the step awaits exactly ``action``."""
        step = state.steps.get(self.label)
        if (
            step.status != StepStatus.ACTION_NEEDED
            or self.suggestion(state).pending_user_action != action
        ):
            logger.info(
                "Rejected %s command: step=%s pending=%s",
                self.label.value,
                step.status.value,
                self.suggestion(state).pending_user_action.value,
            )
            raise StateConflictError(message)

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def view(self, prop: Property, state: PropertyWorkflowState, **extra) -> PipelineStepView:
        step = state.steps.get(self.label)
        suggestion = self.suggestion(state)
        return PipelineStepView(
            property_id=prop.id,
            property_email=prop.property_email,
            stage=self.label,
            step_status=step.status,
            locked_reason=step.locked_reason,
            pending_user_action=suggestion.pending_user_action,
            prompt_to_user=suggestion.prompt_to_user,
            evidence=EvidenceView(
                message_id=suggestion.evidence_message_id,
                thread_id=suggestion.evidence_thread_id,
                document_id=suggestion.evidence_document_id,
                filename=suggestion.evidence_filename,
            ),
            latest_analysis=LatestAnalysisView(
                pipeline_label=suggestion.latest_pipeline_label,
                summary=suggestion.latest_summary,
                confidence=suggestion.latest_confidence,
                reason=suggestion.latest_reason,
                earnest_signal=getattr(suggestion, "latest_earnest_signal", None),
                updated_at=suggestion.updated_at,
            ),
            **extra,
        )

    async def get_view(self, property_id: str) -> PipelineStepView:
        prop, state = await self.load(property_id)
        return await self.render(prop, state)

    async def render(self, prop: Property, state: PropertyWorkflowState) -> PipelineStepView:
        return self.view(prop, state)
