"""Construction, validation and transitions for the PropertyWorkflowState document."""

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from homestretch.domain.enums import PipelineLabel, StepStatus
from homestretch.domain.schemas import PipelineOverview, PipelineStepSummary
from homestretch.domain.workflow import (
    WORKFLOW_SCHEMA_VERSION,
    EarnestStageState,
    PropertyWorkflowState,
    WorkflowStepState,
    WorkflowSteps,
)
from homestretch.services.pipeline_errors import MalformedWorkflowStateError

logger = logging.getLogger(__name__)

UNDER_CONTRACT_REASON = "Property created from purchase contract intake."
EARNEST_NOT_PREPARED_REASON = "Earnest step has not been prepared yet."
STEP_NOT_AVAILABLE_REASON = "This step is not available yet."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_step(
    label: PipelineLabel,
    status: StepStatus,
    reason: Optional[str],
    at: Optional[datetime] = None,
) -> WorkflowStepState:
    """Build a step whose locked_reason follows its status."""
    return WorkflowStepState(
        label=label,
        status=status,
        locked_reason=reason if status == StepStatus.LOCKED else None,
        last_transition_at=at or utcnow(),
        last_transition_reason=reason,
    )


def create_initial_workflow_state() -> PropertyWorkflowState:
    """State for a freshly created property: contract done, earnest next, rest locked."""
    now = utcnow()
    steps = {}
    for label in PipelineLabel:
        if label == PipelineLabel.UNDER_CONTRACT:
            steps[label.value] = create_step(label, StepStatus.COMPLETED, UNDER_CONTRACT_REASON, now)
        elif label == PipelineLabel.EARNEST_MONEY:
            steps[label.value] = create_step(label, StepStatus.LOCKED, EARNEST_NOT_PREPARED_REASON, now)
        else:
            steps[label.value] = create_step(label, StepStatus.LOCKED, STEP_NOT_AVAILABLE_REASON, now)

    return PropertyWorkflowState(
        version=WORKFLOW_SCHEMA_VERSION,
        current_label=PipelineLabel.EARNEST_MONEY,
        steps=WorkflowSteps(**steps),
        earnest=EarnestStageState(),
    )


def load_workflow_state(raw: Optional[dict]) -> Optional[PropertyWorkflowState]:
    """Validate a stored document. ``None`` means no document has been written yet.

    Raises:
        MalformedWorkflowStateError: the stored document does not validate.
    """
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise MalformedWorkflowStateError(
            f"workflow state must be an object, got {type(raw).__name__}"
        )
    if raw.get("version") != WORKFLOW_SCHEMA_VERSION:
        raise MalformedWorkflowStateError(
            f"unsupported workflow state version: {raw.get('version')!r}"
        )
    try:
        return PropertyWorkflowState.model_validate(raw)
    except ValidationError as exc:
        logger.error("Stored workflow state failed validation: %s", exc)
        raise MalformedWorkflowStateError(f"invalid workflow state: {exc}") from exc


def dump_workflow_state(state: PropertyWorkflowState) -> dict:
    return state.model_dump(mode="json")


def transition_step(
    state: PropertyWorkflowState,
    label: PipelineLabel,
    status: StepStatus,
    reason: str,
    at: Optional[datetime] = None,
) -> WorkflowStepState:
    """Replace a step, updating status, locked_reason and transition metadata together."""
    step = create_step(label, status, reason, at)
    state.steps.set(step)
    return step


def build_pipeline_overview(property_id: str, state: PropertyWorkflowState) -> PipelineOverview:
    return PipelineOverview(
        property_id=property_id,
        current_label=state.current_label,
        steps=[
            PipelineStepSummary(
                label=label,
                status=step.status,
                locked_reason=step.locked_reason,
                last_transition_at=step.last_transition_at,
                last_transition_reason=step.last_transition_reason,
            )
            for label, step in state.steps.items()
        ],
    )
