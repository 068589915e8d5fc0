"""Tests for the closing sub-workflow: ALTA evidence and the cascading confirmation."""

from datetime import datetime, timezone

import pytest

from homestretch.domain.enums import ClassificationLabel, PendingUserAction, PipelineLabel, StepStatus
from homestretch.services.closing_workflow import AltaEvidence, ClosingWorkflow
from homestretch.services.pipeline_errors import StateConflictError
from homestretch.services.property_store import PropertyStore


def _evidence(message_id="msg-1", filename="ALTA Settlement.pdf", summary=None):
    return AltaEvidence(
        message_id=message_id,
        thread_id="thr-1",
        document_id=f"doc-{message_id}",
        filename=filename,
        confidence=0.93,
        reason=f'Attachment "{filename}" was classified as an ALTA closing statement.',
        analyzed_at=datetime(2026, 10, 10, 12, 0, tzinfo=timezone.utc),
        summary=summary,
    )


@pytest.fixture
def workflow(db_session):
    return ClosingWorkflow(db_session)


class TestClosingView:
    async def test_closing_stage_created_lazily(self, db_session, workflow, make_property):
        prop = await make_property()
        assert PropertyStore(db_session).get_workflow_state(prop).closing_stage is None

        view = await workflow.get_view(prop.id)

        assert view.stage == PipelineLabel.CLOSING
        assert view.step_status == StepStatus.LOCKED
        assert view.pending_user_action == PendingUserAction.NONE
        assert PropertyStore(db_session).get_workflow_state(prop).closing_stage is not None


class TestApplyAltaDetection:
    async def test_moves_closing_to_action_needed(self, workflow, make_property):
        prop = await make_property()

        view = await workflow.apply_alta_detection(prop.id, _evidence(summary="Final ALTA for 123 Main."))

        assert view.step_status == StepStatus.ACTION_NEEDED
        assert view.pending_user_action == PendingUserAction.CONFIRM_CLOSING_COMPLETE
        assert view.prompt_to_user.startswith("An ALTA closing document was received.")
        assert view.evidence.document_id == "doc-msg-1"
        assert view.evidence.filename == "ALTA Settlement.pdf"
        assert view.latest_analysis.pipeline_label == ClassificationLabel.CLOSING
        assert view.latest_analysis.summary == "Final ALTA for 123 Main."
        assert view.latest_analysis.confidence == 0.93

    async def test_default_summary(self, workflow, make_property):
        prop = await make_property()
        view = await workflow.apply_alta_detection(prop.id, _evidence())
        assert view.latest_analysis.summary == "ALTA closing document detected for the transaction."

    async def test_newer_document_replaces_evidence(self, workflow, make_property):
        prop = await make_property()
        await workflow.apply_alta_detection(prop.id, _evidence("msg-1"))
        view = await workflow.apply_alta_detection(prop.id, _evidence("msg-2", filename="ALTA v2.pdf"))

        assert view.evidence.message_id == "msg-2"
        assert view.evidence.filename == "ALTA v2.pdf"

    async def test_noop_after_completion(self, workflow, make_property):
        prop = await make_property()
        await workflow.apply_alta_detection(prop.id, _evidence("msg-1"))
        await workflow.confirm_complete(prop.id)

        view = await workflow.apply_alta_detection(prop.id, _evidence("msg-2"))

        assert view.step_status == StepStatus.COMPLETED
        assert view.evidence.message_id == "msg-1"


class TestConfirmClosing:
    async def test_requires_pending_confirmation(self, workflow, make_property):
        prop = await make_property()
        with pytest.raises(StateConflictError):
            await workflow.confirm_complete(prop.id)

    async def test_cascades_every_step(self, db_session, workflow, make_property):
        prop = await make_property()
        await workflow.apply_alta_detection(prop.id, _evidence())

        view = await workflow.confirm_complete(prop.id)

        assert view.step_status == StepStatus.COMPLETED
        assert view.pending_user_action == PendingUserAction.NONE
        state = PropertyStore(db_session).get_workflow_state(prop)
        assert state.current_label == PipelineLabel.CLOSING
        for label, step in state.steps.items():
            assert step.status == StepStatus.COMPLETED, label
            assert step.locked_reason is None
        assert (
            state.steps.get(PipelineLabel.CLOSING).last_transition_reason
            == "User confirmed closing complete after ALTA was received."
        )

    async def test_second_confirm_conflicts(self, workflow, make_property):
        prop = await make_property()
        await workflow.apply_alta_detection(prop.id, _evidence())
        await workflow.confirm_complete(prop.id)

        with pytest.raises(StateConflictError):
            await workflow.confirm_complete(prop.id)
