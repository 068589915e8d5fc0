"""Earnest-money stage: draft, send, inbound signals and user confirmation."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.agents.earnest_draft_agent import EarnestDraftAgent
from homestretch.app.config import get_settings
from homestretch.domain.enums import (
    ContactType,
    DraftStatus,
    EarnestSignal,
    PendingUserAction,
    PipelineLabel,
    StepStatus,
)
from homestretch.domain.models import Contact, Property
from homestretch.domain.schemas import (
    AttachmentView,
    ContactView,
    DraftView,
    EarnestDraftResult,
    InboxMessageAnalysis,
    PipelineStepView,
    SendStateView,
)
from homestretch.domain.workflow import (
    EarnestDraftState,
    PropertyWorkflowState,
    StageSuggestion,
)
from homestretch.services.collaborators import call_agent
from homestretch.services.contact_store import ContactStore
from homestretch.services.document_store import DocumentStore
from homestretch.services.outbound_email_service import DeliveryResult, OutboundEmailService
from homestretch.services.pipeline_errors import (
    CollaboratorError,
    DeliveryError,
    StateConflictError,
)
from homestretch.services.stage_workflow import StageWorkflow
from homestretch.services.workflow_state import utcnow

logger = logging.getLogger(__name__)

# (step reason, prompt to user) per earnest signal
_SIGNAL_TRANSITIONS = {
    EarnestSignal.WIRE_INSTRUCTIONS_PROVIDED: (
        "Escrow sent wiring instructions.",
        "Escrow sent wiring instructions. Follow the instructions, then mark Earnest complete.",
    ),
    EarnestSignal.EARNEST_RECEIVED_CONFIRMATION: (
        "Escrow appears to have received the earnest money.",
        "Escrow confirmed the earnest money is handled. Mark Earnest complete when you're ready.",
    ),
}


class EarnestWorkflow(StageWorkflow):
    """Drives the earnest step from locked through completed.

    ``prepare`` and ``apply_inbox_analysis`` absorb collaborator failures
    into state; ``send`` and ``confirm_complete`` reject calls made outside
    their required state.
    """

    label = PipelineLabel.EARNEST_MONEY

    def __init__(
        self,
        db: AsyncSession,
        draft_agent: Optional[EarnestDraftAgent] = None,
        outbound: Optional[OutboundEmailService] = None,
    ):
        super().__init__(db)
        self.contacts = ContactStore(db)
        self.documents = DocumentStore(db)
        self.draft_agent = draft_agent or EarnestDraftAgent()
        self.outbound = outbound or OutboundEmailService(db)

    def suggestion(self, state: PropertyWorkflowState) -> StageSuggestion:
        return state.earnest.suggestion

    def set_suggestion(self, state: PropertyWorkflowState, suggestion: StageSuggestion) -> None:
        state.earnest.suggestion = suggestion

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    async def render(self, prop: Property, state: PropertyWorkflowState) -> PipelineStepView:
        contact = await self.contacts.get_by_type(ContactType.ESCROW_OFFICER.value)
        return self._earnest_view(prop, state, contact)

    def _earnest_view(
        self,
        prop: Property,
        state: PropertyWorkflowState,
        contact: Optional[Contact],
    ) -> PipelineStepView:
        draft = state.earnest.draft
        if contact is not None:
            contact_view = ContactView(
                type=ContactType.ESCROW_OFFICER.value,
                name=contact.name,
                email=contact.email,
                company=contact.company,
            )
        elif draft.recipient_email and draft.recipient_name:
            contact_view = ContactView(
                type=ContactType.ESCROW_OFFICER.value,
                name=draft.recipient_name,
                email=draft.recipient_email,
            )
        else:
            contact_view = None

        attachment = None
        if draft.attachment_document_id and draft.attachment_filename:
            attachment = AttachmentView(
                document_id=draft.attachment_document_id,
                filename=draft.attachment_filename,
            )

        return self.view(
            prop,
            state,
            contact=contact_view,
            attachment=attachment,
            draft=DraftView(
                status=draft.status,
                subject=draft.subject,
                body=draft.body,
                generated_at=draft.generated_at,
                model_name=draft.model_name,
                generation_reason=draft.generation_reason,
                last_error=draft.last_error,
            ),
            send_state=SendStateView(
                thread_id=draft.thread_id,
                message_id=draft.sent_message_id,
                sent_at=draft.sent_at,
            ),
        )

    # ------------------------------------------------------------------
    # prepare
    # ------------------------------------------------------------------

    def _lock(
        self,
        state: PropertyWorkflowState,
        locked_reason: str,
        prompt_to_user: str,
        last_error: Optional[str] = None,
    ) -> None:
        """Lock the step and reset the draft, keeping the failure for diagnostics."""
        now = utcnow()
        self.transition(state, StepStatus.LOCKED, locked_reason, now)
        self.update_suggestion(
            state,
            pending_user_action=PendingUserAction.NONE,
            prompt_to_user=prompt_to_user,
            updated_at=now,
        )
        state.earnest.draft = EarnestDraftState(last_error=last_error)

    async def prepare(self, property_id: str) -> PipelineStepView:
        """Generate the earnest draft if the step can proceed.

        Idempotent: a step already waiting on a sent draft, already holding a
        ready draft, or already completed is returned unchanged.
        """
        prop, state = await self.load(property_id)
        step = state.steps.get(self.label)
        draft = state.earnest.draft

        if (
            (step.status == StepStatus.WAITING_FOR_PARTIES and draft.status == DraftStatus.SENT)
            or (step.status == StepStatus.ACTION_NEEDED and draft.status == DraftStatus.READY)
            or step.status == StepStatus.COMPLETED
        ):
            return await self.render(prop, state)

        contact = await self.contacts.get_by_type(ContactType.ESCROW_OFFICER.value)
        if contact is None:
            self._lock(
                state,
                "Escrow officer contact is missing.",
                "Add your escrow officer contact to prepare the earnest email.",
            )
            await self.save(prop, state)
            return self._earnest_view(prop, state, None)

        attachment = await self.documents.resolve_contract(prop.id, prop.contract_doc_hash)
        if attachment is None:
            self._lock(
                state,
                "Purchase contract attachment is missing.",
                "The purchase contract attachment could not be found for this property.",
            )
            await self.save(prop, state)
            return self._earnest_view(prop, state, contact)

        context = {
            "property_name": prop.property_name,
            "property_address": prop.address_full,
            "buyer_names": list(prop.buyer_names or []),
            "earnest_money_amount": prop.earnest_money_amount,
            "earnest_money_deadline": prop.earnest_money_deadline,
            "escrow_contact_name": contact.name,
            "attachment_filename": attachment.filename,
        }
        try:
            result: EarnestDraftResult = await call_agent(
                self.draft_agent.draft(context, property_id=prop.id),
                "Earnest draft generation",
            )
        except CollaboratorError as exc:
            logger.warning("Earnest draft generation failed for %s: %s", prop.id, exc)
            self._lock(
                state,
                "Earnest draft generation failed.",
                "Earnest draft could not be prepared yet.",
                last_error=str(exc),
            )
            await self.save(prop, state)
            return self._earnest_view(prop, state, contact)

        now = utcnow()
        self.transition(state, StepStatus.ACTION_NEEDED, "Earnest draft is ready to send.", now)
        self.update_suggestion(
            state,
            pending_user_action=PendingUserAction.SEND_EARNEST_EMAIL,
            prompt_to_user=None,
            updated_at=now,
        )
        state.earnest.draft = EarnestDraftState(
            status=DraftStatus.READY,
            generated_at=now,
            subject=result.subject.strip(),
            body=result.body.strip(),
            recipient_email=contact.email,
            recipient_name=contact.name,
            attachment_document_id=attachment.id,
            attachment_filename=attachment.filename,
            model_name=self.draft_agent.model_name,
            generation_reason=result.generation_reason.strip(),
        )
        await self.save(prop, state)
        logger.info("Earnest draft ready for property %s", prop.id)
        return self._earnest_view(prop, state, contact)

    # ------------------------------------------------------------------
    # send
    # ------------------------------------------------------------------

    async def send(
        self,
        property_id: str,
        subject: str,
        body: str,
        body_html: Optional[str] = None,
    ) -> PipelineStepView:
        """Send the user's (possibly edited) draft to the escrow officer.

        Raises:
            StateConflictError: the step is not waiting on a send, or the
                contact or attachment is gone.
            DeliveryError: the email could not be delivered. The step stays
                ``action_needed`` and the error is kept on the draft.
        """
        prop, state = await self.load(property_id)
        self.require_pending(
            state,
            PendingUserAction.SEND_EARNEST_EMAIL,
            "Earnest draft can only be sent when the step is action_needed.",
        )
        if not prop.property_email:
            raise StateConflictError("Property email is missing.")

        contact = await self.contacts.get_by_type(ContactType.ESCROW_OFFICER.value)
        if contact is None:
            raise StateConflictError("Escrow officer contact is missing.")

        draft = state.earnest.draft
        attachment = None
        if draft.attachment_document_id:
            attachment = await self.documents.get(draft.attachment_document_id)
        if attachment is None or attachment.property_id != prop.id:
            raise StateConflictError("Purchase contract attachment is missing.")

        subject = subject.strip()
        body = body.strip()
        try:
            sent = await self.outbound.send(
                property_id=prop.id,
                from_email=prop.property_email,
                to=[contact.email],
                subject=subject,
                body=body,
                body_html=body_html,
                attachments=[attachment],
            )
        except DeliveryError as exc:
            logger.warning("Earnest email delivery failed for %s: %s", prop.id, exc)
            state.earnest.draft = draft.model_copy(update={"last_error": str(exc)})
            await self.save(prop, state)
            raise

        self._record_sent(state, sent, subject, body, contact)
        while True:
            try:
                await self.save(prop, state)
                break
            except StateConflictError:
                # The email is already out; the send must land on the newest document
                logger.warning(
                    "Concurrent pipeline write during earnest send for %s; re-applying", prop.id
                )
                prop, state = await self.reload(prop)
                self._record_sent(state, sent, subject, body, contact)
        return self._earnest_view(prop, state, contact)

    def _record_sent(
        self,
        state: PropertyWorkflowState,
        sent: DeliveryResult,
        subject: str,
        body: str,
        contact: Contact,
    ) -> None:
        """Mark the draft sent; advance the step only if it still awaits the send."""
        step = state.steps.get(self.label)
        if (
            step.status == StepStatus.ACTION_NEEDED
            and state.earnest.suggestion.pending_user_action == PendingUserAction.SEND_EARNEST_EMAIL
        ):
            self.transition(
                state, StepStatus.WAITING_FOR_PARTIES, "Earnest kickoff email sent.", sent.sent_at
            )
            self.update_suggestion(
                state,
                pending_user_action=PendingUserAction.NONE,
                prompt_to_user=None,
                updated_at=sent.sent_at,
            )
        state.earnest.draft = EarnestDraftState.model_validate(
            {
                **state.earnest.draft.model_dump(),
                "status": DraftStatus.SENT,
                "subject": subject,
                "body": body,
                "recipient_email": contact.email,
                "recipient_name": contact.name,
                "thread_id": sent.thread_id,
                "sent_message_id": sent.delivered_message_id,
                "provider_message_id": sent.provider_message_id,
                "sent_at": sent.sent_at,
                "last_error": None,
            }
        )

    # ------------------------------------------------------------------
    # Inbound signals
    # ------------------------------------------------------------------

    async def apply_inbox_analysis(
        self,
        property_id: str,
        message_id: str,
        thread_id: str,
        analysis: InboxMessageAnalysis,
    ) -> PipelineStepView:
        """Record the analysis as latest evidence; act on it if confident enough.

        The newest evidence always replaces the previous one. The step only
        moves when it is not completed and the confidence clears the floor.
        """
        prop, state = await self.load(property_id)
        self.update_suggestion(
            state,
            evidence_message_id=message_id,
            evidence_thread_id=thread_id,
            latest_summary=analysis.summary,
            latest_confidence=analysis.confidence,
            latest_reason=analysis.reason,
            latest_pipeline_label=analysis.pipeline_label,
            latest_earnest_signal=analysis.earnest_signal,
            updated_at=analysis.analyzed_at,
        )

        floor = get_settings().signal_confidence_floor
        step = state.steps.get(self.label)
        transition = _SIGNAL_TRANSITIONS.get(analysis.earnest_signal)
        if step.status != StepStatus.COMPLETED and analysis.confidence >= floor and transition:
            reason, prompt = transition
            self.transition(state, StepStatus.ACTION_NEEDED, reason, analysis.analyzed_at)
            self.update_suggestion(
                state,
                pending_user_action=PendingUserAction.CONFIRM_EARNEST_COMPLETE,
                prompt_to_user=prompt,
            )
            logger.info(
                "Earnest signal %s (%.2f) moved property %s to action_needed",
                analysis.earnest_signal.value, analysis.confidence, prop.id,
            )

        await self.save(prop, state)
        return await self.render(prop, state)

    # ------------------------------------------------------------------
    # confirm
    # ------------------------------------------------------------------

    async def confirm_complete(self, property_id: str) -> PipelineStepView:
        """Mark only the earnest step completed after the user confirms it."""
        prop, state = await self.load(property_id)
        self.require_pending(
            state,
            PendingUserAction.CONFIRM_EARNEST_COMPLETE,
            "Earnest can only be completed when user confirmation is pending.",
        )
        now = utcnow()
        self.transition(state, StepStatus.COMPLETED, "Buyer confirmed earnest is complete.", now)
        self.update_suggestion(
            state,
            pending_user_action=PendingUserAction.NONE,
            prompt_to_user=None,
            updated_at=now,
        )
        await self.save(prop, state)
        return await self.render(prop, state)
