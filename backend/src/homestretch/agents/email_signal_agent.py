"""Email Signal Agent - Stage classification and earnest signal extraction."""

import json
import logging
from typing import Optional

from homestretch.agents.base import AgentResult, BaseAgent
from homestretch.agents.prompts.email_signals import (
    EARNEST_SIGNAL_SYSTEM_PROMPT,
    EARNEST_SIGNAL_TEMPLATE,
    EMAIL_STAGE_SYSTEM_PROMPT,
    EMAIL_STAGE_TEMPLATE,
)
from homestretch.domain.schemas import EarnestSignalResult, EmailPipelineResult

logger = logging.getLogger(__name__)


class EmailSignalAgent(BaseAgent):
    """Reads transaction emails and returns structured pipeline signals.

    Two passes are exposed separately so callers only pay for the earnest
    pass when the first pass places the email in the earnest stage.
    """

    def __init__(self):
        super().__init__(
            agent_name="email_signals",
            temperature=0.1,  # Classification, not prose
        )

    async def classify_stage(
        self,
        payload: dict,
        property_id: Optional[str] = None,
    ) -> AgentResult:
        """Classify an email into one pipeline stage.

        Args:
            payload: Dict with subject, from, to, received_at_iso and the
                already-normalized body.
            property_id: Related property for activity logging.

        Returns:
            AgentResult whose ``data`` is an ``EmailPipelineResult``.
        """
        prompt = EMAIL_STAGE_TEMPLATE.format(payload=json.dumps(payload, indent=2))
        return await self.generate_structured(
            prompt=prompt,
            output_model=EmailPipelineResult,
            system_instruction=EMAIL_STAGE_SYSTEM_PROMPT,
            property_id=property_id,
        )

    async def detect_earnest_signal(
        self,
        payload: dict,
        pipeline_summary: str,
        pipeline_confidence: float,
        property_id: Optional[str] = None,
    ) -> AgentResult:
        """Extract the earnest signal from an email already classified as earnest.

        Returns:
            AgentResult whose ``data`` is an ``EarnestSignalResult``.
        """
        prompt = EARNEST_SIGNAL_TEMPLATE.format(
            context=json.dumps(
                {"summary": pipeline_summary, "confidence": pipeline_confidence},
                indent=2,
            ),
            payload=json.dumps(payload, indent=2),
        )
        return await self.generate_structured(
            prompt=prompt,
            output_model=EarnestSignalResult,
            system_instruction=EARNEST_SIGNAL_SYSTEM_PROMPT,
            property_id=property_id,
        )
