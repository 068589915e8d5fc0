"""Earnest Draft Agent - Composes the earnest-money kickoff email to escrow."""

import json
import logging
from typing import Optional

from homestretch.agents.base import AgentResult, BaseAgent
from homestretch.agents.prompts.earnest import (
    EARNEST_DRAFT_SYSTEM_PROMPT,
    EARNEST_DRAFT_TEMPLATE,
)
from homestretch.domain.schemas import EarnestDraftResult

logger = logging.getLogger(__name__)


class EarnestDraftAgent(BaseAgent):
    """Writes the short buyer-side email that asks escrow for wiring instructions."""

    def __init__(self):
        super().__init__(
            agent_name="earnest_draft",
            temperature=0.4,
        )

    async def draft(
        self,
        context: dict,
        property_id: Optional[str] = None,
    ) -> AgentResult:
        """Compose the earnest email.

        Args:
            context: Dict with property_name, property_address, buyer_names,
                earnest_money_amount, earnest_money_deadline,
                escrow_contact_name and attachment_filename.
            property_id: Related property for activity logging.

        Returns:
            AgentResult whose ``data`` is an ``EarnestDraftResult``.
        """
        prompt = EARNEST_DRAFT_TEMPLATE.format(context=json.dumps(context, indent=2))
        return await self.generate_structured(
            prompt=prompt,
            output_model=EarnestDraftResult,
            system_instruction=EARNEST_DRAFT_SYSTEM_PROMPT,
            property_id=property_id,
        )
