"""Base agent class for all closing-pipeline AI agents.

Every pipeline agent (email signals, earnest draft, ALTA detection)
inherits from BaseAgent, which provides:

- Gemini model access via the infra.gemini_client wrapper
- A standard AgentResult return type (Result pattern)
- Automatic latency measurement and token tracking
- Database activity logging via AgentLog records
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Prompt content: plain text, or a list of parts (text and inline file blobs)
PromptContent = str | list


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class AgentResult:
    """Standard result type for all agent operations.

    Follows the Result pattern: every agent call returns an AgentResult
    instead of raising exceptions. Callers check ``result.ok`` to
    determine success or failure.

    Attributes:
        ok: True if the operation succeeded.
        data: The response payload (text, parsed JSON, validated model).
        error: Human-readable error description when ``ok`` is False.
        tokens_used: Total tokens consumed (prompt + completion).
        latency_ms: Wall-clock time for the operation in milliseconds.
    """

    ok: bool
    data: Any = None
    error: Optional[str] = None
    tokens_used: int = 0
    latency_ms: int = 0

    @classmethod
    def success(
        cls,
        data: Any,
        tokens_used: int = 0,
        latency_ms: int = 0,
    ) -> "AgentResult":
        """Create a successful result."""
        return cls(
            ok=True,
            data=data,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
        )

    @classmethod
    def failure(cls, error: str, latency_ms: int = 0) -> "AgentResult":
        """Create a failure result."""
        return cls(ok=False, error=error, latency_ms=latency_ms)


def _summarize_prompt(prompt: PromptContent) -> str:
    """Render a prompt as loggable text, replacing binary parts with a marker."""
    if isinstance(prompt, str):
        return prompt[:500]
    pieces = []
    for part in prompt:
        if isinstance(part, str):
            pieces.append(part)
        elif isinstance(part, dict) and "mime_type" in part:
            pieces.append(f"<{part['mime_type']} {len(part.get('data') or b'')} bytes>")
        else:
            pieces.append(f"<{type(part).__name__}>")
    return "\n".join(pieces)[:500]


# ---------------------------------------------------------------------------
# Base agent
# ---------------------------------------------------------------------------

class BaseAgent:
    """Base class for all pipeline agents.

    Subclasses assemble domain prompts and call ``generate_json`` (or
    ``generate_structured`` to validate against a pydantic model).

    Example::

        class EmailSignalAgent(BaseAgent):
            def __init__(self):
                super().__init__(agent_name="email_signals", temperature=0.1)

            async def classify_stage(self, email_text: str) -> AgentResult:
                return await self.generate_structured(
                    prompt=email_text,
                    output_model=EmailPipelineResult,
                    system_instruction=EMAIL_STAGE_SYSTEM_PROMPT,
                )
    """

    def __init__(
        self,
        agent_name: str,
        model_name: Optional[str] = None,
        temperature: float = 0.7,
    ):
        """Initialise the agent.

        Args:
            agent_name: A short, unique name for this agent (used in logs).
            model_name: The Gemini model identifier. Defaults to the
                configured ``gemini_model``.
            temperature: Generation temperature (0.0-1.0).
        """
        from homestretch.app.config import get_settings

        self.agent_name = agent_name
        self.model_name = model_name or get_settings().gemini_model
        self.temperature = temperature

    # ------------------------------------------------------------------
    # Core generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: PromptContent,
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
        response_schema: dict | None = None,
        property_id: Optional[str] = None,
    ) -> AgentResult:
        """Generate a single-turn response from Gemini.

        Args:
            prompt: The user prompt, or a list of parts when inline file
                data (e.g. a PDF) accompanies the text.
            system_instruction: Optional system instruction that shapes
                the model's behaviour.
            json_mode: If True the model is instructed to return valid JSON.
            response_schema: Optional JSON Schema constraining the output.
            property_id: Related property, recorded on the AgentLog row.

        Returns:
            An ``AgentResult`` with the response text in ``data``.
        """
        start_time = time.time()
        try:
            from homestretch.infra.gemini_client import get_model

            model = get_model(
                model_name=self.model_name,
                temperature=self.temperature,
                json_mode=json_mode,
                response_schema=response_schema,
                system_instruction=system_instruction,
            )

            response = await asyncio.wait_for(
                model.generate_content_async(prompt),
                timeout=120,  # 2 min hard limit, prevents indefinite hangs
            )
            latency_ms = int((time.time() - start_time) * 1000)

            # Extract token usage from response metadata
            tokens_used = 0
            if hasattr(response, "usage_metadata") and response.usage_metadata:
                prompt_tokens = getattr(
                    response.usage_metadata, "prompt_token_count", 0
                ) or 0
                completion_tokens = getattr(
                    response.usage_metadata, "candidates_token_count", 0
                ) or 0
                tokens_used = prompt_tokens + completion_tokens

            response_text = response.text

            logger.info(
                "[%s] Generation succeeded: tokens=%d, latency=%dms",
                self.agent_name,
                tokens_used,
                latency_ms,
            )

            # Fire-and-forget DB log (non-blocking)
            await self._safe_log_activity(
                action="generate",
                input_summary=_summarize_prompt(prompt),
                output_summary=(response_text or "")[:500],
                tokens_used=tokens_used,
                latency_ms=latency_ms,
                property_id=property_id,
            )

            return AgentResult.success(
                data=response_text,
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "[%s] Generation failed after %dms: %s",
                self.agent_name,
                latency_ms,
                exc,
            )
            return AgentResult.failure(str(exc) or type(exc).__name__, latency_ms=latency_ms)

    # ------------------------------------------------------------------
    # JSON generation convenience
    # ------------------------------------------------------------------

    async def generate_json(
        self,
        prompt: PromptContent,
        system_instruction: Optional[str] = None,
        response_schema: dict | None = None,
        property_id: Optional[str] = None,
    ) -> AgentResult:
        """Generate a response and parse it as JSON.

        Calls ``generate`` with ``json_mode=True``, then deserialises the
        response text into a Python dict or list.  If parsing fails the
        result will be a failure with the parse error.

        Returns:
            An ``AgentResult`` whose ``data`` field contains the parsed
            JSON (dict or list).
        """
        result = await self.generate(
            prompt=prompt,
            system_instruction=system_instruction,
            json_mode=True,
            response_schema=response_schema,
            property_id=property_id,
        )

        if not result.ok:
            return result

        try:
            parsed = json.loads(result.data)
            return AgentResult.success(
                data=parsed,
                tokens_used=result.tokens_used,
                latency_ms=result.latency_ms,
            )
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning(
                "[%s] JSON parse failed: %s, raw text: %.200s",
                self.agent_name,
                exc,
                result.data,
            )
            return AgentResult.failure(
                error=f"JSON parse error: {exc}",
                latency_ms=result.latency_ms,
            )

    async def generate_structured(
        self,
        prompt: PromptContent,
        output_model: type,
        system_instruction: Optional[str] = None,
        property_id: Optional[str] = None,
    ) -> AgentResult:
        """Generate JSON constrained to ``output_model`` and validate it.

        ``data`` on success is an instance of ``output_model``.
        """
        result = await self.generate_json(
            prompt=prompt,
            system_instruction=system_instruction,
            response_schema=output_model.model_json_schema(),
            property_id=property_id,
        )
        if not result.ok:
            return result

        # Pydantic validation as defense-in-depth
        try:
            validated = output_model.model_validate(result.data)
        except Exception as exc:
            logger.warning("[%s] Pydantic validation failed: %s", self.agent_name, exc)
            return AgentResult.failure(
                f"Validation error: {exc}", latency_ms=result.latency_ms
            )
        return AgentResult.success(
            data=validated,
            tokens_used=result.tokens_used,
            latency_ms=result.latency_ms,
        )

    # ------------------------------------------------------------------
    # Activity logging
    # ------------------------------------------------------------------

    async def log_activity(
        self,
        action: str,
        input_summary: str,
        output_summary: str,
        tokens_used: int,
        latency_ms: int,
        property_id: Optional[str] = None,
    ) -> None:
        """Persist an ``AgentLog`` entry for this call."""
        try:
            from homestretch.infra.database import async_session
            from homestretch.domain.models import AgentLog

            async with async_session() as session:
                log_entry = AgentLog(
                    id=str(uuid.uuid4()),
                    agent_name=self.agent_name,
                    action=action,
                    input_summary=input_summary,
                    output_summary=output_summary,
                    tokens_used=tokens_used,
                    latency_ms=latency_ms,
                    related_property_id=property_id,
                    created_at=datetime.now(timezone.utc),
                )
                session.add(log_entry)
                await session.commit()
                logger.debug(
                    "[%s] Activity logged: action=%s, tokens=%d",
                    self.agent_name,
                    action,
                    tokens_used,
                )

        except Exception as exc:
            # DB logging must never break agent operation
            logger.warning(
                "[%s] Failed to log activity to DB: %s", self.agent_name, exc
            )

    async def _safe_log_activity(
        self,
        action: str,
        input_summary: str,
        output_summary: str,
        tokens_used: int,
        latency_ms: int,
        property_id: Optional[str] = None,
    ) -> None:
        """Fire-and-forget wrapper around ``log_activity``.

        Schedules the DB write as a background task so it never blocks
        the calling agent (prevents SQLite lock contention during
        concurrent AI calls).
        """
        asyncio.ensure_future(self.log_activity(
            action=action,
            input_summary=input_summary,
            output_summary=output_summary,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
            property_id=property_id,
        ))
