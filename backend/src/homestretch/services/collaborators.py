"""Timeout and Result-pattern adapters for external collaborator calls."""

import asyncio
import logging
from typing import Any, Awaitable

from homestretch.agents.base import AgentResult
from homestretch.app.config import get_settings
from homestretch.services.pipeline_errors import CollaboratorError

logger = logging.getLogger(__name__)


async def with_timeout(awaitable: Awaitable, name: str, timeout: float | None = None) -> Any:
    """Await a collaborator call under the configured timeout.

    A timeout surfaces as ``CollaboratorError`` rather than ``TimeoutError``.
    """
    limit = timeout if timeout is not None else get_settings().collaborator_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError as exc:
        logger.warning("%s timed out after %.1fs", name, limit)
        raise CollaboratorError(f"{name} timed out after {limit:g}s") from exc


async def call_agent(awaitable: Awaitable[AgentResult], name: str, timeout: float | None = None) -> Any:
    """Run an agent call and unwrap its ``AgentResult``.

    Returns ``result.data`` on success; raises ``CollaboratorError`` on a
    failed result or a timeout.
    """
    result = await with_timeout(awaitable, name, timeout)
    if not result.ok:
        raise CollaboratorError(f"{name} failed: {result.error}")
    return result.data
