"""Translate pipeline errors into HTTP responses."""

import logging

from fastapi import HTTPException, status

from homestretch.services.pipeline_errors import (
    CollaboratorError,
    MalformedWorkflowStateError,
    NotFoundError,
    PipelineError,
    StateConflictError,
)

logger = logging.getLogger(__name__)


def to_http_error(exc: PipelineError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, StateConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, CollaboratorError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, MalformedWorkflowStateError):
        logger.error("Malformed workflow state: %s", exc)
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stored pipeline state is invalid.",
        )
    logger.error("Unhandled pipeline error: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
