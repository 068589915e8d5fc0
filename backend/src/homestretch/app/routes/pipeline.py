"""Pipeline stage routes: earnest money and closing.

Every endpoint returns the stage's ``PipelineStepView``.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.app.routes.errors import to_http_error
from homestretch.domain.schemas import EarnestSendRequest, PipelineStepView
from homestretch.infra.database import get_db
from homestretch.services.closing_workflow import ClosingWorkflow
from homestretch.services.earnest_workflow import EarnestWorkflow
from homestretch.services.pipeline_errors import DeliveryError, PipelineError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/properties/{property_id}/pipeline", tags=["pipeline"])


async def get_earnest_workflow(db: AsyncSession = Depends(get_db)) -> EarnestWorkflow:
    return EarnestWorkflow(db)


async def get_closing_workflow(db: AsyncSession = Depends(get_db)) -> ClosingWorkflow:
    return ClosingWorkflow(db)


# ---------------------------------------------------------------------------
# Earnest money
# ---------------------------------------------------------------------------


@router.get("/earnest", response_model=PipelineStepView)
async def get_earnest(
    property_id: str,
    workflow: EarnestWorkflow = Depends(get_earnest_workflow),
):
    try:
        view = await workflow.get_view(property_id)
    except PipelineError as exc:
        raise to_http_error(exc) from exc
    await workflow.db.commit()
    return view


@router.post("/earnest/prepare", response_model=PipelineStepView)
async def prepare_earnest(
    property_id: str,
    workflow: EarnestWorkflow = Depends(get_earnest_workflow),
):
    """Generate the earnest draft, or report why the step stays locked."""
    try:
        view = await workflow.prepare(property_id)
    except PipelineError as exc:
        await workflow.db.rollback()
        raise to_http_error(exc) from exc
    await workflow.db.commit()
    return view


@router.post("/earnest/send", response_model=PipelineStepView)
async def send_earnest(
    property_id: str,
    data: EarnestSendRequest,
    workflow: EarnestWorkflow = Depends(get_earnest_workflow),
):
    """Send the (possibly edited) draft to the escrow officer."""
    try:
        view = await workflow.send(property_id, data.subject, data.body, data.body_html)
    except DeliveryError as exc:
        # Keep the recorded delivery error on the draft
        await workflow.db.commit()
        raise to_http_error(exc) from exc
    except PipelineError as exc:
        await workflow.db.rollback()
        raise to_http_error(exc) from exc
    await workflow.db.commit()
    return view


@router.post("/earnest/confirm", response_model=PipelineStepView)
async def confirm_earnest(
    property_id: str,
    workflow: EarnestWorkflow = Depends(get_earnest_workflow),
):
    try:
        view = await workflow.confirm_complete(property_id)
    except PipelineError as exc:
        await workflow.db.rollback()
        raise to_http_error(exc) from exc
    await workflow.db.commit()
    return view


# ---------------------------------------------------------------------------
# Closing
# ---------------------------------------------------------------------------


@router.get("/closing", response_model=PipelineStepView)
async def get_closing(
    property_id: str,
    workflow: ClosingWorkflow = Depends(get_closing_workflow),
):
    try:
        view = await workflow.get_view(property_id)
    except PipelineError as exc:
        raise to_http_error(exc) from exc
    await workflow.db.commit()
    return view


@router.post("/closing/confirm", response_model=PipelineStepView)
async def confirm_closing(
    property_id: str,
    workflow: ClosingWorkflow = Depends(get_closing_workflow),
):
    """Complete closing and every other pipeline step."""
    try:
        view = await workflow.confirm_complete(property_id)
    except PipelineError as exc:
        await workflow.db.rollback()
        raise to_http_error(exc) from exc
    await workflow.db.commit()
    return view
