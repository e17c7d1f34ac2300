"""
Journey API routes - scheduled messages, history and manual dispatch.
"""
import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Optional, List
from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.database import get_session
from pipeline_journey.models.enums import ScheduleStatus
from pipeline_journey.services.dispatch_worker import DispatchWorker
from pipeline_journey.services.history_service import HistoryService
from pipeline_journey.services.journey_service import JourneyService
from pipeline_journey.schemas.common import PaginatedResponse
from pipeline_journey.schemas.journey import (
    CancelPendingRequest, CancelPendingResponse, DispatchRunResponse,
    HistoryEntryResponse, HistoryFilter, ScheduledMessageResponse
)
from pipeline_journey.api.deps import get_dispatch_worker

router = APIRouter(prefix="/api/journey", tags=["journey"])


# Schedule endpoints
@router.get("/schedules", response_model=PaginatedResponse[ScheduledMessageResponse])
async def list_schedules(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    lead_id: Optional[uuid.UUID] = None,
    stage_id: Optional[str] = None,
    status: Optional[ScheduleStatus] = None,
    session: AsyncSession = Depends(get_session)
):
    """List scheduled messages."""
    journey_service = JourneyService(session)
    return await journey_service.list(lead_id, stage_id, status, page, limit)


@router.get("/schedules/lead/{lead_id}", response_model=List[ScheduledMessageResponse])
async def get_schedules_by_lead(
    lead_id: uuid.UUID,
    stage_id: Optional[str] = None,
    session: AsyncSession = Depends(get_session)
):
    """All scheduled messages of a lead."""
    journey_service = JourneyService(session)
    return await journey_service.list_for_lead(lead_id, stage_id)


@router.post("/schedules/cancel", response_model=CancelPendingResponse)
async def cancel_pending(
    request: CancelPendingRequest,
    session: AsyncSession = Depends(get_session)
):
    """Cancel a lead's still-pending messages for one stage."""
    journey_service = JourneyService(session)
    return await journey_service.cancel_pending(request.lead_id, request.stage_id)


# History endpoints
@router.get("/history", response_model=PaginatedResponse[HistoryEntryResponse])
async def list_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    lead_id: Optional[uuid.UUID] = None,
    stage_id: Optional[str] = None,
    schedule_id: Optional[uuid.UUID] = None,
    success: Optional[bool] = None,
    sent_after: Optional[datetime] = None,
    sent_before: Optional[datetime] = None,
    session: AsyncSession = Depends(get_session)
):
    """Dispatch attempts, newest first."""
    filters = HistoryFilter(
        lead_id=lead_id,
        stage_id=stage_id,
        schedule_id=schedule_id,
        success=success,
        sent_after=sent_after,
        sent_before=sent_before
    )

    history_service = HistoryService(session)
    return await history_service.list_page(filters, page, limit)


# Dispatch endpoints
@router.post("/dispatch/run", response_model=DispatchRunResponse)
async def run_dispatch(worker: DispatchWorker = Depends(get_dispatch_worker)):
    """Run one dispatch tick now."""
    summary = await worker.run_once()
    return DispatchRunResponse(**asdict(summary))
