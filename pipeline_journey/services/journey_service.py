"""
Journey service - scheduled message queries and cancellation.
"""
import uuid
import logging
from typing import Optional, List

from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.core.clock import utcnow
from pipeline_journey.models.enums import ScheduleStatus
from pipeline_journey.models.journey import ScheduledMessage
from pipeline_journey.repositories.schedule_repo import ScheduledMessageRepository
from pipeline_journey.schemas.journey import CancelPendingResponse

logger = logging.getLogger(__name__)


class JourneyService:
    """Service for scheduled journey messages."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.schedule_repo = ScheduledMessageRepository(session)

    async def list(
        self,
        lead_id: Optional[uuid.UUID] = None,
        stage_id: Optional[str] = None,
        status: Optional[ScheduleStatus] = None,
        page: int = 1,
        limit: int = 20
    ) -> dict:
        """List scheduled messages, soonest first."""
        filters = {"lead_id": lead_id, "stage_id": stage_id, "status": status}
        return await self.schedule_repo.list_paginated(
            filters, page, limit, order_by="scheduled_for", order_desc=False
        )

    async def list_for_lead(self, lead_id: uuid.UUID, stage_id: Optional[str] = None) -> List[ScheduledMessage]:
        return await self.schedule_repo.list_for_lead(lead_id, stage_id)

    async def cancel_pending(self, lead_id: uuid.UUID, stage_id: str) -> CancelPendingResponse:
        """
        Cancel messages for the lead and stage that no worker has claimed yet.
        Claimed, sent and failed rows are left alone.
        """
        try:
            cancelled = await self.schedule_repo.cancel_pending(lead_id, stage_id, utcnow())
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            f"Cancelled {cancelled} pending message(s) for lead {lead_id} in '{stage_id}'",
            extra={"lead_id": str(lead_id), "stage_id": stage_id}
        )
        return CancelPendingResponse(lead_id=lead_id, stage_id=stage_id, cancelled=cancelled)
