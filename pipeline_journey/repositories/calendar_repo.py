"""
Calendar event repository (read-only view of the calendar collaborator).
"""
import uuid
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import func

from pipeline_journey.models.calendar import CalendarEvent
from pipeline_journey.models.enums import CalendarEventType
from pipeline_journey.repositories.base import BaseRepository


class CalendarEventRepository(BaseRepository[CalendarEvent]):

    def __init__(self, session: AsyncSession):
        super().__init__(CalendarEvent, session)

    async def count_upcoming_meetings(self, lead_id: uuid.UUID, now: datetime) -> int:
        """Meetings for the lead that are not completed and not yet over."""
        query = select(func.count()).select_from(CalendarEvent).where(
            CalendarEvent.lead_id == lead_id,
            CalendarEvent.event_type == CalendarEventType.MEETING,
            CalendarEvent.completed == False,
            func.coalesce(CalendarEvent.ends_at, CalendarEvent.starts_at) >= now
        )
        result = await self.session.exec(query)
        return result.one()
