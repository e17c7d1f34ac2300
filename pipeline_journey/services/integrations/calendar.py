"""
Calendar provider backed by the shared calendar_event table.
"""
import uuid
from datetime import datetime

from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.repositories.calendar_repo import CalendarEventRepository
from pipeline_journey.services.integrations.base import CalendarProvider


class DatabaseCalendarProvider(CalendarProvider):

    def __init__(self, session: AsyncSession):
        self.event_repo = CalendarEventRepository(session)

    async def has_upcoming_meeting(self, lead_id: uuid.UUID, now: datetime) -> bool:
        return await self.event_repo.count_upcoming_meetings(lead_id, now) > 0
