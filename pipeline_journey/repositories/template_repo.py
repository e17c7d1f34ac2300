"""
Journey template repository (read-only).
"""
from typing import List

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.models.journey import JourneyMessageTemplate
from pipeline_journey.repositories.base import BaseRepository


class TemplateRepository(BaseRepository[JourneyMessageTemplate]):
    """Repository for JourneyMessageTemplate reads."""

    def __init__(self, session: AsyncSession):
        super().__init__(JourneyMessageTemplate, session)

    async def list_for_stage(self, stage_id: str) -> List[JourneyMessageTemplate]:
        """Active templates configured for a stage, in display order."""
        query = select(JourneyMessageTemplate).where(
            JourneyMessageTemplate.stage_id == stage_id,
            JourneyMessageTemplate.is_active == True
        ).order_by(JourneyMessageTemplate.order, JourneyMessageTemplate.created_at)
        result = await self.session.exec(query)
        return result.all()
