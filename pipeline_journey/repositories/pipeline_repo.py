"""
Pipeline repositories - stage catalog and stage change log.
"""
from typing import List

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.models.pipeline import PipelineStage, LeadStageChange
from pipeline_journey.repositories.base import BaseRepository


class StageRepository(BaseRepository[PipelineStage]):
    """Read-only stage catalog."""

    def __init__(self, session: AsyncSession):
        super().__init__(PipelineStage, session)

    async def list_ordered(self) -> List[PipelineStage]:
        query = select(PipelineStage).order_by(PipelineStage.sort_order, PipelineStage.id)
        result = await self.session.exec(query)
        return result.all()


class StageChangeRepository(BaseRepository[LeadStageChange]):
    """Append-only stage change log."""

    def __init__(self, session: AsyncSession):
        super().__init__(LeadStageChange, session)
