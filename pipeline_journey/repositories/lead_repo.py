"""
Lead repository - reads and the compare-and-set stage write.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.models.lead import Lead
from pipeline_journey.repositories.base import BaseRepository


class LeadRepository(BaseRepository[Lead]):
    """Repository for Lead operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Lead, session)

    async def compare_and_set_stage(
        self,
        lead_id: uuid.UUID,
        expected_stage_id: str,
        new_stage_id: str,
        changed_at: datetime
    ) -> bool:
        """
        Move a lead only if it is still in expected_stage_id.
        Returns False when another writer got there first.
        """
        stmt = (
            update(Lead)
            .where(Lead.id == lead_id, Lead.stage_id == expected_stage_id)
            .values(stage_id=new_stage_id, updated_at=changed_at)
        )
        result = await self.session.exec(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    async def get_current(self, lead_id: uuid.UUID) -> Optional[Lead]:
        """Load a lead, overwriting any stale copy held by the session."""
        return await self.session.get(Lead, lead_id, populate_existing=True)
