"""
System settings repository (read-only).
"""
from typing import Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.models.settings import SystemSettings
from pipeline_journey.repositories.base import BaseRepository


class SystemSettingsRepository(BaseRepository[SystemSettings]):

    def __init__(self, session: AsyncSession):
        super().__init__(SystemSettings, session)

    async def get_journey_webhook_url(self) -> Optional[str]:
        query = select(SystemSettings.journey_webhook_url).order_by(
            SystemSettings.updated_at.desc()
        ).limit(1)
        result = await self.session.exec(query)
        return result.first()
