"""
Dispatch history repository. Append and read only.
"""
import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from sqlmodel import select, or_, and_
from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.core.pagination import paginate_query
from pipeline_journey.models.journey import DispatchHistoryEntry
from pipeline_journey.repositories.base import BaseRepository
from pipeline_journey.schemas.journey import HistoryFilter


class DispatchHistoryRepository(BaseRepository[DispatchHistoryEntry]):
    """Repository for DispatchHistoryEntry operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(DispatchHistoryEntry, session)

    def _filtered(self, filters: Optional[HistoryFilter]):
        query = select(DispatchHistoryEntry)
        if filters:
            if filters.lead_id:
                query = query.where(DispatchHistoryEntry.lead_id == filters.lead_id)
            if filters.stage_id:
                query = query.where(DispatchHistoryEntry.stage_id == filters.stage_id)
            if filters.schedule_id:
                query = query.where(DispatchHistoryEntry.schedule_id == filters.schedule_id)
            if filters.success is not None:
                query = query.where(DispatchHistoryEntry.success == filters.success)
            if filters.sent_after:
                query = query.where(DispatchHistoryEntry.sent_at >= filters.sent_after)
            if filters.sent_before:
                query = query.where(DispatchHistoryEntry.sent_at <= filters.sent_before)
        return query

    async def fetch_page(
        self,
        filters: Optional[HistoryFilter],
        limit: int,
        after: Optional[Tuple[datetime, uuid.UUID]] = None
    ) -> List[DispatchHistoryEntry]:
        """
        Keyset page ordered by sent_at desc, id desc.
        `after` is the (sent_at, id) of the last entry already seen.
        """
        query = self._filtered(filters)
        if after:
            after_sent_at, after_id = after
            query = query.where(
                or_(
                    DispatchHistoryEntry.sent_at < after_sent_at,
                    and_(
                        DispatchHistoryEntry.sent_at == after_sent_at,
                        DispatchHistoryEntry.id < after_id
                    )
                )
            )
        query = query.order_by(
            DispatchHistoryEntry.sent_at.desc(),
            DispatchHistoryEntry.id.desc()
        ).limit(limit)
        result = await self.session.exec(query)
        return result.all()

    async def search(
        self,
        filters: Optional[HistoryFilter] = None,
        page: int = 1,
        limit: int = 20
    ) -> dict:
        query = self._filtered(filters).order_by(
            DispatchHistoryEntry.sent_at.desc(),
            DispatchHistoryEntry.id.desc()
        )
        return await paginate_query(self.session, query, page, limit)
