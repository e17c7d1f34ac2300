"""
History service - append-only log of dispatch attempts.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.core.clock import utcnow
from pipeline_journey.models.enums import MessageType
from pipeline_journey.models.journey import DispatchHistoryEntry, ScheduledMessage
from pipeline_journey.repositories.history_repo import DispatchHistoryRepository
from pipeline_journey.schemas.journey import HistoryFilter


@dataclass
class DispatchOutcome:
    """Result of one delivery attempt."""
    attempt: int
    success: bool
    status_code: Optional[int] = None
    error_class: Optional[str] = None
    error_message: Optional[str] = None
    is_final: bool = False
    sent_at: Optional[datetime] = None


class HistoryService:
    """Service for dispatch history."""

    def __init__(self, session: AsyncSession):
        self.history_repo = DispatchHistoryRepository(session)

    async def record(self, message: ScheduledMessage, outcome: DispatchOutcome) -> DispatchHistoryEntry:
        """Append one attempt. Flushed only; the caller commits."""
        entry = DispatchHistoryEntry(
            schedule_id=message.id,
            lead_id=message.lead_id,
            stage_id=message.stage_id,
            template_id=message.template_id,
            lead_name=message.lead_name,
            message_title=message.message_title,
            message_type=MessageType(message.message_type).value,
            webhook_url=message.webhook_url,
            attempt=outcome.attempt,
            success=outcome.success,
            status_code=outcome.status_code,
            error_class=outcome.error_class,
            error_message=outcome.error_message,
            is_final=outcome.is_final,
            sent_at=outcome.sent_at or utcnow()
        )
        return await self.history_repo.add(entry)

    async def query(
        self,
        filters: Optional[HistoryFilter] = None,
        limit: Optional[int] = None,
        before: Optional[Tuple[datetime, uuid.UUID]] = None,
        page_size: int = 100
    ) -> AsyncIterator[DispatchHistoryEntry]:
        """
        Newest-first entries, fetched lazily a page at a time.

        Stops after `limit` entries when given. `before` resumes after the
        (sent_at, id) of an entry from a previous iteration.
        """
        remaining = limit
        cursor = before
        while remaining is None or remaining > 0:
            size = page_size if remaining is None else min(page_size, remaining)
            entries = await self.history_repo.fetch_page(filters, size, after=cursor)
            for entry in entries:
                yield entry
            if remaining is not None:
                remaining -= len(entries)
            if len(entries) < size:
                return
            cursor = (entries[-1].sent_at, entries[-1].id)

    async def list_page(
        self,
        filters: Optional[HistoryFilter] = None,
        page: int = 1,
        limit: int = 20
    ) -> dict:
        return await self.history_repo.search(filters, page, limit)
