"""
Scheduled message repository.

Every state change is a conditional UPDATE guarded on the state the caller
observed (status, claim token and expiry). A write that matches zero rows means
another worker won the race and the caller must back off.
"""
import uuid
from datetime import datetime
from typing import List, Optional

from sqlmodel import select, or_, and_
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import func, update

from pipeline_journey.models.enums import ScheduleStatus
from pipeline_journey.models.journey import ScheduledMessage
from pipeline_journey.repositories.base import BaseRepository


class ScheduledMessageRepository(BaseRepository[ScheduledMessage]):
    """Repository for ScheduledMessage operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(ScheduledMessage, session)

    async def add_all(self, messages: List[ScheduledMessage]) -> List[ScheduledMessage]:
        """Stage a full schedule set in the current transaction."""
        self.session.add_all(messages)
        await self.session.flush()
        return messages

    async def count_for_entry(
        self,
        lead_id: uuid.UUID,
        stage_id: str,
        entered_at: datetime
    ) -> int:
        """Rows already materialized for one stage entry event."""
        query = select(func.count()).select_from(ScheduledMessage).where(
            ScheduledMessage.lead_id == lead_id,
            ScheduledMessage.stage_id == stage_id,
            ScheduledMessage.entered_at == entered_at
        )
        result = await self.session.exec(query)
        return result.one()

    async def list_for_lead(
        self,
        lead_id: uuid.UUID,
        stage_id: Optional[str] = None
    ) -> List[ScheduledMessage]:
        query = select(ScheduledMessage).where(ScheduledMessage.lead_id == lead_id)
        if stage_id:
            query = query.where(ScheduledMessage.stage_id == stage_id)
        query = query.order_by(ScheduledMessage.scheduled_for, ScheduledMessage.template_order)
        result = await self.session.exec(query)
        return result.all()

    # -------------------------------------------------------------------------
    # Claiming
    # -------------------------------------------------------------------------

    async def find_claimable(self, now: datetime, limit: int) -> List[ScheduledMessage]:
        """
        Due pending rows plus rows whose claim has expired, oldest first.
        Locked rows are skipped on databases that support SKIP LOCKED.
        """
        query = select(ScheduledMessage).where(
            or_(
                and_(
                    ScheduledMessage.status == ScheduleStatus.PENDING,
                    ScheduledMessage.scheduled_for <= now
                ),
                and_(
                    ScheduledMessage.status == ScheduleStatus.CLAIMED,
                    ScheduledMessage.claim_expires_at <= now
                )
            )
        ).order_by(
            ScheduledMessage.scheduled_for,
            ScheduledMessage.lead_id,
            ScheduledMessage.template_order
        ).limit(limit).with_for_update(skip_locked=True)
        query = query.execution_options(populate_existing=True)
        result = await self.session.exec(query)
        return result.all()

    async def try_claim(
        self,
        message: ScheduledMessage,
        claim_token: str,
        worker_id: str,
        now: datetime,
        expires_at: datetime
    ) -> bool:
        """
        Compare-and-set claim on the status, token, claim expiry and attempt
        count seen in `message`. Only one caller can win for a given observed state.
        """
        seen_token = message.claim_token
        token_matches = (
            ScheduledMessage.claim_token.is_(None)
            if seen_token is None
            else ScheduledMessage.claim_token == seen_token
        )

        if message.status == ScheduleStatus.PENDING:
            still_claimable = and_(
                ScheduledMessage.status == ScheduleStatus.PENDING,
                ScheduledMessage.scheduled_for <= now
            )
        elif message.status == ScheduleStatus.CLAIMED:
            # A renewal by the holder after our read moves the expiry
            still_claimable = and_(
                ScheduledMessage.status == ScheduleStatus.CLAIMED,
                ScheduledMessage.claim_expires_at <= now,
                ScheduledMessage.claim_expires_at == message.claim_expires_at
            )
        else:
            return False

        stmt = update(ScheduledMessage).where(
            ScheduledMessage.id == message.id,
            still_claimable,
            token_matches,
            ScheduledMessage.attempts == message.attempts
        ).values(
            status=ScheduleStatus.CLAIMED,
            claim_token=claim_token,
            claimed_by=worker_id,
            claim_expires_at=expires_at,
            updated_at=now
        )
        result = await self.session.exec(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    # -------------------------------------------------------------------------
    # Claim holder writes
    # -------------------------------------------------------------------------

    async def renew_claim(
        self,
        message_id: uuid.UUID,
        claim_token: str,
        now: datetime,
        expires_at: datetime
    ) -> bool:
        """Push the claim expiry forward. False means another worker holds the row."""
        stmt = update(ScheduledMessage).where(
            ScheduledMessage.id == message_id,
            ScheduledMessage.status == ScheduleStatus.CLAIMED,
            ScheduledMessage.claim_token == claim_token
        ).values(claim_expires_at=expires_at, updated_at=now)
        result = await self.session.exec(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    async def record_attempt(
        self,
        message_id: uuid.UUID,
        claim_token: str,
        attempts: int,
        last_error: Optional[str],
        now: datetime
    ) -> bool:
        """Persist the attempt counter while the claim is still ours."""
        stmt = update(ScheduledMessage).where(
            ScheduledMessage.id == message_id,
            ScheduledMessage.status == ScheduleStatus.CLAIMED,
            ScheduledMessage.claim_token == claim_token
        ).values(attempts=attempts, last_error=last_error, updated_at=now)
        result = await self.session.exec(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    async def complete(
        self,
        message_id: uuid.UUID,
        claim_token: str,
        status: ScheduleStatus,
        now: datetime,
        last_error: Optional[str] = None
    ) -> bool:
        """Move a claimed row to its terminal state (sent or failed)."""
        if status not in (ScheduleStatus.SENT, ScheduleStatus.FAILED):
            raise ValueError(f"Cannot complete a claim with status '{status.value}'")

        values = {"status": status, "updated_at": now, "completed_at": now}
        if last_error is not None:
            values["last_error"] = last_error

        stmt = update(ScheduledMessage).where(
            ScheduledMessage.id == message_id,
            ScheduledMessage.status == ScheduleStatus.CLAIMED,
            ScheduledMessage.claim_token == claim_token
        ).values(**values)
        result = await self.session.exec(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    async def cancel_pending(self, lead_id: uuid.UUID, stage_id: str, now: datetime) -> int:
        """Cancel rows for the lead and stage that have not been claimed yet."""
        stmt = update(ScheduledMessage).where(
            ScheduledMessage.lead_id == lead_id,
            ScheduledMessage.stage_id == stage_id,
            ScheduledMessage.status == ScheduleStatus.PENDING
        ).values(status=ScheduleStatus.CANCELLED, updated_at=now, completed_at=now)
        result = await self.session.exec(stmt.execution_options(synchronize_session=False))
        return result.rowcount
