"""
Pipeline service - gated stage moves.
"""
import uuid
import logging
from typing import Callable, List, Optional
from datetime import datetime

from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.config import Settings, settings as default_settings
from pipeline_journey.core.clock import utcnow
from pipeline_journey.core.exceptions import NotFoundError, StageConflictError
from pipeline_journey.models.pipeline import LeadStageChange, PipelineStage
from pipeline_journey.repositories.lead_repo import LeadRepository
from pipeline_journey.repositories.pipeline_repo import StageRepository, StageChangeRepository
from pipeline_journey.repositories.schedule_repo import ScheduledMessageRepository
from pipeline_journey.schemas.pipeline import MoveResponse
from pipeline_journey.services.events import StageEntered, StageEnteredListener
from pipeline_journey.services.integrations.base import CalendarProvider
from pipeline_journey.services.journey_scheduler import JourneyScheduler
from pipeline_journey.services.transition_gate import StageTransitionGate

logger = logging.getLogger(__name__)


class PipelineStateStore:
    """
    Sole writer of a lead's stage.

    Moves are compare-and-set on the stage the gate saw. Listeners receive
    StageEntered synchronously in the same session, before the caller commits.
    """

    def __init__(self, session: AsyncSession):
        self.lead_repo = LeadRepository(session)
        self.change_repo = StageChangeRepository(session)
        self.listeners: List[StageEnteredListener] = []

    def subscribe(self, listener: StageEnteredListener):
        self.listeners.append(listener)

    async def apply_move(
        self,
        lead_id: uuid.UUID,
        target_stage_id: str,
        expected_stage_id: str,
        entered_at: Optional[datetime] = None
    ) -> str:
        """Move the lead and emit StageEntered. Returns the previous stage id."""
        entered_at = entered_at or utcnow()

        moved = await self.lead_repo.compare_and_set_stage(
            lead_id, expected_stage_id, target_stage_id, entered_at
        )
        if not moved:
            if not await self.lead_repo.get_current(lead_id):
                raise NotFoundError("Lead", str(lead_id))
            raise StageConflictError(str(lead_id), expected_stage_id)

        await self.change_repo.add(LeadStageChange(
            lead_id=lead_id,
            from_stage_id=expected_stage_id,
            to_stage_id=target_stage_id,
            entered_at=entered_at
        ))
        # The CAS bypasses the identity map; reload so later reads see the move
        await self.lead_repo.get_current(lead_id)

        logger.info(
            f"Lead {lead_id} moved '{expected_stage_id}' -> '{target_stage_id}'",
            extra={"lead_id": str(lead_id), "stage_id": target_stage_id}
        )

        event = StageEntered(
            lead_id=lead_id,
            stage_id=target_stage_id,
            entered_at=entered_at,
            previous_stage_id=expected_stage_id
        )
        for listener in self.listeners:
            await listener(event)

        return expected_stage_id


class PipelineService:
    """Service for pipeline operations."""

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[Settings] = None,
        calendar: Optional[CalendarProvider] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session = session
        self.config = config or default_settings
        self.clock = clock
        self.stage_repo = StageRepository(session)
        self.schedule_repo = ScheduledMessageRepository(session)
        self.gate = StageTransitionGate(session, calendar)
        self.store = PipelineStateStore(session)
        self.scheduler = JourneyScheduler(session, self.config)
        self._scheduled_count = 0
        self.store.subscribe(self._schedule_journey)

    async def _schedule_journey(self, event: StageEntered):
        messages = await self.scheduler.on_stage_entered(event)
        self._scheduled_count += len(messages)

    async def list_stages(self) -> List[PipelineStage]:
        return await self.stage_repo.list_ordered()

    async def request_move(self, lead_id: uuid.UUID, target_stage_id: str) -> MoveResponse:
        """
        Gate, apply and commit a move.

        Blocked moves are returned, not raised. A move to the lead's current
        stage is allowed but changes nothing. On any error the session is
        rolled back so no partial schedule is left behind.
        """
        self._scheduled_count = 0
        now = self.clock()

        try:
            decision = await self.gate.evaluate(lead_id, target_stage_id, now)
            if not decision.allowed:
                await self.session.rollback()
                return MoveResponse(
                    allowed=False,
                    lead_id=lead_id,
                    target_stage_id=target_stage_id,
                    reason=decision.reason
                )

            if decision.current_stage_id == target_stage_id:
                await self.session.rollback()
                return MoveResponse(
                    allowed=True,
                    lead_id=lead_id,
                    target_stage_id=target_stage_id,
                    previous_stage_id=decision.current_stage_id
                )

            previous_stage_id = await self.store.apply_move(
                lead_id, target_stage_id, decision.current_stage_id, now
            )

            if self.config.JOURNEY_CANCEL_ON_STAGE_EXIT:
                cancelled = await self.schedule_repo.cancel_pending(lead_id, previous_stage_id, now)
                if cancelled:
                    logger.info(
                        f"Cancelled {cancelled} pending message(s) for lead {lead_id} leaving '{previous_stage_id}'",
                        extra={"lead_id": str(lead_id), "stage_id": previous_stage_id}
                    )

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        return MoveResponse(
            allowed=True,
            lead_id=lead_id,
            target_stage_id=target_stage_id,
            previous_stage_id=previous_stage_id,
            scheduled_count=self._scheduled_count
        )
