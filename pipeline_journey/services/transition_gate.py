"""
Stage transition gate - decides whether a lead may enter a stage.
"""
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.core.clock import utcnow
from pipeline_journey.core.exceptions import NotFoundError
from pipeline_journey.models.enums import BlockReason, EntryRule
from pipeline_journey.models.lead import Lead
from pipeline_journey.models.pipeline import PipelineStage
from pipeline_journey.repositories.lead_repo import LeadRepository
from pipeline_journey.repositories.pipeline_repo import StageRepository
from pipeline_journey.services.integrations.base import CalendarProvider
from pipeline_journey.services.integrations.calendar import DatabaseCalendarProvider

logger = logging.getLogger(__name__)


@dataclass
class GateDecision:
    allowed: bool
    lead_id: uuid.UUID
    target_stage_id: str
    reason: Optional[BlockReason] = None
    # Stage the lead was in when the decision was taken
    current_stage_id: Optional[str] = None

    @classmethod
    def allow(cls, lead: Lead, stage: PipelineStage) -> "GateDecision":
        return cls(True, lead.id, stage.id, current_stage_id=lead.stage_id)

    @classmethod
    def block(cls, lead: Lead, stage: PipelineStage, reason: BlockReason) -> "GateDecision":
        return cls(False, lead.id, stage.id, reason=reason, current_stage_id=lead.stage_id)


class StageTransitionGate:
    """
    Evaluates a stage's entry rule against the lead's current facts.

    Pure decision: nothing is written. Facts are read at evaluation time, so
    a decision is only as fresh as the moment it was taken; the state store's
    compare-and-set catches anything that changes afterwards.
    """

    def __init__(self, session: AsyncSession, calendar: Optional[CalendarProvider] = None):
        self.lead_repo = LeadRepository(session)
        self.stage_repo = StageRepository(session)
        self.calendar = calendar or DatabaseCalendarProvider(session)

    async def evaluate(
        self,
        lead_id: uuid.UUID,
        target_stage_id: str,
        now: Optional[datetime] = None
    ) -> GateDecision:
        lead = await self.lead_repo.get_current(lead_id)
        if not lead:
            raise NotFoundError("Lead", str(lead_id))

        stage = await self.stage_repo.get(target_stage_id)
        if not stage:
            raise NotFoundError("Stage", target_stage_id)

        if stage.entry_rule == EntryRule.REQUIRES_LINKED_PROPOSAL:
            if lead.proposal_id is None:
                logger.info(
                    f"Move of lead {lead.id} to '{stage.id}' blocked: no linked proposal",
                    extra={"lead_id": str(lead.id), "stage_id": stage.id}
                )
                return GateDecision.block(lead, stage, BlockReason.PROPOSAL_REQUIRED)

        elif stage.entry_rule == EntryRule.REQUIRES_SCHEDULED_MEETING:
            if not await self.calendar.has_upcoming_meeting(lead.id, now or utcnow()):
                logger.info(
                    f"Move of lead {lead.id} to '{stage.id}' blocked: no scheduled meeting",
                    extra={"lead_id": str(lead.id), "stage_id": stage.id}
                )
                return GateDecision.block(lead, stage, BlockReason.MEETING_REQUIRED)

        return GateDecision.allow(lead, stage)
