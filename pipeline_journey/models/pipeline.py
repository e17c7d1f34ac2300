"""
Pipeline models - stage catalog and the stage change audit trail.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from pipeline_journey.core.clock import utcnow
from pipeline_journey.models.enums import EntryRule, enum_column


class PipelineStage(SQLModel, table=True):
    """
    A named position in the sales pipeline.
    Edited only by the settings module; read-only to the core.
    """
    __tablename__ = "pipeline_stage"

    id: str = Field(primary_key=True)  # slug, e.g. "proposal-sent"
    name: str
    sort_order: int = Field(default=0, index=True)
    color: Optional[str] = None

    # Explicit gating rule, set at configuration time
    entry_rule: EntryRule = Field(default=EntryRule.NONE, sa_type=enum_column(EntryRule))

    created_at: datetime = Field(default_factory=utcnow)


class LeadStageChange(SQLModel, table=True):
    """
    Append-only record of every applied stage move.
    entered_at is the instant the lead entered to_stage_id and keys the
    journey messages scheduled for that entry.
    """
    __tablename__ = "lead_stage_change"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    lead_id: uuid.UUID = Field(foreign_key="lead.id", index=True)
    from_stage_id: Optional[str] = None
    to_stage_id: str = Field(index=True)
    entered_at: datetime = Field(default_factory=utcnow, index=True)
