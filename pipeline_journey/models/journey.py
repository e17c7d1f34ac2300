"""
Journey models - message templates, scheduled messages and dispatch history.
Scheduled messages snapshot everything they need at schedule time, so later
template edits never change messages already scheduled.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field
from sqlalchemy import Index, UniqueConstraint

from pipeline_journey.core.clock import utcnow
from pipeline_journey.models.enums import (
    DelayUnit, MessageType, ScheduleStatus, enum_column
)


class JourneyMessageTemplate(SQLModel, table=True):
    """
    Message configured to fire a fixed delay after a lead enters a stage.
    Edited only by the settings module; read-only to the core.
    """
    __tablename__ = "journey_message_template"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    stage_id: str = Field(foreign_key="pipeline_stage.id", index=True)

    # Content
    title: str
    content: str
    message_type: MessageType = Field(default=MessageType.TEXT, sa_type=enum_column(MessageType))
    media_url: Optional[str] = None

    # Delay relative to stage entry
    delay_value: int = Field(gt=0)
    delay_unit: DelayUnit = Field(default=DelayUnit.MINUTES, sa_type=enum_column(DelayUnit))

    # Display tie-break only, never used for scheduling
    order: int = Field(default=0)

    # Per-message destination override
    webhook_url: Optional[str] = None

    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ScheduledMessage(SQLModel, table=True):
    """
    Durable record of one journey message due for one lead.
    Created by the journey scheduler, mutated only by claim/complete
    operations of the dispatch worker, never deleted.
    """
    __tablename__ = "scheduled_message"
    __table_args__ = (
        UniqueConstraint(
            "lead_id", "stage_id", "entered_at", "template_id",
            name="uq_scheduled_message_entry_template"
        ),
        Index("ix_scheduled_message_due", "status", "scheduled_for"),
        Index("ix_scheduled_message_lead_stage", "lead_id", "stage_id"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    lead_id: uuid.UUID = Field(foreign_key="lead.id")
    stage_id: str
    template_id: uuid.UUID
    entered_at: datetime

    # Lead snapshot
    lead_name: Optional[str] = None
    lead_phone: Optional[str] = None
    lead_email: Optional[str] = None

    # Template snapshot
    message_title: str
    message_content: str
    message_type: MessageType = Field(default=MessageType.TEXT, sa_type=enum_column(MessageType))
    media_url: Optional[str] = None
    template_order: int = Field(default=0)
    webhook_url: Optional[str] = None  # NULL when nothing was configured at entry

    # Delivery state
    scheduled_for: datetime
    status: ScheduleStatus = Field(default=ScheduleStatus.PENDING, sa_type=enum_column(ScheduleStatus))
    claim_token: Optional[str] = None
    claimed_by: Optional[str] = None
    claim_expires_at: Optional[datetime] = None
    attempts: int = Field(default=0)
    last_error: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class DispatchHistoryEntry(SQLModel, table=True):
    """
    Immutable record of one dispatch attempt and its outcome.
    Lead, stage and message fields are denormalized for reporting.
    """
    __tablename__ = "dispatch_history"
    __table_args__ = (
        Index("ix_dispatch_history_lead_sent", "lead_id", "sent_at"),
        Index("ix_dispatch_history_stage_sent", "stage_id", "sent_at"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    schedule_id: uuid.UUID = Field(foreign_key="scheduled_message.id", index=True)

    # Denormalized identifiers
    lead_id: uuid.UUID
    stage_id: str
    template_id: Optional[uuid.UUID] = None
    lead_name: Optional[str] = None
    message_title: Optional[str] = None
    message_type: Optional[str] = None
    webhook_url: Optional[str] = None

    # Outcome
    attempt: int = Field(default=1)
    success: bool
    status_code: Optional[int] = None
    error_class: Optional[str] = None
    error_message: Optional[str] = None
    is_final: bool = Field(default=False)

    sent_at: datetime = Field(default_factory=utcnow, index=True)
