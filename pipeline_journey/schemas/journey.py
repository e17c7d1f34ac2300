"""
Journey schemas - scheduled messages, dispatch history and worker runs.
"""
import uuid
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, field_validator

from pipeline_journey.core.clock import to_naive_utc
from pipeline_journey.models.enums import MessageType, ScheduleStatus


class ScheduledMessageResponse(BaseModel):
    """Scheduled journey message."""
    id: uuid.UUID
    lead_id: uuid.UUID
    stage_id: str
    template_id: uuid.UUID
    entered_at: datetime
    lead_name: Optional[str]
    message_title: str
    message_type: MessageType
    media_url: Optional[str]
    webhook_url: Optional[str]
    scheduled_for: datetime
    status: ScheduleStatus
    attempts: int
    last_error: Optional[str]
    created_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class CancelPendingRequest(BaseModel):
    """Cancel still-pending messages of a lead for one stage."""
    lead_id: uuid.UUID
    stage_id: str


class CancelPendingResponse(BaseModel):
    lead_id: uuid.UUID
    stage_id: str
    cancelled: int


class HistoryFilter(BaseModel):
    """Dispatch history filtering options."""
    lead_id: Optional[uuid.UUID] = None
    stage_id: Optional[str] = None
    schedule_id: Optional[uuid.UUID] = None
    success: Optional[bool] = None
    sent_after: Optional[datetime] = None
    sent_before: Optional[datetime] = None

    @field_validator("sent_after", "sent_before")
    @classmethod
    def normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value) if value else value


class HistoryEntryResponse(BaseModel):
    """Dispatch history entry."""
    id: uuid.UUID
    schedule_id: uuid.UUID
    lead_id: uuid.UUID
    stage_id: str
    template_id: Optional[uuid.UUID]
    lead_name: Optional[str]
    message_title: Optional[str]
    message_type: Optional[str]
    webhook_url: Optional[str]
    attempt: int
    success: bool
    status_code: Optional[int]
    error_class: Optional[str]
    error_message: Optional[str]
    is_final: bool
    sent_at: datetime

    class Config:
        from_attributes = True


class DispatchRunResponse(BaseModel):
    """Summary of one dispatch worker tick."""
    worker_id: str
    claimed: int
    sent: int
    failed: int
    abandoned: int
