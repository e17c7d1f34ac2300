"""
Calendar event model - owned by the calendar collaborator.
The core only reads it to check meeting preconditions.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from pipeline_journey.core.clock import utcnow
from pipeline_journey.models.enums import CalendarEventType, enum_column


class CalendarEvent(SQLModel, table=True):
    __tablename__ = "calendar_event"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    lead_id: uuid.UUID = Field(foreign_key="lead.id", index=True)

    title: Optional[str] = None
    event_type: CalendarEventType = Field(
        default=CalendarEventType.MEETING, sa_type=enum_column(CalendarEventType)
    )
    starts_at: datetime = Field(index=True)
    ends_at: Optional[datetime] = None
    completed: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utcnow)
