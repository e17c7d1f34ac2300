"""
Canonical enums for pipeline stages and journey messages.

All enums are string enums (str, Enum) so they serialize as their values in
JSON and are stored as their values in the database.
"""
import enum
from datetime import timedelta

from sqlalchemy import Enum as SAEnum


class EntryRule(str, enum.Enum):
    """Precondition a lead must satisfy before entering a stage."""
    NONE = "none"
    REQUIRES_LINKED_PROPOSAL = "requires_linked_proposal"
    REQUIRES_SCHEDULED_MEETING = "requires_scheduled_meeting"


class BlockReason(str, enum.Enum):
    PROPOSAL_REQUIRED = "ProposalRequired"
    MEETING_REQUIRED = "MeetingRequired"


class MessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"


class DelayUnit(str, enum.Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

    def to_timedelta(self, value: int) -> timedelta:
        if self is DelayUnit.MINUTES:
            return timedelta(minutes=value)
        if self is DelayUnit.HOURS:
            return timedelta(hours=value)
        return timedelta(days=value)


class ScheduleStatus(str, enum.Enum):
    """
    Delivery state of a scheduled journey message.

    Transitions only move forward:
    pending -> claimed -> sent | failed, and pending -> cancelled.
    An expired claim may be re-claimed (claimed -> claimed, new token).
    """
    PENDING = "pending"
    CLAIMED = "claimed"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DispatchErrorClass(str, enum.Enum):
    HTTP_STATUS = "HttpStatus"
    TIMEOUT = "Timeout"
    CONNECTION_ERROR = "ConnectionError"
    NO_WEBHOOK_CONFIGURED = "NoWebhookConfigured"


class CalendarEventType(str, enum.Enum):
    MEETING = "meeting"
    CALL = "call"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


def enum_column(enum_cls: type) -> SAEnum:
    """Column type storing an enum's values as plain strings."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )
