"""
Pipeline schemas - stage moves and the stage catalog.
"""
import uuid
from typing import Optional
from pydantic import BaseModel

from pipeline_journey.models.enums import BlockReason, EntryRule


class MoveRequest(BaseModel):
    """Request to move a lead to another pipeline stage."""
    lead_id: uuid.UUID
    target_stage_id: str

    class Config:
        json_schema_extra = {
            "example": {
                "lead_id": "550e8400-e29b-41d4-a716-446655440000",
                "target_stage_id": "meeting"
            }
        }


class MoveResponse(BaseModel):
    """Outcome of a move request. Blocked moves carry a specific reason."""
    allowed: bool
    lead_id: uuid.UUID
    target_stage_id: str
    reason: Optional[BlockReason] = None
    previous_stage_id: Optional[str] = None
    scheduled_count: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "allowed": False,
                "lead_id": "550e8400-e29b-41d4-a716-446655440000",
                "target_stage_id": "meeting",
                "reason": "MeetingRequired",
                "previous_stage_id": None,
                "scheduled_count": 0
            }
        }


class StageResponse(BaseModel):
    """Pipeline stage."""
    id: str
    name: str
    sort_order: int
    color: Optional[str]
    entry_rule: EntryRule

    class Config:
        from_attributes = True
