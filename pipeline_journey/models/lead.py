"""
Lead model - the entity that moves through the pipeline.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from pipeline_journey.core.clock import utcnow


class Lead(SQLModel, table=True):
    """
    Lead entity - represents a potential customer/contact.
    Owns exactly one current pipeline stage; stage_id only changes
    through an approved transition.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    # Basic info
    name: str = Field(index=True)
    company: Optional[str] = None

    # Contact info
    phone: Optional[str] = None
    email: Optional[str] = Field(default=None, index=True)

    # Pipeline position
    stage_id: str = Field(foreign_key="pipeline_stage.id", index=True)

    # Linked proposal (owned by the proposals collaborator)
    proposal_id: Optional[uuid.UUID] = Field(default=None, index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
