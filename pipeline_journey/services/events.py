"""
In-process domain events.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Callable, Awaitable, Any


@dataclass(frozen=True)
class StageEntered:
    """A lead entered a stage. (lead_id, stage_id, entered_at) identifies the entry."""
    lead_id: uuid.UUID
    stage_id: str
    entered_at: datetime
    previous_stage_id: Optional[str] = None


# Listeners run inside the mover's session, before commit
StageEnteredListener = Callable[[StageEntered], Awaitable[Any]]
