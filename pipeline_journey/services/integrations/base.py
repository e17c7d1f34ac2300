"""
Base interfaces for integration providers.
Abstract base classes for the collaborators the core calls into.
"""
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any


@dataclass
class DeliveryResult:
    """Accepted webhook delivery."""
    status_code: int
    duration_ms: int


class CalendarProvider(ABC):
    """Read-only view of the calendar collaborator."""

    @abstractmethod
    async def has_upcoming_meeting(self, lead_id: uuid.UUID, now: datetime) -> bool:
        """True if the lead has a meeting that is not over yet."""
        pass


class WebhookDispatcher(ABC):
    """Base interface for journey webhook dispatching."""

    @abstractmethod
    async def dispatch(
        self,
        url: str,
        payload: Dict[str, Any],
        idempotency_key: Optional[str] = None
    ) -> DeliveryResult:
        """
        POST the payload to url.

        Returns a DeliveryResult on any 2xx response and raises
        WebhookDeliveryError for timeouts, connection errors and
        non-2xx responses.
        """
        pass
