"""
Test factories and helpers.
"""
import json
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

import httpx
from sqlmodel import select

from pipeline_journey.models import (
    Lead, JourneyMessageTemplate, ScheduledMessage, DispatchHistoryEntry
)
from pipeline_journey.models.enums import DelayUnit
from pipeline_journey.services.integrations.webhook import HttpWebhookDispatcher


WEBHOOK_URL = "https://hooks.example.com/journey"


class FixedClock:
    """Settable clock passed wherever services accept `clock`."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class WebhookReceiver:
    """Scripted webhook endpoint backed by httpx.MockTransport."""

    def __init__(self, responses: Optional[List] = None, default_status: int = 200):
        self.responses = list(responses or [])
        self.default_status = default_status
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if self.responses else self.default_status
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"ok": outcome < 300})

    def payloads(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]

    def dispatcher(self, secret: str = "", timeout: float = 5.0) -> HttpWebhookDispatcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return HttpWebhookDispatcher(timeout=timeout, secret=secret, client=client)


async def seed(session_factory, *objects):
    async with session_factory() as session:
        session.add_all(objects)
        await session.commit()
    return objects


async def fetch_all(session_factory, model, *criteria, order_by=None) -> list:
    async with session_factory() as session:
        query = select(model)
        if criteria:
            query = query.where(*criteria)
        if order_by is not None:
            query = query.order_by(order_by)
        result = await session.exec(query)
        return result.all()


async def fetch_one(session_factory, model, id):
    async with session_factory() as session:
        return await session.get(model, id)


async def history_for(session_factory, schedule_id) -> List[DispatchHistoryEntry]:
    return await fetch_all(
        session_factory, DispatchHistoryEntry,
        DispatchHistoryEntry.schedule_id == schedule_id,
        order_by=DispatchHistoryEntry.attempt
    )


def make_lead(stage_id: str = "new", **overrides) -> Lead:
    data = dict(
        name="Ana Souza",
        company="Acme",
        phone="+5511999990000",
        email="ana@example.com",
        stage_id=stage_id,
    )
    data.update(overrides)
    return Lead(**data)


def make_template(stage_id: str = "welcome", **overrides) -> JourneyMessageTemplate:
    data = dict(
        stage_id=stage_id,
        title="Welcome",
        content="Hi, welcome aboard!",
        delay_value=1,
        delay_unit=DelayUnit.DAYS,
        order=0,
    )
    data.update(overrides)
    return JourneyMessageTemplate(**data)


def make_scheduled(lead: Lead, **overrides) -> ScheduledMessage:
    """A message as the journey scheduler would have written it, due at 09:30."""
    entered_at = overrides.pop("entered_at", datetime(2024, 1, 1, 9, 0, 0))
    data = dict(
        lead_id=lead.id,
        stage_id="welcome",
        template_id=uuid.uuid4(),
        entered_at=entered_at,
        lead_name=lead.name,
        lead_phone=lead.phone,
        lead_email=lead.email,
        message_title="Welcome",
        message_content="Hi, welcome aboard!",
        webhook_url=WEBHOOK_URL,
        scheduled_for=entered_at + timedelta(minutes=30),
    )
    data.update(overrides)
    return ScheduledMessage(**data)
