"""
Tests for journey scheduling on stage entry.
"""
from datetime import datetime, timedelta, timezone

import pytest

from pipeline_journey.core.exceptions import ValidationError
from pipeline_journey.models import JourneyMessageTemplate, ScheduledMessage, SystemSettings
from pipeline_journey.models.enums import DelayUnit, MessageType, ScheduleStatus
from pipeline_journey.services.events import StageEntered
from pipeline_journey.services.journey_scheduler import (
    JourneyScheduler, WebhookUrlResolver, normalize_delay, is_usable_webhook_url
)

from factories import fetch_all, make_template, seed


ENTERED_AT = datetime(2024, 1, 1, 10, 0, 0)


async def schedule(session_factory, config, event):
    async with session_factory() as session:
        messages = await JourneyScheduler(session, config).on_stage_entered(event)
        await session.commit()
    return messages


class TestNormalizeDelay:

    @pytest.mark.parametrize("value, unit, expected", [
        (15, DelayUnit.MINUTES, timedelta(minutes=15)),
        (2, "hours", timedelta(hours=2)),
        (1, DelayUnit.DAYS, timedelta(days=1)),
    ])
    def test_units(self, value, unit, expected):
        assert normalize_delay(value, unit) == expected

    @pytest.mark.parametrize("value, unit", [(0, "days"), (-1, "hours"), (3, "weeks")])
    def test_rejects_invalid(self, value, unit):
        with pytest.raises(ValidationError):
            normalize_delay(value, unit)


class TestScheduling:

    @pytest.mark.asyncio
    async def test_welcome_scenario(self, session_factory, lead, test_settings):
        (template,) = await seed(session_factory, make_template(webhook_url="https://hooks.example.com/welcome"))

        messages = await schedule(
            session_factory, test_settings, StageEntered(lead.id, "welcome", ENTERED_AT)
        )

        assert len(messages) == 1
        stored = await fetch_all(session_factory, ScheduledMessage)
        assert len(stored) == 1
        assert stored[0].scheduled_for == datetime(2024, 1, 2, 10, 0, 0)
        assert stored[0].status == ScheduleStatus.PENDING
        assert stored[0].template_id == template.id
        assert stored[0].attempts == 0

    @pytest.mark.asyncio
    async def test_one_row_per_active_template(self, session_factory, lead, test_settings):
        await seed(
            session_factory,
            make_template(title="Thanks", delay_value=30, delay_unit=DelayUnit.MINUTES, order=0),
            make_template(title="Brochure", delay_value=2, delay_unit=DelayUnit.HOURS, order=1,
                          message_type=MessageType.IMAGE, media_url="https://cdn.example.com/b.png"),
            make_template(title="Check in", delay_value=3, delay_unit=DelayUnit.DAYS, order=2),
            make_template(title="Retired", delay_value=1, is_active=False),
            make_template(stage_id="contacted", title="Other stage"),
        )

        await schedule(session_factory, test_settings, StageEntered(lead.id, "welcome", ENTERED_AT))

        stored = await fetch_all(session_factory, ScheduledMessage, order_by=ScheduledMessage.scheduled_for)
        assert [(m.message_title, m.scheduled_for) for m in stored] == [
            ("Thanks", ENTERED_AT + timedelta(minutes=30)),
            ("Brochure", ENTERED_AT + timedelta(hours=2)),
            ("Check in", ENTERED_AT + timedelta(days=3)),
        ]
        assert stored[1].message_type == MessageType.IMAGE
        assert stored[1].media_url == "https://cdn.example.com/b.png"

    @pytest.mark.asyncio
    async def test_redelivered_event_creates_no_duplicates(self, session_factory, lead, test_settings):
        await seed(session_factory, make_template(), make_template(title="Second", order=1))
        event = StageEntered(lead.id, "welcome", ENTERED_AT)

        first = await schedule(session_factory, test_settings, event)
        second = await schedule(session_factory, test_settings, event)

        assert len(first) == 2
        assert second == []
        assert len(await fetch_all(session_factory, ScheduledMessage)) == 2

    @pytest.mark.asyncio
    async def test_reentry_is_a_new_event(self, session_factory, lead, test_settings):
        await seed(session_factory, make_template())

        await schedule(session_factory, test_settings, StageEntered(lead.id, "welcome", ENTERED_AT))
        await schedule(
            session_factory, test_settings,
            StageEntered(lead.id, "welcome", ENTERED_AT + timedelta(days=5))
        )

        assert len(await fetch_all(session_factory, ScheduledMessage)) == 2

    @pytest.mark.asyncio
    async def test_stage_without_templates(self, session_factory, lead, test_settings):
        messages = await schedule(session_factory, test_settings, StageEntered(lead.id, "contacted", ENTERED_AT))

        assert messages == []
        assert await fetch_all(session_factory, ScheduledMessage) == []

    @pytest.mark.asyncio
    async def test_aware_entry_time_is_stored_as_utc(self, session_factory, lead, test_settings):
        await seed(session_factory, make_template(delay_value=1, delay_unit=DelayUnit.HOURS))
        entered_at = datetime(2024, 1, 1, 7, 0, 0, tzinfo=timezone(timedelta(hours=-3)))

        await schedule(session_factory, test_settings, StageEntered(lead.id, "welcome", entered_at))

        (stored,) = await fetch_all(session_factory, ScheduledMessage)
        assert stored.entered_at == ENTERED_AT
        assert stored.scheduled_for == ENTERED_AT + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_snapshot_survives_template_edits(self, session_factory, lead, test_settings):
        (template,) = await seed(session_factory, make_template(content="Original"))
        await schedule(session_factory, test_settings, StageEntered(lead.id, "welcome", ENTERED_AT))

        async with session_factory() as session:
            stored_template = await session.get(JourneyMessageTemplate, template.id)
            stored_template.content = "Edited"
            stored_template.delay_value = 7
            session.add(stored_template)
            await session.commit()

        (stored,) = await fetch_all(session_factory, ScheduledMessage)
        assert stored.message_content == "Original"
        assert stored.scheduled_for == ENTERED_AT + timedelta(days=1)
        assert stored.lead_name == lead.name
        assert stored.lead_phone == lead.phone
        assert stored.lead_email == lead.email


class TestWebhookUrlResolution:

    @pytest.mark.asyncio
    async def test_unresolved_url_still_schedules(self, session_factory, lead, test_settings):
        await seed(session_factory, make_template())

        await schedule(session_factory, test_settings, StageEntered(lead.id, "welcome", ENTERED_AT))

        (stored,) = await fetch_all(session_factory, ScheduledMessage)
        assert stored.webhook_url is None
        assert stored.status == ScheduleStatus.PENDING

    @pytest.mark.asyncio
    async def test_precedence(self, session_factory, lead, test_settings):
        config = test_settings.model_copy(update={"JOURNEY_WEBHOOK_URL": "https://config.example.com/hook"})
        override, plain = await seed(
            session_factory,
            make_template(webhook_url="https://template.example.com/hook"),
            make_template(title="Plain", webhook_url="  "),
        )

        async with session_factory() as session:
            resolver = WebhookUrlResolver(session, config)
            assert await resolver.resolve(override) == "https://template.example.com/hook"
            assert await resolver.resolve(plain) == "https://config.example.com/hook"

        await seed(session_factory, SystemSettings(journey_webhook_url="https://system.example.com/hook"))

        async with session_factory() as session:
            resolver = WebhookUrlResolver(session, config)
            assert await resolver.resolve(override) == "https://template.example.com/hook"
            assert await resolver.resolve(plain) == "https://system.example.com/hook"

    @pytest.mark.parametrize("url, usable", [
        ("https://hooks.example.com/x", True),
        ("http://localhost:8080/hook", True),
        ("", False),
        (None, False),
        ("   ", False),
        ("ftp://files.example.com", False),
    ])
    def test_usable_urls(self, url, usable):
        assert is_usable_webhook_url(url) is usable
