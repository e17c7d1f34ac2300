"""
Tests for the dispatch history log.
"""
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from pipeline_journey.schemas.journey import HistoryFilter
from pipeline_journey.services.history_service import DispatchOutcome, HistoryService

from factories import make_lead, make_scheduled, seed


BASE = datetime(2024, 1, 1, 12, 0, 0)


@pytest_asyncio.fixture
async def recorded(session_factory, stages):
    """Two leads, five attempts in total, one minute apart."""
    ana, bruno = await seed(session_factory, make_lead(), make_lead(name="Bruno"))
    welcome, contacted = await seed(
        session_factory,
        make_scheduled(ana),
        make_scheduled(bruno, stage_id="contacted"),
    )

    outcomes = [
        (welcome, DispatchOutcome(attempt=1, success=False, status_code=500, error_class="HttpStatus")),
        (welcome, DispatchOutcome(attempt=2, success=True, status_code=200, is_final=True)),
        (contacted, DispatchOutcome(attempt=1, success=False, error_class="Timeout")),
        (contacted, DispatchOutcome(attempt=2, success=False, error_class="Timeout")),
        (contacted, DispatchOutcome(attempt=3, success=True, status_code=204, is_final=True)),
    ]
    async with session_factory() as session:
        service = HistoryService(session)
        for minute, (message, outcome) in enumerate(outcomes):
            outcome.sent_at = BASE + timedelta(minutes=minute)
            await service.record(message, outcome)
        await session.commit()

    return {"ana": ana, "bruno": bruno, "welcome": welcome, "contacted": contacted}


async def collect(session_factory, **kwargs):
    async with session_factory() as session:
        return [entry async for entry in HistoryService(session).query(**kwargs)]


class TestQuery:

    @pytest.mark.asyncio
    async def test_newest_first(self, session_factory, recorded):
        entries = await collect(session_factory)

        assert [e.sent_at for e in entries] == [BASE + timedelta(minutes=m) for m in (4, 3, 2, 1, 0)]

    @pytest.mark.asyncio
    async def test_pages_lazily_and_respects_limit(self, session_factory, recorded):
        all_entries = await collect(session_factory, page_size=2)
        limited = await collect(session_factory, limit=3, page_size=2)

        assert len(all_entries) == 5
        assert [e.id for e in limited] == [e.id for e in all_entries[:3]]

    @pytest.mark.asyncio
    async def test_resumes_before_cursor(self, session_factory, recorded):
        first_two = await collect(session_factory, limit=2)
        cursor = (first_two[-1].sent_at, first_two[-1].id)

        rest = await collect(session_factory, before=cursor)

        assert [e.sent_at for e in rest] == [BASE + timedelta(minutes=m) for m in (2, 1, 0)]

    @pytest.mark.asyncio
    async def test_filters(self, session_factory, recorded):
        by_lead = await collect(session_factory, filters=HistoryFilter(lead_id=recorded["ana"].id))
        by_stage = await collect(session_factory, filters=HistoryFilter(stage_id="contacted"))
        successes = await collect(session_factory, filters=HistoryFilter(success=True))
        window = await collect(session_factory, filters=HistoryFilter(
            sent_after=BASE + timedelta(minutes=1),
            sent_before=BASE + timedelta(minutes=3)
        ))

        assert {e.schedule_id for e in by_lead} == {recorded["welcome"].id}
        assert len(by_stage) == 3
        assert [e.status_code for e in successes] == [204, 200]
        assert len(window) == 3

    @pytest.mark.asyncio
    async def test_entries_denormalize_message(self, session_factory, recorded):
        (entry,) = await collect(session_factory, filters=HistoryFilter(
            schedule_id=recorded["welcome"].id, success=True
        ))

        assert entry.lead_id == recorded["ana"].id
        assert entry.lead_name == "Ana Souza"
        assert entry.stage_id == "welcome"
        assert entry.template_id == recorded["welcome"].template_id
        assert entry.message_title == "Welcome"
        assert entry.message_type == "text"
        assert entry.attempt == 2
        assert entry.is_final is True


class TestListPage:

    @pytest.mark.asyncio
    async def test_paginated_response(self, session_factory, recorded):
        async with session_factory() as session:
            page = await HistoryService(session).list_page(HistoryFilter(), page=2, limit=2)

        assert page["total"] == 5
        assert page["pages"] == 3
        assert page["has_next"] is True
        assert page["has_prev"] is True
        assert [e.sent_at for e in page["items"]] == [BASE + timedelta(minutes=m) for m in (2, 1)]
