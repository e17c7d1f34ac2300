"""
Shared fixtures.

Each test gets its own SQLite file database. The pool holds a single
connection, so concurrent coroutines take turns on the database the way
separate transactions would. Tests must not keep one session open while
another is in use.
"""
from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.config import Settings
from pipeline_journey.database import init_db
from pipeline_journey.models import PipelineStage
from pipeline_journey.models.enums import EntryRule

from factories import FixedClock, make_lead, seed


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'journey.db'}",
        pool_size=1,
        max_overflow=0
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        JOURNEY_WEBHOOK_URL=None,
        JOURNEY_WEBHOOK_SECRET="",
        JOURNEY_CANCEL_ON_STAGE_EXIT=False,
        DISPATCH_BATCH_SIZE=50,
        CLAIM_TTL_SECONDS=300,
        WEBHOOK_TIMEOUT_SECONDS=5.0,
        MAX_DISPATCH_ATTEMPTS=5,
        RETRY_BASE_DELAY_SECONDS=1.0,
        RETRY_MAX_DELAY_SECONDS=30.0,
        WORKER_PARTITION_COUNT=1,
        WORKER_PARTITION_INDEX=0,
    )


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 1, 10, 0, 0))


@pytest.fixture
def sleeps():
    """Fake asyncio.sleep recording the requested backoff delays."""
    recorded = []

    async def fake_sleep(seconds: float):
        recorded.append(seconds)

    fake_sleep.recorded = recorded
    return fake_sleep


@pytest_asyncio.fixture
async def stages(session_factory):
    return await seed(
        session_factory,
        PipelineStage(id="new", name="New", sort_order=0),
        PipelineStage(id="contacted", name="Contacted", sort_order=1),
        PipelineStage(
            id="proposal", name="Proposal Sent", sort_order=2,
            entry_rule=EntryRule.REQUIRES_LINKED_PROPOSAL
        ),
        PipelineStage(
            id="meeting", name="Meeting", sort_order=3,
            entry_rule=EntryRule.REQUIRES_SCHEDULED_MEETING
        ),
        PipelineStage(id="welcome", name="Welcome", sort_order=4),
    )


@pytest_asyncio.fixture
async def lead(session_factory, stages):
    (lead,) = await seed(session_factory, make_lead())
    return lead
