from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from .config import settings

# Create Async Engine
engine = create_async_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, future=True)

async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def init_db(bind=None):
    """Create all tables registered on the SQLModel metadata."""
    # Import models so they are registered before create_all
    import pipeline_journey.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncSession:
    async with async_session_maker() as session:
        yield session
