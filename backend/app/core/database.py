from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def create_engine_for(database_url: str) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        # One shared connection, otherwise every session sees its own :memory: database
        return create_async_engine(
            database_url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(
        database_url,
        echo=False,
        # Sweeper + request handlers share the pool
        pool_size=20,
        max_overflow=20,
        pool_timeout=10,
    )


def get_session_maker(engine: AsyncEngine):
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def init_models(engine: AsyncEngine):
    """Create missing tables (safe to call on every startup)."""
    # Register every model on Base.metadata
    from backend.app.models import tournament_model, match_model, leaderboard_model, rating_model  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
