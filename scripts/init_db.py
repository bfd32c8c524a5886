"""Initialise the database schema and seed reference rows.

Run once to create all tables, the specification statuses and the
system AI account:
    python -m scripts.init_db
"""

import asyncio
import os

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from specsynth.db.models import Base, SpecificationStatus, User

logger = structlog.get_logger()

STATUSES = ("draft", "published")


async def init() -> None:
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "specsynth")
    user = os.getenv("POSTGRES_USER", "specsynth")
    password = os.getenv("POSTGRES_PASSWORD", "specsynth-dev")
    database_url = os.getenv(
        "DATABASE_URL", f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"
    )
    logger.info("init_db", url=database_url.split("@")[-1])  # log host only

    engine = create_async_engine(database_url, echo=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        async with session.begin():
            existing = set((await session.execute(select(SpecificationStatus.name))).scalars())
            for name in STATUSES:
                if name not in existing:
                    session.add(SpecificationStatus(name=name))
                    logger.info("init_db.status_created", status=name)

            ai_role = os.getenv("AI_USER_ROLE", "AI")
            ai_user = (await session.execute(
                select(User).where(User.role == ai_role).limit(1)
            )).scalar_one_or_none()
            if ai_user is None:
                session.add(User(name="AI Synthesizer", email="ai@specsynth.local", role=ai_role))
                logger.info("init_db.ai_user_created", role=ai_role)

    await engine.dispose()
    logger.info("init_db.done")


if __name__ == "__main__":
    asyncio.run(init())
