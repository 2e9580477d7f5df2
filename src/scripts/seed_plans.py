"""
Seed script for the initial plan catalog (Free, Start, Pro, Elite, Master).

Run with:
    python -m src.scripts.seed_plans

Existing plans are left untouched.
"""

import asyncio

import structlog

from src.config.database import Base, database
from src.core.observability import configure_logging
from src.domains.plans.service import PlanService

logger = structlog.get_logger(__name__)


async def seed_plans() -> int:
    """Create the catalog plans that do not exist yet. Returns how many were created."""
    from src.domains import models  # noqa: F401

    engine = database.init()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        async with database.session() as session:
            created = await PlanService(session).ensure_initial_plans()
    finally:
        await database.dispose()

    logger.info("plans_seeded", created=created)
    return created


if __name__ == "__main__":
    configure_logging()
    asyncio.run(seed_plans())
