"""Move legacy token rows (``tokens_avulsos``) into the token ledger.

Also materializes plan tokens for current admin-granted plans. Runs on every
startup and is a no-op once everything has been migrated.

Run standalone with:
    python -m src.migrations.migrate_legacy_tokens
"""
import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config.database import _get_async_database_url
from src.domains.tokens.migration import TokenMigrationService
from src.domains.tokens.schemas import MigrationResult

logger = structlog.get_logger(__name__)


async def migrate(database_url: str) -> MigrationResult:
    """Run the complete token migration against ``database_url``."""
    engine = create_async_engine(_get_async_database_url(database_url))
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_factory() as db:
            result = await TokenMigrationService(db).run_complete_migration()
    finally:
        await engine.dispose()

    for error in result.total_errors:
        logger.warning("token_migration_error", error=error)
    return result


async def main():
    """Run migration with the configured database URL."""
    from src.config.settings import settings
    from src.core.observability import configure_logging

    configure_logging()
    result = await migrate(settings.DATABASE_URL)
    logger.info(
        "token_migration_done",
        tokens_migrated=result.tokens_migrated,
        plan_tokens_generated=result.plan_tokens_generated,
        errors=len(result.total_errors),
    )


if __name__ == "__main__":
    asyncio.run(main())
