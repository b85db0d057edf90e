"""Delete expired tokens.

Standalone maintenance script. Expiry is already enforced at verification
time, so this only keeps the tokens table small; run it from cron.

Usage:
    cd backend && python -m scripts.purge_expired_tokens
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.services.token_service import TokenService

logger = logging.getLogger(__name__)


async def run_purge(session: AsyncSession) -> int:
    """Delete expired tokens in ``session`` and commit.

    Args:
        session: Active async database session.

    Returns:
        Number of deleted tokens.
    """
    deleted = await TokenService(session).purge_expired()
    await session.commit()
    return deleted


async def main() -> None:
    """CLI entry point: purge against the configured database."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from storefront.core.config import settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        deleted = await run_purge(session)

    await engine.dispose()

    logger.info("Purged %d expired tokens", deleted)


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
