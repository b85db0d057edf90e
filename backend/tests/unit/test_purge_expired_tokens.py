"""Tests for the expired-token purge script."""

from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scripts.purge_expired_tokens import run_purge
from storefront.models import Token, TokenType


async def test_run_purge_deletes_only_expired(db_session: AsyncSession):
    now = datetime.now(UTC)
    db_session.add_all(
        [
            Token(
                type=TokenType.RESET,
                secret="a" * 64,
                subject_email="old@example.com",
                expires_at=now - timedelta(minutes=1),
            ),
            Token(
                type=TokenType.VERIFICATION,
                secret="b" * 64,
                subject_email="new@example.com",
                expires_at=now + timedelta(hours=1),
            ),
        ]
    )
    await db_session.commit()

    deleted = await run_purge(db_session)

    assert deleted == 1
    remaining = (await db_session.execute(select(Token.secret))).scalars().all()
    assert remaining == ["b" * 64]


async def test_run_purge_with_nothing_expired(db_session: AsyncSession):
    assert await run_purge(db_session) == 0
