"""
Refresh-token records: persistence, single-use rotation, revocation, purge.
Access tokens are stateless; only refresh tokens are checked against this store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskapp.core.auth import TokenPair, hash_refresh_token, issue_tokens
from taskapp.core.errors import RefreshTokenNotFound, RefreshTokenOwnerMissing
from taskapp.models.refresh_token import RefreshToken
from taskapp.models.user import User

logger = logging.getLogger(__name__)


async def persist(session: AsyncSession, user_id: int, token: str, expires_at: datetime) -> None:
    session.add(
        RefreshToken(
            user_id=user_id,
            token_hash=hash_refresh_token(token),
            expires_at=expires_at,
        )
    )
    await session.flush()


async def issue_and_persist(session: AsyncSession, user: User) -> TokenPair:
    """Mint a token pair for the user and store the refresh half."""
    tokens = issue_tokens(user.id, user.email)
    await persist(session, user.id, tokens.refresh_token, tokens.refresh_expires_at)
    return tokens


async def consume(session: AsyncSession, token: str) -> int:
    """
    Delete the live record for token and return its user id.
    Raises RefreshTokenNotFound if missing, expired, revoked, or consumed concurrently:
    the guarded DELETE affects one row for exactly one caller.
    """
    token_hash = hash_refresh_token(token)
    r = await session.execute(
        select(RefreshToken.id, RefreshToken.user_id).where(
            RefreshToken.token_hash == token_hash,
            RefreshToken.expires_at > datetime.now(timezone.utc),
        )
    )
    row = r.one_or_none()
    if row is None:
        raise RefreshTokenNotFound()
    record_id, user_id = row
    result = await session.execute(
        delete(RefreshToken).where(RefreshToken.id == record_id).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise RefreshTokenNotFound()
    return user_id


async def rotate(session: AsyncSession, token: str) -> tuple[User, TokenPair]:
    """
    Consume token and issue its replacement. Both run in the caller's transaction and
    must be committed (or rolled back) together; nothing here commits.
    Raises RefreshTokenNotFound if the token is not live or its user no longer exists.
    """
    user_id = await consume(session, token)
    r = await session.execute(select(User).where(User.id == user_id))
    user = r.scalar_one_or_none()
    if user is None:
        raise RefreshTokenOwnerMissing()
    tokens = await issue_and_persist(session, user)
    return user, tokens


async def revoke(session: AsyncSession, user_id: int, token: str | None = None) -> int:
    """Delete one of the user's refresh tokens, or all of them when token is None."""
    q = delete(RefreshToken).where(RefreshToken.user_id == user_id)
    if token:
        q = q.where(RefreshToken.token_hash == hash_refresh_token(token))
    result = await session.execute(q.execution_options(synchronize_session=False))
    logger.info("Revoked %s refresh token(s) for user_id=%s (all=%s)", result.rowcount, user_id, token is None)
    return result.rowcount


async def purge_expired(session: AsyncSession) -> int:
    result = await session.execute(
        delete(RefreshToken)
        .where(RefreshToken.expires_at <= datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
