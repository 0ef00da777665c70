"""Auth: register, login, refresh, logout, me."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskapp.api.deps import get_identity
from taskapp.core.auth import (
    Identity,
    TokenPair,
    hash_password_async,
    verify_password_async,
    verify_refresh_token,
)
from taskapp.core.errors import (
    AuthError,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    RefreshTokenNotFound,
    RefreshTokenOwnerMissing,
)
from taskapp.db.session import get_db
from taskapp.models.user import User
from taskapp.schemas.auth import LoginBody, LogoutBody, RefreshBody, RegisterBody
from taskapp.schemas.task import to_iso
from taskapp.services import sessions

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_CREDENTIALS = "Invalid email or password"


def _user_out(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "created_at": to_iso(user.created_at),
    }


def _tokens_out(tokens: TokenPair) -> dict:
    return {"accessToken": tokens.access_token, "refreshToken": tokens.refresh_token}


@router.post(
    "/register",
    status_code=201,
    summary="Register a new user",
    responses={
        400: {"description": "Validation failed"},
        409: {"description": "Email already registered"},
    },
)
async def register(
    session: Annotated[AsyncSession, Depends(get_db)],
    body: RegisterBody,
) -> dict:
    r = await session.execute(select(User.id).where(User.email == body.email))
    if r.scalar_one_or_none() is not None:
        raise ConflictError("Email already registered")
    password_hash = await hash_password_async(body.password)
    try:
        user = User(email=body.email, password_hash=password_hash, name=body.name)
        session.add(user)
        await session.flush()
        await session.refresh(user)
    except IntegrityError as e:
        # Concurrent registration won the unique index
        logger.warning("Register IntegrityError for duplicate email")
        raise ConflictError("Email already registered") from e
    tokens = await sessions.issue_and_persist(session, user)
    await session.commit()
    logger.info("Registered user_id=%s", user.id)
    return {
        "success": True,
        "data": {"user": _user_out(user), "tokens": _tokens_out(tokens)},
        "message": "Registration successful",
    }


@router.post(
    "/login",
    summary="Login with email and password",
    responses={
        400: {"description": "Validation failed"},
        401: {"description": "Invalid email or password"},
    },
)
async def login(
    session: Annotated[AsyncSession, Depends(get_db)],
    body: LoginBody,
) -> dict:
    r = await session.execute(select(User).where(User.email == body.email))
    user = r.scalar_one_or_none()
    # Same message for unknown email and wrong password
    if not user or not await verify_password_async(body.password, user.password_hash):
        logger.warning("Failed login attempt")
        raise AuthError(INVALID_CREDENTIALS)
    tokens = await sessions.issue_and_persist(session, user)
    await session.commit()
    return {
        "success": True,
        "data": {"user": _user_out(user), "tokens": _tokens_out(tokens)},
        "message": "Login successful",
    }


@router.post(
    "/refresh",
    summary="Exchange refresh token for new access and refresh tokens",
    responses={
        400: {"description": "Refresh token is required"},
        401: {"description": "Refresh token invalid, expired or revoked"},
    },
)
async def refresh_tokens(
    session: Annotated[AsyncSession, Depends(get_db)],
    body: RefreshBody,
) -> dict:
    """Rotate: the presented refresh token is consumed and replaced; reuse fails."""
    try:
        verify_refresh_token(body.refresh_token)
    except InvalidTokenError:
        raise AuthError("Invalid refresh token")
    try:
        _, tokens = await sessions.rotate(session, body.refresh_token)
    except RefreshTokenOwnerMissing as e:
        raise AuthError("User not found") from e
    except RefreshTokenNotFound as e:
        logger.info("Refresh rejected: token expired, revoked or already used")
        raise AuthError("Refresh token expired or revoked") from e
    # Successor tokens are only handed out once the old record's deletion is durable
    await session.commit()
    return {
        "success": True,
        "data": {"tokens": _tokens_out(tokens)},
        "message": "Tokens refreshed successfully",
    }


@router.post(
    "/logout",
    summary="Revoke one refresh token, or all of the user's sessions",
    responses={401: {"description": "Not authenticated or invalid token"}},
)
async def logout(
    session: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(get_identity)],
    body: LogoutBody | None = None,
) -> dict:
    token = body.refresh_token if body else None
    await sessions.revoke(session, identity.user_id, token)
    await session.commit()
    return {"success": True, "message": "Logout successful"}


@router.get(
    "/me",
    summary="Get current authenticated user",
    responses={
        401: {"description": "Not authenticated or invalid token"},
        404: {"description": "User not found"},
    },
)
async def me(
    session: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(get_identity)],
) -> dict:
    r = await session.execute(select(User).where(User.id == identity.user_id))
    user = r.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")
    return {"success": True, "data": {"user": _user_out(user)}}
