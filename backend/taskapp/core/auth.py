"""Password hashing and JWT creation/verification."""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt
from starlette.concurrency import run_in_threadpool

from taskapp.config import settings
from taskapp.core.errors import InvalidTokenError

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class Identity:
    """Verified caller identity decoded from a token."""

    user_id: int
    email: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


def hash_password(password: str) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit)."""
    pwd_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(pwd_bytes, bcrypt.gensalt(rounds=settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify password with bcrypt. A malformed or empty hash never matches."""
    if not password_hash:
        return False
    plain_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(plain_bytes, password_hash.encode("utf-8"))
    except ValueError:
        return False


async def hash_password_async(password: str) -> str:
    return await run_in_threadpool(hash_password, password)


async def verify_password_async(plain_password: str, password_hash: str | None) -> bool:
    return await run_in_threadpool(verify_password, plain_password, password_hash)


def hash_refresh_token(token: str) -> str:
    """SHA256 hash of refresh token for storage."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _secret_for(token_type: str) -> str:
    if token_type == REFRESH:
        return settings.jwt_refresh_secret
    return settings.jwt_access_secret


def _encode(user_id: int, email: str, token_type: str, lifetime: timedelta) -> tuple[str, datetime]:
    now = datetime.now(timezone.utc)
    expire = now + lifetime
    payload = {
        "sub": str(user_id),
        "email": email,
        "type": token_type,
        "iat": now,
        "exp": expire,
        # Unique per token so two tokens minted in the same second still differ
        "jti": secrets.token_urlsafe(16),
    }
    result = jwt.encode(payload, _secret_for(token_type), algorithm=settings.jwt_algorithm)
    token = result if isinstance(result, str) else result.decode("utf-8")
    return token, expire


def create_access_token(user_id: int, email: str) -> str:
    token, _ = _encode(user_id, email, ACCESS, timedelta(minutes=settings.access_token_expire_minutes))
    return token


def create_refresh_token(user_id: int, email: str) -> tuple[str, datetime]:
    """Return (token, expires_at). Caller must hash and store the token."""
    return _encode(user_id, email, REFRESH, timedelta(days=settings.refresh_token_expire_days))


def issue_tokens(user_id: int, email: str) -> TokenPair:
    access = create_access_token(user_id, email)
    refresh, refresh_expires_at = create_refresh_token(user_id, email)
    return TokenPair(access_token=access, refresh_token=refresh, refresh_expires_at=refresh_expires_at)


def decode_token(token: str, token_type: str = ACCESS) -> dict[str, Any]:
    """Decode and verify signature/expiry. Raises JWTError."""
    return jwt.decode(token, _secret_for(token_type), algorithms=[settings.jwt_algorithm])


def _verify(token: str, token_type: str) -> Identity:
    if not token:
        raise InvalidTokenError("Empty token")
    try:
        payload = decode_token(token, token_type)
    except JWTError as e:
        raise InvalidTokenError(str(e)) from e
    if payload.get("type") != token_type:
        raise InvalidTokenError("Wrong token type")
    email = payload.get("email")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError) as e:
        raise InvalidTokenError("Invalid subject") from e
    if not isinstance(email, str):
        raise InvalidTokenError("Invalid email claim")
    return Identity(user_id=user_id, email=email)


def verify_access_token(token: str) -> Identity:
    return _verify(token, ACCESS)


def verify_refresh_token(token: str) -> Identity:
    return _verify(token, REFRESH)
