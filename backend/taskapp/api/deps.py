"""FastAPI dependencies: verified identity from the access token."""

from fastapi import Request

from taskapp.core.auth import Identity, verify_access_token
from taskapp.core.errors import AuthError, InvalidTokenError


def get_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise AuthError("Authorization header required")
    token = auth_header[7:].strip()
    if not token:
        raise AuthError("Authorization header required")
    return token


async def get_identity(request: Request) -> Identity:
    """Verify the access token's signature and expiry only; no database lookup."""
    token = get_bearer_token(request)
    try:
        return verify_access_token(token)
    except InvalidTokenError:
        raise AuthError("Invalid or expired access token")
