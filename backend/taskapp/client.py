"""
Async API client for the task tracker. Token state lives in an explicit ClientSession
backed by a pluggable TokenStorage (memory or JSON file), so callers and tests never
share process-wide token state.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class SessionExpiredError(ApiError):
    def __init__(self) -> None:
        super().__init__(401, "Session expired. Please login again.")


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    refresh_token: str

    @classmethod
    def from_payload(cls, payload: dict) -> "AuthTokens":
        return cls(access_token=payload["accessToken"], refresh_token=payload["refreshToken"])


class TokenStorage(Protocol):
    def load(self) -> AuthTokens | None: ...

    def save(self, tokens: AuthTokens) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStorage:
    def __init__(self, tokens: AuthTokens | None = None) -> None:
        self._tokens = tokens

    def load(self) -> AuthTokens | None:
        return self._tokens

    def save(self, tokens: AuthTokens) -> None:
        self._tokens = tokens

    def clear(self) -> None:
        self._tokens = None


class FileTokenStorage:
    """Tokens persisted as JSON; the file is created with owner-only permissions."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> AuthTokens | None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return AuthTokens(access_token=data["access_token"], refresh_token=data["refresh_token"])
        except FileNotFoundError:
            return None
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring unreadable token file %s", self.path)
            return None

    def save(self, tokens: AuthTokens) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"access_token": tokens.access_token, "refresh_token": tokens.refresh_token}, f)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class ClientSession:
    """Current token pair for one client; set on login/refresh, cleared on logout or failed refresh."""

    def __init__(self, storage: TokenStorage | None = None) -> None:
        self.storage = storage or MemoryTokenStorage()

    @property
    def tokens(self) -> AuthTokens | None:
        return self.storage.load()

    @property
    def access_token(self) -> str | None:
        tokens = self.tokens
        return tokens.access_token if tokens else None

    @property
    def refresh_token(self) -> str | None:
        tokens = self.tokens
        return tokens.refresh_token if tokens else None

    @property
    def is_authenticated(self) -> bool:
        return self.tokens is not None

    def set_tokens(self, tokens: AuthTokens) -> None:
        self.storage.save(tokens)

    def clear(self) -> None:
        self.storage.clear()


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return fallback


class TaskApiClient:
    """Thin async wrapper over the HTTP API. Retries once after a transparent token refresh on 401."""

    def __init__(
        self,
        base_url: str,
        session: ClientSession | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.session = session or ClientSession()
        self._http = httpx.AsyncClient(base_url=base_url.rstrip("/"), transport=transport, timeout=timeout)

    async def __aenter__(self) -> "TaskApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _public(self, method: str, url: str, json_body: Any = None, fallback: str = "Request failed") -> dict:
        r = await self._http.request(method, url, json=json_body)
        if r.status_code >= 400:
            raise ApiError(r.status_code, _error_message(r, fallback))
        return r.json()

    async def _authed(self, method: str, url: str, json_body: Any = None, params: dict | None = None) -> dict:
        access = self.session.access_token
        headers = {"Authorization": f"Bearer {access}"} if access else {}
        r = await self._http.request(method, url, json=json_body, params=params, headers=headers)
        if r.status_code == 401 and access:
            if not await self.refresh():
                self.session.clear()
                raise SessionExpiredError()
            headers = {"Authorization": f"Bearer {self.session.access_token}"}
            r = await self._http.request(method, url, json=json_body, params=params, headers=headers)
        if r.status_code >= 400:
            raise ApiError(r.status_code, _error_message(r, "Request failed"))
        return r.json()

    async def refresh(self) -> bool:
        """Rotate the stored refresh token. Returns False (without raising) if the server refuses."""
        refresh_token = self.session.refresh_token
        if not refresh_token:
            return False
        try:
            r = await self._http.post("/api/auth/refresh", json={"refreshToken": refresh_token})
        except httpx.HTTPError as e:
            logger.warning("Token refresh request failed: %s", e)
            return False
        if r.status_code != 200:
            return False
        data = r.json()
        tokens = (data.get("data") or {}).get("tokens")
        if not data.get("success") or not tokens:
            return False
        self.session.set_tokens(AuthTokens.from_payload(tokens))
        return True

    async def register(self, email: str, password: str, name: str) -> dict:
        result = await self._public(
            "POST", "/api/auth/register", {"email": email, "password": password, "name": name}, "Registration failed"
        )
        self.session.set_tokens(AuthTokens.from_payload(result["data"]["tokens"]))
        return result["data"]["user"]

    async def login(self, email: str, password: str) -> dict:
        result = await self._public("POST", "/api/auth/login", {"email": email, "password": password}, "Login failed")
        self.session.set_tokens(AuthTokens.from_payload(result["data"]["tokens"]))
        return result["data"]["user"]

    async def logout(self) -> None:
        """Revoke this client's refresh token server-side; local tokens are cleared regardless."""
        try:
            if self.session.is_authenticated:
                await self._authed("POST", "/api/auth/logout", {"refreshToken": self.session.refresh_token})
        except (ApiError, httpx.HTTPError) as e:
            logger.info("Logout request failed, clearing local session anyway: %s", e)
        finally:
            self.session.clear()

    async def me(self) -> dict:
        return (await self._authed("GET", "/api/auth/me"))["data"]["user"]

    async def list_tasks(
        self,
        page: int | None = None,
        limit: int | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> dict:
        """Return {"data": [...], "pagination": {...}} as sent by the server."""
        params = {k: v for k, v in {"page": page, "limit": limit, "status": status, "search": search}.items() if v}
        return await self._authed("GET", "/api/tasks", params=params)

    async def get_task(self, task_id: int | str) -> dict:
        return (await self._authed("GET", f"/api/tasks/{task_id}"))["data"]["task"]

    async def create_task(self, title: str, **fields: Any) -> dict:
        return (await self._authed("POST", "/api/tasks", {"title": title, **fields}))["data"]["task"]

    async def update_task(self, task_id: int | str, **fields: Any) -> dict:
        return (await self._authed("PATCH", f"/api/tasks/{task_id}", fields))["data"]["task"]

    async def delete_task(self, task_id: int | str) -> None:
        await self._authed("DELETE", f"/api/tasks/{task_id}")

    async def toggle_task(self, task_id: int | str) -> dict:
        return (await self._authed("PATCH", f"/api/tasks/{task_id}/toggle"))["data"]["task"]
