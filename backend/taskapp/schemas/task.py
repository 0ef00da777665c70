"""Pydantic schemas for the tasks API (create, partial update, list query)."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from taskapp.models.task import TaskPriority, TaskStatus

TITLE_MAX_LENGTH = 255
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
# Keeps (page - 1) * limit inside a BIGINT offset; later pages are simply empty
MAX_PAGE = 2**31 - 1

_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")

_STATUSES = {s.value for s in TaskStatus}
_PRIORITIES = {p.value for p in TaskPriority}


def parse_due_date(value: str) -> datetime:
    """Parse ISO date or datetime; date-only becomes midnight UTC, naive times are UTC."""
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as e:
        raise ValueError("Invalid date format") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime | None) -> str | None:
    """ISO-8601 string; naive values (SQLite) are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _check_title(value: object) -> str:
    if not isinstance(value, str):
        raise ValueError("Title is required")
    title = value.strip()
    if len(title) < 1:
        raise ValueError("Title cannot be empty")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValueError("Title must be less than 255 characters")
    return title


def _check_description(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("Description must be a string")
    return value.strip() or None


def _check_status(value: object) -> str:
    if not isinstance(value, str) or value not in _STATUSES:
        raise ValueError("Status must be pending, in_progress, or completed")
    return value


def _check_priority(value: object) -> str:
    if not isinstance(value, str) or value not in _PRIORITIES:
        raise ValueError("Priority must be low, medium, or high")
    return value


def _check_due_date(value: object) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        raise ValueError("Due date must be a string")
    return parse_due_date(value)


class _TaskFieldChecks(BaseModel):
    """Shared field validation for create and update bodies; first failing field wins."""

    model_config = ConfigDict(extra="ignore")

    @field_validator("title", mode="before", check_fields=False)
    @classmethod
    def check_title(cls, v: object) -> str:
        return _check_title(v)

    @field_validator("description", mode="before", check_fields=False)
    @classmethod
    def check_description(cls, v: object) -> str | None:
        return _check_description(v)

    @field_validator("status", mode="before", check_fields=False)
    @classmethod
    def check_status(cls, v: object) -> str:
        return _check_status(v)

    @field_validator("priority", mode="before", check_fields=False)
    @classmethod
    def check_priority(cls, v: object) -> str:
        return _check_priority(v)

    @field_validator("due_date", mode="before", check_fields=False)
    @classmethod
    def check_due_date(cls, v: object) -> datetime | None:
        return _check_due_date(v)


class TaskCreate(_TaskFieldChecks):
    """Body for creating a task. Omitted status/priority take the defaults."""

    title: str
    description: str | None = None
    status: str = TaskStatus.pending.value
    priority: str = TaskPriority.medium.value
    due_date: datetime | None = None


class TaskUpdate(_TaskFieldChecks):
    """Body for updating a task (partial). Only fields present in the request are applied."""

    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    due_date: datetime | None = None

    @model_validator(mode="after")
    def require_any_field(self) -> "TaskUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self

    def changes(self) -> dict:
        """Fields explicitly sent by the client, with their validated values."""
        return self.model_dump(include=self.model_fields_set)


class TaskQuery(BaseModel):
    """Normalized list parameters: page clamped to [1, MAX_PAGE], limit clamped to [1, 100]."""

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    status: str | None = None
    search: str | None = None

    @classmethod
    def from_params(
        cls,
        page: str | int | None = None,
        limit: str | int | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> "TaskQuery":
        return cls(
            page=min(MAX_PAGE, max(1, _to_int(page, DEFAULT_PAGE))),
            limit=min(MAX_LIMIT, max(1, _to_int(limit, DEFAULT_LIMIT))),
            status=status or None,
            search=(search or "").strip() or None,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _to_int(value: str | int | None, default: int) -> int:
    """Leading-integer parse ("2abc" -> 2, " 7" -> 7); no leading digits gives default."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    m = _LEADING_INT_RE.match(value)
    if not m:
        return default
    try:
        return int(m.group(1))
    except ValueError:
        # Beyond the interpreter's int-from-str digit limit
        return default
