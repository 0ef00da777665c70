"""
Task query engine: user-scoped CRUD, toggle, and filtered/paginated listing.
Every statement filters on user_id; a task that exists but belongs to someone
else is reported exactly like a missing one.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskapp.core.errors import NotFoundError
from taskapp.models.task import Task, TaskStatus
from taskapp.schemas.task import TaskCreate, TaskQuery, TaskUpdate

logger = logging.getLogger(__name__)

TASK_NOT_FOUND = "Task not found"
MAX_TASK_ID = 2**31 - 1


@dataclass
class TaskPage:
    items: list[Task]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _filtered(user_id: int, query: TaskQuery) -> Select:
    q = select(Task).where(Task.user_id == user_id)
    if query.status:
        q = q.where(Task.status == query.status)
    if query.search:
        q = q.where(Task.title.ilike(f"%{_escape_like(query.search)}%", escape="\\"))
    return q


def _parse_task_id(task_id: int | str) -> int:
    try:
        value = int(task_id)
    except (TypeError, ValueError):
        raise NotFoundError(TASK_NOT_FOUND) from None
    # Ids are positive 32-bit serials; anything else cannot name a row
    if not 1 <= value <= MAX_TASK_ID:
        raise NotFoundError(TASK_NOT_FOUND)
    return value


async def list_tasks(session: AsyncSession, user_id: int, query: TaskQuery) -> TaskPage:
    """List the user's tasks, newest first; id breaks created_at ties so pages never overlap."""
    base = _filtered(user_id, query)
    count_q = select(func.count()).select_from(base.subquery())
    total = (await session.execute(count_q)).scalar() or 0
    r = await session.execute(
        base.order_by(Task.created_at.desc(), Task.id.desc()).offset(query.offset).limit(query.limit)
    )
    return TaskPage(items=list(r.scalars().all()), total=total, page=query.page, limit=query.limit)


async def get_task(session: AsyncSession, user_id: int, task_id: int | str) -> Task:
    r = await session.execute(
        select(Task).where(Task.id == _parse_task_id(task_id), Task.user_id == user_id)
    )
    task = r.scalar_one_or_none()
    if task is None:
        raise NotFoundError(TASK_NOT_FOUND)
    return task


async def create_task(session: AsyncSession, user_id: int, body: TaskCreate) -> Task:
    task = Task(
        user_id=user_id,
        title=body.title,
        description=body.description,
        status=body.status,
        priority=body.priority,
        due_date=body.due_date,
    )
    session.add(task)
    await session.flush()
    await session.refresh(task)
    return task


async def update_task(session: AsyncSession, user_id: int, task_id: int | str, body: TaskUpdate) -> Task:
    """Apply only the fields present in body; everything else keeps its stored value."""
    task = await get_task(session, user_id, task_id)
    for field, value in body.changes().items():
        setattr(task, field, value)
    task.updated_at = datetime.now(timezone.utc)
    await session.flush()
    await session.refresh(task)
    return task


async def delete_task(session: AsyncSession, user_id: int, task_id: int | str) -> None:
    task = await get_task(session, user_id, task_id)
    await session.delete(task)
    await session.flush()


def next_toggle_status(status: str) -> str:
    """completed -> pending; pending and in_progress -> completed."""
    if status == TaskStatus.completed.value:
        return TaskStatus.pending.value
    return TaskStatus.completed.value


async def toggle_task(session: AsyncSession, user_id: int, task_id: int | str) -> Task:
    task = await get_task(session, user_id, task_id)
    task.status = next_toggle_status(task.status)
    task.updated_at = datetime.now(timezone.utc)
    await session.flush()
    await session.refresh(task)
    logger.debug("Task %s toggled to %s for user_id=%s", task.id, task.status, user_id)
    return task
