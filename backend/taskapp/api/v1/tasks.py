"""Tasks API: user-scoped CRUD, completion toggle, and filtered/paginated listing."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from taskapp.api.deps import get_identity
from taskapp.core.auth import Identity
from taskapp.db.session import get_db
from taskapp.models.task import Task
from taskapp.schemas.pagination import PaginatedResponse, Pagination
from taskapp.schemas.task import DEFAULT_LIMIT, TaskCreate, TaskQuery, TaskUpdate, to_iso
from taskapp.services import tasks as task_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tasks", tags=["tasks"])


def _row_to_response(row: Task) -> dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "title": row.title,
        "description": row.description,
        "status": row.status,
        "priority": row.priority,
        "due_date": to_iso(row.due_date),
        "created_at": to_iso(row.created_at),
        "updated_at": to_iso(row.updated_at),
    }


@router.get(
    "",
    response_model=PaginatedResponse,
    summary="List tasks",
    responses={401: {"description": "Not authenticated"}},
)
async def list_tasks(
    session: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(get_identity)],
    page: str | None = None,
    limit: str | None = None,
    status: str | None = None,
    search: str | None = None,
):
    """List the current user's tasks, newest first, optionally filtered by status and title search."""
    query = TaskQuery.from_params(page=page, limit=limit, status=status, search=search)
    try:
        result = await task_service.list_tasks(session, identity.user_id, query)
    except Exception:
        logger.exception("List tasks failed for user_id=%s", identity.user_id)
        await session.rollback()
        empty = PaginatedResponse(
            success=False,
            data=[],
            pagination=Pagination.build(page=1, limit=DEFAULT_LIMIT, total=0),
        )
        return JSONResponse(status_code=500, content=empty.model_dump(by_alias=True))
    return PaginatedResponse(
        data=[_row_to_response(r) for r in result.items],
        pagination=Pagination.build(page=result.page, limit=result.limit, total=result.total),
    )


@router.post(
    "",
    status_code=201,
    summary="Create task",
    responses={400: {"description": "Validation failed"}, 401: {"description": "Not authenticated"}},
)
async def create_task(
    session: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(get_identity)],
    body: TaskCreate,
) -> dict:
    task = await task_service.create_task(session, identity.user_id, body)
    await session.commit()
    return {"success": True, "data": {"task": _row_to_response(task)}, "message": "Task created successfully"}


@router.get(
    "/{task_id}",
    summary="Get task",
    responses={401: {"description": "Not authenticated"}, 404: {"description": "Task not found"}},
)
async def get_task(
    session: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(get_identity)],
    task_id: str,
) -> dict:
    task = await task_service.get_task(session, identity.user_id, task_id)
    return {"success": True, "data": {"task": _row_to_response(task)}}


@router.patch(
    "/{task_id}",
    summary="Update task (partial)",
    responses={
        400: {"description": "Validation failed"},
        401: {"description": "Not authenticated"},
        404: {"description": "Task not found"},
    },
)
async def update_task(
    session: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(get_identity)],
    task_id: str,
    body: TaskUpdate,
) -> dict:
    task = await task_service.update_task(session, identity.user_id, task_id, body)
    await session.commit()
    return {"success": True, "data": {"task": _row_to_response(task)}, "message": "Task updated successfully"}


@router.delete(
    "/{task_id}",
    summary="Delete task",
    responses={401: {"description": "Not authenticated"}, 404: {"description": "Task not found"}},
)
async def delete_task(
    session: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(get_identity)],
    task_id: str,
) -> dict:
    await task_service.delete_task(session, identity.user_id, task_id)
    await session.commit()
    return {"success": True, "message": "Task deleted successfully"}


@router.patch(
    "/{task_id}/toggle",
    summary="Toggle task between completed and pending",
    responses={401: {"description": "Not authenticated"}, 404: {"description": "Task not found"}},
)
async def toggle_task(
    session: Annotated[AsyncSession, Depends(get_db)],
    identity: Annotated[Identity, Depends(get_identity)],
    task_id: str,
) -> dict:
    task = await task_service.toggle_task(session, identity.user_id, task_id)
    await session.commit()
    return {"success": True, "data": {"task": _row_to_response(task)}, "message": f"Task marked as {task.status}"}
