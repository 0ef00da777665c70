"""Tests for tasks API: CRUD, toggle, list filters/pagination, isolation between users."""

import pytest
from httpx import AsyncClient


async def _create(client: AsyncClient, headers: dict, **fields) -> dict:
    body = {"title": "Task", **fields}
    resp = await client.post("/api/tasks", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["task"]


@pytest.mark.asyncio
async def test_create_task_defaults(client: AsyncClient, auth_headers: dict):
    task = await _create(client, auth_headers, title="  Buy milk  ")
    assert task["title"] == "Buy milk"
    assert task["status"] == "pending"
    assert task["priority"] == "medium"
    assert task["description"] is None
    assert task["due_date"] is None
    assert task["created_at"]
    assert task["updated_at"]


@pytest.mark.asyncio
async def test_create_task_all_fields(client: AsyncClient, auth_headers: dict):
    task = await _create(
        client,
        auth_headers,
        title="Report",
        description="Quarterly numbers",
        status="in_progress",
        priority="high",
        due_date="2026-03-01",
    )
    assert task["status"] == "in_progress"
    assert task["priority"] == "high"
    assert task["description"] == "Quarterly numbers"
    assert task["due_date"].startswith("2026-03-01T00:00:00")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload,message",
    [
        ({}, "Title is required"),
        ({"title": "   "}, "Title cannot be empty"),
        ({"title": "x" * 256}, "Title must be less than 255 characters"),
        ({"title": "ok", "status": "done"}, "Status must be pending, in_progress, or completed"),
        ({"title": "ok", "priority": "urgent"}, "Priority must be low, medium, or high"),
        ({"title": "ok", "due_date": "tomorrow"}, "Invalid date format"),
        ({"title": "ok", "description": 5}, "Description must be a string"),
    ],
)
async def test_create_task_validation(client: AsyncClient, auth_headers: dict, payload: dict, message: str):
    resp = await client.post("/api/tasks", json=payload, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": message}


@pytest.mark.asyncio
async def test_tasks_require_auth(client: AsyncClient):
    assert (await client.get("/api/tasks")).status_code == 401
    assert (await client.post("/api/tasks", json={"title": "x"})).status_code == 401
    assert (await client.patch("/api/tasks/1/toggle")).status_code == 401


@pytest.mark.asyncio
async def test_get_task(client: AsyncClient, auth_headers: dict):
    created = await _create(client, auth_headers, title="Read book")
    resp = await client.get(f"/api/tasks/{created['id']}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["task"] == created


@pytest.mark.asyncio
@pytest.mark.parametrize("task_id", ["999999", "abc"])
async def test_get_missing_task(client: AsyncClient, auth_headers: dict, task_id: str):
    resp = await client.get(f"/api/tasks/{task_id}", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "Task not found"}


@pytest.mark.asyncio
async def test_partial_update_changes_only_sent_fields(client: AsyncClient, auth_headers: dict):
    created = await _create(
        client,
        auth_headers,
        title="Plan trip",
        description="Book hotel",
        priority="high",
        due_date="2026-05-10T09:30:00Z",
    )
    resp = await client.patch(
        f"/api/tasks/{created['id']}",
        json={"status": "completed"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    updated = resp.json()["data"]["task"]
    assert updated["status"] == "completed"
    for field in ("title", "description", "priority", "due_date", "created_at"):
        assert updated[field] == created[field]


@pytest.mark.asyncio
async def test_update_can_clear_nullable_fields(client: AsyncClient, auth_headers: dict):
    created = await _create(client, auth_headers, description="note", due_date="2026-01-01")
    resp = await client.patch(
        f"/api/tasks/{created['id']}",
        json={"description": None, "due_date": None},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    task = resp.json()["data"]["task"]
    assert task["description"] is None
    assert task["due_date"] is None
    assert task["title"] == created["title"]


@pytest.mark.asyncio
async def test_update_requires_a_field(client: AsyncClient, auth_headers: dict):
    created = await _create(client, auth_headers)
    resp = await client.patch(f"/api/tasks/{created['id']}", json={"unknown": 1}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "At least one field must be provided"


@pytest.mark.asyncio
async def test_update_validation(client: AsyncClient, auth_headers: dict):
    created = await _create(client, auth_headers)
    resp = await client.patch(f"/api/tasks/{created['id']}", json={"title": ""}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Title cannot be empty"


@pytest.mark.asyncio
async def test_delete_task(client: AsyncClient, auth_headers: dict):
    created = await _create(client, auth_headers)
    resp = await client.delete(f"/api/tasks/{created['id']}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    again = await client.delete(f"/api/tasks/{created['id']}", headers=auth_headers)
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_toggle_pending_twice_returns_to_pending(client: AsyncClient, auth_headers: dict):
    created = await _create(client, auth_headers)
    first = await client.patch(f"/api/tasks/{created['id']}/toggle", headers=auth_headers)
    assert first.json()["data"]["task"]["status"] == "completed"
    second = await client.patch(f"/api/tasks/{created['id']}/toggle", headers=auth_headers)
    assert second.json()["data"]["task"]["status"] == "pending"


@pytest.mark.asyncio
async def test_toggle_in_progress_goes_to_completed(client: AsyncClient, auth_headers: dict):
    created = await _create(client, auth_headers, status="in_progress")
    resp = await client.patch(f"/api/tasks/{created['id']}/toggle", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["task"]["status"] == "completed"
    assert resp.json()["message"] == "Task marked as completed"


@pytest.mark.asyncio
async def test_other_user_cannot_touch_task(client: AsyncClient, auth_headers: dict, other_headers: dict):
    task = await _create(client, auth_headers, title="Private")
    url = f"/api/tasks/{task['id']}"
    responses = [
        await client.get(url, headers=other_headers),
        await client.patch(url, json={"title": "hijacked"}, headers=other_headers),
        await client.patch(f"{url}/toggle", headers=other_headers),
        await client.delete(url, headers=other_headers),
    ]
    for resp in responses:
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Task not found"}

    listed = await client.get("/api/tasks", headers=other_headers)
    assert listed.json()["data"] == []
    assert listed.json()["pagination"]["total"] == 0

    owner_view = await client.get(url, headers=auth_headers)
    assert owner_view.json()["data"]["task"]["title"] == "Private"
    assert owner_view.json()["data"]["task"]["status"] == "pending"


@pytest.mark.asyncio
async def test_list_pagination(client: AsyncClient, auth_headers: dict):
    for i in range(25):
        await _create(client, auth_headers, title=f"Task {i}")

    page1 = (await client.get("/api/tasks?limit=10", headers=auth_headers)).json()
    assert page1["success"] is True
    assert page1["pagination"] == {"page": 1, "limit": 10, "total": 25, "totalPages": 3}
    assert len(page1["data"]) == 10
    # Newest first
    assert page1["data"][0]["title"] == "Task 24"

    page3 = (await client.get("/api/tasks?limit=10&page=3", headers=auth_headers)).json()
    assert len(page3["data"]) == 5
    assert page3["data"][-1]["title"] == "Task 0"

    page4 = (await client.get("/api/tasks?limit=10&page=4", headers=auth_headers)).json()
    assert page4["data"] == []
    assert page4["pagination"]["total"] == 25

    seen = set()
    for page in (1, 2, 3):
        data = (await client.get(f"/api/tasks?limit=10&page={page}", headers=auth_headers)).json()["data"]
        seen.update(t["id"] for t in data)
    assert len(seen) == 25


@pytest.mark.asyncio
async def test_list_params_are_clamped(client: AsyncClient, auth_headers: dict):
    await _create(client, auth_headers)
    resp = await client.get("/api/tasks?limit=1000&page=0", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["pagination"]["limit"] == 100
    assert resp.json()["pagination"]["page"] == 1
    resp = await client.get("/api/tasks?limit=0&page=abc", headers=auth_headers)
    assert resp.json()["pagination"]["limit"] == 1
    assert resp.json()["pagination"]["page"] == 1
    resp = await client.get("/api/tasks", headers=auth_headers)
    assert resp.json()["pagination"]["limit"] == 10


@pytest.mark.asyncio
async def test_list_status_and_search_filters(client: AsyncClient, auth_headers: dict):
    milk = await _create(client, auth_headers, title="Buy MILK")
    await _create(client, auth_headers, title="Buy bread")
    await _create(client, auth_headers, title="Walk dog", status="completed")
    await client.patch(f"/api/tasks/{milk['id']}/toggle", headers=auth_headers)

    completed = (await client.get("/api/tasks?status=completed", headers=auth_headers)).json()
    assert completed["pagination"]["total"] == 2

    search = (await client.get("/api/tasks?search=milk", headers=auth_headers)).json()
    assert [t["title"] for t in search["data"]] == ["Buy MILK"]

    both = (await client.get("/api/tasks?status=completed&search=buy", headers=auth_headers)).json()
    assert [t["id"] for t in both["data"]] == [milk["id"]]
    assert both["pagination"] == {"page": 1, "limit": 10, "total": 1, "totalPages": 1}


@pytest.mark.asyncio
async def test_search_wildcards_match_literally(client: AsyncClient, auth_headers: dict):
    await _create(client, auth_headers, title="100% done")
    await _create(client, auth_headers, title="100 done")
    resp = (await client.get("/api/tasks?search=100%25", headers=auth_headers)).json()
    assert [t["title"] for t in resp["data"]] == ["100% done"]


@pytest.mark.asyncio
async def test_list_degrades_on_store_error(client: AsyncClient, auth_headers: dict, monkeypatch):
    from taskapp.services import tasks as task_service

    async def boom(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(task_service, "list_tasks", boom)
    resp = await client.get("/api/tasks", headers=auth_headers)
    assert resp.status_code == 500
    assert resp.json() == {
        "success": False,
        "data": [],
        "pagination": {"page": 1, "limit": 10, "total": 0, "totalPages": 0},
    }


@pytest.mark.asyncio
async def test_end_to_end_scenario(client: AsyncClient):
    reg = await client.post(
        "/api/auth/register",
        json={"email": "alice@example.com", "password": "password123", "name": "Alice"},
    )
    assert reg.status_code == 201
    headers = {"Authorization": f"Bearer {reg.json()['data']['tokens']['accessToken']}"}

    task = await _create(client, headers, title="Buy milk")
    assert task["status"] == "pending"
    assert task["priority"] == "medium"

    toggled = await client.patch(f"/api/tasks/{task['id']}/toggle", headers=headers)
    assert toggled.json()["data"]["task"]["status"] == "completed"

    listed = (await client.get("/api/tasks?status=completed", headers=headers)).json()
    assert [t["id"] for t in listed["data"]] == [task["id"]]

    assert (await client.delete(f"/api/tasks/{task['id']}", headers=headers)).status_code == 200
    assert (await client.get(f"/api/tasks/{task['id']}", headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_equal_timestamps_page_by_id_descending(client: AsyncClient, test_user, auth_headers: dict):
    from datetime import datetime, timezone

    from taskapp.db.session import async_session_maker
    from taskapp.models.task import Task

    user_id, _, __ = test_user
    stamp = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    async with async_session_maker() as session:
        session.add_all(
            [Task(user_id=user_id, title=f"Same {i}", created_at=stamp, updated_at=stamp) for i in range(7)]
        )
        await session.commit()

    pages = []
    for page in (1, 2, 3):
        resp = await client.get(f"/api/tasks?limit=3&page={page}", headers=auth_headers)
        pages.append([t["id"] for t in resp.json()["data"]])
    assert [len(p) for p in pages] == [3, 3, 1]
    ids = [i for p in pages for i in p]
    assert len(set(ids)) == 7
    assert ids == sorted(ids, reverse=True)


@pytest.mark.asyncio
@pytest.mark.parametrize("task_id", ["99999999999999999999", "0", "-1", "2147483648"])
async def test_out_of_range_task_id_is_not_found(client: AsyncClient, auth_headers: dict, task_id: str):
    url = f"/api/tasks/{task_id}"
    responses = [
        await client.get(url, headers=auth_headers),
        await client.patch(url, json={"title": "x"}, headers=auth_headers),
        await client.patch(f"{url}/toggle", headers=auth_headers),
        await client.delete(url, headers=auth_headers),
    ]
    for resp in responses:
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Task not found"}


@pytest.mark.asyncio
async def test_huge_page_is_empty_with_real_total(client: AsyncClient, auth_headers: dict):
    await _create(client, auth_headers)
    resp = await client.get("/api/tasks?page=99999999999999999999", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"] == []
    assert body["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_page_uses_leading_digits(client: AsyncClient, auth_headers: dict):
    for i in range(3):
        await _create(client, auth_headers, title=f"Task {i}")
    resp = await client.get("/api/tasks?limit=2abc&page=2xyz", headers=auth_headers)
    assert resp.json()["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}
    assert [t["title"] for t in resp.json()["data"]] == ["Task 0"]


@pytest.mark.asyncio
async def test_failed_commit_is_reported_and_nothing_stored(error_client: AsyncClient, monkeypatch):
    from sqlalchemy.ext.asyncio import AsyncSession

    from conftest import create_user

    _, __, token = await create_user()
    headers = {"Authorization": f"Bearer {token}"}

    async def failing_commit(self):
        raise RuntimeError("disk full")

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    resp = await error_client.post("/api/tasks", json={"title": "never stored"}, headers=headers)
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Internal server error"}

    monkeypatch.undo()
    listed = (await error_client.get("/api/tasks", headers=headers)).json()
    assert listed["pagination"]["total"] == 0
