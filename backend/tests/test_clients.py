# tests/test_clients.py - Client router tests
import pytest
from httpx import AsyncClient
from sqlalchemy import select, func

from models import ClientCategory, Task, TaskComment
from tests.conftest import get_auth_headers


async def _create_client(client: AsyncClient, headers: dict, name: str) -> dict:
    resp = await client.post("/api/v1/clients", json={"name": name}, headers=headers)
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_create_client_provisions_default_categories(client: AsyncClient, test_user):
    """A new client comes with exactly the tasks, gtm and recurring buckets"""
    headers = get_auth_headers(test_user)
    data = await _create_client(client, headers, "Acme")

    assert data["name"] == "Acme"
    assert data["user_id"] == test_user.id
    assert [c["category"] for c in data["categories"]] == ["tasks", "gtm", "recurring"]
    assert [c["label"] for c in data["categories"]] == ["Tasks", "GTM Tasks", "Recurring Tasks"]
    assert all(c["client_id"] == data["id"] for c in data["categories"])


@pytest.mark.asyncio
async def test_clients_with_same_name_do_not_collide(client: AsyncClient, test_user, db_session):
    headers = get_auth_headers(test_user)
    first = await _create_client(client, headers, "Acme")
    second = await _create_client(client, headers, "Acme")
    assert first["id"] != second["id"]

    for created in (first, second):
        result = await db_session.execute(
            select(ClientCategory.category).where(ClientCategory.client_id == created["id"])
        )
        assert sorted(result.scalars().all()) == ["gtm", "recurring", "tasks"]


@pytest.mark.asyncio
async def test_categories_belong_only_to_their_client(client: AsyncClient, test_user):
    headers = get_auth_headers(test_user)
    acme = await _create_client(client, headers, "Acme")
    globex = await _create_client(client, headers, "Globex")

    resp = await client.get(f"/api/v1/clients/{acme['id']}/categories", headers=headers)
    assert resp.status_code == 200
    categories = resp.json()
    assert {c["category"] for c in categories} == {"tasks", "gtm", "recurring"}
    assert all(c["client_id"] == acme["id"] for c in categories)
    assert not {c["id"] for c in categories} & {c["id"] for c in globex["categories"]}


@pytest.mark.asyncio
async def test_list_clients_with_task_counts(client: AsyncClient, test_user):
    headers = get_auth_headers(test_user)
    acme = await _create_client(client, headers, "Acme")
    await _create_client(client, headers, "Beta")

    for category in ("gtm", "gtm", "recurring"):
        await client.post(
            "/api/v1/tasks",
            json={"name": f"{category} work", "client_id": acme["id"], "category": category},
            headers=headers,
        )

    resp = await client.get("/api/v1/clients", params={"order": "name"}, headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert [c["name"] for c in data] == ["Acme", "Beta"]

    counts = {c["category"]: c["task_count"] for c in data[0]["categories"]}
    assert counts == {"tasks": 0, "gtm": 2, "recurring": 1}
    assert data[0]["task_count"] == 3
    assert data[1]["task_count"] == 0


@pytest.mark.asyncio
async def test_rename_client(client: AsyncClient, test_user):
    headers = get_auth_headers(test_user)
    acme = await _create_client(client, headers, "Acme")

    resp = await client.patch(f"/api/v1/clients/{acme['id']}", json={"name": "Acme Corp"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["name"] == "Acme Corp"
    assert len(resp.json()["categories"]) == 3


@pytest.mark.asyncio
async def test_delete_client_cascades(client: AsyncClient, test_user, db_session):
    """Deleting a client removes its categories, tasks and the tasks' comments"""
    headers = get_auth_headers(test_user)
    acme = await _create_client(client, headers, "Acme")
    task = (await client.post(
        "/api/v1/tasks", json={"name": "Kickoff", "client_id": acme["id"]}, headers=headers,
    )).json()
    await client.post(f"/api/v1/tasks/{task['id']}/comments", json={"comment_text": "hi"}, headers=headers)

    resp = await client.delete(f"/api/v1/clients/{acme['id']}", headers=headers)
    assert resp.status_code == 200

    resp = await client.get(f"/api/v1/clients/{acme['id']}", headers=headers)
    assert resp.status_code == 404

    for model, column, value in (
        (ClientCategory, ClientCategory.client_id, acme["id"]),
        (Task, Task.client_id, acme["id"]),
        (TaskComment, TaskComment.task_id, task["id"]),
    ):
        result = await db_session.execute(select(func.count(model.id)).where(column == value))
        assert result.scalar() == 0


@pytest.mark.asyncio
async def test_foreign_client_is_rejected_not_hidden(client: AsyncClient, test_user, other_user):
    """Another user's client id yields 403 for read, update and delete"""
    acme = await _create_client(client, get_auth_headers(test_user), "Acme")
    intruder = get_auth_headers(other_user)

    resp = await client.get(f"/api/v1/clients/{acme['id']}", headers=intruder)
    assert resp.status_code == 403
    resp = await client.get(f"/api/v1/clients/{acme['id']}/categories", headers=intruder)
    assert resp.status_code == 403
    resp = await client.patch(f"/api/v1/clients/{acme['id']}", json={"name": "Mine"}, headers=intruder)
    assert resp.status_code == 403
    resp = await client.delete(f"/api/v1/clients/{acme['id']}", headers=intruder)
    assert resp.status_code == 403

    resp = await client.get("/api/v1/clients", headers=intruder)
    assert resp.json() == []

    resp = await client.get(f"/api/v1/clients/{acme['id']}", headers=get_auth_headers(test_user))
    assert resp.json()["name"] == "Acme"


@pytest.mark.asyncio
async def test_missing_client_is_404(client: AsyncClient, test_user):
    resp = await client.get("/api/v1/clients/does-not-exist", headers=get_auth_headers(test_user))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_clients_require_auth(client: AsyncClient):
    resp = await client.get("/api/v1/clients")
    assert resp.status_code in (401, 403)
