"""Tests for the REST API."""

from __future__ import annotations

import copy

import httpx
import pytest
import pytest_asyncio

from conftest import APPROVAL_WORKFLOW
from bpm_engine.main import create_app

ALICE = {"X-User-Id": "alice"}


@pytest_asyncio.fixture
async def client(engine):
    app = create_app(engine=engine)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def create_expense(client) -> dict:
    body = {"id": "expense", **copy.deepcopy(APPROVAL_WORKFLOW)}
    response = await client.post("/api/definitions", json=body, headers={"X-User-Id": "dave"})
    assert response.status_code == 201
    return response.json()


async def start_expense(client, amount=250) -> dict:
    await create_expense(client)
    response = await client.post(
        "/api/instances",
        json={"definition_id": "expense", "data": {"amount": amount}},
        headers={"X-User-Id": "dave"},
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_health_and_root(client):
    health = (await client.get("/health")).json()
    assert health["status"] == "healthy"
    assert health["engine_running"] is True
    assert (await client.get("/")).json()["status"] == "running"


@pytest.mark.asyncio
async def test_engine_not_running_returns_503():
    app = create_app()
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/instances")
        health = (await client.get("/health")).json()

    assert response.status_code == 503
    assert (health["status"], health["engine_running"]) == ("starting", False)


# --- Node catalog ---


@pytest.mark.asyncio
async def test_node_catalog(client):
    response = await client.get("/api/nodes")
    types = {n["type"] for n in response.json()}
    assert {"start", "end", "approval", "timer", "parallel", "api", "crud"} <= types

    human = await client.get("/api/nodes", params={"group": "human"})
    assert {n["type"] for n in human.json()} == {"task", "approval", "form"}

    condition = (await client.get("/api/nodes/condition")).json()
    assert [o["name"] for o in condition["outputs"]] == ["true", "false"]
    assert "expression" in condition["configSchema"]["properties"]

    assert (await client.get("/api/nodes/switch")).json()["dynamicOutputs"] is True
    assert (await client.get("/api/nodes/teleport")).status_code == 404


# --- Definitions ---


@pytest.mark.asyncio
async def test_definition_versions(client):
    first = await create_expense(client)
    second = await create_expense(client)

    assert (first["id"], first["version"]) == ("expense", 1)
    assert second["version"] == 2
    assert first["definition"]["nodes"][1]["config"]["assignee"] == "group:managers"

    listed = (await client.get("/api/definitions")).json()
    assert listed == [
        {
            "id": "expense",
            "version": 2,
            "name": "Expense approval",
            "description": None,
            "node_count": 5,
            "edge_count": 4,
        }
    ]
    assert (await client.get("/api/definitions/expense", params={"version": 1})).json()["version"] == 1
    assert (await client.get("/api/definitions/expense", params={"version": 7})).status_code == 404
    assert (await client.get("/api/definitions/missing")).status_code == 404


@pytest.mark.asyncio
async def test_invalid_definition_is_rejected(client):
    body = {
        "name": "broken",
        "nodes": [{"id": "start", "type": "start"}, {"id": "x", "type": "teleport"}],
        "edges": [{"source": "start", "target": "x"}],
    }
    response = await client.post("/api/definitions", json=body)

    assert response.status_code == 422
    assert "teleport" in response.json()["detail"]


@pytest.mark.asyncio
async def test_definition_request_needs_nodes(client):
    response = await client.post("/api/definitions", json={"name": "empty", "nodes": []})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_openapi_documents_definition_example(client):
    schemas = (await client.get("/openapi.json")).json()["components"]["schemas"]

    example = schemas["DefinitionCreateRequest"]["example"]
    assert example["name"] == "Expense approval"
    assert [n["id"] for n in example["nodes"]] == ["start", "approve", "end"]


# --- Instances and tasks ---


@pytest.mark.asyncio
async def test_approval_round_trip(client):
    started = await start_expense(client)
    assert started["status"] == "running"
    assert started["current_node_ids"] == ["approve"]

    tasks = (await client.get("/api/tasks", params={"assignee": "alice", "status": "pending"})).json()
    assert len(tasks) == 1
    task = tasks[0]
    assert task["title"] == "Approve 250 EUR"
    assert task["assignee_type"] == "group"

    response = await client.post(
        f"/api/tasks/{task['id']}/complete",
        json={"decision": "approved", "data": {"comment": "fine"}},
        headers=ALICE,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    detail = (await client.get(f"/api/instances/{started['id']}")).json()
    assert detail["status"] == "completed"
    assert detail["current_node_ids"] == ["done"]
    assert detail["data"]["comment"] == "fine"
    assert [h["action"] for h in detail["history"]] == [
        "instance_started",
        "task_created",
        "task_completed",
        "instance_completed",
    ]
    assert detail["open_tasks"] == []


@pytest.mark.asyncio
async def test_task_error_mapping(client):
    await start_expense(client)
    task_id = (await client.get("/api/tasks", params={"assignee": "managers"})).json()[0]["id"]
    url = f"/api/tasks/{task_id}/complete"

    assert (await client.post(url, json={"decision": "approved"})).status_code == 401
    assert (await client.post(url, json={"decision": "approved"}, headers={"X-User-Id": "mallory"})).status_code == 403
    assert (await client.post(url, json={"decision": "perhaps"}, headers=ALICE)).status_code == 422
    assert (await client.post("/api/tasks/missing/complete", json={}, headers=ALICE)).status_code == 404

    assert (await client.post(url, json={"decision": "rejected"}, headers=ALICE)).status_code == 200
    assert (await client.post(url, json={"decision": "approved"}, headers=ALICE)).status_code == 409


@pytest.mark.asyncio
async def test_claim_task(client):
    await start_expense(client)
    task_id = (await client.get("/api/tasks")).json()[0]["id"]

    claimed = await client.post(f"/api/tasks/{task_id}/claim", headers={"X-User-Id": "bob"})
    assert claimed.status_code == 200
    assert claimed.json()["status"] == "in_progress"
    assert claimed.json()["claimed_by"] == "bob"

    assert (await client.post(f"/api/tasks/{task_id}/claim", headers=ALICE)).status_code == 403
    assert (await client.get(f"/api/tasks/{task_id}")).json()["claimed_by"] == "bob"
    assert (await client.get("/api/tasks/missing")).status_code == 404


@pytest.mark.asyncio
async def test_start_unknown_definition(client):
    response = await client.post("/api/instances", json={"definition_id": "nope"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cancel_instance(client):
    started = await start_expense(client)
    url = f"/api/instances/{started['id']}/cancel"

    response = await client.post(url, headers={"X-User-Id": "dave"})
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["open_tasks"] == []

    # Repeating the cancel is harmless
    assert (await client.post(url)).status_code == 200
    assert (await client.post("/api/instances/missing/cancel")).status_code == 404

    tasks = (await client.get("/api/tasks", params={"instance_id": started["id"]})).json()
    assert [t["status"] for t in tasks] == ["cancelled"]


@pytest.mark.asyncio
async def test_cancel_completed_instance_conflicts(client):
    started = await start_expense(client)
    task_id = (await client.get("/api/tasks")).json()[0]["id"]
    await client.post(f"/api/tasks/{task_id}/complete", json={"decision": "approved"}, headers=ALICE)

    assert (await client.post(f"/api/instances/{started['id']}/cancel")).status_code == 409


@pytest.mark.asyncio
async def test_list_instances(client):
    started = await start_expense(client)

    listed = (await client.get("/api/instances", params={"status": "running"})).json()
    assert [i["id"] for i in listed] == [started["id"]]
    assert listed[0]["started_by"] == "dave"
    assert (await client.get("/api/instances", params={"status": "completed"})).json() == []
    assert (await client.get("/api/instances/missing")).status_code == 404


@pytest.mark.asyncio
async def test_subscriptions(client, store):
    started = await start_expense(client)
    url = f"/api/instances/{started['id']}/subscribe"

    assert (await client.post(url)).status_code == 401
    subscribed = (await client.post(url, headers={"X-User-Id": "erin"})).json()
    assert (subscribed["success"], subscribed["subscribed"], subscribed["user_id"]) == (True, True, "erin")
    assert await store.list_subscribers(started["id"]) == ["erin"]

    unsubscribed = await client.delete(url, headers={"X-User-Id": "erin"})
    assert unsubscribed.json()["subscribed"] is False
    assert await store.list_subscribers(started["id"]) == []
    assert (await client.post("/api/instances/missing/subscribe", headers={"X-User-Id": "erin"})).status_code == 404


@pytest.mark.asyncio
async def test_event_stream_requires_user(client):
    assert (await client.get("/api/events/stream")).status_code == 401


@pytest.mark.asyncio
async def test_reassign_task(client):
    await start_expense(client)
    task_id = (await client.get("/api/tasks")).json()[0]["id"]
    url = f"/api/tasks/{task_id}/reassign"

    assert (await client.post(url, json={"assignee": "user:carol"})).status_code == 401
    assert (await client.post(url, json={"assignee": "user:carol"}, headers={"X-User-Id": "mallory"})).status_code == 403
    assert (await client.post(url, json={"assignee": "group:empty"}, headers=ALICE)).status_code == 422
    assert (await client.post(url, json={"assignee": ""}, headers=ALICE)).status_code == 422
    assert (await client.post("/api/tasks/missing/reassign", json={"assignee": "bob"}, headers=ALICE)).status_code == 404

    moved = await client.post(url, json={"assignee": "group:finance"}, headers=ALICE)
    assert moved.status_code == 200
    assert (moved.json()["assignee_type"], moved.json()["assignee_id"]) == ("group", "finance")
    assert [t["id"] for t in (await client.get("/api/tasks", params={"assignee": "carol"})).json()] == [task_id]

    await client.post(f"/api/tasks/{task_id}/claim", headers={"X-User-Id": "carol"})
    response = await client.post(url, json={"assignee": "user:alice"}, headers={"X-User-Id": "carol"})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_task_statistics(client):
    await start_expense(client)
    task_id = (await client.get("/api/tasks")).json()[0]["id"]
    await client.post(f"/api/tasks/{task_id}/claim", headers={"X-User-Id": "bob"})

    stats = (await client.get("/api/tasks/statistics")).json()
    assert stats == {"total": 1, "pending": 0, "in_progress": 1, "completed": 0, "cancelled": 0, "overdue": 0}
    assert (await client.get("/api/tasks/statistics", params={"assignee": "carol"})).json()["total"] == 0


@pytest.mark.asyncio
async def test_notification_inbox(client):
    await start_expense(client)
    bob = {"X-User-Id": "bob"}

    assert (await client.get("/api/notifications")).status_code == 401
    notes = (await client.get("/api/notifications", headers=ALICE)).json()
    assert [n["kind"] for n in notes] == ["task_assigned"]
    assert notes[0]["read"] is False
    assert (await client.get("/api/notifications/unread-count", headers=ALICE)).json() == {"count": 1}

    url = f"/api/notifications/{notes[0]['id']}"
    assert (await client.put(f"{url}/read", headers=bob)).status_code == 404
    read = await client.put(f"{url}/read", headers=ALICE)
    assert read.status_code == 200
    assert read.json()["read"] is True
    assert read.json()["read_at"] is not None
    assert (await client.get("/api/notifications", params={"unread_only": True}, headers=ALICE)).json() == []

    assert (await client.put("/api/notifications/mark-all-read", headers=bob)).json() == {"updated": 1}
    assert (await client.get("/api/notifications/unread-count", headers=bob)).json() == {"count": 0}

    assert (await client.delete(url, headers=bob)).status_code == 404
    assert (await client.delete(url, headers=ALICE)).status_code == 204
    assert (await client.get("/api/notifications", headers=ALICE)).json() == []
    assert (await client.delete(url, headers=ALICE)).status_code == 404
