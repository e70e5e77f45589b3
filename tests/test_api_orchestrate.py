"""Tests for workflow orchestration endpoints."""

import pytest


@pytest.fixture
def headers(auth_headers, user_id):
    return auth_headers(user_id)


def _submit(client, headers, task_count=2):
    response = client.post(
        "/api/v1/orchestrate/submit",
        json={
            "title": "Music video",
            "request_data": {"track": "intro.wav"},
            "priority": 2,
            "tasks": [
                {"title": f"Scene {index}", "task_type": "generate_video"}
                for index in range(task_count)
            ],
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["workflow"]


def _status(client, headers, workflow_id):
    response = client.get(f"/api/v1/orchestrate/status/{workflow_id}", headers=headers)
    assert response.status_code == 200
    return response.json()


def test_submit_returns_pending_workflow(client, headers):
    response = client.post(
        "/api/v1/orchestrate/submit",
        json={"title": "Poster", "request_data": {"size": "A2"}},
        headers=headers,
    )

    body = response.json()
    assert response.status_code == 201
    assert body["success"] is True
    assert body["workflow"]["status"] == "pending"
    assert body["workflow"]["assigned_to"] == "aria"
    assert body["next_steps"] == [f"Check status: GET /api/v1/orchestrate/status/{body['workflow']['id']}"]


def test_submit_requires_title(client, headers):
    response = client.post("/api/v1/orchestrate/submit", json={"request_data": {}}, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Missing required field: title"


def test_task_lifecycle_and_progress(client, headers):
    workflow = _submit(client, headers)
    first, second = [task["id"] for task in _status(client, headers, workflow["id"])["tasks"]]

    started = client.post(f"/api/v1/orchestrate/tasks/{first}/start", headers=headers)
    completed = client.post(
        f"/api/v1/orchestrate/tasks/{first}/complete",
        json={"output_data": {"clip": "scene0.mp4"}},
        headers=headers,
    )
    status = _status(client, headers, workflow["id"])

    assert started.json()["data"]["status"] == "in_progress"
    assert completed.json()["data"]["task"]["status"] == "completed"
    assert completed.json()["data"]["asset"] is None
    assert status["workflow"]["status"] == "in_progress"
    assert status["progress"]["percentage"] == 50
    assert [task["status"] for task in status["tasks"]] == ["completed", "pending"]

    again = client.post(f"/api/v1/orchestrate/tasks/{first}/start", headers=headers)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "ALREADY_TERMINAL"

    client.post(f"/api/v1/orchestrate/tasks/{second}/start", headers=headers)
    failed = client.post(f"/api/v1/orchestrate/tasks/{second}/fail", headers=headers)
    recomputed = client.post(f"/api/v1/orchestrate/workflows/{workflow['id']}/recompute", headers=headers)

    assert failed.json()["data"]["error_message"] == "Task failed"
    assert recomputed.json()["data"]["changed"] is True
    assert recomputed.json()["data"]["workflow"]["status"] == "failed"


def test_complete_with_derived_asset(client, headers):
    source = client.post(
        "/api/v1/assets",
        json={"asset_type": "audio", "file_url": "https://cdn.example.com/intro.wav"},
        headers=headers,
    ).json()["data"]["id"]
    workflow = _submit(client, headers, task_count=1)
    task_id = _status(client, headers, workflow["id"])["tasks"][0]["id"]
    client.post(f"/api/v1/orchestrate/tasks/{task_id}/start", headers=headers)

    response = client.post(
        f"/api/v1/orchestrate/tasks/{task_id}/complete",
        json={
            "derived_asset": {
                "parent_asset_ids": [source],
                "relationship_type": "input",
                "asset": {"asset_type": "video", "file_url": "https://cdn.example.com/video.mp4"},
            }
        },
        headers=headers,
    )

    data = response.json()["data"]
    assert response.status_code == 200
    assert data["asset"]["asset_type"] == "video"
    assert data["task"]["output_data"]["asset_id"] == data["asset"]["id"]
    assert [(edge["parent_asset_id"], edge["child_asset_id"]) for edge in data["relationships"]] == [
        (source, data["asset"]["id"])
    ]


def test_transitions(client, headers):
    workflow = _submit(client, headers, task_count=0)
    url = f"/api/v1/orchestrate/workflows/{workflow['id']}/transition"

    invalid = client.post(url, json={"status": "completed"}, headers=headers)
    started = client.post(url, json={"status": "in_progress"}, headers=headers)
    done = client.post(url, json={"status": "completed", "result_data": {"url": "x"}}, headers=headers)
    after = client.post(url, json={"status": "cancelled"}, headers=headers)

    assert invalid.status_code == 409
    assert invalid.json()["error"]["code"] == "INVALID_TRANSITION"
    assert started.json()["data"]["status"] == "in_progress"
    assert done.json()["data"]["status"] == "completed"
    assert _status(client, headers, workflow["id"])["result_data"] == {"url": "x"}
    assert after.json()["error"]["code"] == "ALREADY_TERMINAL"


def test_other_user_cannot_see_workflow(client, headers, auth_headers, other_user_id):
    workflow = _submit(client, headers)

    response = client.get(f"/api/v1/orchestrate/status/{workflow['id']}", headers=auth_headers(other_user_id))

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_list_add_task_and_delete(client, headers):
    workflow = _submit(client, headers, task_count=1)
    _submit(client, headers, task_count=0)

    listed = client.get("/api/v1/orchestrate/workflows", params={"limit": 1}, headers=headers).json()
    added = client.post(
        f"/api/v1/orchestrate/workflows/{workflow['id']}/tasks",
        json={"title": "Color grade", "task_type": "process"},
        headers=headers,
    )
    deleted = client.delete(f"/api/v1/orchestrate/workflows/{workflow['id']}", headers=headers)

    assert listed["total"] == 2
    assert len(listed["workflows"]) == 1
    assert added.status_code == 201
    assert added.json()["data"]["execution_order"] == 1
    assert deleted.json()["data"] == {"deleted": True, "workflow_id": workflow["id"]}
    assert client.get(f"/api/v1/orchestrate/status/{workflow['id']}", headers=headers).status_code == 404
