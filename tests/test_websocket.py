"""Tests for the realtime WebSocket endpoint."""

import pytest
from fastapi.testclient import TestClient

from command_center.api import create_app

from .conftest import make_center, poll


@pytest.fixture
def api_center(webhook):
    # A short start delay leaves time to subscribe before progress begins
    return make_center(webhook, execution_start_delay_seconds=0.3)


@pytest.fixture
def project(client, auth_headers):
    return client.post(
        "/projects", json={"name": "Command Center", "key": "CMD"}, headers=auth_headers
    ).json()["project"]


def test_ping(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"action": "ping"})
        assert websocket.receive_json() == {"event": "pong"}


def test_invalid_messages(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text("not json")
        assert websocket.receive_json() == {"event": "error", "data": {"message": "Invalid JSON"}}

        websocket.send_json({"action": "dance"})
        assert websocket.receive_json()["data"]["message"] == "Unsupported action: dance"

        websocket.send_json({"action": "subscribe"})
        assert websocket.receive_json()["event"] == "error"


def test_global_events_reach_every_connection(client, auth_headers, project):
    with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
        response = client.post(
            "/issues", json={"project_id": project["id"], "title": "Live"}, headers=auth_headers
        )
        issue = response.json()["issue"]

        for websocket in (first, second):
            message = websocket.receive_json()
            assert message["event"] == "issue:created"
            assert message["topic"] == "global"
            assert message["data"]["id"] == issue["id"]


def test_status_change_event(client, auth_headers, project):
    issue = client.post(
        "/issues", json={"project_id": project["id"], "title": "Move me"}, headers=auth_headers
    ).json()["issue"]

    with client.websocket_connect("/ws") as websocket:
        client.patch(
            f"/issues/{issue['id']}/status", json={"status": "DONE"}, headers=auth_headers
        )

        message = websocket.receive_json()
        assert message["event"] == "issue:statusChanged"
        assert message["data"] == {"issueId": issue["id"], "status": "DONE", "oldStatus": "TODO"}


def test_execution_progress_stream(client, auth_headers, project):
    issue = client.post(
        "/issues", json={"project_id": project["id"], "title": "Stream me"}, headers=auth_headers
    ).json()["issue"]

    with client.websocket_connect("/ws") as websocket:
        execution_id = client.post(
            "/claude/execute", json={"issue_id": issue["id"]}, headers=auth_headers
        ).json()["execution_id"]

        started = websocket.receive_json()
        assert started["event"] == "execution:started"
        assert started["data"]["executionId"] == execution_id

        websocket.send_json({"action": "subscribe", "executionId": execution_id})
        assert websocket.receive_json() == {
            "event": "subscribed",
            "topic": f"execution:{execution_id}",
        }

        progress = []
        while True:
            message = websocket.receive_json()
            if message["event"] != "execution:progress":
                break
            progress.append(message["data"]["progress"])

        assert progress == [0, 10, 20, 30, 40, 50, 60, 70, 80, 90]
        assert message["event"] == "execution:completed"
        assert message["data"]["issueId"] == issue["id"]
        assert message["data"]["result"]["success"] is True


def test_disconnect_unsubscribes(client, api_center):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"action": "subscribe", "executionId": "abc"})
        websocket.receive_json()
        assert len(api_center.broadcaster.subscribers("global")) == 1
        assert len(api_center.broadcaster.subscribers("execution:abc")) == 1

    poll(lambda: api_center.broadcaster.subscribers("global"), lambda observers: observers == [])
    assert api_center.broadcaster.subscribers("execution:abc") == []
