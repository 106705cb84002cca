"""Test configuration and fixtures."""

import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from command_center.api import create_app
from command_center.center import CommandCenter, build_command_center
from command_center.config import Settings
from command_center.core.progress import ProgressSource, ProgressUpdate
from command_center.db.repository import create_memory_store
from command_center.tracker.project import ProjectCreate

WEBHOOK_URL = "https://hooks.slack.test/services/T000/B000/XXXX"


class WebhookRecorder:
    """httpx.MockTransport handler that records Slack payloads."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text="ok")

    @property
    def payloads(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    @property
    def texts(self) -> List[str]:
        return [payload["text"] for payload in self.payloads]


class EventRecorder:
    """Broadcaster observer that keeps every message it receives."""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []

    async def __call__(self, message: Dict[str, Any]) -> None:
        self.messages.append(message)

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [message["data"] for message in self.messages if message["event"] == name]

    @property
    def names(self) -> List[str]:
        return [message["event"] for message in self.messages]


class GatedSource(ProgressSource):
    """Reports 10% at once, then waits for ``gate`` before finishing."""

    name = "gated"

    def __init__(self, fail: bool = False):
        self.gate = asyncio.Event()
        self.fail = fail

    async def stream(self, execution):
        yield ProgressUpdate(progress=10, log="Step 1 completed")
        await self.gate.wait()
        if self.fail:
            raise RuntimeError("agent crashed")
        yield ProgressUpdate(progress=100, log="Step 2 completed", result={"success": True})


def make_settings(**overrides: Any) -> Settings:
    values = dict(
        _env_file=None,
        store_backend="memory",
        secret_key="test-secret",
        seed_demo_data=False,
        execution_start_delay_seconds=0,
        execution_step_delay_seconds=0,
        log_level="WARNING",
    )
    values.update(overrides)
    return Settings(**values)


def make_center(
    handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    source: Optional[ProgressSource] = None,
    **overrides: Any,
) -> CommandCenter:
    return build_command_center(
        make_settings(**overrides),
        store=create_memory_store(),
        transport=httpx.MockTransport(handler or WebhookRecorder()),
        source=source,
    )


def make_project(center: CommandCenter, **fields: Any):
    values = dict(name="Command Center", key="CMD", slack_webhook_url=WEBHOOK_URL)
    values.update(fields)
    return center.projects.create(ProjectCreate(**values))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def poll(fetch: Callable[[], Any], predicate: Callable[[Any], bool], timeout: float = 5.0) -> Any:
    """Call ``fetch`` until ``predicate`` accepts its result (sync, for TestClient tests)."""
    deadline = time.monotonic() + timeout
    while True:
        value = fetch()
        if predicate(value):
            return value
        if time.monotonic() > deadline:
            raise AssertionError(f"condition not met before timeout, last value: {value!r}")
        time.sleep(0.02)


@pytest.fixture
def webhook() -> WebhookRecorder:
    return WebhookRecorder()


@pytest_asyncio.fixture
async def center(webhook: WebhookRecorder) -> CommandCenter:
    """A CommandCenter with an in-memory store, zero delays and a recorded webhook."""
    center = make_center(webhook)
    yield center
    await center.close()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def api_center(webhook: WebhookRecorder) -> CommandCenter:
    return make_center(webhook)


@pytest.fixture
def client(api_center: CommandCenter) -> TestClient:
    with TestClient(create_app(center=api_center)) as client:
        yield client


@pytest.fixture
def auth_headers(client: TestClient) -> Dict[str, str]:
    response = client.post(
        "/auth/register",
        json={"email": "dev@example.com", "password": "s3cret-pass", "name": "Dev"},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
