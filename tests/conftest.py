"""Shared fixtures: a scripted Jira served through httpx.MockTransport."""

import json
from typing import Any

import httpx
import pytest

from pm_assistant.backends.jira import JiraClient, RetryPolicy
from pm_assistant.config import JiraSettings

BASE_URL = "https://example.atlassian.net"
API_PREFIX = "/rest/api/3"


class FakeJira:
    """Answers requests from per-route queues of canned responses.

    The last response queued for a route is repeated once the others are used up.
    Unrouted requests get a 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []

    def reply(
        self,
        method: str,
        path: str,
        status: int = 200,
        json: Any = None,
        text: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> "FakeJira":
        self.routes.setdefault((method, path), []).append(
            {"status": status, "json": json, "text": text, "headers": headers or {}}
        )
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(API_PREFIX)
        queue = self.routes.get((request.method, path))
        if not queue:
            return httpx.Response(404, text=f"no route for {request.method} {path}")
        canned = queue.pop(0) if len(queue) > 1 else queue[0]
        if canned["json"] is not None:
            return httpx.Response(canned["status"], json=canned["json"], headers=canned["headers"])
        return httpx.Response(canned["status"], text=canned["text"] or "", headers=canned["headers"])

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path.removeprefix(API_PREFIX) == path
        ]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content)

    @staticmethod
    def issue(key: str, **fields: Any) -> dict[str, Any]:
        """A minimal issue as Jira returns it."""
        number = key.split("-")[-1]
        return {"id": f"100{number}", "key": key, "fields": fields}


@pytest.fixture
def settings() -> JiraSettings:
    return JiraSettings(base_url=BASE_URL, email="pm@example.com", api_token="secret-token")


@pytest.fixture
def fake_jira() -> FakeJira:
    return FakeJira()


@pytest.fixture
def sleeps() -> list[float]:
    """Delays the client asked to sleep for."""
    return []


@pytest.fixture
def make_client(settings: JiraSettings, fake_jira: FakeJira, sleeps: list[float]):
    """Build clients wired to the fake Jira with a recording sleep."""

    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    def factory(retry_policy: RetryPolicy | None = None) -> JiraClient:
        return JiraClient(
            settings,
            retry_policy=retry_policy,
            transport=httpx.MockTransport(fake_jira.handler),
            sleep=record_sleep,
        )

    return factory


@pytest.fixture
def client(make_client) -> JiraClient:
    return make_client()
