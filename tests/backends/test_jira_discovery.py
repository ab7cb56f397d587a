"""Tests for project discovery and its fallback chain."""

import asyncio

import httpx
import pytest

from pm_assistant.backends.jira import PROJECT_EXPAND
from pm_assistant.errors import AuthenticationError, TrackerError
from pm_assistant.models import Project


def _projects(start: int, count: int) -> list[dict]:
    return [{"id": str(n), "key": f"P{n}", "name": f"Project {n}"} for n in range(start, start + count)]


@pytest.fixture
def authenticated(fake_jira):
    fake_jira.reply("GET", "/myself", json={"displayName": "PM"})
    return fake_jira


def test_authentication_failure_aborts(client, fake_jira) -> None:
    """Test that a failed identity check stops discovery immediately."""
    fake_jira.reply("GET", "/myself", status=401, text="Unauthorized")

    with pytest.raises(AuthenticationError) as excinfo:
        asyncio.run(client.get_projects())

    assert isinstance(excinfo.value.__cause__, TrackerError)
    assert len(fake_jira.requests) == 1


def test_login_page_on_identity_is_authentication_error(client, fake_jira) -> None:
    """Test that an SSO login page answering the identity check is an authentication failure."""
    fake_jira.reply("GET", "/myself", text="<html>login</html>")

    with pytest.raises(AuthenticationError):
        asyncio.run(client.get_projects())

    assert len(fake_jira.requests) == 1


def test_network_failure_on_identity_is_authentication_error(settings) -> None:
    """Test that a network error during the identity check is an authentication failure."""
    from pm_assistant.backends.jira import JiraClient

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = JiraClient(settings, transport=httpx.MockTransport(refuse))

    with pytest.raises(AuthenticationError):
        asyncio.run(client.get_projects())


def test_paginated_search(client, authenticated) -> None:
    """Test that 250 projects across pages of 100 take three calls and keep server order."""
    authenticated.reply("GET", "/project/search", json={"values": _projects(0, 100), "total": 250})
    authenticated.reply("GET", "/project/search", json={"values": _projects(100, 100), "total": 250})
    authenticated.reply("GET", "/project/search", json={"values": _projects(200, 50), "total": 250})

    projects = asyncio.run(client.get_projects())

    calls = authenticated.calls("GET", "/project/search")
    assert len(calls) == 3
    assert [call.url.params["startAt"] for call in calls] == ["0", "100", "200"]
    assert all(call.url.params["maxResults"] == "100" for call in calls)
    assert calls[0].url.params["expand"] == PROJECT_EXPAND
    assert len(projects) == 250
    assert len({project.key for project in projects}) == 250
    assert [project.key for project in projects[:3]] == ["P0", "P1", "P2"]
    assert projects[-1].key == "P249"
    assert all(isinstance(project, Project) for project in projects)
    assert authenticated.calls("GET", "/project") == []


def test_pagination_stops_on_empty_page(client, authenticated) -> None:
    """Test that an empty page ends pagination even if the total says otherwise."""
    authenticated.reply("GET", "/project/search", json={"values": _projects(0, 100), "total": 500})
    authenticated.reply("GET", "/project/search", json={"values": [], "total": 500})

    projects = asyncio.run(client.get_projects())

    assert len(projects) == 100
    assert len(authenticated.calls("GET", "/project/search")) == 2


def test_pagination_without_total(client, authenticated) -> None:
    """Test that a short page ends pagination when no total is reported."""
    authenticated.reply("GET", "/project/search", json={"values": _projects(0, 100)})
    authenticated.reply("GET", "/project/search", json={"values": _projects(100, 7)})

    projects = asyncio.run(client.get_projects())

    assert len(projects) == 107
    assert len(authenticated.calls("GET", "/project/search")) == 2


def test_legacy_listing_fallback(client, authenticated) -> None:
    """Test that an empty search falls back to the legacy list and skips issue inference."""
    authenticated.reply("GET", "/project/search", json={"values": [], "total": 0})
    authenticated.reply("GET", "/project", json=_projects(1, 3))

    projects = asyncio.run(client.get_projects())

    assert [project.key for project in projects] == ["P1", "P2", "P3"]
    assert authenticated.calls("POST", "/search") == []


def test_failed_search_strategy_falls_through(client, authenticated) -> None:
    """Test that a failing project search moves on to the next strategy."""
    authenticated.reply("GET", "/project/search", status=403, text="Forbidden")
    authenticated.reply("GET", "/project", json=_projects(1, 2))

    projects = asyncio.run(client.get_projects())

    assert [project.key for project in projects] == ["P1", "P2"]


def test_undecodable_search_page_falls_through(client, authenticated) -> None:
    """Test that an HTML page from a proxy in place of project search moves on to the legacy list."""
    authenticated.reply("GET", "/project/search", text="<html>proxy</html>")
    authenticated.reply("GET", "/project", json=_projects(1, 1))

    projects = asyncio.run(client.get_projects())

    assert [project.key for project in projects] == ["P1"]


def test_unexpected_shapes_fall_through_to_inference(client, authenticated) -> None:
    """Test that well-formed JSON of the wrong shape is treated as finding nothing."""
    authenticated.reply("GET", "/project/search", json=["not", "a", "page"])
    authenticated.reply("GET", "/project", json={"errorMessages": ["nope"]})
    pm = {"id": "1", "key": "PM", "name": "Product"}
    authenticated.reply("POST", "/search", json={"issues": [authenticated.issue("PM-1", project=pm)]})

    projects = asyncio.run(client.get_projects())

    assert [project.key for project in projects] == ["PM"]


def test_issue_inference_fallback(client, authenticated) -> None:
    """Test that projects are inferred from recent issues, deduplicated in first-seen order."""
    authenticated.reply("GET", "/project/search", json={"values": [], "total": 0})
    authenticated.reply("GET", "/project", json=[])
    ops = {"id": "2", "key": "OPS", "name": "Operations"}
    pm = {"id": "1", "key": "PM", "name": "Product"}
    authenticated.reply(
        "POST",
        "/search",
        json={
            "issues": [
                authenticated.issue("OPS-9", project=ops),
                authenticated.issue("PM-4", project=pm),
                authenticated.issue("OPS-8", project=ops),
                authenticated.issue("X-1"),
            ]
        },
    )

    projects = asyncio.run(client.get_projects())

    assert [project.key for project in projects] == ["OPS", "PM"]
    assert projects[0].name == "Operations"
    body = authenticated.body(authenticated.calls("POST", "/search")[0])
    assert body["fields"] == ["project"]
    assert body["maxResults"] == 50
    assert "ORDER BY created DESC" in body["jql"]


def test_every_strategy_empty(client, authenticated) -> None:
    """Test that finding nothing anywhere is an empty list, not an error."""
    authenticated.reply("GET", "/project/search", json={"values": [], "total": 0})
    authenticated.reply("GET", "/project", json=[])
    authenticated.reply("POST", "/search", json={"issues": []})

    assert asyncio.run(client.get_projects()) == []


def test_every_strategy_failing_raises(client, authenticated) -> None:
    """Test that discovery does not go silent when every strategy errors."""
    authenticated.reply("GET", "/project/search", status=500, text="down")
    authenticated.reply("GET", "/project", status=500, text="down")
    authenticated.reply("POST", "/search", status=503, text="unavailable")

    with pytest.raises(TrackerError) as excinfo:
        asyncio.run(client.get_projects())

    assert excinfo.value.status_code == 503
