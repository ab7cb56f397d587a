"""Jira Cloud REST v3 client using httpx."""

import asyncio
import base64
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

import httpx
import structlog

from pm_assistant.config import JiraSettings
from pm_assistant.errors import AuthenticationError, ConfigurationError, RateLimitExceeded, TrackerError
from pm_assistant.models import GroomedEpic, GroomedStory, Issue, Project, Version

logger = structlog.get_logger()

DEFAULT_SEARCH_FIELDS: tuple[str, ...] = (
    "summary",
    "description",
    "issuetype",
    "project",
    "fixVersions",
    "labels",
    "components",
    "status",
    "parent",
    "priority",
    "assignee",
    "reporter",
    "created",
    "updated",
)
SEARCH_PAGE_SIZE = 100
PROJECT_PAGE_SIZE = 100
PROJECT_INFERENCE_LIMIT = 50
PROJECT_EXPAND = "lead,issueTypes,description,avatarUrls,projectTypeKey,insight"
IDEA_ISSUE_TYPES = ("Idea", "Task", "Story")
STORY_POINT_ALIASES = ("story points", "story point estimate")

# Single-slot cache marker: the field lookup has not run yet.
_UNRESOLVED = object()


class RetryState(Enum):
    """States of one logical request while it works through rate limits."""

    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    EXHAUSTED = "exhausted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for HTTP 429 responses.

    Args:
        max_retries: Retries after the first attempt; a call makes at most max_retries + 1 requests
        base_delay: Seconds waited before the first retry
        max_delay: Ceiling for the exponential part of the delay
        jitter: Range in seconds of the random amount added to every delay
    """

    max_retries: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: tuple[float, float] = (0.05, 0.25)

    def backoff(self, attempt: int) -> float:
        return min(self.base_delay * 2**attempt, self.max_delay)

    def delay(self, attempt: int, retry_after: float | None = None, jitter: float = 0.0) -> float:
        return max(retry_after or 0.0, self.backoff(attempt)) + jitter

    def transition(self, status_code: int, attempt: int) -> RetryState:
        if status_code == 429:
            return RetryState.EXHAUSTED if attempt >= self.max_retries else RetryState.BACKOFF
        if 200 <= status_code < 300:
            return RetryState.SUCCEEDED
        return RetryState.FAILED


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given as delta-seconds or an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


def text_document(text: str) -> dict[str, Any]:
    """Wrap plain text in an Atlassian document with a single paragraph."""
    paragraph: dict[str, Any] = {"type": "paragraph", "content": []}
    if text:
        paragraph["content"].append({"type": "text", "text": text})
    return {"type": "doc", "version": 1, "content": [paragraph]}


def quote_jql(value: str) -> str:
    """Quote a value for use inside a JQL clause."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class JiraClient:
    """Async client for the Jira REST API.

    Every public method goes through `_request`, which owns authentication,
    rate-limit retries and error normalization.

    Cancelling a call (for example with asyncio.wait_for) interrupts whatever
    request or backoff sleep is in flight; there is no cleanup of a retry
    sequence beyond that.
    """

    def __init__(
        self,
        settings: JiraSettings,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the Jira client.

        Args:
            settings: Base URL, account email and API token
            retry_policy: Rate-limit retry tuning
            transport: httpx transport override, used by tests
            sleep: Coroutine used for backoff waits
            timeout: Per-request timeout in seconds
        """
        missing = settings.missing_fields()
        if missing:
            raise ConfigurationError(missing)

        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self.api_url = f"{self.base_url}/rest/api/3"
        credentials = f"{settings.email}:{settings.api_token}".encode("utf-8")
        self._auth_header = f"Basic {base64.b64encode(credentials).decode('ascii')}"
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep
        self._story_points_field: Any = _UNRESOLVED
        logger.info("Jira client initialized", base_url=self.base_url, email=settings.email)

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send one API call, retrying while the tracker answers 429.

        Returns the decoded JSON body, or None when the response has no content.
        """
        url = f"{self.api_url}{endpoint}"
        request_headers = {
            "Authorization": self._auth_header,
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }

        state = RetryState.ATTEMPTING
        attempt = 0
        delay = 0.0
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as http:
            while True:
                logger.debug("Jira request", method=method, endpoint=endpoint, attempt=attempt)
                response = await http.request(method, url, json=json, params=params, headers=request_headers)
                request_id = response.headers.get("x-arequestid")
                if request_id:
                    logger.debug("Jira response", status=response.status_code, request_id=request_id)

                state = self.retry_policy.transition(response.status_code, attempt)
                if state is not RetryState.BACKOFF:
                    break

                retry_after = parse_retry_after(response.headers.get("retry-after"))
                jitter = random.uniform(*self.retry_policy.jitter)
                # delays never shrink between attempts
                delay = max(delay, self.retry_policy.delay(attempt, retry_after, jitter))
                logger.warning(
                    "Rate limited by Jira, backing off",
                    endpoint=endpoint,
                    attempt=attempt,
                    retry_after=retry_after,
                    delay=round(delay, 3),
                )
                await self._sleep(delay)
                attempt += 1

        if state is RetryState.SUCCEEDED:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        logger.error("Jira API error", method=method, endpoint=endpoint, status=response.status_code)
        if state is RetryState.EXHAUSTED:
            raise RateLimitExceeded(response.status_code, response.text, method=method, endpoint=endpoint)
        raise TrackerError(response.status_code, response.text, method=method, endpoint=endpoint)

    async def get_myself(self) -> dict[str, Any]:
        """Return the authenticated account."""
        return await self._request("GET", "/myself")

    # Search

    async def _search(self, jql: str, fields: list[str], max_results: int) -> list[Issue]:
        body = {"jql": jql, "fields": fields, "maxResults": max_results}
        result = await self._request("POST", "/search", json=body)
        issues = result.get("issues") if isinstance(result, dict) else None
        issues = issues if isinstance(issues, list) else []
        return [Issue.from_api(issue) for issue in issues]

    async def search_issues(self, jql: str, fields: list[str] | None = None) -> list[Issue]:
        """Run a JQL search and return the first page of matches.

        Args:
            jql: JQL query
            fields: Fields to project; defaults to DEFAULT_SEARCH_FIELDS
        """
        logger.info("Searching Jira issues", jql=jql)
        issues = await self._search(jql, list(fields or DEFAULT_SEARCH_FIELDS), SEARCH_PAGE_SIZE)
        logger.info("Jira search complete", jql=jql, count=len(issues))
        return issues

    async def get_ideas_to_groom(self, project_key: str) -> list[Issue]:
        """Ideas, tasks and stories still in the To Do category, newest first."""
        jql = (
            f"project = {quote_jql(project_key)} AND issuetype in ({', '.join(IDEA_ISSUE_TYPES)}) "
            'AND statusCategory = "To Do" ORDER BY created DESC'
        )
        return await self.search_issues(jql)

    async def get_version_issues(
        self, project_key: str, version_name: str, additional_jql: str | None = None
    ) -> list[Issue]:
        """Issues whose fix version is version_name, optionally narrowed by extra JQL."""
        jql = f"project = {quote_jql(project_key)} AND fixVersion = {quote_jql(version_name)}"
        if additional_jql:
            jql += f" AND {additional_jql}"
        jql += " ORDER BY priority DESC, updated DESC"
        return await self.search_issues(jql)

    # Project discovery

    async def get_projects(self) -> list[Project]:
        """Return every project visible to the authenticated account.

        Tries, in order: paginated project search, the legacy project list,
        and finally projects referenced by recently created issues. The first
        strategy that finds anything wins.

        Raises:
            AuthenticationError: If the identity check fails
        """
        try:
            myself = await self.get_myself()
        except (TrackerError, httpx.HTTPError, ValueError) as e:
            logger.error("Jira authentication failed", error=str(e))
            raise AuthenticationError(f"Authentication failed: {e}") from e
        account = myself.get("displayName") if isinstance(myself, dict) else None
        logger.info("Jira authentication successful", account=account)

        strategies = (
            ("project search", self._search_projects),
            ("legacy project list", self._list_projects),
            ("recent issues", self._infer_projects),
        )
        last_error: Exception | None = None
        completed = False
        for name, strategy in strategies:
            try:
                projects = await strategy()
            except (TrackerError, httpx.HTTPError, ValueError) as e:
                logger.warning("Project discovery strategy failed", strategy=name, error=str(e))
                last_error = e
                continue
            completed = True
            if projects:
                logger.info("Projects discovered", strategy=name, count=len(projects))
                return projects
            logger.warning("Project discovery strategy found nothing", strategy=name)

        if not completed and last_error is not None:
            raise last_error
        logger.info("No accessible projects found")
        return []

    async def _search_projects(self) -> list[Project]:
        projects: list[dict[str, Any]] = []
        start_at = 0
        while True:
            page = await self._request(
                "GET",
                "/project/search",
                params={"maxResults": PROJECT_PAGE_SIZE, "startAt": start_at, "expand": PROJECT_EXPAND},
            )
            if not isinstance(page, dict):
                page = {}
            values = page.get("values") if isinstance(page.get("values"), list) else []
            projects.extend(values)
            logger.debug("Fetched project page", start_at=start_at, count=len(values))

            total = page.get("total")
            if not values:
                break
            if isinstance(total, int):
                if len(projects) >= total:
                    break
            elif len(values) < PROJECT_PAGE_SIZE:
                break
            start_at += len(values)
        return [Project.from_api(project) for project in projects]

    async def _list_projects(self) -> list[Project]:
        result = await self._request("GET", "/project", params={"expand": PROJECT_EXPAND})
        if not isinstance(result, list):
            return []
        return [Project.from_api(project) for project in result]

    async def _infer_projects(self) -> list[Project]:
        issues = await self._search("ORDER BY created DESC", ["project"], PROJECT_INFERENCE_LIMIT)
        by_key: dict[str, dict[str, Any]] = {}
        for issue in issues:
            project = issue.fields.get("project") or {}
            key = project.get("key")
            if key and key not in by_key:
                by_key[key] = project
        return [Project.from_api(project) for project in by_key.values()]

    # Dynamic fields

    async def get_story_points_field(self) -> str | None:
        """Resolve the tenant's story points field id, once per client.

        A failed lookup counts as "no such field"; story creation carries on
        without an estimate.
        """
        if self._story_points_field is not _UNRESOLVED:
            return self._story_points_field

        try:
            catalog = await self._request("GET", "/field")
        except (TrackerError, httpx.HTTPError, ValueError) as e:
            logger.warning("Could not load Jira field catalog", error=str(e))
            catalog = []

        if not isinstance(catalog, list):
            catalog = []
        self._story_points_field = find_story_points_field(catalog)
        logger.info("Story points field resolved", field_id=self._story_points_field)
        return self._story_points_field

    # Writes

    async def get_issue(self, issue_key: str) -> Issue:
        logger.info("Reading Jira issue", issue_key=issue_key)
        return Issue.from_api(await self._request("GET", f"/issue/{issue_key}"))

    async def create_issue(self, fields: dict[str, Any]) -> Issue:
        """Create an issue and return it as stored by Jira."""
        fields = dict(fields)
        if isinstance(fields.get("description"), str):
            fields["description"] = text_document(fields["description"])

        logger.info("Creating Jira issue", summary=fields.get("summary"))
        created = await self._request("POST", "/issue", json={"fields": fields})
        issue = await self.get_issue(created["key"])
        logger.info("Jira issue created", issue_key=issue.key)
        return issue

    def _groomed_fields(
        self, groomed: GroomedEpic | GroomedStory, project_key: str, issue_type_id: str
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "issuetype": {"id": issue_type_id},
            "summary": groomed.summary,
            "description": text_document(groomed.description),
            "labels": list(groomed.labels or []),
        }
        if groomed.components:
            fields["components"] = [{"name": name} for name in groomed.components]
        return fields

    async def create_epic(self, groomed: GroomedEpic, project_key: str, issue_type_id: str) -> Issue:
        """Create an epic from grooming output."""
        return await self.create_issue(self._groomed_fields(groomed, project_key, issue_type_id))

    async def create_story(self, groomed: GroomedStory, project_key: str, issue_type_id: str) -> Issue:
        """Create a story from grooming output.

        The estimate is only sent when the story points field can be resolved.
        """
        fields = self._groomed_fields(groomed, project_key, issue_type_id)
        if groomed.story_points is not None:
            field_id = await self.get_story_points_field()
            if field_id:
                fields[field_id] = groomed.story_points
            else:
                logger.warning("Dropping story points, no matching field", summary=groomed.summary)
        if groomed.parent_epic_key:
            fields["parent"] = {"key": groomed.parent_epic_key}
        return await self.create_issue(fields)

    async def link_issues(self, inward_key: str, outward_key: str, link_type: str = "Blocks") -> None:
        logger.info("Linking Jira issues", inward=inward_key, outward=outward_key, link_type=link_type)
        body = {
            "type": {"name": link_type},
            "inwardIssue": {"key": inward_key},
            "outwardIssue": {"key": outward_key},
        }
        await self._request("POST", "/issueLink", json=body)

    async def get_versions(self, project_key: str) -> list[Version]:
        logger.info("Listing project versions", project_key=project_key)
        result = await self._request("GET", f"/project/{project_key}/versions")
        return [Version.from_api(version) for version in result or []]

    async def update_version_description(self, version_id: str, description: str) -> None:
        logger.info("Updating version description", version_id=version_id)
        await self._request("PUT", f"/version/{version_id}", json={"description": description})


def find_story_points_field(catalog: list[dict[str, Any]]) -> str | None:
    """Pick the story points field out of a field catalog.

    Exact alias matches win over names that merely contain "story point".
    """
    names = [
        (str(field.get("name") or "").strip().lower(), field.get("id"))
        for field in catalog
        if isinstance(field, dict)
    ]
    for alias in STORY_POINT_ALIASES:
        for name, field_id in names:
            if name == alias and field_id:
                return field_id
    for name, field_id in names:
        if "story point" in name and field_id:
            return field_id
    return None
