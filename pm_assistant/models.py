"""Data models for pm-assistant."""

from dataclasses import dataclass, field
from typing import Any, Literal


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, so camelCase and snake_case both work."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class Issue:
    """A work item as returned by the tracker."""

    id: str
    key: str
    fields: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Issue":
        return cls(
            id=str(data.get("id", "")),
            key=data.get("key", ""),
            fields=data.get("fields") or {},
            raw=data,
        )

    @property
    def summary(self) -> str:
        return self.fields.get("summary") or ""

    @property
    def issue_type(self) -> str | None:
        issue_type = self.fields.get("issuetype") or {}
        return issue_type.get("name")

    @property
    def status(self) -> str | None:
        status = self.fields.get("status") or {}
        return status.get("name")

    @property
    def project_key(self) -> str | None:
        project = self.fields.get("project") or {}
        return project.get("key")

    @property
    def labels(self) -> list[str]:
        return list(self.fields.get("labels") or [])


@dataclass
class Project:
    """A tracker project.

    Built from a project search page, the legacy project list, or the
    project reference embedded in an issue. The last one only carries
    id, key and name (sometimes avatars and type).
    """

    id: str
    key: str
    name: str
    description: str | None = None
    lead: str | None = None
    project_type_key: str | None = None
    avatar_urls: dict[str, str] = field(default_factory=dict)
    issue_types: list[dict[str, Any]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Project":
        lead = data.get("lead")
        if isinstance(lead, dict):
            lead = lead.get("displayName") or lead.get("accountId")
        return cls(
            id=str(data.get("id", "")),
            key=data.get("key", ""),
            name=data.get("name") or data.get("key", ""),
            description=data.get("description") or None,
            lead=lead,
            project_type_key=data.get("projectTypeKey"),
            avatar_urls=data.get("avatarUrls") or {},
            issue_types=data.get("issueTypes") or [],
            raw=data,
        )


@dataclass
class Version:
    """A release (fix version) of a project."""

    id: str
    name: str
    description: str | None = None
    released: bool = False
    archived: bool = False
    project_id: str | None = None
    release_date: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Version":
        project_id = data.get("projectId")
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            description=data.get("description"),
            released=bool(data.get("released", False)),
            archived=bool(data.get("archived", False)),
            project_id=str(project_id) if project_id is not None else None,
            release_date=data.get("releaseDate"),
        )


@dataclass
class GroomedEpic:
    """Structured epic produced by the grooming collaborator."""

    summary: str
    description: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)
    kpis: list[str] = field(default_factory=list)
    problem: str | None = None
    hypothesis: str | None = None
    scope: str | None = None
    non_goals: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GroomedEpic":
        return cls(
            summary=data["summary"],
            description=data.get("description") or "",
            acceptance_criteria=list(_pick(data, "acceptanceCriteria", "acceptance_criteria", default=[])),
            labels=list(data.get("labels") or []),
            components=list(data.get("components") or []),
            kpis=list(data.get("kpis") or []),
            problem=data.get("problem"),
            hypothesis=data.get("hypothesis"),
            scope=data.get("scope"),
            non_goals=_pick(data, "nonGoals", "non_goals"),
        )


@dataclass
class GroomedStory:
    """Structured user story produced by the grooming collaborator."""

    summary: str
    description: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    story_points: float | None = None
    labels: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)
    parent_epic_key: str | None = None
    persona: str | None = None
    capability: str | None = None
    outcome: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GroomedStory":
        return cls(
            summary=data["summary"],
            description=data.get("description") or "",
            acceptance_criteria=list(_pick(data, "acceptanceCriteria", "acceptance_criteria", default=[])),
            story_points=_pick(data, "storyPoints", "story_points"),
            labels=list(data.get("labels") or []),
            components=list(data.get("components") or []),
            parent_epic_key=_pick(data, "parentEpicKey", "parent_epic_key"),
            persona=data.get("persona"),
            capability=data.get("capability"),
            outcome=data.get("outcome"),
        )


@dataclass
class GroomingRequest:
    """Input handed to the grooming collaborator."""

    idea_text: str
    idea_summary: str
    type: Literal["epic", "story"] = "epic"


@dataclass
class ReleaseNotes:
    """Rendered release notes."""

    markdown: str
    text: str
