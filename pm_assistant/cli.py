"""CLI for pm-assistant."""

import asyncio
from pathlib import Path
from typing import Annotated, Any, Literal

import structlog
import yaml
from cyclopts import App, Parameter

from pm_assistant.backends import JiraClient
from pm_assistant.config import get_config, load_jira_settings
from pm_assistant.config_commands import config_app
from pm_assistant.grooming import write_back_stories
from pm_assistant.models import GroomedEpic, GroomedStory, Issue
from pm_assistant.release_notes import render_release_notes
from pm_assistant.version_commands import version_app

logger = structlog.get_logger()

app = App(
    help="PM Assistant - groom Jira ideas into epics and stories",
)

app.command(version_app)
app.command(config_app)


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def get_client() -> JiraClient:
    """Build a Jira client from the environment and config files."""
    return JiraClient(load_jira_settings(get_config()))


def load_groomed(path: Path) -> Any:
    """Read grooming output or a field map from a YAML or JSON file."""
    with open(path, "r") as f:
        return yaml.safe_load(f)


def print_issue_line(issue: Issue) -> None:
    status = f" [{issue.status}]" if issue.status else ""
    print(f"{issue.key}: {issue.summary}{status}")


@app.command
def projects() -> None:
    """List the Jira projects visible to the configured account."""
    found = asyncio.run(get_client().get_projects())
    print(f"Found {len(found)} project(s):\n")
    for project in found:
        print(f"{project.key}: {project.name}")


@app.command
def search(jql: str, fields: str | None = None) -> None:
    """Run a JQL search."""
    field_list = [f.strip() for f in fields.split(",") if f.strip()] if fields else None
    issues = asyncio.run(get_client().search_issues(jql, field_list))
    print(f"Found {len(issues)} issue(s):\n")
    for issue in issues:
        print_issue_line(issue)


@app.command
def ideas(project_key: str) -> None:
    """List ideas waiting to be groomed in a project."""
    issues = asyncio.run(get_client().get_ideas_to_groom(project_key))
    print(f"Found {len(issues)} idea(s) to groom:\n")
    for issue in issues:
        print_issue_line(issue)


@app.command
def issue(issue_key: str) -> None:
    """Show a single issue."""
    found = asyncio.run(get_client().get_issue(issue_key))
    print(f"Issue: {found.key}")
    print(f"Summary: {found.summary}")
    print(f"Type: {found.issue_type}")
    print(f"Status: {found.status}")
    if found.labels:
        print(f"Labels: {', '.join(found.labels)}")


@app.command
def create_issue(path: Path) -> None:
    """Create an issue from a file of raw Jira fields.

    The file holds the field map itself or wraps it as {"fields": {...}}.
    """
    data = load_groomed(path)
    if isinstance(data, dict) and isinstance(data.get("fields"), dict):
        data = data["fields"]
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a field map")
    created = asyncio.run(get_client().create_issue(data))
    print(f"Created issue {created.key}: {created.summary}")


@app.command
def create_epic(path: Path, project_key: str, issue_type_id: str) -> None:
    """Create an epic from a groomed epic file."""
    groomed = GroomedEpic.from_dict(load_groomed(path))
    created = asyncio.run(get_client().create_epic(groomed, project_key, issue_type_id))
    print(f"Created epic {created.key}: {created.summary}")


@app.command
def create_stories(path: Path, project_key: str, issue_type_id: str, epic: str | None = None) -> None:
    """Create stories from a groomed stories file, optionally under an epic."""
    data = load_groomed(path)
    if isinstance(data, dict):
        data = data.get("stories", [])
    stories = [GroomedStory.from_dict(item) for item in data]
    created = asyncio.run(write_back_stories(get_client(), stories, project_key, issue_type_id, epic_key=epic))
    print(f"Created {len(created)} story(ies):\n")
    for story in created:
        print_issue_line(story)


@app.command
def link(inward_key: str, outward_key: str, type: str = "Blocks") -> None:
    """Link two issues."""
    asyncio.run(get_client().link_issues(inward_key, outward_key, type))
    print(f"Linked {inward_key} -> {outward_key} ({type})")


@app.command
def release_notes(
    project_key: str,
    version_name: str,
    style: Literal["concise", "detailed"] = "detailed",
    jql: str | None = None,
) -> None:
    """Render release notes for the issues in a version."""
    issues = asyncio.run(get_client().get_version_issues(project_key, version_name, jql))
    notes = render_release_notes(issues, style)
    print(notes.markdown)


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    app(tokens)


if __name__ == "__main__":
    app.meta()
