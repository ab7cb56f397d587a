"""Boundary with the grooming collaborator that turns ideas into epics and stories."""

from dataclasses import replace
from typing import Any, Literal, Protocol

import structlog

from pm_assistant.backends.jira import JiraClient
from pm_assistant.models import GroomedEpic, GroomedStory, GroomingRequest, Issue

logger = structlog.get_logger()


class Groomer(Protocol):
    """Anything that can groom idea text, typically a language model service."""

    async def groom_epic(self, request: GroomingRequest) -> GroomedEpic: ...

    async def groom_stories(self, request: GroomingRequest) -> list[GroomedStory]: ...


def document_text(doc: Any) -> str:
    """Flatten an Atlassian document (or plain string) into text.

    Block nodes are separated by newlines; inline text is concatenated.
    """
    if doc is None:
        return ""
    if isinstance(doc, str):
        return doc

    blocks: list[str] = []

    def inline(node: dict[str, Any]) -> str:
        if node.get("type") == "text":
            return node.get("text", "")
        if node.get("type") == "hardBreak":
            return "\n"
        return "".join(inline(child) for child in node.get("content") or [])

    def walk(node: dict[str, Any]) -> None:
        children = node.get("content") or []
        if any(child.get("type") in ("text", "hardBreak") for child in children):
            blocks.append(inline(node))
            return
        for child in children:
            walk(child)

    walk(doc)
    return "\n".join(block for block in blocks if block)


def request_for_issue(issue: Issue, kind: Literal["epic", "story"] = "epic") -> GroomingRequest:
    """Build a grooming request from an idea issue."""
    return GroomingRequest(
        idea_text=document_text(issue.fields.get("description")),
        idea_summary=issue.summary,
        type=kind,
    )


async def write_back_stories(
    client: JiraClient,
    stories: list[GroomedStory],
    project_key: str,
    issue_type_id: str,
    epic_key: str | None = None,
) -> list[Issue]:
    """Create groomed stories one after another, under epic_key when a story names no parent.

    Returns the created issues in the order of the input stories.
    """
    logger.info("Writing back groomed stories", project_key=project_key, count=len(stories), epic_key=epic_key)
    created: list[Issue] = []
    for story in stories:
        if epic_key and not story.parent_epic_key:
            story = replace(story, parent_epic_key=epic_key)
        created.append(await client.create_story(story, project_key, issue_type_id))
    logger.info("Groomed stories written", keys=[issue.key for issue in created])
    return created
