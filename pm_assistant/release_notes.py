"""Template release notes built from the issues in a release."""

import re
from typing import Literal

import structlog

from pm_assistant.models import Issue, ReleaseNotes

logger = structlog.get_logger()

ReleaseNotesStyle = Literal["concise", "detailed"]

_MARKDOWN_PUNCTUATION = re.compile(r"[#*`_-]")
_NEWLINES = re.compile(r"\n+")


def _issues_of_type(issues: list[Issue], issue_type: str) -> list[Issue]:
    return [issue for issue in issues if issue.issue_type == issue_type]


def _concise(issues: list[Issue]) -> str:
    types = ", ".join(issue.issue_type or "Issue" for issue in issues)
    return f"Release includes {len(issues)} items: {types} improvements and fixes."


def _detailed(issues: list[Issue]) -> str:
    epics = _issues_of_type(issues, "Epic")
    stories = _issues_of_type(issues, "Story")
    bugs = _issues_of_type(issues, "Bug")

    highlights = []
    if epics:
        highlights.append(f"- {len(epics)} new epics completed")
    if stories:
        highlights.append(f"- {len(stories)} user stories delivered")
    fixes = [f"- {bug.summary}" for bug in bugs] or ["- No bugs fixed in this release"]

    sections = [
        "# Release Notes",
        f"## 📦 What\nThis release includes {len(issues)} items across multiple areas.",
        "## 🚀 Highlights\n" + "\n".join(highlights),
        "## 🐞 Fixes\n" + "\n".join(fixes),
        "## ⚠️ Known Limitations\n- Please review the individual issues for specific limitations",
        "## 🔭 What's Next\n- Continued work on upcoming features and improvements",
    ]
    return "\n\n".join(section.rstrip() for section in sections)


def to_plain_text(markdown: str) -> str:
    """Strip markdown punctuation and fold the text onto one line."""
    return _NEWLINES.sub(" ", _MARKDOWN_PUNCTUATION.sub("", markdown)).strip()


def render_release_notes(issues: list[Issue], style: ReleaseNotesStyle = "detailed") -> ReleaseNotes:
    """Render release notes without a language model.

    Args:
        issues: Issues in the release
        style: "concise" for a single sentence, "detailed" for a sectioned document

    Raises:
        ValueError: If style is not supported
    """
    if style == "concise":
        markdown = _concise(issues)
    elif style == "detailed":
        markdown = _detailed(issues)
    else:
        raise ValueError(f"Unsupported release notes style: '{style}'. Supported: 'concise', 'detailed'")

    logger.debug("Rendered release notes", style=style, issue_count=len(issues))
    return ReleaseNotes(markdown=markdown, text=to_plain_text(markdown))
