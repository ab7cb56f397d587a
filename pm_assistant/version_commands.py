"""Version (release) commands for pm-assistant CLI."""

import asyncio

from cyclopts import App

version_app = App(name="version", help="Manage project versions")


@version_app.command(name="list")
def list_versions(project_key: str, unreleased: bool = False) -> None:
    """List the versions of a project."""
    from pm_assistant.cli import get_client

    versions = asyncio.run(get_client().get_versions(project_key))
    if unreleased:
        versions = [v for v in versions if not v.released]

    print(f"Found {len(versions)} version(s):\n")
    for version in versions:
        marker = "○" if version.released else "●"
        archived = " (archived)" if version.archived else ""
        print(f"{marker} {version.id}: {version.name}{archived}")


@version_app.command
def describe(version_id: str, description: str) -> None:
    """Replace the description of a version."""
    from pm_assistant.cli import get_client

    asyncio.run(get_client().update_version_description(version_id, description))
    print(f"Updated description of version {version_id}")
