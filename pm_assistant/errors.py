"""Exceptions raised by pm-assistant."""


class PMAssistantError(Exception):
    """Base class for pm-assistant errors."""


class ConfigurationError(PMAssistantError, ValueError):
    """Required connection settings are missing."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing required Jira settings: {', '.join(self.missing)}")


class TrackerError(PMAssistantError):
    """The tracker answered with a non-success status.

    Carries the status code and the raw response body so callers can
    diagnose the failure themselves.
    """

    def __init__(self, status_code: int, body: str, method: str | None = None, endpoint: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.method = method
        self.endpoint = endpoint
        super().__init__(f"Jira API error ({status_code}): {body}")


class RateLimitExceeded(TrackerError):
    """Still rate limited after the last permitted retry."""


class AuthenticationError(PMAssistantError):
    """The identity check against the tracker failed."""
