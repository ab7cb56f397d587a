"""Tracker backends."""

from pm_assistant.backends.jira import JiraClient, RetryPolicy, RetryState

__all__ = ["JiraClient", "RetryPolicy", "RetryState"]
