"""GitHub releases connector."""

from releasewatch.connectors.github.rest_client import GitHubRestClient

__all__ = ["GitHubRestClient"]
