"""JIRA API client translating library failures into report errors."""

import requests
from jira import JIRA, JIRAError

from program_report.config import Config
from program_report.exceptions import (
    AuthenticationError,
    RateLimitError,
    RemoteRequestError,
    TransientRemoteError,
)


def _retry_after(error: JIRAError) -> float | None:
    """Read the Retry-After hint (seconds) from a 429 response, if any."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _translate(error: JIRAError) -> Exception:
    if error.status_code == 429:
        return RateLimitError("Rate limited by JIRA.", retry_after=_retry_after(error))
    if error.status_code == 401:
        return AuthenticationError(
            "Authentication failed. Check your email and API token.",
            status_code=401,
        )
    return RemoteRequestError(
        f"JIRA returned {error.status_code}: {error.text}",
        status_code=error.status_code,
    )


class JiraClient:
    """Client for the Jira Cloud search and issue endpoints.

    Retries are left to the caller (see ``fetching.fetch_with_retry``), so the
    underlying session is created with its own retries disabled.
    """

    def __init__(self, config: Config) -> None:
        """Initialize JIRA client with configuration."""
        self.config = config
        self._client: JIRA | None = None

    def _get_client(self) -> JIRA:
        """Get or create JIRA client instance."""
        if self._client is None:
            try:
                self._client = JIRA(
                    server=self.config.jira_url,
                    basic_auth=(self.config.jira_email, self.config.jira_api_token),
                    timeout=15,
                    max_retries=0,
                )
            except JIRAError as e:
                raise _translate(e) from e
            except requests.exceptions.RequestException as e:
                raise TransientRemoteError(
                    f"Cannot connect to JIRA server at {self.config.jira_url}. "
                    "Check the URL and your network connection."
                ) from e
        return self._client

    def search_page(
        self,
        jql: str,
        fields: list[str],
        max_results: int,
        next_page_token: str | None = None,
    ) -> dict:
        """Run one page of an enhanced JQL search.

        Returns:
            Raw response dict with ``issues`` and, unless this was the last
            page, ``nextPageToken``.

        Raises:
            RateLimitError: On HTTP 429
            RemoteRequestError: On any other non-success status
            TransientRemoteError: If the server cannot be reached
        """
        client = self._get_client()
        try:
            return client.enhanced_search_issues(
                jql,
                nextPageToken=next_page_token,
                maxResults=max_results,
                fields=fields,
                json_result=True,
                use_post=True,
            )
        except JIRAError as e:
            raise _translate(e) from e
        except requests.exceptions.RequestException as e:
            raise TransientRemoteError(f"JIRA search failed: {e}") from e

    def get_issue(self, key: str, fields: list[str]) -> dict:
        """Fetch a single issue as a raw ``{"key", "fields"}`` dict."""
        client = self._get_client()
        try:
            issue = client.issue(key, fields=",".join(fields))
        except JIRAError as e:
            raise _translate(e) from e
        except requests.exceptions.RequestException as e:
            raise TransientRemoteError(f"JIRA issue fetch failed: {e}") from e
        return {
            "key": issue.key,
            "fields": issue.raw.get("fields", {}),
        }
