"""Tests for JiraClient error translation and request shapes."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from jira import JIRAError

from program_report.config import Config
from program_report.exceptions import (
    AuthenticationError,
    RateLimitError,
    RemoteRequestError,
    TransientRemoteError,
)
from program_report.jira_client import JiraClient


def _client():
    config = Config(
        jira_url="https://example.atlassian.net",
        jira_email="me@example.com",
        jira_api_token="token",
    )
    return JiraClient(config)


class TestJiraClient:
    @patch("program_report.jira_client.JIRA")
    def test_disables_library_retries(self, mock_jira_cls):
        _client().search_page("project = A", ["summary"], 100)
        assert mock_jira_cls.call_args.kwargs["max_retries"] == 0

    @patch("program_report.jira_client.JIRA")
    def test_search_page_passes_token(self, mock_jira_cls):
        mock_jira = mock_jira_cls.return_value
        mock_jira.enhanced_search_issues.return_value = {"issues": [], "nextPageToken": None}

        result = _client().search_page("project = A", ["summary"], 50, "tok")

        assert result == {"issues": [], "nextPageToken": None}
        kwargs = mock_jira.enhanced_search_issues.call_args.kwargs
        assert kwargs["nextPageToken"] == "tok"
        assert kwargs["maxResults"] == 50
        assert kwargs["json_result"] is True

    @patch("program_report.jira_client.JIRA")
    def test_rate_limit_carries_retry_after(self, mock_jira_cls):
        response = MagicMock(headers={"Retry-After": "3"})
        mock_jira_cls.return_value.enhanced_search_issues.side_effect = JIRAError(
            status_code=429, response=response
        )

        with pytest.raises(RateLimitError) as exc_info:
            _client().search_page("x", ["summary"], 100)
        assert exc_info.value.retry_after == 3.0

    @patch("program_report.jira_client.JIRA")
    def test_auth_and_other_statuses(self, mock_jira_cls):
        mock_jira = mock_jira_cls.return_value
        client = _client()

        mock_jira.issue.side_effect = JIRAError(status_code=401)
        with pytest.raises(AuthenticationError):
            client.get_issue("A-1", ["summary"])

        mock_jira.issue.side_effect = JIRAError(status_code=503, text="unavailable")
        with pytest.raises(RemoteRequestError) as exc_info:
            client.get_issue("A-1", ["summary"])
        assert exc_info.value.status_code == 503

    @patch("program_report.jira_client.JIRA")
    def test_connection_errors_are_transient(self, mock_jira_cls):
        mock_jira_cls.return_value.enhanced_search_issues.side_effect = (
            requests.exceptions.ConnectionError("refused")
        )
        with pytest.raises(TransientRemoteError):
            _client().search_page("x", ["summary"], 100)

    @patch("program_report.jira_client.JIRA")
    def test_interrupted_responses_are_transient(self, mock_jira_cls):
        mock_jira = mock_jira_cls.return_value
        mock_jira.enhanced_search_issues.side_effect = (
            requests.exceptions.ChunkedEncodingError("reset")
        )
        mock_jira.issue.side_effect = requests.exceptions.SSLError("handshake")
        client = _client()

        with pytest.raises(TransientRemoteError):
            client.search_page("x", ["summary"], 100)
        with pytest.raises(TransientRemoteError):
            client.get_issue("A-1", ["summary"])

    @patch("program_report.jira_client.JIRA")
    def test_get_issue_returns_raw_fields(self, mock_jira_cls):
        issue = MagicMock()
        issue.key = "PROG-1"
        issue.raw = {"fields": {"summary": "Program"}}
        mock_jira_cls.return_value.issue.return_value = issue

        raw = _client().get_issue("PROG-1", ["summary", "issuelinks"])

        assert raw == {"key": "PROG-1", "fields": {"summary": "Program"}}
        assert mock_jira_cls.return_value.issue.call_args.kwargs["fields"] == "summary,issuelinks"
