"""Retrying remote calls and paginated JQL searches."""

import logging
import time
from functools import partial
from typing import Callable, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from program_report.config import FieldConfig
from program_report.exceptions import RateLimitError, RemoteError
from program_report.models import Issue
from program_report.parsing import parse_issue

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
MAX_RESULTS = 100

T = TypeVar("T")


def _backoff_seconds(retry_state: RetryCallState) -> float:
    """Seconds to wait before the next attempt.

    A 429 with a Retry-After hint waits for the hint; everything else waits
    2 ** n seconds, n being the 0-based index of the attempt that failed.
    """
    error = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(error, RateLimitError) and error.retry_after is not None:
        return error.retry_after
    return float(2 ** (retry_state.attempt_number - 1))


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    if isinstance(error, RateLimitError):
        logger.warning(
            "Rate limited, retrying after %ss (attempt %d/%d)",
            wait,
            retry_state.attempt_number,
            MAX_ATTEMPTS,
        )
    else:
        logger.warning(
            "Request failed (%s), retrying in %sms (attempt %d/%d)",
            error,
            int(wait * 1000),
            retry_state.attempt_number,
            MAX_ATTEMPTS,
        )


def fetch_with_retry(
    operation: Callable[[], T],
    *,
    max_attempts: int = MAX_ATTEMPTS,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Run ``operation``, retrying rate limits and transient remote failures.

    Args:
        operation: Zero-argument callable performing one remote call
        max_attempts: Total attempts, including the first
        sleep: Sleep function, injectable for tests

    Returns:
        Whatever ``operation`` returns on its first successful attempt

    Raises:
        RemoteError: The last failure once all attempts are used up
    """
    retrying = Retrying(
        retry=retry_if_exception_type(RemoteError),
        stop=stop_after_attempt(max_attempts),
        wait=_backoff_seconds,
        before_sleep=_log_retry,
        sleep=sleep or time.sleep,
        reraise=True,
    )
    return retrying(operation)


class IssuePager:
    """Runs a JQL query to exhaustion, one page of at most 100 issues at a time."""

    def __init__(
        self,
        client,
        fields: FieldConfig,
        page_size: int = MAX_RESULTS,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.client = client
        self.fields = fields
        self.page_size = max(1, min(page_size, MAX_RESULTS))
        self.sleep = sleep

    def search_raw(self, jql: str) -> list[dict]:
        """Collect raw issue payloads across all pages, in arrival order.

        A page that still fails after retries ends the search; the pages
        gathered so far are returned, so a short result may be incomplete.
        """
        projection = self.fields.search_fields()
        issues: list[dict] = []
        next_page_token: str | None = None

        logger.info("Executing JQL: %s", jql)

        while True:
            try:
                data = fetch_with_retry(
                    partial(
                        self.client.search_page,
                        jql,
                        projection,
                        self.page_size,
                        next_page_token,
                    ),
                    sleep=self.sleep,
                )
            except RemoteError as e:
                logger.error(
                    "JQL query failed, returning %d issues collected so far: %s",
                    len(issues),
                    e,
                )
                break

            issues.extend(data.get("issues") or [])
            next_page_token = data.get("nextPageToken")
            if not next_page_token:
                break

        return issues

    def search_all(self, jql: str) -> list[Issue]:
        """Collect all issues matching ``jql`` as Issue values."""
        return [parse_issue(raw, self.fields) for raw in self.search_raw(jql)]
