"""Conversion of raw Jira issue payloads into Issue values."""

from datetime import date, datetime, timezone

from program_report.config import FieldConfig
from program_report.models import Issue, IssueLink, Sprint


def _parse_date(value) -> date | None:
    """Parse a Jira date value ("YYYY-MM-DD", possibly with a time part)."""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except (ValueError, TypeError):
        return None


def _parse_datetime(value) -> datetime | None:
    """Parse a Jira timestamp such as "2024-01-02T10:00:00.000+0000".

    Naive results are taken to be UTC.
    """
    if not value:
        return None
    text = str(value)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%Y-%m-%dT%H:%M:%S.%f%z")
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_points(value) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    return 0


def _parse_sprints(value) -> tuple[Sprint, ...]:
    if not isinstance(value, list):
        return ()
    sprints = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        sprints.append(
            Sprint(name=entry.get("name") or "", end_date=_parse_datetime(entry.get("endDate")))
        )
    return tuple(sprints)


def _parse_links(raw_links) -> tuple[IssueLink, ...]:
    links = []
    for link in raw_links or []:
        link_type = link.get("type") or {}
        outward_issue = link.get("outwardIssue")
        inward_issue = link.get("inwardIssue")

        if outward_issue and outward_issue.get("key"):
            other, outward = outward_issue, True
        elif inward_issue and inward_issue.get("key"):
            other, outward = inward_issue, False
        else:
            continue

        relation = link_type.get("outward" if outward else "inward") or ""
        links.append(
            IssueLink(
                other_key=other["key"],
                outward=outward,
                relation=relation,
                link_type=link_type.get("name") or "",
            )
        )
    return tuple(links)


def parse_issue(raw: dict, fields: FieldConfig) -> Issue:
    """Build an Issue from a raw ``{"key", "fields"}`` payload.

    Missing or malformed fields fall back to the Issue defaults: story points
    count as 0 and an absent assignee is None.
    """
    data = raw.get("fields") or {}
    status = data.get("status") or {}
    category = status.get("statusCategory") or {}
    assignee = data.get("assignee") or {}
    parent = data.get("parent") or {}

    return Issue(
        key=raw["key"],
        summary=data.get("summary") or "",
        status=status.get("name") or "",
        status_category_key=category.get("key"),
        status_category_name=category.get("name"),
        issue_type=(data.get("issuetype") or {}).get("name") or "",
        assignee=assignee.get("displayName") or None,
        story_points=_parse_points(data.get(fields.story_points)),
        sprints=_parse_sprints(data.get(fields.sprint)),
        due_date=_parse_date(data.get("duedate")),
        created=_parse_datetime(data.get("created")),
        parent_key=parent.get("key") or None,
        links=_parse_links(data.get("issuelinks")),
        epic_start=_parse_date(data.get(fields.epic_start)),
        epic_end=_parse_date(data.get(fields.epic_end)),
    )
