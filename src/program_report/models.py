"""Data models for Program Report."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import NamedTuple


class Health(str, Enum):
    """Schedule health of an epic."""

    ON_TRACK = "On Track"
    AT_RISK = "At Risk"
    LATE = "Late"


@dataclass(frozen=True)
class Sprint:
    name: str
    end_date: datetime | None = None


@dataclass(frozen=True)
class IssueLink:
    """One entry of an issue's ``issuelinks`` field, seen from that issue."""

    other_key: str
    outward: bool  # True when the other issue is on the outward side
    relation: str  # "blocks" / "is blocked by", "split to" / "split from", ...
    link_type: str  # "Blocks", "Work item split", ...


@dataclass(frozen=True)
class Issue:
    """A Jira issue with every remote-sourced field made explicit."""

    key: str
    summary: str = ""
    status: str = ""
    status_category_key: str | None = None  # "new" | "indeterminate" | "done"
    status_category_name: str | None = None
    issue_type: str = ""
    assignee: str | None = None
    story_points: float = 0
    sprints: tuple[Sprint, ...] = ()
    due_date: date | None = None
    created: datetime | None = None
    parent_key: str | None = None
    links: tuple[IssueLink, ...] = ()
    epic_start: date | None = None
    epic_end: date | None = None


class LinkObservation(NamedTuple):
    relation: str
    link_type: str


@dataclass(frozen=True)
class LinkedIssue:
    """An issue linked from a story, with the link metadata used for display."""

    key: str
    summary: str
    assignee: str | None
    story_points: float | None
    sprint: str
    status: str
    issue_type: str
    relation: str
    link_type: str
    all_link_types: tuple[str, ...]
    due_date: date | None
    # Kept for rollups; not part of the serialized form.
    issue: Issue | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class StoryBreakdown:
    key: str
    summary: str
    status: str
    status_category: str | None
    due_date: date | None
    linked_issues: tuple[LinkedIssue, ...]
    todo_count: int


@dataclass(frozen=True)
class EpicReport:
    """Rollup of one epic and everything counted toward it."""

    key: str
    summary: str
    status: str
    start_date: date | None
    due_date: date | None
    progress: int
    health: Health
    total_stories: int = 0
    total_tasks: int = 0
    done_stories: int = 0
    done_tasks: int = 0
    total_issues: int = 0
    issues_done: int = 0
    story_points_total: float = 0
    story_points_completed: float = 0
    assignees: tuple[str, ...] = ()
    blocked_by: tuple[str, ...] = ()
    blocks: tuple[str, ...] = ()
    stories: tuple[StoryBreakdown, ...] = ()


@dataclass(frozen=True)
class DueEpic:
    key: str
    summary: str
    due_date: date


@dataclass(frozen=True)
class ProgramSummary:
    """Program-wide totals folded over all epic reports."""

    total_epics: int = 0
    total_stories: int = 0
    total_tasks: int = 0
    completed_epics: int = 0
    completed_stories: int = 0
    completed_tasks: int = 0
    total_story_points: float = 0
    completed_story_points: float = 0
    health_counts: dict[str, int] = field(
        default_factory=lambda: {"onTrack": 0, "atRisk": 0, "late": 0}
    )
    overdue_count: int = 0
    due_this_week: tuple[DueEpic, ...] = ()
    due_next_two_weeks: tuple[DueEpic, ...] = ()


@dataclass(frozen=True)
class ProgramReport:
    """Complete result of a program report computation."""

    key: str
    summary: str
    summary_stats: ProgramSummary
    epics: tuple[EpicReport, ...] = ()


@dataclass(frozen=True)
class ProgramOption:
    """A search hit offered when picking a program."""

    label: str
    key: str
    summary: str
    issue_type: str


@dataclass(frozen=True)
class CachedReport:
    report: ProgramReport
    from_cache: bool
    cache_age: timedelta | None = None
