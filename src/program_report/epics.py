"""Per-epic rollup of progress, health, story points and dependencies."""

import math
from datetime import date, datetime, time, timedelta, timezone

from program_report.links import ResolvedLinks
from program_report.models import EpicReport, Health, Issue, StoryBreakdown

BLOCKS_LINK_TYPE = "Blocks"
AT_RISK_WINDOW = timedelta(days=7)
AT_RISK_PROGRESS = 80

LINKED_DONE_CATEGORIES = {"Done", "Closed", "Resolved"}
LINKED_DONE_STATUSES = {"Done", "Closed"}


def is_done_child(issue: Issue) -> bool:
    """Done rule for direct children of an epic: status category key "done"."""
    return issue.status_category_key == "done"


def is_done_linked(issue: Issue) -> bool:
    """Done rule for issues linked from a story.

    Deliberately broader than ``is_done_child``: it looks at the status
    category name and the status name instead of the category key.
    """
    return (
        issue.status_category_name in LINKED_DONE_CATEGORIES
        or issue.status in LINKED_DONE_STATUSES
    )


def compute_progress(issues_done: int, total_issues: int) -> int:
    """Percentage of done issues, rounded half up; 0 when there are none."""
    if total_issues <= 0:
        return 0
    return int(math.floor(issues_done / total_issues * 100 + 0.5))


def due_instant(due: date) -> datetime:
    """Due dates are compared as midnight UTC of the day."""
    return datetime.combine(due, time.min, tzinfo=timezone.utc)


def classify_health(progress: int, due_date: date | None, now: datetime) -> Health:
    """Late if unfinished past due, At Risk if under 80% within a week of due."""
    if due_date is None:
        return Health.ON_TRACK
    due = due_instant(due_date)
    if progress < 100 and due < now:
        return Health.LATE
    if progress < AT_RISK_PROGRESS and (due - now) < AT_RISK_WINDOW:
        return Health.AT_RISK
    return Health.ON_TRACK


def extract_dependencies(
    epic: Issue, program_epic_keys: set[str]
) -> tuple[list[str], list[str]]:
    """Return (blocked_by, blocks) restricted to epics of the same program."""
    blocked_by: list[str] = []
    blocks: list[str] = []
    for link in epic.links:
        if link.link_type != BLOCKS_LINK_TYPE or link.other_key not in program_epic_keys:
            continue
        if link.outward:
            blocks.append(link.other_key)
        else:
            blocked_by.append(link.other_key)
    return blocked_by, blocks


class _Tally:
    """Running totals for one epic; each issue key is counted once."""

    def __init__(self) -> None:
        self.seen: set[str] = set()
        self.total_issues = 0
        self.issues_done = 0
        self.points_total: float = 0
        self.points_completed: float = 0
        self.assignees: dict[str, None] = {}
        self.earliest_created: datetime | None = None

    def count(self, issue: Issue, done: bool) -> None:
        if issue.key in self.seen:
            return
        self.seen.add(issue.key)
        self.total_issues += 1

        if issue.created and (
            self.earliest_created is None or issue.created < self.earliest_created
        ):
            self.earliest_created = issue.created
        if issue.assignee:
            self.assignees.setdefault(issue.assignee, None)

        self.points_total += issue.story_points
        if done:
            self.points_completed += issue.story_points
            self.issues_done += 1


def aggregate_epic(
    epic: Issue,
    stories: list[Issue],
    tasks: list[Issue],
    resolved: ResolvedLinks,
    program_epic_keys: set[str] | None = None,
    *,
    now: datetime | None = None,
) -> EpicReport:
    """Roll up one epic from its direct children and their resolved links.

    Args:
        epic: The epic issue
        stories: Direct Story children
        tasks: Direct Task children
        resolved: Batch-resolved linked issues for (at least) these stories
        program_epic_keys: Epics of the program, for dependency filtering
        now: Reference time for health, defaults to the current UTC time

    Returns:
        EpicReport for the epic
    """
    now = now or datetime.now(timezone.utc)
    program_epic_keys = program_epic_keys or set()
    tally = _Tally()

    for child in [*stories, *tasks]:
        tally.count(child, is_done_child(child))

    breakdown: list[StoryBreakdown] = []
    for story in stories:
        linked = resolved.linked_issues_for(story)
        linked_done = 0
        for item in linked:
            done = is_done_linked(item.issue)
            if done:
                linked_done += 1
            tally.count(item.issue, done)

        breakdown.append(
            StoryBreakdown(
                key=story.key,
                summary=story.summary,
                status=story.status or "Unknown",
                status_category=story.status_category_key,
                due_date=story.due_date,
                linked_issues=tuple(linked),
                todo_count=len(linked) - linked_done,
            )
        )

    breakdown.sort(key=lambda s: s.todo_count, reverse=True)

    progress = compute_progress(tally.issues_done, tally.total_issues)
    due_date = epic.epic_end or epic.due_date
    start_date = epic.epic_start
    if start_date is None and tally.earliest_created is not None:
        start_date = tally.earliest_created.astimezone(timezone.utc).date()

    blocked_by, blocks = extract_dependencies(epic, program_epic_keys)

    return EpicReport(
        key=epic.key,
        summary=epic.summary,
        status=epic.status,
        start_date=start_date,
        due_date=due_date,
        progress=progress,
        health=classify_health(progress, due_date, now),
        total_stories=len(stories),
        total_tasks=len(tasks),
        done_stories=sum(1 for s in stories if is_done_child(s)),
        done_tasks=sum(1 for t in tasks if is_done_child(t)),
        total_issues=tally.total_issues,
        issues_done=tally.issues_done,
        story_points_total=tally.points_total,
        story_points_completed=tally.points_completed,
        assignees=tuple(tally.assignees),
        blocked_by=tuple(blocked_by),
        blocks=tuple(blocks),
        stories=tuple(breakdown),
    )
