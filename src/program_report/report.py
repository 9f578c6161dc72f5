"""Program report generation: epic discovery, batch fetching and summary."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable

from program_report.config import FieldConfig
from program_report.epics import aggregate_epic, due_instant
from program_report.exceptions import RemoteError
from program_report.fetching import IssuePager, fetch_with_retry
from program_report.links import chunked, key_in_jql, resolve_links
from program_report.models import (
    DueEpic,
    EpicReport,
    Health,
    Issue,
    LinkedIssue,
    ProgramOption,
    ProgramReport,
    ProgramSummary,
    StoryBreakdown,
)
from program_report.parsing import parse_issue

logger = logging.getLogger(__name__)

PROGRAM_FIELDS = ["summary", "issuelinks", "subtasks"]
SEARCH_FIELDS = ["summary", "issuetype", "status"]
SEARCH_LIMIT = 20
MIN_QUERY_LENGTH = 2

HEALTH_BUCKETS = {
    Health.ON_TRACK: "onTrack",
    Health.AT_RISK: "atRisk",
    Health.LATE: "late",
}


def _group_by_parent(issues: list[Issue]) -> dict[str, list[Issue]]:
    grouped: dict[str, list[Issue]] = {}
    for issue in issues:
        if issue.parent_key:
            grouped.setdefault(issue.parent_key, []).append(issue)
    return grouped


def _candidate_epic_keys(program: Issue, pager: IssuePager) -> list[str]:
    """Keys linked to the program in either direction, plus its child epics."""
    candidates: dict[str, None] = {}
    for link in program.links:
        candidates.setdefault(link.other_key, None)
    for child in pager.search_all(f"parent = {program.key} AND issuetype = Epic"):
        candidates.setdefault(child.key, None)
    return list(candidates)


def summarize_program(epics: list[EpicReport], now: datetime) -> ProgramSummary:
    """Fold epic reports into program-wide totals and deadline lists."""
    one_week = now + timedelta(days=7)
    two_weeks = now + timedelta(days=14)

    health_counts = {"onTrack": 0, "atRisk": 0, "late": 0}
    overdue_count = 0
    due_this_week: list[DueEpic] = []
    due_next_two_weeks: list[DueEpic] = []

    for epic in epics:
        health_counts[HEALTH_BUCKETS[epic.health]] += 1

        if epic.due_date is None:
            continue
        due = due_instant(epic.due_date)
        if due < now and epic.progress < 100:
            overdue_count += 1
        elif now <= due <= one_week:
            due_this_week.append(DueEpic(epic.key, epic.summary, epic.due_date))
        elif one_week < due <= two_weeks:
            due_next_two_weeks.append(DueEpic(epic.key, epic.summary, epic.due_date))

    return ProgramSummary(
        total_epics=len(epics),
        total_stories=sum(e.total_stories for e in epics),
        total_tasks=sum(e.total_tasks for e in epics),
        completed_epics=sum(1 for e in epics if e.progress == 100),
        completed_stories=sum(e.done_stories for e in epics),
        completed_tasks=sum(e.done_tasks for e in epics),
        total_story_points=sum(e.story_points_total for e in epics),
        completed_story_points=sum(e.story_points_completed for e in epics),
        health_counts=health_counts,
        overdue_count=overdue_count,
        due_this_week=tuple(due_this_week),
        due_next_two_weeks=tuple(due_next_two_weeks),
    )


def build_program_report(
    client,
    program_key: str,
    fields: FieldConfig | None = None,
    *,
    now: datetime | None = None,
    sleep: Callable[[float], None] | None = None,
) -> ProgramReport:
    """Generate the full report for one program issue.

    All stories and tasks of all epics are fetched in two queries, and the
    links of all stories are resolved in a single batch pass.

    Args:
        client: Remote collaborator (JiraClient or compatible)
        program_key: Key of the program issue
        fields: Custom field mapping
        now: Reference time for health and deadlines
        sleep: Sleep function used between retries

    Raises:
        RemoteError: If the program issue itself cannot be fetched
    """
    fields = fields or FieldConfig()
    now = now or datetime.now(timezone.utc)
    pager = IssuePager(client, fields, sleep=sleep)

    logger.info("Generating report for program %s", program_key)

    raw_program = fetch_with_retry(
        lambda: client.get_issue(program_key, PROGRAM_FIELDS), sleep=sleep
    )
    program = parse_issue(raw_program, fields)

    candidates = _candidate_epic_keys(program, pager)
    if not candidates:
        return ProgramReport(key=program.key, summary=program.summary, summary_stats=ProgramSummary())

    epics: list[Issue] = []
    for batch in chunked(candidates):
        epics.extend(pager.search_all(f"{key_in_jql(batch)} AND issuetype = Epic"))
    program_epic_keys = {epic.key for epic in epics}

    stories: list[Issue] = []
    tasks: list[Issue] = []
    if epics:
        parents = ",".join(epic.key for epic in epics)
        stories = pager.search_all(f"parent IN ({parents}) AND issuetype = Story")
        tasks = pager.search_all(f"parent IN ({parents}) AND issuetype = Task")

    stories_by_epic = _group_by_parent(stories)
    tasks_by_epic = _group_by_parent(tasks)

    resolved = resolve_links(pager, stories)

    epic_reports = [
        aggregate_epic(
            epic,
            stories_by_epic.get(epic.key, []),
            tasks_by_epic.get(epic.key, []),
            resolved,
            program_epic_keys,
            now=now,
        )
        for epic in epics
    ]

    return ProgramReport(
        key=program.key,
        summary=program.summary,
        summary_stats=summarize_program(epic_reports, now),
        epics=tuple(epic_reports),
    )


def search_programs(client, query: str) -> list[ProgramOption]:
    """Look up candidate program issues by exact key or summary prefix."""
    if not query or len(query) < MIN_QUERY_LENGTH:
        return []

    escaped = query.replace("\\", "\\\\").replace('"', '\\"')
    jql = f'key = "{escaped.upper()}" OR summary ~ "{escaped}*" ORDER BY created DESC'

    try:
        data = client.search_page(jql, SEARCH_FIELDS, SEARCH_LIMIT)
    except RemoteError as e:
        logger.warning("Program search failed for %r: %s", query, e)
        return []

    options = []
    for raw in data.get("issues") or []:
        fields = raw.get("fields") or {}
        summary = fields.get("summary") or ""
        issue_type = (fields.get("issuetype") or {}).get("name") or ""
        options.append(
            ProgramOption(
                label=f"{raw['key']} - {summary} ({issue_type})",
                key=raw["key"],
                summary=summary,
                issue_type=issue_type,
            )
        )
    return options


def _date_str(d: date | None) -> str | None:
    return d.isoformat() if d else None


def _parse_date_str(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _due_epic_dict(d: DueEpic) -> dict:
    return {"key": d.key, "summary": d.summary, "dueDate": d.due_date.isoformat()}


def _linked_issue_dict(li: LinkedIssue) -> dict:
    return {
        "key": li.key,
        "summary": li.summary,
        "assignee": li.assignee,
        "storyPoints": li.story_points,
        "sprint": li.sprint,
        "status": li.status,
        "type": li.issue_type,
        "linkRelation": li.relation,
        "linkType": li.link_type,
        "allLinkTypes": list(li.all_link_types),
        "dueDate": _date_str(li.due_date),
    }


def _story_dict(s: StoryBreakdown) -> dict:
    return {
        "story": {
            "key": s.key,
            "summary": s.summary,
            "status": s.status,
            "statusCategory": s.status_category,
            "dueDate": _date_str(s.due_date),
        },
        "linkedIssues": [_linked_issue_dict(li) for li in s.linked_issues],
        "toDoCount": s.todo_count,
    }


def _epic_dict(e: EpicReport) -> dict:
    return {
        "epicKey": e.key,
        "epicSummary": e.summary,
        "epicStatus": e.status,
        "startDate": _date_str(e.start_date),
        "dueDate": _date_str(e.due_date),
        "progress": e.progress,
        "health": e.health.value,
        "totalStories": e.total_stories,
        "totalTasks": e.total_tasks,
        "doneStories": e.done_stories,
        "doneTasks": e.done_tasks,
        "totalIssues": e.total_issues,
        "issuesDone": e.issues_done,
        "storyPointsTotal": e.story_points_total,
        "storyPointsCompleted": e.story_points_completed,
        "assignees": list(e.assignees),
        "blockedBy": list(e.blocked_by),
        "blocks": list(e.blocks),
        "stories": [_story_dict(s) for s in e.stories],
    }


def report_to_dict(report: ProgramReport) -> dict:
    """Convert a ProgramReport to a JSON-serializable dict."""
    s = report.summary_stats
    return {
        "program": {"key": report.key, "summary": report.summary},
        "summary": {
            "totalEpics": s.total_epics,
            "totalStories": s.total_stories,
            "totalTasks": s.total_tasks,
            "completedEpics": s.completed_epics,
            "completedStories": s.completed_stories,
            "completedTasks": s.completed_tasks,
            "totalStoryPoints": s.total_story_points,
            "completedStoryPoints": s.completed_story_points,
            "healthCounts": dict(s.health_counts),
            "overdueCount": s.overdue_count,
            "dueThisWeek": [_due_epic_dict(d) for d in s.due_this_week],
            "dueNextTwoWeeks": [_due_epic_dict(d) for d in s.due_next_two_weeks],
        },
        "epics": [_epic_dict(e) for e in report.epics],
    }


def report_from_dict(data: dict) -> ProgramReport:
    """Rebuild a ProgramReport from the output of ``report_to_dict``."""

    def _due_epic(d: dict) -> DueEpic:
        return DueEpic(d["key"], d["summary"], date.fromisoformat(d["dueDate"]))

    def _linked_issue(d: dict) -> LinkedIssue:
        return LinkedIssue(
            key=d["key"],
            summary=d["summary"],
            assignee=d["assignee"],
            story_points=d["storyPoints"],
            sprint=d["sprint"],
            status=d["status"],
            issue_type=d["type"],
            relation=d["linkRelation"],
            link_type=d["linkType"],
            all_link_types=tuple(d["allLinkTypes"]),
            due_date=_parse_date_str(d["dueDate"]),
        )

    def _story(d: dict) -> StoryBreakdown:
        story = d["story"]
        return StoryBreakdown(
            key=story["key"],
            summary=story["summary"],
            status=story["status"],
            status_category=story["statusCategory"],
            due_date=_parse_date_str(story["dueDate"]),
            linked_issues=tuple(_linked_issue(li) for li in d["linkedIssues"]),
            todo_count=d["toDoCount"],
        )

    def _epic(d: dict) -> EpicReport:
        return EpicReport(
            key=d["epicKey"],
            summary=d["epicSummary"],
            status=d["epicStatus"],
            start_date=_parse_date_str(d["startDate"]),
            due_date=_parse_date_str(d["dueDate"]),
            progress=d["progress"],
            health=Health(d["health"]),
            total_stories=d["totalStories"],
            total_tasks=d["totalTasks"],
            done_stories=d["doneStories"],
            done_tasks=d["doneTasks"],
            total_issues=d["totalIssues"],
            issues_done=d["issuesDone"],
            story_points_total=d["storyPointsTotal"],
            story_points_completed=d["storyPointsCompleted"],
            assignees=tuple(d["assignees"]),
            blocked_by=tuple(d["blockedBy"]),
            blocks=tuple(d["blocks"]),
            stories=tuple(_story(s) for s in d["stories"]),
        )

    s = data["summary"]
    return ProgramReport(
        key=data["program"]["key"],
        summary=data["program"]["summary"],
        summary_stats=ProgramSummary(
            total_epics=s["totalEpics"],
            total_stories=s["totalStories"],
            total_tasks=s["totalTasks"],
            completed_epics=s["completedEpics"],
            completed_stories=s["completedStories"],
            completed_tasks=s["completedTasks"],
            total_story_points=s["totalStoryPoints"],
            completed_story_points=s["completedStoryPoints"],
            health_counts=dict(s["healthCounts"]),
            overdue_count=s["overdueCount"],
            due_this_week=tuple(_due_epic(d) for d in s["dueThisWeek"]),
            due_next_two_weeks=tuple(_due_epic(d) for d in s["dueNextTwoWeeks"]),
        ),
        epics=tuple(_epic(e) for e in data["epics"]),
    )
