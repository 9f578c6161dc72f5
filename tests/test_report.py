"""Tests for program report generation and serialization."""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest
from factories import FakeJira, raw_issue, raw_link

from program_report.exceptions import RemoteRequestError
from program_report.models import EpicReport, Health
from program_report.report import (
    build_program_report,
    report_from_dict,
    report_to_dict,
    search_programs,
    summarize_program,
)

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def _two_epic_program():
    """Program linked to two epics; story A has two linked tasks, story B none."""
    return [
        raw_issue(
            "PROG-1",
            issue_type="Program",
            summary="Big Program",
            links=[
                raw_link("EPIC-1", "Relates", other_type="Epic"),
                raw_link("EPIC-2", "Relates", outward=False, other_type="Epic"),
            ],
        ),
        raw_issue(
            "EPIC-1",
            issue_type="Epic",
            duedate="2026-06-18",
            links=[raw_link("EPIC-2", "Blocks", outward=True, other_type="Epic")],
        ),
        raw_issue(
            "EPIC-2",
            issue_type="Epic",
            duedate="2026-06-26",
            links=[raw_link("EPIC-1", "Blocks", outward=False, other_type="Epic")],
        ),
        raw_issue(
            "STORY-A",
            parent="EPIC-1",
            links=[raw_link("WORK-1"), raw_link("WORK-2")],
        ),
        raw_issue("STORY-B", parent="EPIC-2", status="done", points=3),
        raw_issue("WORK-1", issue_type="Task", status="done", points=2),
        raw_issue("WORK-2", issue_type="Task", points=1),
    ]


class TestBuildProgramReport:
    def test_end_to_end_two_epics(self):
        jira = FakeJira(_two_epic_program())

        report = build_program_report(jira, "PROG-1", now=NOW)

        assert report.key == "PROG-1"
        assert report.summary == "Big Program"
        epics = {e.key: e for e in report.epics}
        assert set(epics) == {"EPIC-1", "EPIC-2"}
        assert sum(e.total_issues for e in report.epics) == 4
        assert epics["EPIC-1"].total_issues == 3
        assert epics["EPIC-1"].issues_done == 1
        assert epics["EPIC-1"].progress == 33
        assert epics["EPIC-2"].issues_done == 1
        assert epics["EPIC-2"].progress == 100

        stats = report.summary_stats
        assert stats.total_epics == 2
        assert stats.completed_epics == 1
        assert stats.total_stories == 2
        assert stats.completed_stories == 1
        assert stats.total_story_points == 6
        assert stats.completed_story_points == 5

    def test_dependencies_stay_within_program(self):
        report = build_program_report(FakeJira(_two_epic_program()), "PROG-1", now=NOW)
        epics = {e.key: e for e in report.epics}
        assert epics["EPIC-1"].blocks == ("EPIC-2",)
        assert epics["EPIC-2"].blocked_by == ("EPIC-1",)

    def test_children_fetched_in_two_queries_and_links_once(self):
        jira = FakeJira(_two_epic_program())

        build_program_report(jira, "PROG-1", now=NOW)

        child_queries = [q for q in jira.queries if q.startswith("parent IN")]
        assert child_queries == [
            "parent IN (EPIC-1,EPIC-2) AND issuetype = Story",
            "parent IN (EPIC-1,EPIC-2) AND issuetype = Task",
        ]
        link_queries = [q for q in jira.queries if q.startswith("key IN") and "Epic" not in q]
        assert link_queries == ['key IN ("WORK-1","WORK-2")']

    def test_includes_child_epics_and_ignores_non_epic_links(self):
        issues = [
            raw_issue("PROG-1", issue_type="Program", links=[raw_link("STORY-X", other_type="Story")]),
            raw_issue("EPIC-9", issue_type="Epic", parent="PROG-1"),
            raw_issue("STORY-X"),
        ]

        report = build_program_report(FakeJira(issues), "PROG-1", now=NOW)

        assert [e.key for e in report.epics] == ["EPIC-9"]

    def test_program_without_candidates_is_empty(self):
        jira = FakeJira([raw_issue("PROG-1", issue_type="Program", summary="Lonely")])

        report = build_program_report(jira, "PROG-1", now=NOW)

        assert report.summary == "Lonely"
        assert report.epics == ()
        assert report.summary_stats.total_epics == 0
        assert report.summary_stats.health_counts == {"onTrack": 0, "atRisk": 0, "late": 0}

    def test_program_fetch_failure_propagates(self):
        client = MagicMock()
        client.get_issue.side_effect = RemoteRequestError("gone", status_code=404)

        with pytest.raises(RemoteRequestError):
            build_program_report(client, "PROG-404", now=NOW, sleep=MagicMock())
        assert client.get_issue.call_count == 3


def _epic(key, progress, due, health=Health.ON_TRACK):
    return EpicReport(
        key=key,
        summary=f"Epic {key}",
        status="In Progress",
        start_date=None,
        due_date=due,
        progress=progress,
        health=health,
    )


class TestSummarizeProgram:
    def test_deadline_buckets_are_exclusive(self):
        epics = [
            _epic("E-1", 50, date(2026, 6, 1), Health.LATE),
            _epic("E-2", 100, date(2026, 6, 1)),
            _epic("E-3", 10, date(2026, 6, 20), Health.AT_RISK),
            _epic("E-4", 90, date(2026, 6, 25)),
            _epic("E-5", 0, date(2026, 8, 1)),
            _epic("E-6", 0, None),
        ]

        summary = summarize_program(epics, NOW)

        assert summary.overdue_count == 1
        assert [d.key for d in summary.due_this_week] == ["E-3"]
        assert [d.key for d in summary.due_next_two_weeks] == ["E-4"]
        assert summary.health_counts == {"onTrack": 4, "atRisk": 1, "late": 1}
        assert summary.completed_epics == 1


class TestSearchPrograms:
    def test_short_query_returns_nothing(self):
        client = MagicMock()
        assert search_programs(client, "P") == []
        client.search_page.assert_not_called()

    def test_maps_results_to_options(self):
        client = MagicMock()
        client.search_page.return_value = {
            "issues": [
                {"key": "PROG-1", "fields": {"summary": "Big Program", "issuetype": {"name": "Program"}}}
            ]
        }

        options = search_programs(client, "prog")

        jql = client.search_page.call_args.args[0]
        assert jql == 'key = "PROG" OR summary ~ "prog*" ORDER BY created DESC'
        assert options[0].label == "PROG-1 - Big Program (Program)"
        assert options[0].key == "PROG-1"
        assert options[0].issue_type == "Program"

    def test_escapes_quotes(self):
        client = MagicMock()
        client.search_page.return_value = {"issues": []}
        search_programs(client, 'a"b')
        assert 'summary ~ "a\\"b*"' in client.search_page.call_args.args[0]

    def test_failure_returns_empty_list(self):
        client = MagicMock()
        client.search_page.side_effect = RemoteRequestError("bad", status_code=400)
        assert search_programs(client, "prog") == []


class TestReportSerialization:
    def test_dict_form_survives_reload(self):
        report = build_program_report(FakeJira(_two_epic_program()), "PROG-1", now=NOW)

        data = report_to_dict(report)
        restored = report_from_dict(data)

        assert report_to_dict(restored) == data
        assert data["epics"][0]["health"] in {"On Track", "At Risk", "Late"}
        assert data["summary"]["dueThisWeek"][0]["dueDate"] == "2026-06-18"
