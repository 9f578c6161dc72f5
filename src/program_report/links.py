"""Link graph construction and batch resolution of linked issues."""

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from program_report.models import Issue, LinkedIssue, LinkObservation

BATCH_SIZE = 100
SPLIT_LINK_TYPE = "Work item split"

# target key -> source key -> observations, both levels in discovery order
LinkGraph = dict[str, dict[str, list[LinkObservation]]]


def build_link_graph(sources: Iterable[Issue]) -> LinkGraph:
    """Index every link of ``sources`` by the issue it points at."""
    graph: LinkGraph = {}
    for source in sources:
        for link in source.links:
            observations = graph.setdefault(link.other_key, {}).setdefault(source.key, [])
            observations.append(LinkObservation(link.relation, link.link_type))
    return graph


def primary_observation(observations: list[LinkObservation]) -> LinkObservation:
    """Pick the link shown for a source/target pair.

    A "Work item split" link wins wherever it was recorded; otherwise the
    first recorded link is used.
    """
    for observation in observations:
        if observation.link_type == SPLIT_LINK_TYPE:
            return observation
    if observations:
        return observations[0]
    return LinkObservation("", "")


def newest_sprint_name(issue: Issue) -> str:
    """Name of the sprint with the latest end date, or "" if none."""
    dated = [s for s in issue.sprints if s.end_date is not None]
    if dated:
        return max(dated, key=lambda s: s.end_date).name
    if issue.sprints:
        return issue.sprints[0].name
    return ""


def chunked(keys: list[str], size: int = BATCH_SIZE) -> Iterator[list[str]]:
    for start in range(0, len(keys), size):
        yield keys[start:start + size]


def key_in_jql(keys: Iterable[str]) -> str:
    return "key IN (" + ",".join(f'"{key}"' for key in keys) + ")"


@dataclass
class ResolvedLinks:
    """Every linked issue fetched for a set of source issues, plus the graph."""

    issues: dict[str, Issue] = field(default_factory=dict)
    graph: LinkGraph = field(default_factory=dict)

    def linked_issues_for(self, source: Issue) -> list[LinkedIssue]:
        """Resolved linked issues of ``source`` in link order, each at most once."""
        linked: list[LinkedIssue] = []
        seen: set[str] = set()

        for link in source.links:
            key = link.other_key
            issue = self.issues.get(key)
            if issue is None or key in seen:
                continue
            seen.add(key)

            observations = self.graph.get(key, {}).get(source.key, [])
            primary = primary_observation(observations)

            linked.append(
                LinkedIssue(
                    key=issue.key,
                    summary=issue.summary,
                    assignee=issue.assignee,
                    story_points=issue.story_points or None,
                    sprint=newest_sprint_name(issue),
                    status=issue.status,
                    issue_type=issue.issue_type,
                    relation=primary.relation,
                    link_type=primary.link_type,
                    all_link_types=tuple(o.link_type for o in observations),
                    due_date=issue.due_date,
                    issue=issue,
                )
            )

        return linked


def resolve_links(pager, sources: list[Issue], batch_size: int = BATCH_SIZE) -> ResolvedLinks:
    """Fetch every issue linked from ``sources`` with one query per batch of keys.

    Args:
        pager: IssuePager used for the ``key IN (...)`` queries
        sources: Issues whose links should be resolved
        batch_size: Maximum number of keys per query

    Returns:
        ResolvedLinks holding the fetched issues and the link graph
    """
    graph = build_link_graph(sources)
    keys = list(graph)

    issues: dict[str, Issue] = {}
    for batch in chunked(keys, batch_size):
        for issue in pager.search_all(key_in_jql(batch)):
            issues[issue.key] = issue

    return ResolvedLinks(issues=issues, graph=graph)
