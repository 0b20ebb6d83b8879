"""Parent/child graph over an issue snapshot and the "next" resolver."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

from .models import (
    ACTIONABLE_STATUSES,
    MISSING_PRIORITY,
    Issue,
    is_done,
    is_terminal,
    normalize_id,
    normalize_status,
    normalize_type,
)


@dataclass(frozen=True)
class IssueGraphNode:
    issue: Issue
    child_ids: tuple[str, ...] = ()
    parent_ids: tuple[str, ...] = ()
    previous_ids: tuple[str, ...] = ()
    next_ids: tuple[str, ...] = ()
    has_incomplete_children: bool = False
    all_previous_done: bool = True
    parent_execution_mode: str | None = None

    @property
    def id(self) -> str:
        return self.issue.id


@dataclass(frozen=True)
class IssueGraph:
    nodes: dict[str, IssueGraphNode]
    root_ids: tuple[str, ...]

    def get(self, issue_id: str) -> IssueGraphNode | None:
        return self.nodes.get(normalize_id(issue_id))

    def descendant_ids(self, issue_id: str) -> list[str]:
        """BFS over child edges, excluding ``issue_id`` itself."""
        root = normalize_id(issue_id)
        result: list[str] = []
        seen: set[str] = {root}
        q: deque[str] = deque([root])
        while q:
            node = self.nodes.get(q.popleft())
            if node is None:
                continue
            for child_id in node.child_ids:
                if child_id in seen:
                    continue
                seen.add(child_id)
                result.append(child_id)
                q.append(child_id)
        return result

    def ancestor_ids(self, issue_id: str) -> list[str]:
        """BFS over parent edges, excluding ``issue_id`` itself."""
        start = normalize_id(issue_id)
        result: list[str] = []
        seen: set[str] = {start}
        q: deque[str] = deque([start])
        while q:
            node = self.nodes.get(q.popleft())
            if node is None:
                continue
            for parent_id in node.parent_ids:
                if parent_id in seen:
                    continue
                seen.add(parent_id)
                result.append(parent_id)
                q.append(parent_id)
        return result


def _status_rank(issue: Issue) -> int:
    return 0 if issue.status.value == "review" else 1


def _priority_rank(issue: Issue) -> int:
    priority = issue.priority.value
    return MISSING_PRIORITY if priority is None else priority


def presentation_key(issue: Issue) -> tuple[int, int, int, str]:
    """Review first, then documented issues, then priority, then title."""
    return (
        _status_rank(issue),
        0 if issue.has_description() else 1,
        _priority_rank(issue),
        issue.title.value or "",
    )


def child_sort_key(issue: Issue, parent_id: str) -> tuple[str, int, int, int, str]:
    return (issue.sort_order_for(parent_id) or "", *presentation_key(issue))


def build_graph(issues: Iterable[Issue]) -> IssueGraph:
    by_id: dict[str, Issue] = {}
    for issue in issues:
        by_id[issue.id] = issue

    children_of: dict[str, list[Issue]] = {}
    parents_of: dict[str, list[str]] = {}
    for issue in by_id.values():
        resolved: list[str] = []
        for parent_id in issue.parent_ids:
            if parent_id not in by_id or parent_id in resolved:
                continue
            resolved.append(parent_id)
            children_of.setdefault(parent_id, []).append(issue)
        parents_of[issue.id] = resolved

    for parent_id, children in children_of.items():
        children.sort(key=lambda child: child_sort_key(child, parent_id))

    previous_of: dict[str, list[str]] = {}
    next_of: dict[str, list[str]] = {}
    for parent_id, children in children_of.items():
        if by_id[parent_id].execution_mode.value != "series":
            continue
        for idx, child in enumerate(children):
            if idx > 0:
                previous_of.setdefault(child.id, []).append(children[idx - 1].id)
            if idx + 1 < len(children):
                next_of.setdefault(child.id, []).append(children[idx + 1].id)

    nodes: dict[str, IssueGraphNode] = {}
    root_ids: list[str] = []
    for issue_id, issue in by_id.items():
        child_ids = tuple(child.id for child in children_of.get(issue_id, []))
        parent_ids = tuple(parents_of[issue_id])
        previous_ids = tuple(previous_of.get(issue_id, []))
        parent_mode = by_id[parent_ids[0]].execution_mode.value if parent_ids else None
        nodes[issue_id] = IssueGraphNode(
            issue=issue,
            child_ids=child_ids,
            parent_ids=parent_ids,
            previous_ids=previous_ids,
            next_ids=tuple(next_of.get(issue_id, [])),
            has_incomplete_children=any(
                not is_done(by_id[child_id].status.value) for child_id in child_ids
            ),
            all_previous_done=all(
                prev_id not in by_id or is_done(by_id[prev_id].status.value)
                for prev_id in previous_ids
            ),
            parent_execution_mode=parent_mode,
        )
        if not parent_ids:
            root_ids.append(issue_id)

    return IssueGraph(nodes=nodes, root_ids=tuple(root_ids))


def is_actionable(node: IssueGraphNode) -> bool:
    issue = node.issue
    return (
        issue.type.value != "idea"
        and issue.status.value in ACTIONABLE_STATUSES
        and not node.has_incomplete_children
        and node.all_previous_done
    )


def next_issues(graph: IssueGraph, parent_id: str | None = None) -> list[Issue]:
    """Return the issues that can be worked on now, best candidates first."""
    if parent_id is not None:
        scope: Iterable[str] = graph.descendant_ids(parent_id)
    else:
        scope = graph.nodes.keys()

    ready = [
        graph.nodes[issue_id].issue
        for issue_id in scope
        if issue_id in graph.nodes and is_actionable(graph.nodes[issue_id])
    ]
    ready.sort(key=presentation_key)
    return ready


@dataclass(frozen=True)
class GraphQuery:
    status: str | None = None
    type: str | None = None
    priority: int | None = None
    assigned_to: str | None = None
    tags: tuple[str, ...] = ()
    linked_pr: int | None = None
    search_text: str | None = None
    include_terminal: bool = False
    include_inactive_with_active_descendants: bool = False
    root_issue_id: str | None = None


def _matches(issue: Issue, query: GraphQuery) -> bool:
    status = issue.status.value
    if query.status is not None:
        if status != normalize_status(query.status):
            return False
    elif not query.include_terminal and is_terminal(status):
        return False

    if query.type is not None and issue.type.value != normalize_type(query.type):
        return False
    if query.priority is not None and issue.priority.value != query.priority:
        return False
    if query.assigned_to is not None:
        assignee = issue.assigned_to.value or ""
        if assignee.lower() != query.assigned_to.strip().lower():
            return False
    if query.tags:
        wanted = {tag.lower() for tag in query.tags}
        if not any(tag.lower() in wanted for tag in issue.tags.value):
            return False
    if query.linked_pr is not None and issue.linked_pr.value != query.linked_pr:
        return False
    if query.search_text:
        needle = query.search_text.strip().lower()
        haystack = [issue.title.value or "", issue.description.value or ""]
        haystack.extend(issue.tags.value)
        if not any(needle in text.lower() for text in haystack):
            return False
    return True


def query_graph(graph: IssueGraph, query: GraphQuery) -> IssueGraph:
    """Return the subgraph of nodes matching ``query``.

    Nodes keep their relationships from the full graph; roots are the
    included nodes that have no included parent.
    """
    candidates: Iterable[str] = graph.nodes.keys()
    if query.root_issue_id is not None:
        root_id = normalize_id(query.root_issue_id)
        if root_id not in graph.nodes:
            raise ValueError(f"unknown issue: {query.root_issue_id}")
        scope = {root_id, *graph.descendant_ids(root_id)}
        candidates = [issue_id for issue_id in graph.nodes if issue_id in scope]

    included = {
        issue_id
        for issue_id in candidates
        if _matches(graph.nodes[issue_id].issue, query)
    }

    if query.include_inactive_with_active_descendants:
        for issue_id in list(included):
            included.update(graph.ancestor_ids(issue_id))
        if query.root_issue_id is not None:
            included &= scope

    nodes = {
        issue_id: node for issue_id, node in graph.nodes.items() if issue_id in included
    }
    root_ids = tuple(
        issue_id
        for issue_id, node in nodes.items()
        if not any(parent_id in included for parent_id in node.parent_ids)
    )
    return IssueGraph(nodes=nodes, root_ids=root_ids)
