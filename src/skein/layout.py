"""Bottom-up lane layout of the active issue hierarchy.

Lane 0 holds leaf work; every parent sits one lane past the children it
waits on. Series children are staggered so each starts after its
predecessor's subtree, parallel children share their parent's start lane.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .graph import IssueGraph, build_graph, next_issues
from .models import MISSING_PRIORITY, Issue, is_done, is_terminal, normalize_id


@dataclass(frozen=True)
class TaskGraphNode:
    issue: Issue
    row: int
    lane: int
    is_actionable: bool
    parent_execution_mode: str | None = None


@dataclass(frozen=True)
class TaskGraph:
    nodes: tuple[TaskGraphNode, ...] = ()
    total_lanes: int = 0


@dataclass
class _Frame:
    issue: Issue
    start_lane: int
    parent_mode: str | None
    children: list[str]
    index: int = 0
    child_max: int | None = None


def build_task_graph_layout(issues: Iterable[Issue]) -> TaskGraph:
    graph = build_graph(list(issues))
    active = {
        issue_id
        for issue_id, node in graph.nodes.items()
        if not is_terminal(node.issue.status.value)
    }
    return _layout(graph, active)


def build_filtered_task_graph_layout(
    issues: Iterable[Issue],
    matched_ids: Iterable[str],
) -> TaskGraph:
    """Lay out only ``matched_ids`` plus the ancestors that give them context."""
    graph = build_graph(list(issues))
    matched = {normalize_id(issue_id) for issue_id in matched_ids}
    return _layout(graph, {issue_id for issue_id in matched if issue_id in graph.nodes})


def _layout(graph: IssueGraph, seeds: set[str]) -> TaskGraph:
    display: set[str] = set(seeds)
    for issue_id in seeds:
        display.update(graph.ancestor_ids(issue_id))
    if not display:
        return TaskGraph()

    ordered = [issue_id for issue_id in graph.nodes if issue_id in display]
    display_children = {
        issue_id: [c for c in graph.nodes[issue_id].child_ids if c in display]
        for issue_id in ordered
    }
    has_active = _active_subtrees(graph, display_children, ordered)
    active_children = {
        issue_id: [c for c in children if has_active[c]]
        for issue_id, children in display_children.items()
    }
    actionable = {issue.id for issue in next_issues(graph)}

    roots = [
        issue_id
        for issue_id in ordered
        if not any(p in display for p in graph.nodes[issue_id].parent_ids)
        and graph.nodes[issue_id].issue.type.value != "idea"
    ]

    def root_key(issue_id: str) -> tuple[int, int, str]:
        issue = graph.nodes[issue_id].issue
        priority = issue.priority.value
        first = _first_actionable(issue_id, active_children, actionable)
        documented = first is not None and graph.nodes[first].issue.has_description()
        return (
            MISSING_PRIORITY if priority is None else priority,
            0 if documented else 1,
            issue.title.value or "",
        )

    roots.sort(key=root_key)

    emitted: set[str] = set()
    out: list[TaskGraphNode] = []

    def emit(issue_id: str, lane: int, parent_mode: str | None) -> int:
        out.append(
            TaskGraphNode(
                issue=graph.nodes[issue_id].issue,
                row=len(out),
                lane=lane,
                is_actionable=issue_id in actionable,
                parent_execution_mode=parent_mode,
            )
        )
        return lane

    def open_node(
        issue_id: str,
        start_lane: int,
        parent_mode: str | None,
        stack: list[_Frame],
    ) -> int | None:
        if issue_id in emitted:
            return None
        emitted.add(issue_id)
        children = active_children[issue_id]
        if not children:
            return emit(issue_id, start_lane, parent_mode)
        stack.append(
            _Frame(graph.nodes[issue_id].issue, start_lane, parent_mode, children)
        )
        return None

    max_lane = 0
    for root_id in roots:
        stack: list[_Frame] = []
        lane = open_node(root_id, 0, None, stack)
        while stack:
            frame = stack[-1]
            mode = frame.issue.execution_mode.value
            if frame.index < len(frame.children):
                child_id = frame.children[frame.index]
                frame.index += 1
                if mode == "series" and frame.child_max is not None:
                    start = frame.child_max + 1
                else:
                    start = frame.start_lane
                depth = len(stack)
                child_lane = open_node(child_id, start, mode, stack)
                if len(stack) > depth or child_lane is None:
                    continue
                frame.child_max = _fold(frame, child_lane)
                continue

            stack.pop()
            base = frame.start_lane if frame.child_max is None else frame.child_max
            lane = emit(frame.issue.id, base + 1, frame.parent_mode)
            if stack:
                stack[-1].child_max = _fold(stack[-1], lane)
        if lane is not None:
            max_lane = max(max_lane, lane)

    if not out:
        return TaskGraph()
    return TaskGraph(nodes=tuple(out), total_lanes=max_lane + 1)


def _fold(frame: _Frame, child_lane: int) -> int:
    # Series parents track the latest child, parallel parents the widest.
    if frame.issue.execution_mode.value == "series" or frame.child_max is None:
        return child_lane
    return max(frame.child_max, child_lane)


def _active_subtrees(
    graph: IssueGraph,
    children: dict[str, list[str]],
    ordered: list[str],
) -> dict[str, bool]:
    """Map each issue to whether it or any descendant is still not done."""
    result: dict[str, bool] = {}
    for start in ordered:
        if start in result:
            continue
        pending = {start: not is_done(graph.nodes[start].issue.status.value)}
        on_path = {start}
        stack = [(start, iter(children[start]))]
        while stack:
            node_id, it = stack[-1]
            for child_id in it:
                if child_id in result:
                    if result[child_id]:
                        pending[node_id] = True
                    continue
                if child_id in on_path:
                    continue
                on_path.add(child_id)
                status = graph.nodes[child_id].issue.status.value
                pending[child_id] = not is_done(status)
                stack.append((child_id, iter(children[child_id])))
                break
            else:
                stack.pop()
                on_path.discard(node_id)
                result[node_id] = pending[node_id]
                if stack and result[node_id]:
                    pending[stack[-1][0]] = True
    return result


def _first_actionable(
    root_id: str,
    children: dict[str, list[str]],
    actionable: set[str],
) -> str | None:
    seen: set[str] = set()
    stack = [root_id]
    while stack:
        issue_id = stack.pop()
        if issue_id in seen:
            continue
        seen.add(issue_id)
        if issue_id in actionable:
            return issue_id
        stack.extend(reversed(children[issue_id]))
    return None
