"""Plain and rich rendering of issues, task graphs and change history."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from rich.text import Text

from .layout import TaskGraph, TaskGraphNode
from .models import Issue, is_done
from .ui import (
    STATUS_STYLES,
    OutputMode,
    make_console,
    render_markdown,
    render_panel,
    render_table,
    status_text,
)
from .validate import CycleValidationResult

ISSUE_HEADERS = ("ID", "STATUS", "TYPE", "PRI", "TITLE")


def format_time(value: int | None) -> str:
    if value is None:
        return "-"
    try:
        dt = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return "-"
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def _priority_label(issue: Issue) -> str:
    priority = issue.priority.value
    return f"P{priority}" if priority is not None else "-"


def issue_columns(issue: Issue) -> tuple[str, str, str, str, str]:
    return (
        issue.id,
        issue.status.value,
        issue.type.value,
        _priority_label(issue),
        issue.title.value,
    )


def issue_json(issue: Issue) -> dict[str, Any]:
    return issue.to_dict()


def print_issue_table(
    issues: list[Issue],
    *,
    mode: OutputMode,
    title: str,
    empty: str = "(no issues)",
) -> None:
    if not issues:
        if mode == "rich":
            render_panel(make_console("rich"), empty, title=title)
        else:
            print(empty)
        return

    rows = [issue_columns(issue) for issue in issues]
    if mode == "rich":
        render_table(
            make_console("rich"),
            title=title,
            headers=ISSUE_HEADERS,
            rows=[(row[0], status_text(row[1]), *row[2:]) for row in rows],
            no_wrap_columns=(0, 1, 2, 3),
        )
        return

    widths = [len(item) for item in ISSUE_HEADERS]
    for row in rows:
        for idx, col in enumerate(row):
            widths[idx] = max(widths[idx], len(col))
    header = "  ".join(h.ljust(widths[i]) for i, h in enumerate(ISSUE_HEADERS))
    print(header.rstrip())
    for row in rows:
        print("  ".join(col.ljust(widths[i]) for i, col in enumerate(row)).rstrip())


def print_issue_details(issue: Issue, *, mode: OutputMode) -> None:
    parents = ", ".join(str(ref) for ref in issue.parent_issues.value) or "-"
    lines = [
        f"id: {issue.id}",
        f"title: {issue.title.value}",
        f"status: {issue.status.value}",
        f"type: {issue.type.value}",
        f"priority: {_priority_label(issue)}",
        f"execution: {issue.execution_mode.value}",
        f"parents: {parents}",
        f"tags: {', '.join(issue.tags.value) or '-'}",
        f"assigned: {issue.assigned_to.value or '-'}",
        f"created: {format_time(issue.created_at)} by {issue.created_by or '-'}",
        f"updated: {format_time(issue.last_update)}",
    ]
    if issue.linked_pr.value is not None:
        lines.append(f"pr: #{issue.linked_pr.value}")
    if issue.linked_issues.value:
        lines.append(f"linked: {', '.join(issue.linked_issues.value)}")
    description = (issue.description.value or "").strip()

    if mode == "rich":
        console = make_console("rich")
        render_panel(console, "\n".join(lines), title=f"[bold]{issue.id}[/bold]")
        if description:
            render_markdown(console, description, title="Description")
        return

    for line in lines:
        print(line)
    if description:
        print()
        print(description)


def _glyph(node: TaskGraphNode) -> str:
    if node.is_actionable:
        return "●"
    if is_done(node.issue.status.value):
        return "✓"
    return "○"


def graph_line(node: TaskGraphNode, total_lanes: int) -> str:
    cells = ["│" if lane > node.lane else " " for lane in range(total_lanes)]
    cells[node.lane] = _glyph(node)
    mode = "∥" if node.issue.execution_mode.value == "parallel" else " "
    return "".join(cells) + f" {mode} {node.issue.id}  {node.issue.title.value}"


def print_task_graph(graph: TaskGraph, *, mode: OutputMode) -> None:
    if not graph.nodes:
        if mode == "rich":
            console = make_console("rich")
            render_panel(console, "(no active issues)", title="Task Graph")
        else:
            print("(no active issues)")
        return

    if mode != "rich":
        for node in graph.nodes:
            print(graph_line(node, graph.total_lanes))
        return

    console = make_console("rich")
    for node in graph.nodes:
        line = Text(graph_line(node, graph.total_lanes))
        style = "bold green" if node.is_actionable else STATUS_STYLES.get(
            node.issue.status.value, ""
        )
        if style:
            line.stylize(style, node.lane, node.lane + 1)
        console.print(line)


def task_graph_json(graph: TaskGraph) -> dict[str, Any]:
    return {
        "total_lanes": graph.total_lanes,
        "nodes": [
            {
                "id": node.issue.id,
                "title": node.issue.title.value,
                "status": node.issue.status.value,
                "row": node.row,
                "lane": node.lane,
                "is_actionable": node.is_actionable,
                "parent_execution_mode": node.parent_execution_mode,
            }
            for node in graph.nodes
        ],
    }


def print_cycles(result: CycleValidationResult, *, mode: OutputMode) -> None:
    if result.is_valid:
        message = "no dependency cycles"
        if mode == "rich":
            render_panel(make_console("rich"), message, title="Validate")
        else:
            print(message)
        return

    if mode == "rich":
        render_table(
            make_console("rich"),
            title="Dependency Cycles",
            headers=("#", "CYCLE"),
            rows=[(str(idx), str(cycle)) for idx, cycle in enumerate(result.cycles, 1)],
        )
        return
    for cycle in result.cycles:
        print(f"cycle: {cycle}")


def print_events(rows: list[dict[str, Any]], *, mode: OutputMode) -> None:
    table_rows: list[tuple[str, ...]] = []
    for row in rows:
        payload = row.get("payload") or {}
        for change in payload.get("property_changes") or [{}]:
            table_rows.append(
                (
                    format_time(row.get("ts_ms")),
                    str(row.get("issue_id") or "-"),
                    str(row.get("type") or ""),
                    str(payload.get("changed_by") or "-"),
                    str(change.get("property_name") or ""),
                    str(change.get("new_value") or ""),
                )
            )

    if not table_rows:
        if mode == "rich":
            render_panel(make_console("rich"), "(no history)", title="History")
        else:
            print("(no history)")
        return

    if mode == "rich":
        render_table(
            make_console("rich"),
            title="History",
            headers=("TIME", "ISSUE", "EVENT", "BY", "FIELD", "VALUE"),
            rows=table_rows,
            no_wrap_columns=(0, 1, 2),
        )
        return
    for item in table_rows:
        print("  ".join(item).rstrip())
