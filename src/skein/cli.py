from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .config import SETTINGS_FILE_NAME, default_settings_text, load_settings
from .deps import DependencyPosition
from .graph import GraphQuery, build_graph, next_issues, query_graph
from .issue_store import IssueStore
from .layout import build_filtered_task_graph_layout, build_task_graph_layout
from .models import EXECUTION_MODES, ISSUE_STATUSES, ISSUE_TYPES
from .render import (
    issue_json,
    print_cycles,
    print_events,
    print_issue_details,
    print_issue_table,
    print_task_graph,
    task_graph_json,
)
from .state import STATE_DIR_NAME, locate_state_dir
from .ui import add_output_mode_argument, resolve_output_mode
from .validate import validate_cycles

# Commands that never write; they need an existing state directory.
_READ_ONLY = {"list", "show", "next", "graph", "validate", "history"}


def _emit_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _add_issue_fields(parser: argparse.ArgumentParser, *, creating: bool) -> None:
    parser.add_argument("-d", "--description", help="Issue description")
    parser.add_argument(
        "-s",
        "--status",
        choices=ISSUE_STATUSES,
        default="open" if creating else None,
        help=f"Status ({', '.join(ISSUE_STATUSES)})",
    )
    parser.add_argument(
        "-t",
        "--type",
        choices=ISSUE_TYPES,
        default="task" if creating else None,
        help=f"Type ({', '.join(ISSUE_TYPES)})",
    )
    parser.add_argument("-p", "--priority", type=int, help="Priority (lower first)")
    parser.add_argument(
        "--mode",
        choices=EXECUTION_MODES,
        help="Execution mode for children (series or parallel)",
    )
    parser.add_argument("--assign", help="Assignee")
    parser.add_argument(
        "--tag", action="append", default=None, help="Tag (repeatable)"
    )
    parser.add_argument("--json", action="store_true", help="Output JSON")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="skein",
        description="Local issue tracker with dependency-aware scheduling.",
    )
    p.add_argument("--version", action="version", version=f"skein {__version__}")
    sub = p.add_subparsers(dest="command", required=True, metavar="command")

    init = sub.add_parser("init", help="Create the .skein state directory")
    init.add_argument("--identity", help="Name recorded on your changes")

    create = sub.add_parser("create", help="Create an issue")
    create.add_argument("title", help="Issue title")
    _add_issue_fields(create, creating=True)
    create.add_argument(
        "--parent", action="append", default=[], help="Parent issue id (repeatable)"
    )

    ls = sub.add_parser("list", help="List issues")
    ls.add_argument("--status", choices=ISSUE_STATUSES, help="Filter by status")
    ls.add_argument("--type", choices=ISSUE_TYPES, help="Filter by type")
    ls.add_argument("--tag", action="append", default=[], help="Filter by tag")
    ls.add_argument("--assigned", help="Filter by assignee")
    ls.add_argument("-p", "--priority", type=int, help="Filter by priority")
    ls.add_argument("--pr", type=int, help="Filter by linked pull request")
    ls.add_argument("--search", help="Filter by text in title/description/tags")
    ls.add_argument("--root", help="Only this issue and its descendants")
    ls.add_argument(
        "--all", action="store_true", help="Include complete/closed/deleted issues"
    )
    ls.add_argument(
        "--context",
        action="store_true",
        help="Include ancestors of matching issues",
    )
    ls.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(ls)

    show = sub.add_parser("show", help="Show one issue")
    show.add_argument("id", help="Issue id or unique prefix")
    show.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(show)

    edit = sub.add_parser("edit", help="Edit issue fields")
    edit.add_argument("id", help="Issue id or unique prefix")
    edit.add_argument("--title", help="New title")
    edit.add_argument("--pr", type=int, help="Linked pull request number")
    edit.add_argument("--branch", help="Working branch id")
    _add_issue_fields(edit, creating=False)

    status = sub.add_parser("status", help="Set issue status")
    status.add_argument("id", help="Issue id or unique prefix")
    status.add_argument("value", choices=ISSUE_STATUSES, help="New status")
    status.add_argument("--json", action="store_true", help="Output JSON")

    delete = sub.add_parser("delete", help="Soft-delete an issue")
    delete.add_argument("id", help="Issue id or unique prefix")
    delete.add_argument("--json", action="store_true", help="Output JSON")

    nxt = sub.add_parser("next", help="List issues that can be worked on now")
    nxt.add_argument("--parent", help="Only descendants of this issue")
    nxt.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(nxt)

    graph = sub.add_parser("graph", help="Show the task graph")
    graph.add_argument("--search", help="Only issues matching text, with ancestors")
    graph.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(graph)

    dep = sub.add_parser("dep", help="Manage parent/child dependencies")
    dep_sub = dep.add_subparsers(dest="dep_command", required=True, metavar="action")
    dep_add = dep_sub.add_parser("add", help="Make PARENT a parent of CHILD")
    dep_add.add_argument("parent", help="Parent issue id")
    dep_add.add_argument("child", help="Child issue id")
    where = dep_add.add_mutually_exclusive_group()
    where.add_argument("--first", action="store_true", help="Place before siblings")
    where.add_argument("--after", metavar="SIBLING", help="Place after SIBLING")
    where.add_argument("--before", metavar="SIBLING", help="Place before SIBLING")
    dep_add.add_argument("--json", action="store_true", help="Output JSON")
    dep_rm = dep_sub.add_parser("remove", help="Remove PARENT from CHILD's parents")
    dep_rm.add_argument("parent", help="Parent issue id")
    dep_rm.add_argument("child", help="Child issue id")
    dep_rm.add_argument("--json", action="store_true", help="Output JSON")

    validate = sub.add_parser("validate", help="Check for dependency cycles")
    validate.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(validate)

    merge = sub.add_parser("merge", help="Merge duplicate issue copies across shards")
    merge.add_argument(
        "--dry-run", action="store_true", help="Report conflicts without writing"
    )
    merge.add_argument("--json", action="store_true", help="Output JSON")

    clean = sub.add_parser("clean", help="Purge deleted issues, leaving tombstones")
    clean.add_argument(
        "--complete", action="store_true", help="Also purge complete issues"
    )
    clean.add_argument("--closed", action="store_true", help="Also purge closed issues")
    clean.add_argument(
        "--archived", action="store_true", help="Also purge archived issues"
    )
    clean.add_argument(
        "--keep-references",
        action="store_true",
        help="Leave links and parent refs to purged issues in place",
    )
    clean.add_argument(
        "--dry-run", action="store_true", help="Report what would be purged"
    )
    clean.add_argument("--json", action="store_true", help="Output JSON")

    history = sub.add_parser("history", help="Show recorded changes")
    history.add_argument("id", nargs="?", help="Only changes to this issue")
    history.add_argument(
        "--limit", type=int, default=50, help="Max events (default: 50)"
    )
    history.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(history)

    return p


def _position(args: argparse.Namespace) -> DependencyPosition:
    if args.first:
        return DependencyPosition.first()
    if args.after:
        return DependencyPosition.after(args.after)
    if args.before:
        return DependencyPosition.before(args.before)
    return DependencyPosition.last()


def _edit_fields(args: argparse.Namespace) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    pairs = (
        ("title", getattr(args, "title", None)),
        ("description", args.description),
        ("status", args.status),
        ("type", args.type),
        ("priority", args.priority),
        ("execution_mode", args.mode),
        ("assigned_to", args.assign),
        ("linked_pr", getattr(args, "pr", None)),
        ("working_branch_id", getattr(args, "branch", None)),
        ("tags", args.tag),
    )
    for name, value in pairs:
        if value is not None:
            fields[name] = value
    return fields


def _init(args: argparse.Namespace, cwd: Path) -> None:
    location = locate_state_dir(cwd)
    existed = location.exists
    state_dir = location.ensure()
    settings_path = state_dir / SETTINGS_FILE_NAME
    if not settings_path.exists():
        settings_path.write_text(default_settings_text(args.identity), encoding="utf-8")
    verb = "reinitialized existing" if existed else "initialized"
    print(f"{verb} {state_dir}")


def _open_state_dir(command: str, cwd: Path) -> Path:
    location = locate_state_dir(cwd)
    if command in _READ_ONLY and not location.exists:
        raise ValueError(
            f"no {STATE_DIR_NAME} directory at {location.path}; run 'skein init'"
        )
    return location.ensure()


def _run(args: argparse.Namespace, store: IssueStore, default_mode: str) -> None:
    output_mode = "plain"
    if hasattr(args, "output"):
        output_mode = resolve_output_mode(args.output)

    if args.command == "create":
        parents = [store.resolve(ref).id for ref in args.parent]
        issue = store.create(
            args.title,
            description=args.description,
            status=args.status,
            type=args.type,
            priority=args.priority,
            execution_mode=args.mode or default_mode,
            tags=args.tag or [],
            assigned_to=args.assign,
        )
        for parent_id in parents:
            issue = store.add_dependency(parent_id, issue.id)
        if args.json:
            _emit_json(issue_json(issue))
        else:
            print(issue.id)
        return

    if args.command == "list":
        query = GraphQuery(
            status=args.status,
            type=args.type,
            priority=args.priority,
            assigned_to=args.assigned,
            linked_pr=args.pr,
            tags=tuple(args.tag),
            search_text=args.search,
            include_terminal=args.all,
            include_inactive_with_active_descendants=args.context,
            root_issue_id=args.root,
        )
        graph = query_graph(build_graph(store.load_all()), query)
        issues = [node.issue for node in graph.nodes.values()]
        if args.json:
            _emit_json([issue_json(issue) for issue in issues])
        else:
            print_issue_table(issues, mode=output_mode, title="Issues")
        return

    if args.command == "show":
        issue = store.resolve(args.id)
        if args.json:
            _emit_json(issue_json(issue))
        else:
            print_issue_details(issue, mode=output_mode)
        return

    if args.command in {"edit", "status", "delete"}:
        if args.command == "edit":
            fields = _edit_fields(args)
            if not fields:
                raise ValueError("nothing to edit")
            issue, changes = store.update(args.id, **fields)
        elif args.command == "status":
            issue, changes = store.update(args.id, status=args.value)
        else:
            issue = store.delete(args.id)
            changes = []
        if args.json:
            payload = issue_json(issue)
            payload["changes"] = [change.to_dict() for change in changes]
            _emit_json(payload)
        else:
            print(issue.id)
        return

    if args.command == "next":
        graph = build_graph(store.load_all())
        parent = store.resolve(args.parent).id if args.parent else None
        issues = next_issues(graph, parent)
        if args.json:
            _emit_json([issue_json(issue) for issue in issues])
        else:
            print_issue_table(
                issues, mode=output_mode, title="Next", empty="(no actionable issues)"
            )
        return

    if args.command == "graph":
        issues = store.load_all()
        if args.search:
            matched = query_graph(
                build_graph(issues),
                GraphQuery(search_text=args.search, include_terminal=True),
            )
            layout = build_filtered_task_graph_layout(issues, matched.nodes.keys())
        else:
            layout = build_task_graph_layout(issues)
        if args.json:
            _emit_json(task_graph_json(layout))
        else:
            print_task_graph(layout, mode=output_mode)
        return

    if args.command == "dep":
        if args.dep_command == "add":
            issue = store.add_dependency(args.parent, args.child, _position(args))
        else:
            issue = store.remove_dependency(args.parent, args.child)
        if args.json:
            _emit_json(issue_json(issue))
        else:
            print(issue.id)
        return

    if args.command == "validate":
        result = validate_cycles(store.load_all())
        if args.json:
            _emit_json(
                {
                    "is_valid": result.is_valid,
                    "cycles": [list(cycle.issue_ids) for cycle in result.cycles],
                }
            )
        else:
            print_cycles(result, mode=output_mode)
        if not result.is_valid:
            raise SystemExit(1)
        return

    if args.command == "merge":
        records = store.consolidate(dry_run=args.dry_run)
        if args.json:
            _emit_json([record.to_dict() for record in records])
        elif not records:
            print("(no conflicts)")
        else:
            verb = "would merge" if args.dry_run else "merged"
            for record in records:
                fields = ", ".join(
                    change.property_name for change in record.property_changes
                )
                print(f"{verb} {record.issue_id}: {fields}")
        return

    if args.command == "clean":
        result = store.clean(
            include_complete=args.complete,
            include_closed=args.closed,
            include_archived=args.archived,
            strip_references=not args.keep_references,
            dry_run=args.dry_run,
        )
        if args.json:
            _emit_json(
                {
                    "tombstones": [stone.to_dict() for stone in result.tombstones],
                    "stripped": [ref._asdict() for ref in result.stripped],
                }
            )
            return
        if not result.tombstones:
            print("(nothing to clean)")
            return
        verb = "would remove" if args.dry_run else "removed"
        for stone in result.tombstones:
            print(f"{verb} {stone.issue_id}  {stone.original_title}")
        for ref in result.stripped:
            print(
                f"stripped {ref.issue_id} from {ref.referencing_issue_id}.{ref.field}"
            )
        return

    if args.command == "history":
        issue_id = store.resolve(args.id).id if args.id else None
        rows = store.events.read(issue_id=issue_id, limit=max(1, int(args.limit)))
        if args.json:
            _emit_json(rows)
        else:
            print_events(rows, mode=output_mode)
        return

    raise ValueError(f"unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    args = _build_parser().parse_args(raw_argv)
    cwd = Path.cwd()

    if args.command == "init":
        _init(args, cwd)
        return

    try:
        state_dir = _open_state_dir(args.command, cwd)
        settings = load_settings(state_dir)
        if settings.error:
            print(f"warning: {settings.error}", file=sys.stderr)
        store = IssueStore(state_dir, actor=settings.identity)
        if (
            settings.auto_merge
            and args.command != "merge"
            and len(store.shard_paths()) > 1
        ):
            store.consolidate()
        _run(args, store, settings.default_execution_mode)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1)
