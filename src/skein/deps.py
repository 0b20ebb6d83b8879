"""Adding and removing parent/child edges.

Both operations validate everything up front and return a new snapshot, so a
failed call leaves the caller's issues untouched.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import NamedTuple

from .errors import (
    AlreadyExistsError,
    AmbiguousReferenceError,
    CycleWouldResultError,
    IssueNotFoundError,
)
from .jsonl import now_ms
from .lexorank import middle_rank
from .models import Issue, ParentIssueRef, PropertyChange, format_value, normalize_id
from .validate import would_create_cycle

POSITION_KINDS = ("first", "last", "after", "before")


@dataclass(frozen=True)
class DependencyPosition:
    kind: str = "last"
    sibling_id: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in POSITION_KINDS:
            raise ValueError(f"invalid position {self.kind!r}")
        if self.kind in {"after", "before"} and not self.sibling_id:
            raise ValueError(f"position {self.kind!r} requires a sibling id")

    @classmethod
    def first(cls) -> DependencyPosition:
        return cls("first")

    @classmethod
    def last(cls) -> DependencyPosition:
        return cls("last")

    @classmethod
    def after(cls, sibling_id: str) -> DependencyPosition:
        return cls("after", sibling_id)

    @classmethod
    def before(cls, sibling_id: str) -> DependencyPosition:
        return cls("before", sibling_id)


class DependencyUpdate(NamedTuple):
    issues: list[Issue]
    child: Issue
    change: PropertyChange


def resolve_reference(issues: Iterable[Issue], reference: str) -> Issue:
    """Resolve an exact id or a unique id prefix."""
    wanted = normalize_id(reference)
    matches: list[Issue] = []
    for issue in issues:
        if issue.id == wanted:
            return issue
        if issue.id.startswith(wanted) and all(m.id != issue.id for m in matches):
            matches.append(issue)
    if not matches:
        raise IssueNotFoundError(f"issue not found: {reference}")
    if len(matches) > 1:
        raise AmbiguousReferenceError(reference, sorted(m.id for m in matches))
    return matches[0]


def _siblings(issues: list[Issue], parent_id: str, child_id: str) -> list[Issue]:
    siblings = [
        issue
        for issue in issues
        if issue.id != child_id and parent_id in issue.parent_ids
    ]
    siblings.sort(key=lambda issue: (issue.sort_order_for(parent_id) or "", issue.id))
    return siblings


def _sort_order(
    issues: list[Issue],
    parent_id: str,
    child_id: str,
    position: DependencyPosition,
) -> str:
    siblings = _siblings(issues, parent_id, child_id)
    orders = [issue.sort_order_for(parent_id) or "" for issue in siblings]

    if position.kind == "last":
        return middle_rank(orders[-1] if orders else None, None)
    if position.kind == "first":
        return middle_rank(None, orders[0] if orders else None)

    sibling_ref = position.sibling_id
    if sibling_ref is None:
        raise ValueError(f"position {position.kind!r} requires a sibling id")
    try:
        sibling = resolve_reference(siblings, sibling_ref)
    except IssueNotFoundError:
        message = f"{sibling_ref} is not a child of {parent_id}"
        raise IssueNotFoundError(message) from None
    anchor = sibling.sort_order_for(parent_id) or ""
    # Siblings may share a rank after a merge; bound by the nearest distinct one.
    if position.kind == "after":
        upper = next((order for order in orders if order > anchor), None)
        return middle_rank(anchor, upper)
    lower = next((order for order in reversed(orders) if order < anchor), None)
    return middle_rank(lower, anchor)


def _replace_issue(issues: list[Issue], updated: Issue) -> list[Issue]:
    return [updated if issue.id == updated.id else issue for issue in issues]


def add_dependency(
    issues: Iterable[Issue],
    parent_ref: str,
    child_ref: str,
    position: DependencyPosition | None = None,
    *,
    actor: str | None = None,
    at: int | None = None,
) -> DependencyUpdate:
    """Make ``parent_ref`` a parent of ``child_ref``."""
    snapshot = list(issues)
    parent = resolve_reference(snapshot, parent_ref)
    child = resolve_reference(snapshot, child_ref)
    if parent.id in child.parent_ids:
        raise AlreadyExistsError(f"{child.id} is already a child of {parent.id}")
    if would_create_cycle(parent.id, child.id, snapshot):
        raise CycleWouldResultError(
            f"making {parent.id} a parent of {child.id} would create a cycle"
        )

    sort_order = _sort_order(
        snapshot, parent.id, child.id, position or DependencyPosition()
    )
    old_refs = child.parent_issues.value
    new_refs = (*old_refs, ParentIssueRef(parent.id, sort_order))
    stamp = now_ms() if at is None else at
    updated = child.with_field("parent_issues", new_refs, at=stamp, actor=actor)
    change = PropertyChange(
        property_name="parent_issues",
        old_value=format_value(old_refs),
        new_value=format_value(new_refs),
        timestamp=stamp,
    )
    return DependencyUpdate(_replace_issue(snapshot, updated), updated, change)


def remove_dependency(
    issues: Iterable[Issue],
    parent_ref: str,
    child_ref: str,
    *,
    actor: str | None = None,
    at: int | None = None,
) -> DependencyUpdate:
    """Remove the edge making ``parent_ref`` a parent of ``child_ref``."""
    snapshot = list(issues)
    parent = resolve_reference(snapshot, parent_ref)
    child = resolve_reference(snapshot, child_ref)
    if parent.id not in child.parent_ids:
        raise IssueNotFoundError(f"{child.id} is not a child of {parent.id}")

    old_refs = child.parent_issues.value
    new_refs = tuple(ref for ref in old_refs if ref.parent_issue != parent.id)
    stamp = now_ms() if at is None else at
    updated = child.with_field("parent_issues", new_refs, at=stamp, actor=actor)
    change = PropertyChange(
        property_name="parent_issues",
        old_value=format_value(old_refs),
        new_value=format_value(new_refs),
        timestamp=stamp,
    )
    return DependencyUpdate(_replace_issue(snapshot, updated), updated, change)
