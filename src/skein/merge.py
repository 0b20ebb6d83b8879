"""Field-by-field reconciliation of divergent copies of one issue."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import Any, NamedTuple

from .jsonl import now_ms
from .models import (
    LIST_FIELDS,
    SCALAR_FIELDS,
    ChangeRecord,
    FieldMeta,
    Issue,
    PropertyChange,
    format_value,
)

# Unknown timestamps lose every comparison.
_MISSING_TS = -1


class MergeResult(NamedTuple):
    issue: Issue
    changes: list[PropertyChange]


def _ts(meta: FieldMeta[Any]) -> int:
    return _MISSING_TS if meta.updated_at is None else meta.updated_at


def _merge_scalar(
    name: str,
    a: FieldMeta[Any],
    b: FieldMeta[Any],
    *,
    merged_by: str | None,
    at: int,
) -> tuple[FieldMeta[Any], PropertyChange | None]:
    if a.value == b.value:
        newer = a if _ts(a) >= _ts(b) else b
        return FieldMeta(a.value, newer.updated_at, newer.modified_by), None

    a_wins = _ts(a) >= _ts(b)
    winner, loser = (a, b) if a_wins else (b, a)
    change = PropertyChange(
        property_name=name,
        old_value=format_value(loser.value),
        new_value=format_value(winner.value),
        timestamp=at,
        merge_resolution="A" if a_wins else "B",
    )
    merged = FieldMeta(winner.value, winner.updated_at, merged_by or winner.modified_by)
    return merged, change


def _parent_key(ref: Any) -> str:
    return ref.parent_issue.lower()


def _text_key(item: Any) -> str:
    return str(item).casefold()


def _merge_union(
    name: str,
    a: FieldMeta[tuple[Any, ...]],
    b: FieldMeta[tuple[Any, ...]],
    *,
    key: Callable[[Any], str],
    merged_by: str | None,
    at: int,
) -> tuple[FieldMeta[tuple[Any, ...]], PropertyChange | None]:
    # On a shared key the entry comes from the side that would win a scalar merge.
    a_wins = _ts(a) >= _ts(b)
    merged: dict[str, Any] = {}
    for item in a.value:
        merged.setdefault(key(item), item)
    for item in b.value:
        k = key(item)
        if k not in merged:
            merged[k] = item
        elif not a_wins:
            merged[k] = item

    newer = a if _ts(a) >= _ts(b) else b
    keys_a = {key(item) for item in a.value}
    keys_b = {key(item) for item in b.value}
    value = tuple(merged.values())
    if keys_a == keys_b:
        return FieldMeta(value, newer.updated_at, newer.modified_by), None

    change = PropertyChange(
        property_name=name,
        old_value=f"A: [{format_value(a.value)}], B: [{format_value(b.value)}]",
        new_value=format_value(value),
        timestamp=at,
        merge_resolution="Union",
    )
    return FieldMeta(value, newer.updated_at, merged_by or newer.modified_by), change


def _earliest_creation(a: Issue, b: Issue) -> tuple[str | None, int | None]:
    created_at: int | None
    if a.created_at is None:
        created_at = b.created_at
    elif b.created_at is None:
        created_at = a.created_at
    else:
        created_at = min(a.created_at, b.created_at)

    if a.created_by is None:
        return b.created_by, created_at
    if b.created_by is None:
        return a.created_by, created_at
    a_at = a.created_at if a.created_at is not None else float("inf")
    b_at = b.created_at if b.created_at is not None else float("inf")
    return (a.created_by if a_at <= b_at else b.created_by), created_at


def merge(
    a: Issue,
    b: Issue,
    *,
    merged_by: str | None = None,
    at: int | None = None,
) -> MergeResult:
    """Merge two copies of the same issue.

    Differing scalar fields go to the side with the newer (or equal, favouring
    ``a``) field timestamp. List fields take the union of both sides.
    ``merged_by`` replaces the modifier on every field that had a conflict.
    """
    if a.id.lower() != b.id.lower():
        raise ValueError(
            f"cannot merge issues with different ids: {a.id!r} and {b.id!r}"
        )

    stamp = now_ms() if at is None else at
    updates: dict[str, Any] = {}
    changes: list[PropertyChange] = []

    for name in SCALAR_FIELDS:
        merged, change = _merge_scalar(
            name, getattr(a, name), getattr(b, name), merged_by=merged_by, at=stamp
        )
        updates[name] = merged
        if change is not None:
            changes.append(change)

    for name in LIST_FIELDS:
        merged, change = _merge_union(
            name,
            getattr(a, name),
            getattr(b, name),
            key=_parent_key if name == "parent_issues" else _text_key,
            merged_by=merged_by,
            at=stamp,
        )
        updates[name] = merged
        if change is not None:
            changes.append(change)

    created_by, created_at = _earliest_creation(a, b)
    issue = replace(
        a,
        **updates,
        created_by=created_by,
        created_at=created_at,
        last_update=max(a.last_update, b.last_update),
    )
    return MergeResult(issue, changes)


def resolve_duplicates(
    issues: Iterable[Issue],
    *,
    merged_by: str | None = None,
    at: int | None = None,
) -> tuple[list[Issue], list[ChangeRecord]]:
    """Collapse copies sharing an id into one issue each.

    Copies are folded left to right in input order. One ``merged`` change
    record is produced for every id whose copies disagreed.
    """
    stamp = now_ms() if at is None else at
    groups: dict[str, list[Issue]] = {}
    for issue in issues:
        groups.setdefault(issue.id, []).append(issue)

    resolved: list[Issue] = []
    records: list[ChangeRecord] = []
    for issue_id, copies in groups.items():
        current = copies[0]
        changes: list[PropertyChange] = []
        for other in copies[1:]:
            current, found = merge(current, other, merged_by=merged_by, at=stamp)
            changes.extend(found)
        resolved.append(current)
        if changes:
            records.append(
                ChangeRecord(
                    change_id=uuid.uuid4().hex,
                    issue_id=issue_id,
                    type="merged",
                    changed_by=merged_by,
                    changed_at=stamp,
                    property_changes=tuple(changes),
                )
            )
    return resolved, records
