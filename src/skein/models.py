"""Issue records and the value types shared by the graph engines."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Generic, TypeVar

from .lexorank import DEFAULT_RANK

T = TypeVar("T")

ISSUE_STATUSES = (
    "draft",
    "open",
    "progress",
    "review",
    "complete",
    "archived",
    "closed",
    "deleted",
)
DONE_STATUSES = frozenset({"complete", "archived", "closed"})
TERMINAL_STATUSES = DONE_STATUSES | {"deleted"}
ACTIONABLE_STATUSES = frozenset({"open", "review"})

ISSUE_TYPES = ("task", "bug", "chore", "feature", "idea")
EXECUTION_MODES = ("series", "parallel")
DEFAULT_EXECUTION_MODE = "series"

# Sort position for issues without a priority.
MISSING_PRIORITY = 99

SCALAR_FIELDS = (
    "title",
    "description",
    "status",
    "type",
    "priority",
    "linked_pr",
    "assigned_to",
    "execution_mode",
    "working_branch_id",
)
LIST_FIELDS = ("linked_issues", "parent_issues", "tags")
TRACKED_FIELDS = SCALAR_FIELDS + LIST_FIELDS


def normalize_id(value: str) -> str:
    text = str(value).strip().lower()
    if not text:
        raise ValueError("issue id must not be empty")
    return text


def normalize_status(value: str) -> str:
    status = str(value).strip().lower()
    if status not in ISSUE_STATUSES:
        raise ValueError(
            f"invalid status {value!r}; expected one of: {', '.join(ISSUE_STATUSES)}"
        )
    return status


def normalize_type(value: str) -> str:
    issue_type = str(value).strip().lower()
    if issue_type not in ISSUE_TYPES:
        raise ValueError(
            f"invalid type {value!r}; expected one of: {', '.join(ISSUE_TYPES)}"
        )
    return issue_type


def normalize_execution_mode(value: str) -> str:
    mode = str(value).strip().lower()
    if mode not in EXECUTION_MODES:
        raise ValueError(
            f"invalid execution mode {value!r}; expected one of: "
            f"{', '.join(EXECUTION_MODES)}"
        )
    return mode


def normalize_priority(value: object) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid priority {value!r}")
    try:
        priority = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid priority {value!r}") from exc
    if priority < 0:
        raise ValueError(f"priority must be non-negative, got {priority}")
    return priority


def is_done(status: str) -> bool:
    return status in DONE_STATUSES


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


@dataclass(frozen=True)
class FieldMeta(Generic[T]):
    """A field value with the time and actor of its last change."""

    value: T
    updated_at: int | None = None
    modified_by: str | None = None


@dataclass(frozen=True)
class ParentIssueRef:
    parent_issue: str
    sort_order: str

    @classmethod
    def parse(cls, text: str, *, default_sort_order: str) -> ParentIssueRef:
        """Parse ``"id"`` or ``"id:sortorder"``."""
        raw = text.strip()
        parent, sep, sort_order = raw.partition(":")
        sort_order = sort_order.strip() if sep else ""
        return cls(normalize_id(parent), sort_order or default_sort_order)

    def to_dict(self) -> dict[str, str]:
        return {"parent_issue": self.parent_issue, "sort_order": self.sort_order}

    def __str__(self) -> str:
        return f"{self.parent_issue}:{self.sort_order}"


@dataclass(frozen=True)
class Issue:
    id: str
    title: FieldMeta[str]
    description: FieldMeta[str | None] = FieldMeta(None)
    status: FieldMeta[str] = FieldMeta("open")
    type: FieldMeta[str] = FieldMeta("task")
    priority: FieldMeta[int | None] = FieldMeta(None)
    linked_pr: FieldMeta[int | None] = FieldMeta(None)
    assigned_to: FieldMeta[str | None] = FieldMeta(None)
    execution_mode: FieldMeta[str] = FieldMeta(DEFAULT_EXECUTION_MODE)
    working_branch_id: FieldMeta[str | None] = FieldMeta(None)
    linked_issues: FieldMeta[tuple[str, ...]] = FieldMeta(())
    parent_issues: FieldMeta[tuple[ParentIssueRef, ...]] = FieldMeta(())
    tags: FieldMeta[tuple[str, ...]] = FieldMeta(())
    created_by: str | None = None
    created_at: int | None = None
    last_update: int = 0

    @classmethod
    def new(
        cls,
        issue_id: str,
        title: str,
        *,
        description: str | None = None,
        status: str = "open",
        type: str = "task",
        priority: int | None = None,
        linked_pr: int | None = None,
        assigned_to: str | None = None,
        execution_mode: str = DEFAULT_EXECUTION_MODE,
        working_branch_id: str | None = None,
        linked_issues: tuple[str, ...] | list[str] = (),
        parents: tuple[ParentIssueRef, ...] | list[ParentIssueRef] = (),
        tags: tuple[str, ...] | list[str] = (),
        at: int | None = None,
        actor: str | None = None,
    ) -> Issue:
        """Build an issue whose fields all carry the same timestamp and actor."""

        def meta(value: Any) -> FieldMeta[Any]:
            return FieldMeta(value, at, actor)

        return cls(
            id=normalize_id(issue_id),
            title=meta(title),
            description=meta(description),
            status=meta(normalize_status(status)),
            type=meta(normalize_type(type)),
            priority=meta(normalize_priority(priority)),
            linked_pr=meta(linked_pr),
            assigned_to=meta(assigned_to),
            execution_mode=meta(normalize_execution_mode(execution_mode)),
            working_branch_id=meta(working_branch_id),
            linked_issues=meta(tuple(normalize_id(item) for item in linked_issues)),
            parent_issues=meta(tuple(parents)),
            tags=meta(tuple(tags)),
            created_by=actor,
            created_at=at,
            last_update=at or 0,
        )

    @property
    def parent_ids(self) -> tuple[str, ...]:
        return tuple(ref.parent_issue for ref in self.parent_issues.value)

    def sort_order_for(self, parent_id: str) -> str | None:
        for ref in self.parent_issues.value:
            if ref.parent_issue == parent_id:
                return ref.sort_order
        return None

    def has_description(self) -> bool:
        return bool((self.description.value or "").strip())

    def with_field(
        self,
        name: str,
        value: Any,
        *,
        at: int,
        actor: str | None = None,
    ) -> Issue:
        if name not in TRACKED_FIELDS:
            raise ValueError(f"unknown issue field: {name}")
        return replace(
            self,
            **{name: FieldMeta(value, at, actor)},
            last_update=max(self.last_update, at),
        )

    def to_dict(self) -> dict[str, Any]:
        row: dict[str, Any] = {"id": self.id}
        for name in TRACKED_FIELDS:
            meta: FieldMeta[Any] = getattr(self, name)
            value = meta.value
            if name == "parent_issues":
                value = [ref.to_dict() for ref in value]
            elif name in LIST_FIELDS:
                value = list(value)
            row[name] = value
            row[f"{name}_updated_at"] = meta.updated_at
            row[f"{name}_modified_by"] = meta.modified_by
        row["created_by"] = self.created_by
        row["created_at"] = self.created_at
        row["last_update"] = self.last_update
        return row

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> Issue:
        if "id" not in row:
            raise ValueError("issue row is missing an id")

        def meta(name: str, value: Any) -> FieldMeta[Any]:
            updated_at = row.get(f"{name}_updated_at")
            return FieldMeta(
                value,
                int(updated_at) if updated_at is not None else None,
                row.get(f"{name}_modified_by"),
            )

        parents = []
        for item in row.get("parent_issues") or []:
            if isinstance(item, str):
                parents.append(
                    ParentIssueRef.parse(item, default_sort_order=DEFAULT_RANK)
                )
            else:
                parents.append(
                    ParentIssueRef(
                        normalize_id(item["parent_issue"]),
                        str(item.get("sort_order") or DEFAULT_RANK),
                    )
                )

        linked_pr = row.get("linked_pr")
        return cls(
            id=normalize_id(row["id"]),
            title=meta("title", str(row.get("title") or "")),
            description=meta("description", row.get("description")),
            status=meta("status", normalize_status(row.get("status") or "open")),
            type=meta("type", normalize_type(row.get("type") or "task")),
            priority=meta("priority", normalize_priority(row.get("priority"))),
            linked_pr=meta(
                "linked_pr", int(linked_pr) if linked_pr is not None else None
            ),
            assigned_to=meta("assigned_to", row.get("assigned_to")),
            execution_mode=meta(
                "execution_mode",
                normalize_execution_mode(
                    row.get("execution_mode") or DEFAULT_EXECUTION_MODE
                ),
            ),
            working_branch_id=meta("working_branch_id", row.get("working_branch_id")),
            linked_issues=meta(
                "linked_issues",
                tuple(normalize_id(item) for item in row.get("linked_issues") or []),
            ),
            parent_issues=meta("parent_issues", tuple(parents)),
            tags=meta("tags", tuple(str(tag) for tag in row.get("tags") or [])),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
            last_update=int(row.get("last_update") or 0),
        )


def format_value(value: Any) -> str | None:
    """Render a field value for a PropertyChange."""
    if value is None:
        return None
    if isinstance(value, (tuple, list)):
        return ", ".join(str(item) for item in value)
    return str(value)


@dataclass(frozen=True)
class PropertyChange:
    property_name: str
    old_value: str | None
    new_value: str | None
    timestamp: int
    merge_resolution: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "property_name": self.property_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "timestamp": self.timestamp,
            "merge_resolution": self.merge_resolution,
        }


@dataclass(frozen=True)
class ChangeRecord:
    change_id: str
    issue_id: str
    type: str
    changed_by: str | None
    changed_at: int
    property_changes: tuple[PropertyChange, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "change_id": self.change_id,
            "issue_id": self.issue_id,
            "type": self.type,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at,
            "property_changes": [change.to_dict() for change in self.property_changes],
        }


@dataclass(frozen=True)
class Tombstone:
    """Marker left behind when an issue is purged from the store."""

    issue_id: str
    original_title: str
    cleaned_at: int
    cleaned_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "original_title": self.original_title,
            "cleaned_at": self.cleaned_at,
            "cleaned_by": self.cleaned_by,
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> Tombstone:
        return cls(
            issue_id=normalize_id(row["issue_id"]),
            original_title=str(row.get("original_title") or ""),
            cleaned_at=int(row.get("cleaned_at") or 0),
            cleaned_by=row.get("cleaned_by"),
        )
