"""JSONL-backed issue storage.

Issues live in ``issues*.jsonl`` shards inside the state directory. Normally
there is a single ``issues.jsonl``; extra shards appear when copies made on
other branches are dropped in alongside it, and they may hold divergent
copies of the same issue. Reads collapse those copies with the merge engine;
every full write consolidates back into one shard.

Purged issues leave a record in ``tombstones.jsonl``.
"""

from __future__ import annotations

import hashlib
import re
import uuid
from pathlib import Path
from typing import Any, NamedTuple

from .deps import (
    DependencyPosition,
    add_dependency,
    remove_dependency,
    resolve_reference,
)
from .errors import AlreadyExistsError, CycleWouldResultError, IssueNotFoundError
from .events import EventLog
from .jsonl import append_jsonl, now_ms, read_jsonl, write_jsonl
from .merge import resolve_duplicates
from .models import (
    DEFAULT_EXECUTION_MODE,
    ChangeRecord,
    Issue,
    ParentIssueRef,
    PropertyChange,
    Tombstone,
    format_value,
    normalize_execution_mode,
    normalize_id,
    normalize_priority,
    normalize_status,
    normalize_type,
)
from .state import resolve_state_dir
from .validate import would_create_cycle

ISSUES_FILE_NAME = "issues.jsonl"
TOMBSTONES_FILE_NAME = "tombstones.jsonl"
SHARD_GLOB = "issues*.jsonl"
ID_LENGTH = 6

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_WS_RE = re.compile(r"\s+")


class StrippedReference(NamedTuple):
    issue_id: str
    referencing_issue_id: str
    field: str


class CleanResult(NamedTuple):
    tombstones: list[Tombstone]
    stripped: list[StrippedReference]


def issue_id_for_title(title: str) -> str:
    """Derive the permanent id of a new issue from its title."""
    normalized = _WS_RE.sub(" ", title.strip()).lower()
    if not normalized:
        raise ValueError("title must not be empty")
    value = int.from_bytes(hashlib.sha256(normalized.encode("utf-8")).digest(), "big")
    chars: list[str] = []
    while len(chars) < ID_LENGTH:
        value, rem = divmod(value, len(_BASE36))
        chars.append(_BASE36[rem])
    return "".join(chars)


def _normalize_field(name: str, value: Any) -> Any:
    if name == "title":
        text = str(value or "").strip()
        if not text:
            raise ValueError("title must not be empty")
        return text
    if name == "status":
        return normalize_status(value)
    if name == "type":
        return normalize_type(value)
    if name == "priority":
        return normalize_priority(value)
    if name == "execution_mode":
        return normalize_execution_mode(value)
    if name == "linked_pr":
        return None if value in (None, "") else int(value)
    if name == "linked_issues":
        return tuple(normalize_id(item) for item in value or ())
    if name == "tags":
        return tuple(str(tag).strip() for tag in value or () if str(tag).strip())
    if name == "parent_issues":
        return tuple(value or ())
    if name in {"description", "assigned_to", "working_branch_id"}:
        text = None if value is None else str(value)
        return text if text else None
    raise ValueError(f"unknown issue field: {name}")


class IssueStore:
    """Issue snapshot storage in .skein/issues*.jsonl."""

    def __init__(
        self,
        root: Path,
        *,
        events: EventLog | None = None,
        actor: str | None = None,
    ) -> None:
        self.root = root
        self.events = events if events is not None else EventLog.from_state_dir(root)
        self.actor = actor

    @classmethod
    def from_workdir(
        cls,
        cwd: Path | None = None,
        *,
        create: bool = True,
        actor: str | None = None,
    ) -> IssueStore:
        return cls(resolve_state_dir(cwd, create=create), actor=actor)

    @property
    def path(self) -> Path:
        return self.root / ISSUES_FILE_NAME

    def shard_paths(self) -> list[Path]:
        return sorted(self.root.glob(SHARD_GLOB))

    def load_shards(self) -> list[Issue]:
        """Every stored row, duplicates included, in shard order."""
        issues: list[Issue] = []
        for shard in self.shard_paths():
            issues.extend(Issue.from_dict(row) for row in read_jsonl(shard))
        return issues

    def load_all(self) -> list[Issue]:
        issues, _ = resolve_duplicates(self.load_shards(), at=0)
        return issues

    def save_all(self, issues: list[Issue]) -> None:
        write_jsonl(self.path, [issue.to_dict() for issue in issues])
        for shard in self.shard_paths():
            if shard != self.path:
                shard.unlink()

    def append(self, issue: Issue) -> None:
        append_jsonl(self.path, issue.to_dict())

    def get(self, issue_id: str) -> Issue | None:
        wanted = normalize_id(issue_id)
        for issue in self.load_all():
            if issue.id == wanted:
                return issue
        return None

    def resolve(self, reference: str) -> Issue:
        return resolve_reference(self.load_all(), reference)

    def _record(
        self,
        issue_id: str,
        change_type: str,
        changes: list[PropertyChange],
        *,
        at: int,
    ) -> ChangeRecord:
        record = ChangeRecord(
            change_id=uuid.uuid4().hex,
            issue_id=issue_id,
            type=change_type,
            changed_by=self.actor,
            changed_at=at,
            property_changes=tuple(changes),
        )
        self.events.record(record, source="store")
        return record

    def create(
        self,
        title: str,
        *,
        description: str | None = None,
        status: str = "open",
        type: str = "task",
        priority: int | None = None,
        parents: list[ParentIssueRef] | tuple[ParentIssueRef, ...] = (),
        execution_mode: str = DEFAULT_EXECUTION_MODE,
        tags: list[str] | tuple[str, ...] = (),
        assigned_to: str | None = None,
        linked_pr: int | None = None,
    ) -> Issue:
        title = _normalize_field("title", title)
        issue_id = issue_id_for_title(title)
        existing = self.load_all()
        known = {issue.id for issue in existing}
        if issue_id in known:
            raise AlreadyExistsError(f"issue already exists: {issue_id} ({title})")
        for ref in parents:
            if ref.parent_issue not in known:
                raise IssueNotFoundError(f"issue not found: {ref.parent_issue}")

        now = now_ms()
        issue = Issue.new(
            issue_id,
            title,
            description=_normalize_field("description", description),
            status=status,
            type=type,
            priority=priority,
            linked_pr=linked_pr,
            assigned_to=_normalize_field("assigned_to", assigned_to),
            execution_mode=execution_mode,
            parents=parents,
            tags=_normalize_field("tags", tags),
            at=now,
            actor=self.actor,
        )
        self.append(issue)
        changes = [
            PropertyChange("title", None, issue.title.value, now),
            PropertyChange("status", None, issue.status.value, now),
        ]
        self._record(issue.id, "created", changes, at=now)
        return issue

    def update(
        self, issue_id: str, **fields: Any
    ) -> tuple[Issue, list[PropertyChange]]:
        """Apply field edits, returning the issue and what actually changed."""
        issues = self.load_all()
        current = resolve_reference(issues, issue_id)
        now = now_ms()
        updated = current
        changes: list[PropertyChange] = []

        for name, raw in fields.items():
            if name == "id":
                continue
            value = _normalize_field(name, raw)
            old = getattr(updated, name).value
            if value == old:
                continue
            if name == "parent_issues":
                self._check_parents(issues, updated, value)
            updated = updated.with_field(name, value, at=now, actor=self.actor)
            changes.append(
                PropertyChange(name, format_value(old), format_value(value), now)
            )

        if not changes:
            return current, []

        self.save_all(
            [updated if issue.id == current.id else issue for issue in issues]
        )
        self._record(current.id, "updated", changes, at=now)
        return updated, changes

    def _check_parents(
        self,
        issues: list[Issue],
        issue: Issue,
        refs: tuple[ParentIssueRef, ...],
    ) -> None:
        known = {item.id for item in issues}
        for ref in refs:
            if ref.parent_issue in issue.parent_ids:
                continue
            if ref.parent_issue not in known:
                raise IssueNotFoundError(f"issue not found: {ref.parent_issue}")
            if would_create_cycle(ref.parent_issue, issue.id, issues):
                raise CycleWouldResultError(
                    f"making {ref.parent_issue} a parent of {issue.id} "
                    "would create a cycle"
                )

    def delete(self, issue_id: str) -> Issue:
        """Soft delete: the issue stays on disk with status ``deleted``."""
        issue, _ = self.update(issue_id, status="deleted")
        return issue

    def add_dependency(
        self,
        parent_ref: str,
        child_ref: str,
        position: DependencyPosition | None = None,
    ) -> Issue:
        result = add_dependency(
            self.load_all(), parent_ref, child_ref, position, actor=self.actor
        )
        self.save_all(result.issues)
        self._record(
            result.child.id, "updated", [result.change], at=result.change.timestamp
        )
        return result.child

    def remove_dependency(self, parent_ref: str, child_ref: str) -> Issue:
        result = remove_dependency(
            self.load_all(), parent_ref, child_ref, actor=self.actor
        )
        self.save_all(result.issues)
        self._record(
            result.child.id, "updated", [result.change], at=result.change.timestamp
        )
        return result.child

    def consolidate(self, *, dry_run: bool = False) -> list[ChangeRecord]:
        """Merge duplicate copies across shards into a single shard."""
        rows = self.load_shards()
        issues, records = resolve_duplicates(rows, merged_by=self.actor)
        if dry_run:
            return records
        if len(rows) != len(issues) or len(self.shard_paths()) > 1:
            self.save_all(issues)
            for record in records:
                self.events.record(record, source="merge")
        return records

    @property
    def tombstones_path(self) -> Path:
        return self.root / TOMBSTONES_FILE_NAME

    def load_tombstones(self) -> list[Tombstone]:
        return [Tombstone.from_dict(row) for row in read_jsonl(self.tombstones_path)]

    def _strip_references(
        self,
        issue: Issue,
        removed: set[str],
        *,
        at: int,
    ) -> tuple[Issue, list[PropertyChange], list[StrippedReference]]:
        changes: list[PropertyChange] = []
        stripped: list[StrippedReference] = []

        linked = issue.linked_issues.value
        dangling = [item for item in linked if item in removed]
        if dangling:
            kept = tuple(item for item in linked if item not in removed)
            issue = issue.with_field("linked_issues", kept, at=at, actor=self.actor)
            changes.append(
                PropertyChange(
                    "linked_issues", format_value(linked), format_value(kept), at
                )
            )
            stripped.extend(
                StrippedReference(item, issue.id, "linked_issues") for item in dangling
            )

        refs = issue.parent_issues.value
        dangling = [ref.parent_issue for ref in refs if ref.parent_issue in removed]
        if dangling:
            kept_refs = tuple(ref for ref in refs if ref.parent_issue not in removed)
            issue = issue.with_field(
                "parent_issues", kept_refs, at=at, actor=self.actor
            )
            changes.append(
                PropertyChange(
                    "parent_issues", format_value(refs), format_value(kept_refs), at
                )
            )
            stripped.extend(
                StrippedReference(item, issue.id, "parent_issues") for item in dangling
            )
        return issue, changes, stripped

    def clean(
        self,
        *,
        include_complete: bool = False,
        include_closed: bool = False,
        include_archived: bool = False,
        strip_references: bool = True,
        dry_run: bool = False,
    ) -> CleanResult:
        """Purge deleted (and optionally finished) issues, leaving tombstones.

        References to purged issues held by the remaining issues are removed
        unless ``strip_references`` is false. With ``dry_run`` nothing is
        written and the result describes what would happen.
        """
        targets = {"deleted"}
        if include_complete:
            targets.add("complete")
        if include_closed:
            targets.add("closed")
        if include_archived:
            targets.add("archived")

        issues = self.load_all()
        doomed = [issue for issue in issues if issue.status.value in targets]
        if not doomed:
            return CleanResult([], [])

        now = now_ms()
        removed = {issue.id for issue in doomed}
        tombstones = [
            Tombstone(issue.id, issue.title.value, now, self.actor) for issue in doomed
        ]

        kept: list[Issue] = []
        stripped: list[StrippedReference] = []
        edits: list[tuple[str, list[PropertyChange]]] = []
        for issue in issues:
            if issue.id in removed:
                continue
            if strip_references:
                issue, changes, found = self._strip_references(issue, removed, at=now)
                if changes:
                    edits.append((issue.id, changes))
                    stripped.extend(found)
            kept.append(issue)

        if dry_run:
            return CleanResult(tombstones, stripped)

        self.save_all(kept)
        newest: dict[str, Tombstone] = {}
        for stone in [*self.load_tombstones(), *tombstones]:
            current = newest.get(stone.issue_id)
            if current is None or stone.cleaned_at >= current.cleaned_at:
                newest[stone.issue_id] = stone
        write_jsonl(
            self.tombstones_path, [stone.to_dict() for stone in newest.values()]
        )

        for issue in doomed:
            change = PropertyChange("status", issue.status.value, None, now)
            self._record(issue.id, "cleaned", [change], at=now)
        for issue_id, changes in edits:
            self._record(issue_id, "updated", changes, at=now)
        return CleanResult(tombstones, stripped)
