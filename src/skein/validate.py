"""Parent-edge cycle detection."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

from .models import Issue, normalize_id

_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass(frozen=True)
class DependencyCycle:
    """Issue ids around a loop, first id repeated at the end."""

    issue_ids: tuple[str, ...]

    def __str__(self) -> str:
        return " -> ".join(self.issue_ids)


@dataclass(frozen=True)
class CycleValidationResult:
    is_valid: bool
    cycles: tuple[DependencyCycle, ...] = ()


def cycle_signature(cycle: list[str] | tuple[str, ...]) -> str:
    """Smallest rotation of the loop members, comma-joined and lowercased."""
    members = [item.lower() for item in cycle]
    if len(members) > 1 and members[0] == members[-1]:
        members = members[:-1]
    if not members:
        return ""
    rotations = [members[idx:] + members[:idx] for idx in range(len(members))]
    return ",".join(min(rotations))


def validate_cycles(issues: Iterable[Issue]) -> CycleValidationResult:
    """Find loops in the parent references.

    An issue depends on its parents, so edges run child -> parent. References
    to ids outside ``issues`` are ignored.
    """
    parents_of: dict[str, list[str]] = {}
    for issue in issues:
        parents_of[issue.id] = list(issue.parent_ids)

    state: dict[str, int] = {issue_id: _WHITE for issue_id in parents_of}
    seen: set[str] = set()
    cycles: list[DependencyCycle] = []

    for start in parents_of:
        if state[start] != _WHITE:
            continue
        state[start] = _GRAY
        path = [start]
        index_by_id = {start: 0}
        stack = [iter(parents_of[start])]
        while stack:
            for dep_id in stack[-1]:
                dep_state = state.get(dep_id)
                if dep_state is None or dep_state == _BLACK:
                    continue
                if dep_state == _GRAY:
                    cycle = path[index_by_id[dep_id]:] + [dep_id]
                    signature = cycle_signature(cycle)
                    if signature not in seen:
                        seen.add(signature)
                        cycles.append(DependencyCycle(tuple(cycle)))
                    continue
                state[dep_id] = _GRAY
                index_by_id[dep_id] = len(path)
                path.append(dep_id)
                stack.append(iter(parents_of[dep_id]))
                break
            else:
                stack.pop()
                done_id = path.pop()
                index_by_id.pop(done_id, None)
                state[done_id] = _BLACK

    return CycleValidationResult(is_valid=not cycles, cycles=tuple(cycles))


def would_create_cycle(parent_id: str, child_id: str, issues: Iterable[Issue]) -> bool:
    """Return True if making ``parent_id`` a parent of ``child_id`` closes a loop."""
    parent = normalize_id(parent_id)
    child = normalize_id(child_id)
    if parent == child:
        return True

    parents_of: dict[str, tuple[str, ...]] = {}
    for issue in issues:
        parents_of[issue.id] = issue.parent_ids

    seen: set[str] = {parent}
    q: deque[str] = deque([parent])
    while q:
        for ancestor_id in parents_of.get(q.popleft(), ()):
            if ancestor_id == child:
                return True
            if ancestor_id not in seen:
                seen.add(ancestor_id)
                q.append(ancestor_id)
    return False
