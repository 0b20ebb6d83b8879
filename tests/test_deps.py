from __future__ import annotations

import pytest

from skein.deps import (
    DependencyPosition,
    add_dependency,
    remove_dependency,
    resolve_reference,
)
from skein.errors import (
    AlreadyExistsError,
    AmbiguousReferenceError,
    CycleWouldResultError,
    IssueNotFoundError,
)
from skein.models import Issue, ParentIssueRef


def _issue(issue_id: str, *parents: str) -> Issue:
    refs = [ParentIssueRef.parse(p, default_sort_order="V") for p in parents]
    return Issue.new(issue_id, issue_id.upper(), parents=refs, at=1)


def _snapshot() -> list[Issue]:
    return [
        _issue("parent"),
        _issue("first1", "parent:aaa"),
        _issue("second", "parent:bbb"),
        _issue("loose"),
    ]


def test_resolve_reference_by_prefix() -> None:
    issues = _snapshot()
    assert resolve_reference(issues, "LOO").id == "loose"
    assert resolve_reference(issues, "second").id == "second"
    with pytest.raises(IssueNotFoundError):
        resolve_reference(issues, "nope")


def test_resolve_reference_exact_match_beats_prefix() -> None:
    issues = [_issue("ab"), _issue("abc")]
    assert resolve_reference(issues, "ab").id == "ab"
    with pytest.raises(AmbiguousReferenceError) as excinfo:
        resolve_reference([_issue("abd"), _issue("abc")], "ab")
    assert excinfo.value.matches == ["abc", "abd"]


def test_add_dependency_appends_last_by_default() -> None:
    result = add_dependency(_snapshot(), "parent", "loose", actor="alice", at=50)
    order = result.child.sort_order_for("parent")
    assert order is not None and order > "bbb"
    assert result.child.parent_issues.updated_at == 50
    assert result.child.parent_issues.modified_by == "alice"
    assert result.change.property_name == "parent_issues"
    stored = {issue.id: issue for issue in result.issues}
    assert stored["loose"].parent_ids == ("parent",)


def test_add_dependency_positions() -> None:
    first = add_dependency(_snapshot(), "parent", "loose", DependencyPosition.first())
    assert first.child.sort_order_for("parent") < "aaa"

    after = add_dependency(
        _snapshot(), "parent", "loose", DependencyPosition.after("first1")
    )
    assert "aaa" < after.child.sort_order_for("parent") < "bbb"

    before = add_dependency(
        _snapshot(), "parent", "loose", DependencyPosition.before("second")
    )
    assert "aaa" < before.child.sort_order_for("parent") < "bbb"


def test_add_dependency_into_empty_parent_uses_default_rank() -> None:
    result = add_dependency([_issue("p"), _issue("c")], "p", "c")
    assert result.child.parent_issues.value == (ParentIssueRef("p", "VVV"),)


def test_add_dependency_failures_leave_snapshot_untouched() -> None:
    issues = _snapshot()
    before = list(issues)
    with pytest.raises(AlreadyExistsError):
        add_dependency(issues, "parent", "second")
    with pytest.raises(CycleWouldResultError):
        add_dependency(issues, "second", "parent")
    with pytest.raises(CycleWouldResultError):
        add_dependency(issues, "loose", "loose")
    with pytest.raises(IssueNotFoundError):
        add_dependency(issues, "ghost", "loose")
    with pytest.raises(IssueNotFoundError, match="not a child"):
        add_dependency(issues, "parent", "loose", DependencyPosition.after("loose"))
    assert issues == before


def test_position_requires_sibling() -> None:
    with pytest.raises(ValueError, match="requires a sibling"):
        DependencyPosition("after")
    with pytest.raises(ValueError, match="invalid position"):
        DependencyPosition("middle")


def test_remove_dependency() -> None:
    result = remove_dependency(_snapshot(), "parent", "second", at=9)
    assert result.child.parent_ids == ()
    assert result.change.old_value == "parent:bbb"
    assert result.change.new_value == ""

    with pytest.raises(IssueNotFoundError, match="not a child"):
        remove_dependency(_snapshot(), "parent", "loose")


def test_positions_skip_siblings_sharing_a_rank() -> None:
    issues = [
        _issue("p"),
        _issue("c1", "p:VVV"),
        _issue("c2", "p:VVV"),
        _issue("c3", "p:k"),
        _issue("n"),
    ]
    after = add_dependency(issues, "p", "n", DependencyPosition.after("c1"))
    assert "VVV" < after.child.sort_order_for("p") < "k"

    before = add_dependency(issues, "p", "n", DependencyPosition.before("c2"))
    assert before.child.sort_order_for("p") < "VVV"
