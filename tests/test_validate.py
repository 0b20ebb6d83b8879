from __future__ import annotations

from skein.models import Issue, ParentIssueRef
from skein.validate import cycle_signature, validate_cycles, would_create_cycle


def _issue(issue_id: str, *parents: str) -> Issue:
    refs = [ParentIssueRef.parse(p, default_sort_order="V") for p in parents]
    return Issue.new(issue_id, issue_id.upper(), parents=refs)


def test_acyclic_set_is_valid() -> None:
    result = validate_cycles([_issue("a"), _issue("b", "a"), _issue("c", "a", "b")])
    assert result.is_valid
    assert result.cycles == ()


def test_two_node_cycle_reported_once_regardless_of_order() -> None:
    x = _issue("x", "y")
    y = _issue("y", "x")
    for issues in ([x, y], [y, x]):
        result = validate_cycles(issues)
        assert not result.is_valid
        assert len(result.cycles) == 1
        cycle = result.cycles[0].issue_ids
        assert set(cycle) == {"x", "y"}
        assert cycle[0] == cycle[-1]


def test_three_node_cycle_path_is_closed() -> None:
    result = validate_cycles([_issue("a", "c"), _issue("b", "a"), _issue("c", "b")])
    assert len(result.cycles) == 1
    assert result.cycles[0].issue_ids == ("a", "c", "b", "a")
    assert str(result.cycles[0]) == "a -> c -> b -> a"


def test_self_reference_is_a_cycle() -> None:
    result = validate_cycles([_issue("a", "a")])
    assert result.cycles[0].issue_ids == ("a", "a")


def test_dangling_parents_are_ignored() -> None:
    assert validate_cycles([_issue("a", "ghost")]).is_valid


def test_separate_cycles_are_all_found() -> None:
    result = validate_cycles(
        [_issue("a", "b"), _issue("b", "a"), _issue("c", "d"), _issue("d", "c")]
    )
    assert len(result.cycles) == 2


def test_cycle_signature_uses_smallest_rotation() -> None:
    assert cycle_signature(["C", "a", "b", "C"]) == "a,b,c"
    assert cycle_signature(["b", "c", "a", "b"]) == "a,b,c"


def test_would_create_cycle_self_loop() -> None:
    assert would_create_cycle("p", "p", [])
    assert would_create_cycle("P", "p", [_issue("p")])


def test_would_create_cycle_detects_ancestor() -> None:
    issues = [_issue("root"), _issue("mid", "root"), _issue("leaf", "mid")]
    assert would_create_cycle("leaf", "root", issues)
    assert would_create_cycle("mid", "root", issues)
    assert not would_create_cycle("root", "leaf", issues)
    assert not would_create_cycle("leaf", "other", issues)
