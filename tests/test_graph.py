from __future__ import annotations

import pytest

from skein.graph import GraphQuery, build_graph, next_issues, query_graph
from skein.models import Issue, ParentIssueRef


def _issue(issue_id: str, *, parents: tuple[str, ...] = (), **kwargs) -> Issue:
    refs = [ParentIssueRef.parse(p, default_sort_order="V") for p in parents]
    title = kwargs.pop("title", issue_id.upper())
    return Issue.new(issue_id, title, parents=refs, **kwargs)


def _ids(issues: list[Issue]) -> list[str]:
    return [issue.id for issue in issues]


def test_build_graph_links_children_and_drops_dangling_parents() -> None:
    graph = build_graph(
        [
            _issue("p"),
            _issue("c1", parents=("p:bbb",)),
            _issue("c2", parents=("p:aaa", "missing")),
        ]
    )
    assert graph.nodes["p"].child_ids == ("c2", "c1")
    assert graph.nodes["c2"].parent_ids == ("p",)
    assert graph.root_ids == ("p",)


def test_build_graph_orphan_with_dangling_parent_is_root() -> None:
    graph = build_graph([_issue("a", parents=("ghost",))])
    assert graph.root_ids == ("a",)
    assert graph.nodes["a"].parent_ids == ()
    assert graph.nodes["a"].parent_execution_mode is None


def test_children_tie_break_order() -> None:
    graph = build_graph(
        [
            _issue("p"),
            _issue("open_plain", parents=("p:aaa",), title="B"),
            _issue("review", parents=("p:aaa",), status="review", title="Z"),
            _issue("documented", parents=("p:aaa",), description="d", title="Y"),
            _issue("urgent", parents=("p:aaa",), priority=1, title="X"),
            _issue("alpha", parents=("p:aaa",), title="A"),
        ]
    )
    assert graph.nodes["p"].child_ids == (
        "review",
        "documented",
        "urgent",
        "alpha",
        "open_plain",
    )


def test_series_neighbours_are_adjacent_only() -> None:
    graph = build_graph(
        [
            _issue("p", execution_mode="series"),
            _issue("c1", parents=("p:aaa",)),
            _issue("c2", parents=("p:bbb",)),
            _issue("c3", parents=("p:ccc",)),
        ]
    )
    assert graph.nodes["c1"].previous_ids == ()
    assert graph.nodes["c1"].next_ids == ("c2",)
    assert graph.nodes["c3"].previous_ids == ("c2",)
    assert graph.nodes["c3"].next_ids == ()
    assert graph.nodes["c2"].parent_execution_mode == "series"


def test_parallel_children_have_no_neighbours() -> None:
    graph = build_graph(
        [
            _issue("p", execution_mode="parallel"),
            _issue("c1", parents=("p:aaa",)),
            _issue("c2", parents=("p:bbb",)),
        ]
    )
    assert graph.nodes["c1"].next_ids == ()
    assert graph.nodes["c2"].previous_ids == ()
    assert graph.nodes["c2"].parent_execution_mode == "parallel"


def test_incomplete_children_flag() -> None:
    graph = build_graph(
        [
            _issue("p"),
            _issue("c1", parents=("p",), status="complete"),
            _issue("q"),
            _issue("c2", parents=("q",), status="progress"),
        ]
    )
    assert not graph.nodes["p"].has_incomplete_children
    assert graph.nodes["q"].has_incomplete_children


def test_next_series_unblocks_in_order() -> None:
    issues = [
        _issue("p", execution_mode="series", status="progress"),
        _issue("c1", parents=("p:aaa",)),
        _issue("c2", parents=("p:bbb",)),
    ]
    assert _ids(next_issues(build_graph(issues))) == ["c1"]

    issues[1] = issues[1].with_field("status", "complete", at=1)
    assert _ids(next_issues(build_graph(issues))) == ["c2"]


def test_next_parallel_children_are_all_actionable() -> None:
    issues = [
        _issue("p", execution_mode="parallel"),
        _issue("c1", parents=("p:aaa",)),
        _issue("c2", parents=("p:bbb",)),
    ]
    assert sorted(_ids(next_issues(build_graph(issues)))) == ["c1", "c2"]


def test_next_excludes_ideas_and_parents_with_open_children() -> None:
    issues = [
        _issue("idea", type="idea"),
        _issue("review_idea", type="idea", status="review"),
        _issue("p"),
        _issue("c", parents=("p",), status="progress"),
        _issue("draft", status="draft"),
    ]
    assert _ids(next_issues(build_graph(issues))) == []


def test_next_ordering_prefers_review_then_description() -> None:
    issues = [
        _issue("plain", title="A"),
        _issue("low", title="B", priority=5, description="x"),
        _issue("high", title="C", priority=1, description="x"),
        _issue("rev", title="D", status="review"),
    ]
    assert _ids(next_issues(build_graph(issues))) == ["rev", "high", "low", "plain"]


def test_next_scoped_to_descendants() -> None:
    issues = [
        _issue("root", execution_mode="parallel"),
        _issue("mid", parents=("root",), execution_mode="parallel"),
        _issue("leaf", parents=("mid",)),
        _issue("other"),
    ]
    graph = build_graph(issues)
    assert _ids(next_issues(graph, "ROOT")) == ["leaf"]
    assert "other" in _ids(next_issues(graph))


def test_query_graph_filters_terminal_by_default() -> None:
    graph = build_graph(
        [
            _issue("a"),
            _issue("b", status="closed"),
            _issue("c", status="deleted"),
        ]
    )
    assert list(query_graph(graph, GraphQuery()).nodes) == ["a"]
    assert set(query_graph(graph, GraphQuery(include_terminal=True)).nodes) == {
        "a",
        "b",
        "c",
    }
    assert list(query_graph(graph, GraphQuery(status="closed")).nodes) == ["b"]


def test_query_graph_search_and_tags() -> None:
    graph = build_graph(
        [
            _issue("a", title="Fix login", tags=["auth"]),
            _issue("b", title="Docs", description="explain LOGIN flow"),
            _issue("c", title="Other", tags=["ui"]),
        ]
    )
    found = query_graph(graph, GraphQuery(search_text="login"))
    assert set(found.nodes) == {"a", "b"}
    tagged = query_graph(graph, GraphQuery(tags=("UI",)))
    assert list(tagged.nodes) == ["c"]


def test_query_graph_priority_and_linked_pr() -> None:
    graph = build_graph(
        [
            _issue("a", priority=1, linked_pr=12),
            _issue("b", priority=2, linked_pr=12),
            _issue("c"),
        ]
    )
    assert list(query_graph(graph, GraphQuery(priority=1)).nodes) == ["a"]
    assert set(query_graph(graph, GraphQuery(linked_pr=12)).nodes) == {"a", "b"}
    both = GraphQuery(priority=2, linked_pr=12)
    assert list(query_graph(graph, both).nodes) == ["b"]


def test_query_graph_context_and_root_scope() -> None:
    graph = build_graph(
        [
            _issue("root", status="closed"),
            _issue("mid", parents=("root",), status="complete"),
            _issue("leaf", parents=("mid",), title="needle"),
            _issue("other", title="needle too"),
        ]
    )
    with_context = query_graph(
        graph,
        GraphQuery(search_text="needle", include_inactive_with_active_descendants=True),
    )
    assert set(with_context.nodes) == {"root", "mid", "leaf", "other"}
    assert set(with_context.root_ids) == {"root", "other"}

    scoped = query_graph(
        graph,
        GraphQuery(
            root_issue_id="mid",
            include_inactive_with_active_descendants=True,
        ),
    )
    assert set(scoped.nodes) == {"mid", "leaf"}
    assert scoped.root_ids == ("mid",)


def test_query_graph_unknown_root() -> None:
    with pytest.raises(ValueError, match="unknown issue"):
        query_graph(build_graph([_issue("a")]), GraphQuery(root_issue_id="zzz"))
