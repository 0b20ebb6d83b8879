from __future__ import annotations

from skein.layout import build_filtered_task_graph_layout, build_task_graph_layout
from skein.models import Issue, ParentIssueRef


def _issue(issue_id: str, *, parents: tuple[str, ...] = (), **kwargs) -> Issue:
    refs = [ParentIssueRef.parse(p, default_sort_order="V") for p in parents]
    title = kwargs.pop("title", issue_id.upper())
    return Issue.new(issue_id, title, parents=refs, **kwargs)


def _lanes(graph) -> list[tuple[str, int]]:
    return [(node.issue.id, node.lane) for node in graph.nodes]


def test_empty_input_has_no_lanes() -> None:
    graph = build_task_graph_layout([])
    assert graph.nodes == ()
    assert graph.total_lanes == 0


def test_single_leaf_sits_in_lane_zero() -> None:
    graph = build_task_graph_layout([_issue("a")])
    assert _lanes(graph) == [("a", 0)]
    assert graph.total_lanes == 1
    node = graph.nodes[0]
    assert node.row == 0
    assert node.is_actionable
    assert node.parent_execution_mode is None


def test_series_parent_staggers_children() -> None:
    graph = build_task_graph_layout(
        [
            _issue("p", execution_mode="series"),
            _issue("c1", parents=("p:aaa",)),
            _issue("c2", parents=("p:bbb",)),
        ]
    )
    assert _lanes(graph) == [("c1", 0), ("c2", 1), ("p", 2)]
    assert graph.total_lanes == 3
    assert [node.row for node in graph.nodes] == [0, 1, 2]
    assert graph.nodes[0].is_actionable
    assert not graph.nodes[1].is_actionable
    assert graph.nodes[0].parent_execution_mode == "series"


def test_parallel_parent_shares_start_lane() -> None:
    graph = build_task_graph_layout(
        [
            _issue("p", execution_mode="parallel"),
            _issue("c1", parents=("p:aaa",)),
            _issue("c2", parents=("p:bbb",)),
        ]
    )
    assert _lanes(graph) == [("c1", 0), ("c2", 0), ("p", 1)]
    assert graph.total_lanes == 2
    assert all(node.is_actionable for node in graph.nodes[:2])
    assert graph.nodes[1].parent_execution_mode == "parallel"


def test_parallel_parent_sits_past_deepest_child() -> None:
    graph = build_task_graph_layout(
        [
            _issue("p", execution_mode="parallel"),
            _issue("deep", parents=("p:aaa",), execution_mode="series"),
            _issue("d1", parents=("deep:aaa",)),
            _issue("d2", parents=("deep:bbb",)),
            _issue("flat", parents=("p:bbb",)),
        ]
    )
    assert _lanes(graph) == [
        ("d1", 0),
        ("d2", 1),
        ("deep", 2),
        ("flat", 0),
        ("p", 3),
    ]
    assert graph.total_lanes == 4


def test_shared_child_is_emitted_once() -> None:
    graph = build_task_graph_layout(
        [
            _issue("a", priority=1),
            _issue("b", priority=2),
            _issue("shared", parents=("a", "b")),
        ]
    )
    ids = [node.issue.id for node in graph.nodes]
    assert ids.count("shared") == 1
    # b keeps a lane of its own even though its child was placed under a
    assert _lanes(graph) == [("shared", 0), ("a", 1), ("b", 1)]


def test_done_subtrees_are_hidden_but_done_ancestors_kept() -> None:
    graph = build_task_graph_layout(
        [
            _issue("root", status="complete", execution_mode="series"),
            _issue("finished", parents=("root:aaa",), status="complete"),
            _issue("active", parents=("root:bbb",)),
            _issue("old", status="closed"),
        ]
    )
    assert _lanes(graph) == [("active", 0), ("root", 1)]


def test_idea_issues_are_never_roots() -> None:
    graph = build_task_graph_layout(
        [
            _issue("idea", type="idea"),
            _issue("task"),
            _issue("child_idea", parents=("task",), type="idea"),
        ]
    )
    assert _lanes(graph) == [("child_idea", 0), ("task", 1)]
    assert not graph.nodes[0].is_actionable


def test_roots_ordered_by_priority_then_description_then_title() -> None:
    graph = build_task_graph_layout(
        [
            _issue("z", title="Z", priority=1),
            _issue("b", title="B"),
            _issue("a", title="A"),
            _issue("parent", title="P"),
            _issue("documented", parents=("parent",), description="next step"),
        ]
    )
    roots = [
        node.issue.id for node in graph.nodes if node.parent_execution_mode is None
    ]
    assert roots == ["z", "parent", "a", "b"]


def test_filtered_layout_keeps_matches_and_ancestors() -> None:
    issues = [
        _issue("root", execution_mode="parallel"),
        _issue("hit", parents=("root:aaa",)),
        _issue("miss", parents=("root:bbb",)),
        _issue("elsewhere"),
    ]
    graph = build_filtered_task_graph_layout(issues, ["HIT"])
    assert _lanes(graph) == [("hit", 0), ("root", 1)]
    assert graph.total_lanes == 2


def test_filtered_layout_with_no_matches_is_empty() -> None:
    graph = build_filtered_task_graph_layout([_issue("a")], ["nothing"])
    assert graph.nodes == ()
    assert graph.total_lanes == 0


def test_cyclic_parents_do_not_hang() -> None:
    graph = build_task_graph_layout(
        [
            _issue("root"),
            _issue("x", parents=("root", "y")),
            _issue("y", parents=("x",)),
        ]
    )
    ids = [node.issue.id for node in graph.nodes]
    assert sorted(ids) == ["root", "x", "y"]
