from __future__ import annotations

from typing import TYPE_CHECKING

__all__ = [
    "__version__",
    "Issue",
    "IssueStore",
    "add_dependency",
    "build_graph",
    "build_filtered_task_graph_layout",
    "build_task_graph_layout",
    "initial_ranks",
    "middle_rank",
    "next_issues",
    "query_graph",
    "remove_dependency",
    "resolve_duplicates",
    "validate_cycles",
    "would_create_cycle",
]

__version__ = "0.1.0"

if TYPE_CHECKING:
    from .deps import add_dependency, remove_dependency
    from .graph import build_graph, next_issues, query_graph
    from .issue_store import IssueStore
    from .layout import build_filtered_task_graph_layout, build_task_graph_layout
    from .lexorank import initial_ranks, middle_rank
    from .merge import resolve_duplicates
    from .models import Issue
    from .validate import validate_cycles, would_create_cycle

# skein.merge is the module; import the function from it directly.
_LAZY = {
    "Issue": ".models",
    "IssueStore": ".issue_store",
    "add_dependency": ".deps",
    "remove_dependency": ".deps",
    "build_graph": ".graph",
    "next_issues": ".graph",
    "query_graph": ".graph",
    "build_task_graph_layout": ".layout",
    "build_filtered_task_graph_layout": ".layout",
    "initial_ranks": ".lexorank",
    "middle_rank": ".lexorank",
    "resolve_duplicates": ".merge",
    "validate_cycles": ".validate",
    "would_create_cycle": ".validate",
}


def __getattr__(name: str):
    module_name = _LAZY.get(name)
    if module_name is None:
        raise AttributeError(f"module 'skein' has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(module_name, __name__), name)
