"""Tests for the networkx call graph analytics."""

import pytest

from goscope.callgraph import build_call_graph
from goscope.graph import (
    build_graph,
    compute_metrics,
    detect_patterns,
    find_function_ids,
    reachable_from,
    shortest_paths,
)
from goscope.models import CallGraph, FunctionCall, FunctionDef


def _graph(edges: list[tuple[str, str]], extra: tuple[str, ...] = ()) -> CallGraph:
    """CallGraph where every function lives in "<name>.go" at line 1."""
    names = sorted({n for edge in edges for n in edge} | set(extra))
    functions = [FunctionDef(name=n, file=f"{n}.go", line=1, package="p") for n in names]
    calls = [
        FunctionCall(
            caller_func=a, caller_file=f"{a}.go", caller_line=2, called_func=b,
            package="p", called_file=f"{b}.go", called_line=1,
        )
        for a, b in edges
    ]
    return CallGraph(functions=functions, calls=calls)


SAME_NAME_GO = """package repo

type A struct{}

type B struct{}

func (a *A) Get() {
	helperA()
}

func (b *B) Get() {
	helperB()
}

func helperA() {}

func helperB() {}
"""


@pytest.fixture
def sample_graph(sample_config):
    return build_graph(build_call_graph(sample_config))


class TestBuildGraph:
    """Node and edge construction."""

    def test_nodes_and_edges(self):
        g = build_graph(_graph([("a", "b"), ("b", "c")]))
        assert set(g.nodes()) == {"a.go::a", "b.go::b", "c.go::c"}
        assert g.has_edge("a.go::a", "b.go::b")
        assert g.nodes["a.go::a"]["file"] == "a.go"

    def test_unresolved_and_top_level_calls_skipped(self):
        cg = _graph([("a", "b")])
        cg.calls.append(FunctionCall("a", "a.go", 3, "zzz", "p"))
        cg.calls.append(FunctionCall("", "a.go", 4, "b", "p", called_file="b.go", called_line=1))
        g = build_graph(cg)
        assert g.number_of_edges() == 1

    def test_sample_edges(self, sample_graph):
        assert sample_graph.has_edge("handlers.go::GetUsersHandler", "service.go::ListUsers")
        assert sample_graph.has_edge("repository.go::UserRepository.FindAll", "repository.go::UserRepository.execQuery")

    def test_same_named_methods_stay_apart(self, make_project):
        g = build_graph(build_call_graph(make_project({"repo.go": SAME_NAME_GO})))
        assert sorted(g.nodes()) == ["repo.go::A.Get", "repo.go::B.Get", "repo.go::helperA", "repo.go::helperB"]
        assert sorted(g.edges()) == [
            ("repo.go::A.Get", "repo.go::helperA"),
            ("repo.go::B.Get", "repo.go::helperB"),
        ]
        assert g.nodes["repo.go::B.Get"]["line"] == 11

    def test_call_attributed_to_enclosing_definition(self):
        cg = CallGraph(
            functions=[
                FunctionDef("Get", "x.go", 1, "p", receiver="a *A"),
                FunctionDef("Get", "x.go", 5, "p", receiver="b B"),
                FunctionDef("leaf", "y.go", 1, "p"),
            ],
            calls=[FunctionCall("Get", "x.go", 6, "leaf", "p", called_file="y.go", called_line=1)],
        )
        assert list(build_graph(cg).edges()) == [("x.go::B.Get", "y.go::leaf")]


class TestPatterns:
    """Orphans, cycles and hub files."""

    def test_cycle_detected(self):
        g = build_graph(_graph([("a", "b"), ("b", "a"), ("b", "c")]))
        report = detect_patterns(g)
        assert report.cycles == [["a.go::a", "b.go::b"]]

    def test_orphans(self):
        g = build_graph(_graph([("a", "b")], extra=("lonely",)))
        assert detect_patterns(g).orphans == ["lonely.go::lonely"]

    def test_sample_patterns(self, sample_graph):
        report = detect_patterns(sample_graph)
        assert report.orphans == [
            "main.go::main",
            "middleware.go::loggingMiddleware",
            "repository.go::NewUserRepository",
        ]
        assert report.cycles == []
        assert report.hub_files[0] == "handlers.go"

    def test_top_n_limits_hub_files(self, sample_graph):
        assert len(detect_patterns(sample_graph, top_n=1).hub_files) == 1


class TestMetrics:
    """Degree and betweenness."""

    def test_chain_middle_is_bottleneck(self):
        g = build_graph(_graph([("a", "b"), ("b", "c")]))
        metrics = {m.function_id: m for m in compute_metrics(g)}
        assert metrics["b.go::b"].in_degree == 1
        assert metrics["b.go::b"].out_degree == 1
        assert metrics["b.go::b"].betweenness > metrics["a.go::a"].betweenness

    def test_empty_graph(self):
        assert compute_metrics(build_graph(CallGraph())) == []


class TestPaths:
    """Path and reachability queries."""

    def test_find_function_ids(self, sample_graph):
        assert find_function_ids(sample_graph, "FindAll") == ["repository.go::UserRepository.FindAll"]
        assert find_function_ids(sample_graph, "service.go::ListUsers") == ["service.go::ListUsers"]
        assert find_function_ids(sample_graph, "nope") == []

    def test_find_method_by_qualified_name(self, make_project):
        g = build_graph(build_call_graph(make_project({"repo.go": SAME_NAME_GO})))
        assert find_function_ids(g, "Get") == ["repo.go::A.Get", "repo.go::B.Get"]
        assert find_function_ids(g, "B.Get") == ["repo.go::B.Get"]

    def test_shortest_path(self, sample_graph):
        paths = shortest_paths(sample_graph, "handlers.go::GetUsersHandler", "repository.go::UserRepository.execQuery")
        assert paths == [[
            "handlers.go::GetUsersHandler",
            "service.go::ListUsers",
            "repository.go::UserRepository.FindAll",
            "repository.go::UserRepository.execQuery",
        ]]

    def test_no_path(self, sample_graph):
        assert shortest_paths(sample_graph, "repository.go::UserRepository.execQuery", "handlers.go::GetUsersHandler") == []
        assert shortest_paths(sample_graph, "missing", "handlers.go::GetUsersHandler") == []

    def test_reachable_depth(self):
        g = build_graph(_graph([("a", "b"), ("b", "c"), ("c", "d")]))
        assert reachable_from(g, "a.go::a", depth=2) == ["b.go::b", "c.go::c"]
        assert reachable_from(g, "a.go::a", depth=5) == ["b.go::b", "c.go::c", "d.go::d"]

    def test_reachable_cycle_excludes_start(self):
        g = build_graph(_graph([("a", "b"), ("b", "a")]))
        assert reachable_from(g, "a.go::a") == ["b.go::b"]
        assert reachable_from(g, "missing") == []
