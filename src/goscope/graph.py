"""
NetworkX graph construction, metric computation, and pattern detection
over the call graph.
"""

import logging
from bisect import bisect_right
from collections import defaultdict
from itertools import islice

import networkx as nx

from .models import CallGraph, FunctionMetrics, PatternReport

log = logging.getLogger(__name__)

_BETWEENNESS_SAMPLE = 500   # use k-sample for large graphs


def _enclosing(starts: list[tuple[int, str]], line: int) -> str | None:
    """ID of the last definition starting at or before line."""
    index = bisect_right(starts, line, key=lambda start: start[0]) - 1
    return starts[index][1] if index >= 0 else None


def build_graph(call_graph: CallGraph) -> nx.DiGraph:
    """
    Directed graph of functions; an edge per resolved call from a named
    caller. The caller node is the definition enclosing the call site, so
    same-named methods on different receivers stay apart.
    """
    g: nx.DiGraph = nx.DiGraph()

    by_location: dict[tuple[str, int], str] = {}
    starts: dict[str, list[tuple[int, str]]] = defaultdict(list)
    for f in call_graph.functions:
        g.add_node(f.id, name=f.name, qualified=f.qualified_name, file=f.file, line=f.line, package=f.package)
        by_location[(f.file, f.line)] = f.id
        starts[f.file].append((f.line, f.id))
    for file_starts in starts.values():
        file_starts.sort()

    for call in call_graph.calls:
        if not call.resolved or not call.caller_func:
            continue
        source = _enclosing(starts.get(call.caller_file, []), call.caller_line)
        target = by_location.get((call.called_file, call.called_line))
        if source and target:
            g.add_edge(source, target, line=call.caller_line)

    log.info("Graph: %d nodes, %d edges", g.number_of_nodes(), g.number_of_edges())
    return g


def compute_metrics(g: nx.DiGraph) -> list[FunctionMetrics]:
    """Per-function degree and betweenness."""
    n = g.number_of_nodes()
    if n == 0:
        return []

    try:
        if n <= _BETWEENNESS_SAMPLE:
            bc = nx.betweenness_centrality(g, normalized=True)
        else:
            bc = nx.betweenness_centrality(g, k=_BETWEENNESS_SAMPLE, normalized=True, seed=0)
    except nx.NetworkXException as e:
        log.warning("Betweenness computation failed: %s", e)
        bc = {node: 0.0 for node in g.nodes()}

    return [
        FunctionMetrics(
            function_id=node,
            in_degree=g.in_degree(node),
            out_degree=g.out_degree(node),
            betweenness=bc.get(node, 0.0),
        )
        for node in g.nodes()
    ]


def detect_patterns(g: nx.DiGraph, top_n: int = 10) -> PatternReport:
    """Orphan functions, mutual-recursion clusters and the busiest files."""
    orphans = sorted(
        node for node in g.nodes()
        if g.in_degree(node) == 0 and g.out_degree(node) == 0
    )

    cycles: list[list[str]] = []
    for scc in nx.strongly_connected_components(g):
        if len(scc) > 1:
            cycles.append(sorted(scc))
    cycles.sort()

    file_edge_count: dict[str, int] = defaultdict(int)
    for u, v in g.edges():
        file_edge_count[g.nodes[u]["file"]] += 1
        file_edge_count[g.nodes[v]["file"]] += 1
    hub_files = sorted(file_edge_count, key=lambda f: (-file_edge_count[f], f))[:top_n]

    return PatternReport(
        orphans=orphans[:top_n],
        cycles=cycles[:top_n],
        hub_files=hub_files,
    )


def find_function_ids(g: nx.DiGraph, name: str) -> list[str]:
    """Node IDs for a full ID, a "Type.method" name or a bare function name."""
    if name in g:
        return [name]
    return sorted(
        node for node, data in g.nodes(data=True)
        if name in (data.get("name"), data.get("qualified"))
    )


def shortest_paths(g: nx.DiGraph, caller: str, callee: str, max_paths: int = 5) -> list[list[str]]:
    """Call chains of minimal length from caller down to callee (function IDs)."""
    if caller not in g or callee not in g:
        return []
    try:
        return list(islice(nx.all_shortest_paths(g, caller, callee), max_paths))
    except nx.NetworkXNoPath:
        return []


def reachable_from(g: nx.DiGraph, function_id: str, depth: int = 3) -> list[str]:
    """
    Functions transitively called by function_id, following at most depth
    calls. The function itself is left out even when it recurses.
    """
    if function_id not in g:
        return []
    lengths = nx.single_source_shortest_path_length(g, function_id, cutoff=depth)
    return sorted(node for node, hops in lengths.items() if hops > 0)
