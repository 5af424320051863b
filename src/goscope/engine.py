"""
Operations facade: wires discover → extract / definitions / callgraph →
routes → dataflow into the named operations the surfaces expose.

Every call is stateless: files are read fresh and nothing is cached.
"""

import logging
from collections import defaultdict
from pathlib import Path

from . import discover
from .callgraph import build_call_graph
from .dataflow import trace_data_flow
from .definitions import find_definition, find_symbol_in_project, find_symbol_usage
from .discover import discover_files, find_file_recursive, find_project_root
from .errors import RouteNotFoundError
from .extract import collect_symbols, parse_file
from .graph import (
    build_graph,
    compute_metrics,
    detect_patterns,
    find_function_ids,
    reachable_from,
    shortest_paths,
)
from .models import (
    AnalysisConfig,
    APIRoute,
    CallGraph,
    CodeStructure,
    DataFlow,
    ElementCounts,
    FunctionMetrics,
    MainFlow,
    PatternReport,
    ProjectAnalysis,
    ProjectSymbol,
    SymbolInfo,
    SymbolUsage,
)
from .routes import analyze_main_flow as _analyze_main_flow
from .routes import discover_routes, find_route

log = logging.getLogger(__name__)


def analyze_file(file_path: str, project_root: str) -> CodeStructure:
    """Declarations of one file; paths in the result are project-relative."""
    return parse_file(file_path, project_root)


def analyze_project(config: AnalysisConfig) -> ProjectAnalysis:
    structures: list[CodeStructure] = []
    counts = ElementCounts()
    for path in discover_files(config):
        structure = parse_file(path, config.project_root)
        structures.append(structure)
        counts.add(structure)
    log.info("Analyzed %d files, %d functions", counts.files, counts.functions)
    return ProjectAnalysis(structures=structures, counts=counts)


def find_duplicate_symbols(config: AnalysisConfig) -> dict[str, list[ProjectSymbol]]:
    """Symbols declared more than once, keyed by "kind:name"."""
    groups: dict[str, list[ProjectSymbol]] = defaultdict(list)
    for structure in analyze_project(config).structures:
        for symbol in collect_symbols(structure):
            groups[symbol.key].append(symbol)
    return {key: symbols for key, symbols in groups.items() if len(symbols) > 1}


def get_definition(
    file_path: str, line: int, column: int, config: AnalysisConfig | None = None
) -> SymbolInfo | None:
    return find_definition(file_path, line, column, config)


def get_symbol_info(file_path: str, name: str, config: AnalysisConfig | None = None) -> SymbolInfo | None:
    """
    Definition of name anywhere in the project that contains file_path
    (located via go.mod unless config is given).
    """
    if config is None:
        config = AnalysisConfig(project_root=find_project_root(file_path))
    return find_symbol_in_project(config, name)


def find_symbol_usages(config: AnalysisConfig, name: str) -> list[SymbolUsage]:
    return find_symbol_usage(config, name)


def analyze_call_graph(config: AnalysisConfig) -> CallGraph:
    return build_call_graph(config)


def discover_api_routes(config: AnalysisConfig) -> list[APIRoute]:
    return discover_routes(config)


def trace_api_flow(config: AnalysisConfig, route_id: str) -> DataFlow:
    """
    Trace the request data flow of one route.

    Raises RouteNotFoundError when no discovered route has route_id.
    """
    route = find_route(config, route_id)
    if route is None:
        raise RouteNotFoundError(route_id)
    return trace_data_flow(config, route)


def resolve_path(input_path: str, project_root: str) -> str:
    return discover.resolve_path(input_path, project_root)


def find_file(project_root: str, file_name: str) -> str | None:
    return find_file_recursive(project_root, Path(file_name).name)


def analyze_main_flow(config: AnalysisConfig) -> MainFlow:
    return _analyze_main_flow(config)


def call_graph_patterns(config: AnalysisConfig, top_n: int = 10) -> PatternReport:
    return detect_patterns(build_graph(build_call_graph(config)), top_n=top_n)


def call_paths(config: AnalysisConfig, from_name: str, to_name: str, max_paths: int = 5) -> list[list[str]]:
    """
    Shortest call paths between two functions, given by name, by
    "Type.method" or by full ID. Every matching pair of endpoints is tried.
    """
    g = build_graph(build_call_graph(config))
    paths: list[list[str]] = []
    for source in find_function_ids(g, from_name):
        for target in find_function_ids(g, to_name):
            paths.extend(shortest_paths(g, source, target, max_paths=max_paths))
    paths.sort(key=len)
    return paths[:max_paths]


def function_metrics(config: AnalysisConfig, top_n: int = 10) -> list[FunctionMetrics]:
    """Busiest functions: highest betweenness first, then total degree."""
    metrics = compute_metrics(build_graph(build_call_graph(config)))
    metrics.sort(key=lambda m: (-m.betweenness, -(m.in_degree + m.out_degree), m.function_id))
    return metrics[:top_n]


def reachable_functions(config: AnalysisConfig, name: str, depth: int = 3) -> list[str]:
    """IDs of functions reachable from name within depth calls."""
    g = build_graph(build_call_graph(config))
    found: set[str] = set()
    for start in find_function_ids(g, name):
        found.update(reachable_from(g, start, depth=depth))
    return sorted(found)
