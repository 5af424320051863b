"""
MCP server for goscope. Exposes Go structural analysis tools to MCP clients.

IMPORTANT: Uses stdio transport. Never print to stdout; all logging goes to stderr.
"""

import functools
import inspect
import logging
import os
import sys
import time
from pathlib import Path

# All logging must go to stderr in stdio MCP mode
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s %(name)s: %(message)s",
    stream=sys.stderr,
)

from mcp.server.fastmcp import FastMCP

from . import engine
from .errors import GoscopeError
from .models import AnalysisConfig

log = logging.getLogger(__name__)

_request_log = logging.getLogger("goscope.requests")
_request_log.setLevel(logging.INFO)
_request_log.propagate = False  # don't send to stderr


def request_log_path() -> Path:
    """File-based request log; tail -f it to watch tool usage in real time."""
    log_dir = os.environ.get("GOSCOPE_LOG_DIR") or Path.home() / ".local" / "log"
    return Path(log_dir) / "goscope-mcp.log"


def _ensure_request_log() -> None:
    if _request_log.handlers:
        return
    path = request_log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter("%(asctime)s  %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
    _request_log.addHandler(handler)


def _log_tool(fn):
    """Decorator that logs every MCP tool invocation with args and duration."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        _ensure_request_log()
        sig = inspect.signature(fn)
        bound = sig.bind(*args, **kwargs)
        bound.apply_defaults()
        params = ", ".join(f"{k}={v!r}" for k, v in bound.arguments.items())
        _request_log.info("→ %s(%s)", fn.__name__, params)
        t0 = time.monotonic()
        try:
            result = fn(*args, **kwargs)
            dt = time.monotonic() - t0
            # Log first line of result as a preview
            preview = result.split("\n", 1)[0] if isinstance(result, str) else str(result)[:120]
            _request_log.info("← %s  %.3fs  %s", fn.__name__, dt, preview)
            return result
        except Exception as exc:
            dt = time.monotonic() - t0
            _request_log.info("✗ %s  %.3fs  %s: %s", fn.__name__, dt, type(exc).__name__, exc)
            raise

    return wrapper


mcp = FastMCP(
    "goscope",
    instructions=(
        "goscope provides structural analysis of Go projects without a compiler: "
        "declarations per file, symbol definitions and usages, call graphs, "
        "HTTP route discovery and request data-flow tracing. "
        "Run api_routes first to get the route IDs trace_route expects."
    ),
)


def _config(project: str, include_vendor: bool = False) -> AnalysisConfig:
    config = AnalysisConfig(project_root=str(Path(project).resolve()))
    if include_vendor:
        config.exclude_dirs = [d for d in config.exclude_dirs if d != "vendor"]
    return config


# ── Tools ────────────────────────────────────────────────────────────────────

@mcp.tool()
@_log_tool
def file_structure(path: str, project: str = ".") -> str:
    """
    List the declarations of one Go file: package, imports, types, constants,
    variables, functions, structs and interfaces with their line numbers.

    Args:
        path: File path, absolute or relative to the project root.
        project: Path to the project root.
    """
    root = str(Path(project).resolve())
    resolved = engine.resolve_path(path, root)
    if not Path(resolved).is_file():
        return f"File not found: {path}"
    s = engine.analyze_file(resolved, root)

    lines = [f"File: {s.file_path}  (package {s.package_name or '?'})"]
    if s.imports:
        lines.append(f"\nImports ({len(s.imports)}):")
        for imp in s.imports:
            alias = f"{imp.alias} " if imp.alias else ""
            lines.append(f"  L{imp.line:<5} {alias}\"{imp.path}\"")
    for title, decls in (("Types", s.types), ("Constants", s.constants), ("Variables", s.variables)):
        if decls:
            lines.append(f"\n{title} ({len(decls)}):")
            for d in decls:
                lines.append(f"  L{d.line:<5} {d.name}")
    if s.structs:
        lines.append(f"\nStructs ({len(s.structs)}):")
        for st in s.structs:
            lines.append(f"  L{st.line:<5} {st.name}  ({len(st.fields)} fields)")
            for f in st.fields:
                tag = f"  `{f.tag}`" if f.tag else ""
                lines.append(f"          {f.name} {f.type}{tag}")
    if s.interfaces:
        lines.append(f"\nInterfaces ({len(s.interfaces)}):")
        for it in s.interfaces:
            lines.append(f"  L{it.line:<5} {it.name}  ({len(it.methods)} methods)")
    if s.functions:
        lines.append(f"\nFunctions ({len(s.functions)}):")
        for fn in s.functions:
            recv = f"({fn.receiver}) " if fn.receiver else ""
            params = ", ".join(f"{p.name} {p.type}".strip() for p in fn.parameters)
            ret = f" {fn.return_type}" if fn.return_type else ""
            lines.append(f"  L{fn.line:<5} {recv}{fn.name}({params}){ret}")
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def project_overview(project: str = ".", include_vendor: bool = False) -> str:
    """
    Declaration totals for every Go file in a project.

    Args:
        project: Path to the project root.
        include_vendor: Also scan the vendor/ directory.
    """
    analysis = engine.analyze_project(_config(project, include_vendor))
    c = analysis.counts
    lines = [
        f"Project: {Path(project).resolve()}",
        f"Files:      {c.files}",
        f"Imports:    {c.imports}",
        f"Types:      {c.types}",
        f"Constants:  {c.constants}",
        f"Variables:  {c.variables}",
        f"Functions:  {c.functions}",
        f"Structs:    {c.structs}",
        f"Interfaces: {c.interfaces}",
    ]
    largest = sorted(analysis.structures, key=lambda s: len(s.functions), reverse=True)[:10]
    if largest and largest[0].functions:
        lines.append("\nMost functions:")
        for s in largest:
            if s.functions:
                lines.append(f"  {s.file_path:<50} {len(s.functions):3}")
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def duplicate_symbols(project: str = ".") -> str:
    """
    Names declared more than once with the same kind across the project.

    Args:
        project: Path to the project root.
    """
    duplicates = engine.find_duplicate_symbols(_config(project))
    if not duplicates:
        return "No duplicate symbols"
    lines = [f"Duplicate symbols ({len(duplicates)}):"]
    for key, symbols in sorted(duplicates.items()):
        lines.append(f"\n{key}")
        for sym in symbols:
            lines.append(f"  {sym.file}:{sym.line}")
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def definition(path: str, line: int, column: int) -> str:
    """
    Go to definition: the symbol under a cursor position.

    Args:
        path: Absolute path of the file holding the cursor.
        line: 1-based line number.
        column: 0-based column.
    """
    info = engine.get_definition(path, line, column)
    if info is None:
        return f"No definition found at {path}:{line}:{column}"
    return f"{info.kind.upper()}: {info.name}\n  location:  {info.file}:{info.line}\n  signature: {info.signature}"


@mcp.tool()
@_log_tool
def symbol_info(name: str, path: str) -> str:
    """
    Look up where a symbol is defined, searching the project that contains path.

    Args:
        name: Function, type, constant or variable name.
        path: Any file inside the project (its go.mod directory is the root).
    """
    info = engine.get_symbol_info(path, name)
    if info is None:
        return f"Symbol not found: {name}"
    return f"{info.kind.upper()}: {info.name}\n  location:  {info.file}:{info.line}\n  signature: {info.signature}"


@mcp.tool()
@_log_tool
def symbol_usages(name: str, project: str = ".") -> str:
    """
    Every line in the project that mentions name (plain text match).

    Args:
        name: Text to search for.
        project: Path to the project root.
    """
    usages = engine.find_symbol_usages(_config(project), name)
    if not usages:
        return f"No usages of {name}"
    lines = [f"Usages of {name} ({len(usages)}):"]
    for u in usages[:200]:
        lines.append(f"  {u.file}:{u.line}  {u.code}")
    if len(usages) > 200:
        lines.append(f"  ... {len(usages) - 200} more")
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def call_graph(project: str = ".", function: str = "") -> str:
    """
    Functions and resolved call edges of the project.

    Args:
        project: Path to the project root.
        function: If set, only show calls made by or to this function name.
    """
    graph = engine.analyze_call_graph(_config(project))
    calls = graph.calls
    if function:
        calls = [
            c for c in calls
            if c.caller_func == function or c.called_func.split(".")[-1] == function
        ]
    resolved = [c for c in calls if c.resolved]
    lines = [
        f"Functions: {len(graph.functions)}",
        f"Calls:     {len(calls)}  (resolved {len(resolved)})",
        "",
    ]
    for c in resolved[:200]:
        caller = c.caller_func or "(top level)"
        lines.append(f"  {caller} → {c.called_func}  {c.caller_file}:{c.caller_line} → {c.called_file}:{c.called_line}")
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def call_patterns(project: str = ".") -> str:
    """
    Orphaned functions, mutual recursion and hub files in the call graph.

    Args:
        project: Path to the project root.
    """
    report = engine.call_graph_patterns(_config(project))
    lines = ["=== Call Graph Patterns ===\n"]

    lines.append(f"Orphans ({len(report.orphans)}) — no callers, no callees:")
    for fid in report.orphans:
        lines.append(f"  {fid}")

    lines.append(f"\nRecursion Cycles ({len(report.cycles)}):")
    for cycle in report.cycles:
        names = [c.split("::")[-1] for c in cycle]
        lines.append(f"  {' ↔ '.join(names)}")

    lines.append("\nHub Files (most edges):")
    for fp in report.hub_files:
        lines.append(f"  {fp}")

    lines.append("\nBottlenecks (betweenness):")
    for m in engine.function_metrics(_config(project), top_n=5):
        lines.append(f"  {m.function_id}  bc={m.betweenness:.3f}  in={m.in_degree} out={m.out_degree}")
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def reachable(function: str, project: str = ".", depth: int = 3) -> str:
    """
    Functions reachable from a function through resolved calls.

    Args:
        function: Function name, "Type.method" or a full "file::name" ID.
        project: Path to the project root.
        depth: Maximum number of calls to follow (default 3).
    """
    ids = engine.reachable_functions(_config(project), function, depth=depth)
    if not ids:
        return f"Nothing reachable from '{function}'"
    lines = [f"Reachable from {function} (depth {depth}): {len(ids)}"]
    lines.extend(f"  {fid}" for fid in ids)
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def call_path(from_function: str, to_function: str, project: str = ".") -> str:
    """
    Find call paths between two functions.

    Args:
        from_function: Starting function name, "Type.method" or full ID.
        to_function: Target function name, "Type.method" or full ID.
        project: Path to the project root.
    """
    paths = engine.call_paths(_config(project), from_function, to_function)
    if not paths:
        return f"No path found from '{from_function}' to '{to_function}'"
    lines = [f"{from_function} → {to_function}:"]
    for i, path in enumerate(paths, 1):
        lines.append(f"  Path {i}: {' → '.join(step.split('::')[-1] for step in path)}")
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def api_routes(project: str = ".") -> str:
    """
    HTTP routes registered with gorilla/mux, gin, echo, chi or net/http.

    Args:
        project: Path to the project root.
    """
    routes = engine.discover_api_routes(_config(project))
    if not routes:
        return "No routes found"
    lines = [f"Routes ({len(routes)}):"]
    for r in routes:
        lines.append(f"  {r.method:<7} {r.path:<35} {r.handler:<30} {r.handler_file}:{r.handler_line}")
        lines.append(f"          id: {r.id}")
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def trace_route(route_id: str, project: str = ".") -> str:
    """
    Trace how a request flows from a route through handler, services,
    repositories and database calls.

    Args:
        route_id: A route ID as listed by api_routes.
        project: Path to the project root.
    """
    try:
        flow = engine.trace_api_flow(_config(project), route_id)
    except GoscopeError as e:
        return str(e)

    names = {n.id: n.name for n in flow.nodes}
    lines = [f"{flow.route.method} {flow.route.path}  ({len(flow.nodes)} nodes, {len(flow.edges)} edges)\n"]
    for n in flow.nodes:
        loc = f"{n.file}:{n.line}" if n.line else n.file
        lines.append(f"  [{n.type}] {n.name}  {loc}")
    lines.append("\nEdges:")
    for e in flow.edges:
        label = e.data_type or ""
        if e.transformation:
            label += f", {e.transformation}"
        lines.append(f"  {names.get(e.source, e.source)} → {names.get(e.target, e.target)}  ({label})")
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def main_flow(project: str = ".") -> str:
    """
    Entry-point summary: main file, router file, handler and middleware files.

    Args:
        project: Path to the project root.
    """
    flow = engine.analyze_main_flow(_config(project))
    lines = [
        f"Main file:   {flow.main_file or '(none)'}",
        f"Router file: {flow.router_file or '(none)'}",
        f"\nHandlers ({len(flow.handlers)}):",
        *(f"  {h}" for h in flow.handlers),
        f"\nMiddlewares ({len(flow.middlewares)}):",
        *(f"  {m}" for m in flow.middlewares),
    ]
    if flow.routes:
        lines.append(f"\nRoutes ({len(flow.routes)}):")
        lines.extend(f"  {r['method']} {r['path']} → {r['handler']}" for r in flow.routes)
    return "\n".join(lines)


@mcp.tool()
@_log_tool
def resolve_file(path: str, project: str = ".") -> str:
    """
    Resolve a possibly partial file path against the project.

    Args:
        path: Absolute path, project-relative path, or bare file name.
        project: Path to the project root.
    """
    return engine.resolve_path(path, str(Path(project).resolve()))


# ── Entry point ───────────────────────────────────────────────────────────────

def run_server(http: bool = False, port: int = 8000) -> None:
    if http:
        mcp.settings.host = "127.0.0.1"
        mcp.settings.port = port
        mcp.run(transport="streamable-http")
    else:
        mcp.run(transport="stdio")


if __name__ == "__main__":
    run_server()
