"""CLI entry point for goscope."""

import argparse
import json
import logging
import sys
from pathlib import Path

from . import engine
from .errors import GoscopeError
from .models import AnalysisConfig, to_dict

log = logging.getLogger(__name__)


def _config(args: argparse.Namespace) -> AnalysisConfig:
    config = AnalysisConfig(
        project_root=str(Path(args.path).resolve()),
        respect_gitignore=getattr(args, "gitignore", False),
    )
    if getattr(args, "include_vendor", False):
        config.exclude_dirs = [d for d in config.exclude_dirs if d != "vendor"]
    return config


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def cmd_structure(args: argparse.Namespace) -> int:
    root = str(Path(args.path).resolve())
    file_path = engine.resolve_path(args.file, root)
    if not Path(file_path).is_file():
        print(f"File not found: {args.file}", file=sys.stderr)
        return 1

    s = engine.analyze_file(file_path, root)
    if args.json:
        _print_json(s.to_dict())
        return 0

    print(f"{s.file_path}  (package {s.package_name or '?'})")
    for imp in s.imports:
        print(f"  import    L{imp.line:<5} {imp.alias + ' ' if imp.alias else ''}\"{imp.path}\"")
    for t in s.types:
        print(f"  type      L{t.line:<5} {t.name} {t.type}")
    for c in s.constants:
        print(f"  const     L{c.line:<5} {c.name}{' = ' + c.value if c.value else ''}")
    for v in s.variables:
        print(f"  var       L{v.line:<5} {v.name} {v.type}".rstrip())
    for st in s.structs:
        print(f"  struct    L{st.line:<5} {st.name}  ({len(st.fields)} fields)")
    for it in s.interfaces:
        print(f"  interface L{it.line:<5} {it.name}  ({len(it.methods)} methods)")
    for fn in s.functions:
        recv = f"({fn.receiver}) " if fn.receiver else ""
        params = ", ".join(f"{p.name} {p.type}".strip() for p in fn.parameters)
        print(f"  func      L{fn.line:<5} {recv}{fn.name}({params}) {fn.return_type}".rstrip())
    return 0


def cmd_project(args: argparse.Namespace) -> int:
    analysis = engine.analyze_project(_config(args))
    if args.json:
        _print_json(analysis.to_dict())
        return 0

    c = analysis.counts
    print(f"Project:    {Path(args.path).resolve()}")
    print(f"Files:      {c.files}")
    print(f"Imports:    {c.imports}")
    print(f"Types:      {c.types}")
    print(f"Constants:  {c.constants}")
    print(f"Variables:  {c.variables}")
    print(f"Functions:  {c.functions}")
    print(f"Structs:    {c.structs}")
    print(f"Interfaces: {c.interfaces}")
    return 0


def cmd_duplicates(args: argparse.Namespace) -> int:
    duplicates = engine.find_duplicate_symbols(_config(args))
    if args.json:
        _print_json({key: [to_dict(s) for s in syms] for key, syms in duplicates.items()})
        return 0

    if not duplicates:
        print("No duplicate symbols")
        return 0
    for key, symbols in sorted(duplicates.items()):
        print(key)
        for sym in symbols:
            print(f"  {sym.file}:{sym.line}")
    return 0


def _print_symbol(info, as_json: bool) -> None:
    if as_json:
        _print_json(info.to_dict())
        return
    print(f"{info.kind.upper()}  {info.name}")
    print(f"  file:      {info.file}:{info.line}")
    print(f"  signature: {info.signature}")


def cmd_definition(args: argparse.Namespace) -> int:
    info = engine.get_definition(str(Path(args.file).resolve()), args.line, args.column)
    if info is None:
        print(f"No definition found at {args.file}:{args.line}:{args.column}")
        return 1
    _print_symbol(info, args.json)
    return 0


def cmd_symbol(args: argparse.Namespace) -> int:
    config = _config(args)
    info = engine.get_symbol_info(config.project_root, args.name, config=config)
    if info is None:
        print(f"Symbol not found: {args.name}")
        return 1
    _print_symbol(info, args.json)
    return 0


def cmd_usages(args: argparse.Namespace) -> int:
    usages = engine.find_symbol_usages(_config(args), args.name)
    if args.json:
        _print_json([to_dict(u) for u in usages])
        return 0
    for u in usages:
        print(f"{u.file}:{u.line}  {u.code}")
    return 0


def cmd_callgraph(args: argparse.Namespace) -> int:
    graph = engine.analyze_call_graph(_config(args))
    if args.json:
        _print_json(graph.to_dict())
        return 0

    resolved = [c for c in graph.calls if c.resolved]
    print(f"Functions: {len(graph.functions)}")
    print(f"Calls:     {len(graph.calls)}  (resolved {len(resolved)})\n")
    for c in resolved:
        caller = c.caller_func or "(top level)"
        print(f"  {caller} → {c.called_func}  ({c.caller_file}:{c.caller_line} → {c.called_file}:{c.called_line})")
    return 0


def cmd_patterns(args: argparse.Namespace) -> int:
    report = engine.call_graph_patterns(_config(args), top_n=args.n)
    if args.json:
        _print_json(to_dict(report))
        return 0

    print("=== Call Graph Patterns ===\n")

    print(f"Orphans — zero connections ({len(report.orphans)}):")
    for fid in report.orphans:
        print(f"  {fid}")

    print(f"\nRecursion Cycles ({len(report.cycles)}):")
    for cycle in report.cycles:
        names = [c.split("::")[-1] for c in cycle]
        print(f"  {' ↔ '.join(names)}")

    print("\nHub Files (most edges):")
    for fp in report.hub_files:
        print(f"  {fp}")
    return 0


def cmd_call_path(args: argparse.Namespace) -> int:
    paths = engine.call_paths(_config(args), args.from_function, args.to_function)
    if args.json:
        _print_json(paths)
        return 0 if paths else 1

    if not paths:
        print(f"No path found from {args.from_function} to {args.to_function}")
        return 1
    for i, path in enumerate(paths, 1):
        names = [p.split("::")[-1] for p in path]
        print(f"  Path {i}: {' → '.join(names)}")
    return 0


def cmd_bottlenecks(args: argparse.Namespace) -> int:
    metrics = engine.function_metrics(_config(args), top_n=args.n)
    if args.json:
        _print_json([to_dict(m) for m in metrics])
        return 0

    print(f"{'function':<50} {'betweenness':>11} {'in':>4} {'out':>4}")
    for m in metrics:
        print(f"{m.function_id:<50} {m.betweenness:>11.3f} {m.in_degree:>4} {m.out_degree:>4}")
    return 0


def cmd_reachable(args: argparse.Namespace) -> int:
    ids = engine.reachable_functions(_config(args), args.function, depth=args.depth)
    if args.json:
        _print_json(ids)
        return 0

    if not ids:
        print(f"Nothing reachable from {args.function}")
        return 1
    for fid in ids:
        print(f"  {fid}")
    return 0


def cmd_routes(args: argparse.Namespace) -> int:
    routes = engine.discover_api_routes(_config(args))
    if args.json:
        _print_json([r.to_dict() for r in routes])
        return 0

    for r in routes:
        print(f"{r.method:<7} {r.path:<35} {r.handler:<30} {r.handler_file}:{r.handler_line}")
        print(f"        id: {r.id}")
    return 0


def cmd_trace(args: argparse.Namespace) -> int:
    try:
        flow = engine.trace_api_flow(_config(args), args.route_id)
    except GoscopeError as e:
        print(str(e), file=sys.stderr)
        return 1

    if args.json:
        _print_json(flow.to_dict())
        return 0

    names = {n.id: n.name for n in flow.nodes}
    print(f"{flow.route.method} {flow.route.path}\n")
    for n in flow.nodes:
        loc = f"{n.file}:{n.line}" if n.line else n.file
        print(f"  [{n.type:<10}] {n.name:<35} {loc}")
    print()
    for e in flow.edges:
        label = ", ".join(part for part in (e.data_type, e.transformation) if part)
        print(f"  {names.get(e.source, e.source)} → {names.get(e.target, e.target)}  ({label})")
    return 0


def cmd_resolve(args: argparse.Namespace) -> int:
    resolved = engine.resolve_path(args.input, str(Path(args.path).resolve()))
    print(resolved)
    return 0 if Path(resolved).exists() else 1


def cmd_main_flow(args: argparse.Namespace) -> int:
    flow = engine.analyze_main_flow(_config(args))
    if args.json:
        _print_json(flow.to_dict())
        return 0

    print(f"Main file:   {flow.main_file or '(none)'}")
    print(f"Router file: {flow.router_file or '(none)'}")
    print(f"Handlers:    {', '.join(flow.handlers) or '(none)'}")
    print(f"Middlewares: {', '.join(flow.middlewares) or '(none)'}")
    for r in flow.routes:
        print(f"  {r['method']} {r['path']} → {r['handler']}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from .server import run_server
    run_server(http=args.http, port=args.port)
    return 0


def cmd_api(args: argparse.Namespace) -> int:
    """Serve the JSON API for a project."""
    root = Path(args.path).resolve()
    if not root.is_dir():
        print(f"Not a directory: {root}", file=sys.stderr)
        return 1

    from .api_server import run_api_server
    run_api_server(str(root), port=args.port, open_browser=args.open, config=_config(args))
    return 0


def _project_args(p: argparse.ArgumentParser, positional: bool = True) -> None:
    if positional:
        p.add_argument("path", nargs="?", default=".", help="Project root (default: .)")
    else:
        p.add_argument("--path", default=".", help="Project root (default: .)")
    p.add_argument("--include-vendor", action="store_true", help="Also scan vendor/")
    p.add_argument("--gitignore", action="store_true", help="Skip files matched by .gitignore")
    p.add_argument("--json", action="store_true", help="JSON output")


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    parser = argparse.ArgumentParser(
        prog="goscope",
        description="Structural analysis of Go projects: declarations, call graphs, routes and data flow",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    # structure
    p = sub.add_parser("structure", help="List the declarations of one file")
    p.add_argument("file", help="File path (absolute, project-relative or bare name)")
    p.add_argument("--path", default=".", help="Project root")
    p.add_argument("--json", action="store_true", help="JSON output")

    # project
    p = sub.add_parser("project", help="Declaration totals for a project")
    _project_args(p)

    # duplicates
    p = sub.add_parser("duplicates", help="Names declared more than once")
    _project_args(p)

    # definition
    p = sub.add_parser("definition", help="Definition of the identifier at a cursor position")
    p.add_argument("file", help="File holding the cursor")
    p.add_argument("line", type=int, help="1-based line")
    p.add_argument("column", type=int, help="0-based column")
    p.add_argument("--json", action="store_true", help="JSON output")

    # symbol
    p = sub.add_parser("symbol", help="Look up a symbol definition by name")
    p.add_argument("name", help="Symbol name")
    _project_args(p, positional=False)

    # usages
    p = sub.add_parser("usages", help="Lines mentioning a name")
    p.add_argument("name", help="Text to search for")
    _project_args(p, positional=False)

    # callgraph
    p = sub.add_parser("callgraph", help="Functions and call edges")
    _project_args(p)

    # patterns
    p = sub.add_parser("patterns", help="Orphans, recursion cycles and hub files")
    _project_args(p)
    p.add_argument("-n", type=int, default=10, help="Number of results per section")

    # call-path
    p = sub.add_parser("call-path", help="Call paths between two functions")
    p.add_argument("from_function", help="Starting function")
    p.add_argument("to_function", help="Target function")
    _project_args(p, positional=False)

    # bottlenecks
    p = sub.add_parser("bottlenecks", help="Functions ranked by betweenness centrality")
    _project_args(p)
    p.add_argument("-n", type=int, default=10, help="Number of functions")

    # reachable
    p = sub.add_parser("reachable", help="Functions reachable from a function")
    p.add_argument("function", help="Function name, Type.method or a file::name ID")
    p.add_argument("--depth", type=int, default=3, help="Maximum call depth (default: 3)")
    _project_args(p, positional=False)

    # routes
    p = sub.add_parser("routes", help="Discover HTTP routes")
    _project_args(p)

    # trace
    p = sub.add_parser("trace", help="Trace the data flow of a route")
    p.add_argument("route_id", help="Route ID as printed by 'goscope routes'")
    _project_args(p, positional=False)

    # resolve
    p = sub.add_parser("resolve", help="Resolve a file path against the project")
    p.add_argument("input", help="Absolute path, project-relative path or bare file name")
    p.add_argument("--path", default=".", help="Project root")

    # main-flow
    p = sub.add_parser("main-flow", help="Entry point, router, handler and middleware files")
    _project_args(p)

    # serve
    p = sub.add_parser("serve", help="Start MCP server")
    p.add_argument("--http", action="store_true", help="HTTP transport instead of stdio")
    p.add_argument("--port", type=int, default=8000, help="HTTP port (default: 8000)")

    # api: JSON endpoints for UI consumers
    p = sub.add_parser("api", help="Serve the JSON API for a project")
    _project_args(p)
    p.add_argument("--port", type=int, default=8421, help="HTTP port (default: 8421)")
    p.add_argument("--open", action="store_true", help="Open the routes endpoint in a browser")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger("goscope").setLevel(logging.DEBUG)

    handlers = {
        "structure": cmd_structure,
        "project": cmd_project,
        "duplicates": cmd_duplicates,
        "definition": cmd_definition,
        "symbol": cmd_symbol,
        "usages": cmd_usages,
        "callgraph": cmd_callgraph,
        "patterns": cmd_patterns,
        "call-path": cmd_call_path,
        "bottlenecks": cmd_bottlenecks,
        "reachable": cmd_reachable,
        "routes": cmd_routes,
        "trace": cmd_trace,
        "resolve": cmd_resolve,
        "main-flow": cmd_main_flow,
        "serve": cmd_serve,
        "api": cmd_api,
    }

    sys.exit(handlers[args.command](args))


if __name__ == "__main__":
    main()
