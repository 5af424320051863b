"""
HTTP route discovery.

Route registrations are found by ordered pattern families (gorilla/mux,
gin and echo, chi, net/http) applied to whole file text. Within a file an
offset matched by an earlier family is not matched again, and across the
project only the first route per (method, path) is kept.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .discover import discover_files, relative_path
from .models import AnalysisConfig, APIRoute, MainFlow
from .scanner import find_matching, line_at, read_source, split_top_level

log = logging.getLogger(__name__)

_VERBS = "GET|POST|PUT|DELETE|PATCH"


@dataclass(frozen=True)
class RoutePattern:
    family: str
    regex: re.Pattern
    method_group: int | None    # None → "ALL" unless a default is given
    path_group: int
    handler_group: int | None   # None → the registration has no handler


ROUTE_PATTERNS: list[RoutePattern] = [
    # gorilla/mux
    RoutePattern("mux", re.compile(
        rf'(\w+)\.Handle\("(?!(?:{_VERBS})")([^"]+)",\s*([^)]+)\)(?:\.Methods\("([^"]+)"\))?'), 4, 2, 3),
    RoutePattern("mux", re.compile(
        r'(\w+)\.HandleFunc\("([^"]+)",\s*([^)]+)\)(?:\.Methods\("([^"]+)"\))?'), 4, 2, 3),
    RoutePattern("mux", re.compile(
        r'(\w+)\.PathPrefix\("([^"]+)"\)\.Handler\(([^)]+)\)'), None, 2, 3),
    RoutePattern("mux", re.compile(
        r'(\w+)\.PathPrefix\("([^"]+)"\)\.Subrouter\(\)'), None, 2, None),
    # gin and echo share the upper-case verb form
    RoutePattern("gin", re.compile(
        rf'(\w+)\.({_VERBS})\("([^"]+)",\s*([^)]+)\)'), 2, 3, 4),
    RoutePattern("gin", re.compile(
        rf'(\w+)\.Handle\("({_VERBS})",\s*"([^"]+)",\s*([^)]+)\)'), 2, 3, 4),
    # chi
    RoutePattern("chi", re.compile(
        r'(\w+)\.(Get|Post|Put|Delete|Patch)\("([^"]+)",\s*([^)]+)\)'), 2, 3, 4),
    # net/http
    RoutePattern("http", re.compile(r'http\.HandleFunc\("([^"]+)",\s*([^)]+)\)'), None, 1, 2),
    RoutePattern("http", re.compile(r'mux\.HandleFunc\("([^"]+)",\s*([^)]+)\)'), None, 1, 2),
]

_HANDLER_TOKEN = re.compile(r"[A-Za-z_][\w.]*")
_MIDDLEWARE_USE = re.compile(r"(\w+)\.Use\(")

# Loose heuristics for the entry-point summary
_MAIN_FUNC = "func main("
_ROUTER_MARKERS = ("mux.Handle", "router", "NewRouter")
_SIMPLE_ROUTES = [
    re.compile(r'mux\.Handle\("([^"]+)",\s*([^)]+)\)'),
    re.compile(r'mux\.HandleFunc\("([^"]+)",\s*([^)]+)\)'),
]


def clean_path(path: str) -> str:
    """Exactly one leading slash, no trailing slash; empty becomes "/"."""
    return re.sub(r"/$", "", re.sub(r"^/*", "/", path, count=1)) or "/"


def handler_name(expression: str) -> str:
    """
    Last identifier of a handler expression, without its qualifier.
    "handlers.GetUsers" → "GetUsers", "auth(h.List" → "List".
    """
    tokens = _HANDLER_TOKEN.findall(expression)
    if not tokens:
        return re.sub(r"\s", "", expression)
    return tokens[-1].rstrip(".").split(".")[-1]


def generate_route_id(method: str, path: str, handler: str, file: str, line: int) -> str:
    """Stable ID: the same registration always yields the same ID."""
    parts = [method.lower()] + [re.sub(r"[^\w]", "-", p) for p in (path, handler, file)]
    return re.sub(r"-+", "-", "-".join(parts) + f"-{line}")


def _snippet(lines: list[str], line: int) -> str:
    if not 0 < line <= len(lines):
        return ""
    snippet = lines[line - 1].strip()
    if len(snippet) < 20 and line < len(lines):
        context = lines[line - 1:min(line + 2, len(lines))]
        snippet = re.sub(r"\s+", " ", " ".join(context)).strip()
    return snippet


def _middleware_for(content: str, router: str) -> list[str]:
    names: list[str] = []
    for m in _MIDDLEWARE_USE.finditer(content):
        if m.group(1) != router:
            continue
        span = find_matching(content, m.end() - 1, "(", ")")
        if span:
            names.extend(handler_name(arg) for arg in split_top_level(content[span[0] + 1:span[1]]))
    return names


def discover_routes_in_file(content: str, rel_path: str) -> list[APIRoute]:
    """Every route registered in one file, in pattern order then source order."""
    routes: list[APIRoute] = []
    lines = content.split("\n")
    claimed: set[int] = set()

    for pattern in ROUTE_PATTERNS:
        for m in pattern.regex.finditer(content):
            if m.start() in claimed:
                continue
            claimed.add(m.start())
            if pattern.handler_group is None:
                continue

            method = (m.group(pattern.method_group) if pattern.method_group else None) or "ALL"
            path = clean_path(m.group(pattern.path_group))
            handler = handler_name(m.group(pattern.handler_group))
            line = line_at(content, m.start())
            router = m.group(1) if pattern.family != "http" else "http"

            routes.append(APIRoute(
                id=generate_route_id(method, path, handler, rel_path, line),
                method=method.upper(),
                path=path,
                handler=handler,
                handler_file=rel_path,
                handler_line=line,
                code_snippet=_snippet(lines, line),
                middleware=_middleware_for(content, router),
            ))
    return routes


def discover_routes(config: AnalysisConfig) -> list[APIRoute]:
    """All routes in the project, first registration per (method, path) kept."""
    routes: list[APIRoute] = []
    seen: set[tuple[str, str]] = set()
    for path in discover_files(config):
        try:
            content = read_source(path)
        except OSError as e:
            log.warning("Cannot read %s: %s", path, e)
            continue
        for route in discover_routes_in_file(content, relative_path(path, config.project_root)):
            key = (route.method, route.path)
            if key in seen:
                log.debug("Skipping duplicate route %s %s in %s", route.method, route.path, route.handler_file)
                continue
            seen.add(key)
            routes.append(route)

    log.info("Discovered %d routes", len(routes))
    return routes


def find_route(config: AnalysisConfig, route_id: str) -> APIRoute | None:
    for route in discover_routes(config):
        if route.id == route_id:
            return route
    return None


def analyze_main_flow(config: AnalysisConfig) -> MainFlow:
    """
    Coarse entry-point summary: where main lives, which file wires the
    router, and which files look like handlers or middleware.
    """
    flow = MainFlow()
    for path in discover_files(config):
        try:
            content = read_source(path)
        except OSError as e:
            log.warning("Cannot read %s: %s", path, e)
            continue
        rel = relative_path(path, config.project_root)
        lowered = Path(rel).as_posix().lower()

        if _MAIN_FUNC in content:
            flow.main_file = rel
        if any(marker in content for marker in _ROUTER_MARKERS):
            flow.router_file = rel
            for pattern in _SIMPLE_ROUTES:
                for m in pattern.finditer(content):
                    flow.routes.append({
                        "path": m.group(1),
                        "handler": m.group(2).strip(),
                        "method": "ALL",
                    })
        if "handler" in lowered or "http.ResponseWriter" in content:
            flow.handlers.append(rel)
        if "middleware" in lowered or "http.Handler" in content:
            flow.middlewares.append(rel)
    return flow
