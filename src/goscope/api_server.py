"""FastAPI JSON server for goscope.

Exposes the analysis operations of one Go project as JSON endpoints for an
editor or diagram UI.  Launched via the ``goscope api`` CLI command.

Data flow: UI  ↔  FastAPI endpoints  ↔  engine (fresh file reads per request)
"""

import logging
import threading
import webbrowser
from pathlib import Path

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from . import engine
from .errors import RouteNotFoundError
from .models import AnalysisConfig, to_dict

log = logging.getLogger(__name__)


def create_app(project_root: str, config: AnalysisConfig | None = None) -> FastAPI:
    """Build and return the FastAPI application for *project_root*.

    Every endpoint reruns its analysis from disk, so edits made while the
    server is up are always reflected.
    """

    root = Path(project_root).resolve()
    config = config or AnalysisConfig(project_root=str(root))

    app = FastAPI(title="goscope", docs_url=None, redoc_url=None)

    def _inside_root(file_path: str) -> Path | None:
        """Resolve a client path; None when it escapes the project root."""
        resolved = (root / file_path).resolve()
        if not resolved.is_relative_to(root):
            return None
        return resolved

    # ── Declarations ──────────────────────────────────────────────────────

    @app.get("/api/overview")
    def api_overview() -> dict:
        """Declaration totals for the header bar."""
        analysis = engine.analyze_project(config)
        return {
            "projectRoot": str(root),
            "totalFiles": analysis.counts.files,
            "totalElements": to_dict(analysis.counts),
        }

    @app.get("/api/project")
    def api_project() -> dict:
        return engine.analyze_project(config).to_dict()

    @app.get("/api/structure/{file_path:path}")
    def api_structure(file_path: str) -> JSONResponse:
        """CodeStructure of one file, addressed relative to the project root."""
        resolved = _inside_root(file_path)
        if resolved is None or not resolved.is_file():
            return JSONResponse({"error": "File not found"}, status_code=404)
        return JSONResponse(engine.analyze_file(str(resolved), str(root)).to_dict())

    @app.get("/api/duplicates")
    def api_duplicates() -> dict:
        duplicates = engine.find_duplicate_symbols(config)
        return {key: [to_dict(s) for s in symbols] for key, symbols in duplicates.items()}

    # ── Symbols ───────────────────────────────────────────────────────────

    @app.get("/api/definition")
    def api_definition(
        file: str = Query(..., min_length=1),
        line: int = Query(..., ge=1),
        column: int = Query(..., ge=0),
    ) -> JSONResponse:
        """Go-to-definition for an editor cursor (1-based line, 0-based column)."""
        resolved = _inside_root(file)
        if resolved is None or not resolved.is_file():
            return JSONResponse({"error": "File not found"}, status_code=404)
        info = engine.get_definition(str(resolved), line, column, config=config)
        if info is None:
            return JSONResponse({"error": "Definition not found"}, status_code=404)
        return JSONResponse(info.to_dict())

    @app.get("/api/symbol/{name}")
    def api_symbol(name: str) -> JSONResponse:
        info = engine.get_symbol_info(str(root), name, config=config)
        if info is None:
            return JSONResponse({"error": "Symbol not found"}, status_code=404)
        return JSONResponse(info.to_dict())

    @app.get("/api/usages")
    def api_usages(name: str = Query(..., min_length=1)) -> list[dict]:
        return [to_dict(u) for u in engine.find_symbol_usages(config, name)]

    # ── Call graph ────────────────────────────────────────────────────────

    @app.get("/api/callgraph")
    def api_callgraph() -> dict:
        return engine.analyze_call_graph(config).to_dict()

    @app.get("/api/callgraph/patterns")
    def api_patterns(top_n: int = Query(default=10, ge=1, le=100)) -> dict:
        return to_dict(engine.call_graph_patterns(config, top_n=top_n))

    @app.get("/api/callgraph/paths")
    def api_paths(
        source: str = Query(..., alias="from", min_length=1),
        target: str = Query(..., alias="to", min_length=1),
    ) -> dict:
        return {"paths": engine.call_paths(config, source, target)}

    @app.get("/api/callgraph/metrics")
    def api_metrics(top_n: int = Query(default=10, ge=1, le=100)) -> list[dict]:
        return [to_dict(m) for m in engine.function_metrics(config, top_n=top_n)]

    @app.get("/api/callgraph/reachable")
    def api_reachable(
        function: str = Query(..., min_length=1),
        depth: int = Query(default=3, ge=1, le=10),
    ) -> dict:
        return {"function": function, "reachable": engine.reachable_functions(config, function, depth=depth)}

    # ── Routes & data flow ────────────────────────────────────────────────

    @app.get("/api/routes")
    def api_routes() -> list[dict]:
        return [r.to_dict() for r in engine.discover_api_routes(config)]

    @app.get("/api/routes/{route_id}/flow")
    def api_flow(route_id: str) -> JSONResponse:
        """Nodes and edges of one route's request data flow."""
        try:
            flow = engine.trace_api_flow(config, route_id)
        except RouteNotFoundError as e:
            return JSONResponse({"error": str(e)}, status_code=404)
        return JSONResponse(flow.to_dict())

    @app.get("/api/main-flow")
    def api_main_flow() -> dict:
        return engine.analyze_main_flow(config).to_dict()

    # ── Files ─────────────────────────────────────────────────────────────

    @app.get("/api/resolve")
    def api_resolve(path: str = Query(..., min_length=1)) -> dict:
        resolved = engine.resolve_path(path, str(root))
        return {"input": path, "resolved": resolved, "exists": Path(resolved).exists()}

    @app.get("/api/source/{file_path:path}")
    def api_source(file_path: str) -> PlainTextResponse:
        """Read a source file from the project and return its raw text.

        Returns 404 for missing files or paths that escape the project root.
        """
        resolved = _inside_root(file_path)
        if resolved is None or not resolved.is_file():
            return PlainTextResponse("Not found", status_code=404)

        try:
            text = resolved.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return PlainTextResponse("Could not read file", status_code=500)

        return PlainTextResponse(text)

    return app


def run_api_server(
    project_root: str,
    port: int = 8421,
    open_browser: bool = False,
    config: AnalysisConfig | None = None,
) -> None:
    """CLI entry point: serve the JSON API and block until interrupted.

    Args:
        project_root: Go project to analyse.
        port:         TCP port to listen on (default 8421).
        open_browser: If True, opens the routes endpoint after a short delay.
        config:       Analysis settings; defaults to AnalysisConfig(project_root).
    """
    import uvicorn

    app = create_app(project_root, config)
    url = f"http://localhost:{port}/api/routes"
    print(f"goscope api → http://localhost:{port}")

    if open_browser:
        # Open browser after a brief delay so uvicorn has time to start
        threading.Timer(1.0, webbrowser.open, args=[url]).start()

    uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")
