"""
Request data-flow tracing.

Starting from a route, the handler is located and the calls in its body are
classified and followed recursively. State lives in a TraceContext passed by
reference; the processed set guarantees termination on recursive code.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .discover import discover_files, relative_path
from .models import (
    AnalysisConfig,
    APIRoute,
    CallMetadata,
    DatabaseMetadata,
    DataFlow,
    DataFlowEdge,
    DataFlowNode,
    DtoMetadata,
    HandlerMetadata,
    NodeKind,
    NodeMetadata,
    RouteMetadata,
)
from .scanner import extract_function_body, find_matching, line_at, read_source, split_top_level

log = logging.getLogger(__name__)

EXTERNAL_FILE = "external"
UNKNOWN_FILE = "unknown"

_BODY_CALL = re.compile(r"(\w+(?:\.\w+)*)\s*\(")
_ROUTE_PARAM = re.compile(r"\{([^}]+)\}")
_CALL_ARGS = re.compile(r"\(([^)]*)\)")

TRACE_BUILTINS = frozenset({
    "len", "cap", "make", "append", "copy", "delete", "close", "panic",
    "recover", "print", "println", "new", "complex", "real", "imag", "min",
    "max", "if", "for", "switch", "select", "go", "defer", "return", "break",
    "continue", "range", "func",
})
TRACE_IGNORED_PREFIXES = (
    "fmt.", "log.", "strings.", "strconv.", "time.", "context.", "json.",
    "http.", "url.", "regexp.", "sort.", "math.",
)

_SQL_LITERALS = [
    re.compile(r'"((?:SELECT|INSERT|UPDATE|DELETE)[^"]+)"', re.IGNORECASE),
    re.compile(r"`((?:SELECT|INSERT|UPDATE|DELETE)[^`]+)`", re.IGNORECASE),
]
_TABLE_NAMES = [
    re.compile(r"FROM\s+(\w+)", re.IGNORECASE),
    re.compile(r"INSERT\s+INTO\s+(\w+)", re.IGNORECASE),
    re.compile(r"UPDATE\s+(\w+)", re.IGNORECASE),
    re.compile(r"DELETE\s+FROM\s+(\w+)", re.IGNORECASE),
]
_STRUCT_BODY = re.compile(r"type\s+\w+\s+struct\s*\{([^}]+)\}", re.DOTALL)


@dataclass(frozen=True)
class NodeRule:
    kind: NodeKind
    name_markers: tuple[str, ...]       # lowercase substrings of the called name
    context_markers: tuple[str, ...] = ()   # lowercase substrings of the call line

    def matches(self, name: str, context: str) -> bool:
        return any(m in name for m in self.name_markers) or any(m in context for m in self.context_markers)


# Ordered: the first matching rule classifies the call; "service" otherwise.
NODE_RULES: list[NodeRule] = [
    NodeRule("dto", ("dto", "model", "request", "response"), ("json.marshal", "json.unmarshal")),
    NodeRule("database", ("db", "query", "exec", "scan"), ("select", "insert", "update", "delete")),
    NodeRule("repository", ("repo", "repository", "find", "save", "get", "create")),
    NodeRule("external", ("http", "client", "api"), ("http.get", "http.post")),
]
DEFAULT_NODE_KIND: NodeKind = "service"


@dataclass
class TraceContext:
    config: AnalysisConfig
    nodes: list[DataFlowNode] = field(default_factory=list)
    edges: list[DataFlowEdge] = field(default_factory=list)
    processed: set[str] = field(default_factory=set)   # "file:function"

    def find_node(self, name: str, kind: NodeKind) -> DataFlowNode | None:
        for node in self.nodes:
            if node.name == name and node.type == kind:
                return node
        return None


@dataclass
class BodyCall:
    name: str                   # "Save" or "s.repo.Save"
    context: str                # the trimmed source line
    line: int                   # 1-based, within the body
    transformation: str | None = None


@dataclass
class FunctionSource:
    file: str                   # relative path
    line: int
    signature: str
    params: str
    returns: str
    body: str


# ── Classification helpers ───────────────────────────────────────────────────

def determine_node_type(name: str, context: str) -> NodeKind:
    lowered_name = name.lower()
    lowered_context = context.lower()
    for rule in NODE_RULES:
        if rule.matches(lowered_name, lowered_context):
            return rule.kind
    return DEFAULT_NODE_KIND


def infer_data_type(context: str) -> str:
    lower = context.lower()
    if "json" in lower or "marshal" in lower or "unmarshal" in lower:
        return "JSON"
    if "xml" in lower:
        return "XML"
    if "string" in lower or "text" in lower:
        return "String"
    if "int" in lower or "number" in lower:
        return "Number"
    if "bool" in lower:
        return "Boolean"
    if "slice" in lower or "array" in lower:
        return "Array"
    return "Data"


def extract_transformation(line: str) -> str | None:
    if "json.Marshal" in line or "json.Unmarshal" in line:
        return "JSON Conversion"
    if "strconv." in line:
        return "Type Conversion"
    if "strings." in line:
        return "String Processing"
    return None


def is_ignored_call(name: str) -> bool:
    return name in TRACE_BUILTINS or name.startswith(TRACE_IGNORED_PREFIXES)


def extract_route_parameters(path: str) -> list[str]:
    return _ROUTE_PARAM.findall(path)


def parameter_names(params: str) -> list[str]:
    return [part.split()[0] for part in split_top_level(params)]


def extract_call_arguments(context: str) -> list[str]:
    m = _CALL_ARGS.search(context)
    if not m:
        return []
    return [p.strip() for p in m.group(1).split(",") if p.strip()]


def extract_database_query(content: str) -> str:
    for pattern in _SQL_LITERALS:
        m = pattern.search(content)
        if m:
            return m.group(1)
    return content[:100] + "..."


def extract_table_name(query: str) -> str | None:
    for pattern in _TABLE_NAMES:
        m = pattern.search(query)
        if m:
            return m.group(1)
    return None


def extract_dto_fields(content: str) -> str:
    m = _STRUCT_BODY.search(content)
    if m:
        return m.group(1).strip()
    return "\n".join(content.split("\n")[:10])


def extract_dto_field_names(content: str) -> list[str]:
    m = _STRUCT_BODY.search(content)
    if not m:
        return []
    names: list[str] = []
    for line in m.group(1).split("\n"):
        field_match = re.match(r"^(\w+)\s+", line.strip())
        if field_match:
            names.append(field_match.group(1))
    return names


# ── Source lookup ────────────────────────────────────────────────────────────

def _signature_patterns(name: str) -> list[re.Pattern]:
    n = re.escape(name)
    return [
        re.compile(rf"^func\s+{n}\s*(?:\[[^\]]*\])?\s*\(", re.MULTILINE),
        re.compile(rf"^func\s*\([^)]*\)\s*{n}\s*(?:\[[^\]]*\])?\s*\(", re.MULTILINE),
    ]


def find_function_in_content(content: str, name: str, rel_path: str) -> FunctionSource | None:
    """Plain function or method named name in one file's text."""
    for pattern in _signature_patterns(name):
        m = pattern.search(content)
        if not m:
            continue
        params_span = find_matching(content, m.end() - 1, "(", ")")
        params = content[params_span[0] + 1:params_span[1]] if params_span else ""
        returns = ""
        if params_span:
            tail = content[params_span[1] + 1:].split("\n", 1)[0].split("{", 1)[0].strip()
            returns = tail[1:-1].strip() if tail.startswith("(") and tail.endswith(")") else tail
        return FunctionSource(
            file=rel_path,
            line=line_at(content, m.start()),
            signature=content[m.start():params_span[1] + 1] if params_span else content[m.start():m.end()],
            params=params,
            returns=returns,
            body=extract_function_body(content, m.start()),
        )
    return None


def find_function_definition(config: AnalysisConfig, name: str) -> FunctionSource | None:
    """First file (discovery order) defining name as a function or method."""
    for path in discover_files(config):
        try:
            content = read_source(path)
        except OSError as e:
            log.warning("Cannot read %s: %s", path, e)
            continue
        found = find_function_in_content(content, name, relative_path(path, config.project_root))
        if found:
            return found
    return None


def find_struct_definition(config: AnalysisConfig, name: str) -> tuple[str, int, str] | None:
    """(relative file, line, source) of `type name struct {...}`, or None."""
    pattern = re.compile(rf"^type\s+{re.escape(name)}\s+struct\s*\{{", re.MULTILINE)
    for path in discover_files(config):
        try:
            content = read_source(path)
        except OSError as e:
            log.warning("Cannot read %s: %s", path, e)
            continue
        m = pattern.search(content)
        if not m:
            continue
        span = find_matching(content, m.start())
        end = span[1] + 1 if span else len(content)
        return relative_path(path, config.project_root), line_at(content, m.start()), content[m.start():end]
    return None


def extract_calls_from_body(body: str) -> list[BodyCall]:
    calls: list[BodyCall] = []
    for index, line in enumerate(body.split("\n")):
        if line.strip().startswith("//"):
            continue
        for m in _BODY_CALL.finditer(line):
            name = m.group(1)
            if is_ignored_call(name):
                continue
            calls.append(BodyCall(
                name=name,
                context=line.strip(),
                line=index + 1,
                transformation=extract_transformation(line),
            ))
    return calls


# ── Tracing ──────────────────────────────────────────────────────────────────

def _leaf(name: str) -> str:
    return name.split(".")[-1]


def route_node(route: APIRoute) -> DataFlowNode:
    return DataFlowNode(
        id=f"route-{route.id}",
        type="route",
        name=f"{route.method} {route.path}",
        file=route.handler_file,
        line=route.handler_line,
        content=route.code_snippet,
        metadata=RouteMetadata(parameters=extract_route_parameters(route.path)),
    )


def trace_handler(ctx: TraceContext, route: APIRoute) -> DataFlowNode:
    """
    Handler node for a route: searched in the registering file first, then
    project-wide. A handler that cannot be found yields a stub carrying the
    registration snippet.
    """
    node_id = f"handler-{route.handler}"
    source: FunctionSource | None = None
    var_line: int | None = None
    try:
        content = read_source(Path(ctx.config.project_root) / route.handler_file)
        source = find_function_in_content(content, route.handler, route.handler_file)
        if source is None:
            m = re.search(rf"var\s+{re.escape(route.handler)}\s*=", content)
            if m:
                var_line = line_at(content, m.start())
    except OSError as e:
        log.warning("Cannot read %s: %s", route.handler_file, e)

    if source is None and var_line is None:
        source = find_function_definition(ctx.config, route.handler)

    if source is None:
        return DataFlowNode(
            id=node_id,
            type="handler",
            name=route.handler,
            file=route.handler_file,
            line=var_line or route.handler_line,
            content=route.code_snippet or f"Handler: {route.handler}",
        )

    snippet = source.body[:300]
    if len(source.body) > 300:
        snippet += "..."
    if len(snippet) < 20:
        snippet = f"func {route.handler}({source.params}) {source.returns}".rstrip()

    return DataFlowNode(
        id=node_id,
        type="handler",
        name=route.handler,
        file=source.file,
        line=source.line,
        content=snippet,
        metadata=HandlerMetadata(
            parameters=parameter_names(source.params),
            return_type=source.returns,
        ),
    )


def create_node(ctx: TraceContext, call: BodyCall, kind: NodeKind, node_id: str) -> DataFlowNode:
    """Node for one call: resolved to project source where possible."""
    if kind == "external":
        return _external_node(call, kind, node_id)

    leaf = _leaf(call.name)
    source = find_function_definition(ctx.config, leaf)
    if source is not None:
        metadata: NodeMetadata | None = None
        if kind == "dto":
            struct = find_struct_definition(ctx.config, leaf)
            returned = re.sub(r"^[*\[\]]+", "", source.returns.split(",")[0].strip())
            if struct is None and re.fullmatch(r"\w+", returned):
                struct = find_struct_definition(ctx.config, returned)
            text = struct[2] if struct else source.body
            content = extract_dto_fields(text)
            metadata = DtoMetadata(dto_fields=extract_dto_field_names(text))
        elif kind == "database":
            content = extract_database_query(source.body)
            metadata = DatabaseMetadata(
                database_query=content,
                table_name=extract_table_name(content),
            )
        else:
            content = source.body[:150] + "..."
        return DataFlowNode(
            id=node_id,
            type=kind,
            name=call.name,
            file=source.file,
            line=source.line,
            content=content,
            metadata=metadata,
        )

    if kind == "dto":
        struct = find_struct_definition(ctx.config, leaf)
        if struct is not None:
            file, line, text = struct
            return DataFlowNode(
                id=node_id,
                type=kind,
                name=call.name,
                file=file,
                line=line,
                content=extract_dto_fields(text),
                metadata=DtoMetadata(dto_fields=extract_dto_field_names(text)),
            )

    if "." in call.name:
        return _external_node(call, kind, node_id)

    return DataFlowNode(id=node_id, type=kind, name=call.name, file=UNKNOWN_FILE, content=call.context)


def _external_node(call: BodyCall, kind: NodeKind, node_id: str) -> DataFlowNode:
    return DataFlowNode(
        id=node_id,
        type=kind,
        name=call.name,
        file=EXTERNAL_FILE,
        content=call.context,
        metadata=CallMetadata(parameters=extract_call_arguments(call.context)),
    )


def trace_function_calls(ctx: TraceContext, file: str, name: str, source_id: str) -> None:
    """Add nodes and edges for the calls in file's function name, recursively."""
    leaf = _leaf(name)
    key = f"{file}:{leaf}"
    if key in ctx.processed:
        return
    ctx.processed.add(key)

    try:
        content = read_source(Path(ctx.config.project_root) / file)
    except OSError as e:
        log.warning("Cannot read %s: %s", file, e)
        return

    source = find_function_in_content(content, leaf, file)
    if source is None:
        return

    for call in extract_calls_from_body(source.body):
        kind = determine_node_type(call.name, call.context)
        existing = ctx.find_node(call.name, kind)
        if existing is not None:
            ctx.edges.append(DataFlowEdge(
                source=source_id,
                target=existing.id,
                data_type=infer_data_type(call.context),
            ))
            continue

        node = create_node(ctx, call, kind, f"{kind}-{call.name}-{len(ctx.nodes)}")
        ctx.nodes.append(node)
        ctx.edges.append(DataFlowEdge(
            source=source_id,
            target=node.id,
            data_type=infer_data_type(call.context),
            transformation=call.transformation,
        ))
        if node.file not in (EXTERNAL_FILE, UNKNOWN_FILE):
            trace_function_calls(ctx, node.file, node.name, node.id)


def trace_data_flow(config: AnalysisConfig, route: APIRoute) -> DataFlow:
    """Route node, handler node, then everything reachable from the handler."""
    ctx = TraceContext(config=config)
    start = route_node(route)
    ctx.nodes.append(start)

    handler = trace_handler(ctx, route)
    ctx.nodes.append(handler)
    ctx.edges.append(DataFlowEdge(source=start.id, target=handler.id, data_type="HTTP Request"))
    trace_function_calls(ctx, handler.file, handler.name, handler.id)

    log.info("Traced %s %s: %d nodes, %d edges", route.method, route.path, len(ctx.nodes), len(ctx.edges))
    return DataFlow(route=route, nodes=ctx.nodes, edges=ctx.edges)
