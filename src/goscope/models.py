"""Core data structures for goscope."""

import re
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Literal


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _plain(value):
    if is_dataclass(value) and not isinstance(value, type):
        return to_dict(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def to_dict(obj) -> dict:
    """Serialise a record to the camelCase dict shape the UI consumes."""
    return {_camel(f.name): _plain(getattr(obj, f.name)) for f in fields(obj)}


# ── Configuration ────────────────────────────────────────────────────────────

@dataclass
class AnalysisConfig:
    project_root: str
    source_suffix: str = ".go"
    test_suffix: str = "_test.go"     # excluded from every scan
    exclude_dirs: list[str] = field(default_factory=lambda: ["vendor", "node_modules"])
    skip_hidden: bool = True          # skip ".git", ".idea", ...
    respect_gitignore: bool = False
    module_marker: str = "go.mod"     # marks the project root


# ── Declarations (one file) ──────────────────────────────────────────────────

@dataclass
class Parameter:
    name: str                   # "" for anonymous parameters
    type: str


@dataclass
class ImportDeclaration:
    path: str                   # "net/http"
    line: int
    code_snippet: str
    alias: str = ""             # "", "_", "." or a name


@dataclass
class TypeDeclaration:
    name: str
    type: str                   # underlying type, e.g. "string" or "map[string]int"
    line: int
    code_snippet: str
    comments: list[str] = field(default_factory=list)


@dataclass
class ConstantDeclaration:
    name: str
    value: str
    line: int
    code_snippet: str
    comments: list[str] = field(default_factory=list)


@dataclass
class VariableDeclaration:
    name: str
    type: str
    line: int
    code_snippet: str
    comments: list[str] = field(default_factory=list)


@dataclass
class FunctionDeclaration:
    name: str
    parameters: list[Parameter]
    return_type: str
    line: int
    code_snippet: str
    comments: list[str] = field(default_factory=list)
    receiver: str = ""          # "s *Server" for methods


@dataclass
class StructField:
    name: str
    type: str
    tag: str = ""
    comments: list[str] = field(default_factory=list)


@dataclass
class StructDeclaration:
    name: str
    fields: list[StructField]
    line: int
    code_snippet: str
    comments: list[str] = field(default_factory=list)


@dataclass
class InterfaceMethod:
    name: str
    parameters: list[Parameter]
    return_type: str
    comments: list[str] = field(default_factory=list)


@dataclass
class InterfaceDeclaration:
    name: str
    methods: list[InterfaceMethod]
    line: int
    code_snippet: str
    comments: list[str] = field(default_factory=list)


@dataclass
class Comment:
    text: str
    line: int
    type: Literal["line", "block"]


@dataclass
class CodeStructure:
    file_path: str              # relative to project root
    package_name: str = ""
    imports: list[ImportDeclaration] = field(default_factory=list)
    types: list[TypeDeclaration] = field(default_factory=list)
    constants: list[ConstantDeclaration] = field(default_factory=list)
    variables: list[VariableDeclaration] = field(default_factory=list)
    functions: list[FunctionDeclaration] = field(default_factory=list)
    structs: list[StructDeclaration] = field(default_factory=list)
    interfaces: list[InterfaceDeclaration] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return to_dict(self)


@dataclass
class ElementCounts:
    files: int = 0
    imports: int = 0
    types: int = 0
    constants: int = 0
    variables: int = 0
    functions: int = 0
    structs: int = 0
    interfaces: int = 0

    def add(self, structure: CodeStructure) -> None:
        self.files += 1
        self.imports += len(structure.imports)
        self.types += len(structure.types)
        self.constants += len(structure.constants)
        self.variables += len(structure.variables)
        self.functions += len(structure.functions)
        self.structs += len(structure.structs)
        self.interfaces += len(structure.interfaces)


@dataclass
class ProjectAnalysis:
    structures: list[CodeStructure]
    counts: ElementCounts

    def to_dict(self) -> dict:
        return {
            "structures": [s.to_dict() for s in self.structures],
            "totalFiles": self.counts.files,
            "totalElements": to_dict(self.counts),
        }


@dataclass
class ProjectSymbol:
    name: str
    kind: str                   # "function" | "struct" | "interface" | "type" | "constant" | "variable"
    file: str
    line: int

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.name}"


# ── Symbol lookup ────────────────────────────────────────────────────────────

@dataclass
class SymbolInfo:
    name: str
    kind: str                   # see definitions.DEFINITION_RULES
    file: str                   # normalised absolute path
    line: int
    signature: str              # the matching source line, trimmed

    def to_dict(self) -> dict:
        return to_dict(self)


@dataclass
class SymbolUsage:
    file: str                   # relative to project root
    line: int
    code: str


# ── Call graph ───────────────────────────────────────────────────────────────

@dataclass
class FunctionDef:
    name: str
    file: str
    line: int
    package: str
    params: list[str] = field(default_factory=list)
    returns: list[str] = field(default_factory=list)
    receiver: str = ""

    @property
    def receiver_type(self) -> str:
        """Bare receiver type name: "r *Repo[T]" → "Repo"."""
        if not self.receiver:
            return ""
        return re.sub(r"\[.*$", "", self.receiver).split()[-1].lstrip("*")

    @property
    def qualified_name(self) -> str:
        return f"{self.receiver_type}.{self.name}" if self.receiver_type else self.name

    @property
    def id(self) -> str:
        """file::name for functions, file::Type.name for methods."""
        return f"{self.file}::{self.qualified_name}"


@dataclass
class FunctionCall:
    caller_func: str            # "" for calls outside any function
    caller_file: str
    caller_line: int
    called_func: str            # raw text: "Save" or "repo.Save"
    package: str                # package of the calling file
    called_file: str | None = None
    called_line: int | None = None

    @property
    def resolved(self) -> bool:
        return self.called_file is not None


@dataclass
class CallGraph:
    functions: list[FunctionDef] = field(default_factory=list)
    calls: list[FunctionCall] = field(default_factory=list)

    def to_dict(self) -> dict:
        return to_dict(self)


@dataclass
class FunctionMetrics:
    function_id: str
    in_degree: int              # callers
    out_degree: int             # callees
    betweenness: float          # bridge/bottleneck score (0.0–1.0)


@dataclass
class PatternReport:
    orphans: list[str]          # function IDs with zero in+out degree
    cycles: list[list[str]]     # mutually recursive clusters
    hub_files: list[str]        # file paths with most call edges


# ── API routes & data flow ───────────────────────────────────────────────────

@dataclass
class APIRoute:
    id: str
    method: str                 # "GET", ... or "ALL"
    path: str
    handler: str
    handler_file: str           # file holding the registration
    handler_line: int
    code_snippet: str = ""
    middleware: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return to_dict(self)


NodeKind = Literal["route", "handler", "service", "dto", "repository", "database", "external"]


@dataclass
class RouteMetadata:
    parameters: list[str]
    kind: Literal["route"] = "route"


@dataclass
class HandlerMetadata:
    parameters: list[str]
    return_type: str
    kind: Literal["handler"] = "handler"


@dataclass
class DtoMetadata:
    dto_fields: list[str]
    kind: Literal["dto"] = "dto"


@dataclass
class DatabaseMetadata:
    database_query: str
    table_name: str | None = None
    kind: Literal["database"] = "database"


@dataclass
class CallMetadata:
    parameters: list[str]
    kind: Literal["call"] = "call"


NodeMetadata = RouteMetadata | HandlerMetadata | DtoMetadata | DatabaseMetadata | CallMetadata


@dataclass
class DataFlowNode:
    id: str
    type: NodeKind
    name: str
    file: str                   # relative path, "external" or "unknown"
    line: int | None = None
    content: str = ""
    metadata: NodeMetadata | None = None


@dataclass
class DataFlowEdge:
    source: str
    target: str
    data_type: str | None = None
    transformation: str | None = None


@dataclass
class DataFlow:
    route: APIRoute
    nodes: list[DataFlowNode] = field(default_factory=list)
    edges: list[DataFlowEdge] = field(default_factory=list)

    def to_dict(self) -> dict:
        return to_dict(self)


@dataclass
class MainFlow:
    main_file: str = ""
    router_file: str = ""
    handlers: list[str] = field(default_factory=list)
    routes: list[dict] = field(default_factory=list)
    middlewares: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return to_dict(self)
