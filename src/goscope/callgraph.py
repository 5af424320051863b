"""
Function and call-site extraction for the call graph.

Both passes are line/regex based: function signatures are matched over the
whole text, call sites line by line with the enclosing function tracked from
the most recent `func` signature.
"""

import logging
import re

from .discover import discover_files, relative_path
from .models import AnalysisConfig, CallGraph, FunctionCall, FunctionDef
from .resolve import resolve_call_targets
from .scanner import read_source, split_top_level, strip_line_comment

log = logging.getLogger(__name__)

_PACKAGE = re.compile(r"^package\s+(\w+)", re.MULTILINE)
_FUNC_DEF = re.compile(
    r"^func[ \t]+(?:\(([^)]*)\)[ \t]*)?(\w+)[ \t]*(?:\[[^\]]*\])?[ \t]*\(([^)]*)\)"
    r"(?:[ \t]*\(([^)]*)\)|[ \t]*(\*?[\w.]+(?:\[[\w.]+\])?))?",
    re.MULTILINE,
)
_FUNC_LINE = re.compile(r"^func\s+(?:\([^)]*\)\s*)?(\w+)\s*[\[(]")
_CALL = re.compile(r"(\w+(?:\.\w+)?)\s*\(")

BUILTINS = frozenset({
    "make", "len", "cap", "append", "copy", "delete", "close", "panic",
    "recover", "print", "println", "new", "complex", "real", "imag", "min",
    "max", "clear",
})
KEYWORDS = frozenset({
    "if", "for", "switch", "select", "go", "defer", "return", "break",
    "continue", "func", "range", "case", "else", "var", "const", "type",
})
CONVERSIONS = frozenset({
    "string", "int", "int8", "int16", "int32", "int64", "uint", "uint8",
    "uint16", "uint32", "uint64", "uintptr", "float32", "float64", "byte",
    "rune", "bool", "error", "any", "complex64", "complex128",
})
IGNORED_PREFIXES = ("fmt.", "log.", "strconv.", "strings.")


def is_builtin_or_keyword(name: str) -> bool:
    return (
        name in BUILTINS
        or name in KEYWORDS
        or name in CONVERSIONS
        or name.startswith(IGNORED_PREFIXES)
    )


def package_name(content: str) -> str:
    m = _PACKAGE.search(content)
    return m.group(1) if m else ""


def _param_names(params: str) -> list[str]:
    names: list[str] = []
    for part in split_top_level(params):
        tokens = part.split()
        names.append(tokens[0] if len(tokens) > 1 else "param")
    return names


def extract_functions(content: str, file_path: str, package: str) -> list[FunctionDef]:
    """Every top-level `func` signature in the text, in source order."""
    functions: list[FunctionDef] = []
    for m in _FUNC_DEF.finditer(content):
        returns = m.group(4) if m.group(4) is not None else (m.group(5) or "")
        functions.append(FunctionDef(
            name=m.group(2),
            file=file_path,
            line=content.count("\n", 0, m.start()) + 1,
            package=package,
            params=_param_names(m.group(3)),
            returns=[r.strip() for r in returns.split(",") if r.strip()],
            receiver=(m.group(1) or "").strip(),
        ))
    return functions


def extract_function_calls(content: str, file_path: str, package: str) -> list[FunctionCall]:
    """
    Call sites line by line. A `func` signature line sets the enclosing
    function and is not itself scanned for calls.
    """
    calls: list[FunctionCall] = []
    current = ""
    for index, line in enumerate(content.split("\n")):
        func = _FUNC_LINE.match(line)
        if func:
            current = func.group(1)
            continue
        code = strip_line_comment(line)
        if code.lstrip().startswith("//"):
            continue
        for m in _CALL.finditer(code):
            name = m.group(1)
            if is_builtin_or_keyword(name):
                continue
            calls.append(FunctionCall(
                caller_func=current,
                caller_file=file_path,
                caller_line=index + 1,
                called_func=name,
                package=package,
            ))
    return calls


def build_call_graph(config: AnalysisConfig) -> CallGraph:
    """Extract functions and calls from every project file, then resolve targets."""
    graph = CallGraph()
    for path in discover_files(config):
        try:
            content = read_source(path)
        except OSError as e:
            log.warning("Cannot read %s: %s", path, e)
            continue
        rel = relative_path(path, config.project_root)
        package = package_name(content)
        graph.functions.extend(extract_functions(content, rel, package))
        graph.calls.extend(extract_function_calls(content, rel, package))

    resolve_call_targets(graph)
    log.info("Call graph: %d functions, %d calls", len(graph.functions), len(graph.calls))
    return graph
