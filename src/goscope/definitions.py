"""
Symbol definition lookup and usage search.

Definitions are found by an ordered rule table. Files are scanned in
discovery order and the first file with any hit wins. Inside that file the
order is by rule priority, not by line: a `type X struct` further down
beats an earlier `var X`, and only lines matching the same rule fall back
to source order. Matching is by name only, so a same-named symbol in
another package may be returned.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .discover import discover_files, find_project_root, relative_path
from .models import AnalysisConfig, SymbolInfo, SymbolUsage
from .scanner import read_source

log = logging.getLogger(__name__)

_IDENT = re.compile(r"[a-zA-Z_]\w*")
_GROUP_OPEN = re.compile(r"^\s*(const|var)\s*\(\s*(?://.*)?$")
_GROUP_CLOSE = re.compile(r"^\s*\)")
_INLINE_GROUP = re.compile(r"^\s*(const|var)\s*\(")


@dataclass(frozen=True)
class DefinitionRule:
    kind: str
    template: str               # regex with {name} for the escaped symbol name
    group: str | None = None    # required enclosing `const (` / `var (` group

    def compile(self, name: str) -> re.Pattern:
        return re.compile(self.template.format(name=re.escape(name)))


# Order matters: struct and interface precede the generic type rule.
DEFINITION_RULES: list[DefinitionRule] = [
    DefinitionRule("function", r"^\s*func\s+{name}\s*[\[(]"),
    DefinitionRule("function", r"^\s*func\s*\(\s*\w*\s*\w+\s*\)\s*{name}\s*[\[(]"),
    DefinitionRule("function", r"^\s*func\s*\(\s*\w*\s*\*\s*\w+(?:\[[^\]]*\])?\s*\)\s*{name}\s*[\[(]"),
    DefinitionRule("struct", r"^\s*type\s+{name}(?:\[[^\]]*\])?\s+struct\b"),
    DefinitionRule("interface", r"^\s*type\s+{name}(?:\[[^\]]*\])?\s+interface\b"),
    DefinitionRule("type", r"^\s*type\s+{name}\b(?!(?:\[[^\]]*\])?\s+(?:struct|interface)\b)"),
    DefinitionRule("constant", r"^\s*const\s+{name}\b\s*(?:=|[\w.*\[\]]+\s*=)"),
    DefinitionRule("constant", r"^\s*(?:const\s*\(\s*)?{name}\b\s*(?:$|=|,|[\w.*\[\]]+\s*(?:=|$)|//)", "const"),
    DefinitionRule("variable", r"^\s*var\s+(?:\w+\s*,\s*)*{name}\b"),
    DefinitionRule("variable", r"^\s*(?:var\s*\(\s*)?(?:\w+\s*,\s*)*{name}\b\s*(?:=|,|[\w.*\[\]]+)", "var"),
    DefinitionRule("short_var", r"^\s*(?:\w+\s*,\s*)*{name}\s*(?:,\s*\w+\s*)*:="),
]


def identifier_at(line_text: str, column: int) -> str | None:
    """Identifier covering the 0-based column; the position just past its end counts."""
    for m in _IDENT.finditer(line_text):
        if m.start() <= column <= m.end():
            return m.group(0)
    return None


def _match_line(rules: list[tuple[DefinitionRule, re.Pattern]], line: str, group: str | None) -> int | None:
    """
    Index of the first rule matching line, or None. Group-only rules apply
    inside their group or on a one-line `const (...)` / `var (...)`.
    """
    inline = _INLINE_GROUP.match(line)
    for index, (rule, pattern) in enumerate(rules):
        if rule.group is not None and rule.group != group and not (inline and inline.group(1) == rule.group):
            continue
        if pattern.search(line):
            return index
    return None


def find_symbol_in_file(path: str | Path, name: str) -> SymbolInfo | None:
    """
    Definition of name in one file, or None. The highest-priority rule wins;
    among lines matching the same rule the earliest wins.
    """
    rules = [(rule, rule.compile(name)) for rule in DEFINITION_RULES]
    lines = read_source(path).split("\n")
    group: str | None = None
    best: tuple[int, int] | None = None     # (rule index, line index)
    for index, line in enumerate(lines):
        opened = _GROUP_OPEN.match(line)
        if opened:
            group = opened.group(1)
            continue
        if group and _GROUP_CLOSE.match(line):
            group = None
            continue
        rank = _match_line(rules, line, group)
        if rank is not None and (best is None or rank < best[0]):
            best = (rank, index)
            if rank == 0:
                break

    if best is None:
        return None
    rank, index = best
    return SymbolInfo(
        name=name,
        kind=DEFINITION_RULES[rank].kind,
        file=str(Path(path).resolve()),
        line=index + 1,
        signature=lines[index].strip(),
    )


def find_symbol_in_project(config: AnalysisConfig, name: str) -> SymbolInfo | None:
    """Scan files in discovery order; the first definition found wins."""
    for path in discover_files(config):
        try:
            info = find_symbol_in_file(path, name)
        except OSError as e:
            log.warning("Cannot read %s: %s", path, e)
            continue
        if info:
            log.debug("Found %s %s at %s:%d", info.kind, name, info.file, info.line)
            return info
    return None


def find_definition(
    file_path: str, line: int, column: int, config: AnalysisConfig | None = None
) -> SymbolInfo | None:
    """
    Definition of the identifier under (line, column) in file_path. Line is
    1-based, column 0-based. The project root is located by walking up to
    go.mod unless config is given.
    """
    try:
        lines = read_source(file_path).split("\n")
    except OSError as e:
        log.warning("Cannot read %s: %s", file_path, e)
        return None

    if line < 1 or line > len(lines):
        return None
    name = identifier_at(lines[line - 1], column)
    if not name:
        return None

    if config is None:
        config = AnalysisConfig(project_root=find_project_root(file_path))
    return find_symbol_in_project(config, name)


def find_symbol_usage(config: AnalysisConfig, name: str) -> list[SymbolUsage]:
    """Every line containing name as a substring, across the project."""
    usages: list[SymbolUsage] = []
    for path in discover_files(config):
        try:
            content = read_source(path)
        except OSError as e:
            log.warning("Cannot read %s: %s", path, e)
            continue
        rel = relative_path(path, config.project_root)
        for index, line in enumerate(content.split("\n")):
            if name in line:
                usages.append(SymbolUsage(file=rel, line=index + 1, code=line.strip()))
    return usages
