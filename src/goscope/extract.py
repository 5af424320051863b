"""
Declaration extraction from Go source text.

One linear pass over the lines: each trimmed line is matched against an
ordered table of statement starts, the matching construct is captured with
a balanced-block primitive, and a kind-specific parser fills the record.
Lines that match nothing are skipped.
"""

import logging
import re
from pathlib import Path

from .discover import relative_path
from .models import (
    CodeStructure,
    Comment,
    ConstantDeclaration,
    FunctionDeclaration,
    ImportDeclaration,
    InterfaceDeclaration,
    InterfaceMethod,
    Parameter,
    ProjectSymbol,
    StructDeclaration,
    StructField,
    TypeDeclaration,
    VariableDeclaration,
)
from .scanner import (
    Block,
    extract_block,
    find_body_open,
    find_matching,
    has_unbalanced,
    line_at,
    read_source,
    split_top_level,
    strip_line_comment,
)

log = logging.getLogger(__name__)

_PACKAGE = re.compile(r"^package\s+(\w+)", re.MULTILINE)

# Ordered: the first statement start that matches a line wins.
_STATEMENTS: list[tuple[str, re.Pattern]] = [
    ("import", re.compile(r"^import\b")),
    ("struct", re.compile(r"^type\s+\w+(?:\[[^\]]*\])?\s+struct\b")),
    ("interface", re.compile(r"^type\s+\w+(?:\[[^\]]*\])?\s+interface\b")),
    ("type", re.compile(r"^type\b")),
    ("const", re.compile(r"^const\b")),
    ("var", re.compile(r"^var\b")),
    ("func", re.compile(r"^func\b")),
]

_IMPORT_SPEC = re.compile(r'(?:([\w.]+)\s+)?(?:"([^"]+)"|`([^`]+)`)')
_TYPE_DEF = re.compile(r"^(?:type\s+)?(\w+)(?:\[[^\]]*\])?\s*(?:=\s*)?(.+)$")
_CONST_SPEC = re.compile(r"^(\w+)(?:\s+([\w.*\[\]]+))?\s*(?:=\s*(.+))?$")
_VAR_SPEC = re.compile(r"^(\w+(?:\s*,\s*\w+)*)\s*([^=]*?)\s*(?:=\s*(.+))?$")
_FUNC_HEAD = re.compile(r"^func\s*(?:\(([^)]*)\)\s*)?(\w+)\s*(?:\[[^\]]*\])?\s*(?=\()")
_FIELD = re.compile(r"^(\w+(?:\s*,\s*\w+)*)\s+([^`]+?)\s*(?:`([^`]*)`)?$")
_EMBEDDED_FIELD = re.compile(r"^\*?([\w.]+)\s*(?:`([^`]*)`)?$")
_METHOD = re.compile(r"^(\w+)\s*\(")
_TYPE_KEYWORDS = {"chan", "map", "func", "struct", "interface"}


# ── Comments ─────────────────────────────────────────────────────────────────

def extract_comments(content: str) -> list[Comment]:
    """Line comments and block comments that start a line."""
    comments: list[Comment] = []
    lines = content.split("\n")
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        if line.startswith("//"):
            comments.append(Comment(text=line[2:].strip(), line=i + 1, type="line"))
        elif line.startswith("/*"):
            start = i
            text = line[2:]
            if "*/" in text:
                text = text[:text.index("*/")]
            else:
                parts = [text]
                for j in range(i + 1, len(lines)):
                    i = j
                    if "*/" in lines[j]:
                        parts.append(lines[j][:lines[j].index("*/")])
                        break
                    parts.append(lines[j])
                text = "\n".join(parts)
            comments.append(Comment(text=text.strip(), line=start + 1, type="block"))
        i += 1
    return comments


def _leading_comments(lines: list[str], index: int) -> list[str]:
    """`//` lines directly above lines[index], in source order."""
    comments: list[str] = []
    j = index - 1
    while j >= 0:
        line = lines[j].strip()
        if not line.startswith("//"):
            break
        comments.insert(0, line[2:].strip())
        j -= 1
    return comments


# ── Parameters ───────────────────────────────────────────────────────────────

def parse_parameters(params: str) -> list[Parameter]:
    """
    Parse a Go parameter list. Grouped names share the next type
    ("a, b int"); a list of bare types yields anonymous parameters.
    """
    result: list[Parameter] = []
    pending: list[str] = []
    for part in split_top_level(params):
        tokens = part.split(None, 1)
        if len(tokens) == 2 and re.fullmatch(r"\w+", tokens[0]) and tokens[0] not in _TYPE_KEYWORDS:
            name, type_ = tokens[0], tokens[1].strip()
            for pending_name in pending:
                result.append(Parameter(name=pending_name, type=type_))
            pending = []
            result.append(Parameter(name=name, type=type_))
        elif len(tokens) == 1 and re.fullmatch(r"\w+", part):
            pending.append(part)
        else:
            for pending_type in pending:
                result.append(Parameter(name="", type=pending_type))
            pending = []
            result.append(Parameter(name="", type=part))
    for pending_type in pending:
        result.append(Parameter(name="", type=pending_type))
    return result


# ── Kind parsers ─────────────────────────────────────────────────────────────

def _block_lines(lines: list[str], start: int, block: Block) -> list[tuple[int, str]]:
    """(line number, text) pairs of a block's inner lines."""
    return [(j + 1, lines[j]) for j in range(start, block.end_index + 1)]


def _parse_imports(lines: list[str], start: int, block: Block) -> list[ImportDeclaration]:
    imports: list[ImportDeclaration] = []
    for number, raw in _block_lines(lines, start, block):
        text = strip_line_comment(raw.strip())
        text = re.sub(r"^import\b", "", text).strip().strip("()").strip()
        if not text or text.startswith("//"):
            continue
        for m in _IMPORT_SPEC.finditer(text):
            imports.append(ImportDeclaration(
                path=m.group(2) or m.group(3),
                alias=m.group(1) or "",
                line=number,
                code_snippet=raw.strip(),
            ))
    return imports


def _body_lines(content: str) -> list[str]:
    span = find_matching(content)
    if span is None:
        return []
    body = content[span[0] + 1:span[1]]
    out: list[str] = []
    for line in body.split("\n"):
        if "//" in line:
            out.append(line)
        else:
            out.extend(part for part in line.split(";") if part.strip())
    return out


def parse_struct(content: str, line: int, comments: list[str]) -> StructDeclaration | None:
    name_match = re.search(r"(\w+)(?:\[[^\]]*\])?\s+struct\b", content)
    if not name_match:
        return None

    fields: list[StructField] = []
    field_comments: list[str] = []
    nested = 0
    for raw in _body_lines(content):
        text = raw.strip()
        if nested:
            nested += text.count("{") - text.count("}")
            continue
        if not text:
            continue
        if text.startswith("//"):
            field_comments.append(text[2:].strip())
            continue
        code = strip_line_comment(text)
        m = _FIELD.match(code)
        if m:
            type_ = m.group(2).strip()
            if type_.endswith("{"):
                nested = code.count("{") - code.count("}")
                type_ = type_[:-1].strip()
            for field_name in re.split(r"\s*,\s*", m.group(1)):
                fields.append(StructField(
                    name=field_name,
                    type=type_,
                    tag=m.group(3) or "",
                    comments=list(field_comments),
                ))
            field_comments = []
            continue
        m = _EMBEDDED_FIELD.match(code)
        if m:
            fields.append(StructField(
                name=m.group(1).split(".")[-1],
                type=code.split("`")[0].strip(),
                tag=m.group(2) or "",
                comments=list(field_comments),
            ))
            field_comments = []

    return StructDeclaration(
        name=name_match.group(1),
        fields=fields,
        line=line,
        code_snippet=content,
        comments=comments,
    )


def parse_interface(content: str, line: int, comments: list[str]) -> InterfaceDeclaration | None:
    name_match = re.search(r"(\w+)(?:\[[^\]]*\])?\s+interface\b", content)
    if not name_match:
        return None

    methods: list[InterfaceMethod] = []
    method_comments: list[str] = []
    for raw in _body_lines(content):
        text = raw.strip()
        if not text:
            continue
        if text.startswith("//"):
            method_comments.append(text[2:].strip())
            continue
        code = strip_line_comment(text)
        m = _METHOD.match(code)
        if not m:
            continue
        span = find_matching(code, m.end() - 1, "(", ")")
        if span is None:
            continue
        methods.append(InterfaceMethod(
            name=m.group(1),
            parameters=parse_parameters(code[span[0] + 1:span[1]]),
            return_type=code[span[1] + 1:].strip(),
            comments=list(method_comments),
        ))
        method_comments = []

    return InterfaceDeclaration(
        name=name_match.group(1),
        methods=methods,
        line=line,
        code_snippet=content,
        comments=comments,
    )


def parse_function(content: str, line: int, comments: list[str]) -> FunctionDeclaration | None:
    body_open = find_body_open(content)
    signature = content[:body_open] if body_open is not None else content.split("\n")[0]
    signature = " ".join(strip_line_comment(part) for part in signature.split("\n"))
    signature = re.sub(r"\s+", " ", signature).strip()

    m = _FUNC_HEAD.match(signature)
    if not m:
        return None

    params_span = find_matching(signature, m.end(), "(", ")")
    if params_span is None:
        params, rest = signature[m.end() + 1:], ""
    else:
        params = signature[params_span[0] + 1:params_span[1]]
        rest = signature[params_span[1] + 1:]

    return FunctionDeclaration(
        name=m.group(2),
        parameters=parse_parameters(params),
        return_type=rest.strip().rstrip("{").strip(),
        line=line,
        code_snippet=content,
        comments=comments,
        receiver=(m.group(1) or "").strip(),
    )


def _parse_type(text: str, line: int, snippet: str, comments: list[str]) -> TypeDeclaration | None:
    m = _TYPE_DEF.match(strip_line_comment(text).strip())
    if not m or m.group(1) == "type":
        return None
    return TypeDeclaration(
        name=m.group(1),
        type=m.group(2).rstrip("{").strip(),
        line=line,
        code_snippet=snippet,
        comments=comments,
    )


def _parse_constant(text: str, line: int, comments: list[str]) -> ConstantDeclaration | None:
    m = _CONST_SPEC.match(strip_line_comment(text).strip())
    if not m:
        return None
    return ConstantDeclaration(
        name=m.group(1),
        value=(m.group(3) or "").strip(),
        line=line,
        code_snippet=text.strip(),
        comments=comments,
    )


def _parse_variables(text: str, line: int, comments: list[str]) -> list[VariableDeclaration]:
    m = _VAR_SPEC.match(strip_line_comment(text).strip())
    if not m:
        return []
    return [
        VariableDeclaration(
            name=name,
            type=m.group(2).strip(),
            line=line,
            code_snippet=text.strip(),
            comments=comments,
        )
        for name in re.split(r"\s*,\s*", m.group(1))
    ]


def _group_specs(lines: list[str], start: int, keyword: str) -> tuple[list[tuple[int, str, list[str]]], int]:
    """
    Specs of `keyword ( ... )` (or a single `keyword X ...` line) as
    (line number, text without keyword, leading comments) triples, plus the
    index of the last consumed line.
    """
    first = lines[start].strip()
    if not re.match(rf"^{keyword}\s*\(", first):
        spec = re.sub(rf"^{keyword}\s+", "", first)
        return [(start + 1, spec, _leading_comments(lines, start))], start

    block = extract_block(lines, start, "(", ")")
    specs: list[tuple[int, str, list[str]]] = []
    if block.end_index == start:
        inline = first[first.index("(") + 1:].rstrip(")").strip()
        for part in inline.split(";"):
            if part.strip():
                specs.append((start + 1, part.strip(), []))
        return specs, start

    j = start + 1
    while j <= block.end_index:
        text = lines[j].strip()
        if j == block.end_index and text.startswith(")"):
            break
        if text and not text.startswith("//"):
            if text.endswith("{") or has_unbalanced(text):
                # multi-line composite literal or nested type body
                pair = ("{", "}") if text.endswith("{") else ("(", ")")
                inner = extract_block(lines, j, *pair)
                specs.append((j + 1, "\n".join(lines[j:inner.end_index + 1]).strip(), _leading_comments(lines, j)))
                j = inner.end_index + 1
                continue
            specs.append((j + 1, text, _leading_comments(lines, j)))
        j += 1
    return specs, block.end_index


# ── Entry points ─────────────────────────────────────────────────────────────

def _classify(trimmed: str) -> str | None:
    for kind, pattern in _STATEMENTS:
        if pattern.match(trimmed):
            return kind
    return None


def _line_offsets(lines: list[str]) -> list[int]:
    offsets = [0]
    for line in lines[:-1]:
        offsets.append(offsets[-1] + len(line) + 1)
    return offsets


def _function_block(content: str, lines: list[str], offsets: list[int], index: int) -> Block:
    """
    A func declaration from its signature line to the closing brace of its
    body. A declaration without a body is just its first line.
    """
    start = offsets[index]
    body_open = find_body_open(content, start)
    if body_open is None or re.search(r"\n(?:func|type|var|const|import)\b", content[start:body_open]):
        return Block(lines[index], index)
    span = find_matching(content, body_open)
    if span is None:
        return Block("\n".join(lines[index:]), len(lines) - 1)
    end = line_at(content, span[1]) - 1
    return Block("\n".join(lines[index:end + 1]), end)


def extract_structure(content: str, file_path: str) -> CodeStructure:
    """Build the CodeStructure of one file's text."""
    structure = CodeStructure(file_path=file_path)
    package = _PACKAGE.search(content)
    if package:
        structure.package_name = package.group(1)
    structure.comments = extract_comments(content)

    lines = content.split("\n")
    offsets = _line_offsets(lines)
    i = 0
    while i < len(lines):
        trimmed = lines[i].strip()
        kind = _classify(trimmed)
        number = i + 1

        if kind == "import":
            block = extract_block(lines, i, "(", ")")
            structure.imports.extend(_parse_imports(lines, i, block))
            i = block.end_index

        elif kind in ("struct", "interface"):
            block = extract_block(lines, i)
            parser = parse_struct if kind == "struct" else parse_interface
            decl = parser(block.content, number, _leading_comments(lines, i))
            if decl is not None:
                getattr(structure, kind + "s").append(decl)
            i = block.end_index

        elif kind == "type":
            specs, end = _group_specs(lines, i, "type")
            for spec_line, text, comments in specs:
                _add_type_spec(structure, text, spec_line, comments)
            if end == i and "{" in trimmed:
                end = extract_block(lines, i).end_index
            i = end

        elif kind == "const":
            specs, end = _group_specs(lines, i, "const")
            for spec_line, text, comments in specs:
                decl = _parse_constant(text.split("\n")[0], spec_line, comments)
                if decl is not None:
                    structure.constants.append(decl)
            i = end

        elif kind == "var":
            specs, end = _group_specs(lines, i, "var")
            for spec_line, text, comments in specs:
                structure.variables.extend(_parse_variables(text.split("\n")[0], spec_line, comments))
            if end == i and trimmed.endswith("{"):
                end = extract_block(lines, i).end_index
            i = end

        elif kind == "func":
            block = _function_block(content, lines, offsets, i)
            decl = parse_function(block.content, number, _leading_comments(lines, i))
            if decl is not None:
                structure.functions.append(decl)
            i = block.end_index

        i += 1

    return structure


def _add_type_spec(structure: CodeStructure, text: str, line: int, comments: list[str]) -> None:
    """Route one type spec (possibly from a `type ( ... )` group) to its collection."""
    head = text.split("\n")[0]
    if re.search(r"^(?:type\s+)?\w+(?:\[[^\]]*\])?\s+struct\b", head):
        decl = parse_struct(text, line, comments)
        if decl is not None:
            structure.structs.append(decl)
    elif re.search(r"^(?:type\s+)?\w+(?:\[[^\]]*\])?\s+interface\b", head):
        decl = parse_interface(text, line, comments)
        if decl is not None:
            structure.interfaces.append(decl)
    else:
        decl = _parse_type(head, line, head.strip(), comments)
        if decl is not None:
            structure.types.append(decl)


def parse_file(file_path: str | Path, project_root: str | Path) -> CodeStructure:
    """
    Read and analyse one file. An unreadable file yields an empty
    CodeStructure; the error is logged.
    """
    rel_path = relative_path(file_path, project_root)
    try:
        content = read_source(file_path)
    except OSError as e:
        log.warning("Cannot read %s: %s", file_path, e)
        return CodeStructure(file_path=rel_path)

    try:
        return extract_structure(content, rel_path)
    except Exception as e:
        log.warning("Parse error in %s: %s", rel_path, e)
        return CodeStructure(file_path=rel_path)


def collect_symbols(structure: CodeStructure) -> list[ProjectSymbol]:
    """Flatten a structure's named declarations for duplicate detection."""
    groups = [
        ("function", structure.functions),
        ("struct", structure.structs),
        ("interface", structure.interfaces),
        ("type", structure.types),
        ("constant", structure.constants),
        ("variable", structure.variables),
    ]
    return [
        ProjectSymbol(name=decl.name, kind=kind, file=structure.file_path, line=decl.line)
        for kind, decls in groups
        for decl in decls
    ]
