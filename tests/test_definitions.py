"""Tests for definition lookup and usage search."""

from pathlib import Path

import pytest

from goscope.definitions import (
    find_definition,
    find_symbol_in_file,
    find_symbol_in_project,
    find_symbol_usage,
    identifier_at,
)

KINDS_GO = """package kinds

type Handler func()

type Store interface {
	Get(id string) string
}

const Limit = 10

const (
	First = iota
	Second
)

var (
	cache map[string]int
	hits, misses int
)

var Debug = false

func Run() {
	local := 1
	_ = local
}

func (s *Server) Serve() {}

func (s Server) Name() string { return "" }
"""


@pytest.fixture
def kinds_file(tmp_path):
    path = tmp_path / "kinds.go"
    path.write_text(KINDS_GO)
    return path


class TestIdentifierAt:
    """Identifier under a 0-based column."""

    def test_inside_identifier(self):
        assert identifier_at("\tusers := ListUsers()", 12) == "ListUsers"

    def test_start_and_end_boundaries(self):
        line = "foo.Bar()"
        assert identifier_at(line, 0) == "foo"
        assert identifier_at(line, 3) == "foo"
        assert identifier_at(line, 4) == "Bar"

    def test_no_identifier(self):
        assert identifier_at("   ()", 1) is None


class TestFindSymbolInFile:
    """Rule table over one file."""

    @pytest.mark.parametrize("name,kind,line", [
        ("Handler", "type", 3),
        ("Store", "interface", 5),
        ("Limit", "constant", 9),
        ("First", "constant", 12),
        ("Second", "constant", 13),
        ("cache", "variable", 17),
        ("misses", "variable", 18),
        ("Debug", "variable", 21),
        ("Run", "function", 23),
        ("Serve", "function", 28),
        ("Name", "function", 30),
        ("local", "short_var", 24),
    ])
    def test_kinds(self, kinds_file, name, kind, line):
        info = find_symbol_in_file(kinds_file, name)
        assert info is not None
        assert (info.kind, info.line) == (kind, line)

    def test_signature_is_trimmed_line(self, kinds_file):
        info = find_symbol_in_file(kinds_file, "Serve")
        assert info.signature == "func (s *Server) Serve() {}"
        assert info.file == str(Path(kinds_file).resolve())

    def test_struct_beats_earlier_variable(self, tmp_path):
        path = tmp_path / "clash.go"
        path.write_text("package p\n\nvar Foo = 1\n\ntype Foo struct {\n\tA int\n}\n")
        info = find_symbol_in_file(path, "Foo")
        assert info.kind == "struct"
        assert info.line == 5

    def test_method_call_is_not_a_definition(self, tmp_path):
        path = tmp_path / "use.go"
        path.write_text("package p\n\nfunc main() {\n\tx.Run()\n}\n")
        assert find_symbol_in_file(path, "Run") is None

    def test_usages_of_var_and_const_prefixed_names(self, tmp_path):
        path = tmp_path / "use.go"
        path.write_text('package p\n\nfunc f() {\n\tvarsMap["k"] = 1\n\tconstraints = append(constraints, c)\n}\n')
        assert find_symbol_in_file(path, "varsMap") is None
        assert find_symbol_in_file(path, "constraints") is None

    def test_one_line_group(self, tmp_path):
        path = tmp_path / "group.go"
        path.write_text("package p\n\nconst (Max = 5)\n\nvar (verbose bool)\n")
        assert find_symbol_in_file(path, "Max").kind == "constant"
        assert find_symbol_in_file(path, "verbose").kind == "variable"

    def test_missing(self, kinds_file):
        assert find_symbol_in_file(kinds_file, "Nope") is None


class TestProjectLookup:
    """Lookups across the sample project."""

    def test_symbol_in_project(self, sample_config, sample_project):
        info = find_symbol_in_project(sample_config, "ListUsers")
        assert info.kind == "function"
        assert info.file == str((sample_project / "service.go").resolve())
        assert info.line == 5
        assert info.signature == "func ListUsers() []User {"

    def test_struct_in_project(self, sample_config):
        info = find_symbol_in_project(sample_config, "UserRepository")
        assert info.kind == "struct"
        assert Path(info.file).name == "repository.go"

    def test_usage_in_earlier_file_is_skipped(self, make_project):
        config = make_project({
            "a.go": 'package p\n\nfunc fill() {\n\tvarsMap["k"] = 1\n}\n',
            "b.go": "package p\n\nvar varsMap = map[string]int{}\n",
        })
        info = find_symbol_in_project(config, "varsMap")
        assert info.kind == "variable"
        assert Path(info.file).name == "b.go"
        assert info.line == 3

    def test_definition_at_cursor(self, sample_project):
        handlers = sample_project / "handlers.go"
        # line 10: "\tusers := ListUsers()"
        info = find_definition(str(handlers), 10, 12)
        assert info is not None
        assert info.name == "ListUsers"
        assert Path(info.file).name == "service.go"

    def test_definition_out_of_range(self, sample_project):
        assert find_definition(str(sample_project / "handlers.go"), 999, 0) is None

    def test_definition_missing_file(self, tmp_path):
        assert find_definition(str(tmp_path / "gone.go"), 1, 0) is None

    def test_usages(self, sample_config):
        usages = find_symbol_usage(sample_config, "ListUsers")
        assert [(u.file, u.line) for u in usages] == [("handlers.go", 10), ("service.go", 5)]
        assert usages[0].code == "users := ListUsers()"
