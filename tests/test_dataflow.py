"""Tests for request data-flow tracing."""

import pytest

from conftest import CREATE_USER_ROUTE, GET_USER_ROUTE, LIST_USERS_ROUTE
from goscope.dataflow import (
    EXTERNAL_FILE,
    UNKNOWN_FILE,
    determine_node_type,
    extract_call_arguments,
    extract_calls_from_body,
    extract_database_query,
    extract_dto_field_names,
    extract_route_parameters,
    extract_table_name,
    extract_transformation,
    find_function_in_content,
    infer_data_type,
    trace_data_flow,
)
from goscope.models import CallMetadata, DatabaseMetadata, DtoMetadata, HandlerMetadata, RouteMetadata
from goscope.routes import find_route


LOOP_GO = """package main

func main() {
	http.HandleFunc("/loop", Handler)
}

func Handler(w http.ResponseWriter, r *http.Request) {
	ProcessA()
}

func ProcessA() {
	ProcessB()
}

func ProcessB() {
	ProcessA()
}
"""

STUB_GO = """package main

var Ping = func(w http.ResponseWriter, r *http.Request) {}

func main() {
	http.HandleFunc("/ping", Ping)
	http.HandleFunc("/gone", missingHandler)
}
"""


def _trace(config, route_id):
    route = find_route(config, route_id)
    assert route is not None
    return trace_data_flow(config, route)


def _by_name(flow, name):
    return next(n for n in flow.nodes if n.name == name)


class TestClassification:
    """Node kinds and edge labels."""

    @pytest.mark.parametrize("name,context,kind", [
        ("ToUserResponse", "resp := ToUserResponse(u)", "dto"),
        ("decode", "json.Unmarshal(body, &req)", "dto"),
        ("r.db.Query", "rows := r.db.Query(q)", "database"),
        ("run", 'run("SELECT * FROM users")', "database"),
        ("s.repo.Save", "s.repo.Save(u)", "repository"),
        ("FindUser", "u := FindUser(id)", "repository"),
        ("client.Do", "resp, err := client.Do(req)", "external"),
        ("compute", "total := compute(items)", "service"),
    ])
    def test_determine_node_type(self, name, context, kind):
        assert determine_node_type(name, context) == kind

    @pytest.mark.parametrize("context,label", [
        ("writeJSON(w, v)", "JSON"),
        ("parseXML(body)", "XML"),
        ("toString(v)", "String"),
        ("n := intValue(v)", "Number"),
        ("isBool(v)", "Boolean"),
        ("toSlice(v)", "Array"),
        ("process(v)", "Data"),
    ])
    def test_infer_data_type(self, context, label):
        assert infer_data_type(context) == label

    def test_transformations(self):
        assert extract_transformation("b, _ := json.Marshal(v)") == "JSON Conversion"
        assert extract_transformation("n, _ := strconv.Atoi(s)") == "Type Conversion"
        assert extract_transformation("s = strings.TrimSpace(s)") == "String Processing"
        assert extract_transformation("x := f()") is None


class TestExtractors:
    """Text helpers."""

    def test_route_parameters(self):
        assert extract_route_parameters("/users/{id}/posts/{postID}") == ["id", "postID"]
        assert extract_route_parameters("/users") == []

    def test_database_query_and_table(self):
        body = 'row := db.QueryRow("SELECT name FROM accounts WHERE id = ?", id)'
        query = extract_database_query(body)
        assert query == "SELECT name FROM accounts WHERE id = ?"
        assert extract_table_name(query) == "accounts"
        assert extract_table_name("INSERT INTO orders (id) VALUES (1)") == "orders"
        assert extract_table_name("UPDATE items SET x = 1") == "items"
        assert extract_table_name("no sql here") is None

    def test_database_query_fallback(self):
        assert extract_database_query("return cache.Get(k)") == "return cache.Get(k)..."

    def test_dto_field_names(self):
        src = "type Req struct {\n\tName string `json:\"name\"`\n\tAge  int\n}"
        assert extract_dto_field_names(src) == ["Name", "Age"]
        assert extract_dto_field_names("func f() {}") == []

    def test_call_arguments(self):
        assert extract_call_arguments("svc.Create(ctx, req)") == ["ctx", "req"]
        assert extract_call_arguments("no call") == []

    def test_calls_from_body_skip_ignored(self):
        body = "// skipped()\nb, _ := json.Marshal(v)\nfmt.Println(x)\nout := s.repo.Save(b)\nn := len(out)"
        calls = extract_calls_from_body(body)
        assert [(c.name, c.line) for c in calls] == [("s.repo.Save", 4)]
        assert calls[0].context == "out := s.repo.Save(b)"

    def test_calls_from_body_transformation(self):
        calls = extract_calls_from_body("v := parse(strings.TrimSpace(s))")
        assert calls[0].name == "parse"
        assert calls[0].transformation == "String Processing"

    def test_find_function_in_content(self):
        src = "package p\n\nfunc (s *Svc) Get(id string) (*User, error) {\n\treturn nil, nil\n}\n"
        found = find_function_in_content(src, "Get", "svc.go")
        assert found.line == 3
        assert found.params == "id string"
        assert found.returns == "*User, error"
        assert found.body == "return nil, nil"
        assert find_function_in_content(src, "Missing", "svc.go") is None


class TestTraceSample:
    """Tracing routes of the sample service."""

    def test_route_and_handler_nodes(self, sample_config):
        flow = _trace(sample_config, LIST_USERS_ROUTE)
        route, handler = flow.nodes[0], flow.nodes[1]
        assert route.type == "route"
        assert route.name == "GET /users"
        assert route.metadata == RouteMetadata(parameters=[])
        assert handler.type == "handler"
        assert (handler.name, handler.file, handler.line) == ("GetUsersHandler", "handlers.go", 9)
        assert handler.metadata == HandlerMetadata(parameters=["w", "r"], return_type="")
        assert flow.edges[0].source == route.id
        assert flow.edges[0].target == handler.id
        assert flow.edges[0].data_type == "HTTP Request"

    def test_follows_service_repository_database(self, sample_config):
        flow = _trace(sample_config, LIST_USERS_ROUTE)
        service = _by_name(flow, "ListUsers")
        assert (service.type, service.file, service.line) == ("service", "service.go", 5)

        repo = _by_name(flow, "repo.FindAll")
        assert (repo.type, repo.file, repo.line) == ("repository", "repository.go", 13)

        db = _by_name(flow, "r.execQuery")
        assert db.type == "database"
        assert db.metadata == DatabaseMetadata(
            database_query="SELECT id, name FROM users",
            table_name="users",
        )

    def test_unresolved_calls(self, sample_config):
        flow = _trace(sample_config, LIST_USERS_ROUTE)
        driver = _by_name(flow, "r.db.Query")
        assert driver.file == EXTERNAL_FILE
        assert driver.type == "database"
        assert isinstance(driver.metadata, CallMetadata)
        assert _by_name(flow, "collectUsers").file == UNKNOWN_FILE

    def test_json_edge_label(self, sample_config):
        flow = _trace(sample_config, LIST_USERS_ROUTE)
        write = _by_name(flow, "writeJSON")
        edge = next(e for e in flow.edges if e.target == write.id)
        assert edge.source == "handler-GetUsersHandler"
        assert edge.data_type == "JSON"

    def test_dto_fields_from_returned_struct(self, sample_config):
        flow = _trace(sample_config, CREATE_USER_ROUTE)
        dto = _by_name(flow, "ToUserResponse")
        assert dto.type == "dto"
        assert (dto.file, dto.line) == ("models.go", 14)
        assert dto.metadata == DtoMetadata(dto_fields=["ID", "Name"])

    def test_path_parameters(self, sample_config):
        flow = _trace(sample_config, GET_USER_ROUTE)
        assert flow.nodes[0].metadata.parameters == ["id"]
        assert _by_name(flow, "FindUser").type == "repository"
        assert _by_name(flow, "repo.FindByID").file == "repository.go"

    def test_ids_unique_and_edges_connected(self, sample_config):
        for route_id in (LIST_USERS_ROUTE, GET_USER_ROUTE, CREATE_USER_ROUTE):
            flow = _trace(sample_config, route_id)
            ids = [n.id for n in flow.nodes]
            assert len(ids) == len(set(ids))
            for edge in flow.edges:
                assert edge.source in ids and edge.target in ids

    def test_to_dict_shape(self, sample_config):
        data = _trace(sample_config, LIST_USERS_ROUTE).to_dict()
        assert set(data) == {"route", "nodes", "edges"}
        assert data["edges"][0]["dataType"] == "HTTP Request"
        assert data["nodes"][1]["metadata"]["returnType"] == ""
        assert data["nodes"][1]["metadata"]["kind"] == "handler"


class TestTraceEdgeCases:
    """Recursion, stubs and variable handlers."""

    def test_mutual_recursion_terminates(self, make_project):
        config = make_project({"main.go": LOOP_GO})
        flow = _trace(config, "all-loop-Handler-main-go-4")
        names = [n.name for n in flow.nodes]
        assert names == ["ALL /loop", "Handler", "ProcessA", "ProcessB"]
        a = _by_name(flow, "ProcessA")
        b = _by_name(flow, "ProcessB")
        assert any(e.source == b.id and e.target == a.id for e in flow.edges)
        assert len(flow.edges) == 4

    def test_short_handler_body_uses_signature(self, make_project):
        config = make_project({"main.go": LOOP_GO})
        handler = _trace(config, "all-loop-Handler-main-go-4").nodes[1]
        assert handler.content == "func Handler(w http.ResponseWriter, r *http.Request)"

    def test_missing_handler_is_stub(self, make_project):
        config = make_project({"main.go": STUB_GO})
        flow = _trace(config, "all-gone-missingHandler-main-go-7")
        assert len(flow.nodes) == 2
        stub = flow.nodes[1]
        assert stub.type == "handler"
        assert stub.metadata is None
        assert stub.content == 'http.HandleFunc("/gone", missingHandler)'

    def test_variable_handler_points_at_declaration(self, make_project):
        config = make_project({"main.go": STUB_GO})
        flow = _trace(config, "all-ping-Ping-main-go-6")
        assert flow.nodes[1].line == 3
        assert len(flow.edges) == 1
