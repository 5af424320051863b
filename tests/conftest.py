"""Shared fixtures: a small gorilla/mux service written to a temp directory."""

import os
import tempfile
from pathlib import Path

import pytest

# The MCP server module attaches its request log under this directory
os.environ.setdefault("GOSCOPE_LOG_DIR", tempfile.mkdtemp(prefix="goscope-logs-"))

from goscope.models import AnalysisConfig  # noqa: E402


GO_MOD = """module example.com/shop

go 1.21
"""

MAIN_GO = """package main

import (
	"log"
	"net/http"

	"github.com/gorilla/mux"
)

func main() {
	r := mux.NewRouter()
	r.HandleFunc("/users", GetUsersHandler).Methods("GET")
	r.HandleFunc("/users/{id}", GetUserHandler).Methods("GET")
	r.HandleFunc("/users", CreateUserHandler).Methods("POST")
	r.Use(loggingMiddleware)
	log.Fatal(http.ListenAndServe(":8080", r))
}
"""

HANDLERS_GO = """package main

import (
	"encoding/json"
	"net/http"
)

// GetUsersHandler lists all users.
func GetUsersHandler(w http.ResponseWriter, r *http.Request) {
	users := ListUsers()
	writeJSON(w, users)
}

func GetUserHandler(w http.ResponseWriter, r *http.Request) {
	id := mux.Vars(r)["id"]
	user := FindUser(id)
	writeJSON(w, user)
}

func CreateUserHandler(w http.ResponseWriter, r *http.Request) {
	var user User
	json.NewDecoder(r.Body).Decode(&user)
	SaveUser(user)
	resp := ToUserResponse(user)
	writeJSON(w, resp)
}

func writeJSON(w http.ResponseWriter, v interface{}) {
	w.Header().Set("Content-Type", "application/json")
	json.NewEncoder(w).Encode(v)
}
"""

SERVICE_GO = """package main

var repo = NewUserRepository()

func ListUsers() []User {
	return repo.FindAll()
}

func FindUser(id string) *User {
	return repo.FindByID(id)
}

func SaveUser(u User) {
	repo.Save(u)
}
"""

REPOSITORY_GO = """package main

import "database/sql"

type UserRepository struct {
	db *sql.DB
}

func NewUserRepository() *UserRepository {
	return &UserRepository{}
}

func (r *UserRepository) FindAll() []User {
	return r.execQuery()
}

func (r *UserRepository) FindByID(id string) *User {
	return nil
}

func (r *UserRepository) Save(u User) {
	r.db.Exec(`INSERT INTO users (id, name) VALUES (?, ?)`, u.ID, u.Name)
}

func (r *UserRepository) execQuery() []User {
	rows, _ := r.db.Query(`SELECT id, name FROM users`)
	return collectUsers(rows)
}
"""

MODELS_GO = """package main

// User is the stored user record.
type User struct {
	ID   string `json:"id"`
	Name string `json:"name"`
}

type UserResponse struct {
	ID   string `json:"id"`
	Name string `json:"name"`
}

func ToUserResponse(u User) UserResponse {
	return UserResponse{ID: u.ID, Name: u.Name}
}
"""

MIDDLEWARE_GO = """package main

import (
	"log"
	"net/http"
)

func loggingMiddleware(next http.Handler) http.Handler {
	return http.HandlerFunc(func(w http.ResponseWriter, r *http.Request) {
		log.Println(r.Method, r.URL.Path)
		next.ServeHTTP(w, r)
	})
}
"""

SAMPLE_FILES = {
    "go.mod": GO_MOD,
    "main.go": MAIN_GO,
    "handlers.go": HANDLERS_GO,
    "service.go": SERVICE_GO,
    "repository.go": REPOSITORY_GO,
    "models.go": MODELS_GO,
    "middleware.go": MIDDLEWARE_GO,
}

# Route IDs of the registrations in MAIN_GO
LIST_USERS_ROUTE = "get-users-GetUsersHandler-main-go-12"
GET_USER_ROUTE = "get-users-id-GetUserHandler-main-go-13"
CREATE_USER_ROUTE = "post-users-CreateUserHandler-main-go-14"


def write_project(root: Path, files: dict[str, str]) -> Path:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def sample_project(tmp_path):
    """Root directory of the sample service."""
    return write_project(tmp_path / "shop", SAMPLE_FILES)


@pytest.fixture
def sample_config(sample_project):
    return AnalysisConfig(project_root=str(sample_project))


@pytest.fixture
def make_project(tmp_path):
    """Factory writing an ad-hoc project: make_project({"a.go": "..."})."""
    counter = {"n": 0}

    def _make(files: dict[str, str]) -> AnalysisConfig:
        counter["n"] += 1
        root = write_project(tmp_path / f"project{counter['n']}", files)
        return AnalysisConfig(project_root=str(root))

    return _make
