"""File discovery: walk a Go project, skip vendored/hidden dirs, resolve paths."""

import logging
import os
from pathlib import Path
from typing import Callable

import pathspec

from .models import AnalysisConfig

log = logging.getLogger(__name__)

DirFilter = Callable[[str], bool]


def default_dir_filter(config: AnalysisConfig) -> DirFilter:
    """Predicate over a directory basename: True means descend into it."""
    excluded = set(config.exclude_dirs)

    def keep(name: str) -> bool:
        if config.skip_hidden and name.startswith("."):
            return False
        return name not in excluded

    return keep


def _load_gitignore_spec(root: Path) -> pathspec.PathSpec | None:
    gitignore = root / ".gitignore"
    if gitignore.exists():
        patterns = gitignore.read_text(encoding="utf-8", errors="replace").splitlines()
        return pathspec.PathSpec.from_lines("gitwildmatch", patterns)
    return None


def _walk(directory: Path, keep_dir: DirFilter):
    """Yield files under directory in sorted order; unreadable dirs are skipped."""
    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError as e:
        log.warning("Cannot read directory %s: %s", directory, e)
        return

    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                if keep_dir(entry.name):
                    yield from _walk(Path(entry.path), keep_dir)
            elif entry.is_file():
                yield Path(entry.path)
        except OSError as e:
            log.warning("Cannot stat %s: %s", entry.path, e)


def discover_files(config: AnalysisConfig, dir_filter: DirFilter | None = None) -> list[Path]:
    """
    Return absolute paths of all analysable source files under
    config.project_root.

    Test files (config.test_suffix) are never returned. Directories are
    filtered by dir_filter, defaulting to default_dir_filter(config).
    """
    root = Path(config.project_root).resolve()
    keep_dir = dir_filter or default_dir_filter(config)
    gitignore_spec = _load_gitignore_spec(root) if config.respect_gitignore else None

    results: list[Path] = []
    for path in _walk(root, keep_dir):
        name = path.name
        if not name.endswith(config.source_suffix) or name.endswith(config.test_suffix):
            continue
        if gitignore_spec and gitignore_spec.match_file(path.relative_to(root).as_posix()):
            continue
        results.append(path)

    log.info("Discovered %d files under %s", len(results), root)
    return results


def relative_path(path: str | Path, root: str | Path) -> str:
    """Path relative to root with forward slashes; unchanged if outside root."""
    try:
        return Path(path).resolve().relative_to(Path(root).resolve()).as_posix()
    except ValueError:
        return Path(path).as_posix()


def find_project_root(file_path: str | Path, marker: str = "go.mod") -> str:
    """
    Walk up from the file's directory until a directory containing marker is
    found. Falls back to the file's own directory.
    """
    start = Path(file_path).resolve().parent
    for directory in (start, *start.parents):
        if (directory / marker).exists():
            return str(directory)
    return str(start)


def find_file_recursive(
    root: str | Path, file_name: str, dir_filter: DirFilter | None = None
) -> str | None:
    """Return the first file named file_name under root, or None."""
    keep_dir = dir_filter or default_dir_filter(AnalysisConfig(project_root=str(root)))
    for path in _walk(Path(root), keep_dir):
        if path.name == file_name:
            return str(path)
    return None


def resolve_path(input_path: str, project_root: str) -> str:
    """
    Resolve an editor-supplied path against a project:
    absolute & existing → project-relative & existing → basename search →
    input unchanged.
    """
    candidate = Path(input_path)
    if candidate.is_absolute() and candidate.exists():
        return input_path

    joined = Path(project_root) / input_path
    if joined.exists():
        return str(joined)

    found = find_file_recursive(project_root, candidate.name)
    if found:
        return found

    log.debug("Could not resolve %s in %s", input_path, project_root)
    return input_path
