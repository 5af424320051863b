"""
Call target resolution.

Annotates FunctionCall records with the file and line of the function they
most likely reach, matching by name against a package-qualified and a plain
index of every known function.
"""

import logging

from .models import CallGraph, FunctionCall, FunctionDef

log = logging.getLogger(__name__)


class Resolver:
    def __init__(self, functions: list[FunctionDef]) -> None:
        # Later definitions overwrite earlier ones with the same key
        self._by_qualified: dict[str, FunctionDef] = {}
        self._by_name: dict[str, FunctionDef] = {}

        for f in functions:
            self._by_qualified[f"{f.package}.{f.name}"] = f
            self._by_name[f.name] = f

    def lookup(self, call: FunctionCall) -> FunctionDef | None:
        """
        "Save"      → "{caller package}.Save", then "Save"
        "repo.Save" → "repo.Save", then "Save"
        """
        name = call.called_func
        if "." in name:
            qualifier, leaf = name.rsplit(".", 1)
            return self._by_qualified.get(f"{qualifier}.{leaf}") or self._by_name.get(leaf)
        return self._by_qualified.get(f"{call.package}.{name}") or self._by_name.get(name)

    def resolve(self, call: FunctionCall) -> bool:
        target = self.lookup(call)
        if target is None:
            return False
        call.called_file = target.file
        call.called_line = target.line
        return True


def resolve_call_targets(graph: CallGraph) -> CallGraph:
    """Resolve every call in place; unresolved calls keep no target location."""
    resolver = Resolver(graph.functions)
    resolved = sum(1 for call in graph.calls if resolver.resolve(call))
    log.info(
        "Resolved %d/%d calls (%.0f%%)",
        resolved, len(graph.calls),
        100 * resolved / len(graph.calls) if graph.calls else 0,
    )
    return graph
