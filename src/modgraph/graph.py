"""Module-version dependency graph."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import GraphInvariantError
from .graphs import IdempotentDiGraph
from .models import parse_module_id

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import ModuleVersion

logger = logging.getLogger(__name__)


class DependencyKind:
    """The dependency subsets the graph keeps apart."""

    REGULAR = "regular"
    DEV = "dev"
    MERGED = "merged"

    ALL = (REGULAR, DEV, MERGED)


class DependencyGraph:
    """Dependency graph over `name@version` identifiers.

    Regular and dev edges are kept in two independent graphs; a third graph holds their union. Every vertex
    is present in all three so each view can be traversed on its own.
    """

    def __init__(self) -> None:
        """Initialize an empty dependency graph."""
        self.regular: IdempotentDiGraph[str] = IdempotentDiGraph()
        self.dev: IdempotentDiGraph[str] = IdempotentDiGraph()
        self.merged: IdempotentDiGraph[str] = IdempotentDiGraph()
        self.unresolved: set[str] = set()

    def view(self, kind: str) -> IdempotentDiGraph[str]:
        """Return the graph for a `DependencyKind`."""
        if kind == DependencyKind.REGULAR:
            return self.regular
        if kind == DependencyKind.DEV:
            return self.dev
        if kind == DependencyKind.MERGED:
            return self.merged
        msg = f"unknown dependency kind {kind!r}"
        raise GraphInvariantError(msg)

    def add_vertex(self, module_version_id: str) -> None:
        """Add a vertex to every view. Adding an existing vertex is a no-op."""
        if not isinstance(module_version_id, str) or not module_version_id:
            msg = f"invalid vertex {module_version_id!r}"
            raise GraphInvariantError(msg)
        self.regular.add_node(module_version_id)
        self.dev.add_node(module_version_id)
        self.merged.add_node(module_version_id)

    def add_edge(self, from_id: str, to_id: str, *, dev: bool = False) -> None:
        """Add a dependency edge. Adding an existing edge is a no-op."""
        self.add_vertex(from_id)
        self.add_vertex(to_id)
        if dev:
            self.dev.add_edge(from_id, to_id)
        else:
            self.regular.add_edge(from_id, to_id)
        self.merged.add_edge(from_id, to_id)

    def add_module_version(self, mv: ModuleVersion, known: set[str] | None = None) -> None:
        """Add a module version and the edges for each of its declared dependencies.

        A dependency flagged unresolved by the parser, or (when `known` is given) one whose target is not in
        `known` and that carries no override, still gets its edge but its target is flagged unresolved so MVS
        never traverses it. A dependency without a version is skipped.
        """
        self.add_vertex(mv.id)
        for dep in mv.deps:
            if not dep.name or not dep.target_version:
                logger.debug("%s: skipping dependency %r without a version", mv.id, dep.name)
                continue
            target = dep.target_id
            self.add_edge(mv.id, target, dev=dep.dev)
            if dep.unresolved or (known is not None and target not in known and dep.override is None):
                if target not in self.unresolved:
                    logger.warning("%s: unresolved dependency %s", mv.id, target)
                self.mark_unresolved(target)

    def add_module_versions(self, module_versions: Iterable[ModuleVersion]) -> None:
        """Add every module version, checking dependencies against the full set of known ids."""
        module_versions = list(module_versions)
        known = {mv.id for mv in module_versions}
        for mv in module_versions:
            self.add_module_version(mv, known)

    def mark_unresolved(self, module_version_id: str) -> None:
        """Exclude a module version from MVS traversal."""
        self.unresolved.add(module_version_id)

    def is_resolvable(self, module_version_id: str) -> bool:
        """Whether a vertex exists and has not been flagged unresolved."""
        return module_version_id in self.merged and module_version_id not in self.unresolved

    def successors(self, module_version_id: str, kind: str = DependencyKind.REGULAR) -> list[str]:
        """Return the direct dependencies of a vertex in one view."""
        graph = self.view(kind)
        if module_version_id not in graph:
            return []
        return list(graph.successors(module_version_id))

    def module_names(self) -> set[str]:
        """Return the names of every module with at least one vertex."""
        return {parse_module_id(node)[0] for node in self.merged}

    def vertex_count(self) -> int:
        """Return the number of vertices."""
        return self.merged.number_of_nodes()

    def edge_count(self, kind: str = DependencyKind.MERGED) -> int:
        """Return the number of edges in one view."""
        return self.view(kind).number_of_edges()

    def __contains__(self, module_version_id: object) -> bool:
        """Check whether a vertex exists."""
        return module_version_id in self.merged

    def __len__(self) -> int:
        """Return the number of vertices."""
        return self.vertex_count()
