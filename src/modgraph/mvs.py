"""Minimum Version Selection over the module dependency graph.

Versions are compared as raw strings, so `"9.0.0"` is selected over `"10.0.0"`. Consumers rely on this
ordering; it must not be replaced by semantic version comparison.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .concurrency import DEFAULT_MAX_WORKERS, fan_out
from .errors import GraphInvariantError
from .graph import DependencyGraph, DependencyKind
from .models import module_id, parse_module_id

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    import networkx as nx

    from .models import Registry

logger = logging.getLogger(__name__)


def compare_versions(v1: str, v2: str) -> int:
    """Compare two version strings lexicographically, returning -1, 0 or 1."""
    if v1 == v2:
        return 0
    if v1 < v2:
        return -1
    return 1


def extract_all_versions(graph: DependencyGraph, registry: Registry) -> dict[str, list[str]]:
    """Return module name -> versions (oldest to newest) for every resolvable module in the graph.

    Unresolved vertices are skipped, as are modules that appear in the graph but have no metadata.

    Raises:
        GraphInvariantError: if a module's metadata lists no versions

    """
    names: set[str] = set()
    skipped_unresolved = 0
    for node in graph.merged:
        if node in graph.unresolved:
            skipped_unresolved += 1
            continue
        names.add(parse_module_id(node)[0])
    if skipped_unresolved:
        logger.info("MVS: skipped %d unresolved module versions from graph", skipped_unresolved)

    all_versions: dict[str, list[str]] = {}
    skipped_no_metadata = 0
    for name in sorted(names):
        module = registry.module(name)
        if module is None:
            logger.info("MVS: skipping module %r (in graph but no module metadata)", name)
            skipped_no_metadata += 1
            continue
        if not module.metadata.versions:
            msg = f"module metadata for {name!r} has no versions"
            raise GraphInvariantError(msg)
        all_versions[name] = list(module.metadata.versions)
    if skipped_no_metadata:
        logger.info("MVS: skipped %d modules with no metadata", skipped_no_metadata)
    return all_versions


def run_mvs(
    roots: Iterable[str],
    all_versions: Mapping[str, list[str]],
    view: nx.DiGraph,
    unresolved: set[str] | frozenset[str] = frozenset(),
) -> dict[str, str]:
    """Select a version of every module reachable from `roots`.

    Each root is either a `name@version` id, used as is, or a bare module name, which starts from the
    module's highest version (the last entry of its version list). Every reachable id is visited exactly
    once and the larger version string wins for each module name. Unresolved ids are never visited.

    The result includes the roots' own modules, unless the roots have no resolvable dependencies at all, in
    which case it is empty.

    Raises:
        GraphInvariantError: if a bare-name root has no versions

    """
    selected: dict[str, str] = {}
    start: list[str] = []
    for root in roots:
        if "@" in root:
            start.append(root)
        else:
            versions = all_versions.get(root)
            if not versions:
                msg = f"root module {root!r} has no versions"
                raise GraphInvariantError(msg)
            start.append(module_id(root, versions[-1]))

    visited: set[str] = set()
    followed_edge = False
    worklist = list(reversed(start))
    while worklist:
        key = worklist.pop()
        if key in visited or key in unresolved:
            continue
        visited.add(key)
        name, version = parse_module_id(key)
        current = selected.get(name)
        if current is None or compare_versions(version, current) > 0:
            selected[name] = version
        if key in view:
            for dep in view.successors(key):
                if dep in unresolved:
                    continue
                followed_edge = True
                if dep not in visited:
                    worklist.append(dep)

    if not followed_edge:
        return {}
    return selected


class MvsResult:
    """Everything computed by one MVS run."""

    def __init__(
        self,
        all_versions: dict[str, list[str]],
        per_module_version: dict[str, dict[str, str]],
        per_module_version_dev: dict[str, dict[str, str]],
        selected_versions: dict[str, str] | None = None,
    ) -> None:
        """Initialize an MVS result.

        Args:
            all_versions: Module name -> versions, oldest to newest
            per_module_version: Root id -> (module name -> selected version) over regular dependencies
            per_module_version_dev: Root id -> (module name -> selected version) over dev dependencies
            selected_versions: Module name -> selected version with every module as a root

        """
        self.all_versions: dict[str, list[str]] = all_versions
        self.per_module_version: dict[str, dict[str, str]] = per_module_version
        self.per_module_version_dev: dict[str, dict[str, str]] = per_module_version_dev
        self.selected_versions: dict[str, str] | None = selected_versions

    def for_module_version(self, key: str, kind: str = DependencyKind.REGULAR) -> dict[str, str] | None:
        """Return the selection with `key` as the root, if it was computed."""
        if kind == DependencyKind.DEV:
            return self.per_module_version_dev.get(key)
        if kind == DependencyKind.REGULAR:
            return self.per_module_version.get(key)
        return calculate_merged_mvs(self, key)

    def to_obj(self) -> dict[str, object]:
        """Convert the result to dictionary representation."""
        ret: dict[str, object] = {
            "mvs": {k: dict(sorted(v.items())) for k, v in sorted(self.per_module_version.items()) if v},
            "mvs_dev": {k: dict(sorted(v.items())) for k, v in sorted(self.per_module_version_dev.items()) if v},
        }
        if self.selected_versions is not None:
            ret["selected_versions"] = dict(sorted(self.selected_versions.items()))
        return ret


def calculate_per_module_version_mvs(
    graph: DependencyGraph,
    all_versions: Mapping[str, list[str]],
    kind: str = DependencyKind.REGULAR,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> dict[str, dict[str, str]]:
    """Run MVS once per resolvable module version, with that version as the only root.

    The roots are independent, so they are computed on a bounded worker pool. The graph is only read.
    """
    view = graph.view(kind)
    roots = sorted(node for node in view if node not in graph.unresolved)
    if not roots:
        logger.info("No module versions to calculate MVS for")
        return {}
    unresolved = frozenset(graph.unresolved)
    results = fan_out(
        roots,
        lambda root: run_mvs([root], all_versions, view, unresolved),
        max_workers=max_workers,
        desc=f"Calculating MVS ({kind} deps)",
        unit=" module versions",
    )
    logger.info("Calculated %s MVS for %d module versions", kind, len(results))
    return results


def calculate_global_mvs(graph: DependencyGraph, all_versions: Mapping[str, list[str]]) -> dict[str, str]:
    """Run MVS over regular dependencies with every module name as a root."""
    return run_mvs(sorted(all_versions), all_versions, graph.regular, frozenset(graph.unresolved))


def calculate_merged_mvs(result: MvsResult, key: str) -> None:  # noqa: ARG001
    """Combine regular and dev selections for `key`.

    How the two should be combined is undecided, so nothing is computed.
    """
    logger.debug("merged MVS requested for %s but is not defined; returning nothing", key)


def calculate_mvs(
    graph: DependencyGraph,
    registry: Registry,
    max_workers: int = DEFAULT_MAX_WORKERS,
    *,
    include_global: bool = False,
) -> MvsResult:
    """Compute regular and dev MVS for every module version in the graph."""
    logger.info("Running Minimum Version Selection...")
    all_versions = extract_all_versions(graph, registry)
    result = MvsResult(
        all_versions=all_versions,
        per_module_version=calculate_per_module_version_mvs(
            graph, all_versions, DependencyKind.REGULAR, max_workers=max_workers
        ),
        per_module_version_dev=calculate_per_module_version_mvs(
            graph, all_versions, DependencyKind.DEV, max_workers=max_workers
        ),
    )
    if include_global:
        result.selected_versions = calculate_global_mvs(graph, all_versions)
    return result


def annotate_module_versions(registry: Registry, result: MvsResult) -> tuple[int, int]:
    """Copy each root's selections onto its module version record.

    Also marks the highest version of every module. Returns how many records got regular and dev
    selections.
    """
    annotated = annotated_dev = 0
    for module in registry:
        latest = module.metadata.latest_version
        for mv in module.versions:
            mv.is_latest_version = mv.version == latest
            mvs = result.per_module_version.get(mv.id)
            if mvs:
                mv.mvs = dict(mvs)
                annotated += 1
            mvs_dev = result.per_module_version_dev.get(mv.id)
            if mvs_dev:
                mv.mvs_dev = dict(mvs_dev)
                annotated_dev += 1
    logger.info("Annotated %d module versions with regular MVS results", annotated)
    logger.info("Annotated %d module versions with dev MVS results", annotated_dev)
    return annotated, annotated_dev


def _split_patch(version: str) -> tuple[str, int] | None:
    base, sep, last = version.rpartition(".")
    if not sep or not last.isdigit():
        return None
    return base, int(last)


def narrow_versions(selection: Mapping[str, str]) -> dict[str, str]:
    """Reduce a selection to a single version per module.

    Keys may be bare module names or `name@version` ids. Within a module, versions sharing everything up to
    their last `.` segment keep only the highest numeric patch; versions whose last segment is not a number
    are left alone. What remains is reduced to the largest version string per module.
    """
    by_module: dict[str, list[str]] = {}
    for key, value in selection.items():
        name, _, key_version = key.partition("@")
        by_module.setdefault(name, []).append(value or key_version)

    narrowed: dict[str, str] = {}
    for name, versions in by_module.items():
        best_patch: dict[str, tuple[int, str]] = {}
        survivors: list[str] = []
        for version in versions:
            split = _split_patch(version)
            if split is None:
                survivors.append(version)
                continue
            base, patch = split
            if base not in best_patch or patch > best_patch[base][0]:
                best_patch[base] = (patch, version)
        survivors.extend(version for _, version in best_patch.values())
        best = survivors[0]
        for version in survivors[1:]:
            if compare_versions(version, best) > 0:
                best = version
        narrowed[name] = best
    return narrowed


def rank_module_versions(result: MvsResult, registry: Registry) -> dict[str, int]:
    """Rank every module version by how much it matters downstream.

    The rank of `name@version` is the number of other roots whose regular selection picks exactly that
    version, plus one when it is the module's highest version.
    """
    ranks: dict[str, int] = {}
    for module in registry:
        latest = module.metadata.latest_version
        for mv in module.versions:
            ranks[mv.id] = 1 if mv.version == latest else 0
    for root, selection in result.per_module_version.items():
        for name, version in selection.items():
            key = module_id(name, version)
            if key == root:
                continue
            ranks[key] = ranks.get(key, 0) + 1
    return ranks
