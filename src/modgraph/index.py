"""Translation of selected module versions into downstream references."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .cycles import Cycle
    from .models import ModuleVersion

logger = logging.getLogger(__name__)


class ImportIndex:
    """Maps an import spec (`name@version`, or a cycle or module name) to the target that provides it."""

    def __init__(self) -> None:
        """Initialize an empty index."""
        self._providers: dict[str, list[str]] = {}

    def register(self, import_spec: str, target: str) -> None:
        """Record that `target` provides `import_spec`."""
        providers = self._providers.setdefault(import_spec, [])
        if target not in providers:
            providers.append(target)

    def find(self, import_spec: str) -> list[str]:
        """Return every target providing `import_spec`, in registration order."""
        return list(self._providers.get(import_spec, ()))

    def __contains__(self, import_spec: object) -> bool:
        """Check whether anything provides `import_spec`."""
        return import_spec in self._providers

    def __len__(self) -> int:
        """Return the number of registered import specs."""
        return len(self._providers)


def dependency_reference(dep_id: str, cycle_map: Mapping[str, str], index: ImportIndex) -> str | None:
    """Return what a dependency edge on `dep_id` should point at.

    A member of a cycle is represented by the cycle itself, which keeps the references acyclic. Anything
    else is looked up in the index, which should hold exactly one provider.
    """
    cycle = cycle_map.get(dep_id)
    spec = cycle if cycle is not None else dep_id
    providers = index.find(spec)
    if not providers:
        logger.warning("No provider found for %s", spec)
        return None
    if len(providers) > 1:
        logger.warning("Multiple providers for %s, using %s", spec, providers[0])
    return providers[0]


def cycle_members_references(cycle: Cycle, index: ImportIndex) -> dict[str, str]:
    """Map each member of `cycle` to the target providing it. Members without a provider are logged."""
    refs: dict[str, str] = {}
    for member in cycle.members:
        providers = index.find(member)
        if not providers:
            logger.warning("No provider found for %s in cycle %s", member, cycle.name)
            continue
        refs[member] = providers[0]
    return refs


def module_version_label(name: str, version: str) -> str:
    """Return the target that provides a module version."""
    return f"//modules/{name}/{version}:module_version"


def cycle_label(name: str) -> str:
    """Return the target that provides a dependency cycle."""
    return f"//recursion:{name}"


def build_import_index(module_versions: Iterable[ModuleVersion], cycles: Iterable[Cycle] = ()) -> ImportIndex:
    """Register every module version under its id and every cycle under its name."""
    index = ImportIndex()
    for mv in module_versions:
        index.register(mv.id, module_version_label(mv.name, mv.version))
    for cycle in cycles:
        index.register(cycle.name, cycle_label(cycle.name))
    logger.debug("Indexed %d import specs", len(index))
    return index
