"""Dependency cycle detection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import networkx as nx

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .graph import DependencyGraph

logger = logging.getLogger(__name__)


def cycle_name(members: Iterable[str]) -> str:
    """Return the canonical name of a cycle: sorted member ids with `@` replaced by `-`, joined by `+`."""
    return "+".join(member.replace("@", "-") for member in sorted(members))


class Cycle:
    """A set of two or more module versions that are mutually reachable."""

    def __init__(self, members: Iterable[str]) -> None:
        """Initialize a cycle."""
        self.members: tuple[str, ...] = tuple(sorted(members))
        self.name: str = cycle_name(self.members)

    def to_obj(self) -> dict[str, object]:
        """Convert cycle to dictionary representation."""
        return {"name": self.name, "members": list(self.members)}

    def __contains__(self, module_version_id: object) -> bool:
        """Check whether a module version is a member of this cycle."""
        return module_version_id in self.members

    def __len__(self) -> int:
        """Return the number of members."""
        return len(self.members)

    def __eq__(self, other: object) -> bool:
        """Check equality with another cycle."""
        return isinstance(other, Cycle) and self.members == other.members

    def __hash__(self) -> int:
        """Compute hash for cycle."""
        return hash(self.members)

    def __repr__(self) -> str:
        """Return the representation of the cycle."""
        return f"{self.__class__.__name__}({self.name!r})"


def detect_cycles(graph: DependencyGraph) -> list[Cycle]:
    """Find every cycle in the merged (regular and dev) dependency graph.

    Strongly connected components of a single vertex are not cycles and are dropped. The result is sorted
    by cycle name so it does not depend on insertion order.
    """
    cycles = [Cycle(scc) for scc in nx.strongly_connected_components(graph.merged) if len(scc) > 1]
    cycles.sort(key=lambda c: c.name)
    if cycles:
        logger.warning("Found %d circular dependency group(s)", len(cycles))
        for i, cycle in enumerate(cycles, start=1):
            logger.warning("  Cycle %d: %s", i, ", ".join(cycle.members))
    return cycles


def build_cycle_map(cycles: Iterable[Cycle]) -> dict[str, str]:
    """Map each cycle member id to the name of its cycle."""
    cycle_map: dict[str, str] = {}
    for cycle in cycles:
        for member in cycle.members:
            cycle_map[member] = cycle.name
    return cycle_map
