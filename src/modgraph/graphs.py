"""Directed graph with idempotent insertion."""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

import networkx as nx

from .errors import GraphInvariantError

T = TypeVar("T")


class IdempotentDiGraph(nx.DiGraph, Generic[T]):
    """A directed graph where re-inserting an existing vertex or edge is a no-op.

    Any other error raised by the graph library is an invariant violation and is re-raised as a
    `GraphInvariantError`.
    """

    def add_node(self, node_for_adding: T, **attr: object) -> None:
        """Add a node to the graph, ignoring it if it already exists."""
        if node_for_adding in self:
            return
        try:
            super().add_node(node_for_adding, **attr)
        except (nx.NetworkXError, TypeError, ValueError) as e:
            msg = f"could not add vertex {node_for_adding!r}: {e}"
            raise GraphInvariantError(msg) from e

    def add_nodes_from(self, nodes_for_adding: Iterable[T], **attr: object) -> None:
        """Add multiple nodes to the graph."""
        for node in nodes_for_adding:
            self.add_node(node, **attr)

    def add_edge(self, u_of_edge: T, v_of_edge: T, **attr: object) -> None:
        """Add an edge to the graph, ignoring it if it already exists."""
        try:
            if self.has_edge(u_of_edge, v_of_edge):
                return
        except TypeError as e:
            msg = f"could not add edge {u_of_edge!r} -> {v_of_edge!r}: {e}"
            raise GraphInvariantError(msg) from e
        self.add_node(u_of_edge)
        self.add_node(v_of_edge)
        try:
            super().add_edge(u_of_edge, v_of_edge, **attr)
        except (nx.NetworkXError, TypeError, ValueError) as e:
            msg = f"could not add edge {u_of_edge!r} -> {v_of_edge!r}: {e}"
            raise GraphInvariantError(msg) from e

    def add_edges_from(self, ebunch_to_add: Iterable[tuple[T, T]], **attr: object) -> None:
        """Add multiple edges to the graph."""
        for u, v in ebunch_to_add:
            self.add_edge(u, v, **attr)

    def __iter__(self) -> Iterator[T]:
        """Iterate over nodes in the graph."""
        yield from super().__iter__()
