"""In-memory update sources: ordered release states joined by update edges."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence


class UpdateGraphError(ValueError):
    """Raised when an update graph is malformed or cannot answer a query."""


@dataclass(frozen=True)
class State:
    """A node in a channel graph, describing how to run at that release."""

    id: str = ""
    tag: str = ""
    migration: str = ""
    phase: str = ""
    digest: str = ""

    def to_dict(self) -> dict[str, str]:
        """Serialise to a mapping, leaving out empty optional fields."""
        data = {"id": self.id}
        for key in ("tag", "migration", "phase", "digest"):
            value = getattr(self, key)
            if value:
                data[key] = value
        return data

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "State":
        """Build a state from a mapping as produced by :meth:`to_dict`."""
        return State(
            id=str(data.get("id", "")),
            tag=str(data.get("tag", "")),
            migration=str(data.get("migration", "")),
            phase=str(data.get("phase", "")),
            digest=str(data.get("digest", "")),
        )


class Source(ABC):
    """A single stream of updates for an installed version."""

    @abstractmethod
    def next_version_without_migrations(self, from_id: str) -> str:
        """Newest version reachable by one edge without running migrations."""

    @abstractmethod
    def next_version(self, from_id: str) -> str:
        """Newest version reachable by one edge; it may require migrations."""

    @abstractmethod
    def latest_version(self, node_id: str) -> str:
        """Head of the graph, or an empty string if ``node_id`` is the head."""

    @abstractmethod
    def state(self, node_id: str) -> State:
        """Information needed to run at the given node."""

    @abstractmethod
    def subgraph(self, head: str) -> "Source":
        """A new source restricted to the part of the graph up to ``head``."""


@dataclass
class MemorySource(Source):
    """Answers update questions from nodes ordered newest first."""

    ordered_nodes: list[State] = field(default_factory=list)
    nodes: dict[str, int] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)

    def _node(self, node_id: str) -> State:
        # Unknown ids fall back to the head, as a zero index would.
        return self.ordered_nodes[self.nodes.get(node_id, 0)]

    def next_version(self, from_id: str) -> str:
        targets = self.edges.get(from_id)
        return targets[-1] if targets else ""

    def next_version_without_migrations(self, from_id: str) -> str:
        found = ""
        targets = self.edges.get(from_id)
        if not targets:
            return found
        initial = self._node(from_id)
        for candidate in targets:
            node = self._node(candidate)
            if initial.phase == node.phase and initial.migration == node.migration:
                found = candidate
            else:
                break
        return found

    def latest_version(self, node_id: str) -> str:
        if not self.ordered_nodes or node_id == self.ordered_nodes[0].id:
            return ""
        return self.ordered_nodes[0].id

    def state(self, node_id: str) -> State:
        index = self.nodes.get(node_id)
        return State() if index is None else self.ordered_nodes[index]

    def subgraph(self, head: str) -> "MemorySource":
        start = self.nodes.get(head, 0) if head else 0
        ordered = list(self.ordered_nodes[start:])
        node_set = {node.id: i for i, node in enumerate(ordered)}
        edges = {
            source: [target for target in targets if target in node_set]
            for source, targets in self.edges.items()
            if source in node_set
        }
        return _validated_source(node_set, edges, ordered)

    def _validate_all_nodes_path_to_head(self) -> None:
        head = self.ordered_nodes[0].id
        for node in self.ordered_nodes:
            if node.id == head:
                continue
            visited: dict[str, None] = {}
            current = self.next_version(node.id)
            while current != head:
                if current in visited:
                    chain = " ".join([*visited, current])
                    raise UpdateGraphError(f"channel cycle detected: [{chain}]")
                if current == "":
                    raise UpdateGraphError(f"there is no path from {node.id} to {head}")
                visited[current] = None
                current = self.next_version(current)


def _validated_source(
    node_set: dict[str, int], edges: dict[str, list[str]], nodes: list[State]
) -> MemorySource:
    source = MemorySource(ordered_nodes=nodes, nodes=node_set, edges=edges)
    source._validate_all_nodes_path_to_head()
    return source


def new_memory_source(
    nodes: Sequence[State], edges: Mapping[str, Iterable[str]] | None
) -> MemorySource:
    """Build a validated source from newest-first nodes and update edges."""
    nodes = list(nodes or [])
    edge_set = {source: list(targets) for source, targets in (edges or {}).items()}
    if not nodes:
        raise UpdateGraphError("missing nodes")
    if not edge_set:
        raise UpdateGraphError("missing edges")

    node_set: dict[str, int] = {}
    for index, node in enumerate(nodes):
        if node.id in node_set:
            raise UpdateGraphError(f"more than one node with ID {node.id}")
        node_set[node.id] = index

    for source, targets in edge_set.items():
        if source not in node_set:
            raise UpdateGraphError(f"node list is missing node {source}")
        for target in targets:
            if target not in node_set:
                raise UpdateGraphError(f"node list is missing node {target}")
        if not targets and source != nodes[0].id:
            raise UpdateGraphError(
                f"{source} has no outgoing edges, but it is not the head of the channel"
            )

    return _validated_source(node_set, edge_set, nodes)