"""
Resolved dependency graph: an arena of nodes with index-based edges.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import GraphError, ParseError
from .models import DependencyNode, PackageId
from .versions import Version, parse_version


logger = logging.getLogger(__name__)

Path = Tuple[DependencyNode, ...]


@dataclass(frozen=True)
class GraphEntry:
    """One ``(package, version, parent)`` triple supplied by a lockfile reader.

    ``parent_version`` and ``parent_node_id`` disambiguate the parent when
    several versions (or copies) of the parent package are present.
    """

    package: PackageId
    version: str
    parent: Optional[PackageId] = None
    parent_version: Optional[str] = None
    node_id: Optional[str] = None
    parent_node_id: Optional[str] = None


def _entry_str(record: Mapping[str, Any], key: str, index: int, required: bool = False) -> Optional[str]:
    value = record.get(key)
    if value is None:
        if required:
            raise GraphError(f"entry {index}: missing required field {key!r}")
        return None
    if not isinstance(value, str) or not value.strip():
        raise GraphError(f"entry {index}: field {key!r} must be a non-empty string")
    return value.strip()


def entries_from_records(
    records: Iterable[Mapping[str, Any]], default_ecosystem: str
) -> List[GraphEntry]:
    """Validate JSON-shaped entry mappings into ``GraphEntry`` values.

    Raises:
        GraphError: If an entry is not a mapping or has badly typed fields
    """
    entries = []
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise GraphError(f"entry {index}: not a mapping")
        ecosystem = _entry_str(record, "ecosystem", index) or default_ecosystem
        parent_name = _entry_str(record, "parent", index)
        parent = None
        if parent_name is not None:
            parent = PackageId(_entry_str(record, "parent_ecosystem", index) or ecosystem, parent_name)
        entries.append(GraphEntry(
            package=PackageId(ecosystem, _entry_str(record, "name", index, required=True)),
            version=_entry_str(record, "version", index, required=True),
            parent=parent,
            parent_version=_entry_str(record, "parent_version", index),
            node_id=_entry_str(record, "id", index),
            parent_node_id=_entry_str(record, "parent_id", index),
        ))
    return entries


class DependencyGraph:
    """Read-only dependency graph with ordered root nodes."""

    def __init__(
        self,
        nodes: Sequence[DependencyNode],
        children: Sequence[Sequence[int]],
        roots: Sequence[int],
    ) -> None:
        self._nodes: Tuple[DependencyNode, ...] = tuple(nodes)
        self._children: Tuple[Tuple[int, ...], ...] = tuple(tuple(c) for c in children)
        self._roots: Tuple[int, ...] = tuple(roots)
        self._by_package: Dict[PackageId, Tuple[int, ...]] = {}
        for node in self._nodes:
            self._by_package[node.package] = self._by_package.get(node.package, ()) + (node.index,)
        self._distance, self._predecessors = self._search()

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[GraphEntry],
        extra_packages: Iterable[Tuple[PackageId, str]] = (),
    ) -> "DependencyGraph":
        """Build the graph from collaborator entries.

        Args:
            entries: Package/version/parent triples; entries without a parent
                declare roots, in order of first appearance
            extra_packages: Package/version pairs recovered by binary
                introspection; added as roots

        Raises:
            GraphError: On unparsable versions or unresolvable parents
        """
        entries = list(entries)
        nodes: List[DependencyNode] = []
        keys: Dict[Tuple[PackageId, Version, Optional[str]], int] = {}
        by_node_id: Dict[str, int] = {}

        def add_node(package: PackageId, raw_version: str, node_id: Optional[str]) -> int:
            try:
                version = parse_version(raw_version)
            except ParseError as exc:
                raise GraphError(f"invalid version for {package}: {exc}") from exc
            key = (package, version, node_id)
            if key not in keys:
                keys[key] = len(nodes)
                nodes.append(DependencyNode(len(nodes), package, version, node_id))
                if node_id is not None:
                    if node_id in by_node_id:
                        raise GraphError(f"duplicate node id {node_id!r}")
                    by_node_id[node_id] = keys[key]
            return keys[key]

        entry_nodes = [add_node(e.package, e.version, e.node_id) for e in entries]

        children: List[List[int]] = [[] for _ in nodes]
        roots: List[int] = []
        for entry, child in zip(entries, entry_nodes):
            if entry.parent is None and entry.parent_node_id is None:
                if child not in roots:
                    roots.append(child)
                continue
            parent = cls._resolve_parent(entry, nodes, by_node_id)
            if child not in children[parent]:
                children[parent].append(child)

        for package, raw_version in extra_packages:
            known = len(nodes)
            index = add_node(package, raw_version, None)
            if index == known:
                children.append([])
                roots.append(index)

        logger.info("Dependency graph: %d nodes, %d roots", len(nodes), len(roots))
        return cls(nodes, children, roots)

    @staticmethod
    def _resolve_parent(
        entry: GraphEntry,
        nodes: Sequence[DependencyNode],
        by_node_id: Mapping[str, int],
    ) -> int:
        if entry.parent_node_id is not None:
            if entry.parent_node_id not in by_node_id:
                raise GraphError(f"{entry.package}: parent node {entry.parent_node_id!r} does not exist")
            return by_node_id[entry.parent_node_id]

        candidates = [node for node in nodes if node.package == entry.parent]
        if entry.parent_version is not None:
            try:
                wanted = parse_version(entry.parent_version)
            except ParseError as exc:
                raise GraphError(f"invalid parent version for {entry.package}: {exc}") from exc
            candidates = [node for node in candidates if node.version == wanted]
        if not candidates:
            raise GraphError(f"{entry.package}: parent {entry.parent} is not in the graph")
        if len(candidates) > 1:
            raise GraphError(f"{entry.package}: parent {entry.parent} is ambiguous")
        return candidates[0].index

    @property
    def nodes(self) -> Tuple[DependencyNode, ...]:
        return self._nodes

    @property
    def roots(self) -> Tuple[DependencyNode, ...]:
        return tuple(self._nodes[i] for i in self._roots)

    def children(self, index: int) -> Tuple[DependencyNode, ...]:
        return tuple(self._nodes[i] for i in self._children[index])

    def nodes_for(self, package: PackageId) -> Tuple[DependencyNode, ...]:
        return tuple(self._nodes[i] for i in self._by_package.get(package, ()))

    def __len__(self) -> int:
        return len(self._nodes)

    def _search(self) -> Tuple[List[int], List[List[int]]]:
        """Multi-source BFS from the roots in declared order.

        Returns per-node distances (-1 when unreachable) and, per node, the
        predecessors lying on a shortest path in discovery order.
        """
        distance = [-1] * len(self._nodes)
        predecessors: List[List[int]] = [[] for _ in self._nodes]
        queue = deque()
        for root in self._roots:
            if distance[root] == -1:
                distance[root] = 0
                queue.append(root)
        while queue:
            current = queue.popleft()
            for child in self._children[current]:
                if distance[child] == -1:
                    distance[child] = distance[current] + 1
                    predecessors[child].append(current)
                    queue.append(child)
                elif distance[child] == distance[current] + 1:
                    predecessors[child].append(current)
        return distance, predecessors

    def shortest_path(self, index: int) -> Optional[Path]:
        """Shortest root-to-node path, ties going to the earliest root."""
        distance, predecessors = self._distance, self._predecessors
        if distance[index] == -1:
            return None
        path = [index]
        while distance[path[-1]] > 0:
            path.append(predecessors[path[-1]][0])
        return tuple(self._nodes[i] for i in reversed(path))

    def all_shortest_paths(self, index: int, limit: int = 64) -> Tuple[Path, ...]:
        """Every shortest root-to-node path, at most ``limit`` of them."""
        distance, predecessors = self._distance, self._predecessors
        if distance[index] == -1:
            return ()
        paths: List[Path] = []
        stack = [(index, (index,))]
        while stack and len(paths) < limit:
            current, suffix = stack.pop()
            if distance[current] == 0:
                paths.append(tuple(self._nodes[i] for i in suffix))
                continue
            for parent in reversed(predecessors[current]):
                stack.append((parent, (parent,) + suffix))
        return tuple(paths)
