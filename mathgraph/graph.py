"""
In-memory dependency graph over mathematical concepts.

``MathGraph`` owns the concept nodes and the typed directed edges between
them, indexed forward (by source) and in reverse (by target).  Only
``REQUIRES`` edges take part in prerequisite traversal, topological
ordering, and cycle detection; the other edge types are carried along
for subgraphs and snapshots.

Lookups for unknown IDs never raise: they return ``None`` or an empty
collection.  Edge insertion never fails and never de-duplicates, so
cycles are only found by an explicit ``detect_cycles()`` pass.
"""

import logging
from collections import deque
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from mathgraph.models import ConceptNode, DependencyEdge, GraphSnapshot
from mathgraph.utils import unique_ids

logger = logging.getLogger(__name__)

REQUIRES = "REQUIRES"


def _canonical_cycle(cycle: List[str]) -> Tuple[str, ...]:
    """Rotate *cycle* so its smallest ID comes first."""
    pivot = cycle.index(min(cycle))
    return tuple(cycle[pivot:] + cycle[:pivot])


class MathGraph:
    """Directed multigraph of ``ConceptNode`` objects and ``DependencyEdge`` edges.

    Not safe for concurrent mutation; parallel readers are fine as long as
    nobody writes.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, ConceptNode] = {}
        self._edges: Dict[str, List[DependencyEdge]] = {}
        self._reverse: Dict[str, List[DependencyEdge]] = {}

    # ==================== Mutation ====================

    def add_node(self, node: ConceptNode) -> None:
        """Insert or replace *node* by ID."""
        self._nodes[node.id] = node
        self._edges.setdefault(node.id, [])
        self._reverse.setdefault(node.id, [])

    def add_edge(self, edge: DependencyEdge) -> None:
        """Append *edge* to both indexes. Repeated edges are kept."""
        self._edges.setdefault(edge.source, []).append(edge)
        self._reverse.setdefault(edge.target, []).append(edge)

    # ==================== Lookup ====================

    def get_node(self, node_id: str) -> Optional[ConceptNode]:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def node_ids(self) -> List[str]:
        return list(self._nodes)

    def nodes(self) -> List[ConceptNode]:
        return list(self._nodes.values())

    def edges(self) -> List[DependencyEdge]:
        """Every edge, flattened from the forward index."""
        return [e for out in self._edges.values() for e in out]

    def get_outgoing_edges(self, node_id: str) -> List[DependencyEdge]:
        return list(self._edges.get(node_id, []))

    def get_incoming_edges(self, node_id: str) -> List[DependencyEdge]:
        return list(self._reverse.get(node_id, []))

    @property
    def edge_count(self) -> int:
        return sum(len(out) for out in self._edges.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[ConceptNode]:
        return iter(list(self._nodes.values()))

    # ==================== Prerequisites ====================

    def get_prerequisites(self, node_id: str) -> List[str]:
        """Direct prerequisites: sources of incoming ``REQUIRES`` edges."""
        return [
            e.source for e in self._reverse.get(node_id, []) if e.type == REQUIRES
        ]

    def get_all_prerequisites(self, node_id: str) -> Set[str]:
        """Transitive prerequisite closure of *node_id* (BFS).

        Terminates on cycles.  *node_id* itself is never in the result.
        """
        return set(self._closure(node_id, self.get_prerequisites))

    def get_dependents(self, node_id: str) -> List[str]:
        """Direct dependents: targets of outgoing ``REQUIRES`` edges."""
        return [e.target for e in self._edges.get(node_id, []) if e.type == REQUIRES]

    def get_all_dependents(self, node_id: str) -> Set[str]:
        """Everything that transitively requires *node_id*."""
        return set(self._closure(node_id, self.get_dependents))

    def prerequisite_closure(self, node_id: str) -> List[str]:
        """``get_all_prerequisites`` in BFS discovery order."""
        return self._closure(node_id, self.get_prerequisites)

    @staticmethod
    def _closure(start: str, step) -> List[str]:
        visited: Set[str] = set()
        order: List[str] = []
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            order.append(current)
            queue.extend(step(current))
        return [n for n in order if n != start]

    # ==================== Ordering ====================

    def topological_sort(self, node_ids: Iterable[str]) -> List[str]:
        """Kahn's algorithm over the subgraph induced by *node_ids*.

        Only ``REQUIRES`` edges with both endpoints inside the subset are
        counted; prerequisites outside it are ignored, so callers wanting a
        complete order pass the expanded closure.  Ties follow subset
        order.  Nodes on a cycle never reach in-degree zero and are left
        out, so the result may be shorter than the input.
        """
        subset = unique_ids(node_ids)
        members = set(subset)
        in_degree: Dict[str, int] = {i: 0 for i in subset}
        children: Dict[str, List[str]] = {i: [] for i in subset}

        for node_id in subset:
            for prereq in self.get_prerequisites(node_id):
                if prereq in members:
                    children[prereq].append(node_id)
                    in_degree[node_id] += 1

        queue = deque(i for i in subset if in_degree[i] == 0)
        result: List[str] = []
        while queue:
            current = queue.popleft()
            result.append(current)
            for child in children[current]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    queue.append(child)

        if len(result) < len(subset):
            logger.debug(
                "Topological sort dropped %d node(s) on cycles.",
                len(subset) - len(result),
            )
        return result

    def detect_cycles(self) -> List[List[str]]:
        """Find cycles among ``REQUIRES`` edges.

        Iterative depth-first search from every unvisited node, keeping the
        current path.  Edge sources never added as nodes are searched too.
        An edge back to a node on the path records the path slice from that
        node onward.  Each cycle is rotated to start at its smallest ID and
        reported once.
        """
        visited: Set[str] = set()
        seen: Set[Tuple[str, ...]] = set()
        cycles: List[List[str]] = []

        starts = list(self._nodes) + [i for i in self._edges if i not in self._nodes]
        for start in starts:
            if start in visited:
                continue
            visited.add(start)
            path = [start]
            on_path = {start}
            stack = [iter(self.get_dependents(start))]

            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    stack.pop()
                    on_path.discard(path.pop())
                    continue
                if nxt not in visited:
                    visited.add(nxt)
                    path.append(nxt)
                    on_path.add(nxt)
                    stack.append(iter(self.get_dependents(nxt)))
                elif nxt in on_path:
                    key = _canonical_cycle(path[path.index(nxt):])
                    if key not in seen:
                        seen.add(key)
                        cycles.append(list(key))

        if cycles:
            logger.warning("Detected %d cycle(s) in REQUIRES edges.", len(cycles))
        return cycles

    # ==================== Subgraphs ====================

    def get_subgraph(self, node_ids: Iterable[str]) -> "MathGraph":
        """Induced subgraph: known nodes in *node_ids* and the edges between them."""
        ids = unique_ids(node_ids)
        members = set(ids)
        sub = MathGraph()

        for node_id in ids:
            node = self._nodes.get(node_id)
            if node is not None:
                sub.add_node(node)

        for node_id in ids:
            for edge in self._edges.get(node_id, []):
                if edge.target in members:
                    sub.add_edge(edge)
        return sub

    # ==================== Snapshots ====================

    def export_snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(nodes=self.nodes(), edges=self.edges())

    def export_json(self) -> str:
        """Single-line JSON ``{"nodes": [...], "edges": [...]}``."""
        return self.export_snapshot().model_dump_json(by_alias=True)

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot) -> "MathGraph":
        graph = cls()
        for node in snapshot.nodes:
            graph.add_node(node)
        for edge in snapshot.edges:
            graph.add_edge(edge)
        return graph

    @classmethod
    def from_json(cls, payload: str) -> "MathGraph":
        return cls.from_snapshot(GraphSnapshot.model_validate_json(payload))


def select_with_closure(
    graph: MathGraph,
    selected: Iterable[str],
    excluded: Iterable[str],
    include_prerequisites: bool = True,
) -> List[str]:
    """Selected IDs plus their prerequisite closure, minus *excluded*.

    The selection comes first, then closure members in discovery order.
    Shared by the curriculum and exam overlays.
    """
    concept_ids = unique_ids(selected)
    if include_prerequisites:
        seen = set(concept_ids)
        for concept_id in list(concept_ids):
            for prereq in graph.prerequisite_closure(concept_id):
                if prereq not in seen:
                    seen.add(prereq)
                    concept_ids.append(prereq)
    skip = set(excluded)
    return [c for c in concept_ids if c not in skip]
