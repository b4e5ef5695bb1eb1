"""
Offline graph validation: cycles, dangling prerequisites, node completeness.

Usage::

    python -m mathgraph.dag_validator --graph ./data/graph.json

``GraphValidator`` produces a ``ValidationReport``; any error marks the
graph invalid, warnings do not.  ``validate_dag`` and ``compute_metrics``
cross-check the ``REQUIRES`` edges with ``networkx.DiGraph``.
"""

import argparse
import logging
import sys
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

import networkx as nx

from mathgraph.graph import REQUIRES, MathGraph
from mathgraph.models import ValidationReport, ValidationStats
from mathgraph.utils import setup_logging, timed

logger = logging.getLogger(__name__)

MAX_CYCLES_LISTED = 5
MAX_ITEMS_LISTED = 10


# =========================================================================
# networkx views
# =========================================================================


def to_networkx(graph: MathGraph) -> nx.DiGraph:
    """``REQUIRES`` edges as a ``DiGraph``; every node is present."""
    G = nx.DiGraph()
    G.add_nodes_from(graph.node_ids())
    for edge in graph.edges():
        if edge.type == REQUIRES:
            G.add_edge(edge.source, edge.target)
    return G


def validate_dag(graph: MathGraph) -> bool:
    """Verify that ``REQUIRES`` edges form a DAG (topological sort succeeds)."""
    try:
        list(nx.topological_sort(to_networkx(graph)))
        return True
    except nx.NetworkXUnfeasible:
        return False


def compute_metrics(graph: MathGraph) -> Dict[str, Any]:
    """Compute graph summary metrics.

    Returns dict with: total_concepts, total_edges, avg_out_degree,
    max_depth, isolated_nodes_count.  ``max_depth`` is the longest
    ``REQUIRES`` chain, 0 when the graph has a cycle.
    """
    G = to_networkx(graph)
    n_nodes = G.number_of_nodes()
    total_edges = G.number_of_edges()

    avg_out = total_edges / n_nodes if n_nodes > 0 else 0.0

    if total_edges > 0 and nx.is_directed_acyclic_graph(G):
        max_depth = nx.dag_longest_path_length(G)
    else:
        max_depth = 0

    return {
        "total_concepts": len(graph),
        "total_edges": total_edges,
        "avg_out_degree": round(avg_out, 4),
        "max_depth": max_depth,
        "isolated_nodes_count": nx.number_of_isolates(G),
    }


# =========================================================================
# Validator
# =========================================================================


class GraphValidator:
    """Runs every check over *graph* and collects errors and warnings.

    *node_ids* is the raw ID list as read from the source files, used for
    the duplicate check; a ``MathGraph`` alone already collapses repeats.
    """

    def __init__(
        self, graph: MathGraph, node_ids: Optional[Iterable[str]] = None
    ) -> None:
        self.graph = graph
        self.node_ids = list(node_ids) if node_ids is not None else graph.node_ids()
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate(self) -> ValidationReport:
        self.errors, self.warnings = [], []
        cycles = self._check_cycles()
        orphans = self._check_orphans()
        missing = self._check_missing_prerequisites()
        self._check_completeness()
        self._check_duplicates()

        return ValidationReport(
            valid=not self.errors,
            errors=self.errors,
            warnings=self.warnings,
            stats=ValidationStats(
                total_nodes=len(self.graph),
                total_edges=self.graph.edge_count,
                cycles_detected=cycles,
                orphaned_nodes=orphans,
                missing_prerequisites=missing,
            ),
        )

    # ------------------------------------------------------------------

    def _check_cycles(self) -> int:
        cycles = self.graph.detect_cycles()
        if cycles:
            self.errors.append(f"Detected {len(cycles)} cycles in dependency graph")
            for i, cycle in enumerate(cycles[:MAX_CYCLES_LISTED], 1):
                self.errors.append(f"  Cycle {i}: {' -> '.join(cycle)}")
            if len(cycles) > MAX_CYCLES_LISTED:
                self.errors.append(
                    f"  ... and {len(cycles) - MAX_CYCLES_LISTED} more cycles"
                )
        return len(cycles)

    def _check_orphans(self) -> int:
        orphans = [
            node_id
            for node_id in self.graph.node_ids()
            if not self.graph.get_incoming_edges(node_id)
            and not self.graph.get_outgoing_edges(node_id)
        ]
        for node_id in orphans[:MAX_ITEMS_LISTED]:
            self.warnings.append(f"Orphaned node (no connections): {node_id}")
        if len(orphans) > MAX_ITEMS_LISTED:
            self.warnings.append(
                f"... and {len(orphans) - MAX_ITEMS_LISTED} more orphaned nodes"
            )
        return len(orphans)

    def _check_missing_prerequisites(self) -> int:
        missing = [
            (node.id, prereq)
            for node in self.graph.nodes()
            for prereq in node.requires
            if not self.graph.has_node(prereq)
        ]
        for node_id, prereq in missing[:MAX_ITEMS_LISTED]:
            self.errors.append(
                f"Node {node_id} references missing prerequisite: {prereq}"
            )
        if len(missing) > MAX_ITEMS_LISTED:
            self.errors.append(
                f"... and {len(missing) - MAX_ITEMS_LISTED} more missing prerequisites"
            )
        return len(missing)

    def _check_completeness(self) -> None:
        for node in self.graph.nodes():
            if not node.title.strip():
                self.errors.append(f"Node {node.id} has empty title")
            if not node.description.strip():
                self.warnings.append(f"Node {node.id} has empty description")
            if not node.domains:
                self.warnings.append(f"Node {node.id} has no domains assigned")
            if not 0 <= node.complexity <= 10:
                self.errors.append(
                    f"Node {node.id} has invalid complexity: {node.complexity}"
                )

    def _check_duplicates(self) -> None:
        duplicates = [i for i, n in Counter(self.node_ids).items() if n > 1]
        if duplicates:
            self.errors.append(f"Found {len(duplicates)} duplicate node IDs")
            for node_id in duplicates[:MAX_ITEMS_LISTED]:
                self.errors.append(f"  Duplicate: {node_id}")


# =========================================================================
# CLI
# =========================================================================


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m mathgraph.dag_validator",
        description="Validate a graph snapshot.",
    )
    parser.add_argument("--graph", required=True, help="Graph snapshot JSON.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry-point. Exits 0 when the graph is valid, 1 otherwise."""
    from mathgraph import storage

    setup_logging()
    args = _parse_args(argv)

    try:
        graph = storage.load_graph(args.graph, missing_ok=False)
    except FileNotFoundError:
        logger.error("Graph snapshot not found: %s", args.graph)
        sys.exit(1)

    with timed("Validation"):
        report = GraphValidator(graph).validate()
        metrics = compute_metrics(graph)

    stats = report.stats
    logger.info(
        "Nodes=%d edges=%d cycles=%d orphans=%d missing_prereqs=%d",
        stats.total_nodes, stats.total_edges, stats.cycles_detected,
        stats.orphaned_nodes, stats.missing_prerequisites,
    )
    logger.info(
        "REQUIRES metrics: avg_out_degree=%.4f max_depth=%d isolated=%d",
        metrics["avg_out_degree"], metrics["max_depth"],
        metrics["isolated_nodes_count"],
    )
    for error in report.errors:
        logger.error("  ✗ %s", error)
    for warning in report.warnings:
        logger.warning("  ⚠ %s", warning)

    if report.valid:
        logger.info("✅ Graph validation passed.")
        sys.exit(0)
    logger.error("✗ Graph validation failed (%d error(s)).", len(report.errors))
    sys.exit(1)


if __name__ == "__main__":
    main()
