"""
Graph structural diagnostic: read-only summary of a graph snapshot.
Produces 3 JSON reports next to the snapshot.

Usage::

    python scripts/graph_diagnostic.py --graph ./data/graph.json

Writes:
  - <dir>/graph_complexity_stats.json
  - <dir>/graph_degree_stats.json
  - <dir>/graph_index_stats.json
"""

import argparse
import json
import logging
import os
import sys
from collections import Counter
from typing import Dict

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from mathgraph import storage
from mathgraph.dag_validator import compute_metrics
from mathgraph.graph import REQUIRES, MathGraph
from mathgraph.search import SearchIndex
from mathgraph.utils import setup_logging, timed

logger = logging.getLogger(__name__)


# =====================================================================
# Helpers
# =====================================================================

def _histogram(arr, bins=10):
    if len(arr) == 0:
        return {"counts": [], "bin_edges": []}
    counts, edges = np.histogram(arr, bins=bins, range=(0, 10))
    return {
        "counts": counts.tolist(),
        "bin_edges": [round(float(e), 6) for e in edges],
    }


def _save(data: dict, path: str):
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, default=str)
    logger.info("Saved → %s", path)


def _degree_stats(graph: MathGraph) -> Dict[str, object]:
    in_deg = np.array(
        [len(graph.get_prerequisites(i)) for i in graph.node_ids()], dtype=np.int64
    )
    out_deg = np.array(
        [len(graph.get_dependents(i)) for i in graph.node_ids()], dtype=np.int64
    )
    by_type = Counter(e.type for e in graph.edges())
    if len(in_deg) == 0:
        return {"edges_by_type": dict(by_type)}
    return {
        "edges_by_type": dict(by_type),
        "in_degree_mean": round(float(in_deg.mean()), 4),
        "in_degree_max": int(in_deg.max()),
        "out_degree_mean": round(float(out_deg.mean()), 4),
        "out_degree_max": int(out_deg.max()),
        "roots": int(np.sum(in_deg == 0)),
        "leaves": int(np.sum(out_deg == 0)),
    }


# =====================================================================
# Main diagnostic
# =====================================================================

def run_diagnostic(graph_path: str) -> None:
    graph = storage.load_graph(graph_path, missing_ok=False)
    out_dir = os.path.dirname(os.path.abspath(graph_path))

    complexities = np.array([n.complexity for n in graph.nodes()], dtype=np.float64)
    complexity_stats = {
        "count": int(len(complexities)),
        "mean": round(float(complexities.mean()), 4) if len(complexities) else 0.0,
        "median": round(float(np.median(complexities)), 4) if len(complexities) else 0.0,
        "histogram": _histogram(complexities),
    }
    _save(complexity_stats, os.path.join(out_dir, "graph_complexity_stats.json"))

    with timed("Degree analysis"):
        degree_stats = _degree_stats(graph)
        degree_stats["requires_metrics"] = compute_metrics(graph)
    _save(degree_stats, os.path.join(out_dir, "graph_degree_stats.json"))

    with timed("Search index"):
        index = SearchIndex(graph.nodes())
        index_stats = index.get_stats()
    _save(index_stats, os.path.join(out_dir, "graph_index_stats.json"))

    metrics = degree_stats["requires_metrics"]
    print("=" * 60)
    print("  GRAPH DIAGNOSTIC")
    print("=" * 60)
    print(f"  nodes: {len(graph):,}   edges: {graph.edge_count:,}")
    print(f"  {REQUIRES} edges: {metrics['total_edges']:,}   "
          f"max depth: {metrics['max_depth']}   "
          f"isolated: {metrics['isolated_nodes_count']:,}")
    print(f"  complexity mean={complexity_stats['mean']:.2f}  "
          f"median={complexity_stats['median']:.2f}")
    print(f"  by type: {index_stats['by_type']}")
    print("=" * 60)


# =====================================================================
# CLI
# =====================================================================

def main():
    setup_logging()
    parser = argparse.ArgumentParser(description="Graph structural diagnostic")
    parser.add_argument("--graph", default="./data/graph.json")
    args = parser.parse_args()

    try:
        run_diagnostic(args.graph)
    except FileNotFoundError:
        logger.error("Graph snapshot not found: %s", args.graph)
        sys.exit(1)


if __name__ == "__main__":
    main()
