"""
pytest suite for offline graph validation and networkx metrics.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from mathgraph import storage
from mathgraph.dag_validator import (
    GraphValidator,
    compute_metrics,
    main,
    to_networkx,
    validate_dag,
)
from mathgraph.graph import MathGraph
from mathgraph.models import ConceptNode, DependencyEdge


# =========================================================================
# Helpers
# =========================================================================


def _node(node_id: str, **kwargs) -> ConceptNode:
    data = {"title": node_id.upper(), "description": "d", "domains": ["algebra"]}
    data.update(kwargs)
    return ConceptNode(id=node_id, **data)


def _link(graph: MathGraph, src: str, tgt: str, edge_type: str = "REQUIRES") -> None:
    graph.add_edge(DependencyEdge(source=src, target=tgt, type=edge_type))


@pytest.fixture()
def clean():
    """A ← B ← C with matching ``requires`` lists."""
    g = MathGraph()
    g.add_node(_node("a"))
    g.add_node(_node("b", requires=["a"]))
    g.add_node(_node("c", requires=["b"]))
    _link(g, "a", "b")
    _link(g, "b", "c")
    return g


# =========================================================================
# Test: networkx helpers
# =========================================================================


class TestNetworkx:
    def test_only_requires_edges(self, clean):
        _link(clean, "c", "a", "USED_IN")
        G = to_networkx(clean)
        assert G.number_of_edges() == 2
        assert validate_dag(clean)

    def test_cycle_fails(self, clean):
        _link(clean, "c", "a")
        assert not validate_dag(clean)
        assert compute_metrics(clean)["max_depth"] == 0

    def test_metrics(self, clean):
        clean.add_node(_node("lonely"))
        metrics = compute_metrics(clean)
        assert metrics["total_concepts"] == 4
        assert metrics["total_edges"] == 2
        assert metrics["avg_out_degree"] == 0.5
        assert metrics["max_depth"] == 2
        assert metrics["isolated_nodes_count"] == 1


# =========================================================================
# Test: GraphValidator
# =========================================================================


class TestGraphValidator:
    def test_clean_graph_is_valid(self, clean):
        report = GraphValidator(clean).validate()
        assert report.valid
        assert report.errors == []
        assert report.warnings == []
        assert report.stats.total_nodes == 3
        assert report.stats.total_edges == 2

    def test_cycle_is_error(self, clean):
        _link(clean, "c", "a")
        report = GraphValidator(clean).validate()
        assert not report.valid
        assert report.errors[0] == "Detected 1 cycles in dependency graph"
        assert report.errors[1] == "  Cycle 1: a -> b -> c"
        assert report.stats.cycles_detected == 1

    def test_cycle_listing_capped(self):
        g = MathGraph()
        for i in range(7):
            g.add_node(_node(f"n{i}"))
            _link(g, f"n{i}", f"n{i}")
        report = GraphValidator(g).validate()
        assert report.errors[-1] == "  ... and 2 more cycles"
        assert sum(e.startswith("  Cycle") for e in report.errors) == 5

    def test_missing_prerequisites_capped(self):
        g = MathGraph()
        g.add_node(_node("x", requires=[f"ghost{i}" for i in range(12)]))
        report = GraphValidator(g).validate()
        assert not report.valid
        assert report.stats.missing_prerequisites == 12
        assert "Node x references missing prerequisite: ghost0" in report.errors
        assert report.errors[-1] == "... and 2 more missing prerequisites"

    def test_orphans_are_warnings(self):
        g = MathGraph()
        for i in range(11):
            g.add_node(_node(f"o{i:02d}"))
        report = GraphValidator(g).validate()
        assert report.valid
        assert report.stats.orphaned_nodes == 11
        assert report.warnings[-1] == "... and 1 more orphaned nodes"

    def test_completeness_checks(self):
        g = MathGraph()
        g.add_node(_node("x", title=" ", description="", domains=[], complexity=12))
        report = GraphValidator(g).validate()
        assert "Node x has empty title" in report.errors
        assert "Node x has invalid complexity: 12.0" in report.errors
        assert "Node x has empty description" in report.warnings
        assert "Node x has no domains assigned" in report.warnings

    def test_duplicate_ids_from_raw_list(self, clean):
        report = GraphValidator(clean, node_ids=["a", "b", "c", "a"]).validate()
        assert "Found 1 duplicate node IDs" in report.errors
        assert "  Duplicate: a" in report.errors

    def test_validate_is_repeatable(self, clean):
        validator = GraphValidator(clean)
        first = validator.validate()
        second = validator.validate()
        assert first.errors == second.errors
        assert first.warnings == second.warnings


# =========================================================================
# Test: CLI
# =========================================================================


class TestCli:
    def test_exit_codes(self, clean, tmp_path):
        good = str(tmp_path / "good.json")
        storage.save_graph(clean, good)
        with pytest.raises(SystemExit) as exc:
            main(["--graph", good])
        assert exc.value.code == 0

        _link(clean, "c", "a")
        bad = str(tmp_path / "bad.json")
        storage.save_graph(clean, bad)
        with pytest.raises(SystemExit) as exc:
            main(["--graph", bad])
        assert exc.value.code == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main(["--graph", str(tmp_path / "nope.json")])
        assert exc.value.code == 1
