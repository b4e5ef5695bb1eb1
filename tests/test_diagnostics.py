"""
pytest suite for per-user diagnostics: progress, gaps, study paths, review.
"""

import json
import os
import sys
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from mathgraph.diagnostics import (
    DiagnosticsEngine,
    estimate_hours_vectorised,
    total_hours,
)
from mathgraph.graph import MathGraph
from mathgraph.models import ConceptNode, DependencyEdge

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture()
def graph():
    """A ← B ← C, all complexity 0 so each concept is 0.5 h at confidence 0."""
    g = MathGraph()
    for node_id in ("A", "B", "C"):
        g.add_node(ConceptNode(id=node_id, title=node_id, complexity=0))
    g.add_edge(DependencyEdge(source="A", target="B", type="REQUIRES"))
    g.add_edge(DependencyEdge(source="B", target="C", type="REQUIRES"))
    return g


@pytest.fixture()
def branching():
    """f requires c and e; c requires a and b; e requires d; d requires a."""
    g = MathGraph()
    for node_id in "abcdef":
        g.add_node(ConceptNode(id=node_id, title=node_id, complexity=3))
    for src, tgt in [("a", "c"), ("b", "c"), ("d", "e"), ("a", "d"), ("c", "f"), ("e", "f")]:
        g.add_edge(DependencyEdge(source=src, target=tgt, type="REQUIRES"))
    return g


@pytest.fixture()
def engine():
    """u1 knows A well, B a little, C not at all."""
    eng = DiagnosticsEngine()
    eng.update_progress("u1", "A", confidence=0.9, last_reviewed=NOW)
    eng.update_progress("u1", "B", confidence=0.3, last_reviewed=NOW)
    return eng


# =========================================================================
# Test: Time estimation
# =========================================================================


class TestHours:
    def test_formula(self):
        hours = estimate_hours_vectorised(
            np.array([0.0, 10.0, 5.0]), np.array([0.0, 0.0, 1.0]), base_hours=0.5
        )
        np.testing.assert_allclose(hours, [0.5, 1.0, 0.375])

    def test_total_rounds_up(self):
        assert total_hours(np.array([0.5, 0.6])) == 2
        assert total_hours(np.array([0.1] * 30)) == 3
        assert total_hours(np.array([])) == 0


# =========================================================================
# Test: Progress state
# =========================================================================


class TestProgress:
    def test_unknown_confidence_is_zero(self, engine):
        assert engine.get_confidence("u1", "C") == 0.0
        assert engine.get_confidence("nobody", "A") == 0.0
        assert engine.get_progress("nobody", "A") is None

    def test_update_accumulates(self, engine):
        p = engine.update_progress("u1", "A", time_spent_seconds=120)
        p = engine.update_progress("u1", "A", time_spent_seconds=60)
        assert p.review_count == 3
        assert p.time_spent_seconds == 180
        assert p.confidence == 0.9

    def test_update_replaces_confidence(self, engine):
        assert engine.update_progress("u1", "B", confidence=0.8).confidence == 0.8

    def test_confidence_out_of_range_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.update_progress("u1", "A", confidence=1.5)

    def test_known_concepts(self, engine):
        assert engine.get_known_concepts("u1") == {"A"}
        assert engine.get_known_concepts("u1", threshold=0.2) == {"A", "B"}


# =========================================================================
# Test: Gaps & study paths
# =========================================================================


class TestGaps:
    def test_chain_gap_report(self, engine, graph):
        report = engine.detect_gaps("u1", graph, ["C"])
        assert report.missing == ["C"]
        assert report.weak == ["B"]
        assert report.strong_prereqs == ["A"]

    def test_known_target_listed_nowhere(self, engine, graph):
        report = engine.detect_gaps("u1", graph, ["A"])
        assert report.missing == [] and report.weak == [] and report.strong_prereqs == []

    def test_study_path(self, engine, graph):
        path = engine.generate_study_path("u1", graph, ["C"], 14, target_exam="methods")
        assert path.ordered_concepts == ["B", "C"]
        assert path.gaps == ["C"]
        assert path.confidence_map == {"B": 0.3, "C": 0.0}
        # 0.5 × 0.85 + 0.5 = 0.925 → 1
        assert path.estimated_total_hours == 1
        assert path.target_exam == "methods"
        assert path.time_remaining_days == 14

    def test_path_for_new_user(self, graph):
        path = DiagnosticsEngine().generate_study_path("new", graph, ["C"], 7)
        assert path.ordered_concepts == ["A", "B", "C"]
        assert path.estimated_total_hours == 2

    def test_path_threshold_controls_weak(self, engine, graph):
        path = engine.generate_study_path(
            "u1", graph, ["C"], 14, confidence_threshold=0.2
        )
        assert path.ordered_concepts == ["C"]
        assert path.estimated_total_hours == 1

    def test_gap_lists_partition_closure(self, branching):
        eng = DiagnosticsEngine()
        for concept_id, confidence in [("a", 0.9), ("b", 0.5), ("d", 0.8), ("e", 0.1)]:
            eng.update_progress("u", concept_id, confidence=confidence)

        report = eng.detect_gaps("u", branching, ["f", "c"])
        lists = [report.missing, report.weak, report.strong_prereqs]
        flat = [c for lst in lists for c in lst]
        assert len(flat) == len(set(flat))
        closure = set().union(
            *(branching.get_all_prerequisites(t) for t in ("f", "c"))
        ) | {"f", "c"}
        assert set(flat) <= closure
        assert set(report.missing) == {"c", "f"}
        assert set(report.weak) == {"b", "e"}
        assert set(report.strong_prereqs) == {"a", "d"}

    def test_branching_path_is_topological(self, branching):
        path = DiagnosticsEngine().generate_study_path("new", branching, ["f"], 30)
        assert set(path.ordered_concepts) == {"a", "b", "c", "d", "e", "f"}
        pos = {c: i for i, c in enumerate(path.ordered_concepts)}
        for edge in branching.edges():
            assert pos[edge.source] < pos[edge.target]

    def test_weakest_prerequisites(self, engine, graph):
        weakest = engine.get_weakest_prerequisites("u1", graph, "C")
        assert [w.concept_id for w in weakest] == ["B", "A"]
        assert weakest[0].confidence == 0.3

    def test_recommend_next(self, engine, graph):
        # B is ready (A known); C still waits on B
        assert engine.recommend_next_concepts("u1", graph, ["C"]) == ["B"]

    def test_recommend_respects_limit(self, graph):
        eng = DiagnosticsEngine()
        assert eng.recommend_next_concepts("new", graph, ["C"], limit=0) == []
        assert eng.recommend_next_concepts("new", graph, ["C"]) == ["A"]


# =========================================================================
# Test: Stats & review
# =========================================================================


class TestStatsAndReview:
    def test_stats(self, engine):
        engine.update_progress("u1", "C", confidence=0.0, time_spent_seconds=600)
        stats = engine.get_study_stats("u1")
        assert stats.total_concepts == 3
        assert stats.strong_concepts == 1
        assert stats.weak_concepts == 1
        assert stats.unstarted_concepts == 1
        assert stats.total_time_spent_minutes == 10
        assert stats.average_confidence == 0.4

    def test_stats_empty_user(self, engine):
        assert engine.get_study_stats("nobody").total_concepts == 0

    def test_needs_review(self, engine):
        later = NOW + timedelta(days=8)
        assert engine.needs_review("u1", "A", now=later)
        assert not engine.needs_review("u1", "A", now=NOW + timedelta(days=2))
        assert not engine.needs_review("u1", "C", now=later)

    def test_zero_confidence_never_due(self, engine):
        engine.update_progress("u1", "C", confidence=0.0, last_reviewed=NOW)
        assert not engine.needs_review("u1", "C", now=NOW + timedelta(days=30))

    def test_review_list_most_overdue_first(self, engine):
        engine.update_progress(
            "u1", "B", confidence=0.3, last_reviewed=NOW - timedelta(days=5)
        )
        due = engine.get_review_list("u1", now=NOW + timedelta(days=10))
        assert due == ["B", "A"]
        assert engine.get_review_list("u1", limit=1, now=NOW + timedelta(days=10)) == ["B"]


# =========================================================================
# Test: Snapshots
# =========================================================================


class TestSnapshots:
    def test_export_import(self, engine):
        payload = engine.export_progress("u1")
        assert len(json.loads(payload)) == 2

        other = DiagnosticsEngine()
        assert other.import_progress("u2", payload) == 2
        assert other.get_confidence("u2", "A") == 0.9
        assert other.get_progress("u2", "A").user_id == "u2"
        assert other.users() == ["u2"]

    def test_import_overwrites(self, engine):
        engine.import_progress(
            "u1", [{"user_id": "u1", "concept_id": "A", "confidence": 0.1}]
        )
        progress = engine.get_progress("u1", "A")
        assert progress.confidence == 0.1
        assert progress.review_count == 0
