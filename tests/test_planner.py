"""
pytest suite for the study planner and its CLI.
"""

import json
import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from mathgraph import storage
from mathgraph.curriculum import CurriculumOverlay
from mathgraph.diagnostics import DiagnosticsEngine
from mathgraph.exams import ExamOverlay
from mathgraph.graph import MathGraph
from mathgraph.models import (
    ConceptNode,
    CurriculumMapping,
    DependencyEdge,
    ExamProfile,
    PlannerSettings,
    StudyPath,
)
from mathgraph.planner import StudyPlanner, load_settings, main, save_settings


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture()
def graph():
    """A ← B ← C ← D plus a separate E ← F."""
    g = MathGraph()
    for node_id in "ABCDEF":
        g.add_node(ConceptNode(id=node_id, title=node_id, complexity=0))
    for src, tgt in [("A", "B"), ("B", "C"), ("C", "D"), ("E", "F")]:
        g.add_edge(DependencyEdge(source=src, target=tgt, type="REQUIRES"))
    return g


@pytest.fixture()
def planner(graph):
    curriculum = CurriculumOverlay()
    curriculum.add_mapping(CurriculumMapping(
        id="vce_12", system="VCE", year_level=12, concepts=["C", "F"],
    ))
    exams = ExamOverlay()
    exams.add_profile(ExamProfile(
        id="methods", system="VCE", year_level=12, required_concepts=["C"],
    ))
    exams.add_profile(ExamProfile(
        id="specialist", system="VCE", year_level=12, required_concepts=["D", "F"],
    ))
    diagnostics = DiagnosticsEngine()
    diagnostics.update_progress("u1", "A", confidence=0.9)
    diagnostics.update_progress("u1", "E", confidence=0.4)
    return StudyPlanner(graph, curriculum, exams, diagnostics)


@pytest.fixture()
def lenient(graph, planner):
    """Same overlays, known threshold 0.4, and A at confidence 0.5."""
    diagnostics = DiagnosticsEngine()
    diagnostics.update_progress("u1", "A", confidence=0.5)
    return StudyPlanner(
        graph, planner.curriculum, planner.exams, diagnostics,
        PlannerSettings(known_threshold=0.4),
    )


def _path(total_hours: int, days: int, n_concepts: int) -> StudyPath:
    return StudyPath(
        user_id="u1",
        time_remaining_days=days,
        ordered_concepts=[f"c{i}" for i in range(n_concepts)],
        estimated_total_hours=total_hours,
    )


# =========================================================================
# Test: Study paths
# =========================================================================


class TestStudyPaths:
    def test_exam_path(self, planner):
        path = planner.generate_exam_study_path("u1", "methods", 30)
        assert path.ordered_concepts == ["B", "C"]
        assert path.target_exam == "methods"
        assert path.curriculum == "VCE"
        assert path.year_level == 12

    def test_unknown_exam(self, planner):
        assert planner.generate_exam_study_path("u1", "ghost", 30) is None

    def test_curriculum_path(self, planner):
        path = planner.generate_curriculum_study_path("u1", "VCE", 12, 30)
        assert path.ordered_concepts == ["B", "E", "C", "F"]
        assert path.target_exam == "VCE_year12"

    def test_unknown_curriculum(self, planner):
        assert planner.generate_curriculum_study_path("u1", "IB", 12, 30) is None

    def test_optimize_order_pulls_weak_forward(self, planner):
        order = planner.optimize_study_order("u1", ["D", "F"])
        assert order[0] == "E"
        pos = {c: i for i, c in enumerate(order)}
        assert pos["B"] < pos["C"] < pos["D"]
        assert pos["E"] < pos["F"]
        assert "A" not in order

    def test_optimize_order_plain(self, planner):
        order = planner.optimize_study_order(
            "u1", ["D", "F"], prioritize_weak_prereqs=False
        )
        assert order == ["B", "E", "C", "F", "D"]


# =========================================================================
# Test: Analysis
# =========================================================================


class TestAnalysis:
    def test_critical_path(self, planner):
        result = planner.identify_critical_path(["D"])
        assert result.critical_concepts == ["A", "B", "C", "D"]
        assert result.depth == 3
        assert result.total_prerequisites == 3

    def test_critical_path_multiple_targets(self, planner):
        result = planner.identify_critical_path(["C", "F"])
        assert result.depth == 2
        assert result.total_prerequisites == 3

    def test_critical_path_terminates_on_cycle(self, planner, graph):
        graph.add_edge(DependencyEdge(source="D", target="A", type="REQUIRES"))
        result = planner.identify_critical_path(["D"])
        assert result.total_prerequisites == 3
        assert result.depth <= 3

    def test_daily_load(self, planner):
        load = planner.estimate_daily_load(_path(90, 30, 45))
        assert load.daily_hours == 3.0
        assert load.concepts_per_day == 2
        assert load.weeks_required == 5
        assert not load.feasible

    def test_daily_load_feasible(self, planner):
        assert planner.estimate_daily_load(_path(10, 10, 5)).feasible
        assert not planner.estimate_daily_load(_path(10, 10, 5), max_daily_hours=0.5).feasible

    def test_daily_load_no_days(self, planner):
        load = planner.estimate_daily_load(_path(5, 0, 3))
        assert load.daily_hours == 5.0
        assert load.concepts_per_day == 3
        assert not load.feasible

    def test_review_schedule(self, planner):
        schedule = planner.suggest_review_schedule(
            "u1", _path(3, 2, 5), start=date(2026, 3, 1)
        )
        assert [s.day for s in schedule] == [date(2026, 3, 1), date(2026, 3, 2)]
        assert schedule[0].concepts == ["c0", "c1", "c2"]
        assert schedule[1].concepts == ["c3", "c4"]

    def test_review_schedule_skips_empty_days(self, planner):
        schedule = planner.suggest_review_schedule("u1", _path(1, 5, 2))
        assert len(schedule) == 2
        assert planner.suggest_review_schedule("u1", _path(1, 0, 2)) == []

    def test_compare_study_paths(self, planner):
        result = planner.compare_study_paths("u1", "methods", "specialist")
        assert result.shared == ["B", "C"]
        assert result.left_only == []
        assert set(result.right_only) == {"D", "E", "F"}
        assert planner.compare_study_paths("u1", "methods", "ghost") is None


# =========================================================================
# Test: Settings & CLI
# =========================================================================


class TestSettingsAndCli:
    def test_settings_round_trip(self, tmp_path):
        path = str(tmp_path / "cfg" / "planner.json")
        save_settings(PlannerSettings(max_daily_hours=4.0), path)
        assert load_settings(path).max_daily_hours == 4.0

    def test_settings_threshold_used(self, lenient):
        assert "A" not in lenient.optimize_study_order("u1", ["C"])

    def test_lenient_threshold_exam_path(self, lenient):
        path = lenient.generate_exam_study_path("u1", "methods", 10)
        assert path.ordered_concepts == ["B", "C"]
        assert "A" not in path.confidence_map
        assert path.estimated_total_hours == 1

    def test_lenient_threshold_curriculum_path(self, lenient):
        path = lenient.generate_curriculum_study_path("u1", "VCE", 12, 10)
        assert path.ordered_concepts == ["B", "E", "C", "F"]

    def test_lenient_threshold_recommendations(self, lenient):
        diagnostics = lenient.diagnostics
        graph = lenient.graph
        assert diagnostics.recommend_next_concepts("u1", graph, ["C"], threshold=0.4) == ["B"]
        # at the default threshold A (0.5) is weak, so it is the next step
        assert diagnostics.recommend_next_concepts("u1", graph, ["C"]) == ["A"]

    def test_main_writes_report(self, planner, graph, tmp_path):
        graph_path = str(tmp_path / "graph.json")
        exams_path = str(tmp_path / "exams.json")
        progress_path = str(tmp_path / "progress.json")
        out_path = str(tmp_path / "report.json")
        storage.save_graph(graph, graph_path)
        storage.save_exam_file(planner.exams, exams_path)
        storage.save_progress(planner.diagnostics, "u1", progress_path)

        with pytest.raises(SystemExit) as exc:
            main([
                "--graph", graph_path, "--exams", exams_path,
                "--progress", progress_path, "--user", "u1",
                "--exam", "methods", "--days", "10", "--out", out_path,
            ])
        assert exc.value.code == 0

        with open(out_path, encoding="utf-8") as fh:
            report = json.load(fh)
        assert report["study_path"]["ordered_concepts"] == ["B", "C"]
        assert report["daily_load"]["feasible"] is True
        assert report["next_concepts"] == ["B"]
        assert report["review_due"] == []

    def test_main_missing_graph(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main([
                "--graph", str(tmp_path / "missing.json"),
                "--user", "u1", "--concepts", "A",
            ])
        assert exc.value.code == 1

    def test_main_unknown_exam(self, graph, tmp_path):
        graph_path = str(tmp_path / "graph.json")
        storage.save_graph(graph, graph_path)
        with pytest.raises(SystemExit) as exc:
            main(["--graph", graph_path, "--user", "u1", "--exam", "ghost"])
        assert exc.value.code == 1
