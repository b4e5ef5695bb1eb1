"""
JSON file persistence for graph snapshots, overlay profiles, and progress.

Provides:
- ``save_graph`` / ``load_graph``: single-line snapshot JSON.
- ``load_curriculum_file`` / ``load_exam_file``: arrays of mapping /
  profile records, loaded wholesale into an overlay.
- ``save_progress`` / ``load_progress``: one user's progress records.
"""

import json
import logging
import os

from mathgraph.curriculum import CurriculumOverlay
from mathgraph.diagnostics import DiagnosticsEngine
from mathgraph.exams import ExamOverlay
from mathgraph.graph import MathGraph

logger = logging.getLogger(__name__)


def _ensure_parent(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read()


# =========================================================================
# Graph snapshots
# =========================================================================


def save_graph(graph: MathGraph, path: str) -> None:
    _ensure_parent(path)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(graph.export_json())
    logger.info(
        "Graph saved → %s (%d nodes, %d edges)", path, len(graph), graph.edge_count
    )


def load_graph(path: str, missing_ok: bool = True) -> MathGraph:
    """Load a snapshot; an absent file gives an empty graph when *missing_ok*."""
    if not os.path.isfile(path):
        if not missing_ok:
            raise FileNotFoundError(path)
        logger.warning("No graph snapshot at %s, starting empty.", path)
        return MathGraph()
    graph = MathGraph.from_json(_read(path))
    logger.info(
        "Graph loaded ← %s (%d nodes, %d edges)", path, len(graph), graph.edge_count
    )
    return graph


# =========================================================================
# Overlay profile files
# =========================================================================


def load_curriculum_file(path: str) -> CurriculumOverlay:
    return CurriculumOverlay.from_json(_read(path))


def load_exam_file(path: str) -> ExamOverlay:
    return ExamOverlay.from_json(_read(path))


def save_curriculum_file(overlay: CurriculumOverlay, path: str) -> None:
    _ensure_parent(path)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(overlay.export_mappings())


def save_exam_file(overlay: ExamOverlay, path: str) -> None:
    _ensure_parent(path)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(overlay.export_profiles())


# =========================================================================
# Progress snapshots
# =========================================================================


def save_progress(diagnostics: DiagnosticsEngine, user_id: str, path: str) -> None:
    _ensure_parent(path)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(diagnostics.export_progress(user_id))
    logger.info("Progress for %s saved → %s", user_id, path)


def load_progress(diagnostics: DiagnosticsEngine, user_id: str, path: str) -> int:
    """Import *path* into *diagnostics* for *user_id*; returns the record count."""
    return diagnostics.import_progress(user_id, json.loads(_read(path)))
