"""
Study planner CLI and composition layer.

Usage::

    python -m mathgraph.planner \\
        --graph ./data/graph.json \\
        --exams ./data/exams.json \\
        --progress ./data/progress/alice.json \\
        --user alice --exam vce_methods_3_4 --days 60

``StudyPlanner`` resolves target concepts from an exam profile or a
curriculum mapping, removes what the user already knows, and delegates
ordering and time estimation to ``DiagnosticsEngine``.  On top of the
resulting ``StudyPath`` it answers daily-load, critical-path, and
review-calendar questions.
"""

import argparse
import heapq
import json
import logging
import math
import os
import sys
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set, get_args

from mathgraph.curriculum import CurriculumOverlay
from mathgraph.diagnostics import DiagnosticsEngine
from mathgraph.exams import ExamOverlay
from mathgraph.graph import MathGraph
from mathgraph.models import (
    CriticalPath,
    CurriculumSystem,
    DailyLoad,
    PlannerSettings,
    ReviewSession,
    StudyPath,
    StudyPathComparison,
)
from mathgraph.utils import setup_logging, timed, unique_ids, utcnow

logger = logging.getLogger(__name__)


class StudyPlanner:
    """Composes the graph, both overlays, and the diagnostics engine."""

    def __init__(
        self,
        graph: MathGraph,
        curriculum: CurriculumOverlay,
        exams: ExamOverlay,
        diagnostics: DiagnosticsEngine,
        settings: Optional[PlannerSettings] = None,
    ) -> None:
        self.graph = graph
        self.curriculum = curriculum
        self.exams = exams
        self.diagnostics = diagnostics
        self.settings = settings or PlannerSettings()

    def _known(self, user_id: str) -> Set[str]:
        return self.diagnostics.get_known_concepts(
            user_id, self.settings.known_threshold
        )

    # ==================== Study paths ====================

    def generate_exam_study_path(
        self,
        user_id: str,
        exam_id: str,
        time_remaining_days: int,
        include_optional: bool = False,
    ) -> Optional[StudyPath]:
        """Study path for an exam, or ``None`` when the exam is unknown."""
        profile = self.exams.get_profile(exam_id)
        if profile is None:
            logger.warning("Unknown exam %s.", exam_id)
            return None

        plan = self.exams.get_study_plan(
            self.graph, exam_id, self._known(user_id), include_optional
        )
        return self.diagnostics.generate_study_path(
            user_id,
            self.graph,
            plan.ordered,
            time_remaining_days,
            target_exam=exam_id,
            curriculum=profile.system,
            year_level=profile.year_level,
            confidence_threshold=self.settings.known_threshold,
        )

    def generate_curriculum_study_path(
        self,
        user_id: str,
        system: CurriculumSystem,
        year_level: int,
        time_remaining_days: int,
    ) -> Optional[StudyPath]:
        """Study path for a curriculum year, or ``None`` when unmapped."""
        mapping = self.curriculum.get_mapping(system, year_level)
        if mapping is None:
            logger.warning("Unknown curriculum %s year %d.", system, year_level)
            return None

        known = self._known(user_id)
        targets = [c for c in mapping.concepts if c not in known]
        return self.diagnostics.generate_study_path(
            user_id,
            self.graph,
            targets,
            time_remaining_days,
            target_exam=f"{system}_year{year_level}",
            curriculum=system,
            year_level=year_level,
            confidence_threshold=self.settings.known_threshold,
        )

    def optimize_study_order(
        self,
        user_id: str,
        target_concepts: Iterable[str],
        prioritize_weak_prereqs: bool = True,
    ) -> List[str]:
        """Topological order of the unknown closure, weak concepts pulled forward.

        The bias is applied inside Kahn's algorithm: among concepts whose
        prerequisites are already placed, weak ones go first, then the
        plain topological position.  A weak concept therefore never jumps
        ahead of its own prerequisites.
        """
        targets = unique_ids(target_concepts)
        known = self._known(user_id)

        required: List[str] = list(targets)
        for concept_id in targets:
            required.extend(self.graph.prerequisite_closure(concept_id))
        to_study = [c for c in unique_ids(required) if c not in known]
        ordered = self.graph.topological_sort(to_study)
        if not prioritize_weak_prereqs:
            return ordered

        threshold = self.settings.known_threshold
        weak = {
            c
            for c in ordered
            if 0 < self.diagnostics.get_confidence(user_id, c) < threshold
        }
        position = {c: i for i, c in enumerate(ordered)}
        in_degree: Dict[str, int] = {c: 0 for c in ordered}
        children: Dict[str, List[str]] = {c: [] for c in ordered}
        for concept_id in ordered:
            for prereq in self.graph.get_prerequisites(concept_id):
                if prereq in position:
                    children[prereq].append(concept_id)
                    in_degree[concept_id] += 1

        heap = [
            (c not in weak, position[c], c) for c in ordered if in_degree[c] == 0
        ]
        heapq.heapify(heap)
        result: List[str] = []
        while heap:
            _, _, current = heapq.heappop(heap)
            result.append(current)
            for child in children[current]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    heapq.heappush(heap, (child not in weak, position[child], child))
        return result

    # ==================== Analysis ====================

    def identify_critical_path(self, target_concepts: Iterable[str]) -> CriticalPath:
        """Ordered prerequisite closure plus a wave-count depth.

        Depth is the number of breadth-first waves of direct prerequisites
        needed before a target's chain runs out, maximised over targets.
        Waves are not de-duplicated, so on a DAG this matches the longest
        chain; on a cycle expansion stops after one wave per closure member.
        """
        targets = unique_ids(target_concepts)
        closure: List[str] = []
        max_depth = 0

        for concept_id in targets:
            prereqs = self.graph.prerequisite_closure(concept_id)
            closure.extend(prereqs)

            depth = 0
            wave = {concept_id}
            while wave and depth <= len(prereqs):
                nxt = set()
                for c in wave:
                    nxt.update(self.graph.get_prerequisites(c))
                if nxt:
                    depth += 1
                wave = nxt
            max_depth = max(max_depth, min(depth, len(prereqs)))

        all_prereqs = unique_ids(closure)
        return CriticalPath(
            critical_concepts=self.graph.topological_sort(targets + all_prereqs),
            depth=max_depth,
            total_prerequisites=len(all_prereqs),
        )

    def estimate_daily_load(
        self, study_path: StudyPath, max_daily_hours: Optional[float] = None
    ) -> DailyLoad:
        """Hours per day needed to finish *study_path* in its remaining days.

        With no days left the whole load falls on a single day.
        """
        if max_daily_hours is None:
            max_daily_hours = self.settings.max_daily_hours
        total = study_path.estimated_total_hours
        days = study_path.time_remaining_days
        n_concepts = len(study_path.ordered_concepts)

        if days <= 0:
            return DailyLoad(
                daily_hours=float(total),
                concepts_per_day=n_concepts,
                weeks_required=0,
                feasible=total <= max_daily_hours,
            )

        daily = total / days
        return DailyLoad(
            daily_hours=round(daily, 1),
            concepts_per_day=math.ceil(n_concepts / days),
            weeks_required=math.ceil(days / 7),
            feasible=daily <= max_daily_hours,
        )

    def suggest_review_schedule(
        self,
        user_id: str,
        study_path: StudyPath,
        start: Optional[date] = None,
    ) -> List[ReviewSession]:
        """Spread the ordered concepts over the remaining days.

        Every day gets ``ceil(concepts / days)`` concepts until the list runs
        out; days that would get nothing are skipped.
        """
        days = study_path.time_remaining_days
        concepts = study_path.ordered_concepts
        if days <= 0 or not concepts:
            return []

        start = start or utcnow().date()
        per_day = math.ceil(len(concepts) / days)
        schedule: List[ReviewSession] = []
        for day in range(days):
            chunk = concepts[day * per_day:(day + 1) * per_day]
            if chunk:
                schedule.append(
                    ReviewSession(day=start + timedelta(days=day), concepts=chunk)
                )
        logger.debug(
            "Schedule for %s: %d session(s) of up to %d concept(s).",
            user_id, len(schedule), per_day,
        )
        return schedule

    def compare_study_paths(
        self,
        user_id: str,
        left_exam: str,
        right_exam: str,
        time_remaining_days: int = 90,
    ) -> Optional[StudyPathComparison]:
        left = self.generate_exam_study_path(user_id, left_exam, time_remaining_days)
        right = self.generate_exam_study_path(user_id, right_exam, time_remaining_days)
        if left is None or right is None:
            return None

        left_set = set(left.ordered_concepts)
        right_set = set(right.ordered_concepts)
        return StudyPathComparison(
            left_only=[c for c in left.ordered_concepts if c not in right_set],
            right_only=[c for c in right.ordered_concepts if c not in left_set],
            shared=[c for c in left.ordered_concepts if c in right_set],
            left_hours=left.estimated_total_hours,
            right_hours=right.estimated_total_hours,
        )


# =========================================================================
# Settings files
# =========================================================================


def load_settings(path: str) -> PlannerSettings:
    with open(path, "r", encoding="utf-8") as fh:
        settings = PlannerSettings.model_validate(json.load(fh))
    logger.info("Settings loaded ← %s", path)
    return settings


def save_settings(settings: PlannerSettings, path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(settings.model_dump_json(indent=2))
    logger.info("Settings saved → %s", path)


# =========================================================================
# CLI
# =========================================================================


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="python -m mathgraph.planner",
        description="Generate a personalised study path.",
    )
    parser.add_argument("--graph", required=True, help="Graph snapshot JSON.")
    parser.add_argument("--exams", default=None, help="Exam profiles JSON array.")
    parser.add_argument(
        "--curriculum", default=None, help="Curriculum mappings JSON array."
    )
    parser.add_argument("--progress", default=None, help="User progress JSON array.")
    parser.add_argument("--user", required=True)
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--exam", default=None, help="Exam ID to plan for.")
    target.add_argument(
        "--system", default=None, choices=get_args(CurriculumSystem),
        help="Curriculum system, e.g. VCE.",
    )
    target.add_argument("--concepts", nargs="+", default=None, help="Target concept IDs.")
    parser.add_argument("--year", type=int, default=None, help="Curriculum year level.")
    parser.add_argument("--days", type=int, default=30)
    parser.add_argument("--include-optional", action="store_true")
    parser.add_argument("--max-daily-hours", type=float, default=None)
    parser.add_argument("--out", default=None, help="Write the report here.")
    parser.add_argument(
        "--config", type=str, default=None,
        help="Load planner settings from a JSON file.",
    )
    parser.add_argument(
        "--save-config", type=str, default=None,
        help="Save the effective planner settings to a JSON file.",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """CLI entry-point."""
    from mathgraph import storage

    setup_logging()
    args = _parse_args(argv)

    settings = load_settings(args.config) if args.config else PlannerSettings()
    if args.max_daily_hours is not None:
        settings = settings.model_copy(update={"max_daily_hours": args.max_daily_hours})
    if args.include_optional:
        settings = settings.model_copy(update={"include_optional": True})
    if args.save_config:
        save_settings(settings, args.save_config)

    try:
        with timed("Load inputs"):
            graph = storage.load_graph(args.graph, missing_ok=False)
            exams = (
                storage.load_exam_file(args.exams) if args.exams else ExamOverlay()
            )
            curriculum = (
                storage.load_curriculum_file(args.curriculum)
                if args.curriculum else CurriculumOverlay()
            )
            diagnostics = DiagnosticsEngine(base_hours=settings.base_hours)
            if args.progress:
                storage.load_progress(diagnostics, args.user, args.progress)
    except FileNotFoundError as exc:
        logger.error("Input file not found: %s", exc)
        sys.exit(1)

    planner = StudyPlanner(graph, curriculum, exams, diagnostics, settings)

    if args.exam:
        path = planner.generate_exam_study_path(
            args.user, args.exam, args.days, settings.include_optional
        )
    elif args.system:
        if args.year is None:
            logger.error("--system requires --year.")
            sys.exit(1)
        path = planner.generate_curriculum_study_path(
            args.user, args.system, args.year, args.days
        )
    else:
        path = diagnostics.generate_study_path(
            args.user, graph, args.concepts, args.days,
            confidence_threshold=settings.known_threshold,
        )

    if path is None:
        logger.error("No exam profile or curriculum mapping matched the request.")
        sys.exit(1)

    report = {
        "study_path": path.model_dump(mode="json"),
        "daily_load": planner.estimate_daily_load(path).model_dump(mode="json"),
        "schedule": [
            s.model_dump(mode="json")
            for s in planner.suggest_review_schedule(args.user, path)
        ],
        "next_concepts": diagnostics.recommend_next_concepts(
            args.user, graph, path.ordered_concepts,
            threshold=settings.known_threshold,
        ),
        "review_due": diagnostics.get_review_list(
            args.user, days_since_last_review=settings.review_after_days
        ),
    }

    text = json.dumps(report, indent=2)
    if args.out:
        os.makedirs(os.path.dirname(os.path.abspath(args.out)), exist_ok=True)
        with open(args.out, "w", encoding="utf-8") as fh:
            fh.write(text)
        logger.info("📄 Report → %s", args.out)
    else:
        print(text)

    logger.info(
        "✅ Planning complete — concepts=%d, hours=%d, feasible=%s",
        len(path.ordered_concepts),
        path.estimated_total_hours,
        report["daily_load"]["feasible"],
    )
    sys.exit(0)


if __name__ == "__main__":
    main()
