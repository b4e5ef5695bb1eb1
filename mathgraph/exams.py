"""
Exam overlay: maps an exam ID to a concept selection with required depths.

Same selection pattern as the curriculum overlay (selection → prerequisite
closure → minus excluded → induced subgraph), plus membership and depth
queries, profile comparison, study plans, and coverage-based readiness
scoring against a caller-supplied set of known concepts.
"""

import json
import logging
from typing import Dict, Iterable, List, Optional, Set

from mathgraph.graph import MathGraph, select_with_closure
from mathgraph.models import (
    CurriculumSystem,
    DepthDifference,
    DepthLevel,
    ExamComparison,
    ExamProfile,
    ExamReadiness,
    ExamStudyPlan,
)
from mathgraph.utils import unique_ids

logger = logging.getLogger(__name__)


def _coverage(concepts: List[str], missing: List[str]) -> float:
    """Percent of *concepts* not in *missing*, one decimal; 100 for an empty list."""
    if not concepts:
        return 100.0
    return round((len(concepts) - len(missing)) / len(concepts) * 100, 1)


class ExamOverlay:
    """In-memory store of ``ExamProfile`` records keyed by exam ID."""

    def __init__(self) -> None:
        self._profiles: Dict[str, ExamProfile] = {}

    def add_profile(self, profile: ExamProfile) -> None:
        self._profiles[profile.id] = profile

    def get_profile(self, exam_id: str) -> Optional[ExamProfile]:
        return self._profiles.get(exam_id)

    def profiles(self) -> List[ExamProfile]:
        return list(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)

    def get_exams_by_system(self, system: CurriculumSystem) -> List[ExamProfile]:
        return [p for p in self._profiles.values() if p.system == system]

    def get_exams_by_year_level(self, year_level: int) -> List[ExamProfile]:
        return [p for p in self._profiles.values() if p.year_level == year_level]

    # ==================== Membership ====================

    def get_all_required_concepts(self, exam_id: str) -> List[str]:
        profile = self.get_profile(exam_id)
        return list(profile.required_concepts) if profile else []

    def is_concept_required(self, concept_id: str, exam_id: str) -> bool:
        profile = self.get_profile(exam_id)
        return profile is not None and concept_id in profile.required_concepts

    def is_concept_optional(self, concept_id: str, exam_id: str) -> bool:
        profile = self.get_profile(exam_id)
        return profile is not None and concept_id in profile.optional_concepts

    def is_concept_excluded(self, concept_id: str, exam_id: str) -> bool:
        profile = self.get_profile(exam_id)
        return profile is not None and concept_id in profile.excluded_concepts

    def get_concept_depth_for_exam(
        self, concept_id: str, exam_id: str
    ) -> Optional[DepthLevel]:
        profile = self.get_profile(exam_id)
        if profile is None:
            return None
        return profile.typical_depth.get(concept_id)

    # ==================== Graph views ====================

    def get_exam_subgraph(
        self, graph: MathGraph, exam_id: str, include_optional: bool = False
    ) -> MathGraph:
        """Induced subgraph for an exam.  Unknown exam → empty graph."""
        profile = self.get_profile(exam_id)
        if profile is None:
            logger.debug("No exam profile for %s.", exam_id)
            return MathGraph()

        selected = list(profile.required_concepts)
        if include_optional:
            selected += profile.optional_concepts
        concept_ids = select_with_closure(graph, selected, profile.excluded_concepts)
        return graph.get_subgraph(concept_ids)

    def get_study_plan(
        self,
        graph: MathGraph,
        exam_id: str,
        known_concepts: Optional[Set[str]] = None,
        include_optional: bool = False,
    ) -> ExamStudyPlan:
        """Topologically ordered concepts still to learn for *exam_id*.

        The exam's own selection is always kept; prerequisites pulled in
        by the closure are dropped when the profile excludes them.
        Concepts in *known_concepts* are skipped.  ``gaps`` lists ordered
        concepts that are neither required nor optional, i.e. supporting
        prerequisites.
        """
        profile = self.get_profile(exam_id)
        if profile is None:
            return ExamStudyPlan()

        known = known_concepts or set()
        selected = list(profile.required_concepts)
        if include_optional:
            selected += profile.optional_concepts
        selected = unique_ids(selected)

        excluded = set(profile.excluded_concepts)
        study_set = list(selected)
        seen = set(selected)
        for concept_id in selected:
            for prereq in graph.prerequisite_closure(concept_id):
                if prereq not in excluded and prereq not in seen:
                    seen.add(prereq)
                    study_set.append(prereq)

        ordered = graph.topological_sort(c for c in study_set if c not in known)
        required = set(profile.required_concepts)
        optional = set(profile.optional_concepts)
        return ExamStudyPlan(
            ordered=ordered,
            required=[c for c in ordered if c in required],
            optional=[c for c in ordered if c in optional],
            gaps=[c for c in ordered if c not in required and c not in optional],
            total_concepts=len(ordered),
        )

    # ==================== Comparison & readiness ====================

    def compare_exams(self, left_id: str, right_id: str) -> ExamComparison:
        """Shared / exclusive concepts plus depth mismatches on shared ones."""
        left = self.get_profile(left_id)
        right = self.get_profile(right_id)
        if left is None or right is None:
            return ExamComparison()

        left_concepts = unique_ids(left.required_concepts + left.optional_concepts)
        right_concepts = unique_ids(right.required_concepts + right.optional_concepts)
        left_set, right_set = set(left_concepts), set(right_concepts)

        result = ExamComparison()
        for concept_id in left_concepts:
            if concept_id not in right_set:
                result.only_left.append(concept_id)
                continue
            result.shared.append(concept_id)
            left_depth = left.typical_depth.get(concept_id)
            right_depth = right.typical_depth.get(concept_id)
            if left_depth != right_depth:
                result.depth_differences.append(
                    DepthDifference(
                        concept_id=concept_id,
                        left_depth=left_depth,
                        right_depth=right_depth,
                    )
                )
        result.only_right = [c for c in right_concepts if c not in left_set]
        return result

    def estimate_exam_readiness(
        self, exam_id: str, known_concepts: Set[str]
    ) -> ExamReadiness:
        """Coverage of required/optional concepts by *known_concepts*, in percent."""
        profile = self.get_profile(exam_id)
        if profile is None:
            return ExamReadiness()

        missing_required = [
            c for c in profile.required_concepts if c not in known_concepts
        ]
        missing_optional = [
            c for c in profile.optional_concepts if c not in known_concepts
        ]
        return ExamReadiness(
            required_coverage=_coverage(profile.required_concepts, missing_required),
            optional_coverage=_coverage(profile.optional_concepts, missing_optional),
            missing_required=missing_required,
            missing_optional=missing_optional,
        )

    # ==================== Serialisation ====================

    def export_profiles(self) -> str:
        return json.dumps([p.model_dump(mode="json") for p in self._profiles.values()])

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "ExamOverlay":
        overlay = cls()
        for record in records:
            overlay.add_profile(ExamProfile.model_validate(record))
        logger.info("Loaded %d exam profile(s).", len(overlay))
        return overlay

    @classmethod
    def from_json(cls, payload: str) -> "ExamOverlay":
        return cls.from_records(json.loads(payload))
