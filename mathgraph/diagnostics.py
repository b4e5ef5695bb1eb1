"""
Per-user diagnostics: confidence tracking, gap detection, study paths.

``DiagnosticsEngine`` is the only owner of user progress, stored per user
and then per concept.  A concept nobody has recorded progress for has
confidence 0 ("not started").  There is no terminal "mastered" state:
confidence at or above a threshold (0.7 by default) is what "known" means.

Time estimate for one concept::

    hours = base_hours × (1 + complexity / 10) × (1 − confidence × 0.5)

so confidence discounts at most half of the nominal time.
"""

import json
import logging
import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Union

import numpy as np

from mathgraph.graph import MathGraph
from mathgraph.models import (
    ConceptProgress,
    CurriculumSystem,
    GapReport,
    StudyPath,
    StudyStats,
    WeakPrerequisite,
)
from mathgraph.utils import days_between, unique_ids, utcnow

logger = logging.getLogger(__name__)

KNOWN_THRESHOLD = 0.7
BASE_HOURS = 0.5
REVIEW_AFTER_DAYS = 7.0
MAX_CONFIDENCE_DISCOUNT = 0.5


# =========================================================================
# Time estimation
# =========================================================================


def estimate_hours_vectorised(
    complexities: np.ndarray,
    confidences: np.ndarray,
    base_hours: float = BASE_HOURS,
) -> np.ndarray:
    """Per-concept study hours.

    Args:
        complexities: ``(N,)`` node complexities in ``[0, 10]``.
        confidences: ``(N,)`` user confidences in ``[0, 1]``.
        base_hours: Nominal hours for a complexity-0 concept.

    Returns:
        ``(N,)`` float64 hour estimates.
    """
    complexities = np.asarray(complexities, dtype=np.float64)
    confidences = np.asarray(confidences, dtype=np.float64)
    return (
        base_hours
        * (1.0 + complexities / 10.0)
        * (1.0 - confidences * MAX_CONFIDENCE_DISCOUNT)
    )


def total_hours(hours: np.ndarray) -> int:
    """Sum of *hours*, rounded up to whole hours."""
    # round first so float noise (e.g. 3.0000000004) does not add an hour
    return int(math.ceil(round(float(np.sum(hours)), 9)))


# =========================================================================
# Engine
# =========================================================================


class DiagnosticsEngine:
    """Owns ``ConceptProgress`` per user; computes gaps and study paths.

    Not safe for concurrent mutation of the same user's progress.
    """

    def __init__(self, base_hours: float = BASE_HOURS) -> None:
        self.base_hours = base_hours
        self._progress: Dict[str, Dict[str, ConceptProgress]] = {}

    # ==================== Progress state ====================

    def update_progress(
        self,
        user_id: str,
        concept_id: str,
        confidence: Optional[float] = None,
        time_spent_seconds: float = 0.0,
        last_reviewed: Optional[datetime] = None,
    ) -> ConceptProgress:
        """Record one review of *concept_id*.

        An explicit *confidence* replaces the stored one; otherwise it is
        kept (0 for a first review).  The review count always goes up by
        one and time spent accumulates.
        """
        user_progress = self._progress.setdefault(user_id, {})
        existing = user_progress.get(concept_id)

        if confidence is None:
            confidence = existing.confidence if existing else 0.0

        progress = ConceptProgress(
            user_id=user_id,
            concept_id=concept_id,
            confidence=confidence,
            last_reviewed=last_reviewed or utcnow(),
            review_count=(existing.review_count if existing else 0) + 1,
            time_spent_seconds=(
                (existing.time_spent_seconds if existing else 0.0)
                + time_spent_seconds
            ),
        )
        user_progress[concept_id] = progress
        logger.debug(
            "Progress %s/%s: confidence=%.2f reviews=%d",
            user_id, concept_id, progress.confidence, progress.review_count,
        )
        return progress

    def get_progress(self, user_id: str, concept_id: str) -> Optional[ConceptProgress]:
        return self._progress.get(user_id, {}).get(concept_id)

    def get_user_progress(self, user_id: str) -> List[ConceptProgress]:
        return list(self._progress.get(user_id, {}).values())

    def get_confidence(self, user_id: str, concept_id: str) -> float:
        progress = self.get_progress(user_id, concept_id)
        return progress.confidence if progress else 0.0

    def get_known_concepts(
        self, user_id: str, threshold: float = KNOWN_THRESHOLD
    ) -> Set[str]:
        return {
            p.concept_id
            for p in self.get_user_progress(user_id)
            if p.confidence >= threshold
        }

    # ==================== Gaps & paths ====================

    def detect_gaps(
        self,
        user_id: str,
        graph: MathGraph,
        target_concepts: Iterable[str],
        confidence_threshold: float = KNOWN_THRESHOLD,
    ) -> GapReport:
        """Classify the targets and their prerequisite closure by confidence.

        * ``missing``: confidence 0
        * ``weak``: confidence in (0, threshold)
        * ``strong_prereqs``: known and not itself a target

        Known targets appear in none of the three lists.
        """
        targets = unique_ids(target_concepts)
        target_set = set(targets)

        all_required: List[str] = []
        for concept_id in targets:
            all_required.extend(graph.prerequisite_closure(concept_id))
            all_required.append(concept_id)
        all_required = unique_ids(all_required)

        report = GapReport()
        for concept_id in all_required:
            confidence = self.get_confidence(user_id, concept_id)
            if confidence == 0:
                report.missing.append(concept_id)
            elif confidence < confidence_threshold:
                report.weak.append(concept_id)
            elif concept_id not in target_set:
                report.strong_prereqs.append(concept_id)
        return report

    def generate_study_path(
        self,
        user_id: str,
        graph: MathGraph,
        target_concepts: Iterable[str],
        time_remaining_days: int,
        target_exam: str = "unknown",
        curriculum: Optional[CurriculumSystem] = None,
        year_level: int = 0,
        confidence_threshold: float = KNOWN_THRESHOLD,
    ) -> StudyPath:
        """Missing and weak concepts in topological order, with an hour estimate.

        *confidence_threshold* decides what counts as weak; concepts at or
        above it stay out of the path.
        """
        gaps = self.detect_gaps(
            user_id, graph, target_concepts, confidence_threshold
        )
        ordered = graph.topological_sort(gaps.missing + gaps.weak)

        confidence_map = {c: self.get_confidence(user_id, c) for c in ordered}
        estimated = [c for c in ordered if graph.has_node(c)]
        hours = estimate_hours_vectorised(
            [graph.get_node(c).complexity for c in estimated],
            [confidence_map[c] for c in estimated],
            base_hours=self.base_hours,
        )

        path = StudyPath(
            user_id=user_id,
            target_exam=target_exam,
            curriculum=curriculum,
            year_level=year_level,
            time_remaining_days=time_remaining_days,
            ordered_concepts=ordered,
            confidence_map=confidence_map,
            gaps=gaps.missing,
            estimated_total_hours=total_hours(hours),
        )
        logger.info(
            "Study path for %s: %d concept(s), %d hour(s), %d missing, %d weak.",
            user_id, len(ordered), path.estimated_total_hours,
            len(gaps.missing), len(gaps.weak),
        )
        return path

    def get_weakest_prerequisites(
        self, user_id: str, graph: MathGraph, concept_id: str, limit: int = 5
    ) -> List[WeakPrerequisite]:
        """The *limit* lowest-confidence concepts in *concept_id*'s closure."""
        weakest = [
            WeakPrerequisite(concept_id=p, confidence=self.get_confidence(user_id, p))
            for p in graph.prerequisite_closure(concept_id)
        ]
        weakest.sort(key=lambda w: w.confidence)
        return weakest[:limit]

    def recommend_next_concepts(
        self,
        user_id: str,
        graph: MathGraph,
        target_concepts: Iterable[str],
        limit: int = 5,
        threshold: float = KNOWN_THRESHOLD,
    ) -> List[str]:
        """Unknown path concepts whose direct prerequisites are all known.

        Scored by ``(1 − confidence) × 10``; highest first, path order on ties.
        """
        known = self.get_known_concepts(user_id, threshold)
        path = self.generate_study_path(
            user_id, graph, target_concepts, 30, confidence_threshold=threshold
        )

        candidates = []
        for concept_id in path.ordered_concepts:
            if concept_id in known:
                continue
            if all(p in known for p in graph.get_prerequisites(concept_id)):
                priority = (1 - self.get_confidence(user_id, concept_id)) * 10
                candidates.append((priority, concept_id))

        candidates.sort(key=lambda c: c[0], reverse=True)
        return [concept_id for _, concept_id in candidates[:limit]]

    # ==================== Stats & review ====================

    def get_study_stats(
        self, user_id: str, threshold: float = KNOWN_THRESHOLD
    ) -> StudyStats:
        progress = self.get_user_progress(user_id)
        if not progress:
            return StudyStats()

        confidences = np.array([p.confidence for p in progress], dtype=np.float64)
        seconds = np.array([p.time_spent_seconds for p in progress], dtype=np.float64)
        return StudyStats(
            total_concepts=len(progress),
            strong_concepts=int(np.sum(confidences >= threshold)),
            weak_concepts=int(np.sum((confidences > 0) & (confidences < threshold))),
            unstarted_concepts=int(np.sum(confidences == 0)),
            total_time_spent_minutes=int(round(float(seconds.sum()) / 60)),
            average_confidence=round(float(confidences.mean()), 2),
        )

    def needs_review(
        self,
        user_id: str,
        concept_id: str,
        days_since_last_review: float = REVIEW_AFTER_DAYS,
        now: Optional[datetime] = None,
    ) -> bool:
        """Started concepts not reviewed for *days_since_last_review* days.

        Concepts at confidence 0 are never flagged.
        """
        progress = self.get_progress(user_id, concept_id)
        if progress is None or progress.confidence == 0:
            return False
        elapsed = days_between(progress.last_reviewed, now or utcnow())
        return elapsed >= days_since_last_review

    def get_review_list(
        self,
        user_id: str,
        limit: int = 10,
        days_since_last_review: float = REVIEW_AFTER_DAYS,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Concepts due for review, most overdue first."""
        now = now or utcnow()
        due = [
            p
            for p in self.get_user_progress(user_id)
            if self.needs_review(user_id, p.concept_id, days_since_last_review, now)
        ]
        due.sort(key=lambda p: days_between(p.last_reviewed, now), reverse=True)
        return [p.concept_id for p in due[:limit]]

    # ==================== Snapshots ====================

    def export_progress(self, user_id: str) -> str:
        return json.dumps(
            [p.model_dump(mode="json") for p in self.get_user_progress(user_id)]
        )

    def import_progress(
        self, user_id: str, payload: Union[str, List[dict]]
    ) -> int:
        """Load progress records for *user_id*, overwriting by concept ID.

        Counts are replaced, not merged.  Returns the number of records.
        """
        records = json.loads(payload) if isinstance(payload, str) else payload
        user_progress = self._progress.setdefault(user_id, {})
        for record in records:
            progress = ConceptProgress.model_validate(record)
            if progress.user_id != user_id:
                progress = progress.model_copy(update={"user_id": user_id})
            user_progress[progress.concept_id] = progress
        logger.info("Imported %d progress record(s) for %s.", len(records), user_id)
        return len(records)

    def users(self) -> List[str]:
        return list(self._progress)
