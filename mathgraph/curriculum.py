"""
Curriculum overlay: maps (education system, year level) to a concept selection.

The overlay never mutates the graph.  It selects the required (and
optionally the optional) concepts of a mapping, extends them with their
prerequisite closure, drops excluded concepts, and hands the result to
``MathGraph.get_subgraph``.
"""

import json
import logging
import math
from typing import Dict, Iterable, List, Optional, Set, Tuple

from mathgraph.graph import MathGraph, select_with_closure
from mathgraph.models import (
    CurriculumMapping,
    CurriculumSystem,
    DepthLevel,
    ProgramComparison,
)
from mathgraph.utils import unique_ids

logger = logging.getLogger(__name__)

# Minutes of nominal study per concept before the complexity multiplier.
BASE_MINUTES_PER_CONCEPT = 30


class CurriculumOverlay:
    """In-memory store of ``CurriculumMapping`` records keyed by (system, year)."""

    def __init__(self) -> None:
        self._mappings: Dict[Tuple[str, int], CurriculumMapping] = {}

    def add_mapping(self, mapping: CurriculumMapping) -> None:
        self._mappings[(mapping.system, mapping.year_level)] = mapping

    def get_mapping(
        self, system: CurriculumSystem, year_level: int
    ) -> Optional[CurriculumMapping]:
        return self._mappings.get((system, year_level))

    def mappings(self) -> List[CurriculumMapping]:
        return list(self._mappings.values())

    def __len__(self) -> int:
        return len(self._mappings)

    # ==================== Membership ====================

    def get_all_concepts(self, system: CurriculumSystem, year_level: int) -> List[str]:
        """Required followed by optional concepts; empty for an unknown mapping."""
        mapping = self.get_mapping(system, year_level)
        if mapping is None:
            return []
        return list(mapping.concepts) + list(mapping.optional_concepts)

    def get_required_concepts(
        self, system: CurriculumSystem, year_level: int
    ) -> List[str]:
        mapping = self.get_mapping(system, year_level)
        return list(mapping.concepts) if mapping else []

    def is_concept_excluded(
        self, concept_id: str, system: CurriculumSystem, year_level: int
    ) -> bool:
        mapping = self.get_mapping(system, year_level)
        return mapping is not None and concept_id in mapping.excluded_concepts

    def get_concept_depth(
        self, concept_id: str, system: CurriculumSystem, year_level: int
    ) -> Optional[DepthLevel]:
        """``"core"`` for required concepts, ``"intro"`` for optional ones."""
        mapping = self.get_mapping(system, year_level)
        if mapping is None:
            return None
        if concept_id in mapping.concepts:
            return "core"
        if concept_id in mapping.optional_concepts:
            return "intro"
        return None

    # ==================== Graph views ====================

    def get_curriculum_subgraph(
        self,
        graph: MathGraph,
        system: CurriculumSystem,
        year_level: int,
        include_prerequisites: bool = True,
        include_optional: bool = False,
    ) -> MathGraph:
        """Induced subgraph for a mapping.  Unknown mapping → empty graph."""
        mapping = self.get_mapping(system, year_level)
        if mapping is None:
            logger.debug("No curriculum mapping for %s year %d.", system, year_level)
            return MathGraph()

        selected = list(mapping.concepts)
        if include_optional:
            selected += mapping.optional_concepts
        concept_ids = select_with_closure(
            graph, selected, mapping.excluded_concepts, include_prerequisites
        )
        return graph.get_subgraph(concept_ids)

    def get_progression_path(
        self,
        graph: MathGraph,
        system: CurriculumSystem,
        start_year: int,
        end_year: int,
    ) -> List[str]:
        """Topological order of the required concepts from *start_year* to *end_year*."""
        concepts: List[str] = []
        for year in range(start_year, end_year + 1):
            concepts.extend(self.get_required_concepts(system, year))
        return graph.topological_sort(concepts)

    def compare_programs(
        self,
        left_system: CurriculumSystem,
        left_year: int,
        right_system: CurriculumSystem,
        right_year: int,
    ) -> ProgramComparison:
        left = unique_ids(self.get_all_concepts(left_system, left_year))
        right = unique_ids(self.get_all_concepts(right_system, right_year))
        right_set, left_set = set(right), set(left)
        return ProgramComparison(
            shared=[c for c in left if c in right_set],
            only_left=[c for c in left if c not in right_set],
            only_right=[c for c in right if c not in left_set],
        )

    @staticmethod
    def estimate_study_time(
        graph: MathGraph,
        concept_ids: Iterable[str],
        known_concepts: Optional[Set[str]] = None,
    ) -> int:
        """Whole hours to cover the unknown concepts, scaled by complexity."""
        known = known_concepts or set()
        total_minutes = 0.0
        for concept_id in concept_ids:
            if concept_id in known:
                continue
            node = graph.get_node(concept_id)
            if node is not None:
                total_minutes += BASE_MINUTES_PER_CONCEPT * (1 + node.complexity / 10)
        return math.ceil(total_minutes / 60)

    # ==================== Serialisation ====================

    def export_mappings(self) -> str:
        return json.dumps([m.model_dump(mode="json") for m in self._mappings.values()])

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "CurriculumOverlay":
        overlay = cls()
        for record in records:
            overlay.add_mapping(CurriculumMapping.model_validate(record))
        logger.info("Loaded %d curriculum mapping(s).", len(overlay))
        return overlay

    @classmethod
    def from_json(cls, payload: str) -> "CurriculumOverlay":
        return cls.from_records(json.loads(payload))

