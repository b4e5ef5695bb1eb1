"""
Pydantic models for the math knowledge graph.

Graph records: concept nodes, typed dependency edges, snapshots.
Overlay records: curriculum mappings, exam profiles.
User records: concept progress, study paths.
Derived results returned by the overlays, diagnostics, and planner.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from mathgraph.utils import utcnow


# =========================================================================
# Closed vocabularies
# =========================================================================

NodeType = Literal[
    "concept",
    "formula",
    "theorem",
    "definition",
    "identity",
    "proof",
    "symbol",
]

EdgeType = Literal[
    "REQUIRES",
    "GENERALIZES",
    "SPECIAL_CASE_OF",
    "USED_IN",
    "APPEARS_WITH",
]

DepthLevel = Literal["intro", "core", "advanced", "olympiad"]

CurriculumSystem = Literal[
    "VCE",
    "GCSE",
    "A_LEVEL",
    "IB",
    "AP",
    "SAT",
    "ACT",
    "UNIVERSITY",
    "OLYMPIAD",
]

NODE_TYPES = ("concept", "formula", "theorem", "definition", "identity", "proof", "symbol")


# =========================================================================
# Graph records
# =========================================================================


class ExamRef(BaseModel):
    """Where a concept shows up in an exam."""

    system: CurriculumSystem
    exam: str
    year_level: int
    depth: DepthLevel
    required: bool = False


class ConceptNode(BaseModel):
    """A single mathematical concept, formula, theorem, etc.

    ``complexity`` is expected in ``[0, 10]``; the range is enforced by
    ingestion and reported by the validator, not by the model.
    """

    id: str
    type: NodeType = "concept"
    title: str
    latex: Optional[str] = None
    description: str = ""
    domains: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    complexity: float = 5.0
    requires: List[str] = Field(default_factory=list)
    generalizes: List[str] = Field(default_factory=list)
    special_cases: List[str] = Field(default_factory=list)
    used_in: List[str] = Field(default_factory=list)
    appears_in: List[ExamRef] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DependencyEdge(BaseModel):
    """Directed, typed edge. Serialised with ``from``/``to`` keys."""

    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")
    type: EdgeType
    weight: float = 1.0
    metadata: Optional[Dict[str, Any]] = None


class GraphSnapshot(BaseModel):
    """Full node list plus the flattened outgoing edge lists."""

    nodes: List[ConceptNode] = Field(default_factory=list)
    edges: List[DependencyEdge] = Field(default_factory=list)


# =========================================================================
# Overlay records
# =========================================================================


class CurriculumMapping(BaseModel):
    """Concept selection for one (education system, year level) pair."""

    id: str
    system: CurriculumSystem
    year_level: int
    name: str = ""
    description: str = ""
    concepts: List[str] = Field(default_factory=list)
    optional_concepts: List[str] = Field(default_factory=list)
    excluded_concepts: List[str] = Field(default_factory=list)
    estimated_hours: float = 0.0


class ExamProfile(BaseModel):
    """Concept selection and required depths for one exam."""

    id: str
    system: CurriculumSystem
    name: str = ""
    year_level: int = 0
    required_concepts: List[str] = Field(default_factory=list)
    optional_concepts: List[str] = Field(default_factory=list)
    excluded_concepts: List[str] = Field(default_factory=list)
    typical_depth: Dict[str, DepthLevel] = Field(default_factory=dict)
    time_limit_minutes: int = 0


# =========================================================================
# User records
# =========================================================================


class ConceptProgress(BaseModel):
    """Per (user, concept) mastery state."""

    user_id: str
    concept_id: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    last_reviewed: datetime = Field(default_factory=utcnow)
    review_count: int = 0
    time_spent_seconds: float = 0.0


class StudyPath(BaseModel):
    """Computed study sequence for one (user, target) pair at one point in time."""

    user_id: str
    target_exam: str = "unknown"
    curriculum: Optional[CurriculumSystem] = None
    year_level: int = 0
    time_remaining_days: int
    ordered_concepts: List[str] = Field(default_factory=list)
    confidence_map: Dict[str, float] = Field(default_factory=dict)
    gaps: List[str] = Field(default_factory=list)
    estimated_total_hours: int = 0


# =========================================================================
# Derived results
# =========================================================================


class GapReport(BaseModel):
    missing: List[str] = Field(default_factory=list)
    weak: List[str] = Field(default_factory=list)
    strong_prereqs: List[str] = Field(default_factory=list)


class ProgramComparison(BaseModel):
    shared: List[str] = Field(default_factory=list)
    only_left: List[str] = Field(default_factory=list)
    only_right: List[str] = Field(default_factory=list)


class DepthDifference(BaseModel):
    concept_id: str
    left_depth: Optional[DepthLevel] = None
    right_depth: Optional[DepthLevel] = None


class ExamComparison(ProgramComparison):
    depth_differences: List[DepthDifference] = Field(default_factory=list)


class ExamReadiness(BaseModel):
    required_coverage: float = 0.0
    optional_coverage: float = 0.0
    missing_required: List[str] = Field(default_factory=list)
    missing_optional: List[str] = Field(default_factory=list)


class ExamStudyPlan(BaseModel):
    ordered: List[str] = Field(default_factory=list)
    required: List[str] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list)
    total_concepts: int = 0


class WeakPrerequisite(BaseModel):
    concept_id: str
    confidence: float


class StudyStats(BaseModel):
    total_concepts: int = 0
    strong_concepts: int = 0
    weak_concepts: int = 0
    unstarted_concepts: int = 0
    total_time_spent_minutes: int = 0
    average_confidence: float = 0.0


class DailyLoad(BaseModel):
    daily_hours: float
    concepts_per_day: int
    weeks_required: int
    feasible: bool


class CriticalPath(BaseModel):
    critical_concepts: List[str] = Field(default_factory=list)
    depth: int = 0
    total_prerequisites: int = 0


class ReviewSession(BaseModel):
    day: date
    concepts: List[str]


class StudyPathComparison(BaseModel):
    left_only: List[str] = Field(default_factory=list)
    right_only: List[str] = Field(default_factory=list)
    shared: List[str] = Field(default_factory=list)
    left_hours: int = 0
    right_hours: int = 0


# =========================================================================
# Search
# =========================================================================


class SearchOptions(BaseModel):
    """Every filter recognised by ``SearchIndex.advanced_search``.

    Empty lists and ``None`` bounds mean "no filter".
    """

    query: Optional[str] = None
    domains: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    types: List[NodeType] = Field(default_factory=list)
    min_complexity: Optional[float] = None
    max_complexity: Optional[float] = None
    limit: int = 20


class SearchResult(BaseModel):
    node: ConceptNode
    score: float
    matched_fields: List[str] = Field(default_factory=list)


# =========================================================================
# Pipeline reports
# =========================================================================


class IngestSummary(BaseModel):
    """Aggregated ingestion summary that gets serialised to JSON."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    by_type: Dict[str, int] = Field(
        default_factory=lambda: {t: 0 for t in NODE_TYPES}
    )
    errors: List[str] = Field(default_factory=list)


class ValidationStats(BaseModel):
    total_nodes: int = 0
    total_edges: int = 0
    cycles_detected: int = 0
    orphaned_nodes: int = 0
    missing_prerequisites: int = 0


class ValidationReport(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    stats: ValidationStats = Field(default_factory=ValidationStats)


class PlannerSettings(BaseModel):
    """Tunable planner thresholds, loadable from a JSON config file."""

    known_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    base_hours: float = Field(default=0.5, gt=0.0)
    review_after_days: float = 7.0
    max_daily_hours: float = 2.0
    include_optional: bool = False
