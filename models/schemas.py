from pydantic import BaseModel, Field, field_validator
from typing import List, Dict, Optional, Literal, Any
from datetime import datetime
import json


CurriculumRole = Literal["coordinator", "team_member"]
AssignmentRole = Literal["coordinator", "team_member", "teaching"]


def normalize_tags(value: Any) -> List[str]:
    """
    Normalize an expertise field into a list of non-empty tags.

    Accepts a list, a JSON array string (``'["Anatomy", "Physiology"]'``)
    or a comma-joined string (``"Anatomy, Physiology"``).
    """
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            value = parsed
        else:
            value = text.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValueError("must be a list of strings or a comma-separated string")
    return [str(tag).strip() for tag in value if str(tag).strip()]


# ===========================
# Input Models
# ===========================

class RoleAssignment(BaseModel):
    """Pre-declared curriculum role of a lecturer for one course"""
    term: int
    course_code: str
    role: CurriculumRole

    class Config:
        frozen = True


class ExternalRoleAssignment(RoleAssignment):
    """Role assignment supplied outside the lecturer list"""
    lecturer_id: int


class Course(BaseModel):
    code: str
    term: int
    required_expertise: List[str] = []
    blok: Optional[int] = None

    class Config:
        frozen = True

    @field_validator("required_expertise", mode="before")
    @classmethod
    def _normalize_required_expertise(cls, value):
        return normalize_tags(value)


class Module(BaseModel):
    """One teaching unit of a course"""
    id: int
    ordinal: int

    class Config:
        frozen = True


class Lecturer(BaseModel):
    id: int
    name: str
    expertise: List[str] = []
    role_assignments: List[RoleAssignment] = []

    class Config:
        frozen = True

    @field_validator("expertise", mode="before")
    @classmethod
    def _normalize_expertise(cls, value):
        return normalize_tags(value)


class SmallGroup(BaseModel):
    term: int
    group_name: str

    class Config:
        frozen = True


class AllocationRequest(BaseModel):
    """Complete allocation input snapshot"""
    courses: List[Course]
    modules: Dict[str, List[Module]] = {}
    lecturers: List[Lecturer]
    small_groups: List[SmallGroup] = []
    role_assignments: List[ExternalRoleAssignment] = []
    historical_assignment_count: Dict[int, int] = {}
    terms: Optional[List[int]] = None  # Restrict to a subset of the active terms
    blok: Optional[int] = None         # Restrict to courses of one blok

    class Config:
        frozen = True


# ===========================
# Output Models
# ===========================

class Assignment(BaseModel):
    """A lecturer placed on a module in a given role"""
    module_id: int
    lecturer_id: int
    role: AssignmentRole
    course_code: Optional[str] = None
    term: Optional[int] = None
    blok: Optional[int] = None


class TermDemand(BaseModel):
    term: int
    module_count: int
    group_count: int
    required: int


class TermDistribution(BaseModel):
    """Apportioned share of the teaching pool for one term"""
    term: int
    need: int
    percentage: float
    allocated: int
    assigned: int = 0


class AllocationWarning(BaseModel):
    """Shortage of expertise-matched lecturers for a term"""
    term: int
    shortfall_count: int
    unmatched_expertise_tags: List[str] = []
    need: int = 0
    allocated: int = 0
    assigned: int = 0
    candidate_count: int = 0
    role_holders: int = 0     # Coordinator and team members already covering the term
    allocation_gap: int = 0   # Allocated pool share left unfilled


class DataIssue(BaseModel):
    """Inconsistent input that was skipped during allocation"""
    code: str  # "unknown_lecturer", "unknown_course", "term_mismatch", "extra_coordinator", "duplicate_role"
    message: str
    lecturer_id: Optional[int] = None
    term: Optional[int] = None
    course_code: Optional[str] = None


class AllocationStatistics(BaseModel):
    pool_size: int = 0
    total_need: int = 0
    total_assignments: int = 0
    teaching_lecturers: int = 0
    lecturer_utilization_rate: float = 0.0
    expertise_match_rate: float = 0.0
    overloaded_lecturers: int = 0
    expertise_volume: Dict[str, int] = {}


class RootCause(BaseModel):
    cause: str
    details: Optional[str] = None


class ErrorMessage(BaseModel):
    """Error or warning message"""
    title: str
    description: str
    code: Optional[str] = None
    severity: Optional[str] = None  # "ERROR", "WARNING"
    constraint_type: Optional[str] = None  # "HARD", "SOFT"
    affected_terms: List[int] = []
    root_causes: List[RootCause] = []
    resolution_hint: Optional[str] = None


class Messages(BaseModel):
    """Collection of error/warning messages"""
    error_message: List[ErrorMessage] = []


class CommitResult(BaseModel):
    module_id: int
    lecturer_id: int
    status: Literal["success", "skipped", "error"]
    message: str


class CommitSummary(BaseModel):
    total: int = 0
    success: int = 0
    error: int = 0
    skipped: int = 0
    results: List[CommitResult] = []


class AllocationResponse(BaseModel):
    """Complete allocation response"""
    assignments: List[Assignment] = []
    warnings: List[AllocationWarning] = []
    issues: List[DataIssue] = []
    demand: List[TermDemand] = []
    distribution: List[TermDistribution] = []
    statistics: AllocationStatistics = AllocationStatistics()
    messages: Messages = Messages()
    commit: Optional[CommitSummary] = None

    # Additional metadata for debugging
    status: Optional[str] = None  # "COMPLETE", "PARTIAL", "INFEASIBLE", "ERROR"
    solve_time_seconds: Optional[float] = None


# ===========================
# Persistence Models
# ===========================

class CommitRequest(BaseModel):
    assignments: List[Assignment]


class ResetRequest(BaseModel):
    module_ids: List[int]


class ResetResponse(BaseModel):
    module_ids: List[int]
    deleted_count: int
    message: str


class StoredAssignment(Assignment):
    """Persisted assignment with the lecturer's stored load"""
    assignment_count: int = 0


class GenerateStatus(BaseModel):
    blok: Optional[int] = None
    is_generated: bool
    assignment_count: int = 0
    module_count: int = 0
    message: str


class DistributionSnapshot(BaseModel):
    """Proportional distribution produced by a generate run"""
    blok: Optional[int] = None
    term_needs: Dict[int, int] = {}
    term_percentages: Dict[int, float] = {}
    term_distribution: Dict[int, int] = {}
    pool_size: int = 0
    total_need: int = 0
    generated_at: datetime = Field(default_factory=datetime.now)
