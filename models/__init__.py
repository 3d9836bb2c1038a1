"""
Data models and Pydantic schemas for the allocation API.
"""
from .schemas import (
    RoleAssignment,
    ExternalRoleAssignment,
    Course,
    Module,
    Lecturer,
    SmallGroup,
    AllocationRequest,
    Assignment,
    TermDemand,
    TermDistribution,
    AllocationWarning,
    DataIssue,
    AllocationStatistics,
    RootCause,
    ErrorMessage,
    Messages,
    CommitResult,
    CommitSummary,
    AllocationResponse,
    CommitRequest,
    ResetRequest,
    ResetResponse,
    StoredAssignment,
    GenerateStatus,
    DistributionSnapshot,
    normalize_tags
)

__all__ = [
    "RoleAssignment",
    "ExternalRoleAssignment",
    "Course",
    "Module",
    "Lecturer",
    "SmallGroup",
    "AllocationRequest",
    "Assignment",
    "TermDemand",
    "TermDistribution",
    "AllocationWarning",
    "DataIssue",
    "AllocationStatistics",
    "RootCause",
    "ErrorMessage",
    "Messages",
    "CommitResult",
    "CommitSummary",
    "AllocationResponse",
    "CommitRequest",
    "ResetRequest",
    "ResetResponse",
    "StoredAssignment",
    "GenerateStatus",
    "DistributionSnapshot",
    "normalize_tags"
]
