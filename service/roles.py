"""
Curriculum role resolution.

Coordinators and team members are taken from declared role assignments and
placed on every module of their term. Anyone holding either role for any
course, in any term, is kept out of the general teaching pool.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple
from models.schemas import Course, DataIssue, ExternalRoleAssignment, Lecturer, RoleAssignment
import logging

logger = logging.getLogger(__name__)


@dataclass
class TermRoles:
    term: int
    coordinator_id: Optional[int] = None
    team_member_ids: List[int] = field(default_factory=list)

    def lecturer_ids(self) -> List[int]:
        ids = [self.coordinator_id] if self.coordinator_id is not None else []
        return ids + self.team_member_ids


@dataclass
class RoleResolution:
    by_term: Dict[int, TermRoles]
    role_holder_ids: Set[int]
    issues: List[DataIssue]


def _declared_roles(
    lecturers: Sequence[Lecturer],
    external: Sequence[ExternalRoleAssignment],
    issues: List[DataIssue],
) -> List[Tuple[int, RoleAssignment]]:
    """Flatten role assignments in input order, lecturer list first."""
    known_ids = {lecturer.id for lecturer in lecturers}
    declared = []
    for lecturer in lecturers:
        for role in lecturer.role_assignments:
            declared.append((lecturer.id, role))
    for role in external:
        if role.lecturer_id not in known_ids:
            issues.append(DataIssue(
                code="unknown_lecturer",
                message=f"Role '{role.role}' for course {role.course_code} references "
                        f"lecturer {role.lecturer_id} who is not in the lecturer list",
                lecturer_id=role.lecturer_id,
                term=role.term,
                course_code=role.course_code,
            ))
            continue
        declared.append((role.lecturer_id, role))
    return declared


def resolve_roles(
    lecturers: Sequence[Lecturer],
    all_courses: Sequence[Course],
    active_courses: Sequence[Course],
    external: Sequence[ExternalRoleAssignment] = (),
) -> RoleResolution:
    """
    Select the coordinator and team members of every active term.

    ``all_courses`` is the full course list used to validate role
    assignments; ``active_courses`` are the courses taking part in this run.
    The first declared coordinator of a term wins, later ones are reported.
    """
    issues: List[DataIssue] = []
    declared = _declared_roles(lecturers, external, issues)

    course_terms = {course.code: course.term for course in all_courses}
    active_codes = {course.code for course in active_courses}
    by_term: Dict[int, TermRoles] = {
        term: TermRoles(term=term) for term in sorted({c.term for c in active_courses})
    }
    role_holder_ids: Set[int] = set()

    for lecturer_id, role in declared:
        role_holder_ids.add(lecturer_id)

        if role.course_code not in course_terms:
            issues.append(DataIssue(
                code="unknown_course",
                message=f"Lecturer {lecturer_id} is {role.role} for unknown course {role.course_code}",
                lecturer_id=lecturer_id,
                term=role.term,
                course_code=role.course_code,
            ))
            continue
        if course_terms[role.course_code] != role.term:
            issues.append(DataIssue(
                code="term_mismatch",
                message=f"Lecturer {lecturer_id} is {role.role} for {role.course_code} in term "
                        f"{role.term}, but the course runs in term {course_terms[role.course_code]}",
                lecturer_id=lecturer_id,
                term=role.term,
                course_code=role.course_code,
            ))
            continue
        if role.course_code not in active_codes:
            continue

        roles = by_term[role.term]
        if lecturer_id in roles.lecturer_ids():
            if role.role == "coordinator" and roles.coordinator_id == lecturer_id:
                continue
            if role.role == "team_member" and lecturer_id in roles.team_member_ids:
                continue
            issues.append(DataIssue(
                code="duplicate_role",
                message=f"Lecturer {lecturer_id} already holds a role in term {role.term}; "
                        f"'{role.role}' for {role.course_code} ignored",
                lecturer_id=lecturer_id,
                term=role.term,
                course_code=role.course_code,
            ))
            continue

        if role.role == "coordinator":
            if roles.coordinator_id is None:
                roles.coordinator_id = lecturer_id
            else:
                issues.append(DataIssue(
                    code="extra_coordinator",
                    message=f"Term {role.term} already has coordinator {roles.coordinator_id}; "
                            f"lecturer {lecturer_id} not assigned as coordinator",
                    lecturer_id=lecturer_id,
                    term=role.term,
                    course_code=role.course_code,
                ))
        else:
            roles.team_member_ids.append(lecturer_id)

    for issue in issues:
        logger.warning(f"Role data issue ({issue.code}): {issue.message}")

    return RoleResolution(by_term=by_term, role_holder_ids=role_holder_ids, issues=issues)
