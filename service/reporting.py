"""
Shortage warnings and run statistics.
"""
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Sequence
from models.schemas import AllocationStatistics, AllocationWarning, Assignment, Course, Lecturer
from service.matching import ExpertiseMatcher
import logging

logger = logging.getLogger(__name__)


class ShortageReporter:
    """
    Collects one warning per under-filled term.

    A term warns when its coordinator, team members and teaching lecturers
    together fall short of its need, or when it has demand but no
    expertise-matched candidate. Reporting a term again replaces its
    earlier warning.
    """

    def __init__(self):
        self._warnings: Dict[int, AllocationWarning] = {}

    def check_term(
        self,
        term: int,
        need: int,
        allocated: int,
        assigned: int,
        candidates: Sequence[Lecturer],
        matcher: ExpertiseMatcher,
        role_holders: int = 0,
    ) -> bool:
        """Record a warning for ``term`` if it is short; return True if so."""
        self._warnings.pop(term, None)

        filled = role_holders + assigned
        under_filled = filled < need
        no_candidates = need > 0 and not candidates
        if not (under_filled or no_candidates):
            return False

        warning = AllocationWarning(
            term=term,
            shortfall_count=max(need - filled, 0),
            unmatched_expertise_tags=matcher.unmatched_tags(candidates),
            need=need,
            allocated=allocated,
            assigned=assigned,
            candidate_count=len(candidates),
            role_holders=role_holders,
            allocation_gap=max(allocated - assigned, 0),
        )
        self._warnings[term] = warning
        logger.warning(
            f"Term {term}: {filled}/{need} lecturers assigned ({assigned} teaching from "
            f"{len(candidates)} candidates); unmatched expertise {warning.unmatched_expertise_tags}"
        )
        return True

    def warnings(self) -> List[AllocationWarning]:
        return [self._warnings[term] for term in sorted(self._warnings)]


def expertise_volume(courses: Iterable[Course]) -> Dict[str, int]:
    """Required-expertise tag counts; duplicates within and across courses count."""
    volume: Counter = Counter()
    for course in courses:
        for tag in course.required_expertise:
            volume[tag.strip()] += 1
    return dict(volume)


def build_statistics(
    courses: Sequence[Course],
    lecturers: Sequence[Lecturer],
    assignments: Sequence[Assignment],
    loads: Mapping[int, int],
    pool_size: int,
    total_need: int,
    overload_threshold: int,
) -> AllocationStatistics:
    """Summarize one allocation run."""
    lecturer_by_id = {lecturer.id: lecturer for lecturer in lecturers}
    assigned_ids = {a.lecturer_id for a in assignments}
    teaching_ids = {a.lecturer_id for a in assignments if a.role == "teaching"}

    teaching_by_course: Dict[str, set] = {}
    for a in assignments:
        if a.role == "teaching" and a.course_code:
            teaching_by_course.setdefault(a.course_code, set()).add(a.lecturer_id)

    # A course counts as matched when one of its teaching lecturers covers its expertise
    checked = 0
    matched = 0
    for course in courses:
        lecturer_ids = teaching_by_course.get(course.code)
        if not lecturer_ids:
            continue
        checked += 1
        matcher = ExpertiseMatcher(course.required_expertise)
        if any(lecturer_id in lecturer_by_id and matcher.matches(lecturer_by_id[lecturer_id])
               for lecturer_id in lecturer_ids):
            matched += 1

    total_lecturers = len(lecturers)
    return AllocationStatistics(
        pool_size=pool_size,
        total_need=total_need,
        total_assignments=len(assignments),
        teaching_lecturers=len(teaching_ids),
        lecturer_utilization_rate=round(len(assigned_ids) * 100.0 / total_lecturers, 2) if total_lecturers else 0.0,
        expertise_match_rate=round(matched * 100.0 / checked, 2) if checked else 0.0,
        overloaded_lecturers=sum(
            1 for lecturer_id in teaching_ids if loads.get(lecturer_id, 0) > overload_threshold
        ),
        expertise_volume=expertise_volume(courses),
    )
