"""
Expertise matching between lecturers and a term's required expertise.
"""
from typing import Iterable, List, Sequence
from models.schemas import Course, Lecturer


def tags_match(left: str, right: str) -> bool:
    """Case-insensitive substring containment in either direction."""
    a = left.strip().lower()
    b = right.strip().lower()
    if not a or not b:
        return False
    return a in b or b in a


def unique_tags(tags: Iterable[str]) -> List[str]:
    """Drop case-insensitive duplicates, keeping the first spelling."""
    seen = set()
    result = []
    for tag in tags:
        key = tag.strip().lower()
        if key and key not in seen:
            seen.add(key)
            result.append(tag.strip())
    return result


def required_expertise(courses: Iterable[Course]) -> List[str]:
    """Every required-expertise entry of the given courses, duplicates kept."""
    return [tag.strip() for course in courses for tag in course.required_expertise if tag.strip()]


def is_standby(lecturer: Lecturer, standby_tag: str) -> bool:
    tag = standby_tag.strip().lower()
    return bool(tag) and any(tag in expertise.lower() for expertise in lecturer.expertise)


class ExpertiseMatcher:
    """
    Filters lecturers against one term's required expertise.

    A lecturer scores one point per required entry matched, so an entry
    listed twice weighs twice. With no required expertise every lecturer
    qualifies and scores zero.
    """

    def __init__(self, required: Sequence[str]):
        self.entries = [tag.strip() for tag in required if tag.strip()]
        self.required = unique_tags(self.entries)

    def matched_tags(self, lecturer: Lecturer) -> List[str]:
        return [
            req for req in self.required
            if any(tags_match(req, expertise) for expertise in lecturer.expertise)
        ]

    def score(self, lecturer: Lecturer) -> int:
        """Number of required entries the lecturer covers."""
        return sum(
            1 for req in self.entries
            if any(tags_match(req, expertise) for expertise in lecturer.expertise)
        )

    def matches(self, lecturer: Lecturer) -> bool:
        if not self.required:
            return True
        return self.score(lecturer) > 0

    def candidates(self, pool: Iterable[Lecturer]) -> List[Lecturer]:
        """Lecturers of ``pool`` with at least one matching tag, in pool order."""
        return [lecturer for lecturer in pool if self.matches(lecturer)]

    def unmatched_tags(self, lecturers: Iterable[Lecturer]) -> List[str]:
        """Required tags none of ``lecturers`` covers."""
        covered = set()
        for lecturer in lecturers:
            covered.update(tag.lower() for tag in self.matched_tags(lecturer))
        return [req for req in self.required if req.lower() not in covered]
