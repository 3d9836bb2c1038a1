"""
Per-term lecturer demand.

A term needs one lecturer slot per small group per module:
``required = group_count * module_count``.
"""
from typing import Dict, List, Mapping, Sequence
from models.schemas import Course, Module, SmallGroup, TermDemand
from service.errors import MissingSmallGroupsError
import logging

logger = logging.getLogger(__name__)


def count_groups(small_groups: Sequence[SmallGroup]) -> Dict[int, int]:
    """Number of distinct group names per term."""
    names: Dict[int, set] = {}
    for group in small_groups:
        name = group.group_name.strip()
        if not name:
            continue
        names.setdefault(group.term, set()).add(name)
    return {term: len(group_names) for term, group_names in names.items()}


def calculate_demand(
    courses: Sequence[Course],
    modules: Mapping[str, List[Module]],
    small_groups: Sequence[SmallGroup],
) -> Dict[int, TermDemand]:
    """
    Compute the demand of every term the given courses belong to.

    Raises:
        MissingSmallGroupsError: if any term with modules has no small groups.
            All such terms are collected before raising.
    """
    module_counts: Dict[int, int] = {}
    for course in courses:
        module_counts.setdefault(course.term, 0)
        module_counts[course.term] += len(modules.get(course.code, []))

    group_counts = count_groups(small_groups)

    missing = [
        term for term, module_count in module_counts.items()
        if module_count > 0 and group_counts.get(term, 0) == 0
    ]
    if missing:
        raise MissingSmallGroupsError(missing)

    demand = {}
    for term in sorted(module_counts):
        module_count = module_counts[term]
        group_count = group_counts.get(term, 0)
        demand[term] = TermDemand(
            term=term,
            module_count=module_count,
            group_count=group_count,
            required=group_count * module_count,
        )
        logger.debug(
            f"Term {term}: {module_count} modules x {group_count} groups = {demand[term].required}"
        )
    return demand
