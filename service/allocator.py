"""
Lecturer assignment allocator.

This module runs the full allocation pass: term demand, mandatory curriculum
roles, expertise matching, fairness ordering and proportional apportionment
of the shared teaching pool. The pass is synchronous and deterministic;
terms are processed in increasing order and the pool and load state are
updated between terms.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple
from models.schemas import (
    AllocationRequest, AllocationResponse, Assignment, Course, DataIssue,
    ErrorMessage, Lecturer, Messages, Module, RootCause, TermDistribution,
    AllocationWarning
)
from service.apportionment import apportion
from service.demand import calculate_demand
from service.errors import PreconditionError
from service.load import LoadTracker
from service.matching import ExpertiseMatcher, is_standby, required_expertise
from service.reporting import ShortageReporter, build_statistics
from service.roles import resolve_roles
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


class LecturerAllocator:
    """
    Assigns coordinators, team members and teaching lecturers to modules.

    ``compute`` raises on blocking errors; ``allocate`` wraps it and always
    returns a response envelope.
    """

    def __init__(
        self,
        active_terms: Sequence[int] = (1, 3, 5, 7),
        tie_break: str = "lecturer_id",
        random_seed: int = 42,
        exclude_standby: bool = True,
        standby_tag: str = "standby",
        overload_threshold: int = 3,
    ):
        """
        Initialize the allocator.

        Args:
            active_terms: Terms that take part in generation
            tie_break: Final ordering key among equally loaded, equally matched
                candidates: "lecturer_id" or "seeded_random"
            random_seed: Seed used by the "seeded_random" tie-break
            exclude_standby: If True, lecturers tagged as standby never teach
            standby_tag: Expertise substring marking a standby lecturer
            overload_threshold: Load above which a lecturer counts as overloaded
        """
        self.active_terms = sorted(set(active_terms))
        self.tie_break = tie_break
        self.random_seed = random_seed
        self.exclude_standby = exclude_standby
        self.standby_tag = standby_tag
        self.overload_threshold = overload_threshold

    def allocate(
        self,
        request: AllocationRequest,
        extra_load: Optional[Mapping[int, int]] = None,
    ) -> AllocationResponse:
        """
        Main entry point: compute an allocation and never raise.

        Args:
            request: Frozen snapshot of courses, modules, lecturers and groups
            extra_load: Stored assignment counts added to the request's
                historical load

        Returns:
            AllocationResponse with assignments, or error messages
        """
        try:
            return self.compute(request, extra_load)
        except PreconditionError as e:
            logger.warning(f"Allocation blocked: {e}")
            return self._create_infeasible_response(e)
        except Exception as e:
            logger.error(f"Allocation error: {str(e)}", exc_info=True)
            return self._create_error_response(str(e))

    def compute(
        self,
        request: AllocationRequest,
        extra_load: Optional[Mapping[int, int]] = None,
    ) -> AllocationResponse:
        """
        Run one allocation pass.

        Raises:
            PreconditionError: if a term with modules has no small groups
        """
        start_time = datetime.now()

        # Step 1: Select the courses taking part in this run
        courses = self.active_courses(request)
        terms = sorted({course.term for course in courses})
        logger.info(f"Allocating lecturers for terms {terms} ({len(courses)} courses)")

        # Step 2: Term demand (blocks the whole request on missing groups)
        demand = calculate_demand(courses, request.modules, request.small_groups)

        # Step 3: Mandatory curriculum roles
        roles = resolve_roles(request.lecturers, request.courses, courses, request.role_assignments)

        # Step 4: General teaching pool and its apportionment
        pool = self._teaching_pool(request.lecturers, roles.role_holder_ids)
        plan = apportion({term: demand[term].required for term in terms}, len(pool))
        logger.info(
            f"Teaching pool of {len(pool)} lecturers split over total need {plan.total_need}: {plan.allocation}"
        )

        # Step 5: Fairness state
        load = LoadTracker(
            self._historical_load(request.historical_assignment_count, extra_load),
            tie_break=self.tie_break,
            random_seed=self.random_seed,
        )
        load.rank(pool)

        # Step 6: Walk terms in order, consuming the pool
        reporter = ShortageReporter()
        assignments: List[Assignment] = []
        distribution: List[TermDistribution] = []
        consumed = set()

        for term in terms:
            term_courses = [course for course in courses if course.term == term]
            term_modules = self._term_modules(term_courses, request.modules)
            term_roles = roles.by_term[term]

            if term_roles.coordinator_id is not None:
                assignments.extend(
                    self._assign_everywhere(term_roles.coordinator_id, "coordinator", term_modules)
                )
            for lecturer_id in term_roles.team_member_ids:
                assignments.extend(self._assign_everywhere(lecturer_id, "team_member", term_modules))

            matcher = ExpertiseMatcher(required_expertise(term_courses))
            remaining = [lecturer for lecturer in pool if lecturer.id not in consumed]
            candidates = matcher.candidates(remaining)
            allocated = plan.allocation.get(term, 0)
            selected = load.order(candidates, matcher)[:allocated]

            for lecturer in selected:
                assignments.extend(self._assign_everywhere(lecturer.id, "teaching", term_modules))
                load.record(lecturer.id, len(term_modules))
                consumed.add(lecturer.id)

            reporter.check_term(
                term,
                need=demand[term].required,
                allocated=allocated,
                assigned=len(selected),
                candidates=candidates,
                matcher=matcher,
                role_holders=len(term_roles.lecturer_ids()),
            )
            distribution.append(TermDistribution(
                term=term,
                need=demand[term].required,
                percentage=plan.percentages.get(term, 0.0),
                allocated=allocated,
                assigned=len(selected),
            ))
            logger.debug(
                f"Term {term}: coordinator={term_roles.coordinator_id}, "
                f"team={term_roles.team_member_ids}, teaching={[l.id for l in selected]}"
            )

        warnings = reporter.warnings()
        statistics = build_statistics(
            courses,
            request.lecturers,
            assignments,
            load.snapshot(),
            pool_size=len(pool),
            total_need=plan.total_need,
            overload_threshold=self.overload_threshold,
        )
        solve_time = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Allocation finished: {len(assignments)} assignments, {len(warnings)} warnings, "
            f"{len(roles.issues)} data issues in {solve_time:.3f}s"
        )

        return AllocationResponse(
            assignments=assignments,
            warnings=warnings,
            issues=roles.issues,
            demand=[demand[term] for term in terms],
            distribution=distribution,
            statistics=statistics,
            messages=Messages(error_message=self._build_messages(warnings, roles.issues)),
            status="PARTIAL" if warnings else "COMPLETE",
            solve_time_seconds=solve_time,
        )

    # ===========================
    # Helper Methods
    # ===========================

    def active_courses(self, request: AllocationRequest) -> List[Course]:
        """Courses of the active terms, narrowed by the request's term and blok filters."""
        terms = set(self.active_terms)
        if request.terms is not None:
            terms &= set(request.terms)
        return [
            course for course in request.courses
            if course.term in terms and (request.blok is None or course.blok == request.blok)
        ]

    def module_ids(self, request: AllocationRequest) -> List[int]:
        """Ids of the modules a run over ``request`` regenerates."""
        return sorted(
            module.id
            for course in self.active_courses(request)
            for module in request.modules.get(course.code, [])
        )

    def _teaching_pool(self, lecturers: Sequence[Lecturer], role_holder_ids) -> List[Lecturer]:
        """Lecturers eligible for general teaching anywhere in this run."""
        pool = []
        for lecturer in lecturers:
            if lecturer.id in role_holder_ids:
                continue
            if self.exclude_standby and is_standby(lecturer, self.standby_tag):
                continue
            pool.append(lecturer)
        return pool

    def _historical_load(self, *sources: Optional[Mapping[int, int]]) -> Dict[int, int]:
        total: Dict[int, int] = {}
        for source in sources:
            for lecturer_id, count in (source or {}).items():
                total[lecturer_id] = total.get(lecturer_id, 0) + int(count)
        return total

    def _term_modules(
        self,
        term_courses: Sequence[Course],
        modules: Mapping[str, List[Module]],
    ) -> List[Tuple[Course, Module]]:
        """Every module of the term, course by course in module-number order."""
        return [
            (course, module)
            for course in term_courses
            for module in sorted(modules.get(course.code, []), key=lambda m: (m.ordinal, m.id))
        ]

    def _assign_everywhere(
        self,
        lecturer_id: int,
        role: str,
        term_modules: Sequence[Tuple[Course, Module]],
    ) -> List[Assignment]:
        return [
            Assignment(
                module_id=module.id,
                lecturer_id=lecturer_id,
                role=role,
                course_code=course.code,
                term=course.term,
                blok=course.blok,
            )
            for course, module in term_modules
        ]

    def _build_messages(
        self,
        warnings: Sequence[AllocationWarning],
        issues: Sequence[DataIssue],
    ) -> List[ErrorMessage]:
        messages = []
        for warning in warnings:
            tags = ", ".join(warning.unmatched_expertise_tags) or "none"
            messages.append(ErrorMessage(
                constraint_type="SOFT",
                severity="WARNING",
                code="EXPERTISE_SHORTAGE",
                title=f"Lecturer shortage in term {warning.term}",
                description=(
                    f"{warning.shortfall_count} of {warning.need} lecturers missing: "
                    f"{warning.role_holders} role holders and {warning.assigned} teaching lecturers assigned "
                    f"({warning.allocated} allocated, {warning.candidate_count} expertise-matched candidates). "
                    f"Unmatched expertise: {tags}."
                ),
                affected_terms=[warning.term],
                resolution_hint="Add lecturers with the missing expertise or review the required expertise of the term's courses.",
            ))
        for issue in issues:
            messages.append(ErrorMessage(
                constraint_type="SOFT",
                severity="WARNING",
                code="DATA_INTEGRITY",
                title="Role assignment skipped",
                description=issue.message,
                affected_terms=[issue.term] if issue.term is not None else [],
                root_causes=[RootCause(cause=issue.code)],
                resolution_hint="Correct the lecturer's role data and regenerate.",
            ))
        return messages

    def _create_infeasible_response(self, error: PreconditionError) -> AllocationResponse:
        """Create response for a blocked allocation."""
        return AllocationResponse(
            assignments=[],
            messages=Messages(error_message=[
                ErrorMessage(
                    constraint_type="HARD",
                    severity="ERROR",
                    code="MISSING_SMALL_GROUPS",
                    title="Allocation Precondition Failed",
                    description=str(error),
                    affected_terms=error.terms,
                    root_causes=[
                        RootCause(
                            cause="Missing small-group data",
                            details="Lecturer demand is group count times module count and cannot be computed without groups."
                        )
                    ],
                    resolution_hint="Create the small groups of the listed terms before generating assignments."
                )
            ]),
            status="INFEASIBLE",
            solve_time_seconds=0.0
        )

    def _create_error_response(self, error: str) -> AllocationResponse:
        """Create response for an unexpected allocation failure."""
        return AllocationResponse(
            assignments=[],
            messages=Messages(error_message=[
                ErrorMessage(
                    constraint_type="HARD",
                    severity="ERROR",
                    code="ALLOCATION_ERROR",
                    title="Allocation Error",
                    description=error,
                    root_causes=[
                        RootCause(
                            cause="Unexpected allocation failure",
                            details=error
                        )
                    ],
                    resolution_hint="Please check your input data and try again. If the problem persists, contact support."
                )
            ]),
            status="ERROR",
            solve_time_seconds=0.0
        )
