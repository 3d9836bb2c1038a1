"""
Test the allocation pass with self-contained input snapshots.
"""
import pytest
from models.schemas import AllocationRequest
from service.allocator import LecturerAllocator
from service.demand import calculate_demand
from service.errors import MissingSmallGroupsError, PreconditionError
from service.load import LoadTracker
from service.matching import ExpertiseMatcher


# Test data builders
def groups(term, count):
    return [{"term": term, "group_name": f"Group {term}-{i}"} for i in range(1, count + 1)]


def modules(first_id, count):
    return [{"id": first_id + i, "ordinal": i + 1} for i in range(count)]


def lecturer(lecturer_id, expertise, roles=None):
    return {
        "id": lecturer_id,
        "name": f"Lecturer {lecturer_id}",
        "expertise": expertise,
        "role_assignments": roles or [],
    }


def get_four_term_request():
    """Needs 8 / 8 / 12 / 8 over terms 1, 3, 5, 7 and twenty general lecturers."""
    return {
        "courses": [
            {"code": "MK101", "term": 1, "required_expertise": ["Anatomy"], "blok": 1},
            {"code": "MK301", "term": 3, "required_expertise": ["Anatomy"], "blok": 1},
            {"code": "MK501", "term": 5, "required_expertise": ["Anatomy"], "blok": 1},
            {"code": "MK502", "term": 5, "required_expertise": ["Anatomy"], "blok": 1},
            {"code": "MK701", "term": 7, "required_expertise": ["Anatomy"], "blok": 1},
        ],
        "modules": {
            "MK101": modules(100, 2),
            "MK301": modules(300, 2),
            "MK501": modules(500, 2),
            "MK502": modules(510, 2),
            "MK701": modules(700, 2),
        },
        "lecturers": [lecturer(i, ["Anatomy"]) for i in range(1, 21)],
        "small_groups": groups(1, 4) + groups(3, 4) + groups(5, 3) + groups(7, 4),
    }


def get_single_term_request():
    return {
        "courses": [
            {"code": "MK101", "term": 1, "required_expertise": ["Anatomy"], "blok": 1},
        ],
        "modules": {"MK101": modules(100, 1)},
        "lecturers": [
            lecturer(1, ["anatomy lab"]),
            lecturer(2, ["Biochemistry"]),
        ],
        "small_groups": groups(1, 1),
    }


def allocate(data, **kwargs):
    return LecturerAllocator(**kwargs).compute(AllocationRequest(**data))


def teaching_ids(response, term=None):
    return {
        a.lecturer_id for a in response.assignments
        if a.role == "teaching" and (term is None or a.term == term)
    }


def test_demand_is_groups_times_modules():
    request = AllocationRequest(**get_four_term_request())
    demand = calculate_demand(request.courses, request.modules, request.small_groups)

    assert demand[5].module_count == 4
    assert demand[5].group_count == 3
    assert demand[5].required == 12
    assert [demand[t].required for t in (1, 3, 5, 7)] == [8, 8, 12, 8]


def test_duplicate_group_names_count_once():
    data = get_single_term_request()
    data["small_groups"] = [
        {"term": 1, "group_name": "A"},
        {"term": 1, "group_name": "A"},
        {"term": 1, "group_name": "B"},
    ]
    request = AllocationRequest(**data)
    demand = calculate_demand(request.courses, request.modules, request.small_groups)

    assert demand[1].group_count == 2


def test_proportional_split_across_terms():
    """Twenty lecturers over needs 8/8/12/8 end up as 5/4/7/4."""
    response = allocate(get_four_term_request())

    allocated = {d.term: d.allocated for d in response.distribution}
    assert allocated == {1: 5, 3: 4, 5: 7, 7: 4}
    assert sum(allocated.values()) == 20
    assert response.statistics.pool_size == 20
    assert response.statistics.total_need == 36
    # Twenty lecturers cannot cover a need of 36
    assert response.status == "PARTIAL"
    assert {w.term: w.shortfall_count for w in response.warnings} == {1: 3, 3: 4, 5: 5, 7: 4}

    # Terms are filled in order, lowest lecturer id first on ties
    assert teaching_ids(response, 1) == {1, 2, 3, 4, 5}
    assert teaching_ids(response, 3) == {6, 7, 8, 9}
    assert teaching_ids(response, 5) == {10, 11, 12, 13, 14, 15, 16}
    assert teaching_ids(response, 7) == {17, 18, 19, 20}


def test_lecturer_teaches_in_at_most_one_term():
    response = allocate(get_four_term_request())

    terms_by_lecturer = {}
    for a in response.assignments:
        if a.role == "teaching":
            terms_by_lecturer.setdefault(a.lecturer_id, set()).add(a.term)
    assert all(len(terms) == 1 for terms in terms_by_lecturer.values())


def test_case_insensitive_substring_match():
    """Only the lecturer whose expertise contains 'anatomy' is selected."""
    response = allocate(get_single_term_request())

    assert teaching_ids(response) == {1}
    assert all(a.lecturer_id != 2 for a in response.assignments)


def test_match_is_symmetric():
    data = get_single_term_request()
    data["courses"][0]["required_expertise"] = ["Clinical Anatomy and Physiology"]
    data["lecturers"] = [lecturer(1, ["Anatomy"]), lecturer(2, ["Pharmacology"])]

    response = allocate(data)

    assert teaching_ids(response) == {1}


def test_shortage_warning_when_candidates_run_out():
    data = get_single_term_request()
    data["small_groups"] = groups(1, 2)
    data["courses"][0]["required_expertise"] = ["Anatomy", "Histology"]

    response = allocate(data)

    assert response.status == "PARTIAL"
    assert len(response.warnings) == 1
    warning = response.warnings[0]
    assert warning.term == 1
    assert warning.allocated == 2
    assert warning.assigned == 1
    assert warning.shortfall_count == 1
    assert warning.unmatched_expertise_tags == ["Histology"]
    # The partial result is still returned
    assert teaching_ids(response) == {1}


def test_zero_candidates_warns():
    data = get_single_term_request()
    data["lecturers"] = [lecturer(2, ["Biochemistry"])]

    response = allocate(data)

    assert response.assignments == []
    assert response.warnings[0].candidate_count == 0
    assert response.warnings[0].unmatched_expertise_tags == ["Anatomy"]


def test_every_term_short_of_need_warns():
    """A pool smaller than total need leaves each term short, role holders included."""
    data = get_four_term_request()
    data["lecturers"].append(lecturer(21, ["Anatomy"], [
        {"term": 5, "course_code": "MK501", "role": "coordinator"},
    ]))

    response = allocate(data)

    assert response.status == "PARTIAL"
    warnings = {w.term: w for w in response.warnings}
    assert {term: w.shortfall_count for term, w in warnings.items()} == {1: 3, 3: 4, 5: 4, 7: 4}
    assert warnings[5].need == 12
    assert warnings[5].role_holders == 1
    assert warnings[5].assigned == 7
    assert warnings[5].allocation_gap == 0
    assert all(w.unmatched_expertise_tags == [] for w in response.warnings)
    codes = [m.code for m in response.messages.error_message]
    assert codes == ["EXPERTISE_SHORTAGE"] * 4


def test_role_holders_count_toward_need():
    data = get_single_term_request()
    data["lecturers"].append(lecturer(3, ["Anatomy"], [{"term": 1, "course_code": "MK101", "role": "coordinator"}]))
    data["small_groups"] = groups(1, 2)

    response = allocate(data)

    # Need 2: the coordinator plus one teaching lecturer
    assert teaching_ids(response) == {1}
    assert response.warnings == []
    assert response.status == "COMPLETE"


def test_pool_covering_need_has_no_warnings():
    data = get_four_term_request()
    data["lecturers"] = [lecturer(i, ["Anatomy"]) for i in range(1, 37)]

    response = allocate(data)

    assert response.warnings == []
    assert response.status == "COMPLETE"


def test_missing_small_groups_blocks_every_term():
    data = get_four_term_request()
    data["small_groups"] = groups(1, 4) + groups(5, 3) + groups(7, 4)

    with pytest.raises(MissingSmallGroupsError) as exc_info:
        allocate(data)
    assert exc_info.value.terms == [3]
    assert "3" in str(exc_info.value)


def test_missing_small_groups_names_all_terms():
    data = get_four_term_request()
    data["small_groups"] = groups(1, 4)

    with pytest.raises(PreconditionError) as exc_info:
        allocate(data)
    assert exc_info.value.terms == [3, 5, 7]


def test_allocate_returns_infeasible_without_assignments():
    data = get_four_term_request()
    data["small_groups"] = groups(1, 4) + groups(3, 4) + groups(7, 4)

    response = LecturerAllocator().allocate(AllocationRequest(**data))

    assert response.status == "INFEASIBLE"
    assert response.assignments == []
    error = response.messages.error_message[0]
    assert error.code == "MISSING_SMALL_GROUPS"
    assert error.affected_terms == [5]


def test_term_without_modules_needs_no_groups():
    data = get_single_term_request()
    data["courses"].append({"code": "MK301", "term": 3, "required_expertise": ["Anatomy"]})

    response = allocate(data)

    demand = {d.term: d.required for d in response.demand}
    assert demand == {1: 1, 3: 0}


def test_even_terms_are_ignored():
    data = get_single_term_request()
    data["courses"].append({"code": "MK201", "term": 2, "required_expertise": ["Anatomy"]})
    data["modules"]["MK201"] = modules(200, 2)

    response = allocate(data)

    assert [d.term for d in response.demand] == [1]
    assert all(a.term == 1 for a in response.assignments)


def test_blok_filter():
    data = get_four_term_request()
    data["courses"][0]["blok"] = 2
    data["blok"] = 2

    response = allocate(data)

    assert {a.course_code for a in response.assignments} == {"MK101"}


def test_roles_cover_every_module_of_the_term():
    data = get_four_term_request()
    data["lecturers"].append(lecturer(21, ["Anatomy"], [
        {"term": 5, "course_code": "MK501", "role": "coordinator"},
    ]))
    data["lecturers"].append(lecturer(22, ["Physiology"], [
        {"term": 5, "course_code": "MK502", "role": "team_member"},
    ]))

    response = allocate(data)

    term_5_modules = {500, 501, 510, 511}
    coordinator = {a.module_id for a in response.assignments if a.lecturer_id == 21}
    team_member = {a.module_id for a in response.assignments if a.lecturer_id == 22}
    assert coordinator == term_5_modules
    assert team_member == term_5_modules
    assert {a.role for a in response.assignments if a.lecturer_id == 21} == {"coordinator"}
    assert {a.role for a in response.assignments if a.lecturer_id == 22} == {"team_member"}

    # Every teaching lecturer of term 5 also covers all its modules
    for lecturer_id in teaching_ids(response, 5):
        placed = {a.module_id for a in response.assignments if a.lecturer_id == lecturer_id}
        assert placed == term_5_modules


def test_role_holders_never_teach():
    """A role anywhere, even in an inactive term, keeps a lecturer out of the pool."""
    data = get_single_term_request()
    data["courses"].append({"code": "MK201", "term": 2, "required_expertise": []})
    data["lecturers"][0]["role_assignments"] = [
        {"term": 2, "course_code": "MK201", "role": "team_member"},
    ]

    response = allocate(data)

    assert teaching_ids(response) == set()
    assert response.statistics.pool_size == 1
    assert response.warnings[0].candidate_count == 0


def test_first_declared_coordinator_wins():
    data = get_single_term_request()
    data["lecturers"].append(lecturer(3, ["Anatomy"], [{"term": 1, "course_code": "MK101", "role": "coordinator"}]))
    data["lecturers"].append(lecturer(4, ["Anatomy"], [{"term": 1, "course_code": "MK101", "role": "coordinator"}]))

    response = allocate(data)

    coordinators = {a.lecturer_id for a in response.assignments if a.role == "coordinator"}
    assert coordinators == {3}
    assert all(a.lecturer_id != 4 for a in response.assignments)
    assert [issue.code for issue in response.issues] == ["extra_coordinator"]


def test_unknown_lecturer_in_role_data_is_reported():
    data = get_single_term_request()
    data["role_assignments"] = [
        {"lecturer_id": 99, "term": 1, "course_code": "MK101", "role": "coordinator"},
        {"lecturer_id": 2, "term": 1, "course_code": "MK101", "role": "team_member"},
    ]

    response = allocate(data)

    assert [issue.code for issue in response.issues] == ["unknown_lecturer"]
    assert response.issues[0].lecturer_id == 99
    team = {a.lecturer_id for a in response.assignments if a.role == "team_member"}
    assert team == {2}
    assert any(m.code == "DATA_INTEGRITY" for m in response.messages.error_message)


def test_unknown_course_and_term_mismatch_are_skipped():
    data = get_single_term_request()
    data["lecturers"][1]["role_assignments"] = [
        {"term": 1, "course_code": "XX999", "role": "coordinator"},
        {"term": 3, "course_code": "MK101", "role": "coordinator"},
    ]

    response = allocate(data)

    assert [issue.code for issue in response.issues] == ["unknown_course", "term_mismatch"]
    assert all(a.role != "coordinator" for a in response.assignments)


def test_lower_load_is_preferred():
    data = get_single_term_request()
    data["lecturers"] = [lecturer(1, ["Anatomy"]), lecturer(2, ["Anatomy"])]
    data["historical_assignment_count"] = {1: 5}

    response = allocate(data)

    assert teaching_ids(response) == {2}


def test_extra_load_adds_to_history():
    data = get_single_term_request()
    data["lecturers"] = [lecturer(1, ["Anatomy"]), lecturer(2, ["Anatomy"])]
    data["historical_assignment_count"] = {1: 1}

    response = LecturerAllocator().compute(AllocationRequest(**data), extra_load={2: 3})

    assert teaching_ids(response) == {1}


def test_better_match_breaks_load_ties():
    data = get_single_term_request()
    data["courses"][0]["required_expertise"] = ["Anatomy", "Histology"]
    data["lecturers"] = [lecturer(1, ["Anatomy"]), lecturer(2, ["Anatomy", "Histology"])]

    response = allocate(data)

    assert teaching_ids(response) == {2}


def test_repeated_required_entries_weigh_in_score():
    matcher = ExpertiseMatcher(["Anatomy", "Histology", "anatomy"])
    anatomist = AllocationRequest(**get_single_term_request()).lecturers[0]

    assert matcher.required == ["Anatomy", "Histology"]
    assert matcher.score(anatomist) == 2

    data = get_single_term_request()
    data["courses"][0]["required_expertise"] = ["Anatomy", "Anatomy", "Histology"]
    data["lecturers"] = [lecturer(1, ["Histology"]), lecturer(2, ["Anatomy"])]

    response = allocate(data)

    assert teaching_ids(response) == {2}


def test_load_is_updated_between_terms():
    """A lecturer consumed by an earlier term is not picked again later."""
    data = get_four_term_request()
    data["lecturers"] = [lecturer(i, ["Anatomy"]) for i in range(1, 5)]

    response = allocate(data)

    seen = set()
    for term in (1, 3, 5, 7):
        ids = teaching_ids(response, term)
        assert not ids & seen
        seen |= ids
    assert len(seen) == 4


def test_standby_lecturers_are_excluded():
    data = get_single_term_request()
    data["lecturers"] = [lecturer(1, ["Anatomy", "Standby"]), lecturer(2, ["Anatomy"])]

    response = allocate(data)

    assert teaching_ids(response) == {2}
    assert response.statistics.pool_size == 1


def test_standby_exclusion_can_be_disabled():
    data = get_single_term_request()
    data["lecturers"] = [lecturer(1, ["Anatomy", "Standby"])]

    response = allocate(data, exclude_standby=False)

    assert teaching_ids(response) == {1}


def test_seeded_random_tie_break_is_repeatable():
    data = get_four_term_request()

    first = allocate(data, tie_break="seeded_random", random_seed=7)
    second = allocate(data, tie_break="seeded_random", random_seed=7)

    assert [a.model_dump() for a in first.assignments] == [a.model_dump() for a in second.assignments]


def test_unknown_tie_break_rejected():
    with pytest.raises(ValueError):
        allocate(get_single_term_request(), tie_break="coin_flip")


def test_expertise_accepts_comma_and_json_strings():
    data = get_single_term_request()
    data["courses"][0]["required_expertise"] = '["Anatomy", "Anatomy"]'
    data["lecturers"] = [lecturer(1, "Physiology, anatomy lab")]

    request = AllocationRequest(**data)
    assert request.lecturers[0].expertise == ["Physiology", "anatomy lab"]

    response = LecturerAllocator().compute(request)
    assert teaching_ids(response) == {1}
    # Duplicates count toward expertise volume
    assert response.statistics.expertise_volume == {"Anatomy": 2}


def test_assignments_are_deterministic():
    data = get_four_term_request()

    first = allocate(data)
    second = allocate(data)

    assert [a.model_dump() for a in first.assignments] == [a.model_dump() for a in second.assignments]


def test_load_tracker_orders_by_load_then_score():
    request = AllocationRequest(**get_single_term_request())
    tracker = LoadTracker({2: 1})
    tracker.rank(request.lecturers)
    matcher = ExpertiseMatcher(["Anatomy", "Biochemistry"])

    assert [l.id for l in tracker.order(request.lecturers, matcher)] == [1, 2]

    tracker.record(1, 2)
    assert tracker.count(1) == 2
    assert [l.id for l in tracker.order(request.lecturers, matcher)] == [2, 1]
