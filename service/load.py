"""
Lecturer load tracking and fairness ordering.
"""
from collections import Counter
from typing import Dict, List, Mapping, Optional, Sequence
from models.schemas import Lecturer
from service.matching import ExpertiseMatcher
import random


class LoadTracker:
    """
    Running assignment count per lecturer.

    The count starts from the historical load and grows as teaching
    assignments are made during a run. Candidates are ordered by lowest
    load, then best expertise score, then a fixed tie-break rank.
    """

    def __init__(
        self,
        historical: Optional[Mapping[int, int]] = None,
        tie_break: str = "lecturer_id",
        random_seed: int = 42,
    ):
        if tie_break not in ("lecturer_id", "seeded_random"):
            raise ValueError(f"Unknown tie-break: {tie_break!r}")
        self.tie_break = tie_break
        self.random_seed = random_seed
        self._counts: Counter = Counter()
        for lecturer_id, count in (historical or {}).items():
            self._counts[lecturer_id] += max(int(count), 0)
        self._ranks: Dict[int, int] = {}

    def count(self, lecturer_id: int) -> int:
        return self._counts[lecturer_id]

    def record(self, lecturer_id: int, amount: int = 1):
        self._counts[lecturer_id] += amount

    def snapshot(self) -> Dict[int, int]:
        return dict(self._counts)

    def rank(self, lecturers: Sequence[Lecturer]):
        """Fix the final tie-break rank for a pool, once per run."""
        ids = sorted(lecturer.id for lecturer in lecturers)
        if self.tie_break == "seeded_random":
            random.Random(self.random_seed).shuffle(ids)
        self._ranks = {lecturer_id: idx for idx, lecturer_id in enumerate(ids)}

    def order(self, candidates: Sequence[Lecturer], matcher: ExpertiseMatcher) -> List[Lecturer]:
        """Sort candidates by load ascending, match score descending, then rank."""
        return sorted(
            candidates,
            key=lambda lecturer: (
                self.count(lecturer.id),
                -matcher.score(lecturer),
                self._ranks.get(lecturer.id, lecturer.id),
            ),
        )
