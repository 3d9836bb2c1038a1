"""
Largest-remainder (Hamilton) apportionment of the teaching pool across terms.
"""
from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass
class Apportionment:
    pool_size: int
    total_need: int
    needs: Dict[int, int]
    percentages: Dict[int, float]
    allocation: Dict[int, int]

    @property
    def allocated(self) -> int:
        return sum(self.allocation.values())


def apportion(needs: Mapping[int, int], pool_size: int) -> Apportionment:
    """
    Split ``pool_size`` lecturers across terms in proportion to ``needs``.

    Each term first gets ``floor(pool_size * need / total_need)``. The
    leftover units go one per term, to the terms with the largest shortfall
    ``need - alloc`` (ties: larger fractional remainder, then lower term).
    When the pool covers every need, each term gets exactly its need and
    the surplus stays unused.
    """
    if pool_size < 0:
        raise ValueError("pool_size must not be negative")
    if any(need < 0 for need in needs.values()):
        raise ValueError("term needs must not be negative")

    terms = sorted(needs)
    total_need = sum(needs[t] for t in terms)

    if total_need == 0:
        return Apportionment(
            pool_size=pool_size,
            total_need=0,
            needs={t: needs[t] for t in terms},
            percentages={t: 0.0 for t in terms},
            allocation={t: 0 for t in terms},
        )

    percentages = {t: round(needs[t] * 100.0 / total_need, 2) for t in terms}

    if pool_size >= total_need:
        allocation = {t: needs[t] for t in terms}
    else:
        # Integer arithmetic keeps floors and remainders exact
        allocation = {t: (pool_size * needs[t]) // total_need for t in terms}
        remainders = {t: (pool_size * needs[t]) % total_need for t in terms}
        leftover = pool_size - sum(allocation.values())

        order = sorted(
            (t for t in terms if needs[t] > allocation[t]),
            key=lambda t: (-(needs[t] - allocation[t]), -remainders[t], t),
        )
        for term in order[:leftover]:
            allocation[term] += 1

    return Apportionment(
        pool_size=pool_size,
        total_need=total_need,
        needs={t: needs[t] for t in terms},
        percentages=percentages,
        allocation=allocation,
    )
