"""
Exceptions raised by the allocation service.
"""
from typing import Iterable, List


class AllocationError(Exception):
    """Base class for allocation failures."""


class PreconditionError(AllocationError):
    """
    Input data cannot support generation.

    Raised before any assignment is computed or persisted; ``terms`` names
    every term that failed the check.
    """

    def __init__(self, message: str, terms: Iterable[int] = ()):
        super().__init__(message)
        self.terms: List[int] = sorted(set(terms))


class MissingSmallGroupsError(PreconditionError):
    def __init__(self, terms: Iterable[int]):
        terms = sorted(set(terms))
        names = ", ".join(str(t) for t in terms)
        super().__init__(
            f"No small-group data for term(s) {names} that have modules; "
            f"lecturer demand is undefined",
            terms,
        )


class PersistenceError(AllocationError):
    """The assignment store failed to read or write."""
