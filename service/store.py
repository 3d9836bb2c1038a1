"""
Assignment persistence.

The allocator never owns stored state; it hands batches to an
``AssignmentStore``. Two stores are provided: an in-memory one and one that
keeps its state in a JSON file.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from models.schemas import AllocationWarning, Assignment, DistributionSnapshot, StoredAssignment
from service.errors import PersistenceError
import json
import logging
import threading

logger = logging.getLogger(__name__)


class AssignmentStore(ABC):
    """Persistence collaborator for assignments, warnings and distributions."""

    @abstractmethod
    def exists(self, module_id: int, lecturer_id: int) -> bool:
        ...

    @abstractmethod
    def add(self, assignment: Assignment):
        """Persist one assignment and increment the lecturer's stored count."""

    @abstractmethod
    def delete_for_modules(self, module_ids: Iterable[int]) -> int:
        """Remove every assignment of ``module_ids``; return how many were removed."""

    @abstractmethod
    def list_for_modules(self, module_ids: Iterable[int]) -> List[StoredAssignment]:
        ...

    @abstractmethod
    def assignment_counts(self, exclude_modules: Iterable[int] = ()) -> Dict[int, int]:
        """Stored assignments per lecturer, ignoring ``exclude_modules``."""

    @abstractmethod
    def count_for_blok(self, blok: Optional[int]) -> Tuple[int, int]:
        """(assignment count, distinct module count) of a blok; None means every blok."""

    @abstractmethod
    def replace_warnings(self, terms: Iterable[int], warnings: Iterable[AllocationWarning]):
        ...

    @abstractmethod
    def list_warnings(self, term: Optional[int] = None) -> List[AllocationWarning]:
        ...

    @abstractmethod
    def save_distribution(self, snapshot: DistributionSnapshot):
        ...

    @abstractmethod
    def get_distribution(self, blok: Optional[int]) -> Optional[DistributionSnapshot]:
        ...

    @abstractmethod
    def delete_distribution(self, blok: Optional[int]) -> int:
        ...


class InMemoryAssignmentStore(AssignmentStore):
    """Process-local store guarded by a re-entrant lock."""

    def __init__(self):
        self._lock = threading.RLock()
        self._assignments: Dict[Tuple[int, int], Assignment] = {}
        self._counts: Dict[int, int] = {}
        self._warnings: Dict[int, AllocationWarning] = {}
        self._distributions: Dict[Optional[int], DistributionSnapshot] = {}

    def exists(self, module_id: int, lecturer_id: int) -> bool:
        with self._lock:
            return (module_id, lecturer_id) in self._assignments

    def add(self, assignment: Assignment):
        with self._mutation():
            key = (assignment.module_id, assignment.lecturer_id)
            if key in self._assignments:
                raise PersistenceError(
                    f"Lecturer {assignment.lecturer_id} is already assigned to module {assignment.module_id}"
                )
            self._assignments[key] = assignment
            self._counts[assignment.lecturer_id] = self._counts.get(assignment.lecturer_id, 0) + 1

    def delete_for_modules(self, module_ids: Iterable[int]) -> int:
        targets = set(module_ids)
        with self._lock:
            keys = [key for key in self._assignments if key[0] in targets]
            if not keys:
                return 0
            with self._mutation():
                for key in keys:
                    lecturer_id = key[1]
                    del self._assignments[key]
                    if self._counts.get(lecturer_id, 0) > 0:
                        self._counts[lecturer_id] -= 1
            return len(keys)

    def list_for_modules(self, module_ids: Iterable[int]) -> List[StoredAssignment]:
        targets = set(module_ids)
        with self._lock:
            return [
                StoredAssignment(
                    **assignment.model_dump(),
                    assignment_count=self._counts.get(assignment.lecturer_id, 0),
                )
                for (module_id, _), assignment in sorted(self._assignments.items())
                if module_id in targets
            ]

    def assignment_counts(self, exclude_modules: Iterable[int] = ()) -> Dict[int, int]:
        excluded = set(exclude_modules)
        with self._lock:
            counts = dict(self._counts)
            for module_id, lecturer_id in self._assignments:
                if module_id in excluded and counts.get(lecturer_id, 0) > 0:
                    counts[lecturer_id] -= 1
        return {lecturer_id: count for lecturer_id, count in counts.items() if count > 0}

    def count_for_blok(self, blok: Optional[int]) -> Tuple[int, int]:
        with self._lock:
            rows = [a for a in self._assignments.values() if blok is None or a.blok == blok]
        return len(rows), len({a.module_id for a in rows})

    def replace_warnings(self, terms: Iterable[int], warnings: Iterable[AllocationWarning]):
        with self._mutation():
            for term in terms:
                self._warnings.pop(term, None)
            for warning in warnings:
                self._warnings[warning.term] = warning

    def list_warnings(self, term: Optional[int] = None) -> List[AllocationWarning]:
        with self._lock:
            return [
                self._warnings[t] for t in sorted(self._warnings)
                if term is None or t == term
            ]

    def save_distribution(self, snapshot: DistributionSnapshot):
        with self._mutation():
            self._distributions[snapshot.blok] = snapshot

    def get_distribution(self, blok: Optional[int]) -> Optional[DistributionSnapshot]:
        with self._lock:
            return self._distributions.get(blok)

    def delete_distribution(self, blok: Optional[int]) -> int:
        with self._lock:
            if blok not in self._distributions:
                return 0
            with self._mutation():
                del self._distributions[blok]
            return 1

    @contextmanager
    def _mutation(self):
        """Apply one change to the stored state under the lock."""
        with self._lock:
            yield


class JsonFileAssignmentStore(InMemoryAssignmentStore):
    """
    In-memory store mirrored to a JSON file after every change.

    A change is kept only once the file has been rewritten; if the write
    fails the in-memory state is rolled back and the error propagates.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self):
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read assignment store {self.path}: {e}") from e

        for row in payload.get("assignments", []):
            assignment = Assignment(**row)
            self._assignments[(assignment.module_id, assignment.lecturer_id)] = assignment
        self._counts = {int(k): int(v) for k, v in payload.get("counts", {}).items()}
        for row in payload.get("warnings", []):
            warning = AllocationWarning(**row)
            self._warnings[warning.term] = warning
        for row in payload.get("distributions", []):
            snapshot = DistributionSnapshot(**row)
            self._distributions[snapshot.blok] = snapshot
        logger.info(f"Loaded {len(self._assignments)} assignments from {self.path}")

    @contextmanager
    def _mutation(self):
        with self._lock:
            state = (
                dict(self._assignments),
                dict(self._counts),
                dict(self._warnings),
                dict(self._distributions),
            )
            try:
                yield
                self._write()
            except Exception:
                self._assignments, self._counts, self._warnings, self._distributions = state
                raise

    def _write(self):
        payload: Dict[str, Any] = {
            "assignments": [a.model_dump() for _, a in sorted(self._assignments.items())],
            "counts": {str(k): v for k, v in sorted(self._counts.items())},
            "warnings": [w.model_dump() for _, w in sorted(self._warnings.items())],
            "distributions": [d.model_dump(mode="json") for d in self._distributions.values()],
        }
        # A failed write leaves the previous file in place
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, ensure_ascii=False)
            tmp.replace(self.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write assignment store {self.path}: {e}") from e


def create_store(backend: str, path: Optional[str] = None) -> AssignmentStore:
    if backend == "memory":
        return InMemoryAssignmentStore()
    if backend == "json":
        if not path:
            raise ValueError("The json store backend needs a store path")
        return JsonFileAssignmentStore(Path(path))
    raise ValueError(f"Unknown store backend: {backend!r}")
