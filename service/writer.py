"""
Batch commit and reset of assignment records.
"""
from typing import Iterable, List
from models.schemas import Assignment, CommitResult, CommitSummary
from service.store import AssignmentStore
import logging

logger = logging.getLogger(__name__)


class AssignmentWriter:
    """
    Submits allocation output to an assignment store.

    A commit is applied record by record and is not rolled back on failure;
    the summary reports what happened to each record. Reset is idempotent.
    """

    def __init__(self, store: AssignmentStore):
        self.store = store

    def commit(self, assignments: Iterable[Assignment]) -> CommitSummary:
        results: List[CommitResult] = []
        success = error = skipped = 0

        for assignment in assignments:
            try:
                if self.store.exists(assignment.module_id, assignment.lecturer_id):
                    results.append(CommitResult(
                        module_id=assignment.module_id,
                        lecturer_id=assignment.lecturer_id,
                        status="skipped",
                        message="Assignment already exists",
                    ))
                    skipped += 1
                    continue

                self.store.add(assignment)
                results.append(CommitResult(
                    module_id=assignment.module_id,
                    lecturer_id=assignment.lecturer_id,
                    status="success",
                    message=f"Assigned as {assignment.role}",
                ))
                success += 1
            except Exception as e:
                logger.error(
                    f"Failed to store assignment of lecturer {assignment.lecturer_id} "
                    f"to module {assignment.module_id}: {e}"
                )
                results.append(CommitResult(
                    module_id=assignment.module_id,
                    lecturer_id=assignment.lecturer_id,
                    status="error",
                    message=str(e),
                ))
                error += 1

        logger.info(f"Commit finished: {success} stored, {error} failed, {skipped} skipped")
        return CommitSummary(
            total=len(results),
            success=success,
            error=error,
            skipped=skipped,
            results=results,
        )

    def reset(self, module_ids: Iterable[int]) -> int:
        """Remove every stored assignment of ``module_ids``."""
        module_ids = sorted(set(module_ids))
        deleted = self.store.delete_for_modules(module_ids)
        logger.info(f"Reset {len(module_ids)} modules: {deleted} assignments removed")
        return deleted
