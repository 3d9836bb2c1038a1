from fastapi import APIRouter, Depends, Query
from typing import Dict, List, Optional
from models.schemas import (
    AllocationRequest, AllocationResponse, AllocationWarning, CommitRequest, CommitSummary,
    DistributionSnapshot, GenerateStatus, ResetRequest, ResetResponse, StoredAssignment
)
from service.allocator import LecturerAllocator
from service.store import AssignmentStore, create_store
from service.writer import AssignmentWriter
from config import settings
import asyncio
import logging

logger = logging.getLogger(__name__)

# Create a router instance
router = APIRouter()

_store: Optional[AssignmentStore] = None

# Reset+Generate cycles must not interleave
_generate_lock = asyncio.Lock()


def get_store() -> AssignmentStore:
    """Process-wide assignment store, built from settings on first use."""
    global _store
    if _store is None:
        _store = create_store(settings.store_backend, settings.store_path)
    return _store


def get_allocator() -> LecturerAllocator:
    return LecturerAllocator(
        active_terms=settings.active_terms,
        tie_break=settings.tie_break,
        random_seed=settings.random_seed,
        exclude_standby=settings.exclude_standby,
        standby_tag=settings.standby_tag,
        overload_threshold=settings.overload_threshold,
    )


@router.post("/allocation/preview", response_model=AllocationResponse)
async def preview_allocation(
    request: AllocationRequest,
    allocator: LecturerAllocator = Depends(get_allocator),
):
    """
    Compute lecturer assignments without persisting anything.
    """
    return allocator.allocate(request)


@router.post("/allocation/generate", response_model=AllocationResponse)
async def generate_allocation(
    request: AllocationRequest,
    store: AssignmentStore = Depends(get_store),
    allocator: LecturerAllocator = Depends(get_allocator),
):
    """
    Reset the modules this run covers and store a fresh allocation.

    Only modules of the active terms matching the request's term and blok
    filters are reset. Blocked or failed allocations leave stored
    assignments untouched. Stored assignments of other modules count as
    historical load.
    """
    async with _generate_lock:
        module_ids = allocator.module_ids(request)
        response = allocator.allocate(
            request,
            extra_load=store.assignment_counts(exclude_modules=module_ids),
        )
        if response.status not in ("COMPLETE", "PARTIAL"):
            return response

        writer = AssignmentWriter(store)
        writer.reset(module_ids)
        response.commit = writer.commit(response.assignments)

        store.replace_warnings([d.term for d in response.demand], response.warnings)
        store.save_distribution(DistributionSnapshot(
            blok=request.blok,
            term_needs={d.term: d.need for d in response.distribution},
            term_percentages={d.term: d.percentage for d in response.distribution},
            term_distribution={d.term: d.allocated for d in response.distribution},
            pool_size=response.statistics.pool_size,
            total_need=response.statistics.total_need,
        ))
        return response


@router.post("/allocation/commit", response_model=CommitSummary)
async def commit_assignments(request: CommitRequest, store: AssignmentStore = Depends(get_store)):
    """
    Store a batch of assignments; existing (module, lecturer) pairs are skipped.
    """
    async with _generate_lock:
        return AssignmentWriter(store).commit(request.assignments)


@router.post("/allocation/reset", response_model=ResetResponse)
async def reset_assignments(request: ResetRequest, store: AssignmentStore = Depends(get_store)):
    """
    Remove every stored assignment of the given modules. Safe to repeat.
    """
    async with _generate_lock:
        deleted = AssignmentWriter(store).reset(request.module_ids)
    return ResetResponse(
        module_ids=request.module_ids,
        deleted_count=deleted,
        message=f"Reset complete. {deleted} assignments removed.",
    )


@router.get("/allocation/assignments", response_model=Dict[int, List[StoredAssignment]])
async def get_assignments(
    module_ids: List[int] = Query(...),
    store: AssignmentStore = Depends(get_store),
):
    """
    Stored assignments grouped by module, with each lecturer's stored load.
    """
    grouped: Dict[int, List[StoredAssignment]] = {}
    for row in store.list_for_modules(module_ids):
        grouped.setdefault(row.module_id, []).append(row)
    return grouped


@router.get("/allocation/status", response_model=GenerateStatus)
async def get_generate_status(
    blok: Optional[int] = Query(None),
    store: AssignmentStore = Depends(get_store),
):
    """
    Whether assignments have been generated for a blok.
    """
    assignment_count, module_count = store.count_for_blok(blok)
    is_generated = assignment_count > 0
    return GenerateStatus(
        blok=blok,
        is_generated=is_generated,
        assignment_count=assignment_count,
        module_count=module_count,
        message="Blok has been generated" if is_generated else "Blok has not been generated",
    )


@router.get("/allocation/warnings", response_model=List[AllocationWarning])
async def get_warnings(
    term: Optional[int] = Query(None),
    store: AssignmentStore = Depends(get_store),
):
    """
    Shortage warnings of the latest generate run of each term.
    """
    return store.list_warnings(term)


@router.get("/allocation/distribution", response_model=Optional[DistributionSnapshot])
async def get_distribution(
    blok: Optional[int] = Query(None),
    store: AssignmentStore = Depends(get_store),
):
    """
    Latest proportional distribution of a blok, or null if none was saved.
    """
    return store.get_distribution(blok)


@router.delete("/allocation/distribution")
async def delete_distribution(
    blok: Optional[int] = Query(None),
    store: AssignmentStore = Depends(get_store),
):
    """
    Delete the saved proportional distribution of a blok.
    """
    return {"deleted_count": store.delete_distribution(blok)}
