"""
Lecturer allocation service layer.
"""
from .allocator import LecturerAllocator
from .apportionment import Apportionment, apportion
from .errors import AllocationError, MissingSmallGroupsError, PersistenceError, PreconditionError
from .store import AssignmentStore, InMemoryAssignmentStore, JsonFileAssignmentStore, create_store
from .writer import AssignmentWriter

__all__ = [
    "LecturerAllocator",
    "Apportionment",
    "apportion",
    "AllocationError",
    "MissingSmallGroupsError",
    "PersistenceError",
    "PreconditionError",
    "AssignmentStore",
    "InMemoryAssignmentStore",
    "JsonFileAssignmentStore",
    "create_store",
    "AssignmentWriter",
]
