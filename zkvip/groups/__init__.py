"""Group membership store and proof-gated access."""

from .access import AccessController
from .errors import (
    AccessError,
    DuplicateGroupError,
    GroupStoreError,
    InvalidArgumentError,
    JoinInProgressError,
    NotFoundError,
    ProofRejectedError,
    StorageError,
)
from .events import ChangeNotifier, GroupEvent
from .models import AvailableGroup, JoinedGroup, derive_group_id
from .storage import CborFileStorage, GroupStorage, MemoryStorage
from .store import DEFAULT_AVAILABLE_GROUPS, GroupStore

__all__ = [
    "AccessController",
    "AccessError",
    "AvailableGroup",
    "CborFileStorage",
    "ChangeNotifier",
    "DEFAULT_AVAILABLE_GROUPS",
    "DuplicateGroupError",
    "GroupEvent",
    "GroupStorage",
    "GroupStore",
    "GroupStoreError",
    "InvalidArgumentError",
    "JoinInProgressError",
    "JoinedGroup",
    "MemoryStorage",
    "NotFoundError",
    "ProofRejectedError",
    "StorageError",
    "derive_group_id",
]
