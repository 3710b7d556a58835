"""Group store and access error types."""


class GroupStoreError(Exception):
    """Base error for group store operations."""


class DuplicateGroupError(GroupStoreError):
    """Raised when a derived group id is already in use."""


class InvalidArgumentError(GroupStoreError):
    """Raised when a group cannot be created from the given arguments."""


class NotFoundError(GroupStoreError):
    """Raised when a group id is neither available nor joined."""


class StorageError(GroupStoreError):
    """Raised when persisted group records cannot be read or written."""


class AccessError(Exception):
    """Base error for proof-gated access."""


class ProofRejectedError(AccessError):
    """Raised when a join is attempted with a proof that did not verify."""


class JoinInProgressError(AccessError):
    """Raised when a join for the same group is already running."""
