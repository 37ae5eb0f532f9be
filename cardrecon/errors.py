# cardrecon/errors.py

"""
Error taxonomy for reconciliation and match lifecycle operations.

Every operation is all-or-nothing: when one of these is raised, nothing
from that call has been persisted.
"""


class ReconciliationError(Exception):
    """Base class for all engine errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReconciliationError):
    """Bad input (tolerances, owner scope, ids). Rejected before any read."""

    kind = "validation_error"


class NotFoundError(ReconciliationError):
    """The referenced record does not exist for this owner."""

    kind = "not_found"


class ConflictError(ReconciliationError):
    """A record changed underneath the caller. Safe to reload and retry."""

    kind = "conflict"


class PersistenceError(ReconciliationError):
    """The store failed mid-operation; the operation was rolled back."""

    kind = "persistence_error"
