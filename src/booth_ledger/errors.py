"""Error kinds surfaced by the business logic layer.

Every condition here is local and recoverable: callers receive the exception
synchronously and decide how to present it. None of them is fatal to the
process.
"""

from __future__ import annotations


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced ingredient, product, or sale is unknown."""


class InsufficientStock(BusinessRuleViolation):
    """Raised when remaining ingredient stock cannot cover a request."""


class NoActiveEvent(BusinessRuleViolation):
    """Raised when fixed-event accounting needs an active event and none exists."""


class InvalidQuantity(BusinessRuleViolation, ValueError):
    """Raised when a sale or stock quantity fails validation."""


class NothingToUndo(BusinessRuleViolation):
    """Raised when undo is requested but no last sale is recorded."""


class DanglingReference(BusinessRuleViolation):
    """Raised when deleting an ingredient still used by a product recipe."""


class PersistenceFailure(RuntimeError):
    """Raised when the ledger cannot be durably written.

    The in-progress operation is aborted without a partial commit.
    """


__all__ = [
    "BusinessRuleViolation",
    "MissingReferenceError",
    "InsufficientStock",
    "NoActiveEvent",
    "InvalidQuantity",
    "NothingToUndo",
    "DanglingReference",
    "PersistenceFailure",
]
