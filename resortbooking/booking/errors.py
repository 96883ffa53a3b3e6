"""Exceptions raised by the booking ledger."""

from __future__ import annotations


class BookingError(RuntimeError):
    """Base class for every failure the ledger reports to its callers."""

    kind = "error"


class ValidationError(BookingError):
    """Raised when incoming data fails validation."""

    kind = "validation_error"


class AmenityError(ValidationError):
    """Raised when an amenity row cannot be normalised."""

    kind = "invalid_amenity"

    def __init__(self, message: str, *, row: int) -> None:
        super().__init__(message)
        self.row = row


class EmptyItemError(AmenityError):
    kind = "empty_item"


class InvalidPriceError(AmenityError):
    kind = "invalid_price"


class InvalidQuantityError(AmenityError):
    kind = "invalid_quantity"


class BelowPaidAmountError(ValidationError):
    """Raised when an update would shrink a booking below what was collected."""

    kind = "below_paid_amount"


class SlotConflictError(BookingError):
    """Raised when a requested range overlaps an active booking."""

    kind = "slot_conflict"


class NotFoundError(BookingError):
    kind = "not_found"


class StorageError(BookingError):
    """Raised when the underlying database fails; safe to retry."""

    kind = "storage_error"
