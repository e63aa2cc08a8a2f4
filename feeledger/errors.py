from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the ledger reports to its callers."""


class ValidationError(LedgerError):
    """Malformed input, rejected before any store call."""


class StoreError(LedgerError):
    """Transport or write failure in a row store adapter."""


class NotFoundError(LedgerError):
    """A student that was assumed to exist is missing from the store."""


class IntegrityViolation(LedgerError):
    """The store holds data that breaks a uniqueness or targeting assumption."""


class PartialDeleteError(LedgerError):
    def __init__(self, student_id: str, deleted: int, remaining: int):
        super().__init__(
            f"Delete of student {student_id} was partial: {deleted} row(s) removed, {remaining} left"
        )
        self.student_id = student_id
        self.deleted = deleted
        self.remaining = remaining


class AuthError(LedgerError):
    """Admin login rejected."""
