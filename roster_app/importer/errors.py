"""Exception hierarchy for the roster importer.

Every failure that aborts a validate or import call is a ``RosterImportError``.
Row-level problems are never raised; they are recorded as issues on the row
(see ``roster_app.importer.rows``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .reports import ValidationReport


class RosterImportError(Exception):
    """Base exception for roster import failures."""

    retryable = False


class MalformedInputError(RosterImportError):
    """Raised when an upload cannot be decoded as its declared type."""


class SchemaMismatchError(RosterImportError):
    """Raised when the header row does not meet the column contract."""

    def __init__(
        self,
        *,
        missing: Sequence[str] | None = None,
        duplicates: Sequence[str] | None = None,
    ) -> None:
        details: list[str] = []
        if missing:
            details.append(f"Missing required columns: {', '.join(sorted(missing))}.")
        if duplicates:
            details.append(
                "Duplicate canonical columns detected: "
                + ", ".join(sorted(duplicates))
                + ". Ensure each column appears only once."
            )
        message = "Header validation failed. " + " ".join(details) if details else "Header validation failed."
        super().__init__(message)
        self.missing = tuple(missing or ())
        self.duplicates = tuple(duplicates or ())


class ImportBlockedError(RosterImportError):
    """Raised when an import finds invalid rows and partial imports were not accepted."""

    def __init__(self, report: "ValidationReport") -> None:
        invalid = report.summary.invalid_records
        super().__init__(
            f"Import blocked: {invalid} row(s) failed validation at commit time. "
            "Fix the file or re-run with partial imports allowed."
        )
        self.report = report


class TransactionConflictError(RosterImportError):
    """Raised when concurrent writers invalidated the import transaction."""

    retryable = True

    def __init__(self, message: str, *, attempts: int | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts


class PersistenceError(RosterImportError):
    """Raised for unexpected storage failures; the transaction is rolled back."""


class InvalidStrategyError(RosterImportError):
    """Raised when an unknown duplicate-resolution strategy is requested."""


class TermNotFoundError(RosterImportError):
    """Raised when the governing term does not exist or no longer accepts officials."""


class UnitNotFoundError(RosterImportError):
    """Raised when a geographic unit lookup by id or code finds nothing."""


__all__ = [
    "ImportBlockedError",
    "InvalidStrategyError",
    "MalformedInputError",
    "PersistenceError",
    "RosterImportError",
    "SchemaMismatchError",
    "TermNotFoundError",
    "TransactionConflictError",
    "UnitNotFoundError",
]
