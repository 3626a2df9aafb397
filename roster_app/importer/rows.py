"""
Transient row model shared by every importer stage.

A ``CandidateRow`` is rebuilt from the uploaded file on each validate or import
call and never persisted. Problems found along the way are attached as
``ValidationIssue`` values; a row with at least one issue is ``invalid``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, NamedTuple

STATUS_VALID = "valid"
STATUS_INVALID = "invalid"

# Stable issue codes surfaced in reports
FIELD_REQUIRED = "ROSTER_FIELD_REQUIRED"
FIELD_TOO_LONG = "ROSTER_FIELD_TOO_LONG"
POSITION_UNKNOWN = "ROSTER_POSITION_UNKNOWN"
UNIT_UNKNOWN = "ROSTER_UNIT_UNKNOWN"
EMAIL_INVALID = "ROSTER_EMAIL_INVALID"
DUPLICATE_IN_FILE = "ROSTER_DUPLICATE_IN_FILE"
CAPACITY_EXCEEDED = "ROSTER_CAPACITY_EXCEEDED"
ASSIGNMENT_MISMATCH = "ROSTER_ASSIGNMENT_MISMATCH"


class SeatKey(NamedTuple):
    """Capacity ledger key: (governing term, geographic unit, position label)."""

    term_id: int
    unit_id: int
    position: str


@dataclass(frozen=True)
class ValidationIssue:
    """A non-fatal problem recorded against one row."""

    code: str
    message: str
    field: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "field": self.field, "message": self.message}


@dataclass(frozen=True)
class CapacityExceededIssue(ValidationIssue):
    """Raised against a row whose seat claim would overflow its position."""

    position: str | None = None
    unit_name: str | None = None
    max_seats: int = 0
    filled: int = 0

    @classmethod
    def for_claim(
        cls,
        *,
        position: str,
        unit_name: str | None,
        max_seats: int,
        filled: int,
    ) -> "CapacityExceededIssue":
        where = unit_name or "this unit"
        return cls(
            code=CAPACITY_EXCEEDED,
            field="position",
            message=(
                f"{position} has no vacant seat in {where} "
                f"({filled} of {max_seats} already taken)."
            ),
            position=position,
            unit_name=unit_name,
            max_seats=max_seats,
            filled=filled,
        )

    def as_dict(self) -> dict[str, Any]:
        payload = super().as_dict()
        payload.update({"maxSeats": self.max_seats, "filled": self.filled})
        return payload


@dataclass
class NormalizedFields:
    """Trimmed field values; names keep their original casing for storage."""

    first_name: str | None = None
    last_name: str | None = None
    middle_name: str | None = None
    suffix: str | None = None
    position: str | None = None
    unit: str | None = None
    email: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "middleName": self.middle_name,
            "suffix": self.suffix,
            "position": self.position,
            "unit": self.unit,
            "email": self.email,
        }


@dataclass
class DuplicateClassification:
    """
    Independent duplicate flags for one row.

    Every member of a repeated in-file key has ``in_file`` set; only the
    lowest-numbered member is ``is_primary_in_file``.
    """

    in_file: bool = False
    is_primary_in_file: bool = False
    in_db_active: bool = False
    in_db_inactive: bool = False
    primary_row_number: int | None = None
    active_match_ids: list[int] = field(default_factory=list)
    inactive_match_ids: list[int] = field(default_factory=list)

    @property
    def is_non_primary_in_file(self) -> bool:
        return self.in_file and not self.is_primary_in_file

    def as_dict(self) -> dict[str, Any]:
        return {
            "inFile": self.in_file,
            "isPrimaryInFile": self.is_primary_in_file,
            "inDbActive": self.in_db_active,
            "inDbInactive": self.in_db_inactive,
        }


@dataclass
class CandidateRow:
    row_number: int
    raw: Mapping[str, str | None]
    fields: NormalizedFields = field(default_factory=NormalizedFields)
    unit_id: int | None = None
    unit_name: str | None = None
    issues: list[ValidationIssue] = field(default_factory=list)
    duplicate: DuplicateClassification = field(default_factory=DuplicateClassification)

    @property
    def status(self) -> str:
        return STATUS_INVALID if self.issues else STATUS_VALID

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def add_issue(self, issue: ValidationIssue) -> None:
        self.issues.append(issue)

    def has_issue(self, code: str) -> bool:
        return any(issue.code == code for issue in self.issues)

    @property
    def blocking_issues(self) -> list[ValidationIssue]:
        """Issues other than being a later copy of an earlier row."""

        return [issue for issue in self.issues if issue.code != DUPLICATE_IN_FILE]

    def seat_key(self, term_id: int) -> SeatKey | None:
        if self.unit_id is None or not self.fields.position:
            return None
        return SeatKey(term_id, self.unit_id, self.fields.position)

    def issue_messages(self) -> list[str]:
        return [issue.message for issue in self.issues]


__all__ = [
    "ASSIGNMENT_MISMATCH",
    "CAPACITY_EXCEEDED",
    "CandidateRow",
    "CapacityExceededIssue",
    "DUPLICATE_IN_FILE",
    "DuplicateClassification",
    "EMAIL_INVALID",
    "FIELD_REQUIRED",
    "FIELD_TOO_LONG",
    "NormalizedFields",
    "POSITION_UNKNOWN",
    "STATUS_INVALID",
    "STATUS_VALID",
    "SeatKey",
    "UNIT_UNKNOWN",
    "ValidationIssue",
]
