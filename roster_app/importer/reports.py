"""
Validation and import report builders.

Both builders are pure aggregation over already-processed rows. ``as_dict``
produces the camelCase payload handed back to callers and stored on
``RosterImportRun``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from .rows import CandidateRow

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_RESTORED = "restored"
ACTION_SKIPPED = "skipped"
ACTION_FAILED = "failed"
IMPORT_ACTIONS = (ACTION_CREATED, ACTION_UPDATED, ACTION_RESTORED, ACTION_SKIPPED, ACTION_FAILED)


@dataclass(frozen=True)
class ValidationSummary:
    total_records: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    duplicate_in_file: int = 0
    duplicate_in_db_active: int = 0
    duplicate_in_db_inactive: int = 0

    @property
    def duplicate_records(self) -> int:
        return self.duplicate_in_file + self.duplicate_in_db_active + self.duplicate_in_db_inactive

    def as_dict(self) -> dict[str, int]:
        return {
            "totalRecords": self.total_records,
            "validRecords": self.valid_records,
            "invalidRecords": self.invalid_records,
            "duplicateRecords": self.duplicate_records,
            "duplicateInFile": self.duplicate_in_file,
            "duplicateInDbActive": self.duplicate_in_db_active,
            "duplicateInDbInactive": self.duplicate_in_db_inactive,
        }


@dataclass(frozen=True)
class ValidationRowReport:
    row_number: int
    status: str
    issues: tuple[dict[str, Any], ...]
    normalized: dict[str, Any]
    resolved_unit_id: int | None
    resolved_unit_name: str | None
    duplicate: dict[str, bool]

    @property
    def messages(self) -> list[str]:
        return [issue["message"] for issue in self.issues]

    def as_dict(self) -> dict[str, Any]:
        return {
            "rowNumber": self.row_number,
            "status": self.status,
            "issues": self.messages,
            "issueDetails": [dict(issue) for issue in self.issues],
            "normalized": dict(self.normalized),
            "resolvedUnitId": self.resolved_unit_id,
            "resolvedUnitName": self.resolved_unit_name,
            "duplicate": dict(self.duplicate),
        }


@dataclass(frozen=True)
class ValidationReport:
    summary: ValidationSummary
    rows: tuple[ValidationRowReport, ...]
    term_id: int | None = None

    @property
    def is_valid(self) -> bool:
        return self.summary.invalid_records == 0

    def row(self, row_number: int) -> ValidationRowReport:
        for row in self.rows:
            if row.row_number == row_number:
                return row
        raise KeyError(row_number)

    def as_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "summary": self.summary.as_dict(),
            "rows": [row.as_dict() for row in self.rows],
        }


class ValidationReportBuilder:
    """Aggregate classified ``CandidateRow`` objects into a ``ValidationReport``."""

    def build(self, rows: Iterable[CandidateRow], *, term_id: int | None = None) -> ValidationReport:
        ordered = sorted(rows, key=lambda row: row.row_number)
        invalid = sum(1 for row in ordered if not row.is_valid)
        summary = ValidationSummary(
            total_records=len(ordered),
            valid_records=len(ordered) - invalid,
            invalid_records=invalid,
            duplicate_in_file=sum(1 for row in ordered if row.duplicate.in_file),
            duplicate_in_db_active=sum(1 for row in ordered if row.duplicate.in_db_active),
            duplicate_in_db_inactive=sum(1 for row in ordered if row.duplicate.in_db_inactive),
        )
        return ValidationReport(
            summary=summary,
            rows=tuple(self._row_report(row) for row in ordered),
            term_id=term_id,
        )

    @staticmethod
    def _row_report(row: CandidateRow) -> ValidationRowReport:
        return ValidationRowReport(
            row_number=row.row_number,
            status=row.status,
            issues=tuple(issue.as_dict() for issue in row.issues),
            normalized=row.fields.as_dict(),
            resolved_unit_id=row.unit_id,
            resolved_unit_name=row.unit_name,
            duplicate=row.duplicate.as_dict(),
        )


@dataclass(frozen=True)
class ImportRowResult:
    row_number: int
    action: str
    message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "rowNumber": self.row_number,
            "action": self.action,
            "message": self.message,
            "data": dict(self.data),
        }


@dataclass(frozen=True)
class ImportSummary:
    total: int = 0
    created: int = 0
    updated: int = 0
    restored: int = 0
    skipped: int = 0
    failed: int = 0
    duplicate_strategy: str = "skip"

    def count(self, action: str) -> int:
        return getattr(self, action)

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "restored": self.restored,
            "skipped": self.skipped,
            "failed": self.failed,
            "duplicateStrategy": self.duplicate_strategy,
        }


@dataclass(frozen=True)
class ImportReport:
    summary: ImportSummary
    rows: tuple[ImportRowResult, ...]
    run_id: int | None = None
    attempts: int = 1

    def row(self, row_number: int) -> ImportRowResult:
        for row in self.rows:
            if row.row_number == row_number:
                return row
        raise KeyError(row_number)

    def as_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.as_dict(),
            "rows": [row.as_dict() for row in self.rows],
            "runId": self.run_id,
        }


class ImportReportBuilder:
    """Collect per-row actions in row order and produce an ``ImportReport``."""

    def __init__(self, strategy: str) -> None:
        self.strategy = strategy
        self._rows: dict[int, ImportRowResult] = {}

    def record(
        self,
        row: CandidateRow,
        action: str,
        *,
        message: str | None = None,
        official_id: int | None = None,
    ) -> ImportRowResult:
        if action not in IMPORT_ACTIONS:
            raise ValueError(f"Unknown import action '{action}'")
        data = row.fields.as_dict()
        data.update({"unitId": row.unit_id, "unitName": row.unit_name, "officialId": official_id})
        result = ImportRowResult(row_number=row.row_number, action=action, message=message, data=data)
        self._rows[row.row_number] = result
        return result

    def build(self, *, run_id: int | None = None, attempts: int = 1) -> ImportReport:
        ordered: Sequence[ImportRowResult] = [self._rows[number] for number in sorted(self._rows)]
        counts = {action: 0 for action in IMPORT_ACTIONS}
        for result in ordered:
            counts[result.action] += 1
        summary = ImportSummary(total=len(ordered), duplicate_strategy=self.strategy, **counts)
        return ImportReport(summary=summary, rows=tuple(ordered), run_id=run_id, attempts=attempts)


__all__ = [
    "ACTION_CREATED",
    "ACTION_FAILED",
    "ACTION_RESTORED",
    "ACTION_SKIPPED",
    "ACTION_UPDATED",
    "IMPORT_ACTIONS",
    "ImportReport",
    "ImportReportBuilder",
    "ImportRowResult",
    "ImportSummary",
    "ValidationReport",
    "ValidationReportBuilder",
    "ValidationRowReport",
    "ValidationSummary",
]
