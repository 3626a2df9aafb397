"""Tests for validation and import report aggregation."""

import pytest

from roster_app.importer.reports import ImportReportBuilder, ValidationReportBuilder
from roster_app.importer.rows import CandidateRow, NormalizedFields, ValidationIssue


def _row(row_number, **kwargs):
    return CandidateRow(
        row_number=row_number,
        raw={},
        fields=NormalizedFields(first_name="Ana", last_name="Reyes", position="SK Councilor", email="a@example.org"),
        unit_id=1,
        unit_name="San Isidro",
        **kwargs,
    )


def test_validation_report_summary_and_payload():
    valid = _row(2)
    valid.duplicate.in_db_inactive = True
    invalid = _row(3)
    invalid.add_issue(ValidationIssue(code="ROSTER_EMAIL_INVALID", message="Email is not valid.", field="email"))
    invalid.duplicate.in_db_active = True

    report = ValidationReportBuilder().build([invalid, valid], term_id=1)

    assert [row.row_number for row in report.rows] == [2, 3]
    assert report.summary.as_dict() == {
        "totalRecords": 2,
        "validRecords": 1,
        "invalidRecords": 1,
        "duplicateRecords": 2,
        "duplicateInFile": 0,
        "duplicateInDbActive": 1,
        "duplicateInDbInactive": 1,
    }
    payload = report.as_dict()
    assert payload["isValid"] is False
    assert payload["rows"][1]["issues"] == ["Email is not valid."]
    assert payload["rows"][1]["issueDetails"][0]["field"] == "email"
    assert payload["rows"][0]["normalized"]["firstName"] == "Ana"
    assert payload["rows"][0]["resolvedUnitName"] == "San Isidro"


def test_import_report_orders_rows_and_counts_actions():
    builder = ImportReportBuilder("update")
    builder.record(_row(4), "failed", message="Position is required.")
    builder.record(_row(2), "created", official_id=10)
    builder.record(_row(3), "updated", official_id=5)

    report = builder.build(run_id=7, attempts=2)

    assert [row.row_number for row in report.rows] == [2, 3, 4]
    assert report.summary.as_dict() == {
        "total": 3,
        "created": 1,
        "updated": 1,
        "restored": 0,
        "skipped": 0,
        "failed": 1,
        "duplicateStrategy": "update",
    }
    assert report.row(2).data["officialId"] == 10
    assert report.as_dict()["runId"] == 7
    assert report.attempts == 2


def test_import_report_rejects_unknown_actions():
    with pytest.raises(ValueError):
        ImportReportBuilder("skip").record(_row(2), "merged")
