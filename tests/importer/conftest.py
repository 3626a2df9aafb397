from __future__ import annotations

import csv
import io
from datetime import date

import pytest
from openpyxl import Workbook

from roster_app.importer.service import RosterImportService, RosterImportSettings
from roster_app.models import GeographicUnit, GoverningTerm, Official, OfficialStatus, TermStatus, db

ROSTER_HEADER = ("first_name", "last_name", "middle_name", "suffix", "position", "barangay", "email")


def _as_row(values, header):
    if isinstance(values, dict):
        return [values.get(column, "") for column in header]
    return list(values)


def build_csv(rows, header=ROSTER_HEADER) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(header)
    for values in rows:
        writer.writerow(_as_row(values, header))
    return buffer.getvalue().encode("utf-8")


def build_xlsx(rows, header=ROSTER_HEADER) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(list(header))
    for values in rows:
        ws.append(_as_row(values, header))
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def roster_row(first, last, position="SK Councilor", unit="BRGY-001", email=None, **extra) -> dict:
    row = {
        "first_name": first,
        "last_name": last,
        "position": position,
        "barangay": unit,
        "email": email if email is not None else f"{first}.{last}@example.org".lower(),
    }
    row.update(extra)
    return row


@pytest.fixture
def term(app):
    term = GoverningTerm(name="2023-2026", start_date=date(2023, 11, 1), status=TermStatus.ACTIVE)
    db.session.add(term)
    db.session.commit()
    return term


@pytest.fixture
def completed_term(app):
    term = GoverningTerm(name="2018-2022", start_date=date(2018, 6, 30), status=TermStatus.COMPLETED)
    db.session.add(term)
    db.session.commit()
    return term


@pytest.fixture
def units(app):
    san_isidro = GeographicUnit(code="BRGY-001", name="San Isidro")
    santa_cruz = GeographicUnit(code="BRGY-002", name="Santa Cruz")
    db.session.add_all([san_isidro, santa_cruz])
    db.session.commit()
    return {"BRGY-001": san_isidro, "BRGY-002": santa_cruz}


@pytest.fixture
def official_factory(term, units):
    def _factory(
        first_name: str,
        last_name: str,
        *,
        position: str = "SK Councilor",
        unit: str = "BRGY-001",
        email: str | None = None,
        status: OfficialStatus = OfficialStatus.ACTIVE,
        term_id: int | None = None,
    ) -> Official:
        official = Official(
            term_id=term_id or term.id,
            unit_id=units[unit].id,
            position=position,
            first_name=first_name,
            last_name=last_name,
            email=email,
            status=status,
        )
        db.session.add(official)
        db.session.commit()
        return official

    return _factory


@pytest.fixture
def service_factory(app, units):
    def _factory(**overrides) -> RosterImportService:
        return RosterImportService(RosterImportSettings.from_config(app.config, **overrides))

    return _factory


@pytest.fixture
def service(service_factory):
    return service_factory()


def active_count(term_id: int, unit_id: int, position: str) -> int:
    return (
        Official.query.filter_by(term_id=term_id, unit_id=unit_id, position=position, status=OfficialStatus.ACTIVE)
        .count()
    )


@pytest.fixture
def make_csv():
    return build_csv


@pytest.fixture
def make_xlsx():
    return build_xlsx


@pytest.fixture
def make_row():
    return roster_row


@pytest.fixture
def seat_count():
    return active_count
