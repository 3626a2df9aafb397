"""Tests for seat vacancy statistics."""

import pytest

from config.seat_limits import SeatLimits
from roster_app.importer.errors import TermNotFoundError, UnitNotFoundError
from roster_app.importer.vacancies import get_term_vacancies, get_unit_vacancies
from roster_app.models import OfficialStatus


def test_unit_vacancies_count_active_officials_only(term, units, official_factory):
    official_factory("Ana", "Reyes", position="SK Secretary")
    official_factory("Ben", "Cruz")
    official_factory("Carla", "Santos", status=OfficialStatus.INACTIVE)

    table = get_unit_vacancies(term.id, units["BRGY-001"].id)

    secretary = table.position("SK Secretary")
    assert (secretary.filled, secretary.max, secretary.available, secretary.is_full) == (1, 1, 0, True)
    councilor = table.position("SK Councilor")
    assert (councilor.filled, councilor.available, councilor.inactive) == (1, 6, 1)
    assert table.total_available == 1 + 1 + 6
    assert table.as_dict()["unitCode"] == "BRGY-001"


def test_term_vacancies_cover_every_unit_in_name_order(term, units, official_factory):
    official_factory("Ana", "Reyes", unit="BRGY-002", position="SK Treasurer")

    tables = get_term_vacancies(term.id)

    assert [table.unit_name for table in tables] == ["San Isidro", "Santa Cruz"]
    assert tables[1].position("SK Treasurer").is_full
    assert tables[0].position("SK Treasurer").available == 1


def test_injected_seat_limits_are_used(term, units, official_factory):
    official_factory("Ana", "Reyes", position="SK Secretary")

    table = get_unit_vacancies(term.id, units["BRGY-001"].id, seat_limits=SeatLimits({"SK Secretary": 2}))

    assert [vacancy.position for vacancy in table.positions] == ["SK Secretary"]
    assert table.position("SK Secretary").available == 1


def test_over_filled_legacy_seats_report_zero_available(term, units, official_factory):
    official_factory("Ana", "Reyes", position="SK Chairperson")
    official_factory("Ben", "Cruz", position="SK Chairperson")

    vacancy = get_unit_vacancies(term.id, units["BRGY-001"].id).position("SK Chairperson")

    assert vacancy.filled == 2
    assert vacancy.available == 0


def test_unknown_unit_and_term_raise(term, units):
    with pytest.raises(UnitNotFoundError):
        get_unit_vacancies(term.id, 404)
    with pytest.raises(TermNotFoundError):
        get_term_vacancies(404)
