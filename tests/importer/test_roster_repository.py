"""Tests for the roster repository and SQLAlchemy error translation."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from roster_app.importer.errors import PersistenceError, TransactionConflictError
from roster_app.importer.repository import RosterRepository, translate_sqlalchemy_error
from roster_app.importer.rows import CandidateRow, NormalizedFields, SeatKey
from roster_app.models import OfficialStatus, PositionSeatLock, db


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


def test_translate_integrity_and_lock_errors_to_conflicts():
    assert isinstance(
        translate_sqlalchemy_error(
            IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: position_seat_locks.term_id"))
        ),
        TransactionConflictError,
    )
    assert isinstance(
        translate_sqlalchemy_error(IntegrityError("INSERT", {}, _PgError("duplicate key value", "23505"))),
        TransactionConflictError,
    )
    assert isinstance(
        translate_sqlalchemy_error(OperationalError("UPDATE", {}, _PgError("could not serialize access", "40001"))),
        TransactionConflictError,
    )
    assert isinstance(
        translate_sqlalchemy_error(OperationalError("UPDATE", {}, Exception("database is locked"))),
        TransactionConflictError,
    )


def test_translate_other_errors_to_persistence_errors():
    error = translate_sqlalchemy_error(ProgrammingError("SELECT", {}, Exception("no such table: officials")))

    assert isinstance(error, PersistenceError)
    assert not error.retryable


@pytest.mark.parametrize(
    "orig",
    [
        Exception("NOT NULL constraint failed: officials.first_name"),
        Exception("FOREIGN KEY constraint failed"),
        _PgError("violates check constraint", "23514"),
        _PgError("violates foreign key constraint", "23503"),
    ],
)
def test_non_unique_integrity_errors_are_fatal(orig):
    error = translate_sqlalchemy_error(IntegrityError("INSERT", {}, orig))

    assert isinstance(error, PersistenceError)
    assert not error.retryable


def test_acquire_seat_locks_creates_and_bumps_lock_rows(term, units):
    repo = RosterRepository()
    keys = [SeatKey(term.id, units["BRGY-002"].id, "SK Secretary"), SeatKey(term.id, units["BRGY-001"].id, "SK Councilor")]

    assert repo.acquire_seat_locks(keys) == sorted(keys)
    repo.acquire_seat_locks(keys[:1])
    db.session.commit()

    versions = {(lock.unit_id, lock.position): lock.lock_version for lock in PositionSeatLock.query.all()}
    assert versions == {
        (units["BRGY-001"].id, "SK Councilor"): 1,
        (units["BRGY-002"].id, "SK Secretary"): 2,
    }


def test_probe_matches_by_unit_or_email(term, units, official_factory):
    same_unit = official_factory("Ana", "Reyes")
    by_email = official_factory("Ben", "Cruz", unit="BRGY-002", email="BEN@example.org")
    official_factory("Carla", "Santos", unit="BRGY-002")
    row = CandidateRow(
        row_number=2,
        raw={},
        fields=NormalizedFields(first_name="Dan", last_name="Uy", position="SK Councilor", email="ben@example.org"),
        unit_id=units["BRGY-001"].id,
    )

    snapshots = RosterRepository().probe_officials(term.id, [row])

    assert [snapshot.id for snapshot in snapshots] == [same_unit.id, by_email.id]


def test_filled_counts_restricted_to_keys(term, units, official_factory):
    official_factory("Ana", "Reyes")
    official_factory("Ben", "Cruz")
    official_factory("Carla", "Santos", position="SK Secretary")
    official_factory("Dan", "Uy", status=OfficialStatus.INACTIVE)
    councilors = SeatKey(term.id, units["BRGY-001"].id, "SK Councilor")

    repo = RosterRepository()

    assert repo.filled_counts(term.id, [councilors]) == {councilors: 2}
    assert repo.filled_counts(term.id, []) == {}
    assert sum(repo.filled_counts(term.id).values()) == 3
    assert repo.inactive_counts(term.id) == {councilors: 1}
