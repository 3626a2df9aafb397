"""
Persisted-state boundary for the roster importer.

All SQLAlchemy access used by validation and reconciliation lives here so the
pipeline stages stay pure. ``translate_sqlalchemy_error`` maps driver errors
onto the importer's exception hierarchy.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from roster_app.models import (
    GeographicUnit,
    GoverningTerm,
    Official,
    OfficialStatus,
    PositionSeatLock,
    TermStatus,
    db,
)

from .duplicates import OfficialSnapshot
from .errors import PersistenceError, RosterImportError, TermNotFoundError, TransactionConflictError
from .normalize import UnitDirectory
from .rows import CandidateRow, NormalizedFields, SeatKey

logger = logging.getLogger(__name__)

IMPORT_SOURCE = "bulk_import"

# SQLSTATE codes: serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
# unique_violation; other integrity failures (NOT NULL, CHECK, FK) are fatal
_UNIQUE_VIOLATION_SQLSTATE = "23505"
_UNIQUE_VIOLATION_MESSAGES = ("unique constraint failed", "duplicate key value violates unique constraint")
_CONFLICT_MESSAGES = (
    "database is locked",
    "could not serialize",
    "deadlock detected",
    "lock timeout",
    "could not obtain lock",
)


def translate_sqlalchemy_error(exc: SQLAlchemyError) -> RosterImportError:
    """Classify a SQLAlchemy failure as a retryable conflict or a fatal persistence error."""

    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    message = str(orig if orig is not None else exc).lower()

    if isinstance(exc, IntegrityError):
        if sqlstate == _UNIQUE_VIOLATION_SQLSTATE or message.startswith(_UNIQUE_VIOLATION_MESSAGES):
            return TransactionConflictError(f"Concurrent write detected: {orig}")
        return PersistenceError(f"Integrity failure: {orig}")
    if isinstance(exc, (OperationalError, DBAPIError)):
        if sqlstate in _CONFLICT_SQLSTATES or any(marker in message for marker in _CONFLICT_MESSAGES):
            return TransactionConflictError(f"Transaction conflict: {orig}")
    return PersistenceError(f"Storage failure: {exc}")


class RosterRepository:
    """Reads and writes against terms, units, officials and seat locks."""

    def __init__(self, session: Session | None = None) -> None:
        self.session = session or db.session

    # Reads -----------------------------------------------------------------

    def get_term(self, term_id: int) -> GoverningTerm:
        term = self.session.get(GoverningTerm, term_id)
        if term is None:
            raise TermNotFoundError(f"Governing term {term_id} does not exist.")
        return term

    def get_open_term(self, term_id: int) -> GoverningTerm:
        term = self.get_term(term_id)
        if term.status == TermStatus.COMPLETED:
            raise TermNotFoundError(f"Governing term '{term.name}' is completed and no longer accepts officials.")
        return term

    def get_active_term(self) -> GoverningTerm:
        term = GoverningTerm.get_active()
        if term is None:
            raise TermNotFoundError("No active governing term is configured.")
        return term

    def load_unit_directory(self) -> UnitDirectory:
        rows = self.session.execute(
            select(GeographicUnit.id, GeographicUnit.code, GeographicUnit.name).order_by(GeographicUnit.id)
        ).all()
        return UnitDirectory.from_rows((row.id, row.code, row.name) for row in rows)

    def probe_officials(self, term_id: int, rows: Sequence[CandidateRow]) -> list[OfficialSnapshot]:
        """Officials of ``term_id`` sharing a unit or an email with any row in the batch."""

        unit_ids = sorted({row.unit_id for row in rows if row.unit_id is not None})
        emails = sorted({row.fields.email.lower() for row in rows if row.fields.email})
        if not unit_ids and not emails:
            return []

        criteria = []
        if unit_ids:
            criteria.append(Official.unit_id.in_(unit_ids))
        if emails:
            criteria.append(func.lower(Official.email).in_(emails))

        stmt = (
            select(Official)
            .where(Official.term_id == term_id)
            .where(or_(*criteria))
            .order_by(Official.id)
            .execution_options(populate_existing=True)
        )
        return [
            OfficialSnapshot(
                id=official.id,
                unit_id=official.unit_id,
                position=official.position,
                first_name=official.first_name,
                last_name=official.last_name,
                email=official.email,
                is_active=official.status == OfficialStatus.ACTIVE,
            )
            for official in self.session.scalars(stmt)
        ]

    def filled_counts(self, term_id: int, keys: Iterable[SeatKey] | None = None) -> dict[SeatKey, int]:
        """Active officials per seat key; restricted to ``keys`` when given."""

        wanted = set(keys) if keys is not None else None
        stmt = (
            select(Official.unit_id, Official.position, func.count(Official.id))
            .where(Official.term_id == term_id)
            .where(Official.status == OfficialStatus.ACTIVE)
            .group_by(Official.unit_id, Official.position)
        )
        if wanted is not None:
            unit_ids = sorted({key.unit_id for key in wanted})
            if not unit_ids:
                return {}
            stmt = stmt.where(Official.unit_id.in_(unit_ids))

        counts: dict[SeatKey, int] = {}
        for unit_id, position, count in self.session.execute(stmt):
            key = SeatKey(term_id, unit_id, position)
            if wanted is None or key in wanted:
                counts[key] = count
        return counts

    def inactive_counts(self, term_id: int) -> dict[SeatKey, int]:
        stmt = (
            select(Official.unit_id, Official.position, func.count(Official.id))
            .where(Official.term_id == term_id)
            .where(Official.status == OfficialStatus.INACTIVE)
            .group_by(Official.unit_id, Official.position)
        )
        return {SeatKey(term_id, unit_id, position): count for unit_id, position, count in self.session.execute(stmt)}

    def list_units(self, unit_ids: Iterable[int] | None = None) -> list[GeographicUnit]:
        stmt = select(GeographicUnit).order_by(GeographicUnit.name)
        if unit_ids is not None:
            stmt = stmt.where(GeographicUnit.id.in_(list(unit_ids)))
        return list(self.session.scalars(stmt))

    def get_official(self, official_id: int) -> Official:
        official = self.session.get(Official, official_id)
        if official is None:
            raise TransactionConflictError(f"Official {official_id} disappeared during the import.")
        return official

    # Locks -----------------------------------------------------------------

    def acquire_seat_locks(self, keys: Iterable[SeatKey]) -> list[SeatKey]:
        """
        Write the lock row of every key, in sorted order.

        The UPDATE takes a row lock on PostgreSQL and the database write lock on
        SQLite, so a second import touching the same key waits or conflicts.
        """

        ordered = sorted(set(keys))
        for key in ordered:
            lock = self.session.scalars(
                select(PositionSeatLock)
                .where(PositionSeatLock.term_id == key.term_id)
                .where(PositionSeatLock.unit_id == key.unit_id)
                .where(PositionSeatLock.position == key.position)
                .with_for_update()
            ).first()
            if lock is None:
                lock = PositionSeatLock(
                    term_id=key.term_id,
                    unit_id=key.unit_id,
                    position=key.position,
                    lock_version=0,
                )
                self.session.add(lock)
            lock.lock_version = (lock.lock_version or 0) + 1
            self.session.flush()
        logger.debug("Acquired %d seat lock(s)", len(ordered), extra={"roster_lock_keys": [tuple(key) for key in ordered]})
        return ordered

    # Writes ----------------------------------------------------------------

    def create_official(
        self,
        *,
        key: SeatKey,
        fields: NormalizedFields,
        created_by: str | None = None,
    ) -> Official:
        official = Official(
            term_id=key.term_id,
            unit_id=key.unit_id,
            position=key.position,
            first_name=fields.first_name,
            last_name=fields.last_name,
            middle_name=fields.middle_name,
            suffix=fields.suffix,
            email=fields.email,
            status=OfficialStatus.ACTIVE,
            source=IMPORT_SOURCE,
            created_by=created_by,
        )
        self.session.add(official)
        self.session.flush()
        return official

    def apply_fields(self, official: Official, fields: NormalizedFields) -> None:
        official.first_name = fields.first_name
        official.last_name = fields.last_name
        official.middle_name = fields.middle_name
        official.suffix = fields.suffix
        if fields.email:
            official.email = fields.email

    def reassign(self, official: Official, key: SeatKey) -> None:
        official.unit_id = key.unit_id
        official.position = key.position

    def restore(self, official: Official) -> None:
        official.status = OfficialStatus.ACTIVE
        official.deactivated_at = None

    def flush(self) -> None:
        self.session.flush()


__all__ = ["IMPORT_SOURCE", "RosterRepository", "translate_sqlalchemy_error"]
