"""
SQLAlchemy models for governing terms, geographic units, and council officials.

Officials are never hard-deleted: deactivation flips ``status`` to
``inactive`` and the bulk importer may later restore the row. Seat capacity is
enforced by the importer against ``PositionSeatLock`` rows rather than by a
database constraint, because the limit depends on the position label.
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class TermStatus(str, enum.Enum):
    """Lifecycle states for a governing term."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


class OfficialStatus(str, enum.Enum):
    """Persisted life-cycle of an official record."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class GoverningTerm(BaseModel):
    """A time-boxed administrative period that officials and seats are scoped to."""

    __tablename__ = "governing_terms"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False, unique=True)
    start_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
    status: Mapped[TermStatus] = mapped_column(
        Enum(TermStatus, name="governing_term_status_enum"),
        nullable=False,
        default=TermStatus.UPCOMING,
        index=True,
    )

    officials = relationship("Official", back_populates="term")

    def __repr__(self):
        return f"<GoverningTerm {self.name} ({self.status.value})>"

    @classmethod
    def get_active(cls) -> "GoverningTerm | None":
        return cls.query.filter_by(status=TermStatus.ACTIVE).order_by(cls.start_date.desc()).first()


class GeographicUnit(BaseModel):
    """Smallest administrative division an official is assigned to (barangay)."""

    __tablename__ = "geographic_units"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(db.String(32), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False, unique=True)

    officials = relationship("Official", back_populates="unit")

    def __repr__(self):
        return f"<GeographicUnit {self.code} {self.name}>"


class Official(BaseModel):
    """Persisted identity and seat assignment of a council official."""

    __tablename__ = "officials"

    id: Mapped[int] = mapped_column(primary_key=True)
    term_id: Mapped[int] = mapped_column(ForeignKey("governing_terms.id"), nullable=False, index=True)
    unit_id: Mapped[int] = mapped_column(ForeignKey("geographic_units.id"), nullable=False, index=True)
    position: Mapped[str] = mapped_column(db.String(50), nullable=False)
    first_name: Mapped[str] = mapped_column(db.String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(db.String(50), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    suffix: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(db.String(254), nullable=True)
    status: Mapped[OfficialStatus] = mapped_column(
        Enum(OfficialStatus, name="official_status_enum"),
        nullable=False,
        default=OfficialStatus.ACTIVE,
        index=True,
    )
    source: Mapped[str] = mapped_column(db.String(32), nullable=False, default="manual")
    created_by: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)

    term = relationship("GoverningTerm", back_populates="officials")
    unit = relationship("GeographicUnit", back_populates="officials")

    __table_args__ = (
        Index("idx_officials_seat", "term_id", "unit_id", "position", "status"),
        Index("idx_officials_email", "email"),
    )

    def __repr__(self):
        return f"<Official {self.first_name} {self.last_name} {self.position} ({self.status.value})>"

    @property
    def unit_name(self) -> str | None:
        return self.unit.name if self.unit is not None else None

    @property
    def is_active(self) -> bool:
        return self.status == OfficialStatus.ACTIVE


class PositionSeatLock(BaseModel):
    """
    Lock row for one (term, unit, position) seat key.

    The importer bumps ``lock_version`` for every key it is about to claim so
    concurrent imports touching the same key serialize on the row write.
    """

    __tablename__ = "position_seat_locks"

    id: Mapped[int] = mapped_column(primary_key=True)
    term_id: Mapped[int] = mapped_column(ForeignKey("governing_terms.id"), nullable=False)
    unit_id: Mapped[int] = mapped_column(ForeignKey("geographic_units.id"), nullable=False)
    position: Mapped[str] = mapped_column(db.String(50), nullable=False)
    lock_version: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("term_id", "unit_id", "position", name="uq_position_seat_locks_key"),)


class RosterImportRunStatus(str, enum.Enum):
    """Outcome of a single bulk import call."""

    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    BLOCKED = "blocked"
    FAILED = "failed"


class RosterImportRun(BaseModel):
    """Durable record of what a bulk import call did, row by row."""

    __tablename__ = "roster_import_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    term_id: Mapped[int] = mapped_column(ForeignKey("governing_terms.id"), nullable=False, index=True)
    strategy: Mapped[str] = mapped_column(db.String(16), nullable=False)
    filename: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    status: Mapped[RosterImportRunStatus] = mapped_column(
        Enum(RosterImportRunStatus, name="roster_import_run_status_enum"),
        nullable=False,
        index=True,
    )
    allow_partial: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    attempts: Mapped[int] = mapped_column(db.Integer, nullable=False, default=1)
    triggered_by: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    rows_json: Mapped[list | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))

    term = relationship("GoverningTerm")

    __table_args__ = (Index("idx_roster_import_runs_term_status", "term_id", "status"),)
