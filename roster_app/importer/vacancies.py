"""Per-unit seat vacancy statistics for a governing term."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from flask import current_app

from config.seat_limits import DEFAULT_LIMITS, SeatLimits
from roster_app.models import GeographicUnit

from .errors import UnitNotFoundError
from .repository import RosterRepository
from .rows import SeatKey


@dataclass(frozen=True)
class PositionVacancy:
    position: str
    filled: int
    max: int
    inactive: int = 0

    @property
    def available(self) -> int:
        return max(self.max - self.filled, 0)

    @property
    def is_full(self) -> bool:
        return self.filled >= self.max

    def as_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "filled": self.filled,
            "max": self.max,
            "available": self.available,
            "isFull": self.is_full,
            "inactive": self.inactive,
        }


@dataclass(frozen=True)
class UnitVacancies:
    unit_id: int
    unit_code: str
    unit_name: str
    positions: tuple[PositionVacancy, ...]

    @property
    def total_available(self) -> int:
        return sum(position.available for position in self.positions)

    def position(self, label: str) -> PositionVacancy:
        for vacancy in self.positions:
            if vacancy.position == label:
                return vacancy
        raise KeyError(label)

    def as_dict(self) -> dict[str, Any]:
        return {
            "unitId": self.unit_id,
            "unitCode": self.unit_code,
            "unitName": self.unit_name,
            "totalAvailable": self.total_available,
            "positions": [vacancy.as_dict() for vacancy in self.positions],
        }


def _resolve_limits(seat_limits: SeatLimits | None) -> SeatLimits:
    if seat_limits is not None:
        return seat_limits
    return current_app.config.get("ROSTER_SEAT_LIMITS") or DEFAULT_LIMITS


def _build(
    unit: GeographicUnit,
    term_id: int,
    limits: SeatLimits,
    filled: dict[SeatKey, int],
    inactive: dict[SeatKey, int],
) -> UnitVacancies:
    positions = tuple(
        PositionVacancy(
            position=label,
            filled=filled.get(SeatKey(term_id, unit.id, label), 0),
            max=seats,
            inactive=inactive.get(SeatKey(term_id, unit.id, label), 0),
        )
        for label, seats in limits
    )
    return UnitVacancies(unit_id=unit.id, unit_code=unit.code, unit_name=unit.name, positions=positions)


def get_unit_vacancies(
    term_id: int,
    unit_id: int,
    *,
    seat_limits: SeatLimits | None = None,
    repository: RosterRepository | None = None,
) -> UnitVacancies:
    repo = repository or RosterRepository()
    term = repo.get_term(term_id)
    units = repo.list_units([unit_id])
    if not units:
        raise UnitNotFoundError(f"Geographic unit {unit_id} does not exist.")
    return _build(units[0], term.id, _resolve_limits(seat_limits), repo.filled_counts(term.id), repo.inactive_counts(term.id))


def get_term_vacancies(
    term_id: int,
    *,
    seat_limits: SeatLimits | None = None,
    repository: RosterRepository | None = None,
) -> list[UnitVacancies]:
    """Vacancy table for every unit, ordered by unit name."""

    repo = repository or RosterRepository()
    term = repo.get_term(term_id)
    limits = _resolve_limits(seat_limits)
    filled = repo.filled_counts(term.id)
    inactive = repo.inactive_counts(term.id)
    return [_build(unit, term.id, limits, filled, inactive) for unit in repo.list_units()]


__all__ = ["PositionVacancy", "UnitVacancies", "get_term_vacancies", "get_unit_vacancies"]
