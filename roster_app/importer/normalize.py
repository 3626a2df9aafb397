"""
Field normalization and structural validation for parsed roster rows.

The normalizer never raises for row content: every problem becomes a
``ValidationIssue`` on the returned ``CandidateRow`` so invalid rows still reach
duplicate detection and the review report.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from email_validator import EmailNotValidError, validate_email

from config.seat_limits import SeatLimits

from .contracts import get_roster_field_specs
from .parser import ParsedRow
from .rows import (
    EMAIL_INVALID,
    FIELD_REQUIRED,
    FIELD_TOO_LONG,
    POSITION_UNKNOWN,
    UNIT_UNKNOWN,
    CandidateRow,
    NormalizedFields,
    ValidationIssue,
)

_WHITESPACE = re.compile(r"\s+")
_POSITION_PREFIX = "sk "

FIELD_LABELS = {
    "first_name": "First name",
    "last_name": "Last name",
    "middle_name": "Middle name",
    "suffix": "Suffix",
    "position": "Position",
    "unit": "Unit",
    "email": "Email",
}


def collapse(value: str | None) -> str | None:
    """Trim and collapse inner whitespace; empty strings become ``None``."""

    if value is None:
        return None
    token = _WHITESPACE.sub(" ", str(value)).strip()
    return token or None


def fold(value: str | None) -> str | None:
    """Case-insensitive match form of ``value``."""

    token = collapse(value)
    return token.casefold() if token is not None else None


@dataclass(frozen=True)
class UnitRef:
    id: int
    code: str
    name: str


@dataclass
class UnitDirectory:
    """Lookup of geographic units by id, code or name (case-insensitive)."""

    units: Sequence[UnitRef] = ()
    _by_token: dict[str, UnitRef] = field(default_factory=dict, init=False, repr=False)
    _by_id: dict[int, UnitRef] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        for unit in self.units:
            self._by_id[unit.id] = unit
            for token in (fold(unit.code), fold(unit.name)):
                if token:
                    self._by_token.setdefault(token, unit)

    @classmethod
    def from_rows(cls, rows: Iterable[tuple[int, str, str]]) -> "UnitDirectory":
        return cls(units=tuple(UnitRef(id=unit_id, code=code, name=name) for unit_id, code, name in rows))

    def resolve(self, identifier: str | None) -> UnitRef | None:
        token = fold(identifier)
        if token is None:
            return None
        unit = self._by_token.get(token)
        if unit is None and token.isdigit():
            unit = self._by_id.get(int(token))
        return unit

    def get(self, unit_id: int | None) -> UnitRef | None:
        if unit_id is None:
            return None
        return self._by_id.get(unit_id)


class PositionCatalog:
    """Canonical position labels, matched case-insensitively with an optional ``SK`` prefix."""

    def __init__(self, labels: Iterable[str]) -> None:
        self.labels = tuple(labels)
        self._lookup: dict[str, str] = {}
        for label in self.labels:
            token = fold(label)
            if not token:
                continue
            self._lookup.setdefault(token, label)
            if token.startswith(_POSITION_PREFIX):
                self._lookup.setdefault(token[len(_POSITION_PREFIX):], label)

    @classmethod
    def from_seat_limits(cls, seat_limits: SeatLimits) -> "PositionCatalog":
        return cls(seat_limits.positions)

    def match(self, value: str | None) -> str | None:
        token = fold(value)
        if token is None:
            return None
        return self._lookup.get(token)


class FieldNormalizer:
    """Build ``CandidateRow`` objects from parsed rows."""

    def __init__(
        self,
        *,
        units: UnitDirectory,
        positions: PositionCatalog,
        require_email: bool = True,
    ) -> None:
        self.units = units
        self.positions = positions
        self.require_email = require_email
        self._specs = {spec.name: spec for spec in get_roster_field_specs()}

    def normalize_all(self, rows: Iterable[ParsedRow]) -> list[CandidateRow]:
        candidates = [self.normalize(row) for row in rows]
        candidates.sort(key=lambda candidate: candidate.row_number)
        return candidates

    def normalize(self, row: ParsedRow) -> CandidateRow:
        raw: Mapping[str, str | None] = row.raw
        fields = NormalizedFields(
            first_name=collapse(raw.get("first_name")),
            last_name=collapse(raw.get("last_name")),
            middle_name=collapse(raw.get("middle_name")),
            suffix=collapse(raw.get("suffix")),
            position=collapse(raw.get("position")),
            unit=collapse(raw.get("unit")),
            email=collapse(raw.get("email")),
        )
        if fields.email is not None:
            fields.email = fields.email.lower()

        candidate = CandidateRow(row_number=row.row_number, raw=dict(raw), fields=fields)
        self._check_required(candidate)
        self._check_lengths(candidate)
        self._resolve_position(candidate)
        self._resolve_unit(candidate)
        self._check_email(candidate)
        return candidate

    def _required_fields(self) -> tuple[str, ...]:
        return tuple(
            name
            for name, spec in self._specs.items()
            if spec.required and (self.require_email or name != "email")
        )

    def _check_required(self, candidate: CandidateRow) -> None:
        for name in self._required_fields():
            if getattr(candidate.fields, name) is None:
                candidate.add_issue(
                    ValidationIssue(
                        code=FIELD_REQUIRED,
                        field=name,
                        message=f"{FIELD_LABELS[name]} is required.",
                    )
                )

    def _check_lengths(self, candidate: CandidateRow) -> None:
        for name, spec in self._specs.items():
            value = getattr(candidate.fields, name)
            if value is None or spec.max_length is None:
                continue
            if len(value) > spec.max_length:
                candidate.add_issue(
                    ValidationIssue(
                        code=FIELD_TOO_LONG,
                        field=name,
                        message=f"{FIELD_LABELS[name]} must be {spec.max_length} characters or fewer.",
                    )
                )

    def _resolve_position(self, candidate: CandidateRow) -> None:
        value = candidate.fields.position
        if value is None:
            return
        label = self.positions.match(value)
        if label is None:
            candidate.add_issue(
                ValidationIssue(
                    code=POSITION_UNKNOWN,
                    field="position",
                    message=f"Position '{value}' is not one of: {', '.join(self.positions.labels)}.",
                )
            )
            return
        candidate.fields.position = label

    def _resolve_unit(self, candidate: CandidateRow) -> None:
        value = candidate.fields.unit
        if value is None:
            return
        unit = self.units.resolve(value)
        if unit is None:
            candidate.add_issue(
                ValidationIssue(
                    code=UNIT_UNKNOWN,
                    field="unit",
                    message=f"Unit '{value}' does not match any known unit code or name.",
                )
            )
            return
        candidate.unit_id = unit.id
        candidate.unit_name = unit.name

    def _check_email(self, candidate: CandidateRow) -> None:
        email = candidate.fields.email
        if email is None:
            return
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError as exc:
            candidate.add_issue(
                ValidationIssue(
                    code=EMAIL_INVALID,
                    field="email",
                    message=f"Email '{email}' is not valid: {exc}",
                )
            )


__all__ = [
    "FieldNormalizer",
    "PositionCatalog",
    "UnitDirectory",
    "UnitRef",
    "collapse",
    "fold",
]
