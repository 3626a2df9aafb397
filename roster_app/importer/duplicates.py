"""
Duplicate detection across the uploaded file and persisted officials.

Three independent passes run over the normalized batch, always in row-number
order:

1. in-file: rows sharing an identity key form a group; the lowest-numbered
   member is the primary occurrence, the rest are flagged and marked invalid;
2. active records in the governing term;
3. inactive (soft-deleted) records in the governing term.

The identity key is a plain function so deployments can choose between the
name-based key (default) and the email key.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, NamedTuple, Sequence

from .normalize import fold
from .rows import DUPLICATE_IN_FILE, CandidateRow, ValidationIssue


class IdentityFields(NamedTuple):
    first_name: str | None
    last_name: str | None
    unit_id: int | None
    position: str | None
    email: str | None


IdentityKeyFunc = Callable[[IdentityFields], Hashable | None]


def name_key(fields: IdentityFields) -> Hashable | None:
    """First name + last name + unit + position, case- and whitespace-insensitive."""

    first, last, position = fold(fields.first_name), fold(fields.last_name), fold(fields.position)
    if not first or not last or not position or fields.unit_id is None:
        return None
    return ("name", first, last, fields.unit_id, position)


def email_key(fields: IdentityFields) -> Hashable | None:
    """Case-insensitive contact email."""

    email = fold(fields.email)
    if not email:
        return None
    return ("email", email)


IDENTITY_KEYS: dict[str, IdentityKeyFunc] = {"name": name_key, "email": email_key}


def get_identity_key(name: str) -> IdentityKeyFunc:
    try:
        return IDENTITY_KEYS[name]
    except KeyError as exc:
        raise ValueError(f"Unknown identity key '{name}'. Expected one of: {', '.join(IDENTITY_KEYS)}.") from exc


@dataclass(frozen=True)
class OfficialSnapshot:
    """Read-only view of a persisted official used for duplicate probes."""

    id: int
    unit_id: int
    position: str
    first_name: str
    last_name: str
    email: str | None
    is_active: bool

    def identity_fields(self) -> IdentityFields:
        return IdentityFields(self.first_name, self.last_name, self.unit_id, self.position, self.email)


def row_identity_fields(row: CandidateRow) -> IdentityFields:
    return IdentityFields(
        row.fields.first_name,
        row.fields.last_name,
        row.unit_id,
        row.fields.position,
        row.fields.email,
    )


class DuplicateDetector:
    """Classify a normalized batch against itself and the persisted officials of one term."""

    def __init__(self, key_func: IdentityKeyFunc = name_key) -> None:
        self.key_func = key_func

    def key_for(self, row: CandidateRow) -> Hashable | None:
        return self.key_func(row_identity_fields(row))

    def classify(self, rows: Sequence[CandidateRow], persisted: Iterable[OfficialSnapshot]) -> None:
        ordered = sorted(rows, key=lambda row: row.row_number)
        keys = {row.row_number: self.key_for(row) for row in ordered}
        self._mark_in_file(ordered, keys)

        active_index: dict[Hashable, list[int]] = defaultdict(list)
        inactive_index: dict[Hashable, list[int]] = defaultdict(list)
        for official in sorted(persisted, key=lambda snapshot: snapshot.id):
            key = self.key_func(official.identity_fields())
            if key is None:
                continue
            (active_index if official.is_active else inactive_index)[key].append(official.id)

        for row in ordered:
            key = keys[row.row_number]
            if key is None:
                continue
            active_ids = active_index.get(key, [])
            if active_ids:
                row.duplicate.in_db_active = True
                row.duplicate.active_match_ids = list(active_ids)

        for row in ordered:
            key = keys[row.row_number]
            if key is None:
                continue
            inactive_ids = inactive_index.get(key, [])
            if inactive_ids:
                row.duplicate.in_db_inactive = True
                row.duplicate.inactive_match_ids = list(inactive_ids)

    def _mark_in_file(self, ordered: Sequence[CandidateRow], keys: dict[int, Hashable | None]) -> None:
        groups: dict[Hashable, list[CandidateRow]] = defaultdict(list)
        for row in ordered:
            key = keys[row.row_number]
            if key is not None:
                groups[key].append(row)

        for members in groups.values():
            if len(members) < 2:
                continue
            primary = members[0]
            for position, row in enumerate(members):
                row.duplicate.in_file = True
                row.duplicate.is_primary_in_file = position == 0
                row.duplicate.primary_row_number = primary.row_number
                if position > 0:
                    row.add_issue(
                        ValidationIssue(
                            code=DUPLICATE_IN_FILE,
                            message=f"Duplicate of row {primary.row_number} within the file.",
                        )
                    )


__all__ = [
    "DuplicateDetector",
    "IDENTITY_KEYS",
    "IdentityFields",
    "IdentityKeyFunc",
    "OfficialSnapshot",
    "email_key",
    "get_identity_key",
    "name_key",
    "row_identity_fields",
]
