"""Canonical officer-roster column contract.

Single source of truth for the header names an uploaded roster may use. Each
canonical column lists the aliases seen in real spreadsheets (snake_case,
camelCase and spaced variants all normalize to the same token).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Tuple

NAME_MAX_LENGTH = 50

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATORS = re.compile(r"[\s\-.]+")
_REPEATED_UNDERSCORES = re.compile(r"_+")


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing a canonical roster column."""

    name: str
    description: str
    required: bool = False
    aliases: Tuple[str, ...] = ()
    max_length: int | None = None

    def headers(self) -> Tuple[str, ...]:
        """Return the canonical header plus aliases for validation."""

        return (self.name, *self.aliases)


ROSTER_CANONICAL_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="first_name",
        description="Given name of the official.",
        required=True,
        aliases=("firstName", "given_name", "first"),
        max_length=NAME_MAX_LENGTH,
    ),
    FieldSpec(
        name="last_name",
        description="Family name of the official.",
        required=True,
        aliases=("lastName", "surname", "last"),
        max_length=NAME_MAX_LENGTH,
    ),
    FieldSpec(
        name="middle_name",
        description="Middle name or initial.",
        aliases=("middleName", "middle", "middle_initial"),
        max_length=NAME_MAX_LENGTH,
    ),
    FieldSpec(
        name="suffix",
        description="Name suffix such as Jr. or III.",
        aliases=("name_suffix", "suffix_name"),
        max_length=NAME_MAX_LENGTH,
    ),
    FieldSpec(
        name="position",
        description="Council position label (matched against the seat-limit table).",
        required=True,
        aliases=("position_label", "role", "sk_position"),
    ),
    FieldSpec(
        name="unit",
        description="Target geographic unit, by code or by name.",
        required=True,
        aliases=(
            "barangay",
            "barangayName",
            "barangay_id",
            "barangay_code",
            "unit_code",
            "unit_name",
            "geographic_unit",
        ),
    ),
    FieldSpec(
        name="email",
        description="Contact email address (normalized lower-case).",
        required=True,
        aliases=("personalEmail", "email_address", "contact_email"),
        max_length=254,
    ),
)

_FIELDS_BY_NAME: Mapping[str, FieldSpec] = {spec.name: spec for spec in ROSTER_CANONICAL_FIELDS}


def normalize_header(header: str) -> str:
    """Normalize a header for comparison (case/space/underscore/camelCase agnostic)."""

    token = (header or "").strip().lstrip("\ufeff")
    token = _CAMEL_BOUNDARY.sub("_", token)
    token = _SEPARATORS.sub("_", token.lower())
    return _REPEATED_UNDERSCORES.sub("_", token).strip("_")


def get_roster_field_specs() -> Tuple[FieldSpec, ...]:
    """Return the canonical roster field specifications."""

    return ROSTER_CANONICAL_FIELDS


def get_roster_field_spec(name: str) -> FieldSpec:
    return _FIELDS_BY_NAME[name]


def get_roster_required_headers(*, require_email: bool = True) -> Tuple[str, ...]:
    """Headers that must be present in every upload.

    The contact email column is only mandatory when the deployment requires it.
    """

    return tuple(
        spec.name
        for spec in ROSTER_CANONICAL_FIELDS
        if spec.required and (require_email or spec.name != "email")
    )


def get_roster_alias_map() -> Mapping[str, str]:
    """Map normalized header tokens to canonical names (includes aliases)."""

    mapping: dict[str, str] = {}
    for spec in ROSTER_CANONICAL_FIELDS:
        for header in spec.headers():
            mapping[normalize_header(header)] = spec.name
    return mapping

