"""Canonical column contract helpers for the roster importer."""

from __future__ import annotations

from .officials import (
    NAME_MAX_LENGTH,
    ROSTER_CANONICAL_FIELDS,
    FieldSpec,
    get_roster_alias_map,
    get_roster_field_spec,
    get_roster_field_specs,
    get_roster_required_headers,
    normalize_header,
)

__all__ = [
    "FieldSpec",
    "NAME_MAX_LENGTH",
    "ROSTER_CANONICAL_FIELDS",
    "get_roster_alias_map",
    "get_roster_field_spec",
    "get_roster_field_specs",
    "get_roster_required_headers",
    "normalize_header",
]
