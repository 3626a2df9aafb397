"""
Officer roster bulk import and seat reconciliation.

``init_importer`` registers the ``flask roster`` CLI group and records the
resolved importer settings on ``app.extensions['roster_importer']``, where
``RosterImportService`` picks them up.
"""

from __future__ import annotations

from flask import Flask

from .cli import roster_cli
from .errors import (
    ImportBlockedError,
    InvalidStrategyError,
    MalformedInputError,
    PersistenceError,
    RosterImportError,
    SchemaMismatchError,
    TermNotFoundError,
    TransactionConflictError,
    UnitNotFoundError,
)
from .reports import ImportReport, ValidationReport
from .service import IMPORTER_EXTENSION_KEY, RosterImportService, RosterImportSettings, get_importer_settings
from .vacancies import get_term_vacancies, get_unit_vacancies

__all__ = [
    "IMPORTER_EXTENSION_KEY",
    "ImportBlockedError",
    "ImportReport",
    "InvalidStrategyError",
    "MalformedInputError",
    "PersistenceError",
    "RosterImportError",
    "RosterImportService",
    "RosterImportSettings",
    "SchemaMismatchError",
    "TermNotFoundError",
    "TransactionConflictError",
    "UnitNotFoundError",
    "ValidationReport",
    "get_importer_settings",
    "get_term_vacancies",
    "get_unit_vacancies",
    "init_importer",
]


def init_importer(app: Flask) -> None:
    """Mount the roster CLI and cache importer settings for the app."""

    settings = RosterImportSettings.from_config(app.config)
    app.extensions[IMPORTER_EXTENSION_KEY] = {"settings": settings}

    # Avoid duplicate registrations when running tests
    if roster_cli.name in app.cli.commands:
        app.cli.commands.pop(roster_cli.name)
    app.cli.add_command(roster_cli)

    app.logger.info(
        "Roster importer ready (identity key=%s, assignment policy=%s, max attempts=%d)",
        settings.identity_key,
        settings.assignment_policy,
        settings.max_attempts,
    )
