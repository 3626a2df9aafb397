# roster_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .roster import (
    GeographicUnit,
    GoverningTerm,
    Official,
    OfficialStatus,
    PositionSeatLock,
    RosterImportRun,
    RosterImportRunStatus,
    TermStatus,
)

__all__ = [
    "db",
    "BaseModel",
    "GoverningTerm",
    "GeographicUnit",
    "Official",
    "PositionSeatLock",
    "RosterImportRun",
    # Enums
    "TermStatus",
    "OfficialStatus",
    "RosterImportRunStatus",
]
