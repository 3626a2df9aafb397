"""Roster management application package."""
