"""Shared helpers for the roster application."""
