"""
Seat-limit configuration for council positions.

Every geographic unit gets the same fixed number of seats per position label
within a governing term. The table is process-wide static configuration: it
is loaded once when the app starts and injected into the importer's capacity
validator, never edited at runtime.

Operators can override the defaults by pointing ``ROSTER_SEAT_LIMITS_PATH``
at a JSON or YAML mapping of position label to seat count.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, Mapping, MutableMapping

import yaml

DEFAULT_SEAT_LIMITS: Mapping[str, int] = MappingProxyType(
    {
        "SK Chairperson": 1,
        "SK Secretary": 1,
        "SK Treasurer": 1,
        "SK Councilor": 7,
    }
)


class SeatLimitConfigError(RuntimeError):
    """Raised when a seat-limit override cannot be parsed."""


@dataclass(frozen=True)
class SeatLimits:
    """Immutable position label -> maximum seats per unit and term."""

    limits: Mapping[str, int] = field(default_factory=lambda: DEFAULT_SEAT_LIMITS)

    def __post_init__(self) -> None:
        cleaned: dict[str, int] = {}
        for label, seats in dict(self.limits).items():
            name = str(label).strip()
            if not name:
                raise SeatLimitConfigError("Seat limits require non-empty position labels.")
            if isinstance(seats, bool) or not isinstance(seats, int) or seats < 0:
                raise SeatLimitConfigError(f"Seat limit for '{name}' must be a non-negative integer.")
            cleaned[name] = seats
        object.__setattr__(self, "limits", MappingProxyType(cleaned))

    def max_for(self, position: str | None) -> int:
        """Return the seat limit for a position label, 0 for unknown labels."""

        if position is None:
            return 0
        return self.limits.get(position, 0)

    @property
    def positions(self) -> tuple[str, ...]:
        return tuple(self.limits)

    def __iter__(self) -> Iterator[tuple[str, int]]:
        return iter(self.limits.items())


DEFAULT_LIMITS = SeatLimits()


def _load_override(path: Path) -> MutableMapping[str, object]:
    if not path.exists():
        raise SeatLimitConfigError(f"Seat limit override file {path} does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem failure
        raise SeatLimitConfigError(f"Unable to read seat limit override file {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise SeatLimitConfigError(f"Seat limit override file {path} is not valid: {exc}") from exc

    if not isinstance(data, Mapping):
        raise SeatLimitConfigError("Seat limit override must be a JSON/YAML object.")
    return dict(data)


def load_seat_limits(env: Mapping[str, str] | None = None) -> SeatLimits:
    """
    Load the active seat-limit table.

    Without ``ROSTER_SEAT_LIMITS_PATH`` the built-in defaults are used. An
    override replaces the whole table, so it must list every position.
    """

    env_map = env or {}
    override_path = env_map.get("ROSTER_SEAT_LIMITS_PATH")
    if not override_path:
        return DEFAULT_LIMITS
    raw = _load_override(Path(override_path))
    return SeatLimits(limits=raw)  # type: ignore[arg-type]


__all__ = [
    "DEFAULT_LIMITS",
    "DEFAULT_SEAT_LIMITS",
    "SeatLimitConfigError",
    "SeatLimits",
    "load_seat_limits",
]
