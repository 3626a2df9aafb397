"""
Seat capacity ledger and validator.

Seats are counted per (term, unit, position) key. ``filled`` comes from the
persisted active officials, ``claimed_in_batch`` from rows of the current file
processed so far. Rows are handled strictly in row-number order so earlier rows
win the available seats and later rows past the limit are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Mapping

from config.seat_limits import SeatLimits

from .rows import CandidateRow, CapacityExceededIssue, SeatKey

ClaimKeyFunc = Callable[[CandidateRow], "SeatKey | None"]


@dataclass
class SeatAllocation:
    key: SeatKey
    max: int
    filled: int
    claimed_in_batch: int = 0
    released: int = 0

    @property
    def taken(self) -> int:
        return self.filled - self.released + self.claimed_in_batch

    @property
    def available(self) -> int:
        return max(self.max - self.taken, 0)

    def as_dict(self) -> dict:
        return {
            "termId": self.key.term_id,
            "unitId": self.key.unit_id,
            "position": self.key.position,
            "max": self.max,
            "filled": self.filled,
            "claimedInBatch": self.claimed_in_batch,
            "released": self.released,
        }


class SeatLedger:
    """Provisional seat accounting for one batch."""

    def __init__(self, seat_limits: SeatLimits, filled: Mapping[SeatKey, int] | None = None) -> None:
        self.seat_limits = seat_limits
        self._filled = dict(filled or {})
        self._allocations: dict[SeatKey, SeatAllocation] = {}

    def allocation(self, key: SeatKey) -> SeatAllocation:
        allocation = self._allocations.get(key)
        if allocation is None:
            allocation = SeatAllocation(
                key=key,
                max=self.seat_limits.max_for(key.position),
                filled=self._filled.get(key, 0),
            )
            self._allocations[key] = allocation
        return allocation

    def try_claim(self, key: SeatKey) -> bool:
        allocation = self.allocation(key)
        allocation.claimed_in_batch += 1
        if allocation.taken > allocation.max:
            allocation.claimed_in_batch -= 1
            return False
        return True

    def release(self, key: SeatKey) -> None:
        """Return a persisted seat vacated by a reassignment earlier in the batch."""

        allocation = self.allocation(key)
        if allocation.released < allocation.filled:
            allocation.released += 1

    def keys(self) -> list[SeatKey]:
        return sorted(self._allocations)

    def allocations(self) -> list[SeatAllocation]:
        return [self._allocations[key] for key in self.keys()]


def _default_claim_key(term_id: int) -> ClaimKeyFunc:
    def claim_key(row: CandidateRow) -> SeatKey | None:
        # An active match is resolved by the duplicate strategy, not a fresh seat
        if row.duplicate.in_db_active:
            return None
        return row.seat_key(term_id)

    return claim_key


class CapacityValidator:
    """Reject rows whose seat claim would push a key past its configured limit."""

    def __init__(self, seat_limits: SeatLimits) -> None:
        self.seat_limits = seat_limits

    def new_ledger(self, filled: Mapping[SeatKey, int] | None = None) -> SeatLedger:
        return SeatLedger(self.seat_limits, filled)

    def claim(self, ledger: SeatLedger, row: CandidateRow, key: SeatKey, *, unit_name: str | None = None) -> bool:
        """Claim one seat on ``key`` for ``row``; on failure attach a capacity issue."""

        if ledger.try_claim(key):
            return True
        allocation = ledger.allocation(key)
        row.add_issue(
            CapacityExceededIssue.for_claim(
                position=key.position,
                unit_name=unit_name if unit_name is not None else row.unit_name,
                max_seats=allocation.max,
                filled=allocation.taken,
            )
        )
        return False

    def validate(
        self,
        rows: Iterable[CandidateRow],
        *,
        term_id: int,
        filled: Mapping[SeatKey, int] | None = None,
        claim_key: ClaimKeyFunc | None = None,
    ) -> SeatLedger:
        ledger = self.new_ledger(filled)
        key_for = claim_key or _default_claim_key(term_id)
        for row in sorted(rows, key=lambda candidate: candidate.row_number):
            if not row.is_valid or row.duplicate.is_non_primary_in_file:
                continue
            key = key_for(row)
            if key is None:
                continue
            self.claim(ledger, row, key)
        return ledger


__all__ = ["CapacityValidator", "ClaimKeyFunc", "SeatAllocation", "SeatLedger"]
