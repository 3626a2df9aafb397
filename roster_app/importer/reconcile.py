"""
Commit-time reconciliation of a roster upload.

One ``reconcile`` call is one attempt inside one database transaction:

1. normalize the parsed rows against the current unit directory;
2. lock every seat key the batch can touch, in sorted order;
3. re-run duplicate detection and seat accounting under those locks;
4. refuse to continue when rows are invalid and partial imports are off;
5. apply creates/updates/restores in row order and re-count every touched key.

The caller owns commit, rollback and retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .capacity import CapacityValidator, SeatLedger
from .duplicates import DuplicateDetector, OfficialSnapshot
from .errors import ImportBlockedError, InvalidStrategyError, TransactionConflictError
from .normalize import FieldNormalizer
from .parser import ParsedFile
from .reports import (
    ACTION_CREATED,
    ACTION_FAILED,
    ACTION_RESTORED,
    ACTION_SKIPPED,
    ACTION_UPDATED,
    ImportReportBuilder,
    ValidationReportBuilder,
)
from .repository import RosterRepository
from .rows import ASSIGNMENT_MISMATCH, CandidateRow, SeatKey, ValidationIssue

logger = logging.getLogger(__name__)

STRATEGY_SKIP = "skip"
STRATEGY_UPDATE = "update"
STRATEGY_RESTORE = "restore"
STRATEGIES = (STRATEGY_SKIP, STRATEGY_UPDATE, STRATEGY_RESTORE)

POLICY_REJECT = "reject"
POLICY_IGNORE = "ignore"
POLICY_REASSIGN = "reassign"
ASSIGNMENT_POLICIES = (POLICY_REJECT, POLICY_IGNORE, POLICY_REASSIGN)


def coerce_strategy(value: str | None) -> str:
    token = (value or "").strip().lower()
    if token not in STRATEGIES:
        raise InvalidStrategyError(
            f"Unknown duplicate strategy '{value}'. Expected one of: {', '.join(STRATEGIES)}."
        )
    return token


@dataclass
class RowPlan:
    """Decision for one row, made before any write."""

    row: CandidateRow
    action: str
    message: str | None = None
    official_id: int | None = None
    target_key: SeatKey | None = None
    reassign: bool = False
    consumes_seat: bool = False


class ImportReconciler:
    def __init__(
        self,
        *,
        repository: RosterRepository,
        normalizer: FieldNormalizer,
        detector: DuplicateDetector,
        capacity: CapacityValidator,
        strategy: str,
        assignment_policy: str = POLICY_REJECT,
        allow_partial: bool = False,
        triggered_by: str | None = None,
    ) -> None:
        if assignment_policy not in ASSIGNMENT_POLICIES:
            raise ValueError(f"Unknown assignment change policy '{assignment_policy}'")
        self.repository = repository
        self.normalizer = normalizer
        self.detector = detector
        self.capacity = capacity
        self.strategy = coerce_strategy(strategy)
        self.assignment_policy = assignment_policy
        self.allow_partial = allow_partial
        self.triggered_by = triggered_by

    def reconcile(self, parsed: ParsedFile, *, term_id: int) -> ImportReportBuilder:
        rows = self.normalizer.normalize_all(parsed.rows)

        probe = self.repository.probe_officials(term_id, rows)
        locked = set(self.repository.acquire_seat_locks(self._lock_keys(term_id, rows, probe)))

        # Re-read under the locks; anything new outside them means another writer got in first
        snapshots = self.repository.probe_officials(term_id, rows)
        unlocked = {SeatKey(term_id, snapshot.unit_id, snapshot.position) for snapshot in snapshots} - locked
        if unlocked:
            raise TransactionConflictError("Seat assignments changed while locks were being acquired.")

        self.detector.classify(rows, snapshots)
        ledger = self.capacity.new_ledger(self.repository.filled_counts(term_id, locked))
        by_id = {snapshot.id: snapshot for snapshot in snapshots}
        plans = [self._plan(row, term_id=term_id, ledger=ledger, by_id=by_id) for row in rows]
        logger.debug(
            "Seat ledger after planning",
            extra={"roster_term_id": term_id, "roster_allocations": [a.as_dict() for a in ledger.allocations()]},
        )

        blocking = [row for row in rows if row.blocking_issues]
        if blocking and not self.allow_partial:
            report = ValidationReportBuilder().build(rows, term_id=term_id)
            logger.info(
                "Roster import blocked by %d invalid row(s)",
                len(blocking),
                extra={"roster_term_id": term_id, "roster_strategy": self.strategy},
            )
            raise ImportBlockedError(report)

        builder = ImportReportBuilder(self.strategy)
        touched: set[SeatKey] = set()
        for plan in plans:
            self._apply(plan, builder)
            if plan.consumes_seat:
                touched.add(plan.target_key)

        self.repository.flush()
        self._verify_capacity(term_id, touched)
        return builder

    # Planning --------------------------------------------------------------

    @staticmethod
    def _lock_keys(term_id: int, rows: Sequence[CandidateRow], probe: Sequence[OfficialSnapshot]) -> set[SeatKey]:
        keys = {key for key in (row.seat_key(term_id) for row in rows) if key is not None}
        keys.update(SeatKey(term_id, snapshot.unit_id, snapshot.position) for snapshot in probe)
        return keys

    def _plan(
        self,
        row: CandidateRow,
        *,
        term_id: int,
        ledger: SeatLedger,
        by_id: dict[int, OfficialSnapshot],
    ) -> RowPlan:
        dup = row.duplicate
        if dup.is_non_primary_in_file:
            return RowPlan(row, ACTION_SKIPPED, message=f"Duplicate of row {dup.primary_row_number} within the file.")
        if row.blocking_issues:
            return self._failed(row)

        row_key = row.seat_key(term_id)
        if dup.in_db_active:
            match = by_id[dup.active_match_ids[0]]
            if self.strategy == STRATEGY_SKIP:
                return RowPlan(row, ACTION_SKIPPED, message="Matches an active official; left unchanged.", official_id=match.id)
            return self._plan_match(row, match, row_key, ledger, active=True, action=ACTION_UPDATED)

        if dup.in_db_inactive:
            match = by_id[dup.inactive_match_ids[0]]
            if self.strategy == STRATEGY_SKIP:
                return RowPlan(row, ACTION_SKIPPED, message="Matches an inactive official; left unchanged.", official_id=match.id)
            if self.strategy == STRATEGY_UPDATE:
                return self._plan_match(row, match, row_key, ledger, active=False, action=ACTION_UPDATED)
            return self._plan_match(row, match, row_key, ledger, active=False, action=ACTION_RESTORED)

        if not self.capacity.claim(ledger, row, row_key):
            return self._failed(row)
        return RowPlan(row, ACTION_CREATED, target_key=row_key, consumes_seat=True)

    def _plan_match(
        self,
        row: CandidateRow,
        match: OfficialSnapshot,
        row_key: SeatKey,
        ledger: SeatLedger,
        *,
        active: bool,
        action: str,
    ) -> RowPlan:
        record_key = SeatKey(row_key.term_id, match.unit_id, match.position)
        mismatch = record_key != row_key

        if mismatch and self.assignment_policy == POLICY_REJECT:
            current_unit = self.normalizer.units.get(match.unit_id)
            row.add_issue(
                ValidationIssue(
                    code=ASSIGNMENT_MISMATCH,
                    field="position",
                    message=(
                        f"Existing official holds {match.position} in "
                        f"{current_unit.name if current_unit else match.unit_id}; "
                        "changing the assignment through an import is not allowed."
                    ),
                )
            )
            return self._failed(row, official_id=match.id)

        reassign = mismatch and self.assignment_policy == POLICY_REASSIGN
        target_key = row_key if reassign else record_key
        consumes_seat = action == ACTION_RESTORED or (active and reassign)

        if consumes_seat:
            unit = self.normalizer.units.get(target_key.unit_id)
            if not self.capacity.claim(ledger, row, target_key, unit_name=unit.name if unit else None):
                return self._failed(row, official_id=match.id)
            if active and reassign:
                ledger.release(record_key)

        return RowPlan(
            row,
            action,
            official_id=match.id,
            target_key=target_key,
            reassign=reassign,
            consumes_seat=consumes_seat,
        )

    @staticmethod
    def _failed(row: CandidateRow, *, official_id: int | None = None) -> RowPlan:
        return RowPlan(row, ACTION_FAILED, message="; ".join(row.issue_messages()), official_id=official_id)

    # Writes ----------------------------------------------------------------

    def _apply(self, plan: RowPlan, builder: ImportReportBuilder) -> None:
        row = plan.row
        official_id = plan.official_id

        if plan.action == ACTION_CREATED:
            official = self.repository.create_official(
                key=plan.target_key,
                fields=row.fields,
                created_by=self.triggered_by,
            )
            official_id = official.id
        elif plan.action in (ACTION_UPDATED, ACTION_RESTORED):
            official = self.repository.get_official(plan.official_id)
            self.repository.apply_fields(official, row.fields)
            if plan.reassign:
                self.repository.reassign(official, plan.target_key)
            if plan.action == ACTION_RESTORED:
                self.repository.restore(official)

        builder.record(row, plan.action, message=plan.message, official_id=official_id)

    def _verify_capacity(self, term_id: int, touched: set[SeatKey]) -> None:
        if not touched:
            return
        counts = self.repository.filled_counts(term_id, touched)
        for key in sorted(touched):
            limit = self.capacity.seat_limits.max_for(key.position)
            if counts.get(key, 0) > limit:
                logger.warning(
                    "Seat limit exceeded at commit time",
                    extra={"roster_seat_key": tuple(key), "roster_filled": counts.get(key, 0), "roster_max": limit},
                )
                raise TransactionConflictError(
                    f"{key.position} in unit {key.unit_id} would exceed {limit} seat(s); retrying against fresh state."
                )


__all__ = [
    "ASSIGNMENT_POLICIES",
    "ImportReconciler",
    "POLICY_IGNORE",
    "POLICY_REASSIGN",
    "POLICY_REJECT",
    "RowPlan",
    "STRATEGIES",
    "STRATEGY_RESTORE",
    "STRATEGY_SKIP",
    "STRATEGY_UPDATE",
    "coerce_strategy",
]
