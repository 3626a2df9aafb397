"""
Facade for the two-phase roster workflow: validate, then import.

``validate`` is read-only and repeatable. ``import_roster`` parses the upload
once and then runs up to ``ROSTER_IMPORT_MAX_ATTEMPTS`` reconciliation attempts,
each in a fresh transaction that re-validates everything against current
state. Every import call that reaches the database leaves a
``RosterImportRun`` row behind, including blocked and failed ones.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.seat_limits import DEFAULT_LIMITS, SeatLimits
from roster_app.models import RosterImportRun, RosterImportRunStatus, db

from . import metrics
from .capacity import CapacityValidator
from .duplicates import DuplicateDetector, get_identity_key
from .errors import ImportBlockedError, TransactionConflictError
from .normalize import FieldNormalizer, PositionCatalog
from .parser import ParsedFile, RecordParser
from .reconcile import POLICY_REJECT, ImportReconciler, coerce_strategy
from .reports import ImportReport, ValidationReport, ValidationReportBuilder
from .repository import RosterRepository, translate_sqlalchemy_error

logger = logging.getLogger(__name__)

_MEGABYTE = 1024 * 1024

IMPORTER_EXTENSION_KEY = "roster_importer"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RosterImportSettings:
    """Importer knobs resolved from Flask config (see ``config.base.Config``)."""

    seat_limits: SeatLimits = DEFAULT_LIMITS
    identity_key: str = "name"
    require_email: bool = True
    assignment_policy: str = POLICY_REJECT
    max_attempts: int = 3
    max_upload_bytes: int | None = 10 * _MEGABYTE

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **overrides: Any) -> "RosterImportSettings":
        upload_mb = config.get("ROSTER_IMPORT_MAX_UPLOAD_MB", 10)
        values = {
            "seat_limits": config.get("ROSTER_SEAT_LIMITS") or DEFAULT_LIMITS,
            "identity_key": config.get("ROSTER_IDENTITY_KEY", "name"),
            "require_email": bool(config.get("ROSTER_IMPORT_REQUIRE_EMAIL", True)),
            "assignment_policy": config.get("ROSTER_ASSIGNMENT_CHANGE_POLICY", POLICY_REJECT),
            "max_attempts": max(int(config.get("ROSTER_IMPORT_MAX_ATTEMPTS", 3)), 1),
            "max_upload_bytes": int(upload_mb) * _MEGABYTE if upload_mb else None,
        }
        values.update(overrides)
        return cls(**values)


def get_importer_settings(app: Flask | None = None) -> RosterImportSettings:
    """Settings cached by ``init_importer``, or resolved from config when it has not run."""

    app = app or current_app
    state = app.extensions.get(IMPORTER_EXTENSION_KEY) or {}
    settings = state.get("settings")
    if settings is None:
        settings = RosterImportSettings.from_config(app.config)
    return settings


class RosterImportService:
    """Entry point used by the CLI (and any future HTTP layer)."""

    def __init__(
        self,
        settings: RosterImportSettings | None = None,
        *,
        session: Session | None = None,
        repository: RosterRepository | None = None,
    ) -> None:
        self.settings = settings or get_importer_settings()
        self.session = session or db.session
        self.repository = repository or RosterRepository(self.session)
        self.parser = RecordParser(
            require_email=self.settings.require_email,
            max_upload_bytes=self.settings.max_upload_bytes,
        )
        self.capacity = CapacityValidator(self.settings.seat_limits)
        self.detector = DuplicateDetector(get_identity_key(self.settings.identity_key))

    def build_normalizer(self) -> FieldNormalizer:
        return FieldNormalizer(
            units=self.repository.load_unit_directory(),
            positions=PositionCatalog.from_seat_limits(self.settings.seat_limits),
            require_email=self.settings.require_email,
        )

    # Validate --------------------------------------------------------------

    def validate(
        self,
        content: bytes,
        content_type: str | None,
        term_id: int,
        *,
        filename: str | None = None,
    ) -> ValidationReport:
        parsed = self.parser.parse(content, content_type, filename=filename)
        return self.validate_parsed(parsed, term_id=term_id)

    def validate_parsed(self, parsed: ParsedFile, *, term_id: int) -> ValidationReport:
        term = self.repository.get_open_term(term_id)
        try:
            rows = self.build_normalizer().normalize_all(parsed.rows)
            self.detector.classify(rows, self.repository.probe_officials(term.id, rows))
            keys = {key for key in (row.seat_key(term.id) for row in rows) if key is not None}
            filled = self.repository.filled_counts(term.id, keys)
        except SQLAlchemyError as exc:
            raise translate_sqlalchemy_error(exc) from exc

        self.capacity.validate(rows, term_id=term.id, filled=filled)
        report = ValidationReportBuilder().build(rows, term_id=term.id)

        metrics.record_validation(row.status for row in report.rows)
        logger.info(
            "Roster validation completed: %d row(s), %d invalid",
            report.summary.total_records,
            report.summary.invalid_records,
            extra={
                "roster_term_id": term.id,
                "roster_filename": parsed.filename,
                "roster_summary": report.summary.as_dict(),
            },
        )
        return report

    # Import ----------------------------------------------------------------

    def import_roster(
        self,
        content: bytes,
        content_type: str | None,
        term_id: int,
        strategy: str,
        *,
        allow_partial: bool = False,
        filename: str | None = None,
        triggered_by: str | None = None,
    ) -> ImportReport:
        strategy = coerce_strategy(strategy)
        parsed = self.parser.parse(content, content_type, filename=filename)
        term = self.repository.get_open_term(term_id)
        context = _RunContext(
            term_id=term.id,
            strategy=strategy,
            filename=filename,
            allow_partial=allow_partial,
            triggered_by=triggered_by,
            started_at=_utcnow(),
            started_clock=time.monotonic(),
        )

        max_attempts = self.settings.max_attempts
        last_conflict: TransactionConflictError | None = None
        for attempt in range(1, max_attempts + 1):
            context.attempts = attempt
            try:
                report = self._attempt(parsed, context)
            except ImportBlockedError as exc:
                self.session.rollback()
                self._record_unsuccessful_run(
                    context,
                    status=RosterImportRunStatus.BLOCKED,
                    error_summary=str(exc),
                    counts=exc.report.summary.as_dict(),
                    rows=exc.report.as_dict()["rows"],
                )
                raise
            except TransactionConflictError as exc:
                self.session.rollback()
                last_conflict = exc
                self._log_conflict(context, exc)
                continue
            except SQLAlchemyError as exc:
                self.session.rollback()
                translated = translate_sqlalchemy_error(exc)
                if isinstance(translated, TransactionConflictError):
                    last_conflict = translated
                    self._log_conflict(context, translated)
                    continue
                logger.error(
                    "Roster import failed with a storage error",
                    exc_info=True,
                    extra={"roster_term_id": context.term_id, "roster_attempt": attempt},
                )
                self._record_unsuccessful_run(context, status=RosterImportRunStatus.FAILED, error_summary=str(translated))
                raise translated from exc
            except Exception:
                self.session.rollback()
                raise
            else:
                return report

        error = TransactionConflictError(
            f"Roster import did not complete after {max_attempts} attempt(s): {last_conflict}",
            attempts=max_attempts,
        )
        self._record_unsuccessful_run(context, status=RosterImportRunStatus.FAILED, error_summary=str(error))
        raise error

    def _attempt(self, parsed: ParsedFile, context: "_RunContext") -> ImportReport:
        reconciler = ImportReconciler(
            repository=self.repository,
            normalizer=self.build_normalizer(),
            detector=self.detector,
            capacity=self.capacity,
            strategy=context.strategy,
            assignment_policy=self.settings.assignment_policy,
            allow_partial=context.allow_partial,
            triggered_by=context.triggered_by,
        )
        builder = reconciler.reconcile(parsed, term_id=context.term_id)
        report = builder.build(attempts=context.attempts)
        status = (
            RosterImportRunStatus.SUCCEEDED if report.summary.failed == 0 else RosterImportRunStatus.PARTIALLY_FAILED
        )

        run = self._build_run(
            context,
            status=status,
            counts=report.summary.as_dict(),
            rows=[row.as_dict() for row in report.rows],
        )
        self.session.add(run)
        self.session.flush()
        run_id = run.id
        self.session.commit()

        counts = {action: report.summary.count(action) for action in ("created", "updated", "restored", "skipped", "failed")}
        metrics.record_import_rows(counts)
        metrics.record_import_run(status=status.value, duration_seconds=context.elapsed())
        logger.info(
            "Roster import %s on attempt %d: %s",
            status.value,
            context.attempts,
            ", ".join(f"{action}={count}" for action, count in counts.items()),
            extra={
                "roster_term_id": context.term_id,
                "roster_strategy": context.strategy,
                "roster_attempt": context.attempts,
                "roster_run_id": run_id,
            },
        )
        return replace(report, run_id=run_id)

    # Run records -----------------------------------------------------------

    def _build_run(
        self,
        context: "_RunContext",
        *,
        status: RosterImportRunStatus,
        counts: dict | None = None,
        rows: list | None = None,
        error_summary: str | None = None,
    ) -> RosterImportRun:
        return RosterImportRun(
            term_id=context.term_id,
            strategy=context.strategy,
            filename=context.filename,
            status=status,
            allow_partial=context.allow_partial,
            attempts=context.attempts,
            triggered_by=context.triggered_by,
            counts_json=counts,
            rows_json=rows,
            error_summary=error_summary,
            started_at=context.started_at,
            finished_at=_utcnow(),
        )

    def _record_unsuccessful_run(
        self,
        context: "_RunContext",
        *,
        status: RosterImportRunStatus,
        error_summary: str,
        counts: dict | None = None,
        rows: list | None = None,
    ) -> None:
        """Persist a blocked/failed run in its own transaction after the attempt rolled back."""

        metrics.record_import_run(status=status.value, duration_seconds=context.elapsed())
        try:
            self.session.add(
                self._build_run(context, status=status, counts=counts, rows=rows, error_summary=error_summary)
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.error(
                "Unable to record %s roster import run",
                status.value,
                exc_info=True,
                extra={"roster_term_id": context.term_id},
            )

    def _log_conflict(self, context: "_RunContext", exc: TransactionConflictError) -> None:
        metrics.record_import_conflict()
        logger.warning(
            "Roster import attempt %d/%d hit a transaction conflict: %s",
            context.attempts,
            self.settings.max_attempts,
            exc,
            extra={
                "roster_term_id": context.term_id,
                "roster_strategy": context.strategy,
                "roster_attempt": context.attempts,
            },
        )


@dataclass
class _RunContext:
    term_id: int
    strategy: str
    filename: str | None
    allow_partial: bool
    triggered_by: str | None
    started_at: datetime
    started_clock: float
    attempts: int = 0

    def elapsed(self) -> float:
        return time.monotonic() - self.started_clock


__all__ = ["IMPORTER_EXTENSION_KEY", "RosterImportService", "RosterImportSettings", "get_importer_settings"]
