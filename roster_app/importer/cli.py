"""
Flask CLI commands for the roster importer.

``flask roster validate FILE`` previews a file, ``flask roster import FILE``
commits it, and ``flask roster vacancies`` prints the seat table. Every
``RosterImportError`` is reported as a ``click.ClickException``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from flask.cli import with_appcontext

from .errors import ImportBlockedError, RosterImportError
from .reconcile import STRATEGIES
from .reports import ImportReport, ValidationReport
from .repository import RosterRepository
from .service import RosterImportService
from .vacancies import get_term_vacancies, get_unit_vacancies


@click.group(name="roster")
def roster_cli():
    """Officer roster import commands."""


def _resolve_term_id(term_id: Optional[int]) -> int:
    if term_id is not None:
        return term_id
    return RosterRepository().get_active_term().id


def _read_upload(file_path: Path) -> bytes:
    try:
        return file_path.read_bytes()
    except OSError as exc:
        raise click.ClickException(f"Unable to read {file_path}: {exc}") from exc


def _format_validation(report: ValidationReport) -> str:
    summary = report.summary
    lines = [
        f"Validated {summary.total_records} row(s).",
        f"  valid              : {summary.valid_records}",
        f"  invalid            : {summary.invalid_records}",
        f"  duplicates         : {summary.duplicate_records}",
        f"  duplicate_in_file  : {summary.duplicate_in_file}",
        f"  duplicate_active   : {summary.duplicate_in_db_active}",
        f"  duplicate_inactive : {summary.duplicate_in_db_inactive}",
    ]
    for row in report.rows:
        if row.issues:
            lines.append(f"  row {row.row_number}: " + "; ".join(row.messages))
    return "\n".join(lines)


def _format_import(report: ImportReport) -> str:
    summary = report.summary
    lines = [
        f"Run {report.run_id} imported {summary.total} row(s) with strategy '{summary.duplicate_strategy}'.",
        f"  created  : {summary.created}",
        f"  updated  : {summary.updated}",
        f"  restored : {summary.restored}",
        f"  skipped  : {summary.skipped}",
        f"  failed   : {summary.failed}",
    ]
    for row in report.rows:
        if row.message:
            lines.append(f"  row {row.row_number} {row.action}: {row.message}")
    return "\n".join(lines)


@roster_cli.command("validate")
@click.argument("file_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--term", "term_id", type=int, help="Governing term id (defaults to the active term).")
@click.option("--json", "as_json", is_flag=True, help="Emit the full report as JSON.")
@with_appcontext
def validate_command(file_path: Path, term_id: Optional[int], as_json: bool):
    """Validate FILE against the current roster without writing anything."""
    try:
        report = RosterImportService().validate(
            _read_upload(file_path),
            None,
            _resolve_term_id(term_id),
            filename=file_path.name,
        )
    except RosterImportError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps(report.as_dict(), indent=2))
    else:
        click.echo(_format_validation(report))


@roster_cli.command("import")
@click.argument("file_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--term", "term_id", type=int, help="Governing term id (defaults to the active term).")
@click.option(
    "--strategy",
    type=click.Choice(STRATEGIES, case_sensitive=False),
    default="skip",
    show_default=True,
    help="How to treat rows matching existing officials.",
)
@click.option("--allow-partial", is_flag=True, help="Commit valid rows even when other rows fail.")
@click.option("--triggered-by", default=None, help="Operator name recorded on the run.")
@click.option("--json", "as_json", is_flag=True, help="Emit the full report as JSON.")
@with_appcontext
def import_command(
    file_path: Path,
    term_id: Optional[int],
    strategy: str,
    allow_partial: bool,
    triggered_by: Optional[str],
    as_json: bool,
):
    """Import FILE, creating, updating or restoring officials."""
    try:
        report = RosterImportService().import_roster(
            _read_upload(file_path),
            None,
            _resolve_term_id(term_id),
            strategy,
            allow_partial=allow_partial,
            filename=file_path.name,
            triggered_by=triggered_by,
        )
    except ImportBlockedError as exc:
        if as_json:
            click.echo(json.dumps(exc.report.as_dict(), indent=2))
        else:
            click.echo(_format_validation(exc.report), err=True)
        raise click.ClickException(str(exc)) from exc
    except RosterImportError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps(report.as_dict(), indent=2))
    else:
        click.echo(_format_import(report))


@roster_cli.command("vacancies")
@click.option("--term", "term_id", type=int, help="Governing term id (defaults to the active term).")
@click.option("--unit", "unit_code", default=None, help="Limit output to one unit (code or name).")
@click.option("--json", "as_json", is_flag=True, help="Emit the table as JSON.")
@with_appcontext
def vacancies_command(term_id: Optional[int], unit_code: Optional[str], as_json: bool):
    """Show filled and available seats per unit and position."""
    try:
        resolved_term = _resolve_term_id(term_id)
        if unit_code:
            unit = RosterRepository().load_unit_directory().resolve(unit_code)
            if unit is None:
                raise click.ClickException(f"Unknown unit '{unit_code}'.")
            tables = [get_unit_vacancies(resolved_term, unit.id)]
        else:
            tables = get_term_vacancies(resolved_term)
    except RosterImportError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps([table.as_dict() for table in tables], indent=2))
        return

    for table in tables:
        click.echo(f"{table.unit_name} ({table.unit_code})")
        for vacancy in table.positions:
            marker = "FULL" if vacancy.is_full else f"{vacancy.available} open"
            click.echo(f"  {vacancy.position:<16} {vacancy.filled}/{vacancy.max}  {marker}")
