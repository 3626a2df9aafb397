"""Tests for seat-limit loading, environment validation and importer settings."""

import json

import pytest

from config.base import _coerce_choice, _coerce_int
from config.seat_limits import DEFAULT_LIMITS, SeatLimitConfigError, load_seat_limits
from config.validation import validate_environment
from roster_app.importer import IMPORTER_EXTENSION_KEY, init_importer
from roster_app.importer.service import RosterImportService, RosterImportSettings, get_importer_settings


def test_default_seat_limits():
    limits = load_seat_limits({})

    assert limits is DEFAULT_LIMITS
    assert limits.max_for("SK Councilor") == 7
    assert limits.max_for("SK Secretary") == 1
    assert limits.max_for("Mayor") == 0
    assert limits.max_for(None) == 0


def test_seat_limits_override_from_yaml(tmp_path):
    path = tmp_path / "seats.yaml"
    path.write_text("Chairperson: 1\nCouncilor: 5\n", encoding="utf-8")

    limits = load_seat_limits({"ROSTER_SEAT_LIMITS_PATH": str(path)})

    assert limits.positions == ("Chairperson", "Councilor")
    assert limits.max_for("Councilor") == 5


def test_seat_limits_override_from_json(tmp_path):
    path = tmp_path / "seats.json"
    path.write_text(json.dumps({"Secretary": 2}), encoding="utf-8")

    assert dict(load_seat_limits({"ROSTER_SEAT_LIMITS_PATH": str(path)})) == {"Secretary": 2}


@pytest.mark.parametrize(
    "content, message",
    [
        ("- Secretary\n- Treasurer\n", "object"),
        ("Secretary: many\n", "non-negative integer"),
        ("Secretary: [1\n", "not valid"),
    ],
)
def test_invalid_seat_limit_overrides(tmp_path, content, message):
    path = tmp_path / "seats.yml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(SeatLimitConfigError, match=message):
        load_seat_limits({"ROSTER_SEAT_LIMITS_PATH": str(path)})


def test_missing_override_file(tmp_path):
    with pytest.raises(SeatLimitConfigError, match="does not exist"):
        load_seat_limits({"ROSTER_SEAT_LIMITS_PATH": str(tmp_path / "missing.yaml")})


def test_validate_environment_accepts_defaults():
    is_valid, errors = validate_environment("development", env={})

    assert is_valid
    assert errors == []


def test_validate_environment_reports_roster_errors(tmp_path):
    env = {
        "ROSTER_IDENTITY_KEY": "phone",
        "ROSTER_ASSIGNMENT_CHANGE_POLICY": "merge",
        "ROSTER_IMPORT_MAX_ATTEMPTS": "0",
        "ROSTER_IMPORT_MAX_UPLOAD_MB": "lots",
        "ROSTER_SEAT_LIMITS_PATH": str(tmp_path / "missing.yaml"),
    }

    is_valid, errors = validate_environment("development", env=env)

    assert not is_valid
    assert len(errors) == 5
    assert any("ROSTER_IDENTITY_KEY" in error for error in errors)
    assert any("ROSTER_SEAT_LIMITS_PATH" in error for error in errors)


def test_validate_environment_production_requirements():
    is_valid, errors = validate_environment("production", env={"SECRET_KEY": "your-secret-key"})

    assert not is_valid
    assert any("SECRET_KEY" in error for error in errors)
    assert any("DATABASE_URL" in error for error in errors)


def test_coercion_helpers():
    assert _coerce_int("5", 3) == 5
    assert _coerce_int("0", 3) == 3
    assert _coerce_int("abc", 3) == 3
    assert _coerce_choice(" EMAIL ", ("name", "email"), "name") == "email"
    assert _coerce_choice("phone", ("name", "email"), "name") == "name"


def test_importer_settings_from_config():
    settings = RosterImportSettings.from_config(
        {
            "ROSTER_IMPORT_MAX_UPLOAD_MB": 2,
            "ROSTER_IMPORT_MAX_ATTEMPTS": 0,
            "ROSTER_IDENTITY_KEY": "email",
            "ROSTER_ASSIGNMENT_CHANGE_POLICY": "reassign",
        },
        require_email=False,
    )

    assert settings.max_upload_bytes == 2 * 1024 * 1024
    assert settings.max_attempts == 1
    assert settings.identity_key == "email"
    assert settings.assignment_policy == "reassign"
    assert settings.require_email is False
    assert settings.seat_limits is DEFAULT_LIMITS


def test_service_reads_settings_cached_by_init_importer(app, monkeypatch):
    monkeypatch.setitem(app.config, "ROSTER_IMPORT_MAX_ATTEMPTS", 5)
    monkeypatch.setitem(app.config, "ROSTER_IDENTITY_KEY", "email")
    init_importer(app)

    cached = app.extensions[IMPORTER_EXTENSION_KEY]["settings"]
    service = RosterImportService()

    assert service.settings is cached
    assert service.settings.max_attempts == 5
    assert service.settings.identity_key == "email"


def test_settings_fall_back_to_config_without_init_importer(app, monkeypatch):
    monkeypatch.delitem(app.extensions, IMPORTER_EXTENSION_KEY)
    monkeypatch.setitem(app.config, "ROSTER_IMPORT_MAX_ATTEMPTS", 4)

    assert get_importer_settings(app).max_attempts == 4
