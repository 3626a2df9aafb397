# config/validation.py

"""
Environment variable validation for the roster application.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple

from .base import ASSIGNMENT_POLICY_CHOICES, IDENTITY_KEY_CHOICES
from .seat_limits import SeatLimitConfigError, load_seat_limits


def _validate_roster_settings(env) -> List[str]:
    errors = []

    identity_key = env.get("ROSTER_IDENTITY_KEY")
    if identity_key and identity_key.strip().lower() not in IDENTITY_KEY_CHOICES:
        errors.append(
            f"ROSTER_IDENTITY_KEY must be one of: {', '.join(IDENTITY_KEY_CHOICES)} (got '{identity_key}')"
        )

    policy = env.get("ROSTER_ASSIGNMENT_CHANGE_POLICY")
    if policy and policy.strip().lower() not in ASSIGNMENT_POLICY_CHOICES:
        errors.append(
            "ROSTER_ASSIGNMENT_CHANGE_POLICY must be one of: "
            f"{', '.join(ASSIGNMENT_POLICY_CHOICES)} (got '{policy}')"
        )

    for key in ("ROSTER_IMPORT_MAX_ATTEMPTS", "ROSTER_IMPORT_MAX_UPLOAD_MB"):
        raw = env.get(key)
        if raw is None or raw.strip() == "":
            continue
        try:
            if int(raw) < 1:
                errors.append(f"{key} must be a positive integer")
        except ValueError:
            errors.append(f"{key} must be a positive integer (got '{raw}')")

    try:
        load_seat_limits(env)
    except SeatLimitConfigError as exc:
        errors.append(f"ROSTER_SEAT_LIMITS_PATH is invalid: {exc}")

    return errors


def validate_environment(flask_env: str = None, env=None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable
        env: Mapping to validate instead of ``os.environ`` (used by tests)

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    env_map = dict(os.environ) if env is None else dict(env)
    if flask_env is None:
        flask_env = env_map.get("FLASK_ENV", "development")

    errors = _validate_roster_settings(env_map)

    if flask_env == "production":
        secret_key = env_map.get("SECRET_KEY", "")
        if not secret_key or secret_key in ("your-secret-key", "your_secret_key"):
            errors.append(
                "SECRET_KEY is required in production and must not be the default value. "
                'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
            )

        if not env_map.get("DATABASE_URL"):
            errors.append(
                "DATABASE_URL is required in production. "
                "Set it to your PostgreSQL connection string."
            )

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
