# config.py
import os

from .seat_limits import load_seat_limits

IDENTITY_KEY_CHOICES = ("name", "email")
ASSIGNMENT_POLICY_CHOICES = ("reject", "ignore", "reassign")


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=1):
    """Parse an integer setting, falling back to ``default`` when invalid or below ``minimum``."""
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if number < minimum:
        return default
    return number


def _coerce_choice(value, choices, default):
    """Lower-case ``value`` and keep it only when it is one of ``choices``."""
    if value is None:
        return default
    token = str(value).strip().lower()
    return token if token in choices else default


class Config:
    # SECRET_KEY must be set via environment variable for security
    # For development, we allow a default but warn about it
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Only require SECRET_KEY in production mode
    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not SECRET_KEY and not _is_testing:
        import warnings

        warnings.warn(
            "SECRET_KEY not set. Using default for development only. "
            "Set SECRET_KEY environment variable before deploying.",
            UserWarning,
        )
        SECRET_KEY = "dev-secret-key-change-in-production"

    if not SECRET_KEY:
        SECRET_KEY = "test-secret-key-placeholder"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Roster importer configuration
    ROSTER_IMPORT_MAX_UPLOAD_MB = _coerce_int(os.environ.get("ROSTER_IMPORT_MAX_UPLOAD_MB"), 10)
    ROSTER_IMPORT_MAX_ATTEMPTS = _coerce_int(os.environ.get("ROSTER_IMPORT_MAX_ATTEMPTS"), 3)
    ROSTER_IMPORT_REQUIRE_EMAIL = _coerce_bool(os.environ.get("ROSTER_IMPORT_REQUIRE_EMAIL"), default=True)
    ROSTER_IDENTITY_KEY = _coerce_choice(os.environ.get("ROSTER_IDENTITY_KEY"), IDENTITY_KEY_CHOICES, "name")
    ROSTER_ASSIGNMENT_CHANGE_POLICY = _coerce_choice(
        os.environ.get("ROSTER_ASSIGNMENT_CHANGE_POLICY"),
        ASSIGNMENT_POLICY_CHOICES,
        "reject",
    )
    ROSTER_SEAT_LIMITS_PATH = os.environ.get("ROSTER_SEAT_LIMITS_PATH")
    # Loaded once per process; tests inject their own SeatLimits instead
    ROSTER_SEAT_LIMITS = load_seat_limits(dict(os.environ))


class DevelopmentConfig(Config):
    DEBUG = True
    # Get the project root directory (parent of config directory)
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (3 slashes for absolute path)
    db_path = os.path.join(instance_path, "roster_dev.db").replace("\\", "/")
    db_uri = f"sqlite:///{db_path}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = False
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
    # Serializable isolation surfaces write skew between concurrent imports as retryable conflicts
    SQLALCHEMY_ENGINE_OPTIONS = {"isolation_level": "SERIALIZABLE", "pool_pre_ping": True}
