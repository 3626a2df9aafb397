# conftest.py

import os

import pytest

# Set testing environment BEFORE importing app
# This ensures app.py uses TestingConfig when imported
os.environ["FLASK_ENV"] = "testing"

# Now import app and other modules after environment is set
from app import app as flask_app  # noqa: E402
from config.seat_limits import DEFAULT_LIMITS  # noqa: E402
from roster_app.importer import init_importer  # noqa: E402
from roster_app.models import db  # noqa: E402

_ROSTER_DEFAULTS = {
    "ROSTER_IMPORT_MAX_UPLOAD_MB": 10,
    "ROSTER_IMPORT_MAX_ATTEMPTS": 3,
    "ROSTER_IMPORT_REQUIRE_EMAIL": True,
    "ROSTER_IDENTITY_KEY": "name",
    "ROSTER_ASSIGNMENT_CHANGE_POLICY": "reject",
    "ROSTER_SEAT_LIMITS": DEFAULT_LIMITS,
}


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application"""
    # The engine is bound to TestingConfig's in-memory database at import
    # time; every test gets freshly created tables and default importer settings.
    flask_app.config.update(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key-for-testing-only",
            "ENABLE_FILE_LOGGING": False,
            "ENABLE_CONSOLE_LOGGING": False,
            **_ROSTER_DEFAULTS,
        }
    )
    # Re-resolve the cached importer settings against the test config
    init_importer(flask_app)

    with flask_app.app_context():
        # Drop any existing tables to ensure clean state
        db.drop_all()
        db.create_all()
        yield flask_app
        # Clean up: remove all data and drop tables
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers and ensure testing environment"""
    os.environ["FLASK_ENV"] = "testing"

    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers"""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.slow)
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
