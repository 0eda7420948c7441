"""
Pytest configuration and shared fixtures for daohub-core tests.
"""

import os
import sys
from http.cookies import SimpleCookie
from unittest.mock import MagicMock

import pytest

# Set test environment before importing the app
os.environ["NODE_ENV"] = "testing"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["CSRF_SECRET"] = "test-csrf-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["FORCE_HTTPS"] = "false"
os.environ.pop("ETH_RPC_URL", None)
os.environ.pop("RPC_URL", None)

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

CHAIN_TIMESTAMP = 1_700_000_000
CHAIN_BLOCK_NUMBER = 18_500_000


@pytest.fixture
def mock_chain_client():
    """Chain client whose latest block is fixed."""
    client = MagicMock(name="chain_client")
    client.get_block.return_value = {"timestamp": CHAIN_TIMESTAMP, "number": CHAIN_BLOCK_NUMBER, "hash": "0x" + "ab" * 32}
    return client


@pytest.fixture
def app(mock_chain_client):
    """Create and configure a test Flask application instance."""
    from daohub.factory import create_app

    flask_app = create_app({"TESTING": True}, chain_client=mock_chain_client)
    flask_app.config.update({"TESTING": True})
    return flask_app


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()


@pytest.fixture
def bare_client(app):
    """Test client without a cookie jar, for hand-built Cookie headers."""
    return app.test_client(use_cookies=False)


@pytest.fixture
def csrf_token(client):
    """Fetch a CSRF token; the signed cookie stays in the client's jar."""
    response = client.get("/api/csrf-token")
    assert response.status_code == 200
    return response.get_json()["csrfToken"]


@pytest.fixture
def mock_audit_logger():
    """Mock audit logger for testing."""
    return MagicMock(name="audit_logger")


def get_set_cookie(response, name="_csrf_token"):
    """Return the morsel for ``name`` from a response's Set-Cookie headers, or None."""
    for header in response.headers.getlist("Set-Cookie"):
        cookie = SimpleCookie()
        cookie.load(header)
        if name in cookie:
            return cookie[name]
    return None


@pytest.fixture
def read_set_cookie():
    return get_set_cookie


# Pytest configuration hooks
def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "unit: fast tests without the HTTP stack")
    config.addinivalue_line("markers", "integration: tests that drive the Flask app")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        # Add 'unit' marker to tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Add 'integration' marker to tests in integration/ directory
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
