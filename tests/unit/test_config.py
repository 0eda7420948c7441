"""
Unit tests for configuration management.
"""

import os
from unittest.mock import patch

import pytest

from daohub.config import get_config, validate_config


class TestGetConfig:
    """Test configuration loading from environment variables."""

    def test_get_config_defaults(self):
        """Test that get_config returns default values when env vars not set."""
        config = get_config()

        assert config["NODE_ENV"] == "testing"  # Set in conftest
        assert config["CSRF_COOKIE_NAME"] == "_csrf_token"
        assert config["CSRF_HEADER_NAME"] == "x-csrf-token"
        assert config["CSRF_TOKEN_LENGTH"] == 32
        assert config["CSRF_SAME_SITE"] == "strict"
        assert config["CSRF_HTTP_ONLY"] is False
        assert config["CSRF_MAX_AGE"] == 86400
        assert config["AUCTION_GRACE_PERIOD_SECONDS"] == 30
        assert config["ETH_RPC_URL"] is None

    def test_secure_cookie_defaults_to_production(self):
        """The Secure cookie flag follows NODE_ENV unless set explicitly."""
        with patch.dict(os.environ, {"NODE_ENV": "production"}):
            assert get_config()["CSRF_SECURE"] is True
        with patch.dict(os.environ, {"NODE_ENV": "development"}):
            assert get_config()["CSRF_SECURE"] is False
        with patch.dict(os.environ, {"NODE_ENV": "production", "CSRF_SECURE": "0"}):
            assert get_config()["CSRF_SECURE"] is False

    def test_get_config_custom_values(self):
        """Test that get_config uses environment variables when provided."""
        with patch.dict(
            os.environ,
            {"ETH_RPC_URL": "https://rpc.example.org", "CSRF_COOKIE_NAME": "xsrf", "CSRF_SAME_SITE": "Lax"},
        ):
            config = get_config()

            assert config["ETH_RPC_URL"] == "https://rpc.example.org"
            assert config["CSRF_COOKIE_NAME"] == "xsrf"
            assert config["CSRF_SAME_SITE"] == "lax"

    def test_rpc_url_alias(self):
        with patch.dict(os.environ, {"RPC_URL": "http://127.0.0.1:8545"}):
            assert get_config()["ETH_RPC_URL"] == "http://127.0.0.1:8545"

    def test_get_config_boolean_parsing(self):
        """Test that boolean environment variables are parsed correctly."""
        with patch.dict(os.environ, {"CSRF_HTTP_ONLY": "yes", "RATE_LIMIT_ENABLED": "true", "CSRF_ENABLED": "off"}):
            config = get_config()

            assert config["CSRF_HTTP_ONLY"] is True
            assert config["RATE_LIMIT_ENABLED"] is True
            assert config["CSRF_ENABLED"] is False

    def test_get_config_integer_parsing(self):
        """Test that integer environment variables are parsed correctly."""
        with patch.dict(os.environ, {"CSRF_MAX_AGE": "3600", "ETH_RPC_TIMEOUT": "3", "CSRF_TOKEN_LENGTH": "16"}):
            config = get_config()

            assert config["CSRF_MAX_AGE"] == 3600
            assert config["ETH_RPC_TIMEOUT"] == 3
            assert config["CSRF_TOKEN_LENGTH"] == 16

    def test_get_config_invalid_integer_raises(self):
        """Invalid integer inputs should surface a helpful error."""
        with patch.dict(os.environ, {"CSRF_MAX_AGE": "one-day"}):
            with pytest.raises(ValueError, match="CSRF_MAX_AGE"):
                get_config()


class TestValidateConfig:
    """Test configuration validation for production."""

    def test_validate_config_development_passes(self):
        config = {"NODE_ENV": "development", "CSRF_SECRET": None, "FLASK_SECRET_KEY": None}

        assert validate_config(config) is True

    def test_validate_config_production_requires_csrf_secret(self):
        config = {"NODE_ENV": "production", "CSRF_SECRET": "", "FLASK_SECRET_KEY": "k", "ETH_RPC_URL": "http://x"}

        with pytest.raises(ValueError, match="CSRF_SECRET must be set"):
            validate_config(config)

    def test_validate_config_production_requires_flask_secret(self):
        config = {"NODE_ENV": "production", "CSRF_SECRET": "s", "FLASK_SECRET_KEY": None, "ETH_RPC_URL": "http://x"}

        with pytest.raises(ValueError, match="FLASK_SECRET_KEY must be set"):
            validate_config(config)

    def test_validate_config_production_warns_without_rpc(self):
        config = {"NODE_ENV": "production", "CSRF_SECRET": "s", "FLASK_SECRET_KEY": "k", "ETH_RPC_URL": None}

        with pytest.warns(UserWarning, match="ETH_RPC_URL"):
            assert validate_config(config) is True

    def test_validate_config_rejects_unknown_same_site(self):
        with pytest.raises(ValueError, match="CSRF_SAME_SITE"):
            validate_config({"NODE_ENV": "development", "CSRF_SAME_SITE": "sometimes"})

    def test_validate_config_production_passes(self):
        config = {
            "NODE_ENV": "production",
            "CSRF_SECRET": "a-long-random-csrf-secret",
            "FLASK_SECRET_KEY": "secure_flask_secret_key",
            "ETH_RPC_URL": "https://rpc.example.org",
        }

        assert validate_config(config) is True
