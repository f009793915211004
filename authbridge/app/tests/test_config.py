"""
Configuration and System Endpoint Tests
=======================================

Tests for authbridge/app/config.py and the /health and / endpoints.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from pydantic import ValidationError

from authbridge import __version__
from authbridge.app.config import Settings, validate_configuration
from authbridge.app.main import create_app

from .conftest import FakeAdapter, RecordingSink


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:

    def test_defaults(self):
        settings = make_settings()

        assert settings.OAUTH2_PATH_PREFIX == "/oauth2"
        assert settings.cookie_path == "/oauth2"
        assert settings.SESSION_COOKIE_NAME == "session_id"
        assert settings.ADD_FEEDBACK_ROUTES is True
        assert settings.sse_cors_origin_policy == "*"

    def test_single_origin(self):
        settings = make_settings(SSE_CORS_ORIGIN="https://app.example")
        assert settings.sse_cors_origin_policy == "https://app.example"

    def test_origin_list(self):
        settings = make_settings(SSE_CORS_ORIGIN="https://a.example, https://b.example,")
        assert settings.sse_cors_origin_policy == ["https://a.example", "https://b.example"]

    def test_blank_origin_means_any(self):
        assert make_settings(SSE_CORS_ORIGIN=" ").sse_cors_origin_policy == "*"

    def test_prefix_trailing_slash_stripped(self):
        assert make_settings(OAUTH2_PATH_PREFIX="/auth/").OAUTH2_PATH_PREFIX == "/auth"

    def test_relative_prefix_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(OAUTH2_PATH_PREFIX="oauth2")

    def test_cookie_path_override(self):
        assert make_settings(COOKIE_PATH="/").cookie_path == "/"

    def test_log_level_normalized(self):
        assert make_settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(LOG_LEVEL="VERBOSE")

    def test_application_url_trailing_slash(self):
        assert make_settings(APPLICATION_URL="https://bridge.example/").application_url == "https://bridge.example"

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "env-id")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "env-secret")
        monkeypatch.setenv("ADD_FEEDBACK_ROUTES", "false")

        settings = make_settings()

        assert settings.google_configured
        assert settings.ADD_FEEDBACK_ROUTES is False


class TestValidateConfiguration:

    def test_no_providers_is_a_warning(self):
        report = validate_configuration(make_settings())

        assert report["valid"] is True
        assert "No OAuth2 provider is configured" in report["warnings"]

    def test_incomplete_apple_credentials(self):
        report = validate_configuration(make_settings(APPLE_CLIENT_ID="com.example.service"))

        assert report["valid"] is False
        assert any("Apple credentials are incomplete" in e for e in report["errors"])

    def test_incomplete_google_credentials(self):
        report = validate_configuration(make_settings(GOOGLE_CLIENT_ID="id"))

        assert report["valid"] is False

    def test_cookie_path_not_covering_prefix(self):
        report = validate_configuration(make_settings(COOKIE_PATH="/elsewhere"))

        assert any("COOKIE_PATH" in w for w in report["warnings"])


class TestSystemEndpoints:

    def test_health(self, client, registry):
        registry.attach("abc", object())

        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "status": "ok",
            "service": "authbridge",
            "version": __version__,
            "providers": ["fake"],
            "open_sessions": 1,
        }

    def test_root_lists_routes(self, client):
        endpoints = client.get("/").json()["endpoints"]

        assert endpoints["status"] == "/oauth2/status"
        assert endpoints["providers"]["fake"] == {
            "login": "/oauth2/fake/login/{session_id}",
            "callback": "/oauth2/fake/callback",
        }

    def test_registry_exposed_on_app_state(self, app, registry):
        assert app.state.session_registry is registry

    def test_shutdown_closes_open_channels(self, app, registry):
        sink = RecordingSink()
        with TestClient(app):
            registry.attach("abc", sink)

        assert sink.closed
        assert sink.chunks == ["event: close\n\n"]
        assert len(registry) == 0

    def test_unhandled_errors_hidden_outside_debug(self, registry):
        adapter = FakeAdapter(authorize_error=RuntimeError("secret detail"))
        client = TestClient(
            create_app(make_settings(APPLICATION_URL="http://testserver"), providers=[adapter], registry=registry),
            raise_server_exceptions=False,
        )

        body = client.get("/oauth2/fake/login/abc", follow_redirects=False).json()

        assert body["message"] == "An unexpected error occurred"
        assert body["detail"] is None
