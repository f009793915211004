"""
Tests for the success and failure feedback pages.
"""

from fastapi import status
from fastapi.testclient import TestClient

from authbridge.app.auth.feedback import (
    DEFAULT_LANGUAGE,
    FailureNotices,
    get_language,
    render_feedback_page,
)
from authbridge.app.config import Settings
from authbridge.app.main import create_app

from .conftest import FakeAdapter, make_request


class TestLanguageSelection:

    def test_default_language(self):
        assert get_language(make_request()) == DEFAULT_LANGUAGE

    def test_first_supported_language(self):
        request = make_request(headers={"Accept-Language": "pt-BR,pt;q=0.9,en;q=0.8"})
        assert get_language(request) == "pt-BR"

    def test_unsupported_language_falls_back(self):
        request = make_request(headers={"Accept-Language": "fr-FR,fr;q=0.9"})
        assert get_language(request) == "en-US"


class TestRendering:

    def test_success_page(self):
        page = render_feedback_page("success", "en-US")

        assert "Authentication Success" in page
        assert '<html lang="en-US">' in page
        assert "<pre>" not in page

    def test_failure_page_in_portuguese(self):
        page = render_feedback_page("failure", "pt-BR")

        assert "Falha na autenticação" in page
        assert "tentar novamente" in page

    def test_error_message_is_escaped(self):
        page = render_feedback_page("failure", "en-US", "<script>alert(1)</script>")

        assert "<script>" not in page
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in page


class TestFailureNotices:

    def test_notice_is_read_once(self):
        notices = FailureNotices()
        notices.record("abc", "access_denied")

        assert notices.pop("abc") == "access_denied"
        assert notices.pop("abc") is None

    def test_oldest_notices_dropped_past_limit(self):
        notices = FailureNotices(max_entries=2)
        notices.record("one", "first")
        notices.record("two", "second")
        notices.record("three", "third")

        assert len(notices) == 2
        assert notices.pop("one") is None
        assert notices.pop("three") == "third"

    def test_missing_session_shares_empty_key(self):
        notices = FailureNotices()
        notices.record(None, "Illegal invoking of endpoint.")

        assert len(notices) == 1
        assert notices.pop("") == "Illegal invoking of endpoint."


class TestFeedbackRoutes:

    def test_success_route(self, client):
        response = client.get("/oauth2/success", headers={"Accept-Language": "pt-BR"})

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/html")
        assert "Autenticação bem-sucedida" in response.text

    def test_failure_route_reads_session_from_query(self, client, app):
        app.state.app_state.notices.record("abc", "access_denied")

        response = client.get("/oauth2/failure", params={"session_id": "abc"})

        assert "Error: access_denied" in response.text

    def test_failure_route_without_notice(self, client):
        response = client.get("/oauth2/failure")

        assert response.status_code == status.HTTP_200_OK
        assert "Authentication Failure" in response.text
        assert "Error:" not in response.text

    def test_failure_notice_only_for_own_session(self, client):
        client.cookies.set("session_id", "abc")
        client.get("/oauth2/fake/callback?state=y&error=access_denied", follow_redirects=False)

        client.cookies.set("session_id", "other")
        assert "Error:" not in client.get("/oauth2/failure").text

        client.cookies.set("session_id", "abc")
        assert "Error: access_denied" in client.get("/oauth2/failure").text

    def test_routes_absent_when_disabled(self, registry):
        settings = Settings(APPLICATION_URL="http://testserver", ADD_FEEDBACK_ROUTES=False, _env_file=None)
        client = TestClient(create_app(settings, providers=[FakeAdapter()], registry=registry))

        assert client.get("/oauth2/success").status_code == status.HTTP_404_NOT_FOUND
        assert client.get("/oauth2/failure").status_code == status.HTTP_404_NOT_FOUND

    def test_routes_follow_prefix(self, registry):
        settings = Settings(APPLICATION_URL="http://testserver", OAUTH2_PATH_PREFIX="/auth/", _env_file=None)
        client = TestClient(create_app(settings, providers=[FakeAdapter()], registry=registry))

        assert client.get("/auth/success").status_code == status.HTTP_200_OK
        assert client.get("/auth/fake/callback?code=x&state=y", follow_redirects=False).headers["location"] == "/auth/success"
