"""Tests for the transport pipeline."""

import logging

import pytest
import requests

from comfysync.config import AuthContext
from comfysync.transport import (
    CookieTracker,
    HeaderInjector,
    RedirectDetector,
    TransportPipeline,
    auth_redirect_uri,
    build_pipeline,
    is_login_redirect,
)

from fakes import LOGIN_URL, FakeTransport, login_redirect, make_response

BASE = "https://comfy.example.com"


def get(transport, url):
    return transport.send(transport.prepare(requests.Request("GET", url)))


class TestHeaderInjector:
    """Tests for HeaderInjector."""

    def test_empty_key_skipped(self):
        """Test that an empty-key entry is skipped and the rest are sent."""
        base = FakeTransport({"/system_stats": (200, {})})
        pipeline = build_pipeline(base, AuthContext(headers={"CF-Access-Client-Id": "x", "": "y"}))

        response = get(pipeline, f"{BASE}/system_stats")

        assert response.status_code == 200
        sent = base.sent[0].headers
        assert sent["CF-Access-Client-Id"] == "x"
        assert "" not in sent
        assert "y" not in sent.values()

    def test_empty_value_skipped(self):
        """Test that an empty-value entry is skipped silently."""
        injector = HeaderInjector(FakeTransport(), {"X-Empty": "", "X-Ok": "1"})
        target = {}
        assert injector.apply(target) == ["X-Ok"]
        assert target == {"X-Ok": "1"}

    def test_restricted_header_logged_and_skipped(self, caplog):
        """Test that a restricted header does not abort the others."""
        injector = HeaderInjector(
            FakeTransport(),
            {"Host": "evil.example.com", "CF-Access-Client-Secret": "s3cret"},
        )
        target = {}
        with caplog.at_level(logging.ERROR, logger="comfysync"):
            applied = injector.apply(target)

        assert applied == ["CF-Access-Client-Secret"]
        assert "Host" not in target
        assert "restricted header" in caplog.text

    def test_invalid_header_logged_and_skipped(self, caplog):
        """Test that a malformed header value is refused without raising."""
        injector = HeaderInjector(FakeTransport(), {"X-Bad": "line\nbreak", "X-Good": "ok"})
        target = {}
        with caplog.at_level(logging.ERROR, logger="comfysync"):
            applied = injector.apply(target)

        assert applied == ["X-Good"]
        assert "X-Bad" in caplog.text

    def test_no_headers_configured(self):
        """Test that requests pass through untouched without headers."""
        base = FakeTransport({"/system_stats": (200, {})})
        pipeline = build_pipeline(base)
        get(pipeline, f"{BASE}/system_stats")
        assert "CF-Access-Client-Id" not in base.sent[0].headers

    def test_upgrade_headers_filtered(self):
        """Test that the upgrade handshake gets the same filtered headers."""
        pipeline = build_pipeline(
            FakeTransport(),
            AuthContext(headers={"CF-Access-Client-Id": "x", "": "y", "Connection": "close"}),
        )
        assert pipeline.upgrade_headers() == {"CF-Access-Client-Id": "x"}


class TestCookieTracker:
    """Tests for CookieTracker."""

    def test_session_cookie_observed(self, caplog):
        """Test that a recognized session cookie is recorded once."""
        def handler(prepared):
            return make_response(
                prepared.url,
                200,
                {},
                {"Set-Cookie": "CF_Authorization=eyJhbGciOi; Path=/; HttpOnly"},
                request=prepared,
            )

        base = FakeTransport({"/system_stats": handler})
        pipeline = build_pipeline(base)

        with caplog.at_level(logging.INFO, logger="comfysync"):
            get(pipeline, f"{BASE}/system_stats")
            get(pipeline, f"{BASE}/system_stats")

        tracker = pipeline.cookie_tracker
        assert tracker.has_session()
        assert tracker.observed == {"CF_Authorization": "comfy.example.com"}
        assert caplog.text.count("Captured CF_Authorization session cookie") == 1

    def test_other_cookie_ignored(self):
        """Test that unrelated cookies are not recorded."""
        def handler(prepared):
            return make_response(prepared.url, 200, {}, {"Set-Cookie": "theme=dark"}, request=prepared)

        tracker = CookieTracker(FakeTransport({"/x": handler}))
        prepared = requests.Request("GET", f"{BASE}/x").prepare()
        tracker.send(prepared)
        assert tracker.observed == {}
        assert tracker.has_session() is False


class TestRedirectDetection:
    """Tests for login redirect detection."""

    def test_login_domain_flagged(self):
        """Test that a redirect to the login domain is flagged."""
        assert is_login_redirect(f"{BASE}/object_info", LOGIN_URL, "cloudflareaccess.com")

    def test_same_host_redirect_not_flagged(self):
        """Test that a same-host redirect is never flagged."""
        assert not is_login_redirect(f"{BASE}/a", f"{BASE}/b", "cloudflareaccess.com")
        assert not is_login_redirect(
            "https://x.cloudflareaccess.com/a",
            "https://x.cloudflareaccess.com/b",
            "cloudflareaccess.com",
        )

    def test_other_host_not_flagged(self):
        """Test that a redirect elsewhere is not an auth redirect."""
        assert not is_login_redirect(f"{BASE}/a", "https://cdn.example.net/a", "cloudflareaccess.com")

    def test_missing_values(self):
        """Test that missing input never flags."""
        assert not is_login_redirect(f"{BASE}/a", None, "cloudflareaccess.com")
        assert not is_login_redirect(f"{BASE}/a", LOGIN_URL, "")

    def test_detector_marks_response(self, caplog):
        """Test that the detector stores the login URI on the response."""
        base = FakeTransport({"/system_stats": login_redirect})
        pipeline = build_pipeline(base, AuthContext(headers={"CF-Access-Client-Id": "x"}))

        with caplog.at_level(logging.WARNING, logger="comfysync"):
            response = get(pipeline, f"{BASE}/system_stats")

        assert auth_redirect_uri(response) == LOGIN_URL
        assert "CF-Access-Client-Id" in caplog.text
        # Header names only, never values
        assert "Header names sent" in caplog.text

    def test_detector_clears_flag(self):
        """Test that ordinary responses carry no redirect flag."""
        detector = RedirectDetector(FakeTransport({"/ok": (200, {})}))
        response = detector.send(requests.Request("GET", f"{BASE}/ok").prepare())
        assert auth_redirect_uri(response) is None


class TestTransportPipeline:
    """Tests for pipeline assembly."""

    def test_stage_order(self):
        """Test outermost-to-innermost stage order."""
        base = FakeTransport()
        pipeline = TransportPipeline(base)
        stages = pipeline.stages

        assert isinstance(stages[0], RedirectDetector)
        assert isinstance(stages[1], CookieTracker)
        assert isinstance(stages[2], HeaderInjector)
        assert stages[3] is base
        assert pipeline.redirect_detector.inner is pipeline.cookie_tracker
        assert pipeline.cookie_tracker.inner is pipeline.header_injector
        assert pipeline.header_injector.inner is base

    def test_close_reaches_base(self):
        """Test that closing the pipeline closes the base transport."""
        base = FakeTransport()
        build_pipeline(base).close()
        assert base.closed is True

    def test_transport_error_propagates(self):
        """Test that network errors are not swallowed by the stages."""
        base = FakeTransport({"/system_stats": requests.ConnectionError("refused")})
        with pytest.raises(requests.ConnectionError):
            get(build_pipeline(base), f"{BASE}/system_stats")
