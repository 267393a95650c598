"""Shared fixtures for the edge-auth test suite."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from edge_auth import db as db_module
from edge_auth.auth import reset_auth
from edge_auth.auth.ratelimit import reset_limiters
from edge_auth.config import Settings, override_settings
from edge_auth.db import get_db
from edge_auth.main import create_app
from edge_auth.session import InMemoryBackend

# X-Origin-Verify value the test distribution injects
ORIGIN_SECRET = "test-origin-secret"

# A full set of CloudFront viewer headers, as the edge forwards them.
EDGE_HEADERS = {
    "cloudfront-viewer-time-zone": "Europe/Berlin",
    "cloudfront-viewer-city": "Berlin",
    "cloudfront-viewer-country": "DE",
    "cloudfront-viewer-country-region-name": "Land Berlin",
    "cloudfront-viewer-country-region": "BE",
    "x-amz-cf-pop": "TXL50-C1",
    "cloudfront-viewer-latitude": "52.52000",
    "cloudfront-viewer-longitude": "13.40500",
}


@pytest.fixture
def edge_headers() -> dict[str, str]:
    return dict(EDGE_HEADERS)


@pytest.fixture
def via_edge():
    """Factory: headers of a request the distribution forwarded for viewer ``ip``."""

    def _headers(ip: str) -> dict[str, str]:
        return {"x-origin-verify": ORIGIN_SECRET, "cloudfront-viewer-address": f"{ip}:4321"}

    return _headers


# ── Test Settings ─────────────────────────────────────────────────────────

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="local",
        auth_secret="test-secret-key-for-auth",
        base_url="http://testserver",
        public_origin="https://auth.example.com",
        edge_origin_secret=ORIGIN_SECRET,
    )


@pytest.fixture(autouse=True)
def _isolate(test_settings):
    """Fresh settings, auth singleton, rate-limit counters and engines per test."""
    override_settings(test_settings)
    reset_auth()
    reset_limiters()
    db_module._engines.clear()
    yield
    reset_auth()
    reset_limiters()
    db_module._engines.clear()


# ── Database ──────────────────────────────────────────────────────────────

@pytest.fixture
def database_url(tmp_path, monkeypatch) -> str:
    """SQLite database bound as HYPERDRIVE, with the auth tables created."""
    path = tmp_path / "auth.db"
    url = f"sqlite+aiosqlite:///{path}"
    monkeypatch.setenv("HYPERDRIVE", url)
    engine = create_engine(f"sqlite:///{path}")
    get_db({"HYPERDRIVE": url}).tables.metadata.create_all(engine)
    engine.dispose()
    return url


@pytest.fixture
def database(database_url):
    return get_db({"HYPERDRIVE": database_url})


# ── OTP capture ───────────────────────────────────────────────────────────

@pytest.fixture
def outbox(monkeypatch) -> list[tuple[str, str, str]]:
    """Collect (email, otp, type) for every code the auth engine sends."""
    sent: list[tuple[str, str, str]] = []

    async def _capture(email: str, otp: str, type: str) -> None:
        sent.append((email, otp, type))

    monkeypatch.setattr("edge_auth.auth.builders.log_verification_otp", _capture)
    return sent


# ── App & Client ──────────────────────────────────────────────────────────

@pytest.fixture
def session_backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def app(test_settings, session_backend, database_url):
    return create_app(session_backend=session_backend, skip_lifespan=True)


@pytest.fixture
def client(app) -> TestClient:
    """TestClient with cookie persistence."""
    return TestClient(app, cookies={})


# ── Helper: Signed-in Client ──────────────────────────────────────────────

@pytest.fixture
def sign_in(client, outbox):
    """Factory: request a code and redeem it through the JSON API."""

    def _sign_in(email: str = "alice@example.com", headers=None):
        resp = client.post(
            "/api/auth/email-otp/send-verification-otp",
            json={"email": email, "type": "sign-in"},
            headers=headers,
        )
        assert resp.status_code == 200, resp.text
        otp = outbox[-1][1]
        resp = client.post(
            "/api/auth/sign-in/email-otp", json={"email": email, "otp": otp}, headers=headers
        )
        assert resp.status_code == 200, resp.text
        return resp

    return _sign_in


@pytest.fixture
def signed_in(client, sign_in) -> TestClient:
    sign_in()
    return client
