"""Tests for OCSF event logging module and route-level event emission."""

import json
import logging
from unittest.mock import patch

from edge_auth import ocsf
from edge_auth.ocsf import (
    AuthActivity,
    AuthProtocol,
    EventClass,
    Severity,
    Status,
    authentication_event,
    emit,
)
from edge_auth.platform import EdgeGeo

SEND = "/api/auth/email-otp/send-verification-otp"
SIGN_IN = "/api/auth/sign-in/email-otp"


# ── Unit tests: constants ─────────────────────────────────────────────────


class TestConstants:
    def test_event_class_authentication(self):
        assert EventClass.AUTHENTICATION == 3001

    def test_auth_activities(self):
        assert AuthActivity.LOGON == 1
        assert AuthActivity.LOGOFF == 2
        assert AuthActivity.AUTHENTICATION_TICKET == 3
        assert AuthActivity.OTHER == 99

    def test_status(self):
        assert Status.SUCCESS == 1
        assert Status.FAILURE == 2

    def test_severity(self):
        assert Severity.INFORMATIONAL == 1
        assert Severity.MEDIUM == 3
        assert Severity.CRITICAL == 5

    def test_auth_protocol_otp(self):
        assert AuthProtocol.OTP == 6


# ── Unit tests: emit() ────────────────────────────────────────────────────


class TestEmit:
    def test_emit_logs_valid_json(self, caplog):
        event = {"class_uid": 3001, "activity_id": 1}
        with caplog.at_level(logging.INFO, logger="ocsf"):
            emit(event)
        assert len(caplog.records) == 1
        parsed = json.loads(caplog.records[0].message)
        assert parsed["class_uid"] == 3001
        assert parsed["activity_id"] == 1

    def test_emit_reports_unserializable_event(self, caplog):
        event: dict = {"class_uid": 3001}
        event["self"] = event
        with caplog.at_level(logging.INFO, logger="ocsf"):
            emit(event)  # Should not raise
        assert len(caplog.records) == 1
        assert caplog.records[0].levelno == logging.WARNING
        assert "unserializable" in caplog.records[0].message


# ── Unit tests: authentication_event() ────────────────────────────────────


class TestAuthenticationEvent:
    def test_builds_correct_structure(self, caplog):
        with caplog.at_level(logging.INFO, logger="ocsf"):
            authentication_event(
                activity_id=AuthActivity.LOGON,
                activity_name="Logon",
                status_id=Status.SUCCESS,
                severity_id=Severity.INFORMATIONAL,
                user_email="alice@example.com",
                message="User signed in with email OTP",
            )

        event = json.loads(caplog.records[0].message)
        assert event["class_uid"] == 3001
        assert event["class_name"] == "Authentication"
        assert event["activity_id"] == 1
        assert event["activity_name"] == "Logon"
        assert event["severity"] == "Informational"
        assert event["status"] == "Success"
        assert event["auth_protocol_id"] == AuthProtocol.OTP
        assert event["auth_protocol"] == "Email OTP"
        assert event["actor"]["user"]["email_addr"] == "alice@example.com"
        assert event["metadata"]["product"]["name"] == "edge-auth"
        assert isinstance(event["time"], int)

    def test_omits_actor_and_endpoint_when_unknown(self, caplog):
        with caplog.at_level(logging.INFO, logger="ocsf"):
            authentication_event(
                activity_id=AuthActivity.OTHER,
                activity_name="Other",
                status_id=Status.FAILURE,
                severity_id=Severity.MEDIUM,
            )
        event = json.loads(caplog.records[0].message)
        assert "actor" not in event
        assert "src_endpoint" not in event
        assert event["status"] == "Failure"

    def test_src_endpoint_carries_ip_and_geo(self, caplog, edge_headers):
        with caplog.at_level(logging.INFO, logger="ocsf"):
            authentication_event(
                activity_id=AuthActivity.LOGON,
                activity_name="Logon",
                status_id=Status.SUCCESS,
                severity_id=Severity.INFORMATIONAL,
                src_ip="203.0.113.7",
                geo=EdgeGeo.from_headers(edge_headers),
            )
        endpoint = json.loads(caplog.records[0].message)["src_endpoint"]
        assert endpoint["ip"] == "203.0.113.7"
        assert endpoint["location"]["city"] == "Berlin"
        assert endpoint["location"]["country"] == "DE"
        assert endpoint["location"]["provider"] == "TXL50-C1"

    def test_extra_metadata_merged(self, caplog):
        with caplog.at_level(logging.INFO, logger="ocsf"):
            authentication_event(
                activity_id=AuthActivity.LOGON,
                activity_name="Logon",
                status_id=Status.SUCCESS,
                severity_id=Severity.INFORMATIONAL,
                extra_metadata={"correlation_uid": "abc"},
            )
        event = json.loads(caplog.records[0].message)
        assert event["metadata"]["correlation_uid"] == "abc"
        assert event["metadata"]["product"]["name"] == "edge-auth"


# ── Route emission tests ──────────────────────────────────────────────────


def _events(mock_emit) -> list[dict]:
    return [c.args[0] for c in mock_emit.call_args_list]


class TestSendEmission:
    def test_send_emits_ticket(self, client, outbox):
        with patch.object(ocsf, "emit") as mock_emit:
            client.post(SEND, json={"email": "alice@example.com"})
        (event,) = _events(mock_emit)
        assert event["activity_id"] == AuthActivity.AUTHENTICATION_TICKET
        assert event["status_id"] == Status.SUCCESS
        assert event["actor"]["user"]["email_addr"] == "alice@example.com"


class TestSignInEmission:
    def test_sign_in_success_emits_logon_with_location(self, client, outbox, edge_headers):
        client.post(SEND, json={"email": "alice@example.com"})
        with patch.object(ocsf, "emit") as mock_emit:
            resp = client.post(
                SIGN_IN,
                json={"email": "alice@example.com", "otp": outbox[-1][1]},
                headers=edge_headers,
            )
        assert resp.status_code == 200
        (event,) = _events(mock_emit)
        assert event["activity_id"] == AuthActivity.LOGON
        assert event["status_id"] == Status.SUCCESS
        assert event["src_endpoint"]["location"]["city"] == "Berlin"

    def test_sign_in_failure_emits_logon_failure(self, client):
        with patch.object(ocsf, "emit") as mock_emit:
            resp = client.post(SIGN_IN, json={"email": "alice@example.com", "otp": "000000"})
        assert resp.status_code == 400
        (event,) = _events(mock_emit)
        assert event["activity_id"] == AuthActivity.LOGON
        assert event["status_id"] == Status.FAILURE
        assert event["severity_id"] == Severity.MEDIUM
        assert "INVALID_OTP" in event["message"]


class TestLogoutEmission:
    def test_sign_out_emits_logoff(self, signed_in):
        with patch.object(ocsf, "emit") as mock_emit:
            resp = signed_in.post("/api/auth/sign-out")
        assert resp.status_code == 200
        (event,) = _events(mock_emit)
        assert event["activity_id"] == AuthActivity.LOGOFF
        assert event["status_id"] == Status.SUCCESS
        assert event["actor"]["user"]["email_addr"] == "alice@example.com"


class TestRejectionEmission:
    def test_untrusted_origin_emits_failure(self, client):
        with patch.object(ocsf, "emit") as mock_emit:
            client.post(SEND, json={"email": "alice@example.com"}, headers={"origin": "https://evil.example"})
        (event,) = _events(mock_emit)
        assert event["activity_id"] == AuthActivity.OTHER
        assert event["status_id"] == Status.FAILURE
        assert "evil.example" in event["message"]

    def test_rate_limit_emits_failure(self, client, outbox):
        for _ in range(3):
            client.post(SEND, json={"email": "alice@example.com"})
        with patch.object(ocsf, "emit") as mock_emit:
            resp = client.post(SEND, json={"email": "alice@example.com"})
        assert resp.status_code == 429
        (event,) = _events(mock_emit)
        assert event["activity_id"] == AuthActivity.OTHER
        assert event["src_endpoint"]["ip"] == "testclient"
        assert "Rate limit" in event["message"]
