"""OCSF (Open Cybersecurity Schema Framework) event logging.

Emits structured security events for the OTP login flow. Events are logged
to the ``ocsf`` logger as JSON; consumers attach their own handlers
(CloudWatch JSON formatter, Firehose, structlog, etc.).

Usage in the auth engine::

    from .. import ocsf
    ocsf.authentication_event(
        activity_id=ocsf.AuthActivity.LOGON,
        activity_name="Logon",
        status_id=ocsf.Status.SUCCESS,
        severity_id=ocsf.Severity.INFORMATIONAL,
        user_email="user@example.com",
        src_ip="203.0.113.7",
        message="User signed in with email OTP",
    )
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from .platform import EdgeGeo

logger = logging.getLogger("ocsf")

# ── OCSF Constants ────────────────────────────────────────────────────────


class EventClass:
    AUTHENTICATION = 3001


class AuthActivity:
    LOGON = 1
    LOGOFF = 2
    AUTHENTICATION_TICKET = 3  # One-time code issued
    OTHER = 99  # Rate limiting, origin rejection


class Status:
    SUCCESS = 1
    FAILURE = 2


class Severity:
    INFORMATIONAL = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    CRITICAL = 5


class AuthProtocol:
    UNKNOWN = 0
    OTP = 6


_SEVERITY_NAMES = {
    Severity.INFORMATIONAL: "Informational",
    Severity.LOW: "Low",
    Severity.MEDIUM: "Medium",
    Severity.HIGH: "High",
    Severity.CRITICAL: "Critical",
}

_PRODUCT = {
    "name": "edge-auth",
    "version": "0.1.0",
    "vendor_name": "edge-auth",
}


# ── Core emit ──────────────────────────────────────────────────────────────


def emit(event: dict[str, Any]) -> None:
    """Log an OCSF event as JSON. Serialization problems are logged, not raised."""
    try:
        payload = json.dumps(event, default=str)
    except (TypeError, ValueError) as e:
        logger.warning("Dropping unserializable OCSF event: %s", e)
        return
    logger.info(payload)


# ── Event builders ─────────────────────────────────────────────────────────


def _src_endpoint(ip: str | None, geo: EdgeGeo | None) -> dict[str, Any] | None:
    if ip is None and geo is None:
        return None
    endpoint: dict[str, Any] = {}
    if ip:
        endpoint["ip"] = ip
    if geo is not None:
        endpoint["location"] = {
            "city": geo.city,
            "country": geo.country,
            "region": geo.region,
            "lat": geo.latitude,
            "long": geo.longitude,
            "provider": geo.colo,
        }
    return endpoint


def authentication_event(
    *,
    activity_id: int,
    activity_name: str,
    status_id: int,
    severity_id: int,
    user_email: str | None = None,
    auth_protocol_id: int = AuthProtocol.OTP,
    auth_protocol: str = "Email OTP",
    src_ip: str | None = None,
    geo: EdgeGeo | None = None,
    message: str = "",
    extra_metadata: dict[str, Any] | None = None,
) -> None:
    """Emit an OCSF Authentication (3001) event."""
    event: dict[str, Any] = {
        "class_uid": EventClass.AUTHENTICATION,
        "class_name": "Authentication",
        "activity_id": activity_id,
        "activity_name": activity_name,
        "severity_id": severity_id,
        "severity": _SEVERITY_NAMES.get(severity_id, "Unknown"),
        "status_id": status_id,
        "status": "Success" if status_id == Status.SUCCESS else "Failure",
        "time": int(time.time() * 1000),
        "metadata": {
            "product": _PRODUCT,
            **(extra_metadata or {}),
        },
        "auth_protocol_id": auth_protocol_id,
        "auth_protocol": auth_protocol,
        "message": message,
    }
    if user_email:
        event["actor"] = {
            "user": {
                "email_addr": user_email,
                "type_id": 1,
                "type": "User",
            }
        }
    endpoint = _src_endpoint(src_ip, geo)
    if endpoint:
        event["src_endpoint"] = endpoint
    emit(event)
