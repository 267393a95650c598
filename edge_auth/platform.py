"""Hosting-platform context: environment bindings and edge geolocation.

On Lambda the app sits behind API Gateway and CloudFront. CloudFront forwards
the viewer's location as ``CloudFront-Viewer-*`` headers when the
distribution's origin request policy includes them (``ORIGIN_REQUEST_HEADERS``
is that list). CloudFront has no viewer header naming its edge location, so
``colo`` is only filled where something upstream sets ``x-amz-cf-pop`` on the
origin request; behind a plain distribution it is null. Mangum exposes the
raw API Gateway event under ``scope["aws.event"]``; its ``stageVariables``
act as per-stage bindings.

Nothing here caches: a ``PlatformContext`` describes exactly one request.
"""

from __future__ import annotations

import os
import secrets
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict
from starlette.requests import HTTPConnection

from .config import get_settings

# EdgeGeo field -> request header carrying it
GEO_HEADERS = {
    "timezone": "cloudfront-viewer-time-zone",
    "city": "cloudfront-viewer-city",
    "country": "cloudfront-viewer-country",
    "region": "cloudfront-viewer-country-region-name",
    "region_code": "cloudfront-viewer-country-region",
    "colo": "x-amz-cf-pop",
    "latitude": "cloudfront-viewer-latitude",
    "longitude": "cloudfront-viewer-longitude",
}

# Set by the distribution as a custom origin header (see deploy/stack.py)
ORIGIN_VERIFY_HEADER = "x-origin-verify"

# Viewer headers the distribution must pass through to the app. Origin is
# needed for the trusted-origin check; without it every POST looks like a
# non-browser client.
ORIGIN_REQUEST_HEADERS = (
    "Origin",
    "User-Agent",
    "CloudFront-Viewer-Address",
    "CloudFront-Viewer-Time-Zone",
    "CloudFront-Viewer-City",
    "CloudFront-Viewer-Country",
    "CloudFront-Viewer-Country-Region",
    "CloudFront-Viewer-Country-Region-Name",
    "CloudFront-Viewer-Latitude",
    "CloudFront-Viewer-Longitude",
)


class EdgeGeo(BaseModel):
    """Snapshot of the edge location metadata for one request.

    Values are kept as the strings the edge sent; nothing is parsed.
    """

    model_config = ConfigDict(frozen=True)

    timezone: str | None = None
    city: str | None = None
    country: str | None = None
    region: str | None = None
    region_code: str | None = None
    colo: str | None = None
    latitude: str | None = None
    longitude: str | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> EdgeGeo | None:
        """Build a snapshot from edge headers, or None if the edge sent none."""
        values = {field: headers.get(name) for field, name in GEO_HEADERS.items()}
        if all(v is None for v in values.values()):
            return None
        return cls(**values)


class PlatformContext(BaseModel):
    """Bindings and edge metadata available while handling one request."""

    model_config = ConfigDict(frozen=True)

    env: Mapping[str, Any]
    cf: EdgeGeo | None = None
    ip: str | None = None

    @classmethod
    def from_environ(cls) -> PlatformContext:
        """Context for code running outside any request (CLI, singleton)."""
        return cls(env=dict(os.environ))

    @classmethod
    def from_request(cls, conn: HTTPConnection) -> PlatformContext:
        event = conn.scope.get("aws.event") or {}
        env: dict[str, Any] = dict(os.environ)
        env.update(event.get("stageVariables") or {})
        return cls(
            env=env,
            cf=EdgeGeo.from_headers(conn.headers),
            ip=client_ip(conn),
        )


def client_ip(conn: HTTPConnection, origin_secret: str | None = None) -> str | None:
    """Caller IP for rate limiting and session records.

    ``CloudFront-Viewer-Address`` is only believed when the request also
    carries the ``X-Origin-Verify`` value our distribution injects; anyone
    reaching API Gateway directly can set that header themselves. Otherwise
    the socket peer is used, which Mangum fills from the API Gateway
    ``requestContext`` source IP. ``X-Forwarded-For`` is never consulted.
    """
    if origin_secret is None:
        origin_secret = get_settings().edge_origin_secret
    viewer = conn.headers.get("cloudfront-viewer-address")
    if viewer and from_edge(conn, origin_secret):
        # "203.0.113.7:46532" or "[2001:db8::1]:46532"
        host, _, _port = viewer.rpartition(":")
        return host.strip("[]") or viewer
    if conn.client:
        return conn.client.host
    return None


def from_edge(conn: HTTPConnection, origin_secret: str) -> bool:
    """True if the request came through our CloudFront distribution."""
    presented = conn.headers.get(ORIGIN_VERIFY_HEADER)
    if not origin_secret or not presented:
        return False
    return secrets.compare_digest(presented.encode(), origin_secret.encode())
