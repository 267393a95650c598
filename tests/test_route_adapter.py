"""Tests for the /api/auth route adapter."""

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.responses import JSONResponse


def _fake_auth(label: str) -> MagicMock:
    auth = MagicMock()
    auth.handler = AsyncMock(return_value=JSONResponse({"served_by": label}))
    return auth


def test_get_and_post_each_build_their_own_instance(client):
    instances = [_fake_auth("first"), _fake_auth("second")]
    with patch(
        "edge_auth.routes.auth.get_auth_for_request",
        new_callable=AsyncMock,
        side_effect=instances,
    ) as factory:
        get_resp = client.get("/api/auth/get-session")
        post_resp = client.post("/api/auth/sign-out")

    assert factory.await_count == 2
    assert get_resp.json() == {"served_by": "first"}
    assert post_resp.json() == {"served_by": "second"}
    instances[0].handler.assert_awaited_once()
    instances[1].handler.assert_awaited_once()


def test_adapter_passes_the_incoming_request(client):
    auth = _fake_auth("only")
    with patch("edge_auth.routes.auth.get_auth_for_request", new_callable=AsyncMock, return_value=auth):
        client.post("/api/auth/sign-in/email-otp?x=1", json={"email": "a@b.co"})

    request = auth.handler.await_args.args[0]
    assert request.url.path == "/api/auth/sign-in/email-otp"
    assert request.method == "POST"


def test_adapter_marks_responses_no_store(client):
    with patch(
        "edge_auth.routes.auth.get_auth_for_request",
        new_callable=AsyncMock,
        return_value=_fake_auth("x"),
    ):
        resp = client.get("/api/auth/ok")
    assert resp.headers["cache-control"].startswith("no-store")


def test_ui_session_cookie_not_set_on_api_paths(client):
    resp = client.get("/api/auth/ok")
    assert "edge_auth_ui" not in resp.headers.get("set-cookie", "")
