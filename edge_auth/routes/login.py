"""Server-rendered login page.

Routes:
  GET  /              -- login form, or the signed-in user
  POST /login/send    -- request a one-time code for the submitted email
  POST /login/verify  -- check the submitted code; signs in on success
  POST /login/reset   -- "Use a different email"
  POST /logout        -- end the auth session

Each POST drives a ``LoginFlow`` restored from the UI session and redirects
back to ``/`` (303), so a browser refresh never resubmits a form. Auth work
goes through a per-request auth instance, like the JSON API.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from ..auth import get_auth_for_request
from ..session import get_ui_session
from ..ui import LoginFlow, ServerAuthClient

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent.parent / "templates"))
router = APIRouter()

FLOW_KEY = "login"


async def _flow(request: Request) -> LoginFlow:
    auth = await get_auth_for_request(request)
    client = ServerAuthClient(auth, request)
    return LoginFlow.from_state(client, get_ui_session(request).get(FLOW_KEY))


def _back_home(request: Request, flow: LoginFlow | None = None) -> RedirectResponse:
    ui = get_ui_session(request)
    if flow is None or flow.reload_requested:
        ui.pop(FLOW_KEY, None)
    else:
        ui[FLOW_KEY] = flow.to_state()
    response = RedirectResponse("/", status_code=303)
    if flow is not None:
        for cookie in flow.set_cookies:
            response.headers.append("set-cookie", cookie)
    return response


@router.get("/", response_class=HTMLResponse)
async def login_page(request: Request):
    flow = await _flow(request)
    current = await flow.client.get_session_state()
    if current.error:
        return templates.TemplateResponse(
            request,
            "login.html",
            {"session_error": current.error.message or "Unknown error"},
            status_code=500,
        )
    user = (current.data or {}).get("user")
    return templates.TemplateResponse(
        request,
        "login.html",
        {"user": user, "flow": flow, "session_error": None},
        headers={"cache-control": "no-store"},
    )


@router.post("/login/send")
async def login_send(request: Request, email: str = Form("")):
    flow = await _flow(request)
    await flow.send_code(email)
    return _back_home(request, flow)


@router.post("/login/verify")
async def login_verify(request: Request, code: str = Form("")):
    flow = await _flow(request)
    await flow.verify_code(code)
    return _back_home(request, flow)


@router.post("/login/reset")
async def login_reset(request: Request):
    flow = await _flow(request)
    flow.reset()
    return _back_home(request, flow)


@router.post("/logout")
async def logout(request: Request):
    auth = await get_auth_for_request(request)
    result = await ServerAuthClient(auth, request).sign_out()
    if result.error:
        logger.info("Sign-out without a session: %s", result.error.message)
    response = _back_home(request)
    for cookie in result.set_cookies:
        response.headers.append("set-cookie", cookie)
    return response
