from __future__ import annotations

from html import escape
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from ..sessions import SessionRecord
from .deps import current_session, login_required

router = APIRouter(tags=["pages"])

# Minimal shell. The real dashboard front-end talks to /api/* directly.
_PAGE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<header><strong>bumpdash</strong> {nav}</header>
<main>{body}</main>
</body>
</html>
"""


def _render(title: str, body: str, record: Optional[SessionRecord]) -> HTMLResponse:
    if record is not None:
        name = escape(str(record.user.get("username") or ""))
        nav = f'<span>{name}</span> <a href="/dashboard">Dashboard</a> <a href="/logout">Log out</a>'
    else:
        nav = '<a href="/login">Log in with Discord</a>'
    nav += ' <a href="/terms">Terms</a> <a href="/privacy">Privacy</a>'
    return HTMLResponse(_PAGE.format(title=escape(title), nav=nav, body=body))


@router.get("/", response_class=HTMLResponse)
async def landing(request: Request):
    return _render(
        "bumpdash",
        "<p>Keep your server bumped on a schedule. Log in to pick a channel and an interval.</p>",
        current_session(request),
    )


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(record: SessionRecord = Depends(login_required)):
    return _render(
        "Dashboard",
        '<p>Your servers: <a href="/api/guilds">/api/guilds</a></p>',
        record,
    )


@router.get("/terms", response_class=HTMLResponse)
async def terms(request: Request):
    return _render(
        "Terms of Service",
        "<h1>Terms of Service</h1>"
        "<p>bumpdash runs the bump command of another bot in channels you choose, "
        "on the schedule you set. You are responsible for following Discord's Terms "
        "and the rules of the bump service you relay.</p>"
        "<p>The service is provided as is, with no guarantee of uptime.</p>",
        current_session(request),
    )


@router.get("/privacy", response_class=HTMLResponse)
async def privacy(request: Request):
    return _render(
        "Privacy Policy",
        "<h1>Privacy Policy</h1>"
        "<p>Stored per server: the bump channel id, interval and message.</p>"
        "<p>While you are logged in, your Discord user id, username and server list "
        "are kept in memory to build the dashboard. They are dropped on logout, "
        "on session expiry or when the service restarts.</p>",
        current_session(request),
    )
