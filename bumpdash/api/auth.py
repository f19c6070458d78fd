from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from ..config import Settings
from ..sessions import SessionRecord
from .deps import SESSION_KEY, get_sessions, get_settings, login_required

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

OAUTH_AUTHORIZE = "https://discord.com/api/oauth2/authorize"
OAUTH_TOKEN = "https://discord.com/api/oauth2/token"

# View Channels (1024), Send Messages (2048), Read Message History (65536),
# Use Application Commands (2147483648)
BOT_PERMISSIONS = 1024 + 2048 + 65536 + 2147483648


def build_invite_url(client_id: str, guild_id: Optional[str] = None) -> str:
    params: Dict[str, str] = {
        "client_id": client_id,
        "scope": "bot applications.commands",
        "permissions": str(BOT_PERMISSIONS),
    }
    if guild_id:
        params["guild_id"] = str(guild_id)
        params["disable_guild_select"] = "true"
    return f"{OAUTH_AUTHORIZE}?{urlencode(params)}"


def build_login_url(settings: Settings) -> str:
    params = {
        "client_id": settings.client_id,
        "response_type": "code",
        "redirect_uri": settings.redirect_uri,
        "scope": "identify guilds",
        "prompt": "consent",
    }
    return f"{OAUTH_AUTHORIZE}?{urlencode(params)}"


async def _exchange_code(http: httpx.AsyncClient, settings: Settings, code: str) -> Dict[str, Any]:
    r = await http.post(
        OAUTH_TOKEN,
        data={
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": settings.redirect_uri,
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    tokens = r.json()
    if r.status_code >= 400 or not isinstance(tokens, dict):
        raise RuntimeError(f"token exchange failed ({r.status_code}): {tokens}")
    return tokens


async def _get_as_user(http: httpx.AsyncClient, settings: Settings, path: str, access_token: str) -> Any:
    r = await http.get(
        f"{settings.discord_api_base}{path}",
        headers={"Authorization": f"Bearer {access_token}"},
    )
    r.raise_for_status()
    return r.json()


@router.get("/login")
async def login(settings: Settings = Depends(get_settings)):
    return RedirectResponse(build_login_url(settings), status_code=302)


@router.get("/callback")
async def callback(request: Request, code: Optional[str] = None, settings: Settings = Depends(get_settings)):
    if not code:
        return PlainTextResponse("Missing code", status_code=400)

    http: httpx.AsyncClient = request.app.state.http
    try:
        tokens = await _exchange_code(http, settings, code)
        access_token = str(tokens.get("access_token") or "")
        user = await _get_as_user(http, settings, "/users/@me", access_token)
        guilds = await _get_as_user(http, settings, "/users/@me/guilds", access_token)
        if not isinstance(user, dict) or not user.get("id"):
            raise RuntimeError(f"unexpected /users/@me payload: {user!r}")
        record = SessionRecord(
            user={"id": str(user["id"]), "username": user.get("username")},
            tokens=tokens,
            guilds=guilds if isinstance(guilds, list) else [],
        )
    except Exception:
        logger.exception("OAuth failed")
        return PlainTextResponse("OAuth error", status_code=500)

    sessions = get_sessions(request)
    sessions.destroy(request.session.get(SESSION_KEY))
    request.session[SESSION_KEY] = sessions.create(record)
    logger.info("Dashboard login: %s (%s)", record.user["username"], record.user["id"])
    return RedirectResponse("/dashboard", status_code=302)


@router.get("/logout")
async def logout(request: Request):
    get_sessions(request).destroy(request.session.get(SESSION_KEY))
    request.session.clear()
    return RedirectResponse("/", status_code=302)


@router.get("/invite")
async def invite(
    guild_id: Optional[str] = None,
    _: SessionRecord = Depends(login_required),
    settings: Settings = Depends(get_settings),
):
    return RedirectResponse(build_invite_url(settings.client_id, guild_id), status_code=302)
