from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Set

from fastapi import Request

from ..config import Settings
from ..service import BumpService
from ..sessions import SessionRecord, SessionStore

SESSION_KEY = "sid"


class GuildDirectory(Protocol):
    """What the dashboard needs from the bot."""

    def guild_ids(self) -> Set[str]: ...

    async def list_text_channels(self, guild_id: str) -> List[Dict[str, str]]: ...


class LoginRequired(Exception):
    """Raised by login_required; the app turns it into a redirect to /login."""


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_service(request: Request) -> BumpService:
    return request.app.state.service


def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_guilds(request: Request) -> Optional[GuildDirectory]:
    return request.app.state.guilds


def current_session(request: Request) -> Optional[SessionRecord]:
    return get_sessions(request).get(request.session.get(SESSION_KEY))


def login_required(request: Request) -> SessionRecord:
    record = current_session(request)
    if record is None:
        raise LoginRequired()
    return record
