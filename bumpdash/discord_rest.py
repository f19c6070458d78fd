from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import DISCORD_API_BASE
from .errors import DiscordAPIError

logger = logging.getLogger(__name__)

# NOTE:
# Keep this module dependency-light (no discord import).
# discord.py has its own HTTP client for the gateway side; every REST call the
# relay path makes goes through DiscordRest so errors are shaped the same way.

DEFAULT_UA = "DiscordBot (bumpdash, 1.0)"


def _safe_json(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return None


def _error_from_response(r: httpx.Response) -> DiscordAPIError:
    body = _safe_json(r)
    message = ""
    code = None
    if isinstance(body, dict):
        message = str(body.get("message") or "")
        raw_code = body.get("code")
        if isinstance(raw_code, int):
            code = raw_code
    if not message:
        message = (r.text or "").strip()[:500] or f"Discord API returned HTTP {r.status_code}"
    return DiscordAPIError(message, status=r.status_code, code=code, body=body)


class DiscordRest:
    """
    Thin async client for the Discord REST API, authenticated as the bot.

    All methods raise DiscordAPIError on non-2xx responses or transport failures.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DISCORD_API_BASE,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        limits = httpx.Limits(max_connections=25, max_keepalive_connections=10)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=float(timeout),
            headers={
                "Authorization": f"Bot {token}",
                "User-Agent": DEFAULT_UA,
            },
            limits=limits,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        m = (method or "GET").strip().upper()
        p = path if (path or "").startswith("/") else f"/{path}"

        try:
            r = await self._client.request(m, p, json=json, params=params)
        except httpx.TimeoutException as e:
            raise DiscordAPIError("Request timed out contacting Discord.", status=408) from e
        except httpx.RequestError as e:
            raise DiscordAPIError(f"Network error contacting Discord: {e}", status=503) from e

        if r.status_code >= 400:
            err = _error_from_response(r)
            logger.debug("Discord %s %s -> %s %s", m, p, r.status_code, err.message)
            raise err

        if r.status_code == 204 or not r.content:
            return None
        return _safe_json(r)

    # -------------------------
    # Endpoints used by the relay
    # -------------------------

    async def list_guild_commands(self, application_id: str, guild_id: str) -> List[Dict[str, Any]]:
        data = await self.request("GET", f"/applications/{application_id}/guilds/{guild_id}/commands")
        return data if isinstance(data, list) else []

    async def list_global_commands(self, application_id: str) -> List[Dict[str, Any]]:
        data = await self.request("GET", f"/applications/{application_id}/commands")
        return data if isinstance(data, list) else []

    async def create_interaction(self, payload: Dict[str, Any]) -> Any:
        return await self.request("POST", "/interactions", json=payload)


__all__ = ["DEFAULT_UA", "DiscordRest"]
