from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from ..config import Settings
from ..errors import RelayError, classify_failure, normalize_discord_error
from ..service import BumpService
from ..sessions import SessionRecord
from .auth import build_invite_url
from .deps import GuildDirectory, get_guilds, get_service, get_settings, login_required

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["dashboard"])

MANAGE_GUILD = 0x20

STORAGE_ERROR = "Failed to write the configuration file."


# -------------------------
# Schemas
# -------------------------

def _opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


class SaveRequest(BaseModel):
    guildId: Optional[str] = None
    channelId: Optional[str] = None
    # Raw on purpose: zero / junk falls back to the default interval
    intervalMinutes: Any = None
    message: Any = None

    @field_validator("guildId", "channelId", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> Optional[str]:
        return _opt_str(v)


class RemoveRequest(BaseModel):
    guildId: Optional[str] = None

    @field_validator("guildId", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> Optional[str]:
        return _opt_str(v)


class BumpRequest(BaseModel):
    guildId: Optional[str] = None
    channelId: Optional[str] = None

    @field_validator("guildId", "channelId", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> Optional[str]:
        return _opt_str(v)


# -------------------------
# Helpers
# -------------------------

def _can_manage(guild: Dict[str, Any]) -> bool:
    if guild.get("owner"):
        return True
    try:
        perms = int(guild.get("permissions") or 0)
    except (TypeError, ValueError):
        return False
    return (perms & MANAGE_GUILD) == MANAGE_GUILD


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


# -------------------------
# Routes
# -------------------------

@router.get("/guilds")
async def list_guilds(
    session: SessionRecord = Depends(login_required),
    service: BumpService = Depends(get_service),
    directory: Optional[GuildDirectory] = Depends(get_guilds),
    settings: Settings = Depends(get_settings),
):
    """
    The user's guilds they can manage (owner or MANAGE_GUILD), flagged with bot presence.
    """
    try:
        bot_guild_ids = directory.guild_ids() if directory is not None else set()
    except Exception as e:
        logger.exception("Listing bot guilds failed")
        status, message = normalize_discord_error(e)
        return _error(status, message)

    manageable: List[Dict[str, Any]] = []
    for g in session.guilds:
        if not isinstance(g, dict) or not _can_manage(g):
            continue
        gid = str(g.get("id"))
        manageable.append(
            {
                "id": gid,
                "name": g.get("name"),
                "icon": g.get("icon"),
                "hasBot": gid in bot_guild_ids,
                "inviteUrl": build_invite_url(settings.client_id, gid),
            }
        )

    return {"guilds": manageable, "config": service.store.to_json()}


@router.get("/channels")
async def list_channels(
    guild_id: Optional[str] = None,
    _: SessionRecord = Depends(login_required),
    directory: Optional[GuildDirectory] = Depends(get_guilds),
):
    if not guild_id:
        return _error(400, "guild_id required")
    if directory is None:
        return _error(503, "Bot is not connected yet.")

    try:
        channels = await directory.list_text_channels(guild_id)
    except Exception as e:
        logger.exception("Listing channels failed for guild %s", guild_id)
        status, message = normalize_discord_error(e)
        return _error(status, message)

    return {"channels": channels}


@router.post("/save")
async def save(
    body: SaveRequest,
    _: SessionRecord = Depends(login_required),
    service: BumpService = Depends(get_service),
):
    if not body.guildId or not body.channelId:
        return _error(400, "guildId and channelId required")

    try:
        cfg = await service.save_config(
            body.guildId,
            body.channelId,
            interval_minutes=body.intervalMinutes,
            message=body.message,
        )
    except RelayError as e:
        status, message = normalize_discord_error(e, 400)
        return _error(status, message)
    except OSError:
        logger.exception("Saving config failed for guild %s", body.guildId)
        return _error(500, STORAGE_ERROR)

    return {"ok": True, "config": cfg.to_json()}


@router.post("/remove")
async def remove(
    body: RemoveRequest,
    _: SessionRecord = Depends(login_required),
    service: BumpService = Depends(get_service),
):
    if not body.guildId:
        return _error(400, "guildId required")

    try:
        service.remove_config(body.guildId)
    except OSError:
        logger.exception("Removing config failed for guild %s", body.guildId)
        return _error(500, STORAGE_ERROR)
    return {"ok": True}


@router.post("/bump")
async def bump_now(
    body: BumpRequest,
    _: SessionRecord = Depends(login_required),
    service: BumpService = Depends(get_service),
):
    if not body.guildId:
        return _error(400, "guildId required")

    channel_id = service.target_channel(body.guildId, body.channelId)
    if not channel_id:
        return _error(400, "No channel provided or configured for this guild.")

    try:
        await service.trigger(body.guildId, channel_id)
    except Exception as e:
        logger.exception("Manual bump failed (guild %s channel %s)", body.guildId, channel_id)
        failure = classify_failure(e)
        return JSONResponse(
            status_code=failure.status,
            content={
                "ok": False,
                "cooldown": failure.cooldown,
                "error": failure.message,
                "embed": {
                    "title": "Cooldown Active" if failure.cooldown else "Bump command failed",
                    "description": failure.message,
                },
            },
        )

    return {"ok": True, "message": "Bump command executed successfully!"}
