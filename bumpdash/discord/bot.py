from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set

import discord
from discord import app_commands

from ..errors import ChannelValidationError
from ..service import BumpService
from .commands import register_all

logger = logging.getLogger(__name__)


def is_text_capable(channel: Any) -> bool:
    return isinstance(channel, discord.abc.Messageable)


class BumpBot(discord.Client):
    """
    Gateway side of the relay.

    Notes:
    - The gateway session id is what the relayed interaction acts as; every
      READY / shard READY / RESUME refreshes it on the service's SessionGate.
    - All REST calls for the relay itself go through service.rest (httpx).
      discord.py's own HTTP client is only used for guild/channel lookups here.
    """

    def __init__(self, service: BumpService) -> None:
        intents = discord.Intents.default()
        intents.guilds = True  # no message content needed

        super().__init__(intents=intents)

        self.tree = app_commands.CommandTree(self)
        self.service = service

        service.gate.probe = self.current_session_id
        service.attach_channel_validator(self)

    async def setup_hook(self) -> None:
        # Register slash commands from modular command files.
        # Syncing with Discord is a separate step (bumpdash.scripts.deploy_commands).
        register_all(self, self.tree)

    def current_session_id(self) -> Optional[str]:
        ws = getattr(self, "ws", None)
        if ws is None:
            return None
        return getattr(ws, "session_id", None)

    async def on_ready(self) -> None:
        logger.info("Ready as %s", str(self.user))
        self.service.gate.mark(self.current_session_id())
        armed = self.service.start()
        if armed:
            logger.info("Armed %d guild schedule(s)", armed)

    async def on_shard_ready(self, shard_id: int) -> None:
        self.service.gate.mark(self.current_session_id())

    async def on_resumed(self) -> None:
        self.service.gate.mark(self.current_session_id())

    # -------------------------
    # Lookups used by the dashboard + relay
    # -------------------------

    async def _guild(self, guild_id: str) -> discord.Guild:
        try:
            gid = int(guild_id)
        except (TypeError, ValueError):
            raise ChannelValidationError("Bot is not in this guild or cannot access it.") from None

        guild = self.get_guild(gid)
        if guild is not None:
            return guild
        try:
            return await self.fetch_guild(gid)
        except discord.HTTPException as e:
            raise ChannelValidationError("Bot is not in this guild or cannot access it.") from e

    async def resolve_text_channel(self, guild_id: str, channel_id: str) -> Any:
        guild = await self._guild(guild_id)

        try:
            cid = int(channel_id)
        except (TypeError, ValueError):
            raise ChannelValidationError("Unable to access the selected channel.") from None

        channel = guild.get_channel_or_thread(cid)
        if channel is None:
            try:
                channel = await guild.fetch_channel(cid)
            except discord.HTTPException as e:
                raise ChannelValidationError("Unable to access the selected channel.") from e

        if not is_text_capable(channel):
            raise ChannelValidationError("Selected channel is not a text channel.")
        return channel

    async def list_text_channels(self, guild_id: str) -> List[Dict[str, str]]:
        guild = await self._guild(guild_id)
        channels = await guild.fetch_channels()
        return [
            {"id": str(ch.id), "name": getattr(ch, "name", None) or f"#{ch.id}"}
            for ch in channels
            if ch is not None and is_text_capable(ch)
        ]

    def guild_ids(self) -> Set[str]:
        return {str(g.id) for g in self.guilds}


__all__ = ["BumpBot", "is_text_capable"]
