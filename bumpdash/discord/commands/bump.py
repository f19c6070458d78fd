from __future__ import annotations

import logging
from typing import Any, Optional

import discord
from discord import app_commands

from ...errors import COOLDOWN_MESSAGE, is_cooldown, normalize_discord_error
from ...service import BumpService

logger = logging.getLogger(__name__)

NOT_IN_GUILD = "This command can only be used inside a server."
NO_CHANNEL = (
    "No bump channel configured for this server. "
    "Set one from the dashboard or provide a channel option."
)


def failure_reply(exc: BaseException) -> str:
    if is_cooldown(exc):
        return COOLDOWN_MESSAGE
    _, message = normalize_discord_error(exc)
    return message or "Failed to execute bump command."


async def handle_bump(service: BumpService, interaction: Any, channel: Optional[Any]) -> None:
    """
    /bump body, kept separate from the decorator so it can be driven without a gateway.
    """
    if not interaction.guild_id:
        await interaction.response.send_message(NOT_IN_GUILD, ephemeral=True)
        return

    guild_id = str(interaction.guild_id)
    requested = str(channel.id) if channel is not None else None
    target = service.target_channel(guild_id, requested)
    if not target:
        await interaction.response.send_message(NO_CHANNEL, ephemeral=True)
        return

    await interaction.response.defer(ephemeral=True)

    try:
        await service.trigger(guild_id, target)
    except Exception as exc:
        logger.exception("Slash bump failed (guild %s channel %s)", guild_id, target)
        await interaction.edit_original_response(content=failure_reply(exc))
        return

    await interaction.edit_original_response(content=f"Triggered /{service.command_name} in <#{target}>!")


def register(bot: "discord.Client", tree: "app_commands.CommandTree") -> None:
    """
    /bump [channel] relays the external bump command right now.
    """
    service: BumpService = getattr(bot, "service")

    @tree.command(name="bump", description="Trigger the Disboard bump command in a channel.")
    @app_commands.describe(channel="Channel to trigger the Disboard bump command in.")
    @app_commands.guild_only()
    async def bump(interaction: discord.Interaction, channel: Optional[discord.TextChannel] = None) -> None:
        await handle_bump(service, interaction, channel)
