from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import bump

if TYPE_CHECKING:
    import discord
    from discord import app_commands

logger = logging.getLogger(__name__)

__all__ = ["register_all"]


def register_all(bot: "discord.Client", tree: "app_commands.CommandTree") -> None:
    """
    Attach the bot's slash commands to its CommandTree.

    A failure here is fatal: a bot without /bump has nothing to offer.
    """
    bump.register(bot, tree)
    names = sorted(cmd.name for cmd in tree.get_commands())
    logger.info("discord commands registered: %s", ", ".join(names))
