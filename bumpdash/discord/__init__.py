"""
Discord integration package.

Design goals:
- Keep bumpdash.discord.bot as the stable entrypoint (BumpBot).
- Slash commands live in bumpdash.discord.commands.* and register against the bot's tree.
"""

from .bot import BumpBot  # re-export for convenience

__all__ = ["BumpBot"]
