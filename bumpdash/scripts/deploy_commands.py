"""
Register the /bump slash command with Discord.

Usage:
  python -m bumpdash.scripts.deploy_commands

GUILD_ID set   -> guild-scoped (shows up instantly)
GUILD_ID unset -> global (may take up to an hour to appear)
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from ..config import Settings, settings
from ..discord_rest import DiscordRest

logger = logging.getLogger(__name__)

# Discord option / channel type constants
OPTION_CHANNEL = 7
GUILD_TEXT = 0

COMMANDS: List[Dict[str, Any]] = [
    {
        "name": "bump",
        "description": "Trigger the Disboard bump command in a channel.",
        "type": 1,
        "dm_permission": False,
        "options": [
            {
                "type": OPTION_CHANNEL,
                "name": "channel",
                "description": "Channel to trigger the Disboard bump command in.",
                "channel_types": [GUILD_TEXT],
                "required": False,
            }
        ],
    }
]


def commands_path(client_id: str, guild_id: Optional[str]) -> str:
    if guild_id:
        return f"/applications/{client_id}/guilds/{guild_id}/commands"
    return f"/applications/{client_id}/commands"


async def deploy(cfg: Settings, rest: Optional[DiscordRest] = None) -> List[Any]:
    own_rest = rest is None
    client = rest or DiscordRest(cfg.discord_bot_token, base_url=cfg.discord_api_base, timeout=cfg.http_timeout_s)
    try:
        data = await client.request("PUT", commands_path(cfg.client_id, cfg.guild_id), json=COMMANDS)
    finally:
        if own_rest:
            await client.aclose()
    return data if isinstance(data, list) else []


def main() -> None:
    logging.basicConfig(level=getattr(logging, str(settings.log_level).upper(), logging.INFO))

    if not settings.discord_bot_token or not settings.client_id:
        print("Missing env: DISCORD_BOT_TOKEN / CLIENT_ID")
        sys.exit(1)

    try:
        data = asyncio.run(deploy(settings))
    except Exception:
        logger.exception("Deploy failed")
        sys.exit(1)

    if settings.guild_id:
        print(f"Registered {len(data)} command(s) to guild {settings.guild_id}")
    else:
        print(f"Registered {len(data)} global command(s)")
        print("Global commands may take up to 1 hour to appear.")


if __name__ == "__main__":
    main()
