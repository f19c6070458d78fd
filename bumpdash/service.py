from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .config import Settings
from .discord_rest import DiscordRest
from .errors import NotReadyError
from .relay import ChannelValidator, CommandResolver, RelayExecutor, SessionGate
from .scheduler import LOG_AND_SKIP, FailurePolicy, GuildScheduler, Sleep
from .store import ConfigStore, GuildConfig

logger = logging.getLogger(__name__)


class BumpService:
    """
    Process-scoped owner of all relay state:
      - config store (guild -> GuildConfig, mirrored to disk)
      - scheduler (guild -> repeating task)
      - command resolver cache
      - gateway session gate

    Created once at boot and handed to both the web app (app.state.service)
    and the bot. Nothing here is a module global.
    """

    def __init__(
        self,
        settings: Settings,
        store: ConfigStore,
        rest: DiscordRest,
        *,
        gate: Optional[SessionGate] = None,
        channel_validator: Optional[ChannelValidator] = None,
        policy: FailurePolicy = LOG_AND_SKIP,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.store = store
        self.rest = rest
        self.gate = gate or SessionGate()
        self.resolver = CommandResolver(rest, settings.bump_application_id, settings.bump_command_name)
        self.executor = RelayExecutor(
            rest,
            self.resolver,
            self.gate,
            session_timeout=settings.session_ready_timeout_s,
            channel_validator=channel_validator,
        )
        self.scheduler = GuildScheduler(
            self._stored_interval,
            self.send_bump,
            default_minutes=settings.default_interval_minutes,
            policy=policy,
            sleep=sleep,
        )
        self._started = False

    @property
    def command_name(self) -> str:
        return self.settings.bump_command_name

    @property
    def channel_validator(self) -> Optional[ChannelValidator]:
        return self.executor.channel_validator

    def attach_channel_validator(self, validator: Optional[ChannelValidator]) -> None:
        self.executor.channel_validator = validator

    def _stored_interval(self, guild_id: str) -> Any:
        cfg = self.store.get(guild_id)
        return cfg.interval_minutes if cfg is not None else None

    # -------------------------
    # Lifecycle
    # -------------------------

    def start(self) -> int:
        """
        Arm a timer for every configured guild. Idempotent; only the first call arms.
        """
        if self._started:
            return 0
        self._started = True
        for gid in self.store.guild_ids():
            self.scheduler.schedule(gid)
        return len(self.scheduler)

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        self._started = False

    # -------------------------
    # Config mutations
    # -------------------------

    async def validate_channel(self, guild_id: str, channel_id: str) -> Any:
        validator = self.executor.channel_validator
        if validator is None:
            raise NotReadyError("Bot is not connected yet.", status=503)
        return await validator.resolve_text_channel(str(guild_id), str(channel_id))

    async def save_config(
        self,
        guild_id: str,
        channel_id: str,
        *,
        interval_minutes: Any = None,
        message: Any = None,
    ) -> GuildConfig:
        await self.validate_channel(guild_id, channel_id)
        cfg = self.store.upsert(
            str(guild_id),
            channel_id=str(channel_id),
            interval_minutes=interval_minutes,
            message=message,
            default_interval=self.settings.default_interval_minutes,
        )
        self.scheduler.schedule(str(guild_id))
        return cfg

    def remove_config(self, guild_id: str) -> bool:
        existed = self.store.remove(str(guild_id))
        self.scheduler.unschedule(str(guild_id))
        return existed

    # -------------------------
    # Relay
    # -------------------------

    def target_channel(self, guild_id: str, requested: Optional[str] = None) -> Optional[str]:
        if requested:
            return str(requested)
        cfg = self.store.get(guild_id)
        return cfg.channel_id if cfg is not None and cfg.channel_id else None

    async def trigger(self, guild_id: str, channel_id: str) -> None:
        await self.executor.execute(str(guild_id), str(channel_id))

    async def send_bump(self, guild_id: str) -> None:
        """
        Timer callback. Errors propagate to the scheduler's FailurePolicy.
        """
        cfg = self.store.get(guild_id)
        if cfg is None or not cfg.channel_id:
            return
        await self.executor.execute(str(guild_id), cfg.channel_id)
        logger.info(
            "[AUTO] Triggered /%s for guild %s channel %s",
            self.command_name,
            guild_id,
            cfg.channel_id,
        )


__all__ = ["BumpService"]
