from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from .discord_rest import DiscordRest
from .errors import CommandNotFoundError, DiscordAPIError, NotReadyError

logger = logging.getLogger(__name__)

# Discord interaction type for a slash command invocation
APPLICATION_COMMAND = 2


@dataclass(frozen=True)
class CommandDescriptor:
    id: str
    type: int
    name: str
    version: str

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "CommandDescriptor":
        return cls(
            id=str(raw.get("id")),
            type=int(raw.get("type") or 1),
            name=str(raw.get("name") or ""),
            version=str(raw.get("version") or ""),
        )


class ChannelValidator(Protocol):
    async def resolve_text_channel(self, guild_id: str, channel_id: str) -> Any: ...


# ---------------------------------------------------------------------
# Gateway session readiness
# ---------------------------------------------------------------------

class SessionGate:
    """
    Single-resolution signal for the bot's gateway session id.

    Relays requested before the first READY wait here instead of failing.
    Later marks (shard ready / resume) only refresh the id that is handed out.
    """

    def __init__(self, probe: Optional[Callable[[], Optional[str]]] = None) -> None:
        self.probe = probe
        self._session_id: Optional[str] = None
        self._waiter: Optional[asyncio.Future] = None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def is_ready(self) -> bool:
        return self._session_id is not None

    def mark(self, session_id: Optional[str]) -> None:
        if not session_id:
            return
        self._session_id = str(session_id)
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(self._session_id)

    async def wait(self, timeout: Optional[float] = None) -> str:
        if self._session_id:
            return self._session_id

        if self.probe is not None:
            self.mark(self.probe())
            if self._session_id:
                return self._session_id

        if self._waiter is None:
            self._waiter = asyncio.get_running_loop().create_future()

        try:
            await asyncio.wait_for(asyncio.shield(self._waiter), timeout)
        except asyncio.TimeoutError:
            raise NotReadyError("Bot gateway session not ready yet", status=503) from None

        # mark() may have refreshed the id after the first resolution
        return self._session_id or self._waiter.result()


# ---------------------------------------------------------------------
# External command lookup
# ---------------------------------------------------------------------

class CommandResolver:
    """
    Finds the relayed command's descriptor (guild scope first, then global).

    First resolution wins for the process lifetime: no TTL, no refresh.
    """

    def __init__(self, rest: DiscordRest, application_id: str, command_name: str) -> None:
        self.rest = rest
        self.application_id = str(application_id)
        self.command_name = command_name
        self._cache: Dict[str, CommandDescriptor] = {}

    def cached(self, guild_id: str) -> Optional[CommandDescriptor]:
        return self._cache.get(str(guild_id))

    async def _list_or_empty(self, coro) -> List[Dict[str, Any]]:
        try:
            return await coro
        except DiscordAPIError as e:
            if e.status == 404:
                return []
            raise

    async def fetch(self, guild_id: str) -> CommandDescriptor:
        gid = str(guild_id)
        hit = self._cache.get(gid)
        if hit is not None:
            return hit

        commands = await self._list_or_empty(self.rest.list_guild_commands(self.application_id, gid))
        if not commands:
            commands = await self._list_or_empty(self.rest.list_global_commands(self.application_id))

        wanted = self.command_name.lower()
        match = next(
            (c for c in commands if isinstance(c, dict) and str(c.get("name") or "").lower() == wanted),
            None,
        )
        if match is None:
            raise CommandNotFoundError(
                f"Command {self.command_name} not found for application {self.application_id}"
            )

        descriptor = CommandDescriptor.from_api(match)
        self._cache[gid] = descriptor
        logger.info("Resolved /%s for guild %s (command id=%s)", descriptor.name, gid, descriptor.id)
        return descriptor


# ---------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------

def build_interaction_payload(
    *,
    application_id: str,
    guild_id: str,
    channel_id: str,
    session_id: str,
    command: CommandDescriptor,
    nonce: str,
) -> Dict[str, Any]:
    return {
        "type": APPLICATION_COMMAND,
        "application_id": str(application_id),
        "guild_id": str(guild_id),
        "channel_id": str(channel_id),
        "session_id": session_id,
        "nonce": nonce,
        "data": {
            "id": command.id,
            "type": command.type,
            "name": command.name,
            "version": command.version,
            "options": [],
            "attachments": [],
        },
    }


class RelayExecutor:
    def __init__(
        self,
        rest: DiscordRest,
        resolver: CommandResolver,
        gate: SessionGate,
        *,
        session_timeout: Optional[float] = 30.0,
        channel_validator: Optional[ChannelValidator] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.rest = rest
        self.resolver = resolver
        self.gate = gate
        self.session_timeout = session_timeout
        self.channel_validator = channel_validator
        self._clock = clock

    def _nonce(self) -> str:
        return str(int(self._clock() * 1000))

    async def execute(self, guild_id: str, channel_id: str) -> None:
        session_id = await self.gate.wait(self.session_timeout)

        if self.channel_validator is not None:
            await self.channel_validator.resolve_text_channel(str(guild_id), str(channel_id))

        command = await self.resolver.fetch(guild_id)
        payload = build_interaction_payload(
            application_id=self.resolver.application_id,
            guild_id=guild_id,
            channel_id=channel_id,
            session_id=session_id,
            command=command,
            nonce=self._nonce(),
        )
        await self.rest.create_interaction(payload)


__all__ = [
    "APPLICATION_COMMAND",
    "ChannelValidator",
    "CommandDescriptor",
    "CommandResolver",
    "RelayExecutor",
    "SessionGate",
    "build_interaction_payload",
]
