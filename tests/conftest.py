from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from bumpdash.config import Settings
from bumpdash.discord_rest import DiscordRest
from bumpdash.errors import ChannelValidationError
from bumpdash.relay import SessionGate
from bumpdash.service import BumpService
from bumpdash.store import ConfigStore

APP_ID = "302050872383242240"

_GUILD_COMMANDS = re.compile(r"/applications/(\d+)/guilds/(\d+)/commands$")
_GLOBAL_COMMANDS = re.compile(r"/applications/(\d+)/commands$")


def bump_command(**overrides: Any) -> Dict[str, Any]:
    cmd = {"id": "947088344167366698", "type": 1, "name": "bump", "version": "1051151064008769576"}
    cmd.update(overrides)
    return cmd


class FakeDiscord:
    """In-process stand-in for the Discord REST API (httpx.MockTransport handler)."""

    def __init__(self) -> None:
        self.guild_commands: Dict[str, List[Dict[str, Any]]] = {}
        self.global_commands: List[Dict[str, Any]] = []
        self.guild_status: Optional[int] = None
        self.interaction_status = 204
        self.interaction_body: Any = None
        self.calls: List[Tuple[str, str]] = []
        self.interactions: List[Dict[str, Any]] = []
        self.puts: List[Tuple[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))

        if request.method == "POST" and path.endswith("/interactions"):
            self.interactions.append(json.loads(request.content))
            if self.interaction_body is not None:
                return httpx.Response(self.interaction_status, json=self.interaction_body)
            return httpx.Response(self.interaction_status)

        if request.method == "PUT":
            body = json.loads(request.content)
            self.puts.append((path, body))
            return httpx.Response(200, json=body)

        m = _GUILD_COMMANDS.search(path)
        if m:
            if self.guild_status is not None:
                return httpx.Response(self.guild_status, json={"message": "Missing Access", "code": 50001})
            return httpx.Response(200, json=self.guild_commands.get(m.group(2), []))

        if _GLOBAL_COMMANDS.search(path):
            return httpx.Response(200, json=self.global_commands)

        return httpx.Response(404, json={"message": "404: Not Found", "code": 0})

    def count(self, suffix: str) -> int:
        return sum(1 for _, p in self.calls if p.endswith(suffix))


class FakeValidator:
    """Stands in for the bot's channel checks."""

    def __init__(self, bad_channels: Optional[Dict[str, str]] = None) -> None:
        self.bad_channels = bad_channels or {}
        self.calls: List[Tuple[str, str]] = []

    async def resolve_text_channel(self, guild_id: str, channel_id: str) -> Any:
        self.calls.append((guild_id, channel_id))
        if channel_id in self.bad_channels:
            raise ChannelValidationError(self.bad_channels[channel_id])
        return {"id": channel_id}


class FakeDirectory(FakeValidator):
    def __init__(self, guild_ids=(), channels: Optional[Dict[str, List[Dict[str, str]]]] = None, **kw: Any) -> None:
        super().__init__(**kw)
        self._guild_ids = set(guild_ids)
        self.channels = channels or {}

    def guild_ids(self):
        return set(self._guild_ids)

    async def list_text_channels(self, guild_id: str):
        if guild_id not in self.channels:
            raise ChannelValidationError("Bot is not in this guild or cannot access it.")
        return self.channels[guild_id]


class ManualSleep:
    """
    Replacement for asyncio.sleep in timers: records the requested delay and
    blocks until the test calls fire().
    """

    def __init__(self) -> None:
        self.durations: List[float] = []
        self._pending: List[asyncio.Future] = []

    async def __call__(self, seconds: float) -> None:
        self.durations.append(seconds)
        fut = asyncio.get_running_loop().create_future()
        self._pending.append(fut)
        await fut

    async def fire(self, rounds: int = 1) -> None:
        for _ in range(rounds):
            pending, self._pending = self._pending, []
            for f in pending:
                if not f.done():
                    f.set_result(None)
            for _ in range(10):
                await asyncio.sleep(0)


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "DISCORD_BOT_TOKEN": "bot-token",
        "CLIENT_ID": "111111111111111111",
        "CLIENT_SECRET": "client-secret",
        "SESSION_SECRET": "test-session-secret",
        "CONFIG_PATH": str(tmp_path / "configs.json"),
        "DEFAULT_INTERVAL_MINUTES": 120,
        "SESSION_READY_TIMEOUT": 1,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def discord_api() -> FakeDiscord:
    fake = FakeDiscord()
    fake.guild_commands["1"] = [bump_command()]
    return fake


@pytest.fixture
def rest(discord_api: FakeDiscord) -> DiscordRest:
    return DiscordRest("bot-token", transport=httpx.MockTransport(discord_api.handler))


@pytest.fixture
def manual_sleep() -> ManualSleep:
    return ManualSleep()


@pytest.fixture
def validator() -> FakeValidator:
    return FakeValidator(bad_channels={"404": "Selected channel is not a text channel."})


@pytest.fixture
def service(settings: Settings, rest: DiscordRest, validator: FakeValidator, manual_sleep: ManualSleep) -> BumpService:
    gate = SessionGate()
    gate.mark("gateway-session")
    return BumpService(
        settings,
        ConfigStore.load(settings.config_path),
        rest,
        gate=gate,
        channel_validator=validator,
        sleep=manual_sleep,
    )
