from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Bumped! 🚀"
MESSAGE_MAX_LEN = 2000


class GuildConfig(BaseModel):
    """
    Per-guild relay settings. Serialized with the camelCase keys the dashboard uses.
    """

    model_config = ConfigDict(populate_by_name=True)

    channel_id: str = Field(alias="channelId")
    interval_minutes: int = Field(alias="intervalMinutes")
    message: str = DEFAULT_MESSAGE

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def parse_minutes(raw: Any) -> Optional[int]:
    """
    Best-effort numeric parse. Returns None for missing / non-numeric / non-finite input.

    Fractions round up to whole minutes ("0.5" -> 1, "5.9" -> 6) so a short
    interval never collapses to 0 and the default.
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return math.ceil(value)


def coerce_interval(raw: Any, default: int) -> int:
    """
    Interval as stored on save: zero / non-numeric falls back to the default.
    Clamping to >= 1 happens when the timer is armed.
    """
    return parse_minutes(raw) or int(default)


def coerce_message(raw: Any) -> str:
    s = "" if raw is None else str(raw)
    return s[:MESSAGE_MAX_LEN] or DEFAULT_MESSAGE


class ConfigStore:
    """
    File-backed guild config.

    The in-memory mapping is the source of truth; every mutation rewrites the whole
    JSON file synchronously so disk and memory never drift.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._configs: Dict[str, GuildConfig] = {}

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ConfigStore":
        store = cls(path)
        if not store.path.exists():
            return store

        try:
            raw = json.loads(store.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to load %s; starting with an empty config", store.path)
            return store

        if not isinstance(raw, dict):
            logger.error("Ignoring %s: expected a JSON object at top level", store.path)
            return store

        for guild_id, entry in raw.items():
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed config entry for guild %s", guild_id)
                continue
            try:
                store._configs[str(guild_id)] = GuildConfig.model_validate(entry)
            except ValueError:
                logger.warning("Skipping invalid config entry for guild %s", guild_id)

        logger.info("Loaded %d guild config(s) from %s", len(store._configs), store.path)
        return store

    def save(self) -> None:
        self._write(self._configs)

    def _write(self, configs: Dict[str, GuildConfig]) -> None:
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {gid: cfg.to_json() for gid, cfg in configs.items()}
        self.path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

    # -------------------------
    # Reads
    # -------------------------

    def get(self, guild_id: str) -> Optional[GuildConfig]:
        return self._configs.get(str(guild_id))

    def guild_ids(self) -> List[str]:
        return list(self._configs.keys())

    def to_json(self) -> Dict[str, Dict[str, Any]]:
        return {gid: cfg.to_json() for gid, cfg in self._configs.items()}

    def __contains__(self, guild_id: object) -> bool:
        return str(guild_id) in self._configs

    def __len__(self) -> int:
        return len(self._configs)

    # -------------------------
    # Mutations (disk first; memory only changes once the write succeeded)
    # -------------------------

    def upsert(
        self,
        guild_id: str,
        *,
        channel_id: str,
        interval_minutes: Any,
        message: Any,
        default_interval: int,
    ) -> GuildConfig:
        cfg = GuildConfig(
            channel_id=str(channel_id),
            interval_minutes=coerce_interval(interval_minutes, default_interval),
            message=coerce_message(message),
        )
        candidate = dict(self._configs)
        candidate[str(guild_id)] = cfg
        self._write(candidate)
        self._configs = candidate
        return cfg

    def remove(self, guild_id: str) -> bool:
        gid = str(guild_id)
        if gid not in self._configs:
            return False
        candidate = {k: v for k, v in self._configs.items() if k != gid}
        self._write(candidate)
        self._configs = candidate
        return True


__all__ = [
    "DEFAULT_MESSAGE",
    "MESSAGE_MAX_LEN",
    "ConfigStore",
    "GuildConfig",
    "coerce_interval",
    "coerce_message",
    "parse_minutes",
]
