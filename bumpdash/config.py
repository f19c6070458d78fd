from __future__ import annotations

from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

DISCORD_API_BASE = "https://discord.com/api/v10"
DEFAULT_BUMP_APPLICATION_ID = "302050872383242240"  # Disboard

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """
    Central app settings (web dashboard + bot share one process).

    Rules:
    - Env var names match the .env the dashboard has always used
    - Normalize user-provided values (log level, ids, urls)
    - Fail fast in validate_required(); nothing here raises at import time
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server runtime (uvicorn)
    host: str = Field(default="127.0.0.1", alias="HOST")  # set 0.0.0.0 for LAN / container
    port: int = Field(default=3000, alias="PORT")

    # Discord application (bot + OAuth)
    discord_bot_token: str = Field(default="", alias="DISCORD_BOT_TOKEN")
    client_id: str = Field(default="", alias="CLIENT_ID")
    client_secret: str = Field(default="", alias="CLIENT_SECRET")
    redirect_uri: str = Field(default="http://localhost:3000/callback", alias="REDIRECT_URI")
    session_secret: str = Field(default="changeme", alias="SESSION_SECRET")
    session_max_age_s: int = Field(default=14 * 24 * 60 * 60, alias="SESSION_MAX_AGE")  # cookie + server record

    # Only used by the command registration script
    guild_id: Optional[str] = Field(default=None, alias="GUILD_ID")

    # Relay target
    bump_application_id: str = Field(default=DEFAULT_BUMP_APPLICATION_ID, alias="BUMP_APPLICATION_ID")
    bump_command_name: str = Field(default="bump", alias="BUMP_COMMAND_NAME")

    # Scheduling + storage
    default_interval_minutes: int = Field(default=120, alias="DEFAULT_INTERVAL_MINUTES")
    config_path: str = Field(default="./configs.json", alias="CONFIG_PATH")

    # HTTP / gateway
    session_ready_timeout_s: float = Field(default=30.0, alias="SESSION_READY_TIMEOUT")
    http_timeout_s: float = Field(default=20.0, alias="DISCORD_HTTP_TIMEOUT")
    discord_api_base: str = Field(default=DISCORD_API_BASE, alias="DISCORD_API_BASE")

    # -------------------------
    # Validators / normalizers
    # -------------------------

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip().upper()
        return s or "INFO"

    @field_validator(
        "discord_bot_token",
        "client_id",
        "client_secret",
        "session_secret",
        "bump_application_id",
        "bump_command_name",
        mode="before",
    )
    @classmethod
    def _strip(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip()

    @field_validator("redirect_uri", "discord_api_base", mode="before")
    @classmethod
    def _norm_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip().rstrip("/")

    @field_validator("guild_id", mode="before")
    @classmethod
    def _norm_guild_id(cls, v: Any) -> Optional[str]:
        s = ("" if v is None else str(v)).strip()
        return s or None

    @field_validator("host", mode="before")
    @classmethod
    def _norm_host(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "127.0.0.1"

    # -------------------------
    # Boot checks
    # -------------------------

    def validate_required(self) -> None:
        """
        Strict validation for boot safety. Any failure here is fatal.
        """
        missing = [
            name
            for name, value in (
                ("DISCORD_BOT_TOKEN", self.discord_bot_token),
                ("CLIENT_ID", self.client_id),
                ("CLIENT_SECRET", self.client_secret),
                ("SESSION_SECRET", self.session_secret),
                ("BUMP_APPLICATION_ID", self.bump_application_id),
                ("BUMP_COMMAND_NAME", self.bump_command_name),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing required env vars: {', '.join(missing)}. Check .env")

        parsed = urlparse(self.redirect_uri)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError("REDIRECT_URI must be an absolute http:// or https:// URL.")

        if self.log_level not in _LOG_LEVELS:
            raise ConfigurationError(f"LOG_LEVEL must be one of: {', '.join(sorted(_LOG_LEVELS))}")

        if self.default_interval_minutes < 1:
            raise ConfigurationError("DEFAULT_INTERVAL_MINUTES must be >= 1.")

        if self.session_max_age_s < 60:
            raise ConfigurationError("SESSION_MAX_AGE must be >= 60 seconds.")

        if self.session_ready_timeout_s <= 0:
            raise ConfigurationError("SESSION_READY_TIMEOUT must be > 0.")

        if self.http_timeout_s <= 0 or self.http_timeout_s > 120:
            raise ConfigurationError("DISCORD_HTTP_TIMEOUT must be > 0 and <= 120.")


settings = Settings()

__all__ = ["DISCORD_API_BASE", "Settings", "settings"]
