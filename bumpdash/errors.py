from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple

# Discord JSON error codes we translate to HTTP-ish statuses
MISSING_ACCESS = 50001
MISSING_PERMISSIONS = 50013
UNKNOWN_CHANNEL = 10003
UNKNOWN_GUILD = 10004

_COOLDOWN_RE = re.compile(r"cooldown|please wait|try again", re.IGNORECASE)

COOLDOWN_MESSAGE = "Failed to execute bump command: Cooldown in effect."


class RelayError(Exception):
    """Base error for everything the relay path can raise."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class ConfigurationError(RelayError):
    """Missing or invalid startup settings. Fatal at boot."""


class NotReadyError(RelayError):
    """The bot's gateway session is not established (yet)."""


class CommandNotFoundError(RelayError):
    """The external application exposes no command with the relayed name."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status=404)


class ChannelValidationError(RelayError):
    """Destination guild/channel is inaccessible or cannot hold messages."""


class DiscordAPIError(RelayError):
    """
    Non-success response from the Discord REST API.

    `code` is Discord's JSON error code (not the HTTP status) when the body has one.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int],
        code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message, status=status)
        self.code = code
        self.body = body


@dataclass(frozen=True)
class RelayFailure:
    cooldown: bool
    message: str
    status: int


def error_message(exc: Optional[BaseException]) -> str:
    if exc is None:
        return ""
    msg = getattr(exc, "message", None)
    if isinstance(msg, str) and msg:
        return msg
    return str(exc)


def is_cooldown(exc: BaseException) -> bool:
    if getattr(exc, "status", None) == 429:
        return True
    return bool(_COOLDOWN_RE.search(error_message(exc)))


def normalize_discord_error(exc: Optional[BaseException], fallback_status: int = 500) -> Tuple[int, str]:
    """
    Map an error to (status, message) for API responses.
    """
    if exc is None:
        return fallback_status, "Unknown error"

    message = error_message(exc) or "An unexpected Discord error occurred."

    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return status, message

    code = getattr(exc, "code", None)
    if code in (MISSING_ACCESS, MISSING_PERMISSIONS):
        return 403, message
    if code in (UNKNOWN_CHANNEL, UNKNOWN_GUILD):
        return 404, message
    return fallback_status, message


def classify_failure(exc: BaseException) -> RelayFailure:
    """
    Cooldown is an expected outcome (the external bot rate-limits bumps);
    everything else is a real relay failure.
    """
    if is_cooldown(exc):
        return RelayFailure(cooldown=True, message=COOLDOWN_MESSAGE, status=200)

    raw = error_message(exc)
    message = f"Failed to execute bump command. {raw}" if raw else "Failed to execute bump command."
    return RelayFailure(cooldown=False, message=message, status=500)


__all__ = [
    "COOLDOWN_MESSAGE",
    "ChannelValidationError",
    "CommandNotFoundError",
    "ConfigurationError",
    "DiscordAPIError",
    "NotReadyError",
    "RelayError",
    "RelayFailure",
    "classify_failure",
    "error_message",
    "is_cooldown",
    "normalize_discord_error",
]
