from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

DEFAULT_MAX_AGE_S = 14 * 24 * 60 * 60  # same as Starlette's session cookie default


@dataclass
class SessionRecord:
    user: Dict[str, Any]
    tokens: Dict[str, Any] = field(default_factory=dict)
    guilds: List[Dict[str, Any]] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)


class SessionStore:
    """
    Server-side dashboard sessions. The signed cookie only carries the session id.

    Records expire after `max_age_s` (the cookie's own max_age) and are evicted
    on lookup, plus a sweep on every login. In-memory only: a restart drops everything.
    """

    def __init__(self, max_age_s: float = DEFAULT_MAX_AGE_S, *, clock: Callable[[], float] = time.time) -> None:
        self.max_age_s = float(max_age_s)
        self._clock = clock
        self._records: Dict[str, SessionRecord] = {}

    def _expired(self, record: SessionRecord) -> bool:
        return self._clock() - record.created_at > self.max_age_s

    def prune(self) -> int:
        stale = [sid for sid, rec in self._records.items() if self._expired(rec)]
        for sid in stale:
            del self._records[sid]
        return len(stale)

    def create(self, record: SessionRecord) -> str:
        self.prune()
        sid = secrets.token_urlsafe(32)
        self._records[sid] = record
        return sid

    def get(self, sid: Optional[str]) -> Optional[SessionRecord]:
        if not sid:
            return None
        record = self._records.get(sid)
        if record is not None and self._expired(record):
            del self._records[sid]
            return None
        return record

    def destroy(self, sid: Optional[str]) -> None:
        if sid:
            self._records.pop(sid, None)

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["DEFAULT_MAX_AGE_S", "SessionRecord", "SessionStore"]
