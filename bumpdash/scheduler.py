from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .store import parse_minutes

logger = logging.getLogger(__name__)

Tick = Callable[[str], Awaitable[None]]
Sleep = Callable[[float], Awaitable[Any]]

MIN_INTERVAL_MINUTES = 1


@dataclass(frozen=True)
class FailurePolicy:
    """
    What a repeating task does when its tick raises.

    Default: log it and wait for the next tick. No retry, no escalation.
    With escalate=True the error is re-raised and the task ends.
    """

    escalate: bool = False
    label: str = "Auto-bump error"

    def handle(self, key: str, exc: BaseException) -> None:
        logger.error("%s (guild %s): %s", self.label, key, exc, exc_info=exc)
        if self.escalate:
            raise exc


LOG_AND_SKIP = FailurePolicy()


class RepeatingTask:
    """
    asyncio task that awaits `interval_s`, runs `fn`, and repeats until stopped.

    stop() never interrupts a tick that is already running: a relay that has
    been dispatched finishes, and the loop exits before the next sleep.
    """

    def __init__(
        self,
        key: str,
        interval_s: float,
        fn: Callable[[], Awaitable[None]],
        *,
        policy: FailurePolicy = LOG_AND_SKIP,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.key = key
        self.interval_s = float(interval_s)
        self.policy = policy
        self.fired = 0
        self._fn = fn
        self._sleep = sleep
        self._stopped = False
        self._in_tick = False
        self.task: asyncio.Task = asyncio.create_task(self._run(), name=f"bump-timer:{key}")

    async def _run(self) -> None:
        while not self._stopped:
            await self._sleep(self.interval_s)
            if self._stopped:
                return
            self.fired += 1
            self._in_tick = True
            try:
                await self._fn()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.policy.handle(self.key, exc)
            finally:
                self._in_tick = False

    @property
    def alive(self) -> bool:
        return not self._stopped and not self.task.done()

    @property
    def in_tick(self) -> bool:
        return self._in_tick

    def stop(self) -> None:
        """No further ticks. A tick in progress runs to completion."""
        self._stopped = True
        if not self._in_tick:
            self.task.cancel()

    def cancel(self) -> None:
        """Hard stop, including a tick in progress (process shutdown)."""
        self._stopped = True
        self.task.cancel()


class GuildScheduler:
    """
    One repeating relay task per guild.

    The interval is re-read from `interval_source` every time a guild is (re)armed;
    re-arming always stops the previous task first. Stopped tasks that are still
    finishing a tick are kept until they end so shutdown can reach them.
    """

    def __init__(
        self,
        interval_source: Callable[[str], Any],
        tick: Tick,
        *,
        default_minutes: int,
        policy: FailurePolicy = LOG_AND_SKIP,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._interval_source = interval_source
        self._tick = tick
        self.default_minutes = int(default_minutes)
        self.policy = policy
        self._sleep = sleep
        self._tasks: Dict[str, RepeatingTask] = {}
        self._retired: Set[RepeatingTask] = set()

    def effective_minutes(self, guild_id: str) -> int:
        minutes = parse_minutes(self._interval_source(str(guild_id))) or self.default_minutes
        return max(MIN_INTERVAL_MINUTES, minutes)

    def schedule(self, guild_id: str) -> RepeatingTask:
        gid = str(guild_id)
        self.unschedule(gid)

        minutes = self.effective_minutes(gid)
        handle = RepeatingTask(
            gid,
            minutes * 60,
            lambda: self._tick(gid),
            policy=self.policy,
            sleep=self._sleep,
        )
        self._tasks[gid] = handle
        logger.info("[SCHEDULE] guild %s every %s min", gid, minutes)
        return handle

    def unschedule(self, guild_id: str) -> bool:
        handle = self._tasks.pop(str(guild_id), None)
        if handle is None:
            return False
        handle.stop()
        if not handle.task.done():
            self._retired.add(handle)
            handle.task.add_done_callback(lambda _t, h=handle: self._retired.discard(h))
        return True

    def get(self, guild_id: str) -> Optional[RepeatingTask]:
        return self._tasks.get(str(guild_id))

    def scheduled_guilds(self) -> list[str]:
        return list(self._tasks.keys())

    async def shutdown(self) -> None:
        handles = list(self._tasks.values()) + list(self._retired)
        self._tasks.clear()
        self._retired.clear()
        for h in handles:
            h.cancel()
        if handles:
            await asyncio.gather(*(h.task for h in handles), return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)


__all__ = [
    "LOG_AND_SKIP",
    "MIN_INTERVAL_MINUTES",
    "FailurePolicy",
    "GuildScheduler",
    "RepeatingTask",
]
