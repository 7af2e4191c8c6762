"""Time windows, interval polling and debouncing for triggers."""

import asyncio
from datetime import datetime
from typing import Callable, Optional
import structlog

from ..core.models import Schedule

logger = structlog.get_logger()


def _minutes(hhmm: str) -> int:
    hours, _, minutes = hhmm.partition(":")
    return int(hours) * 60 + int(minutes)


def day_of_week(moment: datetime) -> int:
    """Day index with 0=Sunday .. 6=Saturday."""
    return (moment.weekday() + 1) % 7


def is_within_schedule(schedule: Schedule, now: datetime) -> bool:
    """
    Check a moment against a schedule.

    The day must be listed (when days are given) and the minute of day
    must fall in [start_time, end_time] inclusive (when both are given).
    """
    if schedule.days_of_week and day_of_week(now) not in schedule.days_of_week:
        return False

    if schedule.start_time and schedule.end_time:
        current = now.hour * 60 + now.minute
        if current < _minutes(schedule.start_time) or current > _minutes(schedule.end_time):
            return False

    return True


class IntervalPoller:
    """
    Calls a callback every `interval` seconds until stopped.

    The callback must not block; long work should be spawned so that
    stopping the poller never interrupts it.
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = ""):
        self.interval = interval
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.callback()
            except Exception:
                logger.exception("poller_callback_error", poller=self.name)


class Debouncer:
    """
    Coalesces bursts of notifications.

    Each `trigger()` restarts the delay; the callback fires once the
    notifications have been quiet for `delay` seconds.
    """

    def __init__(self, delay: float, callback: Callable[[], None], name: str = ""):
        self.delay = delay
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    def trigger(self) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._fire())

    def cancel(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _fire(self) -> None:
        await asyncio.sleep(self.delay)
        self._task = None
        try:
            self.callback()
        except Exception:
            logger.exception("debounce_callback_error", debouncer=self.name)
