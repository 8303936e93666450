"""
services/deadline_clock.py

Ticks toward an attempt's absolute deadline and fires one ExpiryEvent.

The deadline is derived once from the attempt's started_at, never from a
fresh "now", so reloading an attempt resumes the same countdown.
The tick task is owned by the clock instance and released by stop()
(or by leaving ``async with clock:``).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import config
from practice_cbt.models.attempt_model import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpiryEvent:
    attempt_id: str
    deadline: datetime


def compute_deadline(started_at: datetime, time_limit_minutes: Optional[int]) -> Optional[datetime]:
    """started_at + limit, or None for untimed sets (None or <= 0 minutes)."""
    if not time_limit_minutes or time_limit_minutes <= 0:
        return None
    return started_at + timedelta(milliseconds=time_limit_minutes * 60_000)


def format_remaining(remaining_ms: Optional[float]) -> str:
    """Render remaining time as MM:SS (floored, never negative)."""
    if remaining_ms is None:
        return "--:--"
    total = max(0, int(remaining_ms // 1000))
    return f"{total // 60:02d}:{total % 60:02d}"


class DeadlineClock:
    def __init__(
        self,
        attempt_id: str,
        started_at: datetime,
        time_limit_minutes: Optional[int],
        on_expire: Optional[Callable[[ExpiryEvent], None]] = None,
        now: Callable[[], datetime] = utc_now,
        tick_interval: float = config.TICK_INTERVAL_SECONDS,
    ) -> None:
        self.attempt_id = attempt_id
        self.deadline = compute_deadline(started_at, time_limit_minutes)
        self.on_expire = on_expire
        self._now = now
        self._tick_interval = tick_interval
        self._task: Optional[asyncio.Task] = None
        self._fired = False
        self.remaining_ms: Optional[float] = self.remaining_at(now())

    @property
    def enabled(self) -> bool:
        return self.deadline is not None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def expired(self) -> bool:
        remaining = self.remaining_at(self._now())
        return remaining is not None and remaining <= 0

    @property
    def is_warning(self) -> bool:
        return (
            self.remaining_ms is not None
            and self.remaining_ms < config.WARNING_THRESHOLD_SECONDS * 1000
        )

    def remaining_at(self, moment: datetime) -> Optional[float]:
        if self.deadline is None:
            return None
        return (self.deadline - moment).total_seconds() * 1000

    def start(self) -> None:
        """Start ticking on the running loop. No-op when disabled, running, or already fired."""
        if not self.enabled or self.running or self._fired:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"clock started: attempt={self.attempt_id} deadline={self.deadline.isoformat()}")

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def __aenter__(self) -> "DeadlineClock":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()

    async def _run(self) -> None:
        while True:
            self.remaining_ms = self.remaining_at(self._now())
            if self.remaining_ms <= 0:
                self.remaining_ms = 0
                self._fire()
                return
            await asyncio.sleep(self._tick_interval)

    def _fire(self) -> None:
        if self._fired:
            return
        self._fired = True
        logger.info(f"deadline reached: attempt={self.attempt_id}")
        if self.on_expire is not None:
            self.on_expire(ExpiryEvent(attempt_id=self.attempt_id, deadline=self.deadline))
