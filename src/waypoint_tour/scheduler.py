"""
Deadline-ordered scheduling for animation steps.

Every animation phase continues through ``Scheduler.call_later``: a step runs,
arranges its successor, and returns. ``VirtualScheduler`` advances time only
when told to, so sequences can be driven deterministically; ``AsyncioScheduler``
runs the same steps on a live event loop.
"""

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle for a scheduled callback"""

    __slots__ = ('deadline', 'sequence', 'callback', 'args', 'cancelled', '_native')

    def __init__(self, deadline: float, sequence: int, callback: Callable[..., Any], args: tuple):
        self.deadline = deadline
        self.sequence = sequence
        self.callback = callback
        self.args = args
        self.cancelled = False
        self._native = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._native is not None:
            self._native.cancel()

    def __lt__(self, other: 'TimerHandle') -> bool:
        return (self.deadline, self.sequence) < (other.deadline, other.sequence)


class Scheduler(ABC):
    """Schedules callbacks after a delay in milliseconds"""

    @abstractmethod
    def now_ms(self) -> float:
        """Current time in milliseconds"""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Run ``callback(*args)`` once ``delay_ms`` has elapsed"""


class VirtualScheduler(Scheduler):
    """
    Scheduler driven by explicit time advancement.

    Callbacks due at the same deadline run in the order they were scheduled.
    Callbacks scheduled while advancing run in the same ``advance`` call when
    their deadline falls inside the advanced window.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue: List[TimerHandle] = []
        self._counter = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        delay = max(0.0, float(delay_ms))
        handle = TimerHandle(self._now + delay, next(self._counter), callback, args)
        heapq.heappush(self._queue, handle)
        return handle

    @property
    def pending_count(self) -> int:
        return sum(1 for handle in self._queue if not handle.cancelled)

    def next_deadline(self) -> Optional[float]:
        while self._queue and self._queue[0].cancelled:
            heapq.heappop(self._queue)
        return self._queue[0].deadline if self._queue else None

    def advance(self, delta_ms: float) -> int:
        """Advance time by ``delta_ms``, running due callbacks; returns how many ran"""
        if delta_ms < 0:
            raise ValueError(f"Cannot move time backwards: {delta_ms}")
        target = self._now + delta_ms
        ran = 0
        while self._queue and self._queue[0].deadline <= target:
            handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = handle.deadline
            handle.callback(*handle.args)
            ran += 1
        self._now = target
        return ran

    def run_until_idle(self, limit_ms: float = 600000.0) -> int:
        """Run every pending callback (and their successors) up to ``limit_ms`` of virtual time"""
        horizon = self._now + limit_ms
        ran = 0
        while True:
            deadline = self.next_deadline()
            if deadline is None or deadline > horizon:
                break
            ran += self.advance(deadline - self._now)
        return ran


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._counter = itertools.count()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> float:
        if self._loop is None:
            return time.monotonic() * 1000.0
        return self._loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        delay = max(0.0, float(delay_ms))
        handle = TimerHandle(self.now_ms() + delay, next(self._counter), callback, args)
        handle._native = self.loop.call_later(delay / 1000.0, self._run, handle)
        return handle

    @staticmethod
    def _run(handle: TimerHandle) -> None:
        if not handle.cancelled:
            handle.callback(*handle.args)
