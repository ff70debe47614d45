import asyncio
import threading
from typing import List, Optional

from takt._cogs.aiokits import aiotime


class FakeClock(aiotime.Clock):
    """
    A manually driven clock for deterministic tests of the loops.

    The time does not flow by itself: it is moved forward by :meth:`step`
    or :meth:`set_time`, and all the timers that are due by then are fired
    in the order of their deadlines. Nothing really sleeps.

    The timers are tracked from their creation, not from the moment
    their readiness is requested. So, a timer created and then left aside
    while the time is stepped over its deadline, is fired nevertheless.

    Usage::

        clock = FakeClock()
        task = asyncio.create_task(takt.until(fn, 10, token, clock=clock))
        await clock.wait_for_waiters()
        clock.step(10)  # the next iteration of the loop begins.

    The clock should be stepped from the event loop's thread, since firing
    the timers resolves their futures.
    """
    _expires_lazily = False

    def __init__(self, start: float = 0.0) -> None:
        super().__init__()
        self._now = start
        self._lock = threading.RLock()
        self._timers: List[aiotime.Timer] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def step(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"The time cannot go backwards: {seconds!r}")
        self.set_time(self.now() + seconds)

    def set_time(self, when: float) -> None:
        with self._lock:
            if when < self._now:
                raise ValueError(f"The time cannot go backwards: {when!r} < {self._now!r}")
            self._now = when
            due = sorted((t for t in self._timers if t.deadline <= when), key=lambda t: t.deadline)
            self._timers[:] = [t for t in self._timers if t.deadline > when]
        for timer in due:
            timer._fire()

    @property
    def timers(self) -> int:
        """ How many timers are pending, no matter if awaited or not. """
        with self._lock:
            return len(self._timers)

    @property
    def waiters(self) -> int:
        """ How many pending timers are actually awaited (their readiness requested). """
        with self._lock:
            return sum(1 for t in self._timers if t._future is not None and not t._future.done())

    def has_waiters(self) -> bool:
        return self.waiters > 0

    async def wait_for_waiters(self, count: int = 1, *, timeout: Optional[float] = 1.0) -> None:
        """
        Let the event loop run until the code under test sleeps on the timers.

        Only the async tasks can be awaited this way: the sync ones, which run
        in threads, are not ticking the event loop, so they can take longer.
        """
        async def _waiting() -> None:
            while self.waiters < count:
                await asyncio.sleep(0)

        await asyncio.wait_for(_waiting(), timeout=timeout)

    def _register(self, timer: aiotime.Timer) -> None:
        if timer.deadline <= self.now():
            timer._fire()
        else:
            with self._lock:
                self._timers.append(timer)

    def _schedule(self, timer: aiotime.Timer) -> None:
        pass  # the timer is already tracked since its creation.

    def _unschedule(self, timer: aiotime.Timer) -> None:
        with self._lock:
            if timer in self._timers:
                self._timers.remove(timer)
