"""
Clocks and single-fire timers for the loops.

All time readings and all delays of the loops go through a :class:`Clock`,
so that the whole timing can be replaced in tests by a manually driven clock
(see :class:`takt.testing.FakeClock`) with no real sleeping at all.

The time is measured in seconds as floats, the same as ``time.monotonic()``
and ``loop.time()`` do. The absolute values are meaningless, only the
differences are. The wall-clock time is never used for delays.

A timer is created with the deadline fixed at creation, but it takes
the scheduling resources (e.g. an event-loop's callback handle)
only once its readiness is requested. As such, the timers can be created
(and the delays can be calculated) with no event loop running at all.
"""
import abc
import asyncio
import enum
import time
from typing import Optional

from takt._cogs.aiokits import aiotasks


class TimerState(enum.Enum):
    PENDING = enum.auto()
    FIRED = enum.auto()
    STOPPED = enum.auto()


class Timer:
    """
    A single pending delay, which becomes ready once at or after its deadline.

    The readiness is signalled via a future (:meth:`ready`), which is resolved
    once the timer fires. The same future is returned on every call, since
    a timer is owned by one and only one waiter.

    Stopping the timer (:meth:`stop`) releases the scheduling resources
    and cancels the readiness future. Stopping is idempotent; it returns
    ``True`` only if the timer was still pending at that moment.
    """

    def __init__(self, *, clock: "Clock", duration: float) -> None:
        super().__init__()
        self.duration = max(0.0, duration)
        self.deadline = clock.now() + self.duration
        self._clock = clock
        self._state = TimerState.PENDING
        self._future: Optional[aiotasks.Future] = None
        self._handle: Optional[asyncio.Handle] = None

    def __repr__(self) -> str:
        state = self._state.name.lower()
        return f'<{self.__class__.__name__}: {self.duration:.3f}s, {state}>'

    def is_pending(self) -> bool:
        self._expire()
        return self._state is TimerState.PENDING

    def is_fired(self) -> bool:
        self._expire()
        return self._state is TimerState.FIRED

    def is_stopped(self) -> bool:
        return self._state is TimerState.STOPPED

    @property
    def remaining(self) -> float:
        """ How much time is left till the deadline (zero if passed). """
        return max(0.0, self.deadline - self._clock.now())

    def ready(self) -> aiotasks.Future:
        """ Get the readiness signal, scheduling the timer if not yet. """
        if self._future is None:
            self._expire()
            self._future = asyncio.get_running_loop().create_future()
            if self._state is TimerState.FIRED:
                self._future.set_result(None)
            elif self._state is TimerState.STOPPED:
                self._future.cancel()
            else:
                self._clock._schedule(self)
        return self._future

    def stop(self) -> bool:
        """ Cancel the pending fire; return ``True`` if it was still pending. """
        self._expire()
        if self._state is not TimerState.PENDING:
            return False
        self._state = TimerState.STOPPED
        self._clock._unschedule(self)
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._future is not None and not self._future.done():
            self._future.cancel()
        return True

    def _fire(self) -> None:
        self._handle = None
        if self._state is TimerState.PENDING:
            self._state = TimerState.FIRED
            if self._future is not None and not self._future.done():
                self._future.set_result(None)

    def _expire(self) -> None:
        # Unscheduled timers have nobody to fire them: they are "fired" by the lapse of time.
        if (self._state is TimerState.PENDING and self._future is None and
                self._clock._expires_lazily and self._clock.now() >= self.deadline):
            self._state = TimerState.FIRED


class Clock(metaclass=abc.ABCMeta):
    """
    A source of the current time and of the timers.
    """
    _expires_lazily: bool = True

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self.now():.3f}>'

    @abc.abstractmethod
    def now(self) -> float:
        raise NotImplementedError

    def since(self, timestamp: float) -> float:
        return self.now() - timestamp

    def new_timer(self, duration: float) -> Timer:
        timer = Timer(clock=self, duration=duration)
        self._register(timer)
        return timer

    def _register(self, timer: Timer) -> None:
        pass

    @abc.abstractmethod
    def _schedule(self, timer: Timer) -> None:
        raise NotImplementedError

    def _unschedule(self, timer: Timer) -> None:
        pass


class RealClock(Clock):
    """
    The real monotonic time, with the timers run by the current event loop.
    """

    def now(self) -> float:
        return time.monotonic()

    def _schedule(self, timer: Timer) -> None:
        loop = asyncio.get_running_loop()
        timer._handle = loop.call_later(timer.deadline - self.now(), timer._fire)
