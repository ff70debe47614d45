"""
Backoff managers: the policies of the delays between the runs of a task.

A backoff manager is a stateful object which produces the timers
for the successive delays, one timer per call of :meth:`BackoffManager.backoff`.
Every call advances the state of the manager, so the calls are not idempotent.

The managers are single-owner objects: they are not synchronised internally,
and must not be shared by concurrently running loops. The loops themselves
call the managers strictly sequentially, one call per iteration.

The randomness is taken from the per-manager random generator, which can be
injected for reproducible sequences (e.g. in tests). There is no process-wide
random state shared by the managers.
"""
import abc
import math
import random
from typing import Optional

from takt._cogs.aiokits import aiotime
from takt._cogs.configs import configuration


class BackoffConfigError(ValueError):
    """ The backoff manager cannot be created with the provided parameters. """


def jitter(
        duration: float,
        max_factor: float,
        rng: Optional[random.Random] = None,
) -> float:
    """
    Randomise the duration to somewhere between ``duration`` & ``duration * (1 + max_factor)``.

    A non-positive factor is treated as ``1.0``: i.e. up to twice the duration.
    """
    if max_factor <= 0.0:
        max_factor = 1.0
    rng = rng if rng is not None else random.Random()
    return duration + rng.random() * max_factor * duration


class BackoffManager(metaclass=abc.ABCMeta):
    """
    A source of the successive delays (as timers) for the loops.
    """

    def __init__(
            self,
            *,
            clock: Optional[aiotime.Clock] = None,
            rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__()
        self.clock = clock if clock is not None else aiotime.RealClock()
        self.rng = rng if rng is not None else random.Random()

    @abc.abstractmethod
    def next_delay(self) -> float:
        """ Advance the state and get the next delay in seconds. """
        raise NotImplementedError

    def backoff(self) -> aiotime.Timer:
        """ Advance the state and get a timer for the next delay. """
        return self.clock.new_timer(self.next_delay())


class ExponentialBackoffManager(BackoffManager):
    """
    Exponentially growing delays, capped at the maximum, with optional jitter.

    The first delay is the initial one. Every next delay is the previous one
    multiplied by the factor, but never above the maximum. If no delays were
    requested for longer than the reset duration, the backoff starts over.

    With the jitter, every returned delay is randomly prolonged by up to
    the jitter fraction of it. The jitter does not accumulate: the growth
    goes from the jitter-free delays.

    For ``initial=2, maximum=20, factor=2``, the delays are::

        2, 4, 8, 16, 20, 20, 20, ...
    """

    def __init__(
            self,
            initial: float,
            maximum: float,
            reset: Optional[float],
            factor: float,
            jitter: float = 0.0,
            *,
            clock: Optional[aiotime.Clock] = None,
            rng: Optional[random.Random] = None,
    ) -> None:
        reset = math.inf if reset is None else reset
        if initial < 0:
            raise BackoffConfigError(f"The initial delay must be non-negative, got {initial!r}.")
        if maximum < initial:
            raise BackoffConfigError(f"The maximum delay {maximum!r} is below the initial one {initial!r}.")
        if reset < 0:
            raise BackoffConfigError(f"The reset duration must be non-negative, got {reset!r}.")
        if factor <= 1:
            raise BackoffConfigError(f"The factor must be above 1 for the delays to grow, got {factor!r}.")
        if jitter < 0:
            raise BackoffConfigError(f"The jitter must be non-negative, got {jitter!r}.")

        super().__init__(clock=clock, rng=rng)
        self.initial = initial
        self.maximum = maximum
        self.reset = reset
        self.factor = factor
        self.jitter = jitter
        self._current = initial
        self._steps = 0
        self._last_call: Optional[float] = None

    def __repr__(self) -> str:
        return (f'<{self.__class__.__name__}: {self._current}s '
                f'of {self.initial}..{self.maximum}s, steps={self._steps}>')

    @property
    def current(self) -> float:
        """ The jitter-free delay which will be returned next (unless reset). """
        return self._current

    @property
    def steps(self) -> int:
        """ How many delays were produced since the start or the last reset. """
        return self._steps

    def reset_state(self) -> None:
        self._current = self.initial
        self._steps = 0
        self._last_call = None

    def next_delay(self) -> float:
        now = self.clock.now()
        if self._last_call is not None and now - self._last_call > self.reset:
            self.reset_state()
        self._last_call = now

        delay = self._current
        self._current = min(self.maximum, self._current * self.factor)
        self._steps += 1

        if self.jitter > 0:
            delay = jitter(delay, self.jitter, rng=self.rng)
        return delay


class JitteredBackoffManager(BackoffManager):
    """
    Independent delays of the base duration plus up to its jitter fraction.

    For ``base=2, jitter_factor=2``, every delay is uniformly random in 2..6 seconds.
    Zero or negative jitter factors give exactly the base duration every time.
    """

    def __init__(
            self,
            base: float,
            jitter_factor: float,
            *,
            clock: Optional[aiotime.Clock] = None,
            rng: Optional[random.Random] = None,
    ) -> None:
        if base < 0:
            raise BackoffConfigError(f"The base delay must be non-negative, got {base!r}.")
        super().__init__(clock=clock, rng=rng)
        self.base = base
        self.jitter_factor = jitter_factor

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self.base}s, jitter={self.jitter_factor}>'

    def next_delay(self) -> float:
        if self.jitter_factor > 0:
            return jitter(self.base, self.jitter_factor, rng=self.rng)
        return self.base


def from_settings(
        settings: configuration.BackoffSettings,
        *,
        clock: Optional[aiotime.Clock] = None,
        rng: Optional[random.Random] = None,
) -> Optional[BackoffManager]:
    """
    Create a backoff manager as described by the settings; ``None`` if not described.
    """
    if settings.kind is None:
        return None
    elif settings.kind == 'exponential':
        return ExponentialBackoffManager(
            initial=settings.initial,
            maximum=settings.maximum,
            reset=settings.reset,
            factor=settings.factor,
            jitter=settings.jitter,
            clock=clock,
            rng=rng,
        )
    elif settings.kind == 'jittered':
        return JitteredBackoffManager(
            base=settings.initial,
            jitter_factor=settings.jitter,
            clock=clock,
            rng=rng,
        )
    else:
        raise BackoffConfigError(f"Unsupported backoff kind: {settings.kind!r}")
