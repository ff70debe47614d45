import asyncio
import enum
import threading
import time
from typing import Dict, Optional, Set

from takt._cogs.aiokits import aiotasks


class StopReason(enum.Flag):
    """
    A reason or reasons of a loop being stopped.

    No matter the reason, the loops must exit, so one and only one token
    is used. Some tasks can check the reason of exiting if it is important.

    There can be multiple reasons combined (in rare cases, all of them).
    """
    REQUESTED = enum.auto()  # the token was cancelled explicitly by the code.
    SIGNAL = enum.auto()  # the process received SIGINT/SIGTERM.
    DEADLINE = enum.auto()  # the time limit of the loop is reached.
    EXHAUSTED = enum.auto()  # the expected number of runs is done.


class CancellationToken:
    """
    A one-shot, broadcastable signal for the loops to stop.

    The token goes from active to cancelled once and never goes back.
    The further cancellations only add more reasons to the existing ones.

    Any number of loops and tasks can share the same token and wait for it:
    in one or many event loops, or in threads (e.g. the synchronous tasks
    which run in the executors). Every async waiter gets its own future
    from :meth:`ready`, so that abandoning one waiter does not affect others.

    The token can be cancelled from any thread. The async waiters are then
    resolved in their own event loops.

    Usage::

        token = CancellationToken()
        asyncio.get_running_loop().call_later(60, token.cancel)
        await takt.until(fn, 10, token)
    """

    def __init__(self, *, name: Optional[str] = None) -> None:
        super().__init__()
        self.name = name
        self.when: Optional[float] = None
        self.reason: Optional[StopReason] = None
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._waiters: Dict[aiotasks.Future, asyncio.AbstractEventLoop] = {}

    def __repr__(self) -> str:
        clsname = self.__class__.__name__
        state = 'cancelled' if self.is_cancelled() else 'active'
        if self.name is None:
            return f'<{clsname}: {state}, reason={self.reason}>'
        else:
            return f'<{clsname}: {self.name}: {state}, reason={self.reason}>'

    def __bool__(self) -> bool:
        raise NotImplementedError  # to protect against accidental misuse

    def is_cancelled(self, reason: Optional[StopReason] = None) -> bool:
        """
        Check if the token is cancelled: at all or for a specific reason.
        """
        matching_reason = reason is None or (self.reason is not None and reason in self.reason)
        return matching_reason and self._event.is_set()

    def cancel(self, reason: Optional[StopReason] = None) -> None:
        with self._lock:
            reason = reason if reason is not None else StopReason.REQUESTED
            self.when = self.when if self.when is not None else time.monotonic()
            self.reason = reason if self.reason is None else self.reason | reason
            self._event.set()
            waiters = list(self._waiters.items())
            self._waiters.clear()

        try:
            current_loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            current_loop = None

        for future, loop in waiters:
            if loop is current_loop:
                self._resolve(future)
            elif not loop.is_closed():
                loop.call_soon_threadsafe(self._resolve, future)

    def ready(self) -> aiotasks.Future:
        """
        Get a new future, which is resolved with the reason when cancelled.

        Cancel the future if it is not needed anymore: it is then forgotten.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        with self._lock:
            if self._event.is_set():
                future.set_result(self.reason)
            else:
                self._waiters[future] = loop
                future.add_done_callback(self._forget)
        return future

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until cancelled or timed out; return ``True`` if cancelled.

        For the synchronous tasks only: it blocks the whole event loop if used
        in the async code. Use ``await token.ready()`` in the async code.
        """
        return self._event.wait(timeout=timeout)

    @property
    def waiters(self) -> Set[aiotasks.Future]:
        with self._lock:
            return set(self._waiters)

    def _resolve(self, future: aiotasks.Future) -> None:
        if not future.done():
            future.set_result(self.reason)

    def _forget(self, future: aiotasks.Future) -> None:
        with self._lock:
            self._waiters.pop(future, None)
