"""
Helpers for orchestrating asyncio futures and tasks.

The loops race plain futures (timers' and tokens' readiness signals)
rather than tasks: futures cost nothing to abandon, while tasks must be
cancelled and awaited to prevent the "Task was destroyed" warnings.
The helpers here make such races safe for empty inputs and leave
nothing pending behind them.
"""
import asyncio
from typing import TYPE_CHECKING, Any, Collection, Iterable, Optional, Set, Tuple

# A workaround for a difference in tasks at runtime and type-checking time.
# Otherwise, at runtime: TypeError: 'type' object is not subscriptable.
if TYPE_CHECKING:
    Future = asyncio.Future[Any]
    Task = asyncio.Task[Any]
else:
    Future = asyncio.Future
    Task = asyncio.Task


async def wait(
        futures: Collection[Future],
        *,
        timeout: Optional[float] = None,
        return_when: Any = asyncio.ALL_COMPLETED,
) -> Tuple[Set[Future], Set[Future]]:
    """
    A safer version of :func:`asyncio.wait` -- does not fail on an empty list.
    """
    if not futures:
        return set(), set()
    done, pending = await asyncio.wait(futures, timeout=timeout, return_when=return_when)
    return done, pending


async def race(
        futures: Collection[Future],
) -> Set[Future]:
    """
    Wait until at least one of the futures is done; cancel all the others.

    If the waiting itself is cancelled, all the futures are cancelled too,
    so that their owners can release the resources bound to them.
    """
    try:
        done, pending = await wait(futures, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        discard(futures)
        raise
    discard(pending)
    return done


def discard(futures: Iterable[Future]) -> None:
    """ Cancel the futures that are not needed anymore (if not done yet). """
    for future in futures:
        if not future.done():
            future.cancel()
