import asyncio
from typing import Any, Coroutine, TypeVar

_T = TypeVar('_T')


def new_event_loop() -> asyncio.AbstractEventLoop:
    """
    Create a new event loop: with ``uvloop`` if it is installed.

    This loop factory is used in CLI only, not deeper than that;
    i.e. not in the loops themselves: they run in whatever loop they are given.
    """
    try:
        import uvloop
    except ImportError:
        return asyncio.new_event_loop()
    else:
        return uvloop.new_event_loop()  # type: ignore


def run(coro: Coroutine[Any, Any, _T], *, debug: bool = False) -> _T:
    """
    Run the coroutine in a new event loop, the same way as :func:`asyncio.run` does.
    """
    loop = new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.set_debug(debug)
        return loop.run_until_complete(coro)
    finally:
        try:
            _cancel_all_tasks(loop)
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.run_until_complete(loop.shutdown_default_executor())
        finally:
            asyncio.set_event_loop(None)
            loop.close()


def _cancel_all_tasks(loop: asyncio.AbstractEventLoop) -> None:
    tasks = [task for task in asyncio.all_tasks(loop) if not task.done()]
    for task in tasks:
        task.cancel()
    if tasks:
        loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))
