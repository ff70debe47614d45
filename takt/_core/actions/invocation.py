"""
Invoking the tasks and the conditions of the loops.

The tasks & conditions take no arguments. They can be sync or async functions,
their partials, their decorated wrappers, or lambdas returning coroutines.
"""
import asyncio
import concurrent.futures
import contextvars
import functools
import inspect
from typing import Any, Callable, Coroutine, Optional, TypeVar, Union

from takt._cogs.configs import configuration

# Either a sync function with the result, or an async one with a coroutine of the result.
_R = TypeVar('_R')
SyncOrAsync = Union[_R, Coroutine[None, None, _R]]

Invokable = Callable[[], SyncOrAsync[Optional[object]]]


async def invoke(
        fn: Invokable,
        *,
        settings: Optional[configuration.Settings] = None,
) -> Any:
    """
    Call the task or the condition and get its result, never blocking the event loop.

    The async functions are awaited directly. The sync ones are executed
    in the executor from the settings (or in the loop's default one), so that
    other loops keep running while this one waits for its task to finish.
    """
    if is_async_fn(fn):
        return await fn()  # type: ignore

    executor = settings.execution.executor if settings is not None else None
    result = await _run_in_executor(fn, executor=executor)

    # A lambda or a sync wrapper can return a coroutine of an async function: await it here.
    if inspect.isawaitable(result):
        result = await result
    return result


async def _run_in_executor(
        fn: Callable[[], Any],
        *,
        executor: Optional[concurrent.futures.Executor],
) -> Any:
    # The context variables of the caller are visible in the thread too.
    context = contextvars.copy_context()
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(executor, functools.partial(context.run, fn))

    # A thread cannot be interrupted, so the cancellation is delayed till the function returns.
    cancellation: Optional[asyncio.CancelledError] = None
    while not future.done():
        try:
            await asyncio.shield(future)
        except asyncio.CancelledError as e:
            cancellation = e
    if cancellation is not None:
        raise cancellation
    return future.result()


def is_async_fn(
        fn: Optional[Invokable],
) -> bool:
    if fn is None:
        return False
    elif isinstance(fn, functools.partial):
        return is_async_fn(fn.func)
    elif hasattr(fn, '__wrapped__'):  # @functools.wraps()
        return is_async_fn(fn.__wrapped__)
    else:
        return inspect.iscoroutinefunction(fn)
