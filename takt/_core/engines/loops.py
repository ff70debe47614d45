"""
Periodic loops: running a task again and again until told to stop.

Every loop is a coroutine which runs its task strictly sequentially:
check the token, run the task, get the next delay, sleep, and repeat.
There is no parallelism within a single loop. Multiple loops can run
in parallel as separate asyncio tasks, and can share the same token
to be stopped together.

The delays come either from a fixed period (with optional jitter),
or from a backoff manager. In the sliding mode, the delay is counted
from the end of the task, so the task's duration does not matter::

    |-----|-----|-----|-----|-----|-----|---> (period=5, sliding=True)
    [slow_task].....[slow_task].....[slow...

In the non-sliding mode, the delay is counted from the start of the task,
so the task's duration is eaten from the delay (but never below zero)::

    |-----|-----|-----|-----|-----|-----|---> (period=5, sliding=False)
    [slow_task]..[slow_task]..[slow_task]..

The sleep between the runs is interrupted as soon as the token is cancelled.
The task itself is never interrupted: the token is checked only between
the runs, so a long task runs to its end even if the token is cancelled.
"""
import asyncio
import logging
import random
from typing import Optional

from takt._cogs.aiokits import aiostoppers, aiotasks, aiotime
from takt._cogs.configs import configuration
from takt._cogs.helpers import typedefs
from takt._core.actions import backoffs, invocation

_logger = logging.getLogger(__name__)


async def forever(
        task: typedefs.Task,
        period: float,
        *,
        clock: Optional[aiotime.Clock] = None,
        rng: Optional[random.Random] = None,
        logger: Optional[typedefs.Logger] = None,
        settings: Optional[configuration.Settings] = None,
) -> None:
    """
    Run the task every period seconds (after it finishes) forever.

    "Forever" ends only when the surrounding asyncio task is cancelled,
    or when the task fails.
    """
    await until(task, period, aiostoppers.CancellationToken(name='never'),
                clock=clock, rng=rng, logger=logger, settings=settings)


async def until(
        task: typedefs.Task,
        period: float,
        token: aiostoppers.CancellationToken,
        *,
        clock: Optional[aiotime.Clock] = None,
        rng: Optional[random.Random] = None,
        logger: Optional[typedefs.Logger] = None,
        settings: Optional[configuration.Settings] = None,
) -> None:
    """
    Run the task every period seconds (after it finishes) until the token is cancelled.
    """
    await jitter_until(task, period, 0.0, True, token,
                       clock=clock, rng=rng, logger=logger, settings=settings)


async def jitter_until(
        task: typedefs.Task,
        period: float,
        jitter_factor: float,
        sliding: bool,
        token: aiostoppers.CancellationToken,
        *,
        clock: Optional[aiotime.Clock] = None,
        rng: Optional[random.Random] = None,
        logger: Optional[typedefs.Logger] = None,
        settings: Optional[configuration.Settings] = None,
) -> None:
    """
    Run the task every period seconds until the token is cancelled.

    If the jitter factor is positive, every period is randomly prolonged
    by up to that fraction of the period. Otherwise, the period is used as is.
    """
    backoff = backoffs.JitteredBackoffManager(period, jitter_factor, clock=clock, rng=rng)
    await backoff_until(task, backoff, sliding, token, logger=logger, settings=settings)


async def backoff_until(
        task: typedefs.Task,
        backoff: backoffs.BackoffManager,
        sliding: bool,
        token: aiostoppers.CancellationToken,
        *,
        logger: Optional[typedefs.Logger] = None,
        settings: Optional[configuration.Settings] = None,
) -> None:
    """
    Run the task with the delays from the backoff manager until the token is cancelled.

    If the token is already cancelled, the task is not run even once.
    If the task fails, the error is logged and escalated, and the loop is over.
    """
    logger = logger if logger is not None else _logger
    runs = 0
    while not token.is_cancelled():
        timer: Optional[aiotime.Timer] = None
        try:
            # For non-sliding loops, the task's duration is a part of the delay.
            if not sliding:
                timer = backoff.backoff()

            runs += 1
            try:
                await invocation.invoke(task, settings=settings)
            except Exception as e:
                logger.exception(f"Task has failed on run #{runs}: {e!r}")
                raise

            # For sliding loops, the delay goes after the task.
            if timer is None:
                timer = backoff.backoff()

            # The cancellation wins the ties: do not even start sleeping if cancelled.
            if token.is_cancelled():
                break

            logger.debug(f"Sleeping for {timer.remaining:.3f}s after run #{runs}.")
            await aiotasks.race([timer.ready(), token.ready()])
        finally:
            if timer is not None:
                timer.stop()

    logger.info(f"The loop is stopped after {runs} run(s): {token.reason}.")


async def poll(
        condition: typedefs.Condition,
        backoff: backoffs.BackoffManager,
        token: aiostoppers.CancellationToken,
        *,
        sliding: bool = True,
        attempt_timeout: Optional[float] = None,
        logger: Optional[typedefs.Logger] = None,
        settings: Optional[configuration.Settings] = None,
) -> bool:
    """
    Retry the condition with the backoff delays until it is met or cancelled.

    Returns ``True`` as soon as the condition returns a truthy value,
    or ``False`` if the token is cancelled before that.

    An attempt that takes longer than the attempt timeout is considered failed,
    and is retried after the next delay. The async conditions are cancelled
    on the timeout; the sync ones are waited to the end, but their results
    are ignored (a thread cannot be interrupted).
    """
    logger = logger if logger is not None else _logger
    attempts = 0
    while not token.is_cancelled():
        timer: Optional[aiotime.Timer] = None
        try:
            if not sliding:
                timer = backoff.backoff()

            attempts += 1
            if await _attempt(condition, timeout=attempt_timeout, logger=logger, settings=settings):
                logger.debug(f"The condition is met on attempt #{attempts}.")
                return True

            if timer is None:
                timer = backoff.backoff()

            if token.is_cancelled():
                break

            logger.info(f"Retrying in {timer.remaining:.3f}s after attempt #{attempts}.")
            await aiotasks.race([timer.ready(), token.ready()])
        finally:
            if timer is not None:
                timer.stop()

    logger.info(f"Polling is stopped after {attempts} attempt(s): {token.reason}.")
    return False


async def _attempt(
        condition: typedefs.Condition,
        *,
        timeout: Optional[float],
        logger: typedefs.Logger,
        settings: Optional[configuration.Settings],
) -> bool:
    try:
        result = await asyncio.wait_for(invocation.invoke(condition, settings=settings), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"The attempt has timed out after {timeout}s.")
        return False
    return bool(result)
