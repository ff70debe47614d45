"""
Running the external commands in the loops: the backend of the CLI.

The command is a task like any other: it is started, awaited till its exit,
and its exit code is logged. A failing command does not stop the loop:
the loop's only business is to start the command on schedule.

The loop is stopped by the OS signals (SIGINT/SIGTERM), by the time limits,
or by the number of runs -- all via the same cancellation token.
"""
import asyncio
import contextlib
import dataclasses
import datetime
import logging
import signal
import threading
from typing import Iterator, List, Optional, Sequence

from takt._cogs.aiokits import aiostoppers
from takt._cogs.configs import configuration
from takt._cogs.helpers import typedefs
from takt._core.actions import backoffs
from takt._core.engines import loggers, loops
from takt._kits import loops as loopkits

logger = logging.getLogger(__name__)


class CommandTask:
    """
    An external command to be executed on every run of a loop.

    If the number of runs is limited, the token is cancelled after the last run.
    """

    def __init__(
            self,
            command: Sequence[str],
            *,
            logger: typedefs.Logger,
            token: Optional[aiostoppers.CancellationToken] = None,
            count: Optional[int] = None,
    ) -> None:
        super().__init__()
        if not command:
            raise ValueError("The command is empty.")
        self.command: List[str] = list(command)
        self.logger = logger
        self.token = token
        self.count = count
        self.runs = 0
        self.exit_codes: List[int] = []

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self.command!r}, runs={self.runs}>'

    async def run(self) -> None:
        self.runs += 1
        self.logger.debug(f"Starting the command (run #{self.runs}): {self.command!r}")
        process = await asyncio.create_subprocess_exec(*self.command)
        try:
            exit_code = await process.wait()
        except asyncio.CancelledError:
            process.terminate()
            await process.wait()
            raise
        self.exit_codes.append(exit_code)

        if exit_code == 0:
            self.logger.info(f"The command has succeeded (run #{self.runs}).")
        else:
            self.logger.warning(f"The command has failed with exit code {exit_code} (run #{self.runs}).")

        if self.count is not None and self.runs >= self.count and self.token is not None:
            self.token.cancel(aiostoppers.StopReason.EXHAUSTED)

    async def check(self) -> bool:
        """ Run the command once; return whether it has succeeded. """
        await self.run()
        return self.exit_codes[-1] == 0


def run(
        command: Sequence[str],
        *,
        settings: Optional[configuration.Settings] = None,
        count: Optional[int] = None,
        timeout: Optional[float] = None,
        deadline: Optional[datetime.datetime] = None,
        name: Optional[str] = None,
        debug: Optional[bool] = None,
) -> None:
    """
    Run the command periodically in a properly prepared event loop.

    This is the synchronous entry point for the CLI. The async code should use
    :func:`run_command` directly in its own event loop.
    """
    loopkits.run(run_command(
        command,
        settings=settings,
        count=count,
        timeout=timeout,
        deadline=deadline,
        name=name,
    ), debug=bool(debug))


def retry(
        command: Sequence[str],
        *,
        settings: Optional[configuration.Settings] = None,
        attempt_timeout: Optional[float] = None,
        timeout: Optional[float] = None,
        deadline: Optional[datetime.datetime] = None,
        name: Optional[str] = None,
        debug: Optional[bool] = None,
) -> bool:
    """
    Retry the command with the backoff until it succeeds; see :func:`retry_command`.
    """
    return loopkits.run(retry_command(
        command,
        settings=settings,
        attempt_timeout=attempt_timeout,
        timeout=timeout,
        deadline=deadline,
        name=name,
    ), debug=bool(debug))


async def run_command(
        command: Sequence[str],
        *,
        settings: Optional[configuration.Settings] = None,
        token: Optional[aiostoppers.CancellationToken] = None,
        count: Optional[int] = None,
        timeout: Optional[float] = None,
        deadline: Optional[datetime.datetime] = None,
        name: Optional[str] = None,
) -> None:
    """
    Run the command by the schedule or by the backoff from the settings.
    """
    settings = settings if settings is not None else configuration.Settings()
    token = token if token is not None else aiostoppers.CancellationToken(name='command')
    loop_logger = loggers.LoopLogger(name=name or command[0])
    task = CommandTask(command, logger=loop_logger, token=token, count=count)
    backoff = backoffs.from_settings(settings.backoff)

    with _stopping(token, timeout=timeout, deadline=deadline):
        if backoff is not None:
            await loops.backoff_until(task.run, backoff, settings.schedule.sliding, token,
                                      logger=loop_logger, settings=settings)
        else:
            await loops.jitter_until(task.run, settings.schedule.period,
                                     settings.schedule.jitter_factor,
                                     settings.schedule.sliding, token,
                                     logger=loop_logger, settings=settings)


async def retry_command(
        command: Sequence[str],
        *,
        settings: Optional[configuration.Settings] = None,
        token: Optional[aiostoppers.CancellationToken] = None,
        attempt_timeout: Optional[float] = None,
        timeout: Optional[float] = None,
        deadline: Optional[datetime.datetime] = None,
        name: Optional[str] = None,
) -> bool:
    """
    Retry the command until it succeeds; exponentially by default.

    Returns ``True`` if it has succeeded, or ``False`` if stopped before that.
    """
    settings = settings if settings is not None else configuration.Settings()
    token = token if token is not None else aiostoppers.CancellationToken(name='retry')
    loop_logger = loggers.LoopLogger(name=name or command[0])
    task = CommandTask(command, logger=loop_logger)
    backoff = retrying_backoff(settings.backoff)

    with _stopping(token, timeout=timeout, deadline=deadline):
        return await loops.poll(task.check, backoff, token,
                                sliding=settings.schedule.sliding,
                                attempt_timeout=attempt_timeout,
                                logger=loop_logger, settings=settings)


def retrying_backoff(settings: configuration.BackoffSettings) -> backoffs.BackoffManager:
    """
    Create the backoff manager for retrying: exponential unless another kind is configured.
    """
    if settings.kind is None:
        settings = dataclasses.replace(settings, kind='exponential')
    backoff = backoffs.from_settings(settings)
    assert backoff is not None  # for type-checkers
    return backoff


@contextlib.contextmanager
def _stopping(
        token: aiostoppers.CancellationToken,
        *,
        timeout: Optional[float] = None,
        deadline: Optional[datetime.datetime] = None,
) -> Iterator[None]:
    """
    Cancel the token on OS signals and on time limits while in the context.
    """
    loop = asyncio.get_running_loop()
    delay = _time_limit(timeout=timeout, deadline=deadline)
    handle = None
    if delay is not None:
        handle = loop.call_later(delay, token.cancel, aiostoppers.StopReason.DEADLINE)

    def _signalled(signum: signal.Signals) -> None:
        logger.info("Signal %s is received. The loop is stopping.", signum.name)
        token.cancel(aiostoppers.StopReason.SIGNAL)

    # On Ctrl+C or pod termination, stop the loop gracefully.
    signums: List[signal.Signals] = []
    if threading.current_thread() is threading.main_thread():
        # Handle NotImplementedError when ran on Windows since asyncio only supports Unix signals
        try:
            for signum in [signal.SIGINT, signal.SIGTERM]:
                loop.add_signal_handler(signum, _signalled, signum)
                signums.append(signum)
        except NotImplementedError:
            logger.warning("OS signals are ignored: can't add signal handler in Windows.")
    else:
        logger.warning("OS signals are ignored: running not in the main thread.")

    try:
        yield
    finally:
        for signum in signums:
            loop.remove_signal_handler(signum)
        if handle is not None:
            handle.cancel()


def _time_limit(
        *,
        timeout: Optional[float] = None,
        deadline: Optional[datetime.datetime] = None,
) -> Optional[float]:
    delays: List[float] = []
    if timeout is not None:
        delays.append(timeout)
    if deadline is not None:
        now = datetime.datetime.now(datetime.timezone.utc)
        delays.append((deadline - now).total_seconds())
    return max(0.0, min(delays)) if delays else None
