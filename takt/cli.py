import datetime
import functools
from typing import Any, Callable, List, Optional

import click
import iso8601

from takt._cogs.configs import configuration
from takt._core.actions import backoffs
from takt._core.engines import loggers
from takt._core.reactor import running


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


class DeadlineParamType(click.ParamType):
    name = 'deadline'

    def convert(self, value: Any, param: Any, ctx: Any) -> datetime.datetime:
        if isinstance(value, datetime.datetime):
            return value
        try:
            return iso8601.parse_date(value)
        except iso8601.ParseError as e:
            self.fail(f"{value!r} is not an ISO8601 timestamp: {e}", param, ctx)


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-loopkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: Optional[bool] = False,
                log_loopkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_loopkey=log_loopkey, log_prefix=log_prefix)
        return fn(*args, debug=debug, **kwargs)

    return wrapper


def settings_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to load the settings from a file and override them with the options. """
    @click.option('-c', '--config', 'config_path', type=click.Path(exists=True, dir_okay=False))
    @click.option('-p', '--period', type=float)
    @click.option('-j', '--jitter-factor', type=float)
    @click.option('--sliding/--non-sliding', default=None)
    @click.option('-b', '--backoff', 'backoff_kind', type=click.Choice(['exponential', 'jittered']))
    @click.option('--initial', type=float)
    @click.option('--maximum', type=float)
    @click.option('--reset', type=float)
    @click.option('--factor', type=float)
    @click.option('--jitter', type=float)
    @click.option('--max-workers', type=click.IntRange(min=1))
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(config_path: Optional[str],
                period: Optional[float],
                jitter_factor: Optional[float],
                sliding: Optional[bool],
                backoff_kind: Optional[str],
                initial: Optional[float],
                maximum: Optional[float],
                reset: Optional[float],
                factor: Optional[float],
                jitter: Optional[float],
                max_workers: Optional[int],
                *args: Any, **kwargs: Any) -> Any:
        try:
            settings = (configuration.load_settings(config_path) if config_path is not None else
                        configuration.Settings())
        except configuration.SettingsError as e:
            raise click.BadParameter(str(e), param_hint='--config')

        overrides = [
            (settings.schedule, 'period', period),
            (settings.schedule, 'jitter_factor', jitter_factor),
            (settings.schedule, 'sliding', sliding),
            (settings.backoff, 'kind', backoff_kind),
            (settings.backoff, 'initial', initial),
            (settings.backoff, 'maximum', maximum),
            (settings.backoff, 'reset', reset),
            (settings.backoff, 'factor', factor),
            (settings.backoff, 'jitter', jitter),
        ]
        for group, name, value in overrides:
            if value is not None:
                setattr(group, name, value)
        if max_workers is not None:
            settings.execution.max_workers = max_workers

        # Fail fast on the misconfigured backoffs, before any command is executed.
        try:
            backoffs.from_settings(settings.backoff)
        except backoffs.BackoffConfigError as e:
            raise click.UsageError(str(e))

        return fn(*args, settings=settings, **kwargs)

    return wrapper


@click.version_option(prog_name='takt')
@click.group(name='takt', context_settings=dict(
    auto_envvar_prefix='TAKT',
))
def main() -> None:
    pass


@main.command(context_settings=dict(ignore_unknown_options=True))
@logging_options
@settings_options
@click.option('-n', '--count', type=click.IntRange(min=1))
@click.option('-t', '--timeout', type=float)
@click.option('--deadline', type=DeadlineParamType())
@click.option('--name', type=str)
@click.argument('command', nargs=-1, required=True, type=click.UNPROCESSED)
def run(
        command: List[str],
        settings: configuration.Settings,
        count: Optional[int],
        timeout: Optional[float],
        deadline: Optional[datetime.datetime],
        name: Optional[str],
        debug: bool,
) -> None:
    """ Run a command periodically until stopped. """
    try:
        running.run(
            command,
            settings=settings,
            count=count,
            timeout=timeout,
            deadline=deadline,
            name=name,
            debug=debug,
        )
    except OSError as e:
        raise click.ClickException(f"Cannot execute {command[0]!r}: {e}")


@main.command(context_settings=dict(ignore_unknown_options=True))
@logging_options
@settings_options
@click.option('-a', '--attempt-timeout', type=float)
@click.option('-t', '--timeout', type=float)
@click.option('--deadline', type=DeadlineParamType())
@click.option('--name', type=str)
@click.argument('command', nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def retry(
        ctx: click.Context,
        command: List[str],
        settings: configuration.Settings,
        attempt_timeout: Optional[float],
        timeout: Optional[float],
        deadline: Optional[datetime.datetime],
        name: Optional[str],
        debug: bool,
) -> None:
    """ Retry a command with backoff until it succeeds. """
    try:
        running.retrying_backoff(settings.backoff)
    except backoffs.BackoffConfigError as e:
        raise click.UsageError(str(e))

    try:
        succeeded = running.retry(
            command,
            settings=settings,
            attempt_timeout=attempt_timeout,
            timeout=timeout,
            deadline=deadline,
            name=name,
            debug=debug,
        )
    except OSError as e:
        raise click.ClickException(f"Cannot execute {command[0]!r}: {e}")
    if not succeeded:
        ctx.exit(1)
