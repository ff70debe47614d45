"""
Logging of the loops: the per-loop loggers and the formatters for them.

Every loop can be given its own logger. :class:`LoopLogger` carries
the loop's name with every record, so that the messages of many loops
running in the same process can be told apart: either as a ``[name]``
prefix in the text logs, or as a separate field in the JSON logs.
"""
import copy
import enum
import logging
from typing import TYPE_CHECKING, Any, MutableMapping, Optional, TextIO, Tuple

import pythonjsonlogger.core
import pythonjsonlogger.json

DEFAULT_JSON_LOOPKEY = 'loop'
""" A key for the loop names in JSON logs, as seen by the log parsers. """


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'


class LoopFormatter(logging.Formatter):
    pass


class LoopTextFormatter(LoopFormatter, logging.Formatter):
    pass


class LoopJsonFormatter(LoopFormatter, pythonjsonlogger.json.JsonFormatter):
    def __init__(
            self,
            *args: Any,
            loopkey: Optional[str] = None,
            **kwargs: Any,
    ) -> None:
        # Avoid type checking, as the args are not in the parent consructor.
        reserved_attrs = kwargs.pop('reserved_attrs', pythonjsonlogger.core.RESERVED_ATTRS)
        reserved_attrs = set(reserved_attrs)
        reserved_attrs |= {'takt_loop'}
        kwargs.update(reserved_attrs=reserved_attrs)
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self._loopkey: str = loopkey or DEFAULT_JSON_LOOPKEY

    def add_fields(
            self,
            log_record: MutableMapping[str, Any],
            record: logging.LogRecord,
            message_dict: MutableMapping[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)  # type: ignore

        if self._loopkey and hasattr(record, 'takt_loop'):
            log_record[self._loopkey] = getattr(record, 'takt_loop')

        if 'severity' not in log_record:
            log_record['severity'] = (
                "debug" if record.levelno <= logging.DEBUG else
                "info" if record.levelno <= logging.INFO else
                "warn" if record.levelno <= logging.WARNING else
                "error" if record.levelno <= logging.ERROR else
                "fatal")


class LoopPrefixingMixin(LoopFormatter):
    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, 'takt_loop', None):
            name = getattr(record, 'takt_loop')
            record = copy.copy(record)  # shallow
            record.msg = f"[{name}] {record.msg}"
        return super().format(record)


class LoopPrefixingTextFormatter(LoopPrefixingMixin, LoopTextFormatter):
    pass


class LoopPrefixingJsonFormatter(LoopPrefixingMixin, LoopJsonFormatter):
    pass


class LoopLogger(logging.LoggerAdapter):  # type: ignore
    """
    A logger/adapter to carry the loop's name for formatting.

    The name is then used for formatting the per-loop messages
    in :class:`LoopPrefixingMixin` and in :class:`LoopJsonFormatter`.
    """

    def __init__(self, *, name: str, logger: Optional[logging.Logger] = None) -> None:
        super().__init__(logger if logger is not None else loops_logger, dict(takt_loop=name))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> Tuple[str, MutableMapping[str, Any]]:
        # Native logging overwrites the message's extra with the adapter's extra.
        # We merge them, so that both message's & adapter's extras are available.
        kwargs["extra"] = dict(self.extra or {}, **kwargs.get('extra', {}))
        return msg, kwargs


loops_logger = logging.getLogger('takt.loops')


# Our own handlers are replaced on every re-configuration, the others are kept.
if TYPE_CHECKING:
    class _TaktStreamHandler(logging.StreamHandler[TextIO]):
        pass
else:
    class _TaktStreamHandler(logging.StreamHandler):
        pass


def configure(
        debug: Optional[bool] = None,
        verbose: Optional[bool] = None,
        quiet: Optional[bool] = None,
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_loopkey: Optional[str] = None,
) -> None:
    """
    Send all the logs to stderr in the requested format, as the CLI does.
    """
    level = logging.DEBUG if debug or verbose else logging.WARNING if quiet else logging.INFO
    handler = _TaktStreamHandler()
    handler.setFormatter(make_formatter(log_format=log_format, log_prefix=log_prefix,
                                        log_loopkey=log_loopkey))
    root = logging.getLogger()
    root.handlers[:] = [h for h in root.handlers if not isinstance(h, _TaktStreamHandler)]
    root.addHandler(handler)
    root.setLevel(level)

    # The event loop's own chatter is only of interest when debugging.
    asyncio_logger = logging.getLogger('asyncio')
    asyncio_logger.propagate = bool(debug)
    if not debug:
        asyncio_logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_loopkey: Optional[str] = None,
) -> LoopFormatter:
    """
    Pick the formatter for the format; the prefixes are on by default for texts only.
    """
    if log_prefix is None:
        log_prefix = log_format is not LogFormat.JSON

    if log_format is LogFormat.JSON:
        json_cls = LoopPrefixingJsonFormatter if log_prefix else LoopJsonFormatter
        return json_cls(loopkey=log_loopkey)

    if isinstance(log_format, LogFormat):
        fmt = log_format.value
    elif isinstance(log_format, str):
        fmt = log_format
    else:
        raise ValueError(f"Unsupported log format: {log_format!r}")
    text_cls = LoopPrefixingTextFormatter if log_prefix else LoopTextFormatter
    return text_cls(fmt)
