import io
import logging
import random
import re
import sys
import time

import pytest

from takt._core.engines.loggers import LoopPrefixingTextFormatter, configure
from takt.testing import FakeClock


@pytest.fixture()
def fakeclock():
    return FakeClock()


@pytest.fixture()
def rng():
    """ A reproducible source of randomness for the jitters. """
    return random.Random(123)


class Stopwatch:
    """
    Measure the real duration of a code block, also while it is still running::

        with Stopwatch() as stopwatch:
            do_something()
        assert stopwatch.seconds < 1.0
    """

    def __init__(self) -> None:
        super().__init__()
        self.started = None
        self.stopped = None

    @property
    def seconds(self):
        if self.started is None:
            return None
        return (self.stopped if self.stopped is not None else time.perf_counter()) - self.started

    def __repr__(self):
        return f'<{self.__class__.__name__}: {self.seconds}s>'

    def __enter__(self):
        self.started = time.perf_counter()
        self.stopped = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stopped = time.perf_counter()


@pytest.fixture()
def timer():
    return Stopwatch()


@pytest.fixture()
def logstream(caplog):
    """ The final output of the logs, as rendered by our own formatters. """
    logger = logging.getLogger()
    handlers = list(logger.handlers)

    # Levels & handlers as in the CLI; but the stderr output is replaced by a buffer.
    configure(verbose=True)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr:
            logger.removeHandler(handler)

    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(LoopPrefixingTextFormatter('prefix %(message)s'))
    logger.addHandler(handler)
    try:
        with caplog.at_level(logging.DEBUG):
            yield stream
    finally:
        logger.handlers[:] = handlers


@pytest.fixture()
def assert_logs(caplog):
    """
    Check that the log messages match the patterns in the order given.

    Other messages in between are allowed, unless ``strict=True``.
    The prohibited patterns must not match any message at all.
    """
    def assert_logs_fn(patterns, prohibited=(), strict=False):
        __traceback_hide__ = True
        expected = list(patterns)
        for message in caplog.messages:
            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

            matching = [idx for idx, pattern in enumerate(expected) if re.search(pattern, message)]
            if matching and matching[0] > 0:
                raise AssertionError(f"Log patterns are out of order: {expected[:matching[0]]!r}")
            elif matching:
                expected.pop(0)
            elif strict and expected:
                raise AssertionError(f"Unexpected log message: {message!r}")

        if expected:
            raise AssertionError(f"Log patterns were not found: {expected!r}")

    return assert_logs_fn
