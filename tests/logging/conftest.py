import logging.handlers

import pytest

from takt import LoopLogger


@pytest.fixture(autouse=True)
def _caplog_all_levels(caplog):
    caplog.set_level(0)


@pytest.fixture()
def buffer():
    handler = logging.handlers.BufferingHandler(capacity=100)
    logger = logging.getLogger('takt.tests')
    logger.addHandler(handler)
    try:
        yield handler.buffer
    finally:
        logger.removeHandler(handler)


@pytest.fixture()
def loop_record(buffer):
    logger = LoopLogger(name='loop1', logger=logging.getLogger('takt.tests'))
    logger.info("hello")
    return buffer[0]


@pytest.fixture()
def plain_record(buffer):
    logger = logging.getLogger('takt.tests')
    logger.info("hello")
    return buffer[0]
