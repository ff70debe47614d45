import functools
import logging

import click.testing
import pytest

from takt.cli import main


@pytest.fixture(autouse=True)
def _restore_root_logging():
    logger = logging.getLogger()
    handlers = logger.handlers[:]
    level = logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)


@pytest.fixture()
def real_run(mocker):
    return mocker.patch('takt._core.reactor.running.run')


@pytest.fixture()
def real_retry(mocker):
    return mocker.patch('takt._core.reactor.running.retry', return_value=True)
