import functools
import logging

import click.testing
import pytest

from kuberelay.cli import main
from kuberelay._cogs.structs.credentials import ConnectionInfo


@pytest.fixture(autouse=True)
def _restore_root_logger():
    # The CLI configures the logging globally. Undo it for other tests.
    logger = logging.getLogger()
    handlers = list(logger.handlers)
    level = logger.level
    try:
        yield
    finally:
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
def login(mocker):
    return mocker.patch('kuberelay._core.intents.piggybacking.login',
                        return_value=ConnectionInfo(server='https://login-host',
                                                    default_namespace='login-ns'))


@pytest.fixture()
def real_run(mocker):
    return mocker.patch('kuberelay._core.relaying.running.run')
