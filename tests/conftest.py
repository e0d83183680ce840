import asyncio
import io
import json
import logging
import re
import sys
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiohttp.test_utils
import aiohttp.web
import pytest

from kuberelay._cogs.clients.auth import APIContext
from kuberelay._cogs.clients.errors import ClientClosed, SendFailure
from kuberelay._cogs.configs.configuration import RelaySettings
from kuberelay._cogs.structs.credentials import ConnectionInfo
from kuberelay._core.actions.loggers import SessionPrefixingTextFormatter, configure

Handler = Callable[[aiohttp.web.Request], Awaitable[aiohttp.web.StreamResponse]]


def pytest_configure(config):
    config.addinivalue_line('markers', "e2e: end-to-end tests with real clusters.")


@pytest.fixture()
def settings():
    settings = RelaySettings()
    settings.watching.reconnect_backoff = 0.01
    settings.watching.resync_period = None  # enabled explicitly where tested.
    return settings


#
# A fake Kubernetes API server. Reasons:
# 1. We do not test the aiohttp client, we test the layers on top of it,
#    so the real HTTP traffic is used, but the cluster is simulated.
# 2. No external calls must be made under any circumstances.
#    The unit-tests must be fully isolated from the environment.
#

class FakeAPI:
    """
    A router of the fake API server with pre-arranged responses.

    The handlers are registered per method, path, and the watch-mode flag
    (the listings & the watch-streams share the same path). If several
    handlers are added for the same route, they are used once each
    in the order of addition, and the last one remains for all further calls.
    Unknown routes reply with "404 Not Found" as K8s does.

    The hanging streams wait until the end of the test, unless closed
    client-side earlier (and even then, till the end of the test).
    """

    def __init__(self) -> None:
        super().__init__()
        self.server: str = ''
        self.requests: List[aiohttp.web.Request] = []
        self.finished = asyncio.Event()
        self._handlers: Dict[Tuple[str, str, bool], List[Handler]] = {}

    def add(self, path: str, handler: Handler, *, method: str = 'get', watch: bool = False) -> None:
        self._handlers.setdefault((method.lower(), path, watch), []).append(handler)

    def requested(self, path: str, *, watch: bool = False) -> List[aiohttp.web.Request]:
        return [request for request in self.requests
                if request.path == path and ('watch' in request.query) == watch]

    async def dispatch(self, request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
        self.requests.append(request)
        key = (request.method.lower(), request.path, 'watch' in request.query)
        handlers = self._handlers.get(key)
        if not handlers:
            return status(404, "Not Found")
        handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        return await handler(request)

    def json(self, data: Any, *, code: int = 200) -> Handler:
        async def handler(request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
            return aiohttp.web.json_response(data, status=code)
        return handler

    def status(self, code: int, message: str = '') -> Handler:
        async def handler(request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
            return status(code, message)
        return handler

    def stream(self, *chunks: bytes, hang: bool = True) -> Handler:
        async def handler(request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
            response = aiohttp.web.StreamResponse()
            await response.prepare(request)
            for chunk in chunks:
                await response.write(chunk)
            if hang:
                await self.finished.wait()
            return response
        return handler

    def events(self, *events: Any, hang: bool = True) -> Handler:
        return self.stream(*[json.dumps(event).encode('utf-8') + b'\n' for event in events],
                           hang=hang)


def status(code: int, message: str = '') -> aiohttp.web.Response:
    return aiohttp.web.json_response({'kind': 'Status', 'code': code, 'message': message},
                                     status=code)


@pytest.fixture()
async def fake_api():
    api = FakeAPI()
    app = aiohttp.web.Application()
    app.router.add_route('*', '/{tail:.*}', api.dispatch)
    server = aiohttp.test_utils.TestServer(app)
    await server.start_server()
    api.server = str(server.make_url('/'))
    try:
        yield api
    finally:
        api.finished.set()
        await server.close()


@pytest.fixture()
async def context(fake_api):
    async with APIContext(ConnectionInfo(server=fake_api.server)) as context:
        yield context


#
# Fake relay parties: a client connection and an upstream source.
#

class FakeConnection:
    """ A client that accepts everything until it leaves (or is told to fail). """

    def __init__(self) -> None:
        super().__init__()
        self.sent: List[Any] = []
        self.close_calls = 0
        self.send_error: Optional[Exception] = None
        self._gone = asyncio.Event()

    async def send(self, message: Any) -> None:
        if self.send_error is not None:
            raise self.send_error
        if self.close_calls:
            raise SendFailure("The fake connection is closed.")
        self.sent.append(message)

    async def receive(self) -> Any:
        await self._gone.wait()
        raise ClientClosed("The fake client has left.")

    async def close(self) -> None:
        self.close_calls += 1

    def leave(self) -> None:
        self._gone.set()


class FakeSource:
    """ A source of pre-fed messages: ``None`` means exhaustion, exceptions are raised. """

    def __init__(self, *items: Any) -> None:
        super().__init__()
        self.close_calls = 0
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.feed(*items)

    def feed(self, *items: Any) -> None:
        for item in items:
            self._queue.put_nowait(item)

    async def next(self) -> Any:
        item = await self._queue.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1


@pytest.fixture()
def connection():
    return FakeConnection()


@pytest.fixture()
def make_source():
    return FakeSource


#
# Helpers for the logging checks.
#

@pytest.fixture()
def logstream(caplog):
    """ Prefixing is done at the final output. We have to intercept it. """

    logger = logging.getLogger()
    handlers = list(logger.handlers)

    # Setup all log levels of sub-libraries. A side-effect: the handlers are also added.
    configure(verbose=True)

    # Remove any stream handlers added in the step above. But keep the caplog's handlers.
    for handler in list(logger.handlers):
        if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr:
            logger.removeHandler(handler)

    # Inject our stream-intercepting handler.
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    formatter = SessionPrefixingTextFormatter('prefix %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    try:
        with caplog.at_level(logging.DEBUG):
            yield stream
    finally:
        logger.removeHandler(handler)
        logger.handlers[:] = handlers  # undo `configure()`


@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    def assert_logs_fn(patterns, prohibited=[]):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            if remaining_patterns and re.search(remaining_patterns[0], message):
                remaining_patterns[:1] = []

            # Check that the prohibited patterns do not appear in any message.
            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        # If all patterns have been matched in order, we are done.
        # if some are left, but the messages are over, then we fail.
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
