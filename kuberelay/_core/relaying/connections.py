"""
Client connections: the downstream side of the relay sessions.

A connection is a full-duplex message-oriented channel to exactly one client.
The relays only send to it; they read from it only to notice that the client
has gone (closing frames, broken sockets), which can happen at any moment.

The WebSocket implementation adapts `aiohttp.web.WebSocketResponse`.
The console implementation prints to the terminal (used by the CLI).
"""
import asyncio
import json
import logging
import sys
from typing import Any, BinaryIO, Mapping, Optional, Protocol, Union

import aiohttp
import aiohttp.web

from kuberelay._cogs.clients import errors
from kuberelay._cogs.configs import configuration

logger = logging.getLogger(__name__)

# Raw bytes for the log lines, structured objects for the status events.
Message = Union[bytes, Mapping[str, Any]]


class Connection(Protocol):

    async def send(self, message: Message) -> None:
        """ Deliver a message; raise `SendFailure` if the peer is gone. """

    async def receive(self) -> Any:
        """ Wait for a client's message; raise `ClientClosed` when closed. """

    async def close(self) -> None:
        """ Close the connection. Safe to call repeatedly and from any owner. """


class WebSocketConnection:
    """
    A connection over a prepared server-side WebSocket.

    The log lines are sent as text frames (undecodable bytes are replaced),
    the status events are sent as JSON-encoded text frames.
    """

    def __init__(self, websocket: aiohttp.web.WebSocketResponse) -> None:
        super().__init__()
        self.websocket = websocket

    async def send(self, message: Message) -> None:
        if self.websocket.closed:
            raise errors.SendFailure("The WebSocket is closed.")
        try:
            if isinstance(message, (bytes, bytearray)):
                await self.websocket.send_str(bytes(message).decode('utf-8', errors='replace'))
            else:
                await self.websocket.send_json(message)
        except (ConnectionError, RuntimeError) as e:
            raise errors.SendFailure(f"Cannot send to the WebSocket: {e!r}") from e

    async def receive(self) -> Any:
        msg = await self.websocket.receive()
        if msg.type in (aiohttp.WSMsgType.CLOSE,
                        aiohttp.WSMsgType.CLOSING,
                        aiohttp.WSMsgType.CLOSED,
                        aiohttp.WSMsgType.ERROR):
            raise errors.ClientClosed(f"The WebSocket is closed by the client: {msg.type.name}")
        return msg.data

    async def close(self) -> None:
        if not self.websocket.closed:
            await self.websocket.close()


async def upgrade(
        request: aiohttp.web.Request,
        *,
        settings: configuration.RelaySettings,
) -> WebSocketConnection:
    """
    Upgrade an HTTP request to a WebSocket connection for one relay session.

    The allowed origins come from the session's settings, so that different
    endpoints or tenants can have different policies at the same time.
    """
    origin = request.headers.get('Origin')
    allowed_origins = settings.serving.allowed_origins
    if allowed_origins is not None and origin not in allowed_origins:
        logger.warning(f"Rejecting a WebSocket from a disallowed origin: {origin!r}")
        raise aiohttp.web.HTTPForbidden(text=f"Origin is not allowed: {origin!r}")

    websocket = aiohttp.web.WebSocketResponse(
        heartbeat=settings.serving.heartbeat,
        max_msg_size=settings.serving.max_msg_size,
    )
    await websocket.prepare(request)
    return WebSocketConnection(websocket)


class ConsoleConnection:
    """
    A connection to the local terminal: the lines & events are printed out.

    The terminal never "closes" by itself: the session ends when the source
    is exhausted, or when the process is interrupted (see the stoppers).

    The writes are blocking (e.g. when piped to a pager), so they are done
    in a thread, and the event loop keeps serving the session meanwhile.
    """

    def __init__(self, stream: Optional[BinaryIO] = None) -> None:
        super().__init__()
        self._stream = stream if stream is not None else sys.stdout.buffer
        self._closed = asyncio.Event()

    async def send(self, message: Message) -> None:
        if self._closed.is_set():
            raise errors.SendFailure("The console is closed.")
        if isinstance(message, (bytes, bytearray)):
            data = bytes(message)
        else:
            data = json.dumps(message).encode('utf-8') + b'\n'
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, data)
        except (OSError, ValueError) as e:
            raise errors.SendFailure(f"Cannot write to the console: {e!r}") from e

    def _write(self, data: bytes) -> None:
        self._stream.write(data)
        self._stream.flush()

    async def receive(self) -> Any:
        await self._closed.wait()
        raise errors.ClientClosed("The console is closed.")

    async def close(self) -> None:
        self._closed.set()
