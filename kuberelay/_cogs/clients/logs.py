"""
Tailing the pods' logs.

A pod's log is requested in the follow-mode: the API server first sends
the few most recent lines, and then keeps the connection open and sends
the new lines as they are written, until the container exits (or forever).

The log is relayed line by line, as raw bytes, with no decoding or parsing:
it can contain anything, including non-UTF-8 binary data and huge lines.
"""
import asyncio
import logging
from typing import AsyncIterator, Optional

import aiohttp

from kuberelay._cogs.clients import api, auth, errors
from kuberelay._cogs.configs import configuration
from kuberelay._cogs.helpers import typedefs
from kuberelay._cogs.structs import references

logger = logging.getLogger(__name__)


class LogSource:
    """
    A source of log lines from a single open log stream.

    The lines are produced in the order they come from the API server.
    Every line includes its trailing newline, except the last one if the stream
    ends in the middle of a line: such a line is produced once, and the source
    is exhausted on the next read.
    """

    def __init__(
            self,
            response: aiohttp.ClientResponse,
            *,
            chunk_size: int = 1024 * 1024,
            logger: typedefs.Logger = logger,
    ) -> None:
        super().__init__()
        self._response = response
        self._lines: AsyncIterator[bytes] = api.iter_lines(response.content, chunk_size=chunk_size)
        self._logger = logger
        self._closed = False

    async def next(self) -> Optional[bytes]:
        """ Get the next line, or ``None`` if the stream is over. """
        if self._closed:
            return None
        try:
            return await self._lines.__anext__()
        except StopAsyncIteration:
            return None
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError) as e:
            raise errors.UpstreamReadFailure(f"Reading the log stream has failed: {e!r}") from e

    async def close(self) -> None:
        """ Release the stream. Safe to call repeatedly. """
        if not self._closed:
            self._closed = True
            self._response.close()
            await self._lines.aclose()  # type: ignore[attr-defined]
            self._logger.debug("Log stream is closed.")


async def open_log_source(
        namespace: str,
        name: str,
        *,
        tail_lines: Optional[int] = None,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        logger: typedefs.Logger = logger,
) -> LogSource:
    """
    Start following a pod's log, beginning a few lines before "now".

    Any failure to open the stream (e.g. the pod is absent or not running yet,
    or the API is not accessible) is reported as `UpstreamUnavailable`.
    """
    tail_lines = tail_lines if tail_lines is not None else settings.logs.tail_lines
    params = {'follow': 'true', 'tailLines': str(tail_lines)}
    url = references.PODS.get_url(namespace=namespace, name=name, subresource='log', params=params)

    connect_timeout = (
        settings.logs.connect_timeout if settings.logs.connect_timeout is not None else
        settings.networking.connect_timeout if settings.networking.connect_timeout is not None else
        settings.networking.request_timeout
    )

    try:
        response = await api.open_stream(
            url=url,
            logger=logger,
            context=context,
            settings=settings,
            timeout=aiohttp.ClientTimeout(
                total=settings.logs.client_timeout,
                sock_connect=connect_timeout,
            ),
        )
    except (errors.APIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise errors.UpstreamUnavailable(f"Cannot open the log stream for pod {name!r} "
                                         f"in {namespace!r}: {e!r}") from e

    logger.debug(f"Log stream is opened for pod {name!r} in {namespace!r} (tail={tail_lines}).")
    return LogSource(response, chunk_size=settings.logs.chunk_size, logger=logger)
