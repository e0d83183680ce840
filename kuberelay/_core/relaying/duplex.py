"""
The generic coordinator of a relay session: one source, one connection.

Two concurrent tasks run in every session:

* The pump takes the messages from the source and sends them to the client,
  one by one, in the same order. It ends when the source is exhausted (fine),
  when the source fails (an error), or when the client refuses a message
  (an error).
* The watcher reads from the client only to notice the client's leaving.
  Without it, a session waiting for a next log line (which can take hours)
  would never notice that nobody listens anymore. Any reading failure,
  including the normal closing handshake, ends the session -- fine, no error.

Both tasks report to a single first-result-wins outcome. Once it is decided,
the other task is cancelled and awaited, the source and the connection are
closed exactly once, and the first result is returned or raised.
All the later results (e.g. the pump failing because the connection is closed)
are discarded.

An optional outer stopper (a future, e.g. a request deadline or a shutdown)
ends the session the same way as the client leaving: fine, with no error.
"""
import asyncio
import logging
from typing import Any, Optional, Protocol

from kuberelay._cogs.aiokits import aiotasks, aiovalues
from kuberelay._cogs.clients import errors
from kuberelay._cogs.helpers import typedefs
from kuberelay._core.relaying import connections

logger = logging.getLogger(__name__)


class Source(Protocol):

    async def next(self) -> Optional[Any]:
        """ Get the next message, or ``None`` when exhausted; raise on failures. """

    async def close(self) -> None:
        """ Release the upstream resources. Safe to call repeatedly. """


async def run(
        connection: connections.Connection,
        source: Source,
        *,
        stopper: Optional[aiotasks.Future] = None,
        logger: typedefs.Logger = logger,
) -> None:
    """
    Relay the source to the connection until either of them is over.

    Returns normally if the source is exhausted, or the client has gone,
    or the stopper is set. Raises the error that has ended the session
    otherwise (`SendFailure`, `UpstreamReadFailure`, or anything unexpected).
    """
    outcome: aiovalues.Outcome[Optional[BaseException]] = aiovalues.Outcome()

    def stopper_callback(_: Any) -> None:
        if outcome.set(None):
            logger.debug("Relaying is stopped from outside.")

    watcher = asyncio.create_task(_watch_closing(connection, outcome=outcome, logger=logger),
                                  name="relay close-watcher")
    pump = asyncio.create_task(_pump_messages(connection, source, outcome=outcome, logger=logger),
                               name="relay pump")
    if stopper is not None:
        stopper.add_done_callback(stopper_callback)

    try:
        error = await outcome.wait()
    finally:
        if stopper is not None:
            stopper.remove_done_callback(stopper_callback)
        try:
            await aiotasks.stop([watcher, pump], title="relay", quiet=True, logger=logger)
        finally:
            try:
                await source.close()
            finally:
                await connection.close()

    if error is not None:
        raise error


async def _watch_closing(
        connection: connections.Connection,
        *,
        outcome: aiovalues.Outcome[Optional[BaseException]],
        logger: typedefs.Logger,
) -> None:
    try:
        while True:
            await connection.receive()  # the client's messages are ignored.
    except errors.ClientClosed:
        if outcome.set(None):
            logger.debug("Relaying is over: the client has closed the connection.")
    except Exception as e:
        if outcome.set(None):
            logger.debug(f"Relaying is over: the client has gone: {e!r}")


async def _pump_messages(
        connection: connections.Connection,
        source: Source,
        *,
        outcome: aiovalues.Outcome[Optional[BaseException]],
        logger: typedefs.Logger,
) -> None:
    try:
        while True:
            message = await source.next()
            if message is None:
                if outcome.set(None):
                    logger.debug("Relaying is over: the source is exhausted.")
                return
            await connection.send(message)
    except (errors.SendFailure, errors.UpstreamReadFailure) as e:
        if outcome.set(e):
            logger.debug(f"Relaying has failed: {e}")
    except Exception as e:
        if outcome.set(e):
            logger.exception(f"Relaying has failed unexpectedly: {e!r}")
