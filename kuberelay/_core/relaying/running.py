"""
Running the relays in the terminal: for the CLI, debugging, and demos.

The terminal is the client: the relayed log lines and status events
are printed to stdout. On Ctrl+C or SIGTERM, the session ends gracefully,
exactly as if a WebSocket client has closed its connection.
"""
import asyncio
import logging
import signal
import threading
from typing import Any, BinaryIO, Callable, Coroutine, Optional

from kuberelay._cogs.aiokits import aiotasks
from kuberelay._cogs.clients import auth
from kuberelay._cogs.configs import configuration
from kuberelay._cogs.structs import credentials
from kuberelay._core.relaying import connections

logger = logging.getLogger(__name__)

RelayFn = Callable[..., Coroutine[Any, Any, None]]


def run(
        relay: RelayFn,
        *,
        info: credentials.ClusterInfo,
        settings: Optional[configuration.RelaySettings] = None,
        **kwargs: Any,
) -> None:
    """
    Run one relay session synchronously, with the terminal as the client.
    """
    asyncio.run(console_session(relay, info=info, settings=settings, **kwargs))


async def console_session(
        relay: RelayFn,
        *,
        info: credentials.ClusterInfo,
        settings: Optional[configuration.RelaySettings] = None,
        stream: Optional[BinaryIO] = None,
        stop_flag: Optional[aiotasks.Future] = None,
        **kwargs: Any,
) -> None:
    loop = asyncio.get_running_loop()
    stopper: aiotasks.Future = stop_flag if stop_flag is not None else loop.create_future()
    signals_installed = _install_signal_handlers(loop, stopper)
    connection = connections.ConsoleConnection(stream=stream)
    try:
        async with auth.APIContext(info) as context:
            await relay(connection, context=context, settings=settings, stopper=stopper, **kwargs)
    finally:
        if signals_installed:
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGTERM)


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stopper: aiotasks.Future) -> bool:

    def stop(signum: signal.Signals) -> None:
        logger.info(f"Signal {signum.name} is received. Relaying is stopped.")
        if not stopper.done():
            stopper.set_result(signum)

    # On Ctrl+C or pod termination, end the session gracefully.
    if threading.current_thread() is threading.main_thread():
        # Handle NotImplementedError when ran on Windows since asyncio only supports Unix signals
        try:
            loop.add_signal_handler(signal.SIGINT, stop, signal.SIGINT)
            loop.add_signal_handler(signal.SIGTERM, stop, signal.SIGTERM)
        except NotImplementedError:
            logger.warning("OS signals are ignored: can't add signal handler in Windows.")
            return False
        else:
            return True
    else:
        logger.warning("OS signals are ignored: running not in the main thread.")
        return False
