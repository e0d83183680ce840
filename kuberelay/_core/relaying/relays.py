"""
The entry points of the relays: one per relayed stream type.

Each entry point opens its source, relays it to the connection until the end
of the session, and releases everything. They block for the whole session.

The connection is owned by the relay from the moment it is passed in:
it is closed when the session ends, including when the source cannot be opened.
"""
from typing import Optional

from kuberelay._cogs.aiokits import aiotasks
from kuberelay._cogs.clients import auth, errors, logs, watching
from kuberelay._cogs.configs import configuration
from kuberelay._core.actions import loggers
from kuberelay._core.relaying import connections, duplex


async def relay_logs(
        connection: connections.Connection,
        namespace: str,
        name: str,
        *,
        context: auth.APIContext,
        settings: Optional[configuration.RelaySettings] = None,
        tail_lines: Optional[int] = None,
        stopper: Optional[aiotasks.Future] = None,
) -> None:
    """
    Relay a pod's log tail to the client, line by line.
    """
    settings = settings if settings is not None else configuration.RelaySettings()
    logger = loggers.SessionLogger(kind='pod', namespace=namespace, name=name)
    logger.debug("Relaying the log stream.")
    try:
        source = await logs.open_log_source(
            namespace=namespace,
            name=name,
            tail_lines=tail_lines,
            context=context,
            settings=settings,
            logger=logger,
        )
    except errors.UpstreamUnavailable as e:
        logger.warning(f"Log stream is unavailable: {e}")
        await connection.close()
        raise
    await duplex.run(connection, source, stopper=stopper, logger=logger)
    logger.debug("Relaying the log stream is finished.")


async def relay_resource_status(
        connection: connections.Connection,
        kind: str,
        *,
        context: auth.APIContext,
        settings: Optional[configuration.RelaySettings] = None,
        stopper: Optional[aiotasks.Future] = None,
) -> None:
    """
    Relay the status updates of a workload kind (cluster-wide) to the client.

    The kind is one of: deployment, statefulset, replicaset, daemonset
    (case-insensitive). Other kinds fail without any API requests.
    """
    settings = settings if settings is not None else configuration.RelaySettings()
    logger = loggers.SessionLogger(kind=kind.strip().lower())
    logger.debug("Relaying the status stream.")
    try:
        source = await watching.open_watch_source(
            kind=kind,
            context=context,
            settings=settings,
            logger=logger,
        )
    except (errors.InvalidResourceKind, errors.UpstreamUnavailable) as e:
        logger.warning(f"Status stream is unavailable: {e}")
        await connection.close()
        raise
    await duplex.run(connection, source, stopper=stopper, logger=logger)
    logger.debug("Relaying the status stream is finished.")
