"""
All configuration flags, options, settings to fine-tune the relays.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).

The settings are passed explicitly to every relay session. There is no global
state: two sessions can run with different settings in the same process.
"""
import dataclasses
from typing import Collection, Optional


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the regular (non-streaming) API requests, such as listings.
    """

    connect_timeout: Optional[float] = 30
    """
    A timeout for the connection establishment to the API server.
    """


@dataclasses.dataclass
class LogsSettings:

    tail_lines: int = 30
    """
    How many most recent lines of a pod's log to relay before following it.
    """

    client_timeout: Optional[float] = None
    """
    The maximum duration of one log-tailing stream. ``None`` means forever.
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for opening a log stream. If not set, the networking one is used.
    """

    chunk_size: int = 1024 * 1024
    """
    How many bytes to read from the log stream at once (at most).
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: Optional[float] = None
    """
    The maximum duration of one watch request, as enforced by the API server
    (sent as ``timeoutSeconds``). The watch is then re-established silently.
    """

    client_timeout: Optional[float] = None
    """
    The maximum duration of one watch request, as enforced client-side.
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for opening a watch request. If not set, the networking one is used.
    """

    reconnect_backoff: float = 0.1
    """
    How long should a pause be between the watch requests (to prevent flooding).
    """

    resync_period: Optional[float] = 1.0
    """
    How often to re-emit all the known resources as updated (in seconds).
    This is how the clients learn the state of the resources that do not change.
    ``None`` disables the resyncs: only the real modifications are emitted.
    """


@dataclasses.dataclass
class ServingSettings:

    allowed_origins: Optional[Collection[str]] = None
    """
    Which ``Origin`` headers are accepted when upgrading to WebSockets.
    ``None`` accepts any origin (and requests without an origin).
    """

    heartbeat: Optional[float] = None
    """
    How often to ping the WebSocket clients (in seconds), if at all.
    """

    max_msg_size: int = 4 * 1024 * 1024
    """
    The maximum size of the incoming client messages (they are ignored anyway).
    """


@dataclasses.dataclass
class RelaySettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    logs: LogsSettings = dataclasses.field(default_factory=LogsSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    serving: ServingSettings = dataclasses.field(default_factory=ServingSettings)
