"""
The main Kuberelay module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the library's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from kuberelay._cogs.aiokits.aiovalues import (
    Outcome,
)
from kuberelay._cogs.clients.auth import (
    APIContext,
)
from kuberelay._cogs.clients.errors import (
    APIError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    RelayError,
    UpstreamUnavailable,
    InvalidResourceKind,
    UpstreamReadFailure,
    SendFailure,
    ClientClosed,
)
from kuberelay._cogs.configs.configuration import (
    RelaySettings,
    NetworkingSettings,
    LogsSettings,
    WatchingSettings,
    ServingSettings,
)
from kuberelay._cogs.helpers.typedefs import (
    Logger,
)
from kuberelay._cogs.helpers.versions import (
    version as __version__,
)
from kuberelay._cogs.structs.bodies import (
    RawBody,
    StatusEvent,
    build_status_event,
)
from kuberelay._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
    AiohttpSession,
    ClusterInfo,
)
from kuberelay._core.actions.loggers import (
    configure,
    LogFormat,
    SessionLogger,
)
from kuberelay._core.intents.piggybacking import (
    login,
    login_with_kubeconfig,
    login_with_service_account,
)
from kuberelay._core.relaying.connections import (
    Message,
    Connection,
    WebSocketConnection,
    ConsoleConnection,
    upgrade,
)
from kuberelay._core.relaying.duplex import (
    Source,
    run as relay,
)
from kuberelay._core.relaying.relays import (
    relay_logs,
    relay_resource_status,
)

__all__ = [
    'relay_logs', 'relay_resource_status', 'relay',
    'Source', 'Outcome',
    'Message', 'Connection', 'WebSocketConnection', 'ConsoleConnection', 'upgrade',
    'configure', 'LogFormat', 'SessionLogger', 'Logger',
    'login',
    'login_with_kubeconfig',
    'login_with_service_account',
    'LoginError',
    'ConnectionInfo',
    'AiohttpSession',
    'ClusterInfo',
    'APIContext',
    'RelaySettings',
    'NetworkingSettings',
    'LogsSettings',
    'WatchingSettings',
    'ServingSettings',
    'RawBody', 'StatusEvent', 'build_status_event',
    'APIError',
    'APIUnauthorizedError',
    'APIForbiddenError',
    'APINotFoundError',
    'RelayError',
    'UpstreamUnavailable',
    'InvalidResourceKind',
    'UpstreamReadFailure',
    'SendFailure',
    'ClientClosed',
    '__version__',
]
