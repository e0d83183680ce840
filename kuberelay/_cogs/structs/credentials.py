"""
Connection-related structures for the cluster API client.

The relay does not authenticate by itself and does not refresh credentials:
it consumes an already-resolved set of them. This module only gives them
a structured and type-annotated form, limited to what a generic HTTP client
can use:

* TCP server host & port.
* SSL verification/ignorance flag.
* SSL certificate authority.
* SSL client certificate and its private key.
* HTTP ``Authorization: Basic username:password``.
* HTTP ``Authorization: Bearer token`` (or other schemes: Bearer, Digest, etc).
* The default namespace for the cases when this is implied.
"""
import dataclasses
from typing import Optional, Union

import aiohttp


class LoginError(Exception):
    """ Raised when no credentials can be found for the cluster API. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    """
    A single endpoint with specific credentials and connection flags to use.
    """
    server: str  # e.g. "https://localhost:443"
    ca_path: Optional[str] = None
    ca_data: Optional[Union[str, bytes]] = None
    insecure: Optional[bool] = None
    username: Optional[str] = None
    password: Optional[str] = None
    scheme: Optional[str] = None  # RFC-7235/5.1: e.g. Bearer, Basic, Digest, etc.
    token: Optional[str] = None
    certificate_path: Optional[str] = None
    certificate_data: Optional[Union[str, bytes]] = None
    private_key_path: Optional[str] = None
    private_key_data: Optional[Union[str, bytes]] = None
    default_namespace: Optional[str] = None
    priority: int = 0


@dataclasses.dataclass(frozen=True)
class AiohttpSession:
    """
    An externally prepared aiohttp session with its own authentication.

    The session is owned by its creator: the relay does not close it.
    """
    aiohttp_session: aiohttp.ClientSession
    server: str
    default_namespace: Optional[str] = None


ClusterInfo = Union[ConnectionInfo, AiohttpSession]
