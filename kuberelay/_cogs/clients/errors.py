"""
Errors of the K8s API requests and of the relay sessions.

The API errors wrap the responses with HTTP statuses 400+. The few statuses
that matter for the relays (bad credentials, lacking permissions, absent pods
or resources) have their own classes; the rest are plain `APIError`.
If the API server explains the failure with a ``Status`` object in the body,
its code and message are exposed; the aiohttp's error is chained as the cause.

The relay errors describe why a relay session could not start or had to end.
They are what the callers of the relays catch. A client closing its connection
is also signalled with an exception internally (`ClientClosed`), but it is
never reported as an error to the callers: it is the normal end of a session.
"""
import collections.abc
import json
from typing import Optional

import aiohttp
from typing_extensions import Literal, TypedDict


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.19/#status-v1-meta
class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    code: int
    status: Literal["Success", "Failure"]
    reason: str
    message: str


class APIError(Exception):

    def __init__(self, payload: Optional[RawStatus], *, status: int) -> None:
        super().__init__(payload.get('message') if payload else None, payload)
        self.status = status
        self.code: Optional[int] = payload.get('code') if payload else None
        self.message: Optional[str] = payload.get('message') if payload else None


class APIUnauthorizedError(APIError):
    pass


class APIForbiddenError(APIError):
    pass


class APINotFoundError(APIError):
    pass


class RelayError(Exception):
    """ A base class for all the reasons of a relay session's failure. """


class UpstreamUnavailable(RelayError):
    """ The log stream or the watch could not be opened at all. """


class InvalidResourceKind(RelayError, ValueError):
    """ The requested resource kind is not supported by the status relay. """


class UpstreamReadFailure(RelayError):
    """ An already opened log stream or watch has failed while being read. """


class SendFailure(RelayError):
    """ The client connection has refused a message (e.g. the peer is gone). """


class ClientClosed(RelayError):
    """ The client has closed its connection. It is not an error for the callers. """


async def check_response(response: aiohttp.ClientResponse) -> None:
    """ Raise an `APIError` (or its specialisation) if the API request has failed. """
    if response.status < 400:
        return

    # The body must be read before raise_for_status(), which releases the connection.
    payload: Optional[RawStatus]
    try:
        payload = await response.json()
    except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
        payload = None

    # Only the Status objects are exposed: other bodies can contain anything.
    if not isinstance(payload, collections.abc.Mapping) or payload.get('kind') != 'Status':
        payload = None

    cls = {
        401: APIUnauthorizedError,
        403: APIForbiddenError,
        404: APINotFoundError,
    }.get(response.status, APIError)

    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise cls(payload, status=response.status) from e
