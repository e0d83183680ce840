"""
All the structures coming from/to the Kubernetes API and to the clients.

For strict type-checking, they are detailed to the per-field level
(e.g. `TypedDict` instead of just ``Mapping[Any, Any]``) --
as used by the relays. The payloads can have arbitrary fields at runtime,
which are not declared in the type definitions at type-checking time.
"""
from typing import Any, List, Mapping, Union

from typing_extensions import Literal, TypedDict

# Everything marked "raw" is a plain unwrapped unprocessed data as JSON-decoded
# from Kubernetes API, usually as retrieved in watching or listing API calls.
RawInputType = Literal['ADDED', 'MODIFIED', 'DELETED', 'BOOKMARK', 'ERROR']
StatusEventType = Literal['UPDATE']


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    resourceVersion: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


# A special payload for type==ERROR (this is not a connection or client error).
class RawError(TypedDict, total=False):
    apiVersion: str     # usually: Literal['v1']
    kind: str           # usually: Literal['Status']
    code: int
    reason: str
    status: str
    message: str


class RawListMeta(TypedDict, total=False):
    resourceVersion: str


class RawList(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawListMeta
    items: List[RawBody]


# As received from the watch-stream before processing the errors and special cases.
class RawInput(TypedDict, total=True):
    type: RawInputType
    object: Union[RawBody, RawError]


# As sent to the clients of the status relay. The field names are a part of the wire format.
StatusEvent = TypedDict('StatusEvent', {
    'EventType': StatusEventType,
    'Kind': str,
    'Object': RawBody,
})


def build_status_event(*, kind: str, body: RawBody) -> StatusEvent:
    return {'EventType': 'UPDATE', 'Kind': kind, 'Object': body}
