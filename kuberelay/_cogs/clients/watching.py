"""
Watching the workload controllers and streaming their status updates.

Every watch source is an independent informer of its own: it lists
the resources cluster-wide, then watches them from the listed resource version,
and keeps a local store of the resources' latest bodies.
It has its own background synchronisation tasks and its own queue of events,
so stopping one source never affects other sources watching the same kind.

Only the modifications are produced as status events. The initial listing,
the additions, and the deletions only update the local store. The re-listings
(after the resource versions expire) produce the status events for
the resources that have changed while the watch-stream was disconnected.

Periodically, all the stored resources are re-emitted as if modified (resyncs):
this is how the clients learn the current state of the resources that do not
change. The first resync happens one period after the source is started.
"""
import asyncio
import contextlib
import enum
import logging
from typing import Dict, Iterable, List, Optional, Tuple, Union, cast

import aiohttp

from kuberelay._cogs.aiokits import aiotasks
from kuberelay._cogs.clients import api, auth, errors
from kuberelay._cogs.configs import configuration
from kuberelay._cogs.helpers import typedefs
from kuberelay._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

HTTP_GONE_CODE = 410


class WatchingError(Exception):
    """
    Raised when an unexpected error happens in the watch-stream API.
    """


class WatchState(enum.Enum):
    CREATED = enum.auto()  # the queue and the store exist, nothing is requested yet.
    RUNNING = enum.auto()  # the background synchronisation is feeding the queue.
    STOPPED = enum.auto()  # nothing is fed anymore, the queue is abandoned.


# Either an event to deliver, a failure to raise, or a marker of the end of the stream.
_QueueItem = Union[bodies.StatusEvent, errors.UpstreamReadFailure, None]


def resolve_kind(kind: str) -> Tuple[str, references.Resource]:
    """
    Normalise the requested kind and find its resource; fail if unsupported.
    """
    normalised = kind.strip().lower()
    try:
        return normalised, references.WORKLOADS[normalised]
    except KeyError:
        supported = ', '.join(sorted(references.WORKLOADS))
        raise errors.InvalidResourceKind(f"Unsupported resource kind: {kind!r}; "
                                         f"expected one of: {supported}.") from None


class WatchSource:
    """
    A source of status events for one resource kind across the whole cluster.
    """

    def __init__(
            self,
            kind: str,
            resource: references.Resource,
            *,
            context: auth.APIContext,
            settings: configuration.RelaySettings,
            logger: typedefs.Logger = logger,
    ) -> None:
        super().__init__()
        self.kind = kind
        self.resource = resource
        self._context = context
        self._settings = settings
        self._logger = logger
        self._state = WatchState.CREATED
        self._queue: asyncio.Queue[_QueueItem] = asyncio.Queue()
        self._store: Dict[str, bodies.RawBody] = {}  # uid -> the latest body
        self._tasks: List[aiotasks.Task] = []

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self.kind}: {self._state.name.lower()}>'

    @property
    def state(self) -> WatchState:
        return self._state

    async def start(self) -> None:
        """
        List the resources and start watching them in the background.

        The initial listing is done before returning, so that the obvious
        problems (missing API, lacking permissions) are reported right away.
        """
        if self._state is not WatchState.CREATED:
            raise RuntimeError(f"The watch source can be started only once: {self!r}")
        try:
            bodies_, resource_version = await self._list()
        except (errors.APIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise errors.UpstreamUnavailable(f"Cannot list {self.resource!r}: {e!r}") from e
        self._replace(bodies_, emit=False)
        self._tasks.append(asyncio.create_task(self._synchronise(resource_version),
                                               name=f"status watcher for {self.resource!r}"))
        resync_period = self._settings.watching.resync_period
        if resync_period is not None:
            self._tasks.append(asyncio.create_task(self._resync(resync_period),
                                                   name=f"status resyncer for {self.resource!r}"))
        self._state = WatchState.RUNNING
        self._logger.debug(f"Status stream is opened for {self.resource!r} cluster-wide.")

    async def next(self) -> Optional[bodies.StatusEvent]:
        """ Get the next status event, or ``None`` if the source is stopped. """
        if self._state is WatchState.STOPPED:
            return None
        item = await self._queue.get()
        if isinstance(item, errors.UpstreamReadFailure):
            raise item
        return item

    async def close(self) -> None:
        """ Stop the background synchronisation. Safe to call repeatedly. """
        if self._state is WatchState.STOPPED:
            return
        self._state = WatchState.STOPPED
        await aiotasks.stop(self._tasks, title="status watching", quiet=True, logger=self._logger)
        self._queue.put_nowait(None)  # wake up the pending readers, if any.
        self._logger.debug("Status stream is closed.")

    async def _synchronise(self, resource_version: Optional[str]) -> None:
        try:
            while True:
                resource_version = await self._watch(resource_version)
                await asyncio.sleep(self._settings.watching.reconnect_backoff)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.debug(f"Status stream for {self.resource!r} has failed: {e!r}")
            failure = errors.UpstreamReadFailure(f"Watching {self.resource!r} has failed: {e!r}")
            failure.__cause__ = e
            self._queue.put_nowait(failure)

    async def _resync(self, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            for body in list(self._store.values()):
                self._emit(body)

    async def _watch(self, resource_version: Optional[str]) -> Optional[str]:
        """
        Watch the resources until the watch-request is over; return the last version.

        The watch-requests end normally on the server-side timeouts, so they
        are restarted from the latest seen resource version. When that version
        is too old ("410 Gone"), the resources are re-listed to get a new one.
        """
        params: Dict[str, str] = {'watch': 'true'}
        if resource_version is not None:
            params['resourceVersion'] = resource_version
        if self._settings.watching.server_timeout is not None:
            params['timeoutSeconds'] = str(int(self._settings.watching.server_timeout))

        connect_timeout = (
            self._settings.watching.connect_timeout
            if self._settings.watching.connect_timeout is not None else
            self._settings.networking.connect_timeout
            if self._settings.networking.connect_timeout is not None else
            self._settings.networking.request_timeout
        )

        stream = api.stream(
            url=self.resource.get_url(params=params),
            logger=self._logger,
            context=self._context,
            settings=self._settings,
            timeout=aiohttp.ClientTimeout(
                total=self._settings.watching.client_timeout,
                sock_connect=connect_timeout,
            ),
        )
        async with contextlib.aclosing(stream):
            async for raw_input in stream:
                raw_input = cast(bodies.RawInput, raw_input)
                raw_type = raw_input['type']
                raw_object = raw_input['object']

                # "410 Gone" is for the "resource version too old" error, we must re-list.
                raw_code = cast(bodies.RawError, raw_object).get('code')
                if raw_type == 'ERROR' and raw_code == HTTP_GONE_CODE:
                    self._logger.debug(f"Re-listing {self.resource!r}: the resource version is gone.")
                    bodies_, resource_version = await self._list()
                    self._replace(bodies_, emit=True)
                    return resource_version

                if raw_type == 'ERROR':
                    raise WatchingError(f"Error in the watch-stream: {raw_object}")

                # Bookmarks only move the resource version, they carry no real changes.
                body = cast(bodies.RawBody, raw_object)
                resource_version = body.get('metadata', {}).get('resourceVersion', resource_version)
                if raw_type == 'BOOKMARK':
                    continue

                if raw_type not in ['ADDED', 'MODIFIED', 'DELETED']:
                    self._logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
                    continue

                self._observe(raw_type, body)

        return resource_version

    async def _list(self) -> Tuple[List[bodies.RawBody], Optional[str]]:
        rsp = await api.get(
            url=self.resource.get_url(),
            logger=self._logger,
            context=self._context,
            settings=self._settings,
        )
        rsp = cast(bodies.RawList, rsp)
        api_version = f'{self.resource.group}/{self.resource.version}'.strip('/')
        items = [cast(bodies.RawBody, dict({'apiVersion': api_version, 'kind': self.resource.kind},
                                            **item))
                 for item in rsp.get('items') or []]
        return items, rsp.get('metadata', {}).get('resourceVersion')

    def _observe(self, raw_type: bodies.RawInputType, body: bodies.RawBody) -> None:
        uid = body.get('metadata', {}).get('uid', '')
        if raw_type == 'DELETED':
            self._store.pop(uid, None)
        else:
            self._store[uid] = body
        if raw_type == 'MODIFIED':
            self._emit(body)

    def _replace(self, bodies_: Iterable[bodies.RawBody], *, emit: bool) -> None:
        """ Replace the local store with the listed resources, emit for the changed ones. """
        store: Dict[str, bodies.RawBody] = {}
        for body in bodies_:
            uid = body.get('metadata', {}).get('uid', '')
            store[uid] = body
            known = self._store.get(uid)
            if emit and known is not None and _version(known) != _version(body):
                self._emit(body)
        self._store = store

    def _emit(self, body: bodies.RawBody) -> None:
        # Nothing is delivered once stopped, even if the synchronisation is not fully over yet.
        if self._state is not WatchState.STOPPED:
            self._queue.put_nowait(bodies.build_status_event(kind=self.kind, body=body))


def _version(body: bodies.RawBody) -> Optional[str]:
    return body.get('metadata', {}).get('resourceVersion')


async def open_watch_source(
        kind: str,
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        logger: typedefs.Logger = logger,
) -> WatchSource:
    """
    Start watching a workload kind (case-insensitive) for status updates.

    Unsupported kinds fail with `InvalidResourceKind` before any API calls.
    Failures to list the resources fail with `UpstreamUnavailable`.
    """
    normalised, resource = resolve_kind(kind)
    source = WatchSource(normalised, resource, context=context, settings=settings, logger=logger)
    await source.start()
    return source
