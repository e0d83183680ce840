import asyncio

import async_timeout
import pytest

from kuberelay._cogs.clients.errors import UpstreamReadFailure, UpstreamUnavailable
from kuberelay._cogs.clients.watching import WatchState, open_watch_source
from kuberelay._cogs.configs.configuration import RelaySettings

DEPLOYMENTS_PATH = '/apis/apps/v1/deployments'


def make_body(uid, rv, *, name=None, namespace='ns1', **fields):
    return dict({
        'metadata': {
            'uid': uid,
            'name': name or f'name-{uid}',
            'namespace': namespace,
            'resourceVersion': rv,
        },
    }, **fields)


def make_list(*bodies, rv='100'):
    return {
        'apiVersion': 'apps/v1',
        'kind': 'DeploymentList',
        'metadata': {'resourceVersion': rv},
        'items': list(bodies),
    }


@pytest.fixture()
def deployments_path():
    return DEPLOYMENTS_PATH


async def next_event(source, timeout=1.0):
    async with async_timeout.timeout(timeout):
        return await source.next()


async def assert_no_events(source, delay=0.1):
    task = asyncio.create_task(source.next())
    await asyncio.sleep(delay)
    try:
        assert not task.done(), f"Unexpected event: {task.result()!r}"
    finally:
        task.cancel()
        await asyncio.wait([task])


async def test_listing_then_watching_from_its_version(fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list(rv='123')))
    fake_api.add(deployments_path, fake_api.events(), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    try:
        async with async_timeout.timeout(1):
            while not fake_api.requested(deployments_path, watch=True):
                await asyncio.sleep(0.01)
    finally:
        await source.close()

    listings = fake_api.requested(deployments_path)
    watches = fake_api.requested(deployments_path, watch=True)
    assert len(listings) == 1
    assert watches[0].query['watch'] == 'true'
    assert watches[0].query['resourceVersion'] == '123'


async def test_only_modifications_are_emitted(fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list(make_body('uid1', '1'))))
    fake_api.add(deployments_path, fake_api.events(
        {'type': 'ADDED', 'object': make_body('uid2', '2')},
        {'type': 'MODIFIED', 'object': make_body('uid1', '3', status={'replicas': 2})},
        {'type': 'DELETED', 'object': make_body('uid2', '4')},
        {'type': 'MODIFIED', 'object': make_body('uid1', '5', status={'replicas': 3})},
    ), watch=True)
    source = await open_watch_source('Deployment', context=context, settings=settings)
    try:
        event1 = await next_event(source)
        event2 = await next_event(source)
        await assert_no_events(source)
    finally:
        await source.close()

    assert event1['EventType'] == 'UPDATE'
    assert event1['Kind'] == 'deployment'
    assert event1['Object']['metadata']['uid'] == 'uid1'
    assert event1['Object']['status'] == {'replicas': 2}
    assert event2['Object']['status'] == {'replicas': 3}


async def test_initial_listing_is_not_emitted(fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list(make_body('uid1', '1'),
                                                           make_body('uid2', '1'))))
    fake_api.add(deployments_path, fake_api.events(), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    try:
        await assert_no_events(source)
    finally:
        await source.close()


async def test_bookmarks_move_the_version_only(fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list(rv='100')))
    fake_api.add(deployments_path, fake_api.events(
        {'type': 'BOOKMARK', 'object': {'metadata': {'resourceVersion': '200'}}},
        hang=False,
    ), watch=True)
    fake_api.add(deployments_path, fake_api.events(), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    try:
        await assert_no_events(source)
    finally:
        await source.close()

    watches = fake_api.requested(deployments_path, watch=True)
    assert len(watches) == 2
    assert watches[0].query['resourceVersion'] == '100'
    assert watches[1].query['resourceVersion'] == '200'


async def test_relisting_on_gone_emits_the_changed_ones(
        fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list(
        make_body('uid1', '1'),
        make_body('uid2', '1'),
    rv='100')))
    fake_api.add(deployments_path, fake_api.json(make_list(
        make_body('uid1', '1'),
        make_body('uid2', '5', status={'ready': True}),
        make_body('uid3', '1'),
    rv='500')))
    fake_api.add(deployments_path, fake_api.events(
        {'type': 'ERROR', 'object': {'code': 410, 'message': 'too old resource version'}},
    ), watch=True)
    fake_api.add(deployments_path, fake_api.events(), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    try:
        event = await next_event(source)
        await assert_no_events(source)
    finally:
        await source.close()

    assert event['Object']['metadata']['uid'] == 'uid2'
    assert event['Object']['status'] == {'ready': True}
    assert event['Object']['kind'] == 'Deployment'
    assert event['Object']['apiVersion'] == 'apps/v1'

    watches = fake_api.requested(deployments_path, watch=True)
    assert watches[-1].query['resourceVersion'] == '500'


async def test_listing_failures_make_the_upstream_unavailable(
        fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.status(403, 'forbidden'))
    with pytest.raises(UpstreamUnavailable):
        await open_watch_source('deployment', context=context, settings=settings)


async def test_watching_failures_are_raised_to_the_reader(
        fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list()))
    fake_api.add(deployments_path, fake_api.status(403, 'forbidden'), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    try:
        with pytest.raises(UpstreamReadFailure):
            await next_event(source)
    finally:
        await source.close()


async def test_error_events_are_raised_to_the_reader(
        fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list()))
    fake_api.add(deployments_path, fake_api.events(
        {'type': 'ERROR', 'object': {'code': 500, 'message': 'boo!'}},
    ), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    try:
        with pytest.raises(UpstreamReadFailure) as err:
            await next_event(source)
        assert 'boo!' in str(err.value)
    finally:
        await source.close()


async def test_closing_stops_the_delivery(fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list(make_body('uid1', '1'))))
    fake_api.add(deployments_path, fake_api.events(
        {'type': 'MODIFIED', 'object': make_body('uid1', '2')},
    ), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    assert source.state is WatchState.RUNNING

    await source.close()
    await source.close()  # repeated closing is harmless.
    assert source.state is WatchState.STOPPED
    assert await next_event(source) is None


async def test_pending_readers_are_woken_up_on_closing(
        fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list()))
    fake_api.add(deployments_path, fake_api.events(), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    task = asyncio.create_task(source.next())
    await asyncio.sleep(0.01)

    await source.close()
    async with async_timeout.timeout(1):
        result = await task
    assert result is None


async def test_sources_are_independent(fake_api, context, settings, deployments_path):
    fake_api.add(deployments_path, fake_api.json(make_list(make_body('uid1', '1'))))
    fake_api.add(deployments_path, fake_api.events(
        {'type': 'MODIFIED', 'object': make_body('uid1', '2')},
    ), watch=True)
    source1 = await open_watch_source('deployment', context=context, settings=settings)
    source2 = await open_watch_source('deployment', context=context, settings=settings)
    try:
        await source1.close()
        event = await next_event(source2)
        assert event['Object']['metadata']['resourceVersion'] == '2'
    finally:
        await source2.close()

    assert source1.state is WatchState.STOPPED
    assert len(fake_api.requested(deployments_path)) == 2


def test_resyncs_are_enabled_by_default():
    assert RelaySettings().watching.resync_period == 1.0


async def test_resyncs_emit_all_known_resources(fake_api, context, settings, deployments_path):
    settings.watching.resync_period = 0.05
    fake_api.add(deployments_path, fake_api.json(make_list(
        make_body('uid1', '1', status={'replicas': 1}),
        make_body('uid2', '1', status={'replicas': 2}),
    )))
    fake_api.add(deployments_path, fake_api.events(), watch=True)  # a quiet cluster.
    source = await open_watch_source('deployment', context=context, settings=settings)
    try:
        events = [await next_event(source) for _ in range(4)]
    finally:
        await source.close()

    assert all(event['EventType'] == 'UPDATE' for event in events)
    assert all(event['Kind'] == 'deployment' for event in events)
    assert [event['Object']['metadata']['uid'] for event in events] == ['uid1', 'uid2'] * 2
    assert events[0]['Object']['status'] == {'replicas': 1}
    assert events[1]['Object']['status'] == {'replicas': 2}


async def test_resyncs_emit_the_latest_bodies_only(fake_api, context, settings, deployments_path):
    settings.watching.resync_period = 0.2
    fake_api.add(deployments_path, fake_api.json(make_list(
        make_body('uid1', '1'),
        make_body('uid2', '1'),
    )))
    fake_api.add(deployments_path, fake_api.events(
        {'type': 'MODIFIED', 'object': make_body('uid1', '2', status={'ready': True})},
        {'type': 'DELETED', 'object': make_body('uid2', '3')},
        {'type': 'ADDED', 'object': make_body('uid3', '4')},
    ), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    try:
        modified = await next_event(source)
        resynced = [await next_event(source) for _ in range(2)]
        await assert_no_events(source)
    finally:
        await source.close()

    assert modified['Object']['metadata']['resourceVersion'] == '2'
    assert [event['Object']['metadata']['uid'] for event in resynced] == ['uid1', 'uid3']
    assert resynced[0]['Object']['metadata']['resourceVersion'] == '2'
    assert resynced[0]['Object']['status'] == {'ready': True}


async def test_resyncs_stop_on_closing(fake_api, context, settings, deployments_path):
    settings.watching.resync_period = 0.01
    fake_api.add(deployments_path, fake_api.json(make_list(make_body('uid1', '1'))))
    fake_api.add(deployments_path, fake_api.events(), watch=True)
    source = await open_watch_source('deployment', context=context, settings=settings)
    await next_event(source)
    await source.close()
    await asyncio.sleep(0.05)
    assert await next_event(source) is None
