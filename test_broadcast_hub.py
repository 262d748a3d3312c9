#!/usr/bin/env python3
"""
Broadcast hub tests - realtime channel behaviour seen by viewers

Usage: pytest test_broadcast_hub.py
"""

from unittest import mock


def test_connect_unauthenticated_gets_single_error_and_no_snapshot(ctx, connect, drain):
    client = connect()

    received = drain(client)
    errors = [arg for name, arg in received if name == 'error']
    assert len(errors) == 1
    assert 'not authenticated' in errors[0]['message']
    assert ctx.settings.public_url in errors[0]['message']
    assert not [name for name, _ in received if name == 'subscriber-update']
    assert ('client-count', 1) in received


def test_connect_authenticated_gets_current_snapshot_only_for_itself(ctx, connect, drain):
    generation = ctx.registry.mark_authenticated()
    ctx.registry.apply_value(815, generation)

    first = connect()
    drain(first)
    second = connect()

    received = drain(second)
    updates = [arg for name, arg in received if name == 'subscriber-update']
    assert len(updates) == 1
    assert updates[0]['count'] == 815
    assert updates[0]['goal'] == 820
    assert updates[0]['previousGoal'] == 810
    assert updates[0]['exact'] is True
    assert 'timestamp' in updates[0]
    assert not [name for name, _ in received if name == 'error']

    # the already-connected viewer only learns about the new count
    assert drain(first) == [('client-count', 2)]


def test_client_count_tracks_connects_and_disconnects(ctx, connect, drain):
    clients = []
    for k in range(1, 5):
        clients.append(connect())
        assert ctx.hub.client_count == k
        for c in clients:
            assert ('client-count', k) in drain(c)

    clients[0].disconnect()
    assert ctx.hub.client_count == 3
    for c in clients[1:]:
        assert ('client-count', 3) in drain(c)

    clients[1].disconnect()
    assert ctx.hub.client_count == 2
    for c in clients[2:]:
        assert ('client-count', 2) in drain(c)


def test_broadcast_snapshot_and_error_reach_every_client(ctx, connect, drain):
    clients = [connect() for _ in range(3)]
    for c in clients:
        drain(c)

    ctx.hub.broadcast_snapshot(ctx.registry.snapshot())
    ctx.hub.broadcast_error("Failed to fetch subscriber count")

    for c in clients:
        received = drain(c)
        assert [name for name, _ in received] == ['subscriber-update', 'error']
        assert received[1][1] == {'message': "Failed to fetch subscriber count"}


def test_request_update_ignored_when_unauthenticated(ctx, connect, source):
    client = connect()
    client.emit('request-update')

    assert source.calls == 0


def test_request_update_asks_scheduler_when_authenticated(ctx, connect):
    ctx.registry.mark_authenticated()
    client = connect()

    with mock.patch.object(ctx.scheduler, 'request_update') as request_update:
        client.emit('request-update')

    request_update.assert_called_once_with()


def test_request_update_triggers_one_fetch(ctx, source):
    ctx.registry.mark_authenticated()

    task = ctx.scheduler.request_update()
    task.join(timeout=5)

    assert source.calls == 1
    assert ctx.registry.status()['count'] == 815
