#!/usr/bin/env python3
"""
Poll scheduler tests - fetch/apply/broadcast cycle and error handling

Usage: pytest test_poll_scheduler.py
"""

import time

from subcount.sc_errors import CredentialExpiredError, TransientFetchError
from subcount.sc_poller import AUTH_EXPIRED_MESSAGE, FETCH_FAILED_MESSAGE


def test_tick_does_not_fetch_when_unauthenticated(ctx, source):
    assert ctx.scheduler.tick() is None
    assert source.calls == 0


def test_successful_poll_updates_state_and_broadcasts(ctx, connect, drain, source):
    ctx.registry.mark_authenticated()
    viewers = [connect(), connect()]
    for v in viewers:
        drain(v)

    update = ctx.scheduler.tick()

    assert update.advanced
    assert source.calls == 1
    status = ctx.registry.status()
    assert (status['count'], status['goal'], status['previousGoal']) == (815, 820, 810)
    for v in viewers:
        received = drain(v)
        assert len(received) == 1
        name, payload = received[0]
        assert name == 'subscriber-update'
        assert (payload['count'], payload['goal'], payload['previousGoal']) == (815, 820, 810)


def test_credential_expired_demotes_and_notifies_every_client_once(ctx, connect, drain, source):
    source.results = [CredentialExpiredError("invalid_grant")]
    ctx.registry.mark_authenticated()
    viewers = [connect() for _ in range(3)]
    for v in viewers:
        drain(v)

    assert ctx.scheduler.poll_once("interval") is None

    assert not ctx.registry.is_authenticated()
    for v in viewers:
        assert drain(v) == [('error', {'message': AUTH_EXPIRED_MESSAGE})]

    # later scheduled polls do nothing until the admin signs in again
    calls = source.calls
    assert ctx.scheduler.tick() is None
    assert source.calls == calls


def test_transient_error_keeps_auth_and_broadcasts_error(ctx, connect, drain, source):
    source.results = [TransientFetchError("HTTP 503"), 830]
    ctx.registry.mark_authenticated()
    viewer = connect()
    drain(viewer)

    assert ctx.scheduler.tick() is None
    assert ctx.registry.is_authenticated()
    assert drain(viewer) == [('error', {'message': FETCH_FAILED_MESSAGE})]

    # next poll simply retries
    update = ctx.scheduler.tick()
    assert update.goal == 840
    assert ctx.registry.status()['count'] == 830


def test_unexpected_exception_is_contained(ctx, connect, drain, source):
    source.results = [RuntimeError("boom")]
    ctx.registry.mark_authenticated()
    viewer = connect()
    drain(viewer)

    assert ctx.scheduler.tick() is None
    assert drain(viewer) == [('error', {'message': FETCH_FAILED_MESSAGE})]


def test_result_arriving_after_logout_is_discarded(ctx, connect, drain, source):
    ctx.registry.mark_authenticated()
    viewer = connect()
    drain(viewer)
    # admin logs out while the request is still out
    source.before_return = ctx.scheduler.on_logout

    assert ctx.scheduler.poll_once("interval") is None

    status = ctx.registry.status()
    assert status['count'] == 0
    assert status['goal'] == 810
    assert not status['authenticated']
    assert drain(viewer) == []


def test_error_arriving_after_logout_is_not_broadcast(ctx, connect, drain, source):
    source.results = [CredentialExpiredError("invalid_token")]
    ctx.registry.mark_authenticated()
    viewer = connect()
    drain(viewer)
    source.before_return = lambda: ctx.registry.mark_unauthenticated("logout")

    ctx.scheduler.poll_once("interval")

    assert drain(viewer) == []


def test_on_authenticated_runs_first_poll(ctx, source):
    task = ctx.scheduler.on_authenticated()
    task.join(timeout=5)

    assert ctx.registry.is_authenticated()
    assert source.calls == 1
    assert ctx.registry.status()['count'] == 815


def test_interval_loop_polls_until_stopped(ctx, source):
    ctx.scheduler.interval_secs = 0.01
    ctx.registry.mark_authenticated()

    task = ctx.scheduler.start()
    deadline = time.time() + 5
    while source.calls < 2 and time.time() < deadline:
        time.sleep(0.01)
    ctx.scheduler.stop()
    task.join(timeout=5)

    assert source.calls >= 2
    assert not ctx.scheduler.running
    assert not task.is_alive()


def _defer_background_tasks(ctx, monkeypatch):
    """Queue background tasks instead of starting them; run them by hand."""
    pending = []
    monkeypatch.setattr(ctx.socketio, 'start_background_task',
                        lambda fn, *args: pending.append((fn, args)))
    return pending


def test_requested_poll_that_starts_after_logout_is_discarded(ctx, connect, drain, source, monkeypatch):
    source.results = [900]
    ctx.registry.mark_authenticated()
    viewer = connect()
    drain(viewer)
    pending = _defer_background_tasks(ctx, monkeypatch)

    ctx.scheduler.request_update()
    ctx.scheduler.on_logout()
    for fn, args in pending:
        fn(*args)

    status = ctx.registry.status()
    assert not status['authenticated']
    assert (status['count'], status['goal']) == (0, 810)
    assert drain(viewer) == []


def test_sign_in_poll_that_starts_after_logout_is_discarded(ctx, connect, drain, source, monkeypatch):
    source.results = [CredentialExpiredError("invalid_token")]
    viewer = connect()
    drain(viewer)
    pending = _defer_background_tasks(ctx, monkeypatch)

    ctx.scheduler.on_authenticated()
    ctx.scheduler.on_logout()
    for fn, args in pending:
        fn(*args)

    assert not ctx.registry.is_authenticated()
    assert source.calls == 1
    # revoked credentials after a normal logout must not look like an expiry
    assert drain(viewer) == []


def test_restart_after_stop_leaves_a_single_interval_loop(ctx, source):
    ctx.scheduler.interval_secs = 0.05

    first = ctx.scheduler.start()
    ctx.scheduler.stop()
    second = ctx.scheduler.start()
    first.join(timeout=5)

    assert not first.is_alive()
    assert second.is_alive()
    ctx.scheduler.stop()
    second.join(timeout=5)
    assert not second.is_alive()
