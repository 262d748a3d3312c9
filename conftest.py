"""
Shared fixtures: an isolated server per test with a scripted metric source.
"""

import threading

import pytest

from subcount.sc_config import ServerSettings
from subcount_web import create_app


class FakeSource:
    """Returns scripted values (or raises scripted errors) in order."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.before_return = None
        self._lock = threading.Lock()

    def fetch_count(self) -> int:
        with self._lock:
            self.calls += 1
            result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if self.before_return is not None:
            self.before_return()
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def settings():
    return ServerSettings(
        host="127.0.0.1",
        port=3000,
        poll_interval_secs=3600,
        goal_step=10,
        initial_goal=810,
        initial_previous_goal=800,
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://localhost:3000/oauth2callback",
    )


@pytest.fixture
def source():
    return FakeSource(815)


@pytest.fixture
def ctx(settings, source):
    server = create_app(settings, source=source)
    yield server
    server.scheduler.stop()


@pytest.fixture
def connect(ctx):
    """Factory for socket test clients; disconnects leftovers at teardown."""
    clients = []

    def _connect():
        client = ctx.socketio.test_client(ctx.app)
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        if client.is_connected():
            client.disconnect()


def _drain(client):
    """(event, first arg) pairs received since the last call."""
    return [(e["name"], e["args"][0] if e["args"] else None) for e in client.get_received()]


@pytest.fixture
def drain():
    return _drain
