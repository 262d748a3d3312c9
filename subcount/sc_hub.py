"""
Broadcast hub: the realtime channel viewers connect to.

Events:
  server -> client
    - client-count       int, sent to everyone whenever a viewer joins/leaves
    - subscriber-update  snapshot payload (see Snapshot.to_payload)
    - error              {'message': str}
  client -> server
    - request-update     no payload; asks for an immediate poll

Delivery is best-effort and at-most-once. A viewer that misses a broadcast
catches up on the next poll or by sending request-update.
"""

import logging
import threading
from typing import Optional, Set

from flask import request
from flask_socketio import Namespace, emit

from .sc_models import Snapshot
from .sc_state import StateRegistry

logger = logging.getLogger(__name__)


class BroadcastHub(Namespace):
    """Tracks connected viewers and fans state out to them."""

    def __init__(self, registry: StateRegistry, login_url: str, namespace: str = "/"):
        super().__init__(namespace)
        self.registry = registry
        self.login_url = login_url
        self._clients: Set[str] = set()
        self._clients_lock = threading.Lock()
        # Set by create_app() once the scheduler exists
        self._scheduler = None

    def set_scheduler(self, scheduler) -> None:
        self._scheduler = scheduler

    @property
    def client_count(self) -> int:
        with self._clients_lock:
            return len(self._clients)

    def trigger_event(self, event, *args):
        # 'request-update' -> on_request_update
        return super().trigger_event(event.replace("-", "_"), *args)

    # ------------------------------------------------------------------
    # Socket events
    # ------------------------------------------------------------------

    def on_connect(self, auth=None):
        sid = request.sid
        with self._clients_lock:
            self._clients.add(sid)
            count = len(self._clients)
        self.registry.log(f"Client connected: {sid} (Total: {count})")
        self._emit_all("client-count", count)

        # Current data goes to the new client only
        with self.registry.lock:
            if self.registry.is_authenticated():
                emit("subscriber-update", self.registry.snapshot().to_payload())
            else:
                emit("error", {"message": f"Server not authenticated. Admin needs to sign in at {self.login_url}"})

    def on_disconnect(self, reason=None):
        sid = request.sid
        with self._clients_lock:
            self._clients.discard(sid)
            count = len(self._clients)
        self.registry.log(f"Client disconnected: {sid} (Total: {count})")
        self._emit_all("client-count", count, skip_sid=sid)

    def on_request_update(self, data=None):
        if self._scheduler is None:
            logger.warning("request-update received before scheduler was attached")
            return
        self._scheduler.request_update()

    # ------------------------------------------------------------------
    # Broadcasts (callable from any thread)
    # ------------------------------------------------------------------

    def broadcast_snapshot(self, snapshot: Snapshot) -> None:
        self._emit_all("subscriber-update", snapshot.to_payload())

    def broadcast_error(self, message: str) -> None:
        self._emit_all("error", {"message": message})

    def _emit_all(self, event: str, data, skip_sid: Optional[str] = None) -> None:
        """Fire-and-forget emit to every connected client."""
        if self.socketio is None:
            logger.warning(f"Dropping '{event}': hub is not registered with SocketIO")
            return
        try:
            self.socketio.emit(event, data, namespace=self.namespace, skip_sid=skip_sid)
        except Exception as e:
            logger.error(f"Broadcast of '{event}' failed: {e}")
