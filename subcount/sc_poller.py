"""
Poll scheduler.

Two states, owned by the StateRegistry: Unauthenticated and Authenticated.
While authenticated the metric source is polled:
  - every poll_interval_secs (background task started by start())
  - whenever a viewer sends request-update
  - once right after sign-in

Each trigger fetches exactly once. The fetch runs outside the registry lock;
applying the value and broadcasting it happen together under the lock, so no
viewer can see a half-updated state. Concurrent polls are last-write-wins,
except that a result fetched under an older auth generation is discarded.
"""

import logging
from typing import Optional

from .sc_errors import CredentialExpiredError, FetchError
from .sc_goal import GoalUpdate
from .sc_hub import BroadcastHub
from .sc_state import StateRegistry

logger = logging.getLogger(__name__)

AUTH_EXPIRED_MESSAGE = "Authentication expired. Please re-authenticate the server."
FETCH_FAILED_MESSAGE = "Failed to fetch subscriber count"


class PollScheduler:
    def __init__(self, registry: StateRegistry, source, hub: BroadcastHub,
                 socketio, interval_secs: float, credentials=None):
        self.registry = registry
        self.source = source
        self.hub = hub
        self.socketio = socketio
        self.interval_secs = interval_secs
        self.credentials = credentials
        self._running = False
        self._task = None
        # Bumped by start()/stop(); a loop whose id is stale exits after its sleep
        self._run_id = 0

    # ---------------- Lifecycle ----------------

    def start(self):
        """Start the interval loop as a SocketIO background task."""
        if self._running:
            return self._task
        self._running = True
        self._run_id += 1
        self._task = self.socketio.start_background_task(self._run, self._run_id)
        self.registry.log(f"Poll scheduler started (every {self.interval_secs:g}s)")
        return self._task

    def stop(self) -> None:
        self._running = False
        self._run_id += 1

    @property
    def running(self) -> bool:
        return self._running

    def _run(self, run_id: int) -> None:
        while run_id == self._run_id:
            self.socketio.sleep(self.interval_secs)
            if run_id != self._run_id:
                break
            self.tick()

    # ---------------- Triggers ----------------

    def tick(self) -> Optional[GoalUpdate]:
        """Scheduled trigger; does nothing unless authenticated."""
        generation = self._authenticated_generation()
        if generation is None:
            return None
        return self.poll_once("interval", generation)

    def request_update(self):
        """Viewer trigger; polls in the background so the socket handler returns at once."""
        generation = self._authenticated_generation()
        if generation is None:
            return None
        return self.socketio.start_background_task(self.poll_once, "request-update", generation)

    def on_authenticated(self):
        """Sign-in completed: enter Authenticated and fetch straight away."""
        generation = self.registry.mark_authenticated()
        return self.socketio.start_background_task(self.poll_once, "sign-in", generation)

    def on_logout(self) -> None:
        self.registry.mark_unauthenticated("logout")
        if self.credentials is not None:
            self.credentials.revoke()

    # ---------------- Poll ----------------

    def _authenticated_generation(self) -> Optional[int]:
        """Generation at trigger time, or None when not signed in."""
        with self.registry.lock:
            if not self.registry.is_authenticated():
                return None
            return self.registry.generation

    def poll_once(self, trigger: str = "manual", generation: Optional[int] = None) -> Optional[GoalUpdate]:
        """
        Fetch once and publish the outcome. Never raises for fetch errors.

        generation is the auth generation the trigger fired under; if it has
        moved on by the time the fetch returns, the outcome is dropped.
        Defaults to the current generation.

        Returns the applied GoalUpdate, or None when the fetch failed or its
        result was stale.
        """
        if generation is None:
            generation = self.registry.generation
        try:
            value = self.source.fetch_count()
        except CredentialExpiredError as e:
            self._handle_credential_expired(e, generation)
            return None
        except FetchError as e:
            self._handle_transient(e, generation)
            return None
        except Exception as e:
            logger.exception(f"Unexpected error during {trigger} poll")
            self._handle_transient(e, generation)
            return None

        with self.registry.lock:
            update = self.registry.apply_value(value, generation)
            if update is None:
                return None
            snapshot = self.registry.snapshot()
            self.hub.broadcast_snapshot(snapshot)

        self.registry.log(
            f"[{trigger}] Exact subs: {snapshot.current_value} | Goal: {snapshot.goal}"
            f" | Previous: {snapshot.previous_goal}"
        )
        return update

    def _handle_credential_expired(self, error: Exception, generation: int) -> None:
        with self.registry.lock:
            if generation != self.registry.generation:
                self.registry.log(f"Ignoring credential error from stale poll: {error}", level="warning")
                return
            self.registry.log(f"Token expired, re-authentication required: {error}", level="error")
            self.registry.mark_unauthenticated("credential expired")
            self.hub.broadcast_error(AUTH_EXPIRED_MESSAGE)

    def _handle_transient(self, error: Exception, generation: int) -> None:
        with self.registry.lock:
            if generation != self.registry.generation:
                self.registry.log(f"Ignoring fetch error from stale poll: {error}", level="warning")
                return
            self.registry.log(f"Error fetching subscriber count: {error}", level="error")
            self.hub.broadcast_error(FETCH_FAILED_MESSAGE)
