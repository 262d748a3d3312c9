"""
Registry: the system's in-memory state + operations.
- Owns the single SessionState (count, goal, previous goal, auth state)
- Runs observed values through the goal policy
- Fences late fetch results with a generation counter
- Keeps a bounded structured log for the status endpoints
"""

import logging
import threading
from collections import deque
from typing import Any, Dict, List, Optional

from .sc_goal import GoalUpdate, advance_goal
from .sc_models import AuthState, SessionState, Snapshot, utcnow_iso

logger = logging.getLogger(__name__)


class StateRegistry:
    """Thread-safe owner of the session state.

    All mutations go through this object while holding ``lock``. The lock is
    re-entrant so the scheduler can hold it across "apply value + broadcast"
    and still call the registry methods from inside.
    """

    def __init__(self, goal: int, previous_goal: int, step: int, log_max: int = 500) -> None:
        self.step = step
        self.lock = threading.RLock()
        self._state = SessionState(current_value=0, goal=goal, previous_goal=previous_goal)

        # System log
        self.logs: deque = deque(maxlen=log_max)

    # ---------------- Utilities ----------------

    def log(self, msg: str, level: str = "info") -> None:
        """Append a structured log entry and forward it to the logging module."""
        entry = {"ts": utcnow_iso(), "level": level, "msg": msg}
        self.logs.appendleft(entry)
        logger.log(getattr(logging, level.upper(), logging.INFO), msg)

    def recent_logs(self, limit: int = 50) -> List[Dict[str, Any]]:
        return list(self.logs)[:limit]

    # ---------------- Auth state ----------------

    def is_authenticated(self) -> bool:
        with self.lock:
            return self._state.authenticated

    @property
    def generation(self) -> int:
        with self.lock:
            return self._state.generation

    def mark_authenticated(self) -> int:
        """Enter Authenticated; returns the new generation."""
        with self.lock:
            self._state.auth_state = AuthState.AUTHENTICATED
            self._state.generation += 1
            self.log(f"Authenticated (generation {self._state.generation})")
            return self._state.generation

    def mark_unauthenticated(self, reason: str = "logout") -> int:
        """Enter Unauthenticated; any fetch still in flight becomes stale."""
        with self.lock:
            was_authenticated = self._state.authenticated
            self._state.auth_state = AuthState.UNAUTHENTICATED
            self._state.generation += 1
            if was_authenticated:
                self.log(f"Unauthenticated: {reason}", level="warning")
            return self._state.generation

    # ---------------- Values ----------------

    def apply_value(self, value: int, generation: int) -> Optional[GoalUpdate]:
        """
        Record a fetched value and advance the goal if it was reached.

        Returns None without touching state if the value was fetched under an
        older generation (e.g. a logout happened while the request was out).
        """
        with self.lock:
            if generation != self._state.generation:
                self.log(
                    f"Discarding stale result {value} (generation {generation} != {self._state.generation})",
                    level="warning",
                )
                return None

            update = advance_goal(self._state.goal, self._state.previous_goal, value, self.step)
            if update.advanced:
                self.log(f"Goal reached: {self._state.goal} -> next goal {update.goal}")
            self._state.goal = update.goal
            self._state.previous_goal = update.previous_goal
            self._state.current_value = value
            self._state.last_updated = utcnow_iso()
            return update

    def snapshot(self) -> Snapshot:
        with self.lock:
            return Snapshot(
                current_value=self._state.current_value,
                goal=self._state.goal,
                previous_goal=self._state.previous_goal,
                timestamp=utcnow_iso(),
            )

    def status(self) -> Dict[str, Any]:
        """Snapshot consumed by the status page and /api/state."""
        with self.lock:
            return {
                "auth_state": self._state.auth_state.value,
                "authenticated": self._state.authenticated,
                "count": self._state.current_value,
                "goal": self._state.goal,
                "previousGoal": self._state.previous_goal,
                "step": self.step,
                "last_updated": self._state.last_updated,
                "generation": self._state.generation,
            }
