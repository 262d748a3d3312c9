"""
Dataclasses and small model helpers used throughout the system.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow_iso() -> str:
    """UTC timestamp in ISO 8601 format (milliseconds precision)."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class AuthState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


@dataclass
class SessionState:
    """
    The one process-wide record of what viewers are shown.

    Only StateRegistry mutates it; everything else reads snapshots.
    generation is bumped on every auth transition and fences late fetches.
    """
    current_value: int
    goal: int
    previous_goal: int
    auth_state: AuthState = AuthState.UNAUTHENTICATED
    last_updated: Optional[str] = None
    generation: int = 0

    @property
    def authenticated(self) -> bool:
        return self.auth_state is AuthState.AUTHENTICATED


@dataclass(frozen=True)
class Snapshot:
    """Transient state bundle delivered to viewers; built fresh per delivery."""
    current_value: int
    goal: int
    previous_goal: int
    timestamp: str
    exact: bool = True

    def to_payload(self) -> Dict[str, Any]:
        """Wire format of the subscriber-update event (what overlays expect)."""
        return {
            "count": self.current_value,
            "goal": self.goal,
            "previousGoal": self.previous_goal,
            "timestamp": self.timestamp,
            "exact": self.exact,
        }
