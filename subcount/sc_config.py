"""
Central configuration and tunables.

If you need to change ports, intervals, goals or OAuth credentials, do it here.
Prefer environment overrides where sensible.
"""

import os
from dataclasses import dataclass, field

# Network
HOST: str = os.getenv("SUBCOUNT_HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", os.getenv("SUBCOUNT_PORT", "3000")))
SECRET_KEY: str = os.getenv("SUBCOUNT_SECRET_KEY", "subcount-server-2025")

# Polling
POLL_INTERVAL_SECS: float = float(os.getenv("SUBCOUNT_POLL_INTERVAL", "90.0"))
HTTP_TIMEOUT_SECS: float = float(os.getenv("SUBCOUNT_HTTP_TIMEOUT", "15.0"))

# Goals
GOAL_STEP: int = int(os.getenv("SUBCOUNT_GOAL_STEP", "10"))
INITIAL_GOAL: int = int(os.getenv("SUBCOUNT_INITIAL_GOAL", "810"))
INITIAL_PREVIOUS_GOAL: int = int(os.getenv("SUBCOUNT_INITIAL_PREVIOUS_GOAL", "800"))

# OAuth (Google Cloud Console -> Credentials -> OAuth 2.0 Client ID)
CLIENT_ID: str = os.getenv("SUBCOUNT_CLIENT_ID", "")
CLIENT_SECRET: str = os.getenv("SUBCOUNT_CLIENT_SECRET", "")
REDIRECT_URI: str = os.getenv("SUBCOUNT_REDIRECT_URI", f"http://localhost:{PORT}/oauth2callback")

# Logs
LOG_MAX: int = int(os.getenv("SUBCOUNT_LOG_MAX", "500"))


@dataclass
class ServerSettings:
    """Everything create_app() needs, so tests can build isolated servers."""
    host: str = HOST
    port: int = PORT
    secret_key: str = SECRET_KEY
    poll_interval_secs: float = POLL_INTERVAL_SECS
    http_timeout_secs: float = HTTP_TIMEOUT_SECS
    goal_step: int = GOAL_STEP
    initial_goal: int = INITIAL_GOAL
    initial_previous_goal: int = INITIAL_PREVIOUS_GOAL
    client_id: str = CLIENT_ID
    client_secret: str = CLIENT_SECRET
    redirect_uri: str = REDIRECT_URI
    log_max: int = LOG_MAX
    scopes: tuple = field(default=("https://www.googleapis.com/auth/youtube.readonly",))

    def validate(self) -> "ServerSettings":
        """Raise ValueError for settings that would break the goal invariants."""
        if self.goal_step <= 0:
            raise ValueError(f"goal step must be positive, got {self.goal_step}")
        if self.initial_goal % self.goal_step != 0:
            raise ValueError(
                f"initial goal {self.initial_goal} is not a multiple of step {self.goal_step}"
            )
        if self.initial_previous_goal >= self.initial_goal:
            raise ValueError(
                f"previous goal {self.initial_previous_goal} must be below goal {self.initial_goal}"
            )
        if self.poll_interval_secs <= 0:
            raise ValueError(f"poll interval must be positive, got {self.poll_interval_secs}")
        return self

    @property
    def public_url(self) -> str:
        return f"http://localhost:{self.port}"
