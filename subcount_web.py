#!/usr/bin/env python3
"""
Subscriber Count Server – Flask + Socket.IO wiring
--------------------------------------------------
Responsibilities:
- Builds the Flask app, the SocketIO server and the realtime hub
- Creates the single StateRegistry (source of truth for count/goal/auth)
- Connects the poll scheduler, the YouTube source and the OAuth credentials

Notes:
- This file does NOT start polling or serve; use subcount_main.py.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from flask import Flask
from flask_socketio import SocketIO

from subcount.routes import control_bp
from subcount.sc_config import ServerSettings
from subcount.sc_hub import BroadcastHub
from subcount.sc_oauth import OAuthCredentials
from subcount.sc_poller import PollScheduler
from subcount.sc_source import YouTubeSubscriberSource
from subcount.sc_state import StateRegistry

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'subcount', 'templates')


@dataclass
class ServerContext:
    """Everything one running server owns; stored in app.extensions['subcount']."""
    settings: ServerSettings
    app: Flask
    socketio: SocketIO
    registry: StateRegistry
    hub: BroadcastHub
    scheduler: PollScheduler
    credentials: OAuthCredentials
    started_at: str


def create_app(settings: Optional[ServerSettings] = None,
               source=None,
               credentials: Optional[OAuthCredentials] = None) -> ServerContext:
    """
    Build a fully wired server.

    Args:
        settings: defaults to values from sc_config (env overrides applied)
        source: anything with fetch_count() -> int; defaults to the YouTube source
        credentials: OAuth provider; defaults to one built from settings
    """
    settings = (settings or ServerSettings()).validate()

    app = Flask(__name__, template_folder=TEMPLATE_DIR)
    app.config['SECRET_KEY'] = settings.secret_key
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode="threading")

    registry = StateRegistry(
        goal=settings.initial_goal,
        previous_goal=settings.initial_previous_goal,
        step=settings.goal_step,
        log_max=settings.log_max,
    )

    if credentials is None:
        credentials = OAuthCredentials(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_uri,
            scopes=settings.scopes,
            timeout=settings.http_timeout_secs,
        )
    if source is None:
        source = YouTubeSubscriberSource(credentials, timeout=settings.http_timeout_secs)

    hub = BroadcastHub(registry, login_url=settings.public_url)
    socketio.on_namespace(hub)

    scheduler = PollScheduler(
        registry=registry,
        source=source,
        hub=hub,
        socketio=socketio,
        interval_secs=settings.poll_interval_secs,
        credentials=credentials,
    )
    hub.set_scheduler(scheduler)

    app.register_blueprint(control_bp)

    @app.after_request
    def allow_cross_origin(response):
        # Overlays are served from other origins and read /health, /api/state
        response.headers.setdefault('Access-Control-Allow-Origin', '*')
        response.headers.setdefault('Access-Control-Allow-Methods', 'GET, POST')
        return response

    ctx = ServerContext(
        settings=settings,
        app=app,
        socketio=socketio,
        registry=registry,
        hub=hub,
        scheduler=scheduler,
        credentials=credentials,
        started_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
    )
    app.extensions['subcount'] = ctx
    return ctx
