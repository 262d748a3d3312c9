#!/usr/bin/env python3
"""
Subscriber Count Server – Main Application Launcher
---------------------------------------------------
Starts:
  1) The poll scheduler (fetches the exact count every interval once signed in)
  2) The Flask + Socket.IO server (status page, sign-in flow, realtime channel)

Key characteristics:
- CLI flags with environment fallbacks (see subcount/sc_config.py)
- Clean signal handling (Ctrl+C and SIGTERM)
- Opens the status page in a browser so the admin can sign in

CLI:
  python subcount_main.py --host 0.0.0.0 --port 3000 --interval 90 --step 10
ENV:
  SUBCOUNT_HOST, PORT / SUBCOUNT_PORT, SUBCOUNT_POLL_INTERVAL, SUBCOUNT_GOAL_STEP,
  SUBCOUNT_CLIENT_ID, SUBCOUNT_CLIENT_SECRET, SUBCOUNT_REDIRECT_URI
"""

import argparse
import logging
import os
import signal
import sys
import webbrowser

from subcount.sc_config import ServerSettings
from subcount.sc_version import VERSION
from subcount_web import create_app

logger = logging.getLogger("subcount")


def _parse_args(argv=None) -> argparse.Namespace:
    """Parse CLI args with environment-based defaults."""
    defaults = ServerSettings()
    parser = argparse.ArgumentParser(description="Subscriber Count Server")
    parser.add_argument("--host", default=defaults.host, help="Listen host (default env SUBCOUNT_HOST)")
    parser.add_argument("--port", type=int, default=defaults.port, help="Listen port (default env PORT)")
    parser.add_argument("--interval", type=float, default=defaults.poll_interval_secs,
                        help="Seconds between polls (default env SUBCOUNT_POLL_INTERVAL)")
    parser.add_argument("--step", type=int, default=defaults.goal_step,
                        help="Goal increment (default env SUBCOUNT_GOAL_STEP)")
    parser.add_argument("--goal", type=int, default=defaults.initial_goal, help="Initial goal")
    parser.add_argument("--previous-goal", type=int, default=defaults.initial_previous_goal,
                        help="Initial previous goal")
    parser.add_argument("--debug", type=lambda v: bool(int(v)), default=bool(int(os.getenv("SUBCOUNT_DEBUG", "0"))),
                        help="Flask debug (0/1)")
    parser.add_argument("--no-browser", action="store_true", help="Do not open the status page on startup")
    return parser.parse_args(argv)


def _settings_from_args(args: argparse.Namespace) -> ServerSettings:
    defaults = ServerSettings()
    redirect_uri = defaults.redirect_uri
    # Keep the default callback on the port we actually listen on
    if "SUBCOUNT_REDIRECT_URI" not in os.environ:
        redirect_uri = f"http://localhost:{args.port}/oauth2callback"
    return ServerSettings(
        host=args.host,
        port=args.port,
        poll_interval_secs=args.interval,
        goal_step=args.step,
        initial_goal=args.goal,
        initial_previous_goal=args.previous_goal,
        redirect_uri=redirect_uri,
    )


def main(argv=None) -> int:
    """Boot the server and handle lifecycle cleanly."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    try:
        ctx = create_app(_settings_from_args(args))
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    if not ctx.settings.client_id or not ctx.settings.client_secret:
        logger.warning("SUBCOUNT_CLIENT_ID / SUBCOUNT_CLIENT_SECRET not set; sign-in will fail")

    def _signal_handler(signum, frame):
        del frame
        logger.info(f"Signal {signum} received, shutting down")
        ctx.scheduler.stop()
        raise KeyboardInterrupt

    signal.signal(signal.SIGINT, _signal_handler)
    try:
        signal.signal(signal.SIGTERM, _signal_handler)
    except (AttributeError, ValueError):
        # Windows may not support SIGTERM
        pass

    url = ctx.settings.public_url
    print(f"=== Subscriber Count Server {VERSION} ===")
    print(f"Server running on: {url}  (listening on {args.host}:{args.port})")
    print(f"Update interval:   {ctx.settings.poll_interval_secs:g} seconds, goal step {ctx.settings.goal_step}")
    print("Press Ctrl+C to stop")

    ctx.scheduler.start()

    if not args.no_browser and not ctx.registry.is_authenticated():
        logger.info("Opening browser for authentication...")
        try:
            webbrowser.open(url)
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser: {e}")

    try:
        # use_reloader=False prevents a second process (and a second scheduler)
        ctx.socketio.run(ctx.app, host=args.host, port=args.port, debug=args.debug,
                         use_reloader=False, allow_unsafe_werkzeug=True)
    except KeyboardInterrupt:
        pass
    finally:
        ctx.scheduler.stop()
        logger.info("Server shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
