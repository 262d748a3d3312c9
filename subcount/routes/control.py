"""
Control Routes
Sign-in flow, logout and status endpoints for the admin.

The OAuth handshake itself is delegated to Google; these routes only move the
admin through it and flip the scheduler between its two states.
"""

import logging
import os

from flask import Blueprint, current_app, jsonify, redirect, render_template, request

from ..sc_errors import AuthenticationError
from ..sc_version import VERSION

logger = logging.getLogger(__name__)

control_bp = Blueprint('control', __name__)


def _ctx():
    """ServerContext stored by create_app()"""
    return current_app.extensions['subcount']


@control_bp.route('/')
def index():
    """Status page: live numbers when signed in, sign-in prompt otherwise"""
    ctx = _ctx()
    status = ctx.registry.status()
    if status['authenticated']:
        return render_template('index.html',
                               status=status,
                               clients=ctx.hub.client_count,
                               version=VERSION)
    return render_template('login.html',
                           interval_secs=int(ctx.settings.poll_interval_secs),
                           version=VERSION)


@control_bp.route('/auth')
def auth():
    """Send the admin to Google's consent screen"""
    return redirect(_ctx().credentials.authorization_url())


@control_bp.route('/oauth2callback')
def oauth2callback():
    """Complete sign-in and trigger the first poll"""
    ctx = _ctx()
    error = request.args.get('error')
    try:
        if error:
            raise AuthenticationError(f"Consent denied: {error}")
        ctx.credentials.exchange_code(request.args.get('code'))
    except AuthenticationError as e:
        logger.error(f"Authentication error: {e}")
        return 'Authentication failed. Please try again.', 400

    ctx.registry.log("Authentication successful")
    ctx.scheduler.on_authenticated()
    return redirect('/')


@control_bp.route('/logout')
def logout():
    """Clear credentials and stop polling"""
    _ctx().scheduler.on_logout()
    return redirect('/')


@control_bp.route('/health')
def health():
    """Health check endpoint - shows version and service status"""
    ctx = _ctx()
    return jsonify({
        'service': 'subcount-server',
        'version': VERSION,
        'pid': os.getpid(),
        'started_at': ctx.started_at,
        'port': ctx.settings.port,
        'authenticated': ctx.registry.is_authenticated(),
        'clients': ctx.hub.client_count,
        'poll_interval_secs': ctx.settings.poll_interval_secs,
        'scheduler_running': ctx.scheduler.running,
        'status': 'healthy'
    })


@control_bp.route('/api/state')
def api_state():
    """State + last snapshot + recent log entries"""
    ctx = _ctx()
    try:
        limit = int(request.args.get('logs', 50))
    except ValueError:
        return jsonify({'success': False, 'error': 'logs must be an integer'}), 400

    return jsonify({
        'success': True,
        'state': ctx.registry.status(),
        'snapshot': ctx.registry.snapshot().to_payload(),
        'clients': ctx.hub.client_count,
        'logs': ctx.registry.recent_logs(limit)
    })
