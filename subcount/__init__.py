"""
Subscriber count server.

Polls the exact subscriber count of one YouTube channel, tracks a round-number
goal and pushes updates to every connected overlay over Socket.IO.
"""

from .sc_version import VERSION

__all__ = ["VERSION"]
