"""
Control surface blueprint (sign-in, logout, status).
"""

from .control import control_bp

__all__ = ['control_bp']
