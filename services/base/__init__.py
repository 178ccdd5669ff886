"""
Base infrastructure for the wellness sync daemons.

This module provides common functionality used by all daemons:
- BaseDaemon: Base class with CLI, signals, and lifecycle management
- SingleInstance: Lock file management for single-instance enforcement
- ShutdownHooks: Best-effort callbacks run on process shutdown
"""

from services.base.daemon import BaseDaemon, ShutdownHooks, SingleInstance

__all__ = [
    "BaseDaemon",
    "ShutdownHooks",
    "SingleInstance",
]
