"""
Interpreter Wellness Services

This package contains the daemon implementations for the wellness app.
Each service runs as a systemd user service.

Services:
- sync: Local/remote data synchronization
"""

__version__ = "1.0.0"
