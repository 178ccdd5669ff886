"""Shared infrastructure for the wellness sync services.

Paths, JSON-backed file managers, configuration, error taxonomy and the
async HTTP client used to talk to the remote store.
"""
