"""
HTTP API for the uptime engine.
"""

from uptime_core.api.status_routes import create_app, create_status_routes

__all__ = [
    "create_app",
    "create_status_routes",
]
