"""
HTTP API for an order alerts session.

This package provides a single FastAPI application that exposes:
- The current due-date alerts with read/unread marking
- Manual refresh of the alert set
- Template preview and outbound customer messaging
"""

from api.main import app, create_app

__all__ = ["app", "create_app"]
