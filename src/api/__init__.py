"""
HTTP API for the claims desk.

FastAPI handlers that validate request payloads and delegate to the claim
store and its intake collaborators.
"""

from .app import app

__all__ = ["app"]
