"""API module for prior authorization endpoints."""
from .routes import prior_auth, tools, websocket

__all__ = ["prior_auth", "tools", "websocket"]
