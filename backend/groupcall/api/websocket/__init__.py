"""
WebSocket API module.

Provides the WebSocket router for group call events.
"""
from .router import router

__all__ = ["router"]
