"""
Connection Management Module

Re-exports ConnectionManager, ClientConnection and the Redis event relay.
"""
from .models import ClientConnection
from .manager import ConnectionManager
from .relay import CallEventRelay

# Singleton instance
connection_manager = ConnectionManager()

__all__ = [
    "ClientConnection",
    "ConnectionManager",
    "CallEventRelay",
    "connection_manager",
]
