"""
Client network layer.
"""

from client.network.client import ConnectionState, MatchClient


__all__ = [
    "ConnectionState",
    "MatchClient",
]
