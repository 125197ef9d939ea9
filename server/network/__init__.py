"""
Network layer for the Mafia Showdown server.

Provides WebSocket server, connection management, match management,
the session directory, the sync channel and message handling.
"""

from server.network.connection_manager import ConnectionManager, UserConnection
from server.network.session_directory import Identity, MatchConfig, SessionDirectory
from server.network.sync_channel import SyncChannel
from server.network.match_manager import MatchManager
from server.network.message_handler import MessageHandler, HandleResult
from server.network.server import MafiaServer, run_server


__all__ = [
    "ConnectionManager",
    "UserConnection",
    "Identity",
    "MatchConfig",
    "SessionDirectory",
    "SyncChannel",
    "MatchManager",
    "MessageHandler",
    "HandleResult",
    "MafiaServer",
    "run_server",
]
