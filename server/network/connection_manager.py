"""
Connection manager for WebSocket clients.

Tracks connected clients, their user IDs, and match associations.
Handles sending messages to individual users or broadcasting to matches.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from websockets.asyncio.server import ServerConnection

from shared.protocol import Message


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UserConnection:
    """Tracks a connected user's state."""
    user_id: str
    display_name: str
    websocket: ServerConnection
    match_id: str | None = None
    connected_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    def update_activity(self) -> None:
        """Update last activity timestamp."""
        self.last_activity = _utcnow()


class ConnectionManager:
    """
    Manages WebSocket connections and user-to-match mappings.

    A user who drops while seated keeps their match association so a
    later CONNECT with the same user_id picks it back up.
    """

    def __init__(self):
        # websocket -> UserConnection
        self._connections: dict[ServerConnection, UserConnection] = {}

        # user_id -> websocket (for quick lookup)
        self._user_to_socket: dict[str, ServerConnection] = {}

        # match_id -> set of user_ids
        self._match_users: dict[str, set[str]] = {}

        # Disconnected users awaiting reconnection: user_id -> UserConnection
        self._disconnected: dict[str, UserConnection] = {}

        self._lock = asyncio.Lock()

    # =========================================================================
    # Connection Lifecycle
    # =========================================================================

    async def connect(
        self,
        websocket: ServerConnection,
        user_id: str,
        display_name: str
    ) -> UserConnection:
        """
        Register a new connection.

        If the user was previously disconnected, restores their match association.
        """
        async with self._lock:
            if user_id in self._disconnected:
                connection = self._disconnected.pop(user_id)
                connection.websocket = websocket
                connection.display_name = display_name
                connection.connected_at = _utcnow()
                connection.update_activity()
                logger.info(f"User {display_name} ({user_id}) reconnected")
            else:
                connection = UserConnection(
                    user_id=user_id,
                    display_name=display_name,
                    websocket=websocket,
                )
                logger.info(f"User {display_name} ({user_id}) connected")

            self._connections[websocket] = connection
            self._user_to_socket[user_id] = websocket

            return connection

    async def disconnect(self, websocket: ServerConnection) -> UserConnection | None:
        """
        Handle a disconnection.

        The match association is preserved for potential reconnection.
        """
        async with self._lock:
            connection = self._connections.pop(websocket, None)

            if connection:
                if self._user_to_socket.get(connection.user_id) is websocket:
                    self._user_to_socket.pop(connection.user_id, None)

                if connection.match_id:
                    self._disconnected[connection.user_id] = connection
                    logger.info(
                        f"User {connection.display_name} ({connection.user_id}) "
                        f"disconnected from match {connection.match_id}, awaiting reconnection"
                    )
                else:
                    logger.info(
                        f"User {connection.display_name} ({connection.user_id}) disconnected"
                    )

            return connection

    # =========================================================================
    # Match Association
    # =========================================================================

    async def join_match(self, user_id: str, match_id: str) -> bool:
        """
        Associate a connected user with a match.

        Returns:
            True if successful, False if the user is not connected
        """
        async with self._lock:
            websocket = self._user_to_socket.get(user_id)
            connection = self._connections.get(websocket) if websocket else None
            if connection is None:
                return False

            if connection.match_id and connection.match_id != match_id:
                self._remove_user_from_match(user_id, connection.match_id)

            connection.match_id = match_id
            self._match_users.setdefault(match_id, set()).add(user_id)

            logger.info(f"User {connection.display_name} ({user_id}) joined match {match_id}")

            return True

    async def leave_match(self, user_id: str) -> str | None:
        """
        Remove a user from their current match.

        Returns:
            The match_id they left, or None if not in a match
        """
        async with self._lock:
            websocket = self._user_to_socket.get(user_id)
            connection = self._connections.get(websocket) if websocket else None
            if connection is None:
                connection = self._disconnected.pop(user_id, None)
            if connection is None or not connection.match_id:
                return None

            match_id = connection.match_id
            self._remove_user_from_match(user_id, match_id)
            connection.match_id = None

            logger.info(f"User {connection.display_name} ({user_id}) left match {match_id}")

            return match_id

    def _remove_user_from_match(self, user_id: str, match_id: str) -> None:
        """Drop a user from match tracking (caller holds the lock)."""
        if match_id in self._match_users:
            self._match_users[match_id].discard(user_id)
            if not self._match_users[match_id]:
                del self._match_users[match_id]

    # =========================================================================
    # Queries
    # =========================================================================

    def get_connection(self, websocket: ServerConnection) -> UserConnection | None:
        """Get connection info for a websocket."""
        return self._connections.get(websocket)

    def get_connection_by_user_id(self, user_id: str) -> UserConnection | None:
        """Get connection info for a user ID."""
        websocket = self._user_to_socket.get(user_id)
        if websocket:
            return self._connections.get(websocket)
        return None

    def get_match_id(self, user_id: str) -> str | None:
        """Get match ID for a user, connected or not."""
        connection = self.get_connection_by_user_id(user_id)
        if connection:
            return connection.match_id
        disconnected = self._disconnected.get(user_id)
        return disconnected.match_id if disconnected else None

    def get_users_in_match(self, match_id: str) -> set[str]:
        """Get all user IDs in a match (including disconnected)."""
        return self._match_users.get(match_id, set()).copy()

    def get_connected_users_in_match(self, match_id: str) -> list[UserConnection]:
        """Get all currently connected users in a match."""
        connections = []
        for user_id in self._match_users.get(match_id, set()):
            conn = self.get_connection_by_user_id(user_id)
            if conn:
                connections.append(conn)
        return connections

    def is_user_connected(self, user_id: str) -> bool:
        return user_id in self._user_to_socket

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send_to_user(self, user_id: str, message: Message | dict | str) -> bool:
        """
        Send a message to a specific user.

        Returns:
            True if sent successfully, False if the user is not connected
        """
        websocket = self._user_to_socket.get(user_id)
        if not websocket:
            return False

        return await self._send_to_websocket(websocket, message)

    async def broadcast_to_match(
        self,
        match_id: str,
        message: Message | dict | str,
        exclude_user_id: str | None = None
    ) -> int:
        """
        Broadcast a message to all connected users in a match.

        Returns:
            Number of users the message was sent to
        """
        sent_count = 0

        for conn in self.get_connected_users_in_match(match_id):
            if exclude_user_id and conn.user_id == exclude_user_id:
                continue

            if await self._send_to_websocket(conn.websocket, message):
                sent_count += 1

        return sent_count

    async def _send_to_websocket(
        self,
        websocket: ServerConnection,
        message: Message | dict | str
    ) -> bool:
        """Send a message to a websocket, reporting failure instead of raising."""
        if isinstance(message, Message):
            data = message.to_json()
        elif isinstance(message, dict):
            data = json.dumps(message)
        else:
            data = message

        try:
            await websocket.send(data)
        except Exception as e:
            logger.error(f"Failed to send message: {e}")
            return False

        connection = self._connections.get(websocket)
        if connection:
            connection.update_activity()

        return True

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        return {
            "total_connections": len(self._connections),
            "total_users": len(self._user_to_socket),
            "active_matches": len(self._match_users),
            "disconnected_awaiting_reconnect": len(self._disconnected),
            "users_per_match": {
                match_id: len(users)
                for match_id, users in self._match_users.items()
            },
        }
