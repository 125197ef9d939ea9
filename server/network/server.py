"""
WebSocket server for Mafia Showdown.

Main entry point that ties together connection management,
match management, and message handling.
"""

import asyncio
import json
import logging
import signal
from typing import Any

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from server.network.connection_manager import ConnectionManager
from server.network.match_manager import MatchManager
from server.network.message_handler import MessageHandler
from server.network.session_directory import SessionDirectory
from server.network.sync_channel import SyncChannel
from server.persistence import init_database, MatchRepository
from server.config import settings
from shared.protocol import (
    Message,
    ErrorMessage,
    MatchStateMessage,
    PlayerDisconnectedMessage,
)
from shared.enums import MessageType


logger = logging.getLogger(__name__)


class MafiaServer:
    """
    WebSocket server for Mafia Showdown matches.

    Handles client connections, routes messages, and fans match
    snapshots out to seated users.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        db_path: str | None = None,
        turn_timeout: float | None = None
    ):
        self.host = host or settings.HOST
        self.port = port or settings.PORT

        db = init_database(db_path)
        repository = MatchRepository(db)

        self._connections = ConnectionManager()
        self._matches = MatchManager(
            directory=SessionDirectory(repository),
            channel=SyncChannel(repository),
            turn_timeout=turn_timeout,
        )
        self._handler = MessageHandler(self._matches, self._connections)

        self._server = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the WebSocket server and block until shutdown."""
        self._running = True
        self._shutdown_event.clear()

        self._server = await serve(
            self._handle_client,
            self.host,
            self.port,
            ping_interval=30,
            ping_timeout=10,
        )

        logger.info(f"Mafia server started on ws://{self.host}:{self.port}")

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the server gracefully."""
        logger.info("Shutting down server...")
        self._running = False

        self._matches.shutdown()
        self._handler.close()

        if self._server:
            self._server.close()
            await self._server.wait_closed()

        self._shutdown_event.set()
        logger.info("Server stopped")

    def request_shutdown(self) -> None:
        """Request server shutdown (can be called from signal handler)."""
        asyncio.create_task(self.stop())

    async def _handle_client(self, websocket: ServerConnection) -> None:
        """
        Handle a client connection.

        The first message must be a CONNECT message with user_id and display_name.
        After that, messages are routed through the message handler.
        """
        user_id = None

        try:
            user_id = await self._handle_connect(websocket)

            if not user_id:
                return

            async for raw_message in websocket:
                if not self._running:
                    break

                await self._handle_message(websocket, user_id, raw_message)

        except ConnectionClosed:
            logger.debug(f"Connection closed for user {user_id}")
        finally:
            if user_id:
                await self._handle_disconnect(websocket, user_id)

    async def _handle_connect(self, websocket: ServerConnection) -> str | None:
        """
        Handle the initial CONNECT message.

        Returns user_id if successful, None otherwise.
        """
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=settings.CONNECT_TIMEOUT)
            data = json.loads(raw)
        except asyncio.TimeoutError:
            await self._send_error(websocket, "Connection timeout", "TIMEOUT")
            return None
        except json.JSONDecodeError:
            await self._send_error(websocket, "Invalid JSON", "PARSE_ERROR")
            return None

        if data.get("type") != MessageType.CONNECT.value:
            await self._send_error(websocket, "First message must be CONNECT", "CONNECT_REQUIRED")
            return None

        payload = data.get("data") or {}
        user_id = payload.get("user_id")
        display_name = payload.get("display_name", "Player")

        if not user_id:
            await self._send_error(websocket, "user_id is required", "MISSING_USER_ID")
            return None

        connection = await self._connections.connect(websocket, user_id, display_name)

        # A user seated in a match gets straight back into it
        match_id = connection.match_id or self._matches.get_match_id_for_user(user_id)
        match = None
        if match_id:
            _, _, match = self._matches.load_match(match_id)
            if match is not None:
                await self._connections.join_match(user_id, match_id)
                self._handler.watch(match_id)

        await websocket.send(Message(
            type=MessageType.CONNECT,
            data={
                "success": True,
                "user_id": user_id,
                "display_name": display_name,
                "reconnected_to_match": match_id if match else None,
            },
            request_id=data.get("request_id"),
        ).to_json())

        if match is not None:
            await websocket.send(
                MatchStateMessage.create(match.get_state_for_player(user_id)).to_json()
            )
            logger.info(f"User {display_name} ({user_id}) reconnected to match {match_id}")

        return user_id

    async def _handle_message(
        self,
        websocket: ServerConnection,
        user_id: str,
        raw_message: str
    ) -> None:
        """Handle an incoming message from a connected user."""
        result = await self._handler.handle_message(user_id, raw_message)

        if result.response:
            await websocket.send(result.response.to_json())

        match_id = self._connections.get_match_id(user_id)
        if match_id and result.broadcasts:
            for broadcast in result.broadcasts:
                await self._connections.broadcast_to_match(
                    match_id,
                    broadcast,
                    exclude_user_id=user_id
                )

    async def _handle_disconnect(self, websocket: ServerConnection, user_id: str) -> None:
        """Handle user disconnection."""
        connection = await self._connections.disconnect(websocket)

        if connection and connection.match_id:
            await self._connections.broadcast_to_match(
                connection.match_id,
                PlayerDisconnectedMessage.create(user_id, connection.display_name),
            )

    async def _send_error(self, websocket: ServerConnection, message: str, code: str) -> None:
        """Send an error message to a websocket that may already be closing."""
        try:
            await websocket.send(ErrorMessage.create(message, code).to_json())
        except ConnectionClosed:
            logger.debug(f"Could not deliver {code}: connection already closed")

    def get_stats(self) -> dict[str, Any]:
        """Get server statistics."""
        return {
            "running": self._running,
            "connections": self._connections.get_stats(),
            "matches": self._matches.get_stats(),
        }


async def run_server(host: str | None = None, port: int | None = None, db_path: str | None = None) -> None:
    """
    Run the Mafia server.

    Sets up signal handlers for graceful shutdown.
    """
    server = MafiaServer(host, port, db_path)

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, server.request_shutdown)

    try:
        await server.start()
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


def main():
    """Entry point for running the server."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    settings.ensure_directories()

    print(f"Starting Mafia server on ws://{settings.HOST}:{settings.PORT}")
    print("Press Ctrl+C to stop")

    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == "__main__":
    main()
