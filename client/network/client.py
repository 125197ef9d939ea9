"""
WebSocket client for connecting to the Mafia Showdown server.

Handles connection, reconnection, and message passing. A UI layer hooks
in through plain callbacks; the client itself renders nothing.
"""

import asyncio
import json
import logging
import uuid
from enum import Enum, auto
from typing import Any, Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from client.config import ClientSettings, settings as default_settings
from server.game_engine.turn_timer import TurnTimer
from server.game_engine.commands import EndTurn
from shared.protocol import (
    Message,
    ConnectRequest,
    ListMatchesRequest,
    CreateMatchRequest,
    JoinMatchRequest,
    LeaveMatchRequest,
    DistributeRolesRequest,
    SelectCharacterRequest,
    DrawCardsRequest,
    PlayCardRequest,
    DiscardCardRequest,
    EndTurnRequest,
    TerminateMatchRequest,
)
from shared.enums import MessageType


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection state."""
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    RECONNECTING = auto()
    FAILED = auto()


class MatchClient:
    """
    WebSocket client for Mafia server communication.

    Callbacks (all optional):
    - on_connection_changed(ConnectionState)
    - on_state(dict): a newer match state arrived
    - on_message(dict): any server message
    - on_error(str)

    Match states are applied latest-wins: one older than the state already
    held is dropped. While it is this client's turn a local countdown runs
    and sends END_TURN when it expires.
    """

    def __init__(self, client_settings: ClientSettings | None = None):
        self.settings = client_settings or default_settings

        self._websocket: Optional[ClientConnection] = None
        self._state = ConnectionState.DISCONNECTED
        self._user_id: Optional[str] = None
        self._display_name: Optional[str] = None
        self._current_match_id: Optional[str] = None
        self._match_state: Optional[dict] = None

        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._should_reconnect = True

        # Pending requests waiting for responses
        self._pending_requests: dict[str, asyncio.Future] = {}

        self._timer: Optional[TurnTimer] = None
        if self.settings.turn_timeout > 0:
            self._timer = TurnTimer(self._on_turn_expired, timeout=self.settings.turn_timeout)
        self._timed_turn: Optional[int] = None

        self.on_connection_changed: Optional[Callable[[ConnectionState], None]] = None
        self.on_state: Optional[Callable[[dict], None]] = None
        self.on_message: Optional[Callable[[dict], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def display_name(self) -> Optional[str]:
        return self._display_name

    @property
    def current_match_id(self) -> Optional[str]:
        return self._current_match_id

    @property
    def match_state(self) -> Optional[dict]:
        """The newest match state received, as seen by this user."""
        return self._match_state

    @property
    def version(self) -> Optional[int]:
        return self._match_state.get("version") if self._match_state else None

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def turn_timer(self) -> Optional[TurnTimer]:
        return self._timer

    def _set_state(self, state: ConnectionState) -> None:
        if self._state != state:
            self._state = state
            if self.on_connection_changed:
                self.on_connection_changed(state)

    def _emit_error(self, error: str) -> None:
        logger.warning(error)
        if self.on_error:
            self.on_error(error)

    async def connect(self, display_name: str, user_id: Optional[str] = None) -> bool:
        """
        Connect to the server.

        Args:
            display_name: Display name for this user
            user_id: Optional stable user ID (reused to reconnect)

        Returns:
            True if connection successful
        """
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return self._state == ConnectionState.CONNECTED

        self._display_name = display_name
        self._user_id = user_id or str(uuid.uuid4())
        self._should_reconnect = True

        return await self._do_connect()

    async def _do_connect(self) -> bool:
        """Perform the actual connection and CONNECT handshake."""
        self._set_state(ConnectionState.CONNECTING)

        try:
            self._websocket = await connect(
                self.settings.server_url,
                ping_interval=30,
                ping_timeout=10,
            )
            await self._websocket.send(
                ConnectRequest.create(self._user_id, self._display_name).to_json()
            )
            response = await asyncio.wait_for(
                self._websocket.recv(), timeout=self.settings.request_timeout
            )
            data = json.loads(response)
        except asyncio.TimeoutError:
            self._emit_error("Connection timeout")
            self._set_state(ConnectionState.FAILED)
            return False
        except (OSError, ConnectionClosed, json.JSONDecodeError) as e:
            self._emit_error(f"Connection failed: {e}")
            self._set_state(ConnectionState.FAILED)
            return False

        payload = data.get("data") or {}
        if data.get("type") == MessageType.CONNECT.value and payload.get("success"):
            self._set_state(ConnectionState.CONNECTED)

            reconnected_match = payload.get("reconnected_to_match")
            if reconnected_match:
                self._current_match_id = reconnected_match
                logger.info(f"Reconnected to match {reconnected_match}")

            self._receive_task = asyncio.create_task(self._receive_loop())

            logger.info(f"Connected as {self._display_name} ({self._user_id})")
            return True

        self._emit_error(payload.get("message", "Connection rejected"))
        self._set_state(ConnectionState.FAILED)
        return False

    async def disconnect(self) -> None:
        """Disconnect from the server."""
        self._should_reconnect = False

        if self._timer:
            self._timer.cancel()

        for task in (self._receive_task, self._reconnect_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._receive_task = None
        self._reconnect_task = None

        if self._websocket:
            await self._websocket.close()
            self._websocket = None

        self._current_match_id = None
        self._match_state = None
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Disconnected from server")

    async def _receive_loop(self) -> None:
        """Receive messages from server."""
        try:
            async for raw_message in self._websocket:
                try:
                    data = json.loads(raw_message)
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to parse message: {e}")
                    continue
                await self._handle_message(data)

        except ConnectionClosed:
            logger.info("Connection closed by server")
        finally:
            if self._should_reconnect:
                self._reconnect_task = asyncio.create_task(self._reconnect())
            else:
                self._set_state(ConnectionState.DISCONNECTED)

    async def _handle_message(self, data: dict) -> None:
        """Handle an incoming message."""
        msg_type = data.get("type")
        payload = data.get("data") or {}

        if msg_type == MessageType.MATCH_STATE.value:
            self.apply_state(payload)
        elif msg_type == MessageType.ERROR.value:
            self._emit_error(payload.get("message", "Unknown error"))

        request_id = data.get("request_id")
        if request_id and request_id in self._pending_requests:
            future = self._pending_requests.pop(request_id)
            if not future.done():
                future.set_result(data)
            return

        if self.on_message:
            self.on_message(data)

    def apply_state(self, state: dict) -> bool:
        """
        Replace the local match state if `state` is not older.

        Returns:
            True if the state was applied
        """
        current = self.version
        if (
            current is not None
            and state.get("match_id") == self._current_match_id
            and state.get("version", 0) < current
        ):
            logger.debug(f"Dropped stale state v{state.get('version')} (have v{current})")
            return False

        self._match_state = state
        self._current_match_id = state.get("match_id", self._current_match_id)
        self._sync_timer(state)

        if self.on_state:
            self.on_state(state)
        return True

    def _sync_timer(self, state: dict) -> None:
        """Count down while it is our turn; stop otherwise."""
        if self._timer is None:
            return

        if not state.get("is_your_turn"):
            self._timer.cancel()
            self._timed_turn = None
            return

        turn = state.get("turn_number")
        if turn != self._timed_turn:
            self._timed_turn = turn
            self._timer.start(state.get("match_id"), self._user_id)

    async def _on_turn_expired(self, command: EndTurn) -> None:
        logger.info(f"Turn timed out, ending turn for {command.actor_id}")
        await self.send(EndTurnRequest.create(expected_version=command.expected_version))

    async def _reconnect(self) -> None:
        """Attempt to reconnect to the server."""
        self._set_state(ConnectionState.RECONNECTING)

        for attempt in range(self.settings.reconnect_attempts):
            logger.info(f"Reconnection attempt {attempt + 1}/{self.settings.reconnect_attempts}")

            await asyncio.sleep(self.settings.reconnect_delay)

            if not self._should_reconnect:
                break

            if await self._do_connect():
                return

        self._set_state(ConnectionState.FAILED)
        self._emit_error("Failed to reconnect to server")

    async def send(self, message: Message | dict) -> bool:
        """
        Send a message to the server.

        Returns:
            True if the message was handed to the socket
        """
        if not self._websocket or self._state != ConnectionState.CONNECTED:
            self._emit_error("Not connected to server")
            return False

        data = message.to_json() if isinstance(message, Message) else json.dumps(message)

        try:
            await self._websocket.send(data)
        except ConnectionClosed as e:
            self._emit_error(f"Failed to send: {e}")
            return False

        return True

    async def send_and_wait(
        self,
        message: Message | dict,
        timeout: Optional[float] = None
    ) -> Optional[dict]:
        """
        Send a message and wait for the response.

        Returns:
            Response data or None on timeout/error
        """
        if isinstance(message, Message):
            if not message.request_id:
                message.request_id = str(uuid.uuid4())
            request_id = message.request_id
        else:
            message.setdefault("request_id", str(uuid.uuid4()))
            request_id = message["request_id"]

        future = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        if not await self.send(message):
            self._pending_requests.pop(request_id, None)
            return None

        try:
            return await asyncio.wait_for(future, timeout=timeout or self.settings.request_timeout)
        except asyncio.TimeoutError:
            self._pending_requests.pop(request_id, None)
            self._emit_error("Request timed out")
            return None

    async def _command(self, message: Message) -> Optional[dict]:
        """Send a command request; returns the COMMAND_RESULT data or None."""
        response = await self.send_and_wait(message)
        if response and response.get("type") == MessageType.COMMAND_RESULT.value:
            return response.get("data")
        return None

    # =========================================================================
    # Convenience methods for common actions
    # =========================================================================

    async def list_matches(self) -> Optional[list]:
        """Get list of open matches."""
        response = await self.send_and_wait(ListMatchesRequest.create())
        if response and response.get("type") == MessageType.MATCH_LIST.value:
            return response.get("data", {}).get("matches", [])
        return None

    async def create_match(self, match_name: str, max_players: int | None = None) -> Optional[dict]:
        """Create a new match with this user as host."""
        settings = {"max_players": max_players} if max_players is not None else None
        response = await self.send_and_wait(CreateMatchRequest.create(match_name, settings))
        if response and response.get("type") == MessageType.MATCH_STATE.value:
            return response.get("data")
        return None

    async def join_match(self, match_id: str) -> Optional[dict]:
        """Join an existing match."""
        response = await self.send_and_wait(JoinMatchRequest.create(match_id))
        if response and response.get("type") == MessageType.MATCH_STATE.value:
            return response.get("data")
        return None

    async def leave_match(self) -> bool:
        """Leave the current match lobby."""
        result = await self._command(LeaveMatchRequest.create())
        if result and result.get("success"):
            self._current_match_id = None
            self._match_state = None
            if self._timer:
                self._timer.cancel()
            return True
        return False

    async def distribute_roles(self) -> Optional[dict]:
        """Deal roles (host only)."""
        return await self._command(DistributeRolesRequest.create(expected_version=self.version))

    async def select_character(self, character_id: str) -> Optional[dict]:
        """Pick one of the offered characters."""
        return await self._command(
            SelectCharacterRequest.create(character_id, expected_version=self.version)
        )

    async def draw_cards(self) -> Optional[dict]:
        """Draw the cards that open your turn."""
        return await self._command(DrawCardsRequest.create(expected_version=self.version))

    async def play_card(self, card_id: str, target_id: str | None = None) -> Optional[dict]:
        """Play a card, optionally at a target player."""
        return await self._command(
            PlayCardRequest.create(card_id, target_id, expected_version=self.version)
        )

    async def discard_card(self, card_id: str) -> Optional[dict]:
        """Discard down to the hand limit."""
        return await self._command(DiscardCardRequest.create(card_id, expected_version=self.version))

    async def end_turn(self) -> Optional[dict]:
        """End your turn."""
        return await self._command(EndTurnRequest.create(expected_version=self.version))

    async def terminate_match(self) -> Optional[dict]:
        """End the match early (host only)."""
        return await self._command(TerminateMatchRequest.create())

    async def request_state(self) -> Optional[dict[str, Any]]:
        """Ask the server for the current match state."""
        response = await self.send_and_wait(Message(type=MessageType.MATCH_STATE))
        if response and response.get("type") == MessageType.MATCH_STATE.value:
            return response.get("data")
        return None
