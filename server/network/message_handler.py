"""
Message handler for routing client messages to match commands.

Parses incoming messages, builds the matching command, runs it through
the match manager and formats the response. Match state reaches every
seated user through the sync channel, not through the handler's response.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from server.game_engine import (
    Command,
    DiscardCard,
    DistributeRoles,
    DrawTurnCards,
    EndTurn,
    Match,
    PlayCard,
    SelectCharacter,
    SnapshotError,
    TerminateMatch,
)
from server.network.connection_manager import ConnectionManager
from server.network.match_manager import MatchManager
from server.network.session_directory import Identity
from shared.protocol import (
    Message,
    ErrorMessage,
    CommandResultMessage,
    MatchListResponse,
    MatchStateMessage,
    MatchSettings,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    parse_message,
)
from shared.enums import MessageType


logger = logging.getLogger(__name__)


@dataclass
class HandleResult:
    """Result of handling a message."""
    # Response to send back to the requesting user (None if no response needed)
    response: Message | None = None
    # Messages to broadcast to the other users in the match
    broadcasts: list[Message] | None = None


class MessageHandler:
    """
    Routes incoming messages to match commands.

    Each handler method returns a HandleResult containing a response for
    the requester and any extra broadcasts for the rest of the match.
    """

    def __init__(self, match_manager: MatchManager, connection_manager: ConnectionManager):
        self._matches = match_manager
        self._connections = connection_manager

        # match_id -> unsubscribe from the sync channel
        self._watched: dict[str, Callable[[], None]] = {}

    async def handle_message(
        self,
        user_id: str,
        message: Message | str | dict
    ) -> HandleResult:
        """
        Handle an incoming message from a user.

        Args:
            user_id: ID of the user sending the message
            message: The message (Message object, JSON string, or dict)

        Returns:
            HandleResult with response and broadcasts
        """
        if isinstance(message, str):
            try:
                message = parse_message(message)
            except (ValueError, KeyError) as e:
                logger.error(f"Failed to parse message: {e}")
                return HandleResult(
                    response=ErrorMessage.create(f"Invalid message format: {e}", "PARSE_ERROR")
                )
        elif isinstance(message, dict):
            try:
                message = Message.from_dict(message)
            except (ValueError, KeyError) as e:
                logger.error(f"Failed to parse message dict: {e}")
                return HandleResult(
                    response=ErrorMessage.create(f"Invalid message format: {e}", "PARSE_ERROR")
                )

        handler = self._get_handler(message.type)
        if not handler:
            return HandleResult(
                response=ErrorMessage.create(
                    f"Unknown message type: {message.type.value}",
                    "UNKNOWN_MESSAGE_TYPE",
                    message.request_id
                )
            )

        try:
            result = await handler(user_id, message)
        except SnapshotError as e:
            logger.error(f"Corrupt match state while handling {message.type.value}: {e}")
            return HandleResult(
                response=ErrorMessage.create(str(e), "SNAPSHOT_ERROR", message.request_id)
            )
        except (ValueError, TypeError) as e:
            logger.warning(f"Bad {message.type.value} request from {user_id}: {e}")
            return HandleResult(
                response=ErrorMessage.create(f"Bad request: {e}", "BAD_REQUEST", message.request_id)
            )

        if result.response and message.request_id:
            result.response.request_id = message.request_id

        return result

    def _get_handler(self, message_type: MessageType):
        """Get the handler method for a message type."""
        handlers = {
            # Lobby
            MessageType.LIST_MATCHES: self._handle_list_matches,
            MessageType.CREATE_MATCH: self._handle_create_match,
            MessageType.JOIN_MATCH: self._handle_join_match,
            MessageType.LEAVE_MATCH: self._handle_leave_match,

            # Setup
            MessageType.DISTRIBUTE_ROLES: self._handle_distribute_roles,
            MessageType.SELECT_CHARACTER: self._handle_select_character,

            # Turn actions
            MessageType.DRAW_CARDS: self._handle_draw_cards,
            MessageType.PLAY_CARD: self._handle_play_card,
            MessageType.DISCARD_CARD: self._handle_discard_card,
            MessageType.END_TURN: self._handle_end_turn,

            # Match end
            MessageType.TERMINATE_MATCH: self._handle_terminate_match,

            # State query
            MessageType.MATCH_STATE: self._handle_get_state,
        }
        return handlers.get(message_type)

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _identity(self, user_id: str) -> Identity:
        connection = self._connections.get_connection_by_user_id(user_id)
        return Identity(user_id, connection.display_name if connection else "Player")

    def _state_message(self, match: Match, user_id: str) -> MatchStateMessage:
        return MatchStateMessage.create(match.get_state_for_player(user_id))

    def watch(self, match_id: str) -> None:
        """Fan a match's snapshots out to its connected users."""
        if match_id not in self._watched:
            self._watched[match_id] = self._matches.channel.subscribe(
                match_id, self._broadcast_snapshot
            )

    def close(self) -> None:
        """Stop fanning out every match."""
        for unsubscribe in self._watched.values():
            unsubscribe()
        self._watched.clear()

    async def _broadcast_snapshot(self, match_id: str, snapshot: dict[str, Any]) -> None:
        """Send each connected user their own view of a new snapshot."""
        view = Match.from_dict(snapshot)
        for conn in self._connections.get_connected_users_in_match(match_id):
            await self._connections.send_to_user(
                conn.user_id,
                self._state_message(view, conn.user_id)
            )

    async def _run_command(self, user_id: str, message: Message, command: Command) -> HandleResult:
        """Execute a command against the user's current match."""
        match_id = self._matches.get_match_id_for_user(user_id)
        if not match_id:
            return HandleResult(
                response=ErrorMessage.create("You are not in a match", "NOT_IN_MATCH")
            )

        result = await self._matches.execute(match_id, command)

        if not result.success:
            return HandleResult(
                response=ErrorMessage.create(result.message, result.result.name)
            )

        return HandleResult(
            response=CommandResultMessage.create(command.name, result.to_dict(), match_id)
        )

    @staticmethod
    def _expected_version(message: Message) -> int | None:
        version = message.data.get("expected_version")
        return int(version) if version is not None else None

    # =========================================================================
    # Lobby Handlers
    # =========================================================================

    async def _handle_list_matches(self, user_id: str, message: Message) -> HandleResult:
        """Handle LIST_MATCHES request."""
        return HandleResult(
            response=MatchListResponse.create(self._matches.list_open_matches())
        )

    async def _handle_create_match(self, user_id: str, message: Message) -> HandleResult:
        """Handle CREATE_MATCH request."""
        match_name = message.data.get("match_name", "Unnamed Match")
        match_settings = MatchSettings.from_dict(message.data.get("settings") or {})

        success, msg, match = await self._matches.create_match(
            self._identity(user_id), match_name, match_settings
        )

        if not success:
            return HandleResult(
                response=ErrorMessage.create(msg, "CREATE_MATCH_FAILED")
            )

        await self._connections.join_match(user_id, match.id)
        self.watch(match.id)

        return HandleResult(response=self._state_message(match, user_id))

    async def _handle_join_match(self, user_id: str, message: Message) -> HandleResult:
        """Handle JOIN_MATCH request."""
        match_id = message.data.get("match_id")
        if not match_id:
            return HandleResult(
                response=ErrorMessage.create("match_id is required", "MISSING_MATCH_ID")
            )

        identity = self._identity(user_id)
        result = await self._matches.join_match(match_id, identity)

        if not result.success:
            return HandleResult(
                response=ErrorMessage.create(result.message, result.result.name)
            )

        await self._connections.join_match(user_id, match_id)
        self.watch(match_id)

        match = self._matches.get_match(match_id)

        return HandleResult(
            response=self._state_message(match, user_id),
            broadcasts=[
                PlayerJoinedMessage.create(
                    user_id=user_id,
                    display_name=identity.display_name,
                    match_id=match_id
                )
            ]
        )

    async def _handle_leave_match(self, user_id: str, message: Message) -> HandleResult:
        """Handle LEAVE_MATCH request."""
        identity = self._identity(user_id)
        result, match_id = await self._matches.leave_match(identity)

        if not result.success:
            return HandleResult(
                response=ErrorMessage.create(result.message, result.result.name)
            )

        await self._connections.leave_match(user_id)

        return HandleResult(
            response=CommandResultMessage.create("leave_match", result.to_dict(), match_id),
            broadcasts=[
                PlayerLeftMessage.create(user_id=user_id, display_name=identity.display_name)
            ]
        )

    # =========================================================================
    # Setup Handlers
    # =========================================================================

    async def _handle_distribute_roles(self, user_id: str, message: Message) -> HandleResult:
        """Handle DISTRIBUTE_ROLES request (host only)."""
        return await self._run_command(user_id, message, DistributeRoles(
            actor_id=user_id,
            expected_version=self._expected_version(message),
        ))

    async def _handle_select_character(self, user_id: str, message: Message) -> HandleResult:
        """Handle SELECT_CHARACTER request."""
        character_id = message.data.get("character_id")
        if not character_id:
            return HandleResult(
                response=ErrorMessage.create("character_id is required", "MISSING_CHARACTER_ID")
            )

        return await self._run_command(user_id, message, SelectCharacter(
            actor_id=user_id,
            character_id=character_id,
            expected_version=self._expected_version(message),
        ))

    # =========================================================================
    # Turn Handlers
    # =========================================================================

    async def _handle_draw_cards(self, user_id: str, message: Message) -> HandleResult:
        """Handle DRAW_CARDS request."""
        return await self._run_command(user_id, message, DrawTurnCards(
            actor_id=user_id,
            expected_version=self._expected_version(message),
        ))

    async def _handle_play_card(self, user_id: str, message: Message) -> HandleResult:
        """Handle PLAY_CARD request."""
        card_id = message.data.get("card_id")
        if not card_id:
            return HandleResult(
                response=ErrorMessage.create("card_id is required", "MISSING_CARD_ID")
            )

        return await self._run_command(user_id, message, PlayCard(
            actor_id=user_id,
            card_id=card_id,
            target_id=message.data.get("target_id"),
            expected_version=self._expected_version(message),
        ))

    async def _handle_discard_card(self, user_id: str, message: Message) -> HandleResult:
        """Handle DISCARD_CARD request."""
        card_id = message.data.get("card_id")
        if not card_id:
            return HandleResult(
                response=ErrorMessage.create("card_id is required", "MISSING_CARD_ID")
            )

        return await self._run_command(user_id, message, DiscardCard(
            actor_id=user_id,
            card_id=card_id,
            expected_version=self._expected_version(message),
        ))

    async def _handle_end_turn(self, user_id: str, message: Message) -> HandleResult:
        """Handle END_TURN request."""
        return await self._run_command(user_id, message, EndTurn(
            actor_id=user_id,
            expected_version=self._expected_version(message),
        ))

    async def _handle_terminate_match(self, user_id: str, message: Message) -> HandleResult:
        """Handle TERMINATE_MATCH request (host only)."""
        return await self._run_command(user_id, message, TerminateMatch(actor_id=user_id))

    # =========================================================================
    # State Query Handler
    # =========================================================================

    async def _handle_get_state(self, user_id: str, message: Message) -> HandleResult:
        """Handle MATCH_STATE request (get current state)."""
        match = self._matches.get_match_for_user(user_id)
        if not match:
            return HandleResult(
                response=ErrorMessage.create("You are not in a match", "NOT_IN_MATCH")
            )

        return HandleResult(response=self._state_message(match, user_id))
