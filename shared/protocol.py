"""
Message protocol for client-server communication.

All messages are JSON objects with a "type" field and optional "data" field.
Turn and setup requests may carry "expected_version", the match version the
client last saw; the server rejects the request if the match has moved on.
"""

from dataclasses import dataclass, field, asdict
from typing import Any
import json

from shared.constants import DEFAULT_MAX_PLAYERS
from shared.enums import MessageType


@dataclass
class Message:
    """Base message structure for all client-server communication."""
    type: MessageType
    data: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None  # Optional, for matching requests to responses

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps(self.to_dict())

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "data": self.data,
            "request_id": self.request_id,
        }

    @classmethod
    def from_json(cls, json_str: str) -> "Message":
        """Deserialize message from JSON string."""
        raw = json.loads(json_str)
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict) -> "Message":
        """Create message from dictionary."""
        return cls(
            type=MessageType(raw["type"]),
            data=raw.get("data") or {},
            request_id=raw.get("request_id"),
        )


@dataclass
class ErrorMessage(Message):
    """Error response message."""
    type: MessageType = MessageType.ERROR

    @classmethod
    def create(cls, message: str, code: str = "ERROR", request_id: str | None = None) -> "ErrorMessage":
        """Create an error message."""
        return cls(
            data={"message": message, "code": code},
            request_id=request_id,
        )


def _with_version(data: dict, expected_version: int | None) -> dict:
    if expected_version is not None:
        data["expected_version"] = expected_version
    return data


# =============================================================================
# Connection Messages (Client -> Server)
# =============================================================================

@dataclass
class ConnectRequest(Message):
    """First message on every connection: who the client is."""
    type: MessageType = MessageType.CONNECT

    @classmethod
    def create(cls, user_id: str, display_name: str, request_id: str | None = None) -> "ConnectRequest":
        return cls(
            data={"user_id": user_id, "display_name": display_name},
            request_id=request_id,
        )


# =============================================================================
# Lobby Messages (Client -> Server)
# =============================================================================

@dataclass
class ListMatchesRequest(Message):
    """Request list of open matches."""
    type: MessageType = MessageType.LIST_MATCHES

    @classmethod
    def create(cls, request_id: str | None = None) -> "ListMatchesRequest":
        return cls(request_id=request_id)


@dataclass
class CreateMatchRequest(Message):
    """Request to create a new match."""
    type: MessageType = MessageType.CREATE_MATCH

    @classmethod
    def create(
        cls,
        match_name: str,
        settings: dict | None = None,
        request_id: str | None = None
    ) -> "CreateMatchRequest":
        return cls(
            data={
                "match_name": match_name,
                "settings": settings or {},
            },
            request_id=request_id,
        )


@dataclass
class JoinMatchRequest(Message):
    """Request to join an existing match."""
    type: MessageType = MessageType.JOIN_MATCH

    @classmethod
    def create(cls, match_id: str, request_id: str | None = None) -> "JoinMatchRequest":
        return cls(data={"match_id": match_id}, request_id=request_id)


@dataclass
class LeaveMatchRequest(Message):
    """Request to leave the current match lobby."""
    type: MessageType = MessageType.LEAVE_MATCH

    @classmethod
    def create(cls, request_id: str | None = None) -> "LeaveMatchRequest":
        return cls(request_id=request_id)


# =============================================================================
# Setup Messages (Client -> Server)
# =============================================================================

@dataclass
class DistributeRolesRequest(Message):
    """Request to deal roles (host only)."""
    type: MessageType = MessageType.DISTRIBUTE_ROLES

    @classmethod
    def create(
        cls,
        expected_version: int | None = None,
        request_id: str | None = None
    ) -> "DistributeRolesRequest":
        return cls(data=_with_version({}, expected_version), request_id=request_id)


@dataclass
class SelectCharacterRequest(Message):
    """Request to lock in one of the offered characters."""
    type: MessageType = MessageType.SELECT_CHARACTER

    @classmethod
    def create(
        cls,
        character_id: str,
        expected_version: int | None = None,
        request_id: str | None = None
    ) -> "SelectCharacterRequest":
        return cls(
            data=_with_version({"character_id": character_id}, expected_version),
            request_id=request_id,
        )


# =============================================================================
# Turn Messages (Client -> Server)
# =============================================================================

@dataclass
class DrawCardsRequest(Message):
    """Request to draw the cards that open a turn."""
    type: MessageType = MessageType.DRAW_CARDS

    @classmethod
    def create(
        cls,
        expected_version: int | None = None,
        request_id: str | None = None
    ) -> "DrawCardsRequest":
        return cls(data=_with_version({}, expected_version), request_id=request_id)


@dataclass
class PlayCardRequest(Message):
    """Request to play a card, optionally at a target player."""
    type: MessageType = MessageType.PLAY_CARD

    @classmethod
    def create(
        cls,
        card_id: str,
        target_id: str | None = None,
        expected_version: int | None = None,
        request_id: str | None = None
    ) -> "PlayCardRequest":
        return cls(
            data=_with_version({"card_id": card_id, "target_id": target_id}, expected_version),
            request_id=request_id,
        )


@dataclass
class DiscardCardRequest(Message):
    """Request to discard a card down to the hand limit."""
    type: MessageType = MessageType.DISCARD_CARD

    @classmethod
    def create(
        cls,
        card_id: str,
        expected_version: int | None = None,
        request_id: str | None = None
    ) -> "DiscardCardRequest":
        return cls(
            data=_with_version({"card_id": card_id}, expected_version),
            request_id=request_id,
        )


@dataclass
class EndTurnRequest(Message):
    """Request to end turn."""
    type: MessageType = MessageType.END_TURN

    @classmethod
    def create(
        cls,
        expected_version: int | None = None,
        request_id: str | None = None
    ) -> "EndTurnRequest":
        return cls(data=_with_version({}, expected_version), request_id=request_id)


@dataclass
class TerminateMatchRequest(Message):
    """Request to end the match early (host only)."""
    type: MessageType = MessageType.TERMINATE_MATCH

    @classmethod
    def create(cls, request_id: str | None = None) -> "TerminateMatchRequest":
        return cls(request_id=request_id)


# =============================================================================
# Server Response/Broadcast Messages (Server -> Client)
# =============================================================================

@dataclass
class MatchListResponse(Message):
    """Response containing list of open matches."""
    type: MessageType = MessageType.MATCH_LIST

    @classmethod
    def create(cls, matches: list[dict], request_id: str | None = None) -> "MatchListResponse":
        return cls(data={"matches": matches}, request_id=request_id)


@dataclass
class MatchStateMessage(Message):
    """Match state as seen by one player."""
    type: MessageType = MessageType.MATCH_STATE

    @classmethod
    def create(cls, match_state: dict, request_id: str | None = None) -> "MatchStateMessage":
        return cls(data=match_state, request_id=request_id)


@dataclass
class CommandResultMessage(Message):
    """Outcome of a command, sent back to the requester."""
    type: MessageType = MessageType.COMMAND_RESULT

    @classmethod
    def create(
        cls,
        command: str,
        result: dict,
        match_id: str | None = None,
        request_id: str | None = None
    ) -> "CommandResultMessage":
        return cls(
            data={"command": command, "match_id": match_id, **result},
            request_id=request_id,
        )


@dataclass
class PlayerJoinedMessage(Message):
    """Broadcast when a player joins the match."""
    type: MessageType = MessageType.PLAYER_JOINED

    @classmethod
    def create(cls, user_id: str, display_name: str, match_id: str) -> "PlayerJoinedMessage":
        return cls(data={
            "user_id": user_id,
            "display_name": display_name,
            "match_id": match_id,
        })


@dataclass
class PlayerLeftMessage(Message):
    """Broadcast when a player leaves the match."""
    type: MessageType = MessageType.PLAYER_LEFT

    @classmethod
    def create(cls, user_id: str, display_name: str) -> "PlayerLeftMessage":
        return cls(data={
            "user_id": user_id,
            "display_name": display_name,
        })


@dataclass
class PlayerDisconnectedMessage(Message):
    """Broadcast when a player disconnects."""
    type: MessageType = MessageType.DISCONNECT

    @classmethod
    def create(cls, user_id: str, display_name: str) -> "PlayerDisconnectedMessage":
        return cls(data={
            "user_id": user_id,
            "display_name": display_name,
        })


# =============================================================================
# Match Settings
# =============================================================================

@dataclass
class MatchSettings:
    """Settings for a match, configured by the host."""
    max_players: int = DEFAULT_MAX_PLAYERS

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MatchSettings":
        return cls(
            max_players=int(data.get("max_players", DEFAULT_MAX_PLAYERS)),
        )


# =============================================================================
# Helper function for parsing incoming messages
# =============================================================================

def parse_message(json_str: str) -> Message:
    """
    Parse a JSON string into a Message.

    Returns the base Message class. The message handler uses the type
    field to determine how to process it.

    Raises:
        json.JSONDecodeError: if the payload is not JSON
        KeyError, ValueError: if the type is missing or unknown
    """
    return Message.from_json(json_str)
