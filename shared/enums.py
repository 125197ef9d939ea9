"""
Enumerations used throughout the game.
"""
from enum import Enum


class CardType(str, Enum):
    """Kinds of playable cards."""
    WEAPON = "WEAPON"
    DEFENSE = "DEFENSE"
    EQUIPMENT = "EQUIPMENT"
    ACTION = "ACTION"


class EffectKind(str, Enum):
    """Discriminator for a card's effect variant."""
    DAMAGE = "DAMAGE"
    HEAL = "HEAL"
    DRAW = "DRAW"
    SHIELD = "SHIELD"
    RANGE = "RANGE"
    SPECIAL = "SPECIAL"


class ActiveEffectKind(str, Enum):
    """Discriminator for a timed effect attached to a player."""
    SHIELD = "SHIELD"
    RANGE_BOOST = "RANGE_BOOST"
    DAMAGE_BOOST = "DAMAGE_BOOST"
    CUSTOM = "CUSTOM"


class Role(str, Enum):
    """Secret roles dealt at the start of a match."""
    DON = "DON"
    TRAITOR = "TRAITOR"
    CAPO = "CAPO"
    FBI_AGENT = "FBI_AGENT"


class MatchStatus(str, Enum):
    """Coarse lifecycle stage of a match."""
    WAITING = "WAITING"
    PREPARING = "PREPARING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class MatchPhase(str, Enum):
    """Fine-grained state within the setup and turn cycle."""
    WAITING = "WAITING"
    ROLE_DISTRIBUTION = "ROLE_DISTRIBUTION"
    CHARACTER_SELECTION = "CHARACTER_SELECTION"
    DRAWING_CARDS = "DRAWING_CARDS"
    PLAYING_CARDS = "PLAYING_CARDS"
    DISCARDING = "DISCARDING"
    FINISHED = "FINISHED"


class PlayerAction(str, Enum):
    """Role-gated table actions shown next to a player's seat."""
    ATTACK = "ATTACK"
    HEAL = "HEAL"
    INVESTIGATE = "INVESTIGATE"
    PROTECT = "PROTECT"


class MessageType(str, Enum):
    """Types of messages between client and server."""
    # Connection
    CONNECT = "CONNECT"
    DISCONNECT = "DISCONNECT"

    # Lobby
    CREATE_MATCH = "CREATE_MATCH"
    JOIN_MATCH = "JOIN_MATCH"
    LEAVE_MATCH = "LEAVE_MATCH"
    LIST_MATCHES = "LIST_MATCHES"
    MATCH_LIST = "MATCH_LIST"
    PLAYER_JOINED = "PLAYER_JOINED"
    PLAYER_LEFT = "PLAYER_LEFT"

    # Setup
    DISTRIBUTE_ROLES = "DISTRIBUTE_ROLES"
    SELECT_CHARACTER = "SELECT_CHARACTER"

    # Turn actions
    DRAW_CARDS = "DRAW_CARDS"
    PLAY_CARD = "PLAY_CARD"
    DISCARD_CARD = "DISCARD_CARD"
    END_TURN = "END_TURN"

    # Match end
    TERMINATE_MATCH = "TERMINATE_MATCH"

    # State
    MATCH_STATE = "MATCH_STATE"
    COMMAND_RESULT = "COMMAND_RESULT"

    # Errors
    ERROR = "ERROR"
