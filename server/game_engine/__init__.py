"""
Game engine package.
"""
from .cards import Card, CardEffect, Deck, create_catalog_cards
from .catalog import (
    Character, all_characters, get_character, character_options,
    roles_for_count, can_see_role, is_action_available
)
from .player import Player
from .effects import ActiveEffect, EffectType, SpecialEffectRegistry
from .rules import (
    RuleEngine, ValidationResult, ActionResult,
    WinCondition, NoWinCondition, WinResult
)
from .match import Match, MatchEvent
from .commands import (
    Command, CommandResult, JoinMatch, LeaveMatch, DistributeRoles,
    SelectCharacter, DrawTurnCards, PlayCard, DiscardCard, EndTurn,
    TerminateMatch, command_from_dict
)
from .turn_timer import TurnTimer
from .errors import MatchError, SnapshotError, MatchNotInitializedError

__all__ = [
    "Card",
    "CardEffect",
    "Deck",
    "create_catalog_cards",
    "Character",
    "all_characters",
    "get_character",
    "character_options",
    "roles_for_count",
    "can_see_role",
    "is_action_available",
    "Player",
    "ActiveEffect",
    "EffectType",
    "SpecialEffectRegistry",
    "RuleEngine",
    "ValidationResult",
    "ActionResult",
    "WinCondition",
    "NoWinCondition",
    "WinResult",
    "Match",
    "MatchEvent",
    "Command",
    "CommandResult",
    "JoinMatch",
    "LeaveMatch",
    "DistributeRoles",
    "SelectCharacter",
    "DrawTurnCards",
    "PlayCard",
    "DiscardCard",
    "EndTurn",
    "TerminateMatch",
    "command_from_dict",
    "TurnTimer",
    "MatchError",
    "SnapshotError",
    "MatchNotInitializedError",
]
