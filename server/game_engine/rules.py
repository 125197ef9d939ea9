"""
Rule enforcement and validation for Mafia Showdown.
"""
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional, TYPE_CHECKING

from shared.constants import KIDNAP_RANGE, KIDNAP_TAG
from shared.enums import CardType, EffectKind, MatchPhase, MatchStatus

from .cards import Card, CardEffect
from .player import Player

if TYPE_CHECKING:
    from .match import Match


class ActionResult(Enum):
    """Result of attempting an action."""
    SUCCESS = auto()
    MATCH_FULL = auto()
    ALREADY_JOINED = auto()
    MATCH_ALREADY_STARTED = auto()
    MATCH_NOT_STARTED = auto()
    MATCH_FINISHED = auto()
    UNSUPPORTED_PLAYER_COUNT = auto()
    WRONG_PHASE = auto()
    NOT_YOUR_TURN = auto()
    PLAYER_NOT_FOUND = auto()
    PLAYER_ELIMINATED = auto()
    CARD_NOT_IN_HAND = auto()
    FIREFIGHT_ALREADY_PLAYED = auto()
    DUPLICATE_EQUIPMENT = auto()
    INVALID_CHARACTER = auto()
    ALREADY_READY = auto()
    NOT_HOST = auto()
    STALE_VERSION = auto()
    MATCH_NOT_FOUND = auto()
    INVALID_ACTION = auto()


@dataclass
class ValidationResult:
    """Result of validating an action."""
    valid: bool
    result: ActionResult
    message: str = ""

    @classmethod
    def success(cls, message: str = "") -> "ValidationResult":
        return cls(valid=True, result=ActionResult.SUCCESS, message=message)

    @classmethod
    def failure(cls, result: ActionResult, message: str = "") -> "ValidationResult":
        return cls(valid=False, result=result, message=message)


# =============================================================================
# Win conditions
# =============================================================================

@dataclass
class WinResult:
    """Outcome of a finished match."""
    winning_side: str
    winner_ids: List[str] = field(default_factory=list)
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "winning_side": self.winning_side,
            "winner_ids": list(self.winner_ids),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WinResult":
        return cls(
            winning_side=data["winning_side"],
            winner_ids=list(data.get("winner_ids", [])),
            reason=data.get("reason", ""),
        )


class WinCondition:
    """
    Decides whether a match is over.

    Subclass and override `check`; the match calls it after every
    card play and turn change.
    """

    def check(self, match: "Match") -> Optional[WinResult]:
        raise NotImplementedError


class NoWinCondition(WinCondition):
    """Never ends the match; only the host can terminate it."""

    def check(self, match: "Match") -> Optional[WinResult]:
        return None


# =============================================================================
# Rule engine
# =============================================================================

class RuleEngine:
    """
    Enforces card, targeting and turn rules.
    """

    def __init__(self, win_condition: Optional[WinCondition] = None):
        self.win_condition = win_condition or NoWinCondition()

    # ---------- Cards ----------

    def validate_play_card(self, card: Card, player: Player) -> ValidationResult:
        """Check the one-weapon-per-turn and unique-equipment rules."""
        if card.card_type == CardType.WEAPON and player.has_played_firefight:
            return ValidationResult.failure(
                ActionResult.FIREFIGHT_ALREADY_PLAYED,
                "You have already used a weapon this turn"
            )

        if card.card_type == CardType.EQUIPMENT and player.has_equipment(card.name):
            return ValidationResult.failure(
                ActionResult.DUPLICATE_EQUIPMENT,
                f"You already have {card.name} equipped"
            )

        return ValidationResult.success()

    @staticmethod
    def needs_target(card: Card) -> bool:
        """Weapons and Kidnap cards must be aimed at a player."""
        if card.card_type == CardType.WEAPON:
            return True
        return card.effect == CardEffect.special(KIDNAP_TAG)

    # ---------- Targeting ----------

    @staticmethod
    def distance(seat_count: int, from_seat: int, to_seat: int) -> int:
        """Shortest number of seats between two players around the table."""
        if seat_count == 0:
            return 0
        clockwise = (to_seat - from_seat) % seat_count
        counterclockwise = (from_seat - to_seat) % seat_count
        return min(clockwise, counterclockwise)

    def validate_target(
        self,
        card: Card,
        actor: Player,
        target: Player,
        distance: int
    ) -> ValidationResult:
        """Check whether `card` may be aimed from `actor` at `target`."""
        if card.card_type == CardType.WEAPON:
            if target.id == actor.id:
                return ValidationResult.failure(
                    ActionResult.INVALID_ACTION,
                    "You cannot shoot yourself"
                )
            reach = actor.attack_range + card.range
            if distance > reach:
                return ValidationResult.failure(
                    ActionResult.INVALID_ACTION,
                    f"{target.username} is out of range ({distance} > {reach})"
                )
            return ValidationResult.success()

        if card.effect.kind == EffectKind.SPECIAL and card.effect.tag == KIDNAP_TAG:
            if distance > KIDNAP_RANGE:
                return ValidationResult.failure(
                    ActionResult.INVALID_ACTION,
                    f"{target.username} is too far away"
                )

        return ValidationResult.success()

    # ---------- Turns ----------

    def validate_turn_action(
        self,
        match: "Match",
        player_id: str,
        phases: tuple
    ) -> ValidationResult:
        """Check that it is `player_id`'s turn and the match is in one of `phases`."""
        if match.status == MatchStatus.COMPLETED:
            return ValidationResult.failure(
                ActionResult.MATCH_FINISHED,
                "The match is over"
            )

        if match.status != MatchStatus.IN_PROGRESS:
            return ValidationResult.failure(
                ActionResult.MATCH_NOT_STARTED,
                "The match has not started"
            )

        player = match.get_player(player_id)
        if player is None:
            return ValidationResult.failure(
                ActionResult.PLAYER_NOT_FOUND,
                "Player not found"
            )

        current = match.current_player
        if current is None or current.id != player.id:
            return ValidationResult.failure(
                ActionResult.NOT_YOUR_TURN,
                "It's not your turn"
            )

        if match.current_phase not in phases:
            return ValidationResult.failure(
                ActionResult.WRONG_PHASE,
                f"Cannot do that during {match.current_phase.value}"
            )

        return ValidationResult.success()

    def validate_setup_phase(self, match: "Match", phase: MatchPhase) -> ValidationResult:
        """Check that the match is in a given setup phase."""
        if match.current_phase != phase:
            return ValidationResult.failure(
                ActionResult.WRONG_PHASE,
                f"Match is not in {phase.value}"
            )
        return ValidationResult.success()

    def check_win(self, match: "Match") -> Optional[WinResult]:
        """Evaluate the configured win condition."""
        return self.win_condition.check(match)
