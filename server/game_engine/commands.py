"""
Command objects - the only way the outside world mutates a match.

Each command validates against the current match, applies one Match
operation and reports a CommandResult. A command carrying an
`expected_version` is rejected when the match has moved on, so a client
that resubmits after a lost acknowledgement cannot apply it twice.
"""
from dataclasses import dataclass, field, fields
from typing import ClassVar, Dict, Optional, Type

from shared.enums import MatchPhase, MatchStatus

from .catalog import get_character
from .match import Match
from .player import Player
from .rules import ActionResult, ValidationResult


@dataclass
class CommandResult:
    """Outcome of executing a command."""
    success: bool
    result: ActionResult
    message: str = ""
    version: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "result": self.result.name,
            "message": self.message,
            "version": self.version,
        }

    @classmethod
    def from_validation(cls, validation: ValidationResult, match: Match) -> "CommandResult":
        return cls(
            success=validation.valid,
            result=validation.result,
            message=validation.message,
            version=match.version,
        )


@dataclass
class Command:
    """Base command. Subclasses implement `_apply`."""

    name: ClassVar[str] = ""

    actor_id: str
    expected_version: Optional[int] = field(default=None, kw_only=True)

    def execute(self, match: Match) -> CommandResult:
        """Validate the version, then apply."""
        if self.expected_version is not None and self.expected_version != match.version:
            return CommandResult(
                success=False,
                result=ActionResult.STALE_VERSION,
                message=(
                    f"Match is at version {match.version}, "
                    f"command expected {self.expected_version}"
                ),
                version=match.version,
            )
        return self._apply(match)

    def _apply(self, match: Match) -> CommandResult:
        raise NotImplementedError

    def _done(self, match: Match, ok: bool, message: str,
              failure: ActionResult = ActionResult.INVALID_ACTION) -> CommandResult:
        return CommandResult(
            success=ok,
            result=ActionResult.SUCCESS if ok else failure,
            message=message,
            version=match.version,
        )

    def to_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["command"] = self.name
        return data


@dataclass
class JoinMatch(Command):
    """Take a seat in the lobby."""
    name: ClassVar[str] = "join_match"

    username: str = "Player"

    def _apply(self, match: Match) -> CommandResult:
        if match.status != MatchStatus.WAITING:
            return self._done(match, False, "Match has already started",
                              ActionResult.MATCH_ALREADY_STARTED)
        if match.get_player(self.actor_id) is not None:
            return self._done(match, False, "You are already in this match",
                              ActionResult.ALREADY_JOINED)
        if match.is_full:
            return self._done(match, False, "Match is full", ActionResult.MATCH_FULL)

        ok, message = match.add_player(Player(user_id=self.actor_id, username=self.username))
        return self._done(match, ok, message)


@dataclass
class LeaveMatch(Command):
    """Leave the lobby before setup begins."""
    name: ClassVar[str] = "leave_match"

    def _apply(self, match: Match) -> CommandResult:
        if match.get_player(self.actor_id) is None:
            return self._done(match, False, "Player not found", ActionResult.PLAYER_NOT_FOUND)
        ok, message = match.remove_player(self.actor_id)
        return self._done(match, ok, message, ActionResult.MATCH_ALREADY_STARTED)


@dataclass
class DistributeRoles(Command):
    """Deal roles (host only)."""
    name: ClassVar[str] = "distribute_roles"

    def _apply(self, match: Match) -> CommandResult:
        if self.actor_id != match.host_id:
            return self._done(match, False, "Only the host can deal roles", ActionResult.NOT_HOST)

        validation = match.rules.validate_setup_phase(match, MatchPhase.ROLE_DISTRIBUTION)
        if not validation.valid:
            return CommandResult.from_validation(validation, match)

        ok, message = match.distribute_roles()
        return self._done(match, ok, message, ActionResult.UNSUPPORTED_PLAYER_COUNT)


@dataclass
class SelectCharacter(Command):
    """Pick one of the offered characters."""
    name: ClassVar[str] = "select_character"

    character_id: str = ""

    def _apply(self, match: Match) -> CommandResult:
        validation = match.rules.validate_setup_phase(match, MatchPhase.CHARACTER_SELECTION)
        if not validation.valid:
            return CommandResult.from_validation(validation, match)

        player = match.get_player(self.actor_id)
        if player is None:
            return self._done(match, False, "Player not found", ActionResult.PLAYER_NOT_FOUND)
        if player.is_ready:
            return self._done(match, False, "You have already chosen a character",
                              ActionResult.ALREADY_READY)

        character = get_character(self.character_id)
        if character is None:
            return self._done(match, False, f"Unknown character: {self.character_id}",
                              ActionResult.INVALID_CHARACTER)

        ok, message = match.select_character(self.actor_id, character)
        return self._done(match, ok, message, ActionResult.INVALID_CHARACTER)


@dataclass
class DrawTurnCards(Command):
    """Draw the cards that open a turn."""
    name: ClassVar[str] = "draw_cards"

    def _apply(self, match: Match) -> CommandResult:
        validation = match.rules.validate_turn_action(
            match, self.actor_id, (MatchPhase.DRAWING_CARDS,)
        )
        if not validation.valid:
            return CommandResult.from_validation(validation, match)

        ok, message = match.start_turn_draw(self.actor_id)
        return self._done(match, ok, message)


@dataclass
class PlayCard(Command):
    """Play a card, optionally at a target."""
    name: ClassVar[str] = "play_card"

    card_id: str = ""
    target_id: Optional[str] = None

    def _apply(self, match: Match) -> CommandResult:
        validation = match.rules.validate_turn_action(
            match, self.actor_id, (MatchPhase.DRAWING_CARDS, MatchPhase.PLAYING_CARDS)
        )
        if not validation.valid:
            return CommandResult.from_validation(validation, match)

        player = match.get_player(self.actor_id)
        card = player.find_card(self.card_id)
        if card is None:
            return self._done(match, False, "You do not hold that card",
                              ActionResult.CARD_NOT_IN_HAND)

        validation = match.rules.validate_play_card(card, player)
        if not validation.valid:
            return CommandResult.from_validation(validation, match)

        if self.target_id is not None and match.rules.needs_target(card):
            if not match.can_target(self.actor_id, self.target_id, card):
                return self._done(match, False, "Target is out of reach")

        ok, message = match.play_card(card, self.actor_id, self.target_id)
        return self._done(match, ok, message)


@dataclass
class DiscardCard(Command):
    """Discard down to the hand limit."""
    name: ClassVar[str] = "discard_card"

    card_id: str = ""

    def _apply(self, match: Match) -> CommandResult:
        validation = match.rules.validate_turn_action(
            match, self.actor_id, (MatchPhase.DISCARDING,)
        )
        if not validation.valid:
            return CommandResult.from_validation(validation, match)

        ok, message = match.discard_card(self.actor_id, self.card_id)
        return self._done(match, ok, message, ActionResult.CARD_NOT_IN_HAND)


@dataclass
class EndTurn(Command):
    """End the actor's turn (also issued by the turn timer)."""
    name: ClassVar[str] = "end_turn"

    def _apply(self, match: Match) -> CommandResult:
        validation = match.rules.validate_turn_action(
            match, self.actor_id,
            (MatchPhase.DRAWING_CARDS, MatchPhase.PLAYING_CARDS, MatchPhase.DISCARDING)
        )
        if not validation.valid:
            return CommandResult.from_validation(validation, match)

        ok, message = match.end_turn()
        return self._done(match, ok, message)


@dataclass
class TerminateMatch(Command):
    """End the match early (host only)."""
    name: ClassVar[str] = "terminate_match"

    def _apply(self, match: Match) -> CommandResult:
        if match.status == MatchStatus.COMPLETED:
            return self._done(match, False, "The match is already over",
                              ActionResult.MATCH_FINISHED)
        ok, message = match.terminate(self.actor_id)
        return self._done(match, ok, message, ActionResult.NOT_HOST)


COMMANDS: Dict[str, Type[Command]] = {
    cls.name: cls
    for cls in (
        JoinMatch, LeaveMatch, DistributeRoles, SelectCharacter,
        DrawTurnCards, PlayCard, DiscardCard, EndTurn, TerminateMatch,
    )
}


def command_from_dict(data: dict) -> Command:
    """
    Build a command from its dictionary form.

    Raises:
        ValueError: for an unknown command name
    """
    command_cls = COMMANDS.get(data.get("command", ""))
    if command_cls is None:
        raise ValueError(f"Unknown command: {data.get('command')!r}")

    kwargs = {f.name: data[f.name] for f in fields(command_cls) if f.name in data}
    return command_cls(**kwargs)
