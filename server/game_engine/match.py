"""
Match orchestration - the rules engine for a single match, from lobby to finish.
"""
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from shared.constants import (
    DON_SEAT, MIN_MAX_PLAYERS, MAX_MAX_PLAYERS, SHIELD_DURATION, TURN_DRAW_COUNT
)
from shared.enums import EffectKind, MatchPhase, MatchStatus, PlayerAction, Role

from .cards import Card, Deck
from .catalog import (
    Character, can_see_role, character_options, is_action_available, roles_for_count
)
from .effects import SHIELD, ActiveEffect, SpecialEffectRegistry
from .errors import MatchNotInitializedError, SnapshotError
from .player import Player
from .rules import RuleEngine, WinCondition, WinResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MatchEvent:
    """Represents something that happened in the match."""
    event_type: str
    data: dict
    version: int = 0
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "data": self.data,
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Match:
    """
    Aggregate root for one match.

    Owns the players, deck, discard pile and active effects. Every mutating
    operation either succeeds completely and bumps `version`, or returns
    (False, reason) and leaves the match untouched.
    """

    name: str = "Mafia Showdown"
    host_id: str = ""
    max_players: int = 4
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)

    # Seating order doubles as turn order
    players: List[Player] = field(default_factory=list)

    # Lifecycle
    status: MatchStatus = MatchStatus.WAITING
    current_phase: MatchPhase = MatchPhase.WAITING
    current_player_index: int = 0
    turn_number: int = 0
    roles: Optional[List[Role]] = None
    winner: Optional[WinResult] = None

    # Cards
    discard_pile: List[Card] = field(default_factory=list)
    active_effects: List[ActiveEffect] = field(default_factory=list)

    # Optimistic concurrency counter
    version: int = 0

    # Event log
    events: List[MatchEvent] = field(default_factory=list)

    # Collaborators
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)
    rules: RuleEngine = field(default_factory=RuleEngine, repr=False, compare=False)
    special_effects: SpecialEffectRegistry = field(
        default_factory=SpecialEffectRegistry, repr=False, compare=False
    )
    deck: Deck = field(init=False, repr=False)

    def __post_init__(self):
        """Share the match's random source with the deck."""
        self.deck = Deck(rng=self.rng)

    @classmethod
    def create(
        cls,
        name: str,
        host_id: str,
        host_username: str,
        max_players: int = 4,
        seed: Optional[int] = None,
        win_condition: Optional[WinCondition] = None,
    ) -> "Match":
        """
        Create a match with the host seated first.

        Raises:
            ValueError: if max_players is outside the supported range
        """
        if not MIN_MAX_PLAYERS <= max_players <= MAX_MAX_PLAYERS:
            raise ValueError(
                f"max_players must be between {MIN_MAX_PLAYERS} and {MAX_MAX_PLAYERS}"
            )

        match = cls(
            name=name,
            host_id=host_id,
            max_players=max_players,
            rng=random.Random(seed),
            rules=RuleEngine(win_condition),
        )
        match.players.append(Player(user_id=host_id, username=host_username))
        match._log_event("match_created", {"host_id": host_id, "name": name})
        return match

    # =========== Lookups ===========

    def _player_index(self, player_ref: Optional[str]) -> Optional[int]:
        """Seat of a player given either their match id or user id."""
        if player_ref is None:
            return None
        for index, player in enumerate(self.players):
            if player.matches(player_ref):
                return index
        return None

    def get_player(self, player_ref: Optional[str]) -> Optional[Player]:
        """Get a player by match id or user id."""
        index = self._player_index(player_ref)
        return self.players[index] if index is not None else None

    @property
    def current_player(self) -> Optional[Player]:
        """Get the player whose turn it is."""
        if not self.players or self.status != MatchStatus.IN_PROGRESS:
            return None
        return self.players[self.current_player_index]

    @property
    def active_players(self) -> List[Player]:
        """Players who have not been eliminated."""
        return [p for p in self.players if not p.is_eliminated]

    @property
    def don(self) -> Optional[Player]:
        """The player holding the Don role, if roles are dealt."""
        if self.players and self.players[DON_SEAT].role == Role.DON:
            return self.players[DON_SEAT]
        return next((p for p in self.players if p.role == Role.DON), None)

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    @property
    def total_cards(self) -> int:
        """Cards in the deck, all hands, all equipment and the discard pile."""
        return (
            len(self.deck)
            + len(self.discard_pile)
            + sum(len(p.hand) + len(p.equipment) for p in self.players)
        )

    def _log_event(self, event_type: str, data: dict) -> MatchEvent:
        """Log a match event."""
        event = MatchEvent(event_type=event_type, data=data, version=self.version)
        self.events.append(event)
        return event

    def _touch(self) -> None:
        """Record an accepted mutation."""
        self.version += 1

    def _require_players(self) -> None:
        if not self.players:
            raise MatchNotInitializedError(f"Match {self.id} has no players")

    # =========== Lobby ===========

    def add_player(self, player: Player) -> Tuple[bool, str]:
        """
        Seat a player.

        Filling the last seat moves the match into role distribution.
        """
        if self.status != MatchStatus.WAITING:
            return False, "Match has already started"

        if self.get_player(player.user_id) is not None:
            return False, f"{player.username} is already in this match"

        if self.is_full:
            return False, f"Match is full ({self.max_players} players maximum)"

        self.players.append(player)
        self._touch()
        self._log_event("player_joined", {
            "player_id": player.id,
            "user_id": player.user_id,
            "username": player.username,
        })

        if self.is_full:
            self.status = MatchStatus.PREPARING
            self.current_phase = MatchPhase.ROLE_DISTRIBUTION
            self.roles = roles_for_count(self.max_players)
            if not self.roles:
                self._log_event("roles_unsupported", {"player_count": self.max_players})

        return True, f"{player.username} joined the match"

    def remove_player(self, player_ref: str) -> Tuple[bool, str]:
        """Remove a player from the lobby before the match fills."""
        index = self._player_index(player_ref)
        if index is None:
            return False, "Player not found"

        if self.status != MatchStatus.WAITING:
            return False, "Cannot leave once setup has begun"

        player = self.players.pop(index)
        self._touch()
        self._log_event("player_left", {"player_id": player.id, "user_id": player.user_id})

        return True, f"{player.username} left the match"

    # =========== Setup ===========

    def distribute_roles(self) -> Tuple[bool, str]:
        """Deal roles by seat, then offer characters."""
        if self.current_phase != MatchPhase.ROLE_DISTRIBUTION:
            return False, "Match is not distributing roles"

        if not self.roles or len(self.roles) != len(self.players):
            return False, f"Role distribution unsupported for {len(self.players)} players"

        shuffled = list(self.roles)
        self.rng.shuffle(shuffled)

        # The Don always sits in a known seat
        don_index = shuffled.index(Role.DON)
        shuffled[DON_SEAT], shuffled[don_index] = shuffled[don_index], shuffled[DON_SEAT]

        for player, role in zip(self.players, shuffled):
            player.role = role

        self.current_phase = MatchPhase.CHARACTER_SELECTION
        self.distribute_characters()
        self._touch()

        self._log_event("roles_distributed", {"don_id": self.players[DON_SEAT].id})

        return True, "Roles distributed"

    def distribute_characters(self) -> None:
        """Offer every player two distinct characters."""
        for player in self.players:
            player.character_options = character_options(self.rng)

    def select_character(self, player_ref: str, character: Character) -> Tuple[bool, str]:
        """
        Lock in a player's character.

        Once every player is ready the match starts and the deck is built.
        """
        if self.current_phase != MatchPhase.CHARACTER_SELECTION:
            return False, "Match is not in character selection"

        player = self.get_player(player_ref)
        if player is None:
            return False, "Player not found"

        if player.is_ready:
            return False, "You have already chosen a character"

        if player.character_options is not None and character not in player.character_options:
            return False, f"{character.name} was not offered to you"

        player.assign_character(character)
        self._touch()
        self._log_event("character_selected", {
            "player_id": player.id,
            "character_id": character.id,
        })

        if all(p.is_ready for p in self.players):
            self._start()

        return True, f"{player.username} is playing {character.name}"

    def _start(self) -> None:
        self.status = MatchStatus.IN_PROGRESS
        self.current_phase = MatchPhase.DRAWING_CARDS
        self.current_player_index = 0
        self.turn_number = 1
        self.deck.initialize()
        self.players[0].reset_turn()

        self._log_event("match_started", {
            "player_order": [p.id for p in self.players],
            "deck_size": len(self.deck),
        })

    # =========== Cards ===========

    def draw_cards(self, count: int, player_ref: str) -> List[Card]:
        """
        Draw up to `count` cards for a player.

        Returns:
            The drawn cards; empty if the player is unknown
        """
        player = self.get_player(player_ref)
        if player is None:
            return []

        drawn = self.deck.draw(count, player.hand, self.discard_pile)
        if drawn:
            self._touch()
            self._log_event("cards_drawn", {"player_id": player.id, "count": len(drawn)})
        return drawn

    def start_turn_draw(self, player_ref: str) -> Tuple[bool, str]:
        """The current player draws their turn cards and moves on to playing."""
        validation = self.rules.validate_turn_action(
            self, player_ref, (MatchPhase.DRAWING_CARDS,)
        )
        if not validation.valid:
            return False, validation.message

        drawn = self.draw_cards(TURN_DRAW_COUNT, player_ref)
        self.current_phase = MatchPhase.PLAYING_CARDS
        self._touch()

        return True, f"Drew {len(drawn)} cards"

    def can_play_card(self, card: Card, player: Player) -> bool:
        """One weapon per turn, no duplicate named equipment."""
        return self.rules.validate_play_card(card, player).valid

    def play_card(
        self,
        card: Union[Card, str],
        from_player_ref: str,
        target_ref: Optional[str] = None
    ) -> Tuple[bool, str]:
        """
        Play a card from a player's hand.

        The card is discarded even when its target cannot be resolved.
        """
        card_id = card.id if isinstance(card, Card) else card

        if self.status != MatchStatus.IN_PROGRESS:
            return False, "The match is not in progress"

        player = self.get_player(from_player_ref)
        if player is None:
            return False, "Player not found"

        held = player.find_card(card_id)
        if held is None:
            return False, "You do not hold that card"

        validation = self.rules.validate_play_card(held, player)
        if not validation.valid:
            return False, validation.message

        player.remove_card(card_id)
        self._apply_card_effect(held, player, target_ref)
        self.discard_pile.append(held)

        if held.is_weapon:
            player.has_played_firefight = True

        self._touch()
        self._log_event("card_played", {
            "player_id": player.id,
            "card_id": held.id,
            "card_name": held.name,
            "target_id": target_ref,
        })

        self.check_win()

        return True, f"Played {held.name}"

    def _apply_card_effect(self, card: Card, actor: Player, target_ref: Optional[str]) -> None:
        """Resolve a card effect. Unresolvable targets are ignored."""
        effect = card.effect

        if effect.kind == EffectKind.DAMAGE:
            target = self.get_player(target_ref)
            if target is not None:
                target.apply_damage(effect.amount)
                if target.is_eliminated:
                    self._log_event("player_eliminated", {
                        "player_id": target.id,
                        "by": actor.id,
                    })

        elif effect.kind == EffectKind.HEAL:
            actor.heal(effect.amount)

        elif effect.kind == EffectKind.DRAW:
            self.deck.draw(effect.amount, actor.hand, self.discard_pile)

        elif effect.kind == EffectKind.SHIELD:
            self.active_effects.append(
                ActiveEffect(type=SHIELD, player_id=actor.id, duration=SHIELD_DURATION)
            )

        elif effect.kind == EffectKind.RANGE:
            actor.attack_range += effect.amount

        elif effect.kind == EffectKind.SPECIAL:
            self.special_effects.dispatch(effect.tag, self, actor, target_ref)

    def discard_card(self, player_ref: str, card_id: str) -> Tuple[bool, str]:
        """
        Discard a card to get down to hand limit.

        Ends the turn once the hand no longer exceeds health.
        """
        validation = self.rules.validate_turn_action(
            self, player_ref, (MatchPhase.DISCARDING,)
        )
        if not validation.valid:
            return False, validation.message

        player = self.get_player(player_ref)
        card = player.remove_card(card_id)
        if card is None:
            return False, "You do not hold that card"

        self.discard_pile.append(card)
        self._touch()
        self._log_event("card_discarded", {"player_id": player.id, "card_id": card.id})

        if not player.must_discard:
            self.end_turn()
            return True, f"Discarded {card.name}; turn ended"

        return True, f"Discarded {card.name}; discard {len(player.hand) - player.health} more"

    # =========== Targeting ===========

    def distance(self, from_ref: str, to_ref: str) -> Optional[int]:
        """Seats between two players, or None if either is unknown."""
        from_seat = self._player_index(from_ref)
        to_seat = self._player_index(to_ref)
        if from_seat is None or to_seat is None:
            return None
        return self.rules.distance(len(self.players), from_seat, to_seat)

    def can_target(self, actor_ref: str, target_ref: str, card: Card) -> bool:
        """Whether `card` may be aimed from one player at another."""
        actor = self.get_player(actor_ref)
        target = self.get_player(target_ref)
        if actor is None or target is None:
            return False

        if target.id != actor.id and not target.can_be_targeted:
            return False

        distance = self.distance(actor.id, target.id)
        return self.rules.validate_target(card, actor, target, distance).valid

    # =========== Turn Management ===========

    def end_turn(self) -> Tuple[bool, str]:
        """
        End the current player's turn.

        A player holding more cards than their health is sent to discard
        instead, and the turn does not rotate.
        """
        self._require_players()

        if self.status != MatchStatus.IN_PROGRESS:
            return False, "The match is not in progress"

        player = self.players[self.current_player_index]
        if player.must_discard:
            self.current_phase = MatchPhase.DISCARDING
            self._touch()
            self._log_event("discard_required", {
                "player_id": player.id,
                "excess": len(player.hand) - player.health,
            })
            return True, f"Discard down to {player.health} cards"

        self._advance_turn()
        self._tick_effects()
        self._touch()

        self.check_win()

        current = self.current_player
        return True, f"Turn ended. {current.username}'s turn" if current else "Turn ended"

    def _advance_turn(self) -> None:
        """Move to the next player who is still in the match."""
        seat_count = len(self.players)
        start_index = self.current_player_index
        next_index = (start_index + 1) % seat_count

        for step in range(1, seat_count + 1):
            candidate = (start_index + step) % seat_count
            if not self.players[candidate].is_eliminated:
                next_index = candidate
                break

        self.current_player_index = next_index
        self.current_phase = MatchPhase.DRAWING_CARDS
        self.turn_number += 1
        self.players[next_index].reset_turn()

        self._log_event("turn_started", {
            "player_id": self.players[next_index].id,
            "turn_number": self.turn_number,
        })

    def _tick_effects(self) -> None:
        """Decrement every active effect, then drop the expired ones."""
        for effect in self.active_effects:
            effect.duration -= 1
        self.active_effects = [e for e in self.active_effects if not e.is_expired]

    # =========== Match end ===========

    def check_win(self) -> Optional[WinResult]:
        """Ask the configured win condition whether the match is over."""
        if self.status != MatchStatus.IN_PROGRESS:
            return None

        result = self.rules.check_win(self)
        if result is not None:
            self._finish(result)
        return result

    def _finish(self, result: Optional[WinResult]) -> None:
        self.status = MatchStatus.COMPLETED
        self.current_phase = MatchPhase.FINISHED
        self.winner = result
        self._touch()
        self._log_event("match_finished", {
            "winner": result.to_dict() if result else None,
        })

    def terminate(self, requester_ref: str) -> Tuple[bool, str]:
        """End the match early (host only)."""
        if self.status == MatchStatus.COMPLETED:
            return False, "The match is already over"

        requester = self.get_player(requester_ref)
        if requester is None or requester.user_id != self.host_id:
            return False, "Only the host can end the match"

        self._finish(None)
        return True, "Match terminated by host"

    # =========== Serialization ===========

    def to_dict(self) -> dict:
        """Convert match state to dictionary for saving/transmission."""
        return {
            "id": self.id,
            "name": self.name,
            "host_id": self.host_id,
            "max_players": self.max_players,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
            "current_phase": self.current_phase.value,
            "current_player_index": self.current_player_index,
            "turn_number": self.turn_number,
            "version": self.version,
            "roles": [r.value for r in self.roles] if self.roles is not None else None,
            "winner": self.winner.to_dict() if self.winner else None,
            "players": [p.to_dict() for p in self.players],
            "deck": self.deck.to_list(),
            "discard_pile": [c.to_dict() for c in self.discard_pile],
            "active_effects": [e.to_dict() for e in self.active_effects],
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        win_condition: Optional[WinCondition] = None,
        special_effects: Optional[SpecialEffectRegistry] = None,
    ) -> "Match":
        """
        Create match from dictionary.

        Raises:
            SnapshotError: if a field is missing or the roles do not match
                the table for the player count
        """
        try:
            match = cls(
                id=data["id"],
                name=data["name"],
                host_id=data["host_id"],
                max_players=data["max_players"],
                created_at=datetime.fromisoformat(data["created_at"]),
                status=MatchStatus(data["status"]),
                current_phase=MatchPhase(data["current_phase"]),
                current_player_index=data["current_player_index"],
                turn_number=data["turn_number"],
                version=data["version"],
                rules=RuleEngine(win_condition),
            )
            roles = data["roles"]
            winner = data.get("winner")
            players = data["players"]
            deck = data["deck"]
            discard_pile = data["discard_pile"]
            effects = data["active_effects"]
        except (KeyError, ValueError, TypeError) as e:
            raise SnapshotError(f"Invalid match snapshot: {e}") from e

        if special_effects is not None:
            match.special_effects = special_effects

        match.players = [Player.from_dict(p) for p in players]
        match.deck.cards = [Card.from_dict(c) for c in deck]
        match.discard_pile = [Card.from_dict(c) for c in discard_pile]
        match.active_effects = [ActiveEffect.from_dict(e) for e in effects]
        match.winner = WinResult.from_dict(winner) if winner else None

        if roles is not None:
            try:
                match.roles = [Role(r) for r in roles]
            except ValueError as e:
                raise SnapshotError(f"Invalid role in snapshot: {e}") from e

            expected = roles_for_count(match.max_players)
            if sorted(match.roles) != sorted(expected):
                raise SnapshotError(
                    f"Role set {roles} does not match the table for {match.max_players} players"
                )

        if match.status == MatchStatus.IN_PROGRESS and not (
            0 <= match.current_player_index < len(match.players)
        ):
            raise SnapshotError(
                f"current_player_index {match.current_player_index} out of range"
            )

        return match

    def get_state_for_player(self, user_id: str) -> dict:
        """
        Match state as seen by one player.

        Other players' hands are reduced to counts and roles are hidden
        unless the viewer is allowed to see them. The deck order is never
        revealed. `available_actions` lists the table actions the viewer's
        role and ammo allow.
        """
        viewer = self.get_player(user_id)
        viewer_role = viewer.role if viewer else None
        current = self.current_player

        players = []
        for player in self.players:
            is_self = viewer is not None and player.id == viewer.id
            data = player.to_dict()
            if not is_self:
                data["hand"] = []
                data["character_options"] = None
            data["hand_count"] = len(player.hand)
            if not can_see_role(viewer_role, player.role, is_self):
                data["role"] = None
            players.append(data)

        available_actions = [
            action.value for action in PlayerAction
            if viewer is not None and is_action_available(action, viewer_role, viewer.ammo)
        ]

        return {
            "match_id": self.id,
            "match_name": self.name,
            "host_id": self.host_id,
            "max_players": self.max_players,
            "status": self.status.value,
            "current_phase": self.current_phase.value,
            "turn_number": self.turn_number,
            "version": self.version,
            "current_player_id": current.id if current else None,
            "is_your_turn": bool(current and viewer and current.id == viewer.id),
            "available_actions": available_actions,
            "players": players,
            "deck_count": len(self.deck),
            "discard_pile": [c.to_dict() for c in self.discard_pile],
            "active_effects": [e.to_dict() for e in self.active_effects],
            "winner": self.winner.to_dict() if self.winner else None,
        }
