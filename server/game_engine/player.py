"""
Player state management.
"""
from dataclasses import dataclass, field
from typing import List, Optional
import uuid

from shared.constants import BASE_ATTACK_RANGE, DON_AMMO_BONUS
from shared.enums import Role

from .cards import Card
from .catalog import Character, get_character
from .errors import SnapshotError


@dataclass
class Player:
    """Represents a participant in a match."""

    user_id: str
    username: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    # Assigned during setup
    role: Optional[Role] = None
    selected_character: Optional[Character] = None
    character_options: Optional[List[Character]] = None

    # Vitals (zero until a character is selected)
    health: int = 0
    max_health: int = 0
    ammo: int = 0
    is_ready: bool = False

    # Cards
    hand: List[Card] = field(default_factory=list)
    equipment: List[Card] = field(default_factory=list)

    # Turn tracking
    attack_range: int = BASE_ATTACK_RANGE
    has_played_firefight: bool = False

    def matches(self, player_ref: str) -> bool:
        """True if the reference is this player's match id or user id."""
        return player_ref in (self.id, self.user_id)

    @property
    def is_eliminated(self) -> bool:
        """A player with a character and no health left is out."""
        return self.selected_character is not None and self.health <= 0

    @property
    def can_be_targeted(self) -> bool:
        return self.health > 0

    def apply_damage(self, amount: int) -> int:
        """
        Take damage, never dropping below zero.

        Returns:
            New health
        """
        self.health = max(0, self.health - amount)
        return self.health

    def heal(self, amount: int) -> int:
        """
        Restore health, never exceeding max health.

        Returns:
            New health
        """
        self.health = min(self.max_health, self.health + amount)
        return self.health

    def assign_character(self, character: Character) -> None:
        """Set vitals from a character and mark the player ready."""
        self.selected_character = character
        self.health = character.base_health
        self.max_health = character.base_health
        self.ammo = character.base_ammo
        if self.role == Role.DON:
            self.ammo += DON_AMMO_BONUS
        self.is_ready = True

    def find_card(self, card_id: str) -> Optional[Card]:
        """Find a card in hand by id."""
        for card in self.hand:
            if card.id == card_id:
                return card
        return None

    def remove_card(self, card_id: str) -> Optional[Card]:
        """Remove a card from hand by id."""
        card = self.find_card(card_id)
        if card is not None:
            self.hand.remove(card)
        return card

    def has_equipment(self, name: str) -> bool:
        """
        Check for equipment with the given name.

        Played cards always go to the discard pile, so `equipment` only holds
        cards placed in front of the player from a snapshot; a Scope played
        from hand never blocks the next one.
        """
        return any(card.name == name for card in self.equipment)

    @property
    def must_discard(self) -> bool:
        """Hand size may not exceed health at the end of a turn."""
        return len(self.hand) > self.health

    def reset_turn(self) -> None:
        """Reset turn-specific state."""
        self.has_played_firefight = False

    def to_dict(self) -> dict:
        """Convert player to dictionary for serialization."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.username,
            "role": self.role.value if self.role else None,
            "selected_character": (
                self.selected_character.id if self.selected_character else None
            ),
            "character_options": (
                [c.id for c in self.character_options]
                if self.character_options is not None else None
            ),
            "health": self.health,
            "max_health": self.max_health,
            "ammo": self.ammo,
            "is_ready": self.is_ready,
            "hand": [card.to_dict() for card in self.hand],
            "equipment": [card.to_dict() for card in self.equipment],
            "attack_range": self.attack_range,
            "has_played_firefight": self.has_played_firefight,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Player":
        """Create player from dictionary."""
        try:
            player = cls(
                user_id=data["user_id"],
                username=data["username"],
                id=data["id"],
                role=Role(data["role"]) if data.get("role") else None,
                health=data["health"],
                max_health=data["max_health"],
                ammo=data["ammo"],
                is_ready=data["is_ready"],
                attack_range=data["attack_range"],
                has_played_firefight=data["has_played_firefight"],
            )
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise SnapshotError(f"Invalid player data: {e}") from e

        if data.get("selected_character"):
            player.selected_character = _character_or_error(data["selected_character"])
        if data.get("character_options") is not None:
            player.character_options = [
                _character_or_error(cid) for cid in data["character_options"]
            ]

        player.hand = [Card.from_dict(c) for c in data.get("hand", [])]
        player.equipment = [Card.from_dict(c) for c in data.get("equipment", [])]
        return player


def _character_or_error(character_id: str) -> Character:
    character = get_character(character_id)
    if character is None:
        raise SnapshotError(f"Unknown character: {character_id}")
    return character
