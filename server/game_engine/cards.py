"""
Playable cards, their effects, and deck management.
"""
import random
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from shared.constants import (
    CARD_CATALOG, DUPLICATED_CARD_TYPES, DUPLICATED_CARD_NAMES
)
from shared.enums import CardType, EffectKind

from .errors import SnapshotError


@dataclass(frozen=True)
class CardEffect:
    """
    What a card does when played.

    A closed tagged variant: `kind` selects the variant, `amount` carries the
    payload for DAMAGE/HEAL/DRAW/RANGE and `tag` the payload for SPECIAL.
    Build instances through the named constructors.
    """
    kind: EffectKind
    amount: int = 0
    tag: str = ""

    @classmethod
    def damage(cls, amount: int) -> "CardEffect":
        return cls(EffectKind.DAMAGE, amount=amount)

    @classmethod
    def heal(cls, amount: int) -> "CardEffect":
        return cls(EffectKind.HEAL, amount=amount)

    @classmethod
    def draw(cls, amount: int) -> "CardEffect":
        return cls(EffectKind.DRAW, amount=amount)

    @classmethod
    def shield(cls) -> "CardEffect":
        return cls(EffectKind.SHIELD)

    @classmethod
    def range(cls, bonus: int) -> "CardEffect":
        return cls(EffectKind.RANGE, amount=bonus)

    @classmethod
    def special(cls, tag: str) -> "CardEffect":
        return cls(EffectKind.SPECIAL, tag=tag)

    @property
    def description(self) -> str:
        """Short human-readable summary."""
        if self.kind == EffectKind.DAMAGE:
            return f"Deal {self.amount} damage"
        if self.kind == EffectKind.HEAL:
            return f"Heal {self.amount} HP"
        if self.kind == EffectKind.DRAW:
            return f"Draw {self.amount} cards"
        if self.kind == EffectKind.SHIELD:
            return "Block next attack"
        if self.kind == EffectKind.RANGE:
            return f"Range: {self.amount}"
        return self.tag

    def to_dict(self) -> dict:
        """Convert effect to a tagged dictionary."""
        data = {"kind": self.kind.value}
        if self.kind == EffectKind.SPECIAL:
            data["tag"] = self.tag
        elif self.kind != EffectKind.SHIELD:
            data["amount"] = self.amount
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CardEffect":
        """Create effect from a tagged dictionary."""
        try:
            kind = EffectKind(data["kind"])
            if kind == EffectKind.SPECIAL:
                return cls.special(data["tag"])
            if kind == EffectKind.SHIELD:
                return cls.shield()
            return cls(kind, amount=int(data["amount"]))
        except (KeyError, ValueError, TypeError) as e:
            raise SnapshotError(f"Invalid card effect {data!r}: {e}") from e


def _effect_from_catalog(kind: str, value) -> CardEffect:
    kind = EffectKind(kind)
    if kind == EffectKind.SPECIAL:
        return CardEffect.special(value)
    if kind == EffectKind.SHIELD:
        return CardEffect.shield()
    return CardEffect(kind, amount=value)


@dataclass(frozen=True)
class Card:
    """A single playable card. Every copy has its own id."""

    card_type: CardType
    name: str
    effect: CardEffect
    description: str = ""
    range: int = 1
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_weapon(self) -> bool:
        return self.card_type == CardType.WEAPON

    @property
    def is_equipment(self) -> bool:
        return self.card_type == CardType.EQUIPMENT

    def to_dict(self) -> dict:
        """Convert card to dictionary."""
        return {
            "id": self.id,
            "type": self.card_type.value,
            "name": self.name,
            "effect": self.effect.to_dict(),
            "description": self.description,
            "range": self.range,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Card":
        """Create card from dictionary."""
        try:
            return cls(
                card_type=CardType(data["type"]),
                name=data["name"],
                effect=CardEffect.from_dict(data["effect"]),
                description=data.get("description", ""),
                range=int(data.get("range", 1)),
                id=data["id"],
            )
        except (KeyError, ValueError, TypeError) as e:
            raise SnapshotError(f"Invalid card {data!r}: {e}") from e


def create_catalog_cards() -> List[Card]:
    """
    Build one full set of cards, including duplicated copies.

    Order is catalog order; callers shuffle.
    """
    cards = []
    duplicates = []
    for card_type, name, kind, value, description, card_range in CARD_CATALOG:
        def make() -> Card:
            return Card(
                card_type=CardType(card_type),
                name=name,
                effect=_effect_from_catalog(kind, value),
                description=description,
                range=card_range,
            )

        cards.append(make())
        if card_type in DUPLICATED_CARD_TYPES or name in DUPLICATED_CARD_NAMES:
            duplicates.append(make())

    return cards + duplicates


@dataclass
class Deck:
    """
    Draw pile for a match. The top of the deck is the end of the list.
    """

    cards: List[Card] = field(default_factory=list)
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.cards)

    @property
    def is_empty(self) -> bool:
        return not self.cards

    def initialize(self) -> None:
        """Populate from the card catalog and shuffle."""
        self.cards = create_catalog_cards()
        self.rng.shuffle(self.cards)

    def reshuffle(self, discard_pile: List[Card]) -> None:
        """Shuffle the whole discard pile back into the deck."""
        self.cards.extend(discard_pile)
        discard_pile.clear()
        self.rng.shuffle(self.cards)

    def draw_one(self, discard_pile: List[Card]) -> Optional[Card]:
        """
        Draw the top card, reshuffling the discard pile first if needed.

        Returns:
            The card, or None when both piles are empty
        """
        if not self.cards:
            self.reshuffle(discard_pile)
        if not self.cards:
            return None
        return self.cards.pop()

    def draw(self, count: int, hand: List[Card], discard_pile: List[Card]) -> List[Card]:
        """
        Draw up to `count` cards into `hand`.

        Drawing fewer than requested is allowed when both the deck and the
        discard pile run out.

        Returns:
            The drawn cards in draw order
        """
        drawn = []
        for _ in range(max(count, 0)):
            card = self.draw_one(discard_pile)
            if card is None:
                break
            hand.append(card)
            drawn.append(card)
        return drawn

    def to_list(self) -> List[dict]:
        """Serialize deck, bottom to top."""
        return [card.to_dict() for card in self.cards]
